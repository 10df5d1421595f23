#!/usr/bin/env python3
"""
Docstring Annotation Parser
============================
Parse the small tag grammar used in model and handler docstrings.

Supported tags (one per line):
- @var name type [description]     explicit property type
- @enum name {a, b, c}             enumerated values for a property
- @required name[, name...]        force properties to be required
- @query name type [description]   query parameter on a handler
- @throws Type [description]       documented exception (alias: @raises)
- @deprecated [reason]

Type expressions: int, str, ?int, int|None, list[str], str[], dict[str, int],
Optional[User], app.models.User

Malformed tags are treated as absent; parsing never raises.
"""

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger("api_docs.schemas.annotations")

_TAG_VAR = re.compile(r'^@(var|query)\s+(\w+)\s*:?\s+(\S+)(?:\s+-?\s*(.*))?$')
_TAG_ENUM = re.compile(r'^@enum\s+(\w+)\s*\{([^{}]*)\}\s*$')
_TAG_REQUIRED = re.compile(r'^@required\s+(\w+(?:\s*,\s*\w+)*)\s*$')
_TAG_THROWS = re.compile(r'^@(?:throws|raises)\s+([\w.]+)(?:\s+(.*))?$')
_TAG_DEPRECATED = re.compile(r'^@deprecated\b\s*(.*)$')

_TOKEN = re.compile(r'\s*([\w.]+|\[\]|[\[\],|?])')


@dataclass(frozen=True)
class TypeExpr:
    """Parsed type expression from an annotation."""
    name: str
    args: Tuple["TypeExpr", ...] = ()
    nullable: bool = False


@dataclass
class Annotations:
    """All tags found in one docstring."""
    vars: Dict[str, Tuple[TypeExpr, Optional[str]]] = field(default_factory=dict)
    queries: Dict[str, Tuple[TypeExpr, Optional[str]]] = field(default_factory=dict)
    enums: Dict[str, List[str]] = field(default_factory=dict)
    required: List[str] = field(default_factory=list)
    throws: List[Tuple[str, Optional[str]]] = field(default_factory=list)
    deprecated: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.vars or self.queries or self.enums or self.required
                    or self.throws or self.deprecated is not None)


class _TypeExprParser:
    """Recursive-descent parser for annotation type expressions."""

    def __init__(self, text: str):
        self.tokens = []
        pos = 0
        text = text.strip()
        while pos < len(text):
            match = _TOKEN.match(text, pos)
            if not match:
                raise ValueError(f"Unexpected character at {pos}: {text[pos:]!r}")
            self.tokens.append(match.group(1))
            pos = match.end()
        self.pos = 0

    def _peek(self) -> Optional[str]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _take(self, expected: Optional[str] = None) -> str:
        token = self._peek()
        if token is None or (expected is not None and token != expected):
            raise ValueError(f"Expected {expected or 'token'}, got {token!r}")
        self.pos += 1
        return token

    def parse(self) -> TypeExpr:
        expr = self._union()
        if self._peek() is not None:
            raise ValueError(f"Trailing tokens: {self.tokens[self.pos:]}")
        return expr

    def _union(self) -> TypeExpr:
        members = [self._term()]
        while self._peek() == '|':
            self._take('|')
            members.append(self._term())

        nullable = any(m.nullable for m in members)
        concrete = [m for m in members if m.name not in ('None', 'null')]
        if len(concrete) < len(members):
            nullable = True
        if not concrete:
            raise ValueError("Union of only null types")
        if len(concrete) == 1:
            only = concrete[0]
            return TypeExpr(only.name, only.args, nullable)
        return TypeExpr('Union', tuple(concrete), nullable)

    def _term(self) -> TypeExpr:
        if self._peek() == '?':
            self._take('?')
            inner = self._term()
            return TypeExpr(inner.name, inner.args, True)

        name = self._take()
        if not re.match(r'^[A-Za-z_][\w.]*$', name):
            raise ValueError(f"Invalid type name {name!r}")

        args: Tuple[TypeExpr, ...] = ()
        if self._peek() == '[':
            self._take('[')
            parsed = [self._union()]
            while self._peek() == ',':
                self._take(',')
                parsed.append(self._union())
            self._take(']')
            args = tuple(parsed)

        expr = TypeExpr(name, args)
        if name == 'Optional' and len(args) == 1:
            expr = TypeExpr(args[0].name, args[0].args, True)

        while self._peek() == '[]':
            self._take('[]')
            expr = TypeExpr('list', (expr,))
        return expr


def parse_type_expression(text: str) -> Optional[TypeExpr]:
    """
    Parse a type expression, returning None when it is malformed.

    Example:
        >>> parse_type_expression("?list[int]")
        TypeExpr(name='list', args=(TypeExpr(name='int', args=(), nullable=False),), nullable=True)
    """
    try:
        return _TypeExprParser(text).parse()
    except ValueError as e:
        logger.debug(f"Ignoring malformed type expression {text!r}: {e}")
        return None


def _parse_enum_values(body: str) -> Optional[List[str]]:
    values = []
    for raw in body.split(','):
        value = raw.strip().strip('"\'')
        if not value:
            return None
        values.append(value)
    return values or None


@lru_cache(maxsize=2048)
def _parse_cached(docstring: str) -> Annotations:
    result = Annotations()

    for raw_line in docstring.splitlines():
        line = raw_line.strip()
        if not line.startswith('@'):
            continue

        match = _TAG_VAR.match(line)
        if match:
            kind, name, type_text, description = match.groups()
            expr = parse_type_expression(type_text)
            if expr is not None:
                target = result.vars if kind == 'var' else result.queries
                target[name] = (expr, description.strip() if description else None)
            continue

        match = _TAG_ENUM.match(line)
        if match:
            values = _parse_enum_values(match.group(2))
            if values:
                result.enums[match.group(1)] = values
            else:
                logger.debug(f"Ignoring malformed enum annotation: {line}")
            continue

        match = _TAG_REQUIRED.match(line)
        if match:
            for name in match.group(1).split(','):
                if name.strip() not in result.required:
                    result.required.append(name.strip())
            continue

        match = _TAG_THROWS.match(line)
        if match:
            description = match.group(2).strip() if match.group(2) else None
            result.throws.append((match.group(1), description))
            continue

        match = _TAG_DEPRECATED.match(line)
        if match:
            result.deprecated = match.group(1).strip()
            continue

        logger.debug(f"Ignoring unrecognized annotation: {line}")

    return result


class AnnotationParser:
    """Parses docstring tags; results are cached per docstring text."""

    @staticmethod
    def parse(docstring: Optional[str]) -> Annotations:
        if not docstring:
            return Annotations()
        return _parse_cached(docstring)

    @staticmethod
    def parse_object(obj) -> Annotations:
        """Parse the docstring of a class or function (not inherited docs)."""
        doc = obj.__dict__.get('__doc__') if isinstance(obj, type) else getattr(obj, '__doc__', None)
        return AnnotationParser.parse(doc)
