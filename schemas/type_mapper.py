#!/usr/bin/env python3
"""
Type Mapper
============
Convert Python type objects and annotation type expressions to SchemaResult.

Handles:
- Scalars: int, str, bool, float, bytes, Decimal
- Temporal and identifier types: datetime, date, time, UUID
- pydantic string types: EmailStr, HttpUrl, AnyUrl
- Generics: List[X], Set[X], Tuple[X, ...], Dict[K, V]
- Optional[X], X | None (nullable) and other unions (oneOf)
- Literal[...] and Enum subclasses (enum values)
- Model-like classes (dataclasses, pydantic models, annotated classes) → $ref
"""

import collections.abc
import dataclasses
import datetime
import decimal
import enum
import importlib
import logging
import sys
import types
import typing
import uuid
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

from .annotations import TypeExpr, parse_type_expression
from .schema import SchemaResult

logger = logging.getLogger("api_docs.schemas.type_mapper")

UnionType = getattr(types, "UnionType", None)


def is_model_class(tp: Any) -> bool:
    """Check whether a type is a named entity that deserves its own component."""
    if not isinstance(tp, type):
        return False
    if issubclass(tp, enum.Enum):
        return True
    if dataclasses.is_dataclass(tp) or issubclass(tp, BaseModel):
        return True
    if tp.__module__ in ('builtins', 'typing', 'datetime', 'decimal', 'uuid'):
        return False
    return bool(tp.__dict__.get('__annotations__'))


class TypeMapper:
    """
    Map Python types to schema nodes.

    Model-like classes are delegated to `resolve_class`, which registers them
    in the components table and returns a reference.
    """

    # Python type → (type, format)
    TYPE_MAPPINGS = {
        int: ('integer', None),
        float: ('number', None),
        str: ('string', None),
        bool: ('boolean', None),
        bytes: ('string', 'binary'),
        decimal.Decimal: ('number', None),
        datetime.datetime: ('string', 'date-time'),
        datetime.date: ('string', 'date'),
        datetime.time: ('string', 'time'),
        uuid.UUID: ('string', 'uuid'),
        dict: ('object', None),
        list: ('array', None),
    }

    # Types recognized by class name (no import needed)
    NAMED_TYPE_MAPPINGS = {
        'EmailStr': ('string', 'email'),
        'NameEmail': ('string', 'email'),
        'HttpUrl': ('string', 'uri'),
        'AnyUrl': ('string', 'uri'),
        'AnyHttpUrl': ('string', 'uri'),
        'IPv4Address': ('string', 'ipv4'),
        'IPv6Address': ('string', 'ipv6'),
        'SecretStr': ('string', 'password'),
    }

    # Annotation type-expression names → (type, format)
    EXPRESSION_SCALARS = {
        'int': ('integer', None),
        'integer': ('integer', None),
        'float': ('number', None),
        'number': ('number', None),
        'decimal': ('number', None),
        'str': ('string', None),
        'string': ('string', None),
        'bool': ('boolean', None),
        'boolean': ('boolean', None),
        'bytes': ('string', 'binary'),
        'datetime': ('string', 'date-time'),
        'date': ('string', 'date'),
        'time': ('string', 'time'),
        'uuid': ('string', 'uuid'),
        'UUID': ('string', 'uuid'),
        'email': ('string', 'email'),
        'uri': ('string', 'uri'),
        'url': ('string', 'uri'),
    }

    UNTYPED_NAMES = {'Any', 'any', 'mixed', 'object'}
    ARRAY_NAMES = {'list', 'List', 'array', 'set', 'Set', 'tuple', 'Tuple', 'Sequence', 'Iterable'}
    MAP_NAMES = {'dict', 'Dict', 'Mapping', 'map'}

    def __init__(self, resolve_class: Optional[Callable[[type], SchemaResult]] = None):
        self._resolve_class = resolve_class

    def map_type(self, tp: Any, namespace: Optional[Dict[str, Any]] = None) -> SchemaResult:
        """
        Convert a runtime type annotation to a schema.

        Args:
            tp: Type object, typing construct, or string forward reference
            namespace: Globals used to resolve string annotations

        Returns:
            SchemaResult (untyped when the annotation is not understood)
        """
        if tp is None or tp is type(None):
            return SchemaResult(nullable=True)

        if tp is typing.Any:
            return SchemaResult()

        if isinstance(tp, str):
            expr = parse_type_expression(tp)
            schema = self.map_expression(expr, namespace) if expr else None
            return schema or SchemaResult()

        if isinstance(tp, typing.ForwardRef):
            return self.map_type(tp.__forward_arg__, namespace)

        origin = typing.get_origin(tp)
        args = typing.get_args(tp)

        if origin is typing.Annotated:
            return self.map_type(args[0], namespace)

        if origin is typing.Union or (UnionType is not None and origin is UnionType):
            return self._map_union(args, namespace)

        if origin is typing.Literal:
            return self._map_literal(args)

        if origin in (list, set, frozenset, tuple) or self._is_abc_sequence(origin):
            item_args = [a for a in args if a is not Ellipsis]
            items = self.map_type(item_args[0], namespace) if item_args else SchemaResult()
            return SchemaResult.array(items)

        if origin is dict or self._is_abc_mapping(origin):
            if len(args) == 2:
                return SchemaResult(type='object', additional_properties=self.map_type(args[1], namespace))
            return SchemaResult(type='object')

        if isinstance(tp, type):
            return self._map_class(tp)

        logger.debug(f"Unknown annotation: {tp!r}")
        return SchemaResult()

    def map_expression(self, expr: TypeExpr, namespace: Optional[Dict[str, Any]] = None) -> Optional[SchemaResult]:
        """
        Convert a parsed annotation type expression to a schema.

        Returns None when a referenced class name cannot be found, so the
        caller falls back to the next type source.
        """
        schema = self._map_expression_inner(expr, namespace)
        if schema is None:
            return None
        return schema.with_nullable() if expr.nullable else schema

    def _map_expression_inner(self, expr: TypeExpr, namespace: Optional[Dict[str, Any]]) -> Optional[SchemaResult]:
        name = expr.name

        if name in self.EXPRESSION_SCALARS and not expr.args:
            type_name, type_format = self.EXPRESSION_SCALARS[name]
            return SchemaResult(type=type_name, format=type_format)

        if name in self.UNTYPED_NAMES:
            return SchemaResult()

        if name == 'Union':
            variants = [self.map_expression(arg, namespace) for arg in expr.args]
            if any(v is None for v in variants):
                return None
            return SchemaResult(one_of=variants)

        if name in self.ARRAY_NAMES:
            if not expr.args:
                return SchemaResult.array()
            items = self.map_expression(expr.args[0], namespace)
            return SchemaResult.array(items) if items is not None else None

        if name in self.MAP_NAMES:
            if len(expr.args) == 2:
                values = self.map_expression(expr.args[1], namespace)
                if values is None:
                    return None
                return SchemaResult(type='object', additional_properties=values)
            return SchemaResult(type='object')

        target = self._lookup(name, namespace)
        if target is None:
            logger.debug(f"Cannot resolve annotation type {name}")
            return None
        return self.map_type(target, namespace)

    def _map_union(self, args, namespace) -> SchemaResult:
        concrete = [a for a in args if a is not type(None)]
        nullable = len(concrete) < len(args)

        if len(concrete) == 1:
            schema = self.map_type(concrete[0], namespace)
            return schema.with_nullable() if nullable else schema

        variants = [self.map_type(a, namespace) for a in concrete]
        return SchemaResult(one_of=variants, nullable=nullable)

    @staticmethod
    def _map_literal(values) -> SchemaResult:
        present = [v for v in values if v is not None]
        nullable = len(present) < len(values)
        kinds = {type(v) for v in present}
        type_name = None
        if kinds == {str}:
            type_name = 'string'
        elif kinds == {bool}:
            type_name = 'boolean'
        elif kinds == {int}:
            type_name = 'integer'
        return SchemaResult(type=type_name, enum=list(present), nullable=nullable)

    def _map_class(self, cls: type) -> SchemaResult:
        if cls in self.TYPE_MAPPINGS:
            type_name, type_format = self.TYPE_MAPPINGS[cls]
            if type_name == 'array':
                return SchemaResult.array()
            return SchemaResult(type=type_name, format=type_format)

        mapped = self.NAMED_TYPE_MAPPINGS.get(cls.__name__)
        if mapped:
            return SchemaResult(type=mapped[0], format=mapped[1])

        if is_model_class(cls) and self._resolve_class is not None:
            return self._resolve_class(cls)

        if issubclass(cls, enum.Enum):
            return enum_schema(cls)

        # Subclasses of builtins (e.g. class Slug(str))
        for base, (type_name, type_format) in self.TYPE_MAPPINGS.items():
            if issubclass(cls, base) and type_name not in ('array', 'object'):
                return SchemaResult(type=type_name, format=type_format)

        return SchemaResult()

    @staticmethod
    def _is_abc_sequence(origin) -> bool:
        return origin in (collections.abc.Sequence, collections.abc.Iterable,
                          collections.abc.Set, collections.abc.MutableSequence)

    @staticmethod
    def _is_abc_mapping(origin) -> bool:
        return origin in (collections.abc.Mapping, collections.abc.MutableMapping)

    @staticmethod
    def _lookup(name: str, namespace: Optional[Dict[str, Any]]) -> Any:
        """Find a class by bare or dotted name in a module namespace."""
        if namespace and name in namespace:
            return namespace[name]

        if '.' in name:
            module_name, _, attr = name.rpartition('.')
            if namespace and module_name in namespace:
                return getattr(namespace[module_name], attr, None)
            module = sys.modules.get(module_name)
            if module is None:
                try:
                    module = importlib.import_module(module_name)
                except ImportError:
                    return None
            return getattr(module, attr, None)

        return None


def enum_schema(cls: type) -> SchemaResult:
    """Inline schema for an Enum subclass (values, typed when homogeneous)."""
    values = [member.value for member in cls]
    kinds = {type(v) for v in values}
    type_name = None
    if kinds == {str}:
        type_name = 'string'
    elif kinds == {int}:
        type_name = 'integer'
    elif kinds == {float} or kinds == {int, float}:
        type_name = 'number'
    return SchemaResult(type=type_name, enum=values)
