#!/usr/bin/env python3
"""
Route Descriptors and Analysis Context
========================================
Leaf data passed through the pipeline.

RouteInfo describes one registered endpoint and is never mutated after load.
AnalysisContext bundles a route with its (optional) parsed handler and is the
unit of work every extractor receives.

Route patterns from the common Python frameworks are accepted:
- Flask / Django: /users/<user_id>, /users/<int:user_id>
- FastAPI / Starlette: /users/{user_id}, /users/{user_id:int}
- Express-style: /users/:user_id
"""

import ast
import re
from dataclasses import dataclass, field, replace
from typing import Dict, Any, List, Optional, Tuple, Union

# OpenAPI PathItem field order
CANONICAL_METHODS = ("GET", "PUT", "POST", "DELETE", "OPTIONS", "HEAD", "PATCH", "TRACE")

# Methods frameworks add implicitly next to the real ones
IMPLICIT_METHODS = {"HEAD", "OPTIONS"}

_PATH_PARAM_PATTERNS = [
    # {name} or {name:type}
    re.compile(r'\{(?P<name>\w+)(?::(?P<type>[^}]+))?\}'),
    # <name> or <type:name>
    re.compile(r'<(?:(?P<type>\w+):)?(?P<name>\w+)>'),
    # :name
    re.compile(r'(?<=/):(?P<name>\w+)'),
]

HandlerNode = Union[ast.FunctionDef, ast.AsyncFunctionDef]


def parse_path_parameters(uri: str) -> List[Tuple[str, Optional[str]]]:
    """
    Extract path parameter names and converter hints from a route pattern.

    Args:
        uri: Route pattern (e.g., "/users/<int:user_id>/posts/{slug}")

    Returns:
        Ordered list of (name, converter) tuples; converter is None when absent

    Example:
        >>> parse_path_parameters("/users/<int:user_id>/posts/{slug}")
        [('user_id', 'int'), ('slug', None)]
    """
    found = []
    for pattern in _PATH_PARAM_PATTERNS:
        for match in pattern.finditer(uri):
            groups = match.groupdict()
            found.append((match.start(), groups['name'], groups.get('type')))

    found.sort(key=lambda item: item[0])

    seen = set()
    params = []
    for _, name, converter in found:
        if name not in seen:
            seen.add(name)
            params.append((name, converter))
    return params


def to_openapi_path(uri: str) -> str:
    """Normalize any supported route pattern to OpenAPI {name} placeholders."""
    path = re.sub(r'\{(\w+):[^}]+\}', r'{\1}', uri)
    path = re.sub(r'<(?:\w+:)?(\w+)>', r'{\1}', path)
    path = re.sub(r'(?<=/):(\w+)', r'{\1}', path)
    if not path.startswith('/'):
        path = '/' + path
    return path


@dataclass(frozen=True)
class RouteInfo:
    """Static metadata for one registered HTTP endpoint."""
    uri: str
    methods: frozenset = frozenset({"GET"})
    controller: Optional[str] = None
    action: Optional[str] = None
    middleware: Tuple[str, ...] = ()
    domain: Optional[str] = None
    path_parameters: Tuple[str, ...] = ()
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RouteInfo":
        """
        Build a route from one route-table entry.

        Accepts "methods" as a list or a "|"-separated string and derives
        path parameters from the uri when the entry does not list them.
        """
        uri = data.get("uri") or data.get("path")
        if not uri:
            raise ValueError(f"Route entry has no uri: {data!r}")

        methods = data.get("methods") or data.get("method") or ["GET"]
        if isinstance(methods, str):
            methods = methods.split("|")

        path_parameters = data.get("path_parameters")
        if path_parameters is None:
            path_parameters = [name for name, _ in parse_path_parameters(uri)]

        return cls(
            uri=uri,
            methods=frozenset(m.strip().upper() for m in methods if m.strip()),
            controller=data.get("controller"),
            action=data.get("action"),
            middleware=tuple(data.get("middleware") or ()),
            domain=data.get("domain"),
            path_parameters=tuple(path_parameters),
            name=data.get("name"),
        )

    @property
    def emitted_methods(self) -> List[str]:
        """Methods that get their own operation, in canonical order."""
        ordered = [m for m in CANONICAL_METHODS if m in self.methods]
        ordered += sorted(m for m in self.methods if m not in CANONICAL_METHODS)
        explicit = [m for m in ordered if m not in IMPLICIT_METHODS]
        return explicit or ordered

    @property
    def http_method(self) -> str:
        """Primary method of the route (first non-implicit one)."""
        methods = self.emitted_methods
        return methods[0] if methods else "GET"

    @property
    def is_closure(self) -> bool:
        return self.controller is None and self.action is None

    @property
    def openapi_path(self) -> str:
        return to_openapi_path(self.uri)

    def for_method(self, method: str) -> "RouteInfo":
        """Copy of this route restricted to a single method."""
        return replace(self, methods=frozenset({method.upper()}))

    def __str__(self) -> str:
        return f"{self.http_method} {self.uri}"


@dataclass(frozen=True)
class AnalysisContext:
    """
    Per-route unit of work passed to every extractor.

    Extractors must treat the context as read-only. When ast_node is None
    (handler source could not be resolved), AST-dependent extractors return
    empty results.
    """
    route: RouteInfo
    ast_node: Optional[HandlerNode] = None
    source_file_path: Optional[str] = None

    # ParsedSource of the handler module (import table, local classes)
    source_module: Any = None

    # Imported handler callable for reflective inspection
    handler: Any = None

    # SchemaResolver of the current generation run
    schemas: Any = None

    metadata: Dict[str, Any] = field(default_factory=dict)

    def has_ast(self) -> bool:
        return self.ast_node is not None

    def with_metadata(self, **values: Any) -> "AnalysisContext":
        merged = dict(self.metadata)
        merged.update(values)
        return replace(self, metadata=merged)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "route": str(self.route),
            "source_file_path": self.source_file_path,
            "has_ast": self.has_ast(),
            "has_handler": self.handler is not None,
        }
