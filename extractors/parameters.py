#!/usr/bin/env python3
"""
Parameter Extraction
=====================
Path and query parameters from route patterns, handler signatures and
handler bodies.

- Path parameters: typed from handler annotations, then route converters
  (<int:id>, {id:uuid}), defaulting to string
- request.args.get("q", type=int) / request.GET["q"] / request.query_params.get("q")
- FastAPI-style `q: int = Query(10, description=...)` defaults
- `@query name type description` docstring tags
- .paginate() / .cursor_paginate() calls (page, per_page, cursor)
"""

import ast
import logging
from typing import Dict, Any, List, Optional

from pipeline.context import AnalysisContext, parse_path_parameters
from pipeline.contracts import QueryParameterExtractor
from pipeline.results import ParameterResult
from schemas.annotations import AnnotationParser, parse_type_expression
from schemas.schema import SchemaResult
from schemas.type_mapper import TypeMapper
from .docstring_parser import DocstringParser
from .exception_analyzer import dotted_name
from .request_body import handler_type_hints

logger = logging.getLogger("api_docs.extractors.parameters")

# Route converter → annotation type expression
CONVERTER_TYPES = {
    'int': 'int',
    'integer': 'int',
    'float': 'float',
    'number': 'float',
    'uuid': 'uuid',
    'guid': 'uuid',
    'path': 'str',
    'str': 'str',
    'string': 'str',
    'slug': 'str',
    'bool': 'bool',
    'datetime': 'datetime',
}


def _mapper(context: AnalysisContext) -> TypeMapper:
    return context.schemas.mapper if context.schemas is not None else TypeMapper()


def _ast_annotation_schema(annotation: Optional[ast.expr], mapper: TypeMapper) -> Optional[SchemaResult]:
    """Schema for a scalar source annotation read from the AST."""
    if annotation is None:
        return None
    expr = parse_type_expression(ast.unparse(annotation))
    if expr is None:
        return None
    return mapper.map_expression(expr)


def _handler_arguments(handler: ast.AST) -> Dict[str, ast.arg]:
    args = handler.args
    return {a.arg: a for a in args.posonlyargs + args.args + args.kwonlyargs}


class PathParameterExtractor(QueryParameterExtractor):
    """Required path parameters for every placeholder in the route."""

    def extract(self, context: AnalysisContext) -> List[ParameterResult]:
        route = context.route
        if not route.path_parameters:
            return []

        converters = dict(parse_path_parameters(route.uri))
        hints = handler_type_hints(context)
        mapper = _mapper(context)
        arguments = _handler_arguments(context.ast_node) if context.has_ast() else {}
        docs = DocstringParser.from_node(context.ast_node).get('parameters', {}) if context.has_ast() else {}

        params = []
        for name in route.path_parameters:
            schema = None

            if name in hints:
                schema = mapper.map_type(hints[name])
                if schema.is_untyped or schema.is_ref:
                    schema = None

            if schema is None and name in arguments:
                schema = _ast_annotation_schema(arguments[name].annotation, mapper)

            if schema is None and converters.get(name):
                converter = converters[name].split(':')[0].lower()
                expr = parse_type_expression(CONVERTER_TYPES.get(converter, 'str'))
                schema = mapper.map_expression(expr)

            params.append(ParameterResult.path(
                name,
                schema=(schema or SchemaResult.string()).with_nullable(False),
                description=docs.get(name) or f"The {name.replace('_', ' ')}",
            ))
        return params


class RequestArgsParameterExtractor(QueryParameterExtractor):
    """
    Query parameters read from the request object in the handler body.

    Example:
        page = request.args.get("page", 1, type=int)
        → {"name": "page", "in": "query", "schema": {"type": "integer", "default": 1}}
    """

    # Attribute chains holding query-string values
    QUERY_SOURCES = ('request.args', 'request.GET', 'request.query_params', 'request.query')

    TYPE_CONVERTERS = {
        'int': SchemaResult.integer,
        'float': SchemaResult.number,
        'bool': SchemaResult.boolean,
        'str': SchemaResult.string,
    }

    def extract(self, context: AnalysisContext) -> List[ParameterResult]:
        if not context.has_ast():
            return []

        path_params = set(context.route.path_parameters)
        found: Dict[str, ParameterResult] = {}

        for param in self._signature_params(context):
            if param.name not in path_params:
                found.setdefault(param.name, param)

        for statement in context.ast_node.body:
            for node in ast.walk(statement):
                param = None
                if isinstance(node, ast.Call):
                    param = self._from_call(node)
                elif isinstance(node, ast.Subscript):
                    param = self._from_subscript(node)

                if param is None or param.name in path_params:
                    continue
                existing = found.get(param.name)
                if existing is None:
                    found[param.name] = param
                elif param.required and not existing.required:
                    existing.required = True

        return list(found.values())

    def _is_query_source(self, node: ast.AST) -> bool:
        name = dotted_name(node)
        return name is not None and name.endswith(self.QUERY_SOURCES)

    def _from_call(self, call: ast.Call) -> Optional[ParameterResult]:
        if not isinstance(call.func, ast.Attribute) or call.func.attr not in ('get', 'getlist', 'getall'):
            return None
        if not self._is_query_source(call.func.value) or not call.args:
            return None

        name = _literal(call.args[0])
        if not isinstance(name, str):
            return None

        if call.func.attr in ('getlist', 'getall'):
            return ParameterResult.query(name, SchemaResult.array(SchemaResult.string()))

        default = _literal(call.args[1]) if len(call.args) > 1 else None
        converter = None
        for kw in call.keywords:
            if kw.arg == 'default':
                default = _literal(kw.value)
            elif kw.arg == 'type' and isinstance(kw.value, ast.Name):
                converter = kw.value.id

        if converter in self.TYPE_CONVERTERS:
            schema = self.TYPE_CONVERTERS[converter]()
        else:
            schema = _schema_for_literal(default)
        if default is not None:
            schema.default = default

        return ParameterResult.query(name, schema)

    def _from_subscript(self, node: ast.Subscript) -> Optional[ParameterResult]:
        if not isinstance(node.ctx, ast.Load) or not self._is_query_source(node.value):
            return None
        name = _literal(node.slice)
        if not isinstance(name, str):
            return None
        return ParameterResult.query(name, SchemaResult.string(), required=True)

    @staticmethod
    def _signature_params(context: AnalysisContext) -> List[ParameterResult]:
        """Parameters declared with a `Query(...)` default."""
        args = context.ast_node.args
        positional = args.posonlyargs + args.args
        defaults = [None] * (len(positional) - len(args.defaults)) + list(args.defaults)
        pairs = list(zip(positional, defaults)) + list(zip(args.kwonlyargs, args.kw_defaults))

        mapper = _mapper(context)
        params = []
        for arg, default in pairs:
            if not isinstance(default, ast.Call) or dotted_name(default.func) not in ('Query', 'fastapi.Query'):
                continue

            schema = _ast_annotation_schema(arg.annotation, mapper) or SchemaResult.string()
            first = default.args[0] if default.args else None
            for kw in default.keywords:
                if kw.arg == 'default':
                    first = kw.value

            required = first is None or (isinstance(first, ast.Constant) and first.value is Ellipsis)
            value = None if required else _literal(first)
            if value is not None and not schema.is_ref:
                schema.default = value

            description = None
            for kw in default.keywords:
                if kw.arg == 'description':
                    description = _literal(kw.value)

            params.append(ParameterResult.query(arg.arg, schema, required=required, description=description))
        return params


class DocstringParameterExtractor(QueryParameterExtractor):
    """
    Query parameters documented with `@query name type description`.

    Only applies to GET, HEAD and DELETE routes; names matching handler
    arguments or path parameters are skipped.
    """

    QUERY_METHODS = {"GET", "HEAD", "DELETE"}

    def extract(self, context: AnalysisContext) -> List[ParameterResult]:
        if not context.has_ast() or context.route.http_method not in self.QUERY_METHODS:
            return []

        tags = AnnotationParser.parse(ast.get_docstring(context.ast_node))
        if not tags.queries:
            return []

        excluded = set(context.route.path_parameters) | set(_handler_arguments(context.ast_node))
        mapper = _mapper(context)

        params = []
        for name, (expr, description) in tags.queries.items():
            if name in excluded:
                continue
            schema = mapper.map_expression(expr) or SchemaResult.string()
            if name in tags.enums and not schema.is_ref:
                schema = SchemaResult(type=schema.type or 'string', enum=list(tags.enums[name]))
            params.append(ParameterResult.query(
                name, schema,
                required=name in tags.required,
                description=description,
            ))
        return params


class PaginationParameterExtractor(QueryParameterExtractor):
    """page/per_page (or cursor/per_page) for handlers that paginate."""

    PAGE_METHODS = {'paginate', 'simple_paginate', 'get_page', 'page'}
    CURSOR_METHODS = {'cursor_paginate'}

    def extract(self, context: AnalysisContext) -> List[ParameterResult]:
        if not context.has_ast() or context.route.http_method != "GET":
            return []

        style = None
        for statement in context.ast_node.body:
            for node in ast.walk(statement):
                if not isinstance(node, ast.Call):
                    continue
                name = node.func.attr if isinstance(node.func, ast.Attribute) else dotted_name(node.func)
                if name in self.CURSOR_METHODS:
                    style = 'cursor'
                elif name in self.PAGE_METHODS and style is None:
                    style = 'page'

        if style is None:
            return []

        per_page = ParameterResult.query(
            'per_page', SchemaResult.integer(), description='Number of items per page')
        if style == 'cursor':
            return [
                ParameterResult.query('cursor', SchemaResult.string(), description='Cursor for pagination'),
                per_page,
            ]
        return [
            ParameterResult.query('page', SchemaResult.integer(), description='Page number'),
            per_page,
        ]


def _literal(node: Optional[ast.AST]) -> Any:
    if node is None:
        return None
    try:
        return ast.literal_eval(node)
    except (ValueError, TypeError, SyntaxError, MemoryError, RecursionError):
        return None


def _schema_for_literal(value: Any) -> SchemaResult:
    if isinstance(value, bool):
        return SchemaResult.boolean()
    if isinstance(value, int):
        return SchemaResult.integer()
    if isinstance(value, float):
        return SchemaResult.number()
    return SchemaResult.string()
