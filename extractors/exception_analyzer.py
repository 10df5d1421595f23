#!/usr/bin/env python3
"""
Exception Analyzer
===================
Infer the error responses a handler can produce by reading its body.

Walks every statement of the handler (branches, loops, try/with blocks and
nested functions included) and collects:
- raise X(...) / raise X / raise pkg.X(...) with a statically known type
- abort(404) style helpers (flask, werkzeug, quart)
- HTTPException(status_code=409) from starlette / fastapi / werkzeug
- get_object_or_404(...) and .get_or_404() / .first_or_404() lookups
- exceptions documented in the docstring (@throws tag or "Raises:" section)

Short names are qualified through the module's import statements, so
`from werkzeug.exceptions import NotFound` followed by `raise NotFound()`
maps to 404. Unrecognized types are ignored rather than defaulted.

The analysis is over-approximate: every visible raise counts, reachable or
not. Results are deduplicated by status code in first-seen order.
"""

import ast
import copy
import logging
import re
from http import HTTPStatus
from typing import Dict, Any, Iterator, List, Optional, Tuple

from pipeline.context import AnalysisContext
from pipeline.contracts import ResponseExtractor
from pipeline.results import ResponseResult
from schemas.annotations import AnnotationParser
from .docstring_parser import DocstringParser
from .status_codes import describe, error_response

logger = logging.getLogger("api_docs.extractors.exception_analyzer")

_STATUS_CONSTANT = re.compile(r'^HTTP_(\d{3})(?:_|$)')


class ExceptionAnalyzer(ResponseExtractor):
    """
    AST-based error response extractor.

    Usage:
        analyzer = ExceptionAnalyzer(error_status_map={"app.errors.Locked": 423})
        responses = analyzer.extract_responses(context)
        [r.status_code for r in responses]  # [404, 403]
    """

    # Fully qualified exception type → (status code, description)
    ERROR_STATUS_MAP: Dict[str, Tuple[int, str]] = {
        # werkzeug / flask
        'werkzeug.exceptions.BadRequest': (400, 'Bad Request'),
        'werkzeug.exceptions.Unauthorized': (401, 'Unauthorized'),
        'werkzeug.exceptions.Forbidden': (403, 'Forbidden'),
        'werkzeug.exceptions.NotFound': (404, 'Not Found'),
        'werkzeug.exceptions.MethodNotAllowed': (405, 'Method Not Allowed'),
        'werkzeug.exceptions.Conflict': (409, 'Conflict'),
        'werkzeug.exceptions.Gone': (410, 'Gone'),
        'werkzeug.exceptions.UnprocessableEntity': (422, 'Unprocessable Entity'),
        'werkzeug.exceptions.TooManyRequests': (429, 'Too Many Requests'),
        'werkzeug.exceptions.InternalServerError': (500, 'Internal Server Error'),
        'werkzeug.exceptions.ServiceUnavailable': (503, 'Service Unavailable'),

        # django
        'django.http.Http404': (404, 'Not Found'),
        'django.http.response.Http404': (404, 'Not Found'),
        'django.core.exceptions.PermissionDenied': (403, 'Forbidden'),
        'django.core.exceptions.ObjectDoesNotExist': (404, 'Not Found'),
        'django.core.exceptions.ValidationError': (400, 'Bad Request'),
        'django.core.exceptions.SuspiciousOperation': (400, 'Bad Request'),
        'django.core.exceptions.BadRequest': (400, 'Bad Request'),

        # django rest framework
        'rest_framework.exceptions.ValidationError': (400, 'Bad Request'),
        'rest_framework.exceptions.ParseError': (400, 'Bad Request'),
        'rest_framework.exceptions.AuthenticationFailed': (401, 'Unauthorized'),
        'rest_framework.exceptions.NotAuthenticated': (401, 'Unauthorized'),
        'rest_framework.exceptions.PermissionDenied': (403, 'Forbidden'),
        'rest_framework.exceptions.NotFound': (404, 'Not Found'),
        'rest_framework.exceptions.MethodNotAllowed': (405, 'Method Not Allowed'),
        'rest_framework.exceptions.Throttled': (429, 'Too Many Requests'),

        # data layer
        'sqlalchemy.exc.NoResultFound': (404, 'Not Found'),
        'sqlalchemy.orm.exc.NoResultFound': (404, 'Not Found'),
        'pydantic.ValidationError': (422, 'Unprocessable Entity'),
        'pydantic_core.ValidationError': (422, 'Unprocessable Entity'),
        'fastapi.exceptions.RequestValidationError': (422, 'Unprocessable Entity'),
        'marshmallow.ValidationError': (400, 'Bad Request'),
        'marshmallow.exceptions.ValidationError': (400, 'Bad Request'),

        # builtins commonly mapped by error handlers
        'PermissionError': (403, 'Forbidden'),
    }

    # Exceptions whose status code is passed as an argument
    STATUS_EXCEPTIONS = {
        'fastapi.HTTPException',
        'fastapi.exceptions.HTTPException',
        'starlette.exceptions.HTTPException',
        'werkzeug.exceptions.HTTPException',
    }

    # abort-style helpers: first argument is the status code
    ABORT_FUNCTIONS = {
        'flask.abort',
        'werkzeug.exceptions.abort',
        'quart.abort',
    }

    # Lookup helpers that raise 404 when nothing matches
    NOT_FOUND_FUNCTIONS = {
        'django.shortcuts.get_object_or_404',
        'django.shortcuts.get_list_or_404',
        'flask.helpers.get_or_404',
    }
    NOT_FOUND_METHODS = {'get_or_404', 'first_or_404', 'one_or_404'}

    def __init__(self, error_status_map: Optional[Dict[str, Any]] = None, registry=None,
                 include_documented: bool = True):
        """
        Args:
            error_status_map: Extra type → status (or (status, description)) entries
            registry: PluginRegistry consulted for ExceptionSchemaProvider plugins
            include_documented: Also report exceptions listed in the docstring
        """
        self.error_map = dict(self.ERROR_STATUS_MAP)
        for type_name, entry in (error_status_map or {}).items():
            self.error_map[type_name] = self._normalize_entry(entry)
        self.registry = registry
        self.include_documented = include_documented

    @staticmethod
    def _normalize_entry(entry: Any) -> Tuple[int, str]:
        if isinstance(entry, int):
            return (entry, describe(entry))
        if isinstance(entry, dict):
            code = int(entry['status'])
            return (code, entry.get('description') or describe(code))
        code, description = entry
        return (int(code), description or describe(int(code)))

    def extract_responses(self, context: AnalysisContext) -> List[ResponseResult]:
        """
        Collect error responses reachable through any raise in the handler.

        Returns an empty list when the context has no AST.
        """
        if not context.has_ast():
            return []

        module = context.source_module
        found: Dict[int, ResponseResult] = {}

        def add(response: Optional[ResponseResult]):
            if response is not None and response.status_code not in found:
                found[response.status_code] = response

        for node in self._walk_body(context.ast_node):
            if isinstance(node, ast.Raise) and node.exc is not None:
                add(self._from_raise(node.exc, module, context))
            elif isinstance(node, ast.Call):
                add(self._from_call(node, module, context))

        if self.include_documented:
            for type_name, description in self._documented_raises(context.ast_node):
                response = self._from_type(self._qualify(type_name, module), module, context)
                if response is not None and description and response.status_code not in found:
                    response.description = description
                add(response)

        if found:
            logger.debug(f"{context.route}: error responses {sorted(found)}")
        return list(found.values())

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    @staticmethod
    def _walk_body(handler: ast.AST) -> Iterator[ast.AST]:
        """Pre-order walk of the handler body in source order."""
        stack = list(reversed(getattr(handler, 'body', [])))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(list(ast.iter_child_nodes(node))))

    def _from_raise(self, exc: ast.expr, module, context: AnalysisContext) -> Optional[ResponseResult]:
        call = exc if isinstance(exc, ast.Call) else None
        target = exc.func if call is not None else exc

        dotted = dotted_name(target)
        if dotted is None:
            return None
        type_name = self._qualify(dotted, module)

        if type_name in self.STATUS_EXCEPTIONS:
            if call is None:
                return None
            code = self._status_argument(call, keyword='status_code', position=0)
            if code is None:
                code = self._status_argument(call, keyword='code', position=0)
            if code is None:
                return None
            return self._response(code, self._string_keyword(call, 'detail') or describe(code),
                                  context, type_name)

        return self._from_type(type_name, module, context)

    def _from_call(self, call: ast.Call, module, context: AnalysisContext) -> Optional[ResponseResult]:
        if isinstance(call.func, ast.Attribute) and call.func.attr in self.NOT_FOUND_METHODS:
            return self._response(404, describe(404), context, call.func.attr)

        dotted = dotted_name(call.func)
        if dotted is None:
            return None
        function_name = self._qualify(dotted, module)

        if function_name in self.NOT_FOUND_FUNCTIONS:
            return self._response(404, describe(404), context, function_name)

        if function_name in self.ABORT_FUNCTIONS:
            code = self._status_argument(call, keyword='code', position=0)
            if code is None:
                return None
            description = self._string_keyword(call, 'description')
            if description is None and len(call.args) > 1:
                description = _string_literal(call.args[1])
            return self._response(code, description or describe(code), context, function_name)

        return None

    def _from_type(self, type_name: str, module, context: AnalysisContext,
                   visited: Optional[set] = None) -> Optional[ResponseResult]:
        if self.registry is not None:
            provider = self.registry.exception_provider_for(type_name)
            if provider is not None:
                response = copy.copy(provider.get_response(type_name))
                response.source = response.source or type_name
                return response

        if type_name in self.error_map:
            code, description = self.error_map[type_name]
            return self._response(code, description, context, type_name)

        return self._from_local_class(type_name, module, context, visited or set())

    def _from_local_class(self, type_name: str, module, context: AnalysisContext,
                          visited: set) -> Optional[ResponseResult]:
        """Map an exception class defined in the handler's own module."""
        if module is None or type_name in visited:
            return None
        visited.add(type_name)

        short_name = type_name.rsplit('.', 1)[-1]
        prefix = f"{module.module_name}." if module.module_name else ''
        if type_name not in (short_name, prefix + short_name):
            return None

        class_node = module.classes.get(short_name)
        if class_node is None:
            return None

        code = _class_status_attribute(class_node)
        if code is not None:
            return self._response(code, describe(code), context, type_name)

        for base in class_node.bases:
            base_name = dotted_name(base)
            if base_name is None:
                continue
            response = self._from_type(self._qualify(base_name, module), module, context, visited)
            if response is not None:
                response.source = type_name
                return response
        return None

    @staticmethod
    def _documented_raises(handler: ast.AST) -> List[Tuple[str, Optional[str]]]:
        docstring = ast.get_docstring(handler)
        if not docstring:
            return []
        documented = list(AnnotationParser.parse(docstring).throws)
        documented += DocstringParser.parse_docstring(docstring).get('raises', [])
        return documented

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _qualify(dotted: str, module) -> str:
        return module.qualify(dotted) if module is not None else dotted

    @staticmethod
    def _response(code: int, description: str, context: AnalysisContext, source: str) -> Optional[ResponseResult]:
        if not 100 <= code <= 599:
            logger.debug(f"Ignoring out-of-range status {code} from {source}")
            return None
        return error_response(code, context, description=description, source=source)

    @staticmethod
    def _status_argument(call: ast.Call, keyword: str, position: int) -> Optional[int]:
        for kw in call.keywords:
            if kw.arg == keyword:
                return status_literal(kw.value)
        if len(call.args) > position:
            return status_literal(call.args[position])
        return None

    @staticmethod
    def _string_keyword(call: ast.Call, keyword: str) -> Optional[str]:
        for kw in call.keywords:
            if kw.arg == keyword:
                return _string_literal(kw.value)
        return None


def dotted_name(node: ast.AST) -> Optional[str]:
    """Render Name / Attribute chains as "a.b.c" (None for anything else)."""
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        parent = dotted_name(node.value)
        return f"{parent}.{node.attr}" if parent else None
    return None


def status_literal(node: ast.AST) -> Optional[int]:
    """
    Read a status code from a literal expression.

    Accepts 404, status.HTTP_404_NOT_FOUND and HTTPStatus.NOT_FOUND.
    """
    if isinstance(node, ast.Constant) and isinstance(node.value, int) and not isinstance(node.value, bool):
        return node.value

    name = dotted_name(node)
    if name is None:
        return None
    attr = name.rsplit('.', 1)[-1]

    match = _STATUS_CONSTANT.match(attr)
    if match:
        return int(match.group(1))

    if name.startswith('HTTPStatus.') or name.startswith('http.HTTPStatus.'):
        try:
            return HTTPStatus[attr].value
        except KeyError:
            return None
    return None


def _string_literal(node: ast.AST) -> Optional[str]:
    if isinstance(node, ast.Constant) and isinstance(node.value, str):
        return node.value
    return None


def _class_status_attribute(class_node: ast.ClassDef) -> Optional[int]:
    for statement in class_node.body:
        if isinstance(statement, ast.Assign):
            targets = [t.id for t in statement.targets if isinstance(t, ast.Name)]
        elif isinstance(statement, ast.AnnAssign) and isinstance(statement.target, ast.Name):
            targets = [statement.target.id]
        else:
            continue
        if any(t in ('code', 'status_code') for t in targets) and statement.value is not None:
            return status_literal(statement.value)
    return None
