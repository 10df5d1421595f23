#!/usr/bin/env python3
"""
Success Response Extraction
============================
Derive the success response from the handler's return annotation.

- `-> User` / `-> list[User]` → 200 with the model schema (201 for POST)
- `-> None` → 204 No Content
- `status_code=202` on the route decorator overrides the default code
"""

import ast
import logging
from typing import List, Optional

from pipeline.context import AnalysisContext
from pipeline.contracts import ResponseExtractor
from pipeline.results import ResponseResult
from .exception_analyzer import status_literal
from .request_body import handler_type_hints
from .status_codes import describe

logger = logging.getLogger("api_docs.extractors.responses")

DEFAULT_SUCCESS_CODES = {
    "POST": 201,
}

# Return types that are transport objects, not documented payloads
OPAQUE_RETURN_SUFFIXES = ('Response', 'Redirect')


class ReturnTypeResponseExtractor(ResponseExtractor):
    """Success response from the return annotation (reflective, then AST)."""

    def extract_responses(self, context: AnalysisContext) -> List[ResponseResult]:
        hints = handler_type_hints(context)
        has_return = 'return' in hints
        return_type = hints.get('return')

        if not has_return and context.has_ast() and context.ast_node.returns is not None:
            node = context.ast_node.returns
            if isinstance(node, ast.Constant) and node.value is None:
                has_return, return_type = True, None

        decorator_code = self._decorator_status(context)

        if not has_return:
            if decorator_code is None:
                return []
            return [ResponseResult(decorator_code, describe(decorator_code), source=self.__class__.__name__)]

        if return_type is None or return_type is type(None):
            code = decorator_code or 204
            return [ResponseResult(code, describe(code), source=self.__class__.__name__)]

        code = decorator_code or DEFAULT_SUCCESS_CODES.get(context.route.http_method, 200)
        schema = None
        if context.schemas is not None and not self._is_opaque(return_type):
            schema = context.schemas.resolve_type(return_type)
            if schema.is_untyped:
                schema = None

        return [ResponseResult(code, describe(code), schema=schema, source=self.__class__.__name__)]

    @staticmethod
    def _is_opaque(return_type) -> bool:
        name = getattr(return_type, '__name__', '')
        return isinstance(return_type, type) and name.endswith(OPAQUE_RETURN_SUFFIXES)

    @staticmethod
    def _decorator_status(context: AnalysisContext) -> Optional[int]:
        """status_code=... keyword on a route decorator (@app.post(..., status_code=201))."""
        if not context.has_ast():
            return None
        for decorator in context.ast_node.decorator_list:
            if not isinstance(decorator, ast.Call):
                continue
            for keyword in decorator.keywords:
                if keyword.arg == 'status_code':
                    code = status_literal(keyword.value)
                    if code is not None and 100 <= code <= 599:
                        return code
        return None
