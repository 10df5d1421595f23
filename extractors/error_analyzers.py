#!/usr/bin/env python3
"""
Route Error Analyzers
======================
Error responses implied by the shape of a route rather than by explicit
raises:

- 401 when the route requires authentication (middleware or decorator)
- 403 when it requires a permission, role or ability
- 404 when it has path parameters
- 422 when the handler accepts a validated request body
- 429 when it is rate limited
"""

import ast
import logging
import re
from typing import Dict, Any, List, Optional

from pipeline.context import AnalysisContext
from pipeline.contracts import ResponseExtractor
from pipeline.results import ResponseResult
from schemas.schema import SchemaResult
from .request_body import find_body_parameter
from .security import DecoratorSecurityDetector, decorator_arguments, decorator_name, is_auth_middleware
from .status_codes import error_response

logger = logging.getLogger("api_docs.extractors.error_analyzers")

VALIDATION_SCHEMA_NAME = "ValidationError"


class AuthenticationErrorExtractor(ResponseExtractor):
    """401 for routes behind authentication."""

    def extract_responses(self, context: AnalysisContext) -> List[ResponseResult]:
        guarded = any(is_auth_middleware(m) for m in context.route.middleware)
        if not guarded and not DecoratorSecurityDetector.has_auth_decorator(context):
            return []
        return [error_response(401, context, description="Unauthenticated", source=self.__class__.__name__)]


class AuthorizationErrorExtractor(ResponseExtractor):
    """403 for routes that check a permission, role or ability."""

    MIDDLEWARE_PREFIXES = ('can:', 'permission:', 'role:', 'roles:', 'ability:')

    # Calls that deny access when the check fails
    PERMISSION_CALLS = {'check_permissions', 'check_object_permissions', 'has_perm',
                        'has_perms', 'has_permission', 'authorize'}

    def extract_responses(self, context: AnalysisContext) -> List[ResponseResult]:
        abilities = [
            m.split(':', 1)[1] for m in context.route.middleware
            if m.startswith(self.MIDDLEWARE_PREFIXES)
        ]
        abilities += DecoratorSecurityDetector.permissions(context)

        if not abilities and not self._has_permission_call(context):
            return []

        description = "Forbidden"
        if abilities:
            description = f"Forbidden: requires {', '.join(dict.fromkeys(abilities))}"
        return [error_response(403, context, description=description, source=self.__class__.__name__)]

    def _has_permission_call(self, context: AnalysisContext) -> bool:
        if not context.has_ast():
            return False
        for statement in context.ast_node.body:
            for node in ast.walk(statement):
                if isinstance(node, ast.Call) and isinstance(node.func, ast.Attribute) \
                        and node.func.attr in self.PERMISSION_CALLS:
                    return True
        return False


class NotFoundErrorExtractor(ResponseExtractor):
    """404 for any route addressing a resource through path parameters."""

    def extract_responses(self, context: AnalysisContext) -> List[ResponseResult]:
        if not context.route.path_parameters:
            return []
        return [error_response(404, context, description="Not Found", source=self.__class__.__name__)]


class ValidationErrorExtractor(ResponseExtractor):
    """
    Validation failure response for handlers that validate input.

    422 for model-typed body parameters and explicit model validation,
    400 for serializer.is_valid(raise_exception=True).
    """

    MODEL_VALIDATION_CALLS = {'model_validate', 'model_validate_json', 'parse_obj', 'validate'}

    def extract_responses(self, context: AnalysisContext) -> List[ResponseResult]:
        code = None
        if find_body_parameter(context) is not None:
            code = 422
        elif context.has_ast():
            code = self._code_from_calls(context.ast_node)

        if code is None:
            return []

        return [ResponseResult(
            status_code=code,
            description="Validation Error",
            schema=self._schema(context),
            source=self.__class__.__name__,
        )]

    def _code_from_calls(self, handler: ast.AST) -> Optional[int]:
        for statement in handler.body:
            for node in ast.walk(statement):
                if not isinstance(node, ast.Call) or not isinstance(node.func, ast.Attribute):
                    continue
                if node.func.attr in self.MODEL_VALIDATION_CALLS:
                    return 422
                if node.func.attr == 'is_valid' and any(
                    kw.arg == 'raise_exception' and isinstance(kw.value, ast.Constant) and kw.value.value is True
                    for kw in node.keywords
                ):
                    return 400
        return None

    @staticmethod
    def _schema(context: AnalysisContext) -> SchemaResult:
        schema = SchemaResult.object(
            {
                'message': SchemaResult.string(description='Error message'),
                'errors': SchemaResult(
                    type='object',
                    description='Field errors keyed by field name',
                    additional_properties=SchemaResult.array(SchemaResult.string()),
                ),
            },
            required=['message', 'errors'],
        )
        if context.schemas is None:
            return schema
        return context.schemas.register(VALIDATION_SCHEMA_NAME, schema, source="builtin")


class RateLimitErrorExtractor(ResponseExtractor):
    """
    429 with rate-limit headers for throttled routes.

    Detects `throttle` / `throttle:60,1` / `ratelimit:100/m` middleware and
    `@limiter.limit("5 per minute")` / `@ratelimit(rate="5/m")` decorators.
    """

    DEFAULT_LIMIT = 60
    MIDDLEWARE_NAMES = ('throttle', 'ratelimit', 'rate_limit')
    DECORATOR_NAMES = {'limit', 'ratelimit', 'rate_limit', 'throttle'}

    def extract_responses(self, context: AnalysisContext) -> List[ResponseResult]:
        limit = self._limit_from_middleware(context)
        if limit is None:
            limit = self._limit_from_decorators(context)
        if limit is None:
            return []

        headers = {
            'Retry-After': self._header('Number of seconds until the rate limit resets.', 60),
            'X-RateLimit-Limit': self._header('Maximum number of requests allowed per period.', limit),
            'X-RateLimit-Remaining': self._header('Number of requests remaining in the current period.', 0),
        }
        return [error_response(
            429, context,
            description="Too many requests. Please try again later.",
            source=self.__class__.__name__,
            headers=headers,
        )]

    def _limit_from_middleware(self, context: AnalysisContext) -> Optional[int]:
        for middleware in context.route.middleware:
            name, _, params = middleware.partition(':')
            if name in self.MIDDLEWARE_NAMES:
                return _parse_limit(params) or self.DEFAULT_LIMIT
        return None

    def _limit_from_decorators(self, context: AnalysisContext) -> Optional[int]:
        if not context.has_ast():
            return None
        for decorator in context.ast_node.decorator_list:
            if decorator_name(decorator) not in self.DECORATOR_NAMES:
                continue
            rates = decorator_arguments(decorator)
            if isinstance(decorator, ast.Call):
                rates += [kw.value.value for kw in decorator.keywords
                          if kw.arg == 'rate' and isinstance(kw.value, ast.Constant)
                          and isinstance(kw.value.value, str)]
            for rate in rates:
                limit = _parse_limit(rate)
                if limit:
                    return limit
            return self.DEFAULT_LIMIT
        return None

    @staticmethod
    def _header(description: str, example: int) -> Dict[str, Any]:
        return {
            'description': description,
            'schema': {'type': 'integer'},
            'example': example,
        }


def _parse_limit(value: str) -> Optional[int]:
    """Leading request count of "60,1", "100/m" or "5 per minute"."""
    match = re.match(r'^\s*(\d+)', value or '')
    return int(match.group(1)) if match else None
