#!/usr/bin/env python3
"""
Security Detection
===================
Detect authentication requirements from handler decorators and route
middleware using AST.

Recognizes common auth decorators:
- @jwt_required → bearerAuth
- @login_required → cookieAuth
- @require_api_key → apiKeyAuth
- @require_oauth("profile") → oauth2 with scopes
- @permission_required("admin") → permission (used for 403 responses)
"""

import ast
import logging
from typing import Dict, Any, List, Optional, Tuple

from pipeline.context import AnalysisContext
from pipeline.contracts import SecuritySchemeDetector
from pipeline.results import SecurityRequirement

logger = logging.getLogger("api_docs.extractors.security")

BEARER_SCHEME = {'type': 'http', 'scheme': 'bearer', 'bearerFormat': 'JWT'}
COOKIE_SCHEME = {'type': 'apiKey', 'in': 'cookie', 'name': 'sessionid'}
API_KEY_SCHEME = {'type': 'apiKey', 'in': 'header', 'name': 'X-API-Key'}
BASIC_SCHEME = {'type': 'http', 'scheme': 'basic'}
OAUTH2_SCHEME = {
    'type': 'oauth2',
    'flows': {
        'clientCredentials': {'tokenUrl': '/oauth/token', 'scopes': {}},
    },
}

# Route middleware names that require an authenticated caller
AUTH_MIDDLEWARE = {
    'auth', 'authenticated', 'login_required', 'jwt', 'jwt_required', 'jwt.auth',
    'token_auth', 'auth.basic', 'auth.apikey', 'apikey', 'api_key',
    'IsAuthenticated', 'rest_framework.permissions.IsAuthenticated',
}
AUTH_MIDDLEWARE_PREFIXES = ('auth:', 'jwt:')


def is_auth_middleware(name: str) -> bool:
    return name in AUTH_MIDDLEWARE or name.startswith(AUTH_MIDDLEWARE_PREFIXES)


def decorator_name(decorator: ast.expr) -> Optional[str]:
    """Extract the final name of a decorator (@x, @x(), @mod.x, @mod.x())."""
    if isinstance(decorator, ast.Call):
        decorator = decorator.func
    if isinstance(decorator, ast.Name):
        return decorator.id
    if isinstance(decorator, ast.Attribute):
        return decorator.attr
    return None


def decorator_arguments(decorator: ast.expr) -> List[str]:
    """String literal positional arguments of a decorator call."""
    if not isinstance(decorator, ast.Call):
        return []
    values = []
    for arg in decorator.args:
        if isinstance(arg, ast.Constant) and isinstance(arg.value, str):
            values.append(arg.value)
        elif isinstance(arg, (ast.List, ast.Tuple)):
            values.extend(e.value for e in arg.elts
                          if isinstance(e, ast.Constant) and isinstance(e.value, str))
    return values


def handler_decorators(context: AnalysisContext) -> List[ast.expr]:
    """Decorators of the handler and of its enclosing controller class."""
    if not context.has_ast():
        return []

    decorators = list(context.ast_node.decorator_list)

    module = context.source_module
    class_name = context.metadata.get('class_name')
    if module is not None and class_name and class_name in module.classes:
        decorators.extend(module.classes[class_name].decorator_list)

    return decorators


class DecoratorSecurityDetector(SecuritySchemeDetector):
    """
    Map auth decorators to OpenAPI security schemes.

    Usage:
        detector = DecoratorSecurityDetector()
        requirement = detector.detect(context)
        requirement.to_dict()  # {"bearerAuth": []}
    """

    # Decorator name → (scheme name, scheme definition)
    AUTH_PATTERNS: Dict[str, Tuple[str, Dict[str, Any]]] = {
        # JWT / Bearer token
        'jwt_required': ('bearerAuth', BEARER_SCHEME),
        'jwt': ('bearerAuth', BEARER_SCHEME),
        'requires_jwt': ('bearerAuth', BEARER_SCHEME),
        'token_required': ('bearerAuth', BEARER_SCHEME),
        'protected': ('bearerAuth', BEARER_SCHEME),

        # Session / Cookie
        'login_required': ('cookieAuth', COOKIE_SCHEME),
        'auth_required': ('cookieAuth', COOKIE_SCHEME),
        'authenticated': ('cookieAuth', COOKIE_SCHEME),

        # API Key
        'api_key_required': ('apiKeyAuth', API_KEY_SCHEME),
        'require_api_key': ('apiKeyAuth', API_KEY_SCHEME),
        'apikey': ('apiKeyAuth', API_KEY_SCHEME),

        # OAuth2
        'oauth_required': ('oauth2', OAUTH2_SCHEME),
        'require_oauth': ('oauth2', OAUTH2_SCHEME),
        'oauth2': ('oauth2', OAUTH2_SCHEME),

        # Basic Auth
        'basic_auth': ('basicAuth', BASIC_SCHEME),
        'http_basic': ('basicAuth', BASIC_SCHEME),
        'basic_auth_required': ('basicAuth', BASIC_SCHEME),
    }

    # Decorators that carry a required permission or role
    PERMISSION_PATTERNS = ['permission', 'permissions', 'role', 'roles', 'admin', 'scope', 'scopes', 'can', 'ability']

    def detect(self, context: AnalysisContext) -> Optional[SecurityRequirement]:
        """First recognized auth decorator (handler before class), or None."""
        for decorator in handler_decorators(context):
            name = decorator_name(decorator)
            if name not in self.AUTH_PATTERNS:
                continue

            scheme_name, scheme = self.AUTH_PATTERNS[name]
            scopes = decorator_arguments(decorator) if scheme['type'] == 'oauth2' else []
            logger.debug(f"Detected auth decorator: @{name} → {scheme_name}")
            return SecurityRequirement(scheme_name, dict(scheme), scopes)

        return None

    @staticmethod
    def has_auth_decorator(context: AnalysisContext) -> bool:
        return any(
            decorator_name(d) in DecoratorSecurityDetector.AUTH_PATTERNS
            for d in handler_decorators(context)
        )

    @staticmethod
    def permissions(context: AnalysisContext) -> List[str]:
        """Permissions named by permission/role decorators (e.g. @permission_required("admin"))."""
        found = []
        for decorator in handler_decorators(context):
            name = decorator_name(decorator)
            if not name or name in DecoratorSecurityDetector.AUTH_PATTERNS:
                continue
            lowered = name.lower()
            words = lowered.split('_')
            if any(pattern in words for pattern in DecoratorSecurityDetector.PERMISSION_PATTERNS):
                args = decorator_arguments(decorator)
                found.extend(args or [name])
        return found
