"""
Bearer Auth Plugin
===================
Documents `bearerAuth` (HTTP bearer, JWT) for routes behind token-auth
middleware, with OAuth-style scopes taken from scope/ability middleware.
"""

import logging
from typing import List, Optional

from pipeline.context import AnalysisContext
from pipeline.contracts import Plugin, SecuritySchemeDetector
from pipeline.results import SecurityRequirement

logger = logging.getLogger("api_docs.plugins.bearer_auth")

BEARER_MIDDLEWARE = {'auth', 'jwt', 'jwt.auth', 'jwt.verify', 'jwt_required', 'token_auth'}
SCOPE_PREFIXES = ('scope:', 'scopes:', 'ability:', 'abilities:')


class BearerAuthPlugin(Plugin, SecuritySchemeDetector):
    """
    Usage:
        registry.register_plugin(BearerAuthPlugin())

    Route middleware ["auth:api", "scopes:read,write"] yields
    security [{"bearerAuth": ["read", "write"]}].
    """

    SCHEME_NAME = "bearerAuth"
    SCHEME = {'type': 'http', 'scheme': 'bearer', 'bearerFormat': 'JWT'}

    @property
    def name(self) -> str:
        return "bearer-auth"

    @property
    def priority(self) -> int:
        return 50

    def boot(self, registry) -> None:
        registry.register(self, priority=self.priority)

    def detect(self, context: AnalysisContext) -> Optional[SecurityRequirement]:
        middleware = context.route.middleware
        if not any(m in BEARER_MIDDLEWARE or m.startswith('auth:') for m in middleware):
            return None
        return SecurityRequirement(self.SCHEME_NAME, dict(self.SCHEME), self.scopes(middleware))

    @staticmethod
    def scopes(middleware) -> List[str]:
        found: List[str] = []
        for entry in middleware:
            if entry.startswith(SCOPE_PREFIXES):
                found.extend(s.strip() for s in entry.split(':', 1)[1].split(',') if s.strip())
        return list(dict.fromkeys(found))
