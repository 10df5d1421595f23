"""
API Key Auth Plugin
====================
Documents an `apiKey` header scheme for routes behind API-key middleware.
"""

import logging
from typing import Iterable, Optional

from pipeline.context import AnalysisContext
from pipeline.contracts import Plugin, SecuritySchemeDetector
from pipeline.results import SecurityRequirement

logger = logging.getLogger("api_docs.plugins.api_key_auth")

DEFAULT_MIDDLEWARE = ('auth.apikey', 'apikey', 'auth.api-key', 'auth.api_key', 'api-key', 'api_key')


class ApiKeyAuthPlugin(Plugin, SecuritySchemeDetector):
    """Header API key detected from configurable middleware names."""

    def __init__(self, header: str = "X-API-Key", middleware: Optional[Iterable[str]] = None,
                 scheme_name: str = "apiKeyAuth", description: str = "API key passed via request header"):
        self.header = header
        self.middleware = set(middleware or DEFAULT_MIDDLEWARE)
        self.scheme_name = scheme_name
        self.description = description

    @property
    def name(self) -> str:
        return "api-key-auth"

    @property
    def priority(self) -> int:
        return 45

    def boot(self, registry) -> None:
        if not self.header:
            raise ValueError("API key header name must not be empty")
        registry.register(self, priority=self.priority)

    def detect(self, context: AnalysisContext) -> Optional[SecurityRequirement]:
        if not any(m in self.middleware for m in context.route.middleware):
            return None
        return SecurityRequirement(self.scheme_name, {
            'type': 'apiKey',
            'in': 'header',
            'name': self.header,
            'description': self.description,
        })
