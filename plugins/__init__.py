"""
Bundled plugins.

- BearerAuthPlugin: bearer token security from auth middleware
- ApiKeyAuthPlugin: header API key security from API-key middleware
- CodeSamplePlugin: x-codeSamples on every operation
"""

from .api_key_auth import ApiKeyAuthPlugin
from .bearer_auth import BearerAuthPlugin
from .code_samples import CodeSamplePlugin

__all__ = ['ApiKeyAuthPlugin', 'BearerAuthPlugin', 'CodeSamplePlugin']
