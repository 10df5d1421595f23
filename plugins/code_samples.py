"""
Code Sample Plugin
===================
Adds `x-codeSamples` (cURL, Python requests, JavaScript fetch) to every
operation, with an example JSON body built from the request body schema.
"""

import json
import logging
import pprint
import re
from typing import Dict, Any, Optional, Sequence

from pipeline.context import AnalysisContext
from pipeline.contracts import OperationTransformer, Plugin
from pipeline.results import Operation
from schemas.schema import SchemaResult

logger = logging.getLogger("api_docs.plugins.code_samples")

LANGUAGES = ('bash', 'python', 'javascript')
LABELS = {
    'bash': ('Shell', 'cURL'),
    'python': ('Python', 'Python'),
    'javascript': ('JavaScript', 'JavaScript'),
}

# Placeholder values by schema type
TYPE_EXAMPLES = {
    'string': 'string',
    'integer': 1,
    'number': 0.0,
    'boolean': True,
}

MAX_EXAMPLE_DEPTH = 4


class CodeSamplePlugin(Plugin, OperationTransformer):
    """
    Usage:
        registry.register_plugin(CodeSamplePlugin("https://api.example.com"))
    """

    def __init__(self, base_url: Optional[str] = None, languages: Optional[Sequence[str]] = None):
        self.base_url = base_url
        self.languages = [lang for lang in (languages or LANGUAGES) if lang in LABELS]

    @property
    def name(self) -> str:
        return "code-samples"

    @property
    def priority(self) -> int:
        return 10

    def boot(self, registry) -> None:
        registry.register(self, priority=self.priority)

    def transform(self, operation: Operation, context: AnalysisContext) -> Operation:
        method = context.route.http_method
        path = re.sub(r'\{(\w+)\}', r':\1', context.route.openapi_path)
        url = (self.base_url or '{baseUrl}').rstrip('/') + path

        has_auth = bool(operation.security)
        body = None
        content_type = None
        if operation.request_body is not None:
            content_type = operation.request_body.content_type
            example = self.example_for(operation.request_body.schema, context)
            if example not in (None, {}, []):
                body = example

        samples = []
        for lang in self.languages:
            generate = getattr(self, f"_{lang}")
            lang_name, label = LABELS[lang]
            samples.append({
                'lang': lang_name,
                'label': label,
                'source': generate(method, url, body, content_type, has_auth),
            })

        if samples:
            operation.extensions['x-codeSamples'] = samples
        return operation

    def example_for(self, schema: Optional[SchemaResult], context: AnalysisContext, depth: int = 0) -> Any:
        """Example value built from a schema; refs are followed through the components table."""
        if schema is None or depth > MAX_EXAMPLE_DEPTH:
            return None

        if schema.is_ref:
            components = context.schemas.components if context.schemas is not None else None
            target = components.get(schema.ref_name) if components is not None else None
            return self.example_for(target, context, depth)

        if schema.example is not None:
            return schema.example
        if schema.enum:
            return schema.enum[0]
        if schema.one_of:
            return self.example_for(schema.one_of[0], context, depth + 1)
        if schema.type == 'object' and schema.properties:
            return {
                name: self.example_for(prop, context, depth + 1)
                for name, prop in schema.properties.items()
            }
        if schema.type == 'array':
            item = self.example_for(schema.items, context, depth + 1)
            return [item] if item is not None else []
        return TYPE_EXAMPLES.get(schema.type)

    @staticmethod
    def _bash(method: str, url: str, body: Any, content_type: Optional[str], has_auth: bool) -> str:
        parts = [f"curl -X {method}", f"  '{url}'"]
        if has_auth:
            parts.append("  -H 'Authorization: Bearer YOUR_API_TOKEN'")
        if content_type:
            parts.append(f"  -H 'Content-Type: {content_type}'")
        if body is not None:
            parts.append(f"  -d '{json.dumps(body, indent=2)}'")
        return " \\\n".join(parts)

    @staticmethod
    def _python(method: str, url: str, body: Any, content_type: Optional[str], has_auth: bool) -> str:
        lines = ['import requests', '']
        headers = _headers(content_type, has_auth)
        args = [f"'{url}'"]

        if headers:
            lines.append('headers = {')
            lines.append(',\n'.join(f"    '{k}': '{v}'" for k, v in headers.items()))
            lines.extend(['}', ''])
            args.append('headers=headers')
        if body is not None:
            lines.extend([f"payload = {pprint.pformat(body, sort_dicts=False)}", ''])
            args.append('json=payload')

        lines.append(f"response = requests.{method.lower()}({', '.join(args)})")
        lines.append('data = response.json()')
        return '\n'.join(lines)

    @staticmethod
    def _javascript(method: str, url: str, body: Any, content_type: Optional[str], has_auth: bool) -> str:
        lines = [f"const response = await fetch('{url}', {{", f"  method: '{method}',"]
        headers = _headers(content_type, has_auth)

        if headers:
            lines.append('  headers: {')
            lines.append(',\n'.join(f"    '{k}': '{v}'" for k, v in headers.items()))
            lines.append('  },')
        if body is not None:
            lines.append(f"  body: JSON.stringify({json.dumps(body, indent=2)}),")

        lines.extend(['});', '', 'const data = await response.json();'])
        return '\n'.join(lines)


def _headers(content_type: Optional[str], has_auth: bool) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    if has_auth:
        headers['Authorization'] = 'Bearer YOUR_API_TOKEN'
    if content_type:
        headers['Content-Type'] = content_type
    return headers

