#!/usr/bin/env python3
"""
Operation Metadata
===================
Transformers that fill tags, summary, description, operationId and the
deprecated flag.

HTTP methods have well-defined semantics, so a usable summary can be
derived from the method and route alone:
- GET /users → "List users"
- GET /users/{id} → "Get user details"
- POST /users → "Create user"
- PUT/PATCH /users/{id} → "Update user"
- DELETE /users/{id} → "Delete user"

Handler docstrings, when present, take precedence.
"""

import ast
import logging
import re
from typing import Optional

from pipeline.context import AnalysisContext
from pipeline.contracts import OperationTransformer
from pipeline.results import Operation
from schemas.annotations import AnnotationParser
from .docstring_parser import DocstringParser
from .security import decorator_name

logger = logging.getLogger("api_docs.extractors.metadata")

CONTROLLER_SUFFIXES = ('ViewSet', 'View', 'Controller', 'Resource', 'Handler', 'API', 'Api')
SKIPPED_SEGMENTS = {'api', 'v1', 'v2', 'v3', 'v4'}

SUMMARY_TEMPLATES = {
    "list": "List {plural}",
    "read": "Get {singular} details",
    "create": "Create {singular}",
    "update": "Update {singular}",
    "delete": "Delete {singular}",
}


def _is_placeholder(segment: str) -> bool:
    return any(char in segment for char in '{}<>:')


def extract_resource_from_route(route: str) -> str:
    """
    Last literal segment of a route.

    Examples:
        - /users → "users"
        - /api/v1/products/{id} → "products"
        - /users/{user_id}/posts → "posts"
    """
    for part in reversed(route.strip('/').split('/')):
        if part and not _is_placeholder(part) and part.lower() not in SKIPPED_SEGMENTS:
            return part
    return "resource"


def infer_crud_operation(method: str, route: str) -> str:
    """Return "create", "read", "list", "update", "delete", or "unknown"."""
    method = method.upper()
    last = route.rstrip('/').rsplit('/', 1)[-1]
    if method == "GET":
        return "read" if _is_placeholder(last) else "list"
    if method == "POST":
        return "create"
    if method in ("PUT", "PATCH"):
        return "update"
    if method == "DELETE":
        return "delete"
    return "unknown"


def _singular(word: str) -> str:
    if word.endswith('ies') and len(word) > 3:
        return word[:-3] + 'y'
    if word.endswith('ses') or word.endswith('xes'):
        return word[:-2]
    if word.endswith('s') and not word.endswith('ss'):
        return word[:-1]
    return word


class OperationMetadataTransformer(OperationTransformer):
    """Tags, summary and operationId inferred from the route and controller."""

    def transform(self, operation: Operation, context: AnalysisContext) -> Operation:
        route = context.route

        if not operation.tags:
            tag = self.infer_tag(context)
            if tag:
                operation.tags = [tag]

        if not operation.summary:
            operation.summary = self.infer_summary(route.http_method, route.openapi_path)

        if not operation.operation_id:
            operation.operation_id = self.operation_id(route.http_method, route.openapi_path)

        return operation

    @staticmethod
    def infer_tag(context: AnalysisContext) -> Optional[str]:
        controller = context.route.controller
        if controller:
            basename = re.split(r'[.:]', controller)[-1]
            for suffix in CONTROLLER_SUFFIXES:
                if basename.endswith(suffix) and len(basename) > len(suffix):
                    basename = basename[:-len(suffix)]
                    break
            if basename and basename[0].isupper():
                return basename

        for part in context.route.openapi_path.strip('/').split('/'):
            if part and not _is_placeholder(part) and part.lower() not in SKIPPED_SEGMENTS:
                return part.replace('-', ' ').replace('_', ' ').title()
        return None

    @staticmethod
    def infer_summary(method: str, path: str) -> Optional[str]:
        operation = infer_crud_operation(method, path)
        template = SUMMARY_TEMPLATES.get(operation)
        if template is None:
            return None
        resource = extract_resource_from_route(path).replace('-', ' ').replace('_', ' ')
        return template.format(plural=resource, singular=_singular(resource))

    @staticmethod
    def operation_id(method: str, path: str) -> str:
        """method.path.segments, e.g. "get.users.id" for GET /users/{id}."""
        parts = [re.sub(r'[{}]', '', p) for p in path.strip('/').split('/') if p]
        return '.'.join([method.lower()] + parts)


class DocstringTransformer(OperationTransformer):
    """Summary, description and deprecation from the handler docstring."""

    def transform(self, operation: Operation, context: AnalysisContext) -> Operation:
        if not context.has_ast():
            return operation

        docstring = ast.get_docstring(context.ast_node)
        parsed = DocstringParser.parse_docstring(docstring) if docstring else {}

        summary = parsed.get('summary')
        if summary:
            operation.summary = summary.rstrip('.')
        if parsed.get('description'):
            operation.description = parsed['description']

        tags = AnnotationParser.parse(docstring)
        deprecated_decorator = any(
            decorator_name(d) == 'deprecated' for d in context.ast_node.decorator_list
        )
        if parsed.get('deprecated') or tags.deprecated is not None or deprecated_decorator:
            operation.deprecated = True

        return operation
