#!/usr/bin/env python3
"""
Core Extractors
================
Static analyzers that derive operation facets from a route and its handler
source without executing it.

**Parameters:**
- Path parameters (route pattern + handler annotations)
- request.args / request.GET / Query(...) usage
- @query docstring tags, pagination calls

**Bodies and responses:**
- Model-typed handler arguments → request body
- Return annotations → success response
- Raised exceptions (AST) → error responses
- Route shape (auth, permissions, path params, validation, throttling) → error responses

**Security and metadata:**
- Auth decorators → security schemes
- Tags / summary / operationId / docstring transformers
"""

from .status_codes import STANDARD_CODES, describe, error_response
from .docstring_parser import DocstringParser
from .exception_analyzer import ExceptionAnalyzer, dotted_name, status_literal
from .error_analyzers import (
    AuthenticationErrorExtractor,
    AuthorizationErrorExtractor,
    NotFoundErrorExtractor,
    ValidationErrorExtractor,
    RateLimitErrorExtractor,
)
from .parameters import (
    PathParameterExtractor,
    RequestArgsParameterExtractor,
    DocstringParameterExtractor,
    PaginationParameterExtractor,
)
from .request_body import ModelRequestBodyExtractor, find_body_parameter, handler_type_hints
from .responses import ReturnTypeResponseExtractor
from .security import DecoratorSecurityDetector, is_auth_middleware
from .metadata import OperationMetadataTransformer, DocstringTransformer

__all__ = [
    'STANDARD_CODES',
    'describe',
    'error_response',
    'DocstringParser',
    'ExceptionAnalyzer',
    'dotted_name',
    'status_literal',
    'AuthenticationErrorExtractor',
    'AuthorizationErrorExtractor',
    'NotFoundErrorExtractor',
    'ValidationErrorExtractor',
    'RateLimitErrorExtractor',
    'PathParameterExtractor',
    'RequestArgsParameterExtractor',
    'DocstringParameterExtractor',
    'PaginationParameterExtractor',
    'ModelRequestBodyExtractor',
    'find_body_parameter',
    'handler_type_hints',
    'ReturnTypeResponseExtractor',
    'DecoratorSecurityDetector',
    'is_auth_middleware',
    'OperationMetadataTransformer',
    'DocstringTransformer',
]
