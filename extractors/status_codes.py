#!/usr/bin/env python3
"""
Status Codes
=============
Standard HTTP status descriptions and the shared error-response builder.
"""

import logging
from typing import Dict, Any, Optional

from pipeline.context import AnalysisContext
from pipeline.results import ResponseResult
from schemas.resolver import error_message_schema

logger = logging.getLogger("api_docs.extractors.status_codes")

# RFC 9110 reason phrases (+ common extensions)
STANDARD_CODES = {
    200: "OK",
    201: "Created",
    202: "Accepted",
    204: "No Content",
    206: "Partial Content",
    301: "Moved Permanently",
    302: "Found",
    304: "Not Modified",
    400: "Bad Request",
    401: "Unauthorized",
    402: "Payment Required",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    406: "Not Acceptable",
    408: "Request Timeout",
    409: "Conflict",
    410: "Gone",
    412: "Precondition Failed",
    413: "Content Too Large",
    415: "Unsupported Media Type",
    422: "Unprocessable Entity",
    423: "Locked",
    428: "Precondition Required",
    429: "Too Many Requests",
    500: "Internal Server Error",
    501: "Not Implemented",
    502: "Bad Gateway",
    503: "Service Unavailable",
    504: "Gateway Timeout",
}


def describe(code: int) -> str:
    """Standard description for a status code ("Error" when unknown)."""
    return STANDARD_CODES.get(code, "Error")


def error_response(
    code: int,
    context: AnalysisContext,
    description: Optional[str] = None,
    source: Optional[str] = None,
    headers: Optional[Dict[str, Dict[str, Any]]] = None,
) -> ResponseResult:
    """
    Build an error response carrying the shared {"message": ...} body.

    The body is registered once as a component when the context carries a
    schema resolver and inlined otherwise.
    """
    if context.schemas is not None:
        schema = context.schemas.error_schema()
    else:
        schema = error_message_schema()

    return ResponseResult(
        status_code=code,
        description=description or describe(code),
        schema=schema,
        headers=dict(headers or {}),
        source=source,
    )
