#!/usr/bin/env python3
"""
Request Body Extraction
========================
Infer the request body from the handler signature.

The first parameter annotated with a model-like class (pydantic model,
dataclass, annotated class) that is not a path parameter becomes the JSON
request body. Its schema is registered as a component and referenced.
"""

import enum
import inspect
import logging
import typing
from typing import Dict, Any, Optional, Tuple

from pipeline.context import AnalysisContext
from pipeline.contracts import RequestBodyExtractor
from pipeline.results import RequestBodyResult
from schemas.type_mapper import UnionType, is_model_class

logger = logging.getLogger("api_docs.extractors.request_body")

BODY_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# Parameter names never treated as a body
SKIPPED_PARAMETERS = {'self', 'cls', 'request', 'req', 'context', 'ctx', 'return'}


def handler_type_hints(context: AnalysisContext) -> Dict[str, Any]:
    """Resolved annotations of the handler callable ({} when unavailable)."""
    handler = context.handler
    if handler is None:
        return {}
    try:
        return typing.get_type_hints(handler)
    except (NameError, TypeError, AttributeError) as e:
        logger.debug(f"Cannot resolve type hints for {context.route}: {e}")
        return dict(getattr(handler, '__annotations__', {}) or {})


def find_body_parameter(context: AnalysisContext) -> Optional[Tuple[str, type]]:
    """Name and model class of the handler's body parameter, if any."""
    hints = handler_type_hints(context)
    if not hints:
        return None

    try:
        order = list(inspect.signature(context.handler).parameters)
    except (TypeError, ValueError):
        order = list(hints)

    path_params = set(context.route.path_parameters)
    for name in order:
        if name in SKIPPED_PARAMETERS or name in path_params or name not in hints:
            continue
        annotation = _unwrap_optional(hints[name])
        if is_model_class(annotation) and not _is_enum(annotation):
            return name, annotation
    return None


def _unwrap_optional(annotation: Any) -> Any:
    origin = typing.get_origin(annotation)
    if origin is typing.Annotated:
        return _unwrap_optional(typing.get_args(annotation)[0])
    if origin is typing.Union or (UnionType is not None and origin is UnionType):
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _is_enum(annotation: Any) -> bool:
    return isinstance(annotation, type) and issubclass(annotation, enum.Enum)


class ModelRequestBodyExtractor(RequestBodyExtractor):
    """
    Request body from a model-typed handler parameter.

    Example:
        def create_user(payload: UserCreate) -> User: ...

        → requestBody: {"$ref": "#/components/schemas/UserCreate"}
    """

    def extract_request_body(self, context: AnalysisContext) -> Optional[RequestBodyResult]:
        if context.route.http_method not in BODY_METHODS or context.schemas is None:
            return None

        found = find_body_parameter(context)
        if found is None:
            return None

        name, model = found
        schema = context.schemas.resolve_class(model)
        logger.debug(f"{context.route}: request body {model.__name__} from parameter '{name}'")

        return RequestBodyResult(
            schema=schema,
            description=context.schemas.class_summary(model),
            source=self.__class__.__name__,
        )
