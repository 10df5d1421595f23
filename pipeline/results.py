#!/usr/bin/env python3
"""
Extractor Results
==================
Partial results produced by extractors and the per-route Operation they
merge into.
"""

import copy
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Tuple

from schemas.schema import SchemaResult

PARAMETER_LOCATIONS = ("query", "path", "header", "cookie")


@dataclass
class ParameterResult:
    """One operation parameter."""
    name: str
    location: str = "query"
    required: bool = False
    schema: SchemaResult = field(default_factory=SchemaResult.string)
    description: Optional[str] = None

    def __post_init__(self):
        if self.location not in PARAMETER_LOCATIONS:
            raise ValueError(f"Invalid parameter location: {self.location}")
        if self.location == "path":
            self.required = True

    @property
    def key(self) -> Tuple[str, str]:
        return (self.name, self.location)

    @classmethod
    def query(cls, name: str, schema: Optional[SchemaResult] = None, required: bool = False,
              description: Optional[str] = None) -> "ParameterResult":
        return cls(name, "query", required, schema or SchemaResult.string(), description)

    @classmethod
    def path(cls, name: str, schema: Optional[SchemaResult] = None,
             description: Optional[str] = None) -> "ParameterResult":
        return cls(name, "path", True, schema or SchemaResult.string(), description)

    @classmethod
    def header(cls, name: str, schema: Optional[SchemaResult] = None, required: bool = False,
               description: Optional[str] = None) -> "ParameterResult":
        return cls(name, "header", required, schema or SchemaResult.string(), description)

    def to_dict(self, openapi_version: str = "3.0.3") -> Dict[str, Any]:
        result = {
            "name": self.name,
            "in": self.location,
            "required": self.required,
        }
        if self.description:
            result["description"] = self.description
        result["schema"] = self.schema.to_dict(openapi_version)
        return result


@dataclass
class ResponseResult:
    """One response for a status code."""
    status_code: int
    description: str = ""
    schema: Optional[SchemaResult] = None
    content_type: str = "application/json"
    headers: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    source: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.status_code, int) or not 100 <= self.status_code <= 599:
            raise ValueError(f"Invalid HTTP status code: {self.status_code!r}")

    def merge(self, other: "ResponseResult", override: bool = False) -> "ResponseResult":
        """
        Combine with a later contribution for the same status code.

        Fields already set here are kept unless `override` is True; the other
        result only fills in what is missing.
        """
        if other.status_code != self.status_code:
            raise ValueError(f"Cannot merge {other.status_code} into {self.status_code}")

        merged = copy.copy(self)
        merged.headers = dict(self.headers)

        if override or not merged.description:
            merged.description = other.description or merged.description
        if override or merged.schema is None:
            if other.schema is not None:
                merged.schema = other.schema
                merged.content_type = other.content_type
        for name, header in other.headers.items():
            if override or name not in merged.headers:
                merged.headers[name] = header
        return merged

    def to_dict(self, openapi_version: str = "3.0.3") -> Dict[str, Any]:
        result: Dict[str, Any] = {"description": self.description or "Response"}
        if self.headers:
            result["headers"] = {
                name: dict(header) for name, header in self.headers.items()
            }
        if self.schema is not None:
            result["content"] = {
                self.content_type: {"schema": self.schema.to_dict(openapi_version)}
            }
        return result


@dataclass
class RequestBodyResult:
    """Request body of an operation."""
    schema: SchemaResult
    content_type: str = "application/json"
    description: Optional[str] = None
    required: bool = True
    source: Optional[str] = None

    def to_dict(self, openapi_version: str = "3.0.3") -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        if self.description:
            result["description"] = self.description
        result["required"] = self.required
        result["content"] = {
            self.content_type: {"schema": self.schema.to_dict(openapi_version)}
        }
        return result


@dataclass
class SecurityRequirement:
    """A detected security scheme and the scopes the route requires."""
    name: str
    scheme: Dict[str, Any]
    scopes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[str]]:
        return {self.name: list(self.scopes)}


@dataclass
class ExtractorFault:
    """An isolated extractor failure recorded during a run."""
    route: str
    extractor: str
    error: str
    error_type: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "route": self.route,
            "extractor": self.extractor,
            "error": self.error,
            "error_type": self.error_type,
        }


@dataclass
class Operation:
    """
    Per-route aggregate of all extractor contributions.

    Transformers receive and return this object and may rewrite any field.
    """
    parameters: Dict[Tuple[str, str], ParameterResult] = field(default_factory=dict)
    request_body: Optional[RequestBodyResult] = None
    responses: Dict[int, ResponseResult] = field(default_factory=dict)
    security: List[SecurityRequirement] = field(default_factory=list)
    summary: Optional[str] = None
    description: Optional[str] = None
    operation_id: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    deprecated: bool = False
    extensions: Dict[str, Any] = field(default_factory=dict)

    def add_parameter(self, parameter: ParameterResult) -> None:
        """Insert or replace a parameter by (name, location); position is kept."""
        self.parameters[parameter.key] = parameter

    def add_response(self, response: ResponseResult, override: bool = False) -> None:
        """Merge a response into the table keyed by status code."""
        existing = self.responses.get(response.status_code)
        if existing is None:
            self.responses[response.status_code] = response
        else:
            self.responses[response.status_code] = existing.merge(response, override=override)

    def add_security(self, requirement: SecurityRequirement) -> None:
        """Append a requirement unless its scheme name is already present."""
        if all(existing.name != requirement.name for existing in self.security):
            self.security.append(requirement)

    @property
    def status_codes(self) -> List[int]:
        return sorted(self.responses)

    def to_dict(self, openapi_version: str = "3.0.3") -> Dict[str, Any]:
        """Serialize to an OpenAPI operation object."""
        result: Dict[str, Any] = {}

        if self.tags:
            result["tags"] = list(self.tags)
        if self.summary:
            result["summary"] = self.summary
        if self.description:
            result["description"] = self.description
        if self.operation_id:
            result["operationId"] = self.operation_id
        if self.parameters:
            result["parameters"] = [p.to_dict(openapi_version) for p in self.parameters.values()]
        if self.request_body is not None:
            result["requestBody"] = self.request_body.to_dict(openapi_version)

        if self.responses:
            result["responses"] = {
                str(code): self.responses[code].to_dict(openapi_version)
                for code in sorted(self.responses)
            }
        else:
            result["responses"] = {"200": {"description": "Success"}}

        if self.security:
            result["security"] = [req.to_dict() for req in self.security]
        if self.deprecated:
            result["deprecated"] = True

        for key, value in self.extensions.items():
            result[key if key.startswith("x-") else f"x-{key}"] = value

        return result
