#!/usr/bin/env python3
"""
Extractor Contracts
====================
Single-method interfaces polymorphic over AnalysisContext.

A component may implement several contracts at once; the registry files it
under every contract it implements.

Usage:
    class TenantHeaderExtractor(QueryParameterExtractor):
        def extract(self, context):
            return [ParameterResult.header("X-Tenant", required=True)]

    registry.register(TenantHeaderExtractor(), priority=40)
"""

from abc import ABC, abstractmethod
from typing import List, Optional, TYPE_CHECKING

from .context import AnalysisContext
from .results import (
    Operation,
    ParameterResult,
    RequestBodyResult,
    ResponseResult,
    SecurityRequirement,
)

if TYPE_CHECKING:
    from .registry import PluginRegistry


class QueryParameterExtractor(ABC):
    """Contributes operation parameters (query, path, header or cookie)."""

    @abstractmethod
    def extract(self, context: AnalysisContext) -> List[ParameterResult]:
        ...


class RequestBodyExtractor(ABC):
    """Contributes the request body; the first non-null result wins."""

    @abstractmethod
    def extract_request_body(self, context: AnalysisContext) -> Optional[RequestBodyResult]:
        ...


class ResponseExtractor(ABC):
    """Contributes responses, merged by status code."""

    @abstractmethod
    def extract_responses(self, context: AnalysisContext) -> List[ResponseResult]:
        ...


class SecuritySchemeDetector(ABC):
    """Detects the security scheme guarding a route; the first detection wins."""

    @abstractmethod
    def detect(self, context: AnalysisContext) -> Optional[SecurityRequirement]:
        ...


class OperationTransformer(ABC):
    """Post-processes the merged operation after all extractors ran."""

    @abstractmethod
    def transform(self, operation: Operation, context: AnalysisContext) -> Operation:
        ...


class ExceptionSchemaProvider(ABC):
    """Supplies the documented response for specific exception types."""

    @abstractmethod
    def provides(self, exception_type: str) -> bool:
        ...

    @abstractmethod
    def get_response(self, exception_type: str) -> ResponseResult:
        ...


class Plugin(ABC):
    """
    Bundle of extensions installed through PluginRegistry.register_plugin().

    boot() registers the plugin's extractors and transformers; if it raises,
    the plugin is not installed.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    def priority(self) -> int:
        return 50

    @abstractmethod
    def boot(self, registry: "PluginRegistry") -> None:
        ...


EXTRACTOR_CONTRACTS = (
    QueryParameterExtractor,
    RequestBodyExtractor,
    ResponseExtractor,
    SecuritySchemeDetector,
    OperationTransformer,
)
