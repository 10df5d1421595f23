"""
Analysis Pipeline
==================

Threads a per-route AnalysisContext through ordered extractors and
transformers and folds the resulting operations into one OpenAPI document.

Modules:
    - context: RouteInfo, AnalysisContext
    - results: ParameterResult, ResponseResult, RequestBodyResult, Operation
    - contracts: extractor / transformer / plugin interfaces
    - registry: PluginRegistry (priority ordering)
    - orchestrator: GenerationConfig, AnalysisPipeline, DocumentGenerator
    - assembler: DocumentAssembler
    - resolver: HandlerResolver (route → handler source)

Usage:
    from pipeline.orchestrator import DocumentGenerator, GenerationConfig, build_default_registry

    config = GenerationConfig(title="My API")
    generator = DocumentGenerator(build_default_registry(config), config)
    document = generator.generate(routes)

Only the leaf modules are re-exported here; schemas depends on them.
"""

__version__ = "1.0.0"

from .errors import (
    ApiDocError,
    ConfigurationError,
    SchemaConsistencyError,
    UnresolvedReferenceError,
    ExtractorFaultError,
    DocumentGenerationError,
)
from .context import RouteInfo, AnalysisContext, CANONICAL_METHODS

__all__ = [
    "ApiDocError",
    "ConfigurationError",
    "SchemaConsistencyError",
    "UnresolvedReferenceError",
    "ExtractorFaultError",
    "DocumentGenerationError",
    "RouteInfo",
    "AnalysisContext",
    "CANONICAL_METHODS",
]
