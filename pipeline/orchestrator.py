#!/usr/bin/env python3
"""
Pipeline Orchestrator
======================
Runs the registered extractors for each route and drives a complete
document-generation run.

Per-route flow (AnalysisPipeline.run_for):
1. Parameter extractors → merged by (name, location), last write wins
2. Request body extractors → first non-null result wins
3. Response extractors → merged by status code, later results only fill gaps
4. Security detectors → first non-null detection wins
5. Operation transformers → applied in priority order

An extractor that raises, or returns something other than its declared
result type, is isolated: the fault is logged and recorded and its
contribution is treated as empty. Transformers run on a copy of the
operation, so a failing transformer leaves no partial edits. With
`strict=True` the fault aborts the run instead.

A DocumentGenerator run owns all mutable state (components table, schema
resolver, parse cache, fault log), so independent runs never share state.
"""

import copy
import dataclasses
import json
import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, Any, Callable, Iterable, List, Optional, Tuple

import yaml

from cache.source_cache import SourceCache
from extractors import (
    AuthenticationErrorExtractor,
    AuthorizationErrorExtractor,
    DecoratorSecurityDetector,
    DocstringParameterExtractor,
    DocstringTransformer,
    ExceptionAnalyzer,
    ModelRequestBodyExtractor,
    NotFoundErrorExtractor,
    OperationMetadataTransformer,
    PaginationParameterExtractor,
    PathParameterExtractor,
    RateLimitErrorExtractor,
    RequestArgsParameterExtractor,
    ReturnTypeResponseExtractor,
    ValidationErrorExtractor,
)
from schemas.components import ComponentsTable
from schemas.resolver import SchemaResolver
from plugins import ApiKeyAuthPlugin, BearerAuthPlugin, CodeSamplePlugin
from .assembler import DocumentAssembler, method_rank
from .context import AnalysisContext, RouteInfo
from .contracts import (
    OperationTransformer,
    QueryParameterExtractor,
    RequestBodyExtractor,
    ResponseExtractor,
    SecuritySchemeDetector,
)
from .errors import (
    ApiDocError,
    ConfigurationError,
    DocumentGenerationError,
    ExtractorFaultError,
    SchemaConsistencyError,
)
from .registry import PluginRegistry
from .resolver import HandlerResolver
from .results import (
    ExtractorFault,
    Operation,
    ParameterResult,
    RequestBodyResult,
    ResponseResult,
    SecurityRequirement,
)

logger = logging.getLogger("api_docs.pipeline.orchestrator")


@dataclass
class GenerationConfig:
    """
    Document generation settings.
    Can be loaded from environment variables, a config file, or CLI args.
    """
    # Document info
    title: str = "API Documentation"
    version: str = "1.0.0"
    description: Optional[str] = None
    openapi_version: str = "3.0.3"
    servers: List[str] = field(default_factory=list)

    # Execution
    workers: int = 4
    strict: bool = False  # Abort the run on the first extractor fault
    import_handlers: bool = True  # Import handler modules for type inspection

    # Extensions
    include_plugins: bool = True
    code_samples: bool = False
    api_key_header: str = "X-API-Key"
    api_key_middleware: List[str] = field(default_factory=lambda: ["auth.apikey", "apikey", "api_key"])

    # Extra exception type → status code entries for the exception analyzer
    error_status_map: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not str(self.openapi_version).startswith(("3.0", "3.1")):
            raise ConfigurationError(f"Unsupported OpenAPI version: {self.openapi_version}")
        if int(self.workers) < 1:
            raise ConfigurationError(f"workers must be at least 1, got {self.workers}")
        self.workers = int(self.workers)
        if isinstance(self.servers, str):
            self.servers = [s.strip() for s in self.servers.split(',') if s.strip()]

    @classmethod
    def from_env(cls) -> "GenerationConfig":
        """Load configuration from APIDOC_* environment variables."""
        return cls(
            title=os.getenv("APIDOC_TITLE", "API Documentation"),
            version=os.getenv("APIDOC_VERSION", "1.0.0"),
            description=os.getenv("APIDOC_DESCRIPTION"),
            openapi_version=os.getenv("APIDOC_OPENAPI_VERSION", "3.0.3"),
            servers=os.getenv("APIDOC_SERVERS", ""),
            workers=int(os.getenv("APIDOC_WORKERS", 4)),
            strict=os.getenv("APIDOC_STRICT", "false").lower() == "true",
            import_handlers=os.getenv("APIDOC_IMPORT_HANDLERS", "true").lower() == "true",
            include_plugins=os.getenv("APIDOC_PLUGINS", "true").lower() == "true",
            code_samples=os.getenv("APIDOC_CODE_SAMPLES", "false").lower() == "true",
            api_key_header=os.getenv("APIDOC_API_KEY_HEADER", "X-API-Key"),
        )

    @classmethod
    def from_file(cls, path: str) -> "GenerationConfig":
        """Load configuration from a JSON or YAML file."""
        with open(path, 'r') as f:
            if path.endswith(('.yaml', '.yml')):
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown config keys in {path}: {', '.join(unknown)}")

        return cls(**data)

    def with_overrides(self, **overrides: Any) -> "GenerationConfig":
        """Copy with the given non-None values replaced (used for CLI flags)."""
        values = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(self, **values)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "title": self.title,
            "version": self.version,
            "description": self.description,
            "openapi_version": self.openapi_version,
            "servers": list(self.servers),
            "workers": self.workers,
            "strict": self.strict,
            "import_handlers": self.import_handlers,
            "include_plugins": self.include_plugins,
            "code_samples": self.code_samples,
            "api_key_header": self.api_key_header,
            "api_key_middleware": list(self.api_key_middleware),
            "error_status_map": dict(self.error_status_map),
        }


class FaultLog:
    """Thread-safe, append-only record of isolated extractor faults."""

    def __init__(self):
        self._faults: List[ExtractorFault] = []
        self._lock = threading.Lock()

    def record(self, route: RouteInfo, extractor: str, error: BaseException) -> ExtractorFault:
        fault = ExtractorFault(
            route=str(route),
            extractor=extractor,
            error=str(error),
            error_type=type(error).__name__,
        )
        with self._lock:
            self._faults.append(fault)
        return fault

    @property
    def faults(self) -> List[ExtractorFault]:
        with self._lock:
            return list(self._faults)

    def __len__(self) -> int:
        with self._lock:
            return len(self._faults)


class AnalysisPipeline:
    """
    Dispatch one AnalysisContext to every registered extension.

    Usage:
        pipeline = AnalysisPipeline(registry)
        operation = pipeline.run_for(context)
        pipeline.faults.faults  # isolated failures
    """

    def __init__(self, registry: PluginRegistry, strict: bool = False, faults: Optional[FaultLog] = None):
        self.registry = registry
        self.strict = strict
        self.faults = faults if faults is not None else FaultLog()

    def run_for(self, context: AnalysisContext) -> Operation:
        """
        Build the merged Operation for one route.

        Raises:
            SchemaConsistencyError: Always propagated
            ExtractorFaultError: In strict mode, on the first extractor fault
        """
        operation = Operation()

        for extractor in self.registry.extractors(QueryParameterExtractor):
            parameters = self._call(extractor, context, extractor.extract, context,
                                    normalize=_result_list(ParameterResult))
            for parameter in parameters or []:
                operation.add_parameter(parameter)

        for extractor in self.registry.extractors(RequestBodyExtractor):
            body = self._call(extractor, context, extractor.extract_request_body, context,
                              normalize=_optional_result(RequestBodyResult))
            if body is not None:
                operation.request_body = body
                break

        for extractor in self.registry.extractors(ResponseExtractor):
            responses = self._call(extractor, context, extractor.extract_responses, context,
                                   normalize=_result_list(ResponseResult))
            for response in responses or []:
                operation.add_response(response)

        for detector in self.registry.extractors(SecuritySchemeDetector):
            requirement = self._call(detector, context, detector.detect, context,
                                     normalize=_optional_result(SecurityRequirement))
            if requirement is not None:
                operation.add_security(requirement)
                if context.schemas is not None:
                    context.schemas.components.add_security_scheme(requirement.name, requirement.scheme)
                break

        for transformer in self.registry.extractors(OperationTransformer):
            # Each transformer works on a copy; a failed one leaves no partial edits
            working = copy.deepcopy(operation)
            transformed = self._call(transformer, context, transformer.transform, working, context,
                                     normalize=_transformed(working))
            if transformed is not None:
                operation = transformed

        return operation

    def _call(self, extension: Any, context: AnalysisContext, method: Callable, *args: Any,
              normalize: Optional[Callable[[Any], Any]] = None) -> Any:
        """Invoke one extension; its result is normalized before anything is merged."""
        name = type(extension).__name__
        try:
            result = method(*args)
            return normalize(result) if normalize is not None else result
        except SchemaConsistencyError:
            raise
        except Exception as e:
            self.faults.record(context.route, name, e)
            if self.strict:
                raise ExtractorFaultError(str(context.route), name, e) from e
            logger.warning(f"Extractor {name} failed for {context.route}: {e}")
            return None


def _result_list(expected: type) -> Callable[[Any], List[Any]]:
    """Materialize an iterable result and check every item's type."""
    def normalize(result: Any) -> List[Any]:
        items = list(result or [])
        for item in items:
            if not isinstance(item, expected):
                raise TypeError(f"Expected {expected.__name__}, got {type(item).__name__}")
        return items
    return normalize


def _optional_result(expected: type) -> Callable[[Any], Any]:
    def normalize(result: Any) -> Any:
        if result is not None and not isinstance(result, expected):
            raise TypeError(f"Expected {expected.__name__} or None, got {type(result).__name__}")
        return result
    return normalize


def _transformed(working: Operation) -> Callable[[Any], Operation]:
    """A transformer returning None keeps its in-place edits to `working`."""
    def normalize(result: Any) -> Operation:
        if result is None:
            return working
        if not isinstance(result, Operation):
            raise TypeError(f"Expected Operation, got {type(result).__name__}")
        return result
    return normalize


class DocumentGenerator:
    """
    One-call document generation over a route table.

    Usage:
        config = GenerationConfig(title="Shop API", workers=8)
        generator = DocumentGenerator(build_default_registry(config), config)
        document = generator.generate(routes)
        generator.faults  # extractor faults isolated during the last run
    """

    def __init__(self, registry: PluginRegistry, config: Optional[GenerationConfig] = None):
        self.registry = registry
        self.config = config or GenerationConfig()
        self.assembler = DocumentAssembler(self.config)
        self.faults: List[ExtractorFault] = []
        self.stats: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def generate(self, routes: Iterable[RouteInfo],
                 progress_cb: Optional[Callable[[int, int, RouteInfo], None]] = None) -> Dict[str, Any]:
        """
        Analyze every route and assemble the OpenAPI document.

        Args:
            routes: Route descriptors in registration order
            progress_cb: Called as (completed, total, route) after each operation

        Returns:
            Complete OpenAPI document dictionary

        Raises:
            SchemaConsistencyError: Conflicting component definitions
            ExtractorFaultError: Extractor failure in strict mode
            DocumentGenerationError: Unexpected failure processing a route
        """
        start = time.time()
        routes = list(routes)

        components = ComponentsTable()
        schemas = SchemaResolver(components)
        source_cache = SourceCache()
        fault_log = FaultLog()
        pipeline = AnalysisPipeline(self.registry, strict=self.config.strict, faults=fault_log)
        resolver = HandlerResolver(source_cache, import_handlers=self.config.import_handlers)

        units = [
            (index, method, route.for_method(method))
            for index, route in enumerate(routes)
            for method in route.emitted_methods
        ]

        def process(route: RouteInfo) -> Operation:
            context = resolver.build_context(route, schemas=schemas)
            return pipeline.run_for(context)

        logger.info(f"Generating documentation for {len(routes)} routes ({len(units)} operations)")

        if self.config.workers > 1 and len(units) > 1:
            results = self._run_parallel(units, process, progress_cb)
        else:
            results = []
            for index, method, route in units:
                results.append((index, method, route, self._run_one(process, route)))
                if progress_cb:
                    progress_cb(len(results), len(units), route)

        results.sort(key=lambda r: (r[0], method_rank(r[1])))
        operations = [(route, method, operation) for _, method, route, operation in results]

        document = self.assembler.assemble(operations, components)

        self.faults = fault_log.faults
        self.stats = {
            "routes": len(routes),
            "operations": len(operations),
            "paths": len(document.get("paths", {})),
            "schemas": len(components),
            "faults": len(self.faults),
            "files_parsed": len(source_cache),
            "cache": dict(source_cache.stats),
            "duration_seconds": round(time.time() - start, 3),
        }
        logger.info(
            f"Generation complete: {self.stats['paths']} paths, {self.stats['schemas']} schemas, "
            f"{self.stats['faults']} faults"
        )
        return document

    def _run_parallel(self, units, process, progress_cb=None) -> List[Tuple[int, str, RouteInfo, Operation]]:
        results = []
        logger.info(f"Starting parallel analysis with {self.config.workers} workers")

        with ThreadPoolExecutor(max_workers=self.config.workers) as executor:
            future_to_unit = {
                executor.submit(self._run_one, process, route): (index, method, route)
                for index, method, route in units
            }

            try:
                for future in as_completed(future_to_unit):
                    index, method, route = future_to_unit[future]
                    operation = future.result()
                    with self._lock:
                        results.append((index, method, route, operation))
                        completed = len(results)
                    if progress_cb:
                        progress_cb(completed, len(units), route)
            except ApiDocError:
                for pending in future_to_unit:
                    pending.cancel()
                raise

        return results

    @staticmethod
    def _run_one(process: Callable[[RouteInfo], Operation], route: RouteInfo) -> Operation:
        try:
            return process(route)
        except ApiDocError:
            raise
        except Exception as e:
            logger.error(f"Failed to analyze {route}: {e}")
            raise DocumentGenerationError(str(route), e) from e


def build_default_registry(config: Optional[GenerationConfig] = None) -> PluginRegistry:
    """
    Registry with all core extractors (priorities 60-100) and, unless
    disabled, the bundled plugins.
    """
    config = config or GenerationConfig()
    registry = PluginRegistry()

    # Parameters
    registry.register(PathParameterExtractor(), priority=100)
    registry.register(RequestArgsParameterExtractor(), priority=80)
    registry.register(DocstringParameterExtractor(), priority=70)
    registry.register(PaginationParameterExtractor(), priority=60)

    # Request body
    registry.register(ModelRequestBodyExtractor(), priority=100)

    # Responses
    registry.register(ReturnTypeResponseExtractor(), priority=100)
    registry.register(ExceptionAnalyzer(config.error_status_map, registry=registry), priority=90)
    registry.register(AuthenticationErrorExtractor(), priority=80)
    registry.register(AuthorizationErrorExtractor(), priority=75)
    registry.register(NotFoundErrorExtractor(), priority=70)
    registry.register(ValidationErrorExtractor(), priority=65)
    registry.register(RateLimitErrorExtractor(), priority=60)

    # Security
    registry.register(DecoratorSecurityDetector(), priority=80)

    # Transformers
    registry.register(OperationMetadataTransformer(), priority=100)
    registry.register(DocstringTransformer(), priority=90)

    if config.include_plugins:
        registry.register_plugin(BearerAuthPlugin())
        registry.register_plugin(ApiKeyAuthPlugin(config.api_key_header, config.api_key_middleware))
    if config.code_samples:
        base_url = config.servers[0] if config.servers else "http://localhost"
        registry.register_plugin(CodeSamplePlugin(base_url))

    logger.debug(f"Default registry: {registry.stats()}")
    return registry
