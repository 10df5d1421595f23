"""
Pipeline Errors
================
Exception hierarchy for document generation.

Unresolvable handler source and malformed annotations are not errors; they
degrade to empty contributions. Everything below is surfaced to the caller
of a generation run.
"""

from typing import Any, Optional


class ApiDocError(Exception):
    """Base class for all documentation pipeline errors."""


class ConfigurationError(ApiDocError):
    """Invalid generation configuration."""


class SchemaConsistencyError(ApiDocError):
    """
    Two structurally different schemas were registered under one component name.

    The first registered shape is never replaced; generation fails instead.
    """

    def __init__(self, name: str, existing_source: Optional[str] = None, new_source: Optional[str] = None):
        self.name = name
        self.existing_source = existing_source
        self.new_source = new_source
        message = f"Component schema '{name}' registered twice with different shapes"
        if existing_source or new_source:
            message += f" (first: {existing_source or 'unknown'}, second: {new_source or 'unknown'})"
        super().__init__(message)


class UnresolvedReferenceError(ApiDocError, LookupError):
    """A $ref points at a component that does not exist in the document."""

    def __init__(self, ref: str):
        self.ref = ref
        super().__init__(f"Unresolved schema reference: {ref}")


class ExtractorFaultError(ApiDocError):
    """An extractor raised while running in strict mode."""

    def __init__(self, route: Any, extractor: str, cause: BaseException):
        self.route = route
        self.extractor = extractor
        self.cause = cause
        super().__init__(f"Extractor {extractor} failed for {route}: {cause}")


class DocumentGenerationError(ApiDocError):
    """A route could not be processed; the document is not emitted."""

    def __init__(self, route: Any, cause: BaseException):
        self.route = route
        self.cause = cause
        super().__init__(f"Document generation failed for {route}: {cause}")
