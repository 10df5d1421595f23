"""
Schema / Type Resolution Engine
================================

Turns model-like Python classes and docstring annotations into schema nodes
and keeps the run-scoped components table.

Usage:
    from schemas import ComponentsTable, SchemaResolver, resolve_ref

    resolver = SchemaResolver(ComponentsTable())
    ref = resolver.resolve_class(User)
    definition = resolve_ref(ref, document)
"""

from .schema import SchemaResult, resolve_ref, COMPONENTS_PREFIX
from .annotations import AnnotationParser, Annotations, TypeExpr, parse_type_expression
from .components import ComponentsTable, fingerprint
from .type_mapper import TypeMapper, is_model_class
from .resolver import SchemaResolver, ERROR_SCHEMA_NAME, error_message_schema

__all__ = [
    "SchemaResult",
    "resolve_ref",
    "COMPONENTS_PREFIX",
    "AnnotationParser",
    "Annotations",
    "TypeExpr",
    "parse_type_expression",
    "ComponentsTable",
    "fingerprint",
    "TypeMapper",
    "is_model_class",
    "SchemaResolver",
    "ERROR_SCHEMA_NAME",
    "error_message_schema",
]
