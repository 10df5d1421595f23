#!/usr/bin/env python3
"""
Schema Resolver
================
Turn model-like classes into component schemas and $ref nodes.

Property type precedence:
1. `@var name type` tag in the class docstring
2. Reflective declarations (type hints, dataclass fields, pydantic model_fields)
3. Untyped schema ({})

A property is required when tagged `@required`, or when its declared type is
not Optional and it has no default value.

One resolver is created per document-generation run and shared by all
worker threads.
"""

import dataclasses
import enum
import logging
import re
import sys
import threading
import typing
from dataclasses import dataclass
from typing import Dict, Any, List, Optional

from pydantic import BaseModel

from .annotations import AnnotationParser
from .components import ComponentsTable
from .schema import SchemaResult
from .type_mapper import TypeMapper, enum_schema, is_model_class

logger = logging.getLogger("api_docs.schemas.resolver")

ERROR_SCHEMA_NAME = "ErrorMessage"

_MISSING = object()


@dataclass
class DeclaredField:
    """One reflectively declared property of a model class."""
    name: str
    annotation: Any = _MISSING
    has_default: bool = False
    description: Optional[str] = None

    @property
    def is_typed(self) -> bool:
        return self.annotation is not _MISSING


def entity_identity(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"


class SchemaResolver:
    """
    Resolve Python entities to schemas, registering named ones as components.

    Usage:
        resolver = SchemaResolver(ComponentsTable())
        ref = resolver.resolve_class(UserModel)   # {"$ref": "#/components/schemas/UserModel"}
        resolver.resolve_type(List[UserModel])    # array of $ref
    """

    def __init__(self, components: Optional[ComponentsTable] = None,
                 annotations: Optional[AnnotationParser] = None):
        self.components = components if components is not None else ComponentsTable()
        self.annotations = annotations or AnnotationParser()
        self.mapper = TypeMapper(resolve_class=self.resolve_class)

        self._names: Dict[str, str] = {}        # component name → identity
        self._assigned: Dict[str, str] = {}     # identity → component name
        self._cache: Dict[str, SchemaResult] = {}
        self._lock = threading.RLock()
        self._local = threading.local()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve_type(self, tp: Any, namespace: Optional[Dict[str, Any]] = None) -> SchemaResult:
        """Map any type annotation; model classes become references."""
        return self.mapper.map_type(tp, namespace)

    def resolve_class(self, cls: type) -> SchemaResult:
        """
        Resolve a model-like class to a reference, registering it on first use.

        Args:
            cls: Dataclass, pydantic model, Enum, or annotated class

        Returns:
            $ref SchemaResult into components.schemas
        """
        identity = entity_identity(cls)

        with self._lock:
            cached = self._cache.get(identity)
        if cached is not None:
            return cached

        name = self.component_name(cls)

        in_progress = self._in_progress()
        if identity in in_progress:
            # Self-referencing model; the definition is registered by the outer call
            return SchemaResult.reference(name)

        in_progress.add(identity)
        try:
            schema = self.build_schema(cls)
        finally:
            in_progress.discard(identity)

        ref = self.components.register(name, schema, source=identity)
        with self._lock:
            self._cache[identity] = ref
        return ref

    def register(self, name: str, schema: SchemaResult, source: Optional[str] = None) -> SchemaResult:
        """Register an anonymous shape under an explicit component name."""
        return self.components.register(name, schema, source=source)

    def error_schema(self) -> SchemaResult:
        """Reference to the shared error body ({"message": "..."})."""
        return self.components.register(ERROR_SCHEMA_NAME, error_message_schema(), source="builtin")

    def component_name(self, cls: type) -> str:
        """
        Stable component name for a class.

        The short class name is used unless another entity already owns it,
        in which case the module path is folded into the name.
        """
        identity = entity_identity(cls)
        with self._lock:
            if identity in self._assigned:
                return self._assigned[identity]

            name = _sanitize(cls.__name__)
            owner = self._names.get(name)
            if owner is not None and owner != identity:
                name = _sanitize(identity.replace('.<locals>', ''))
                logger.debug(f"Component name collision for {cls.__name__}, using {name}")

            self._names[name] = identity
            self._assigned[identity] = name
            return name

    # ------------------------------------------------------------------
    # Schema construction
    # ------------------------------------------------------------------

    def build_schema(self, cls: type) -> SchemaResult:
        """Build the inlined definition of a class (without registering it)."""
        if issubclass(cls, enum.Enum):
            schema = enum_schema(cls)
        else:
            schema = self._build_object_schema(cls)

        docs = self.class_summary(cls)
        if docs and not schema.description:
            schema.description = docs
        return schema

    def _build_object_schema(self, cls: type) -> SchemaResult:
        tags = self.annotations.parse_object(cls)
        declared = self._declared_fields(cls)
        namespace = _module_namespace(cls)

        names: List[str] = list(declared)
        names += [name for name in tags.vars if name not in declared]

        properties: Dict[str, SchemaResult] = {}
        required: List[str] = []

        for name in names:
            field_info = declared.get(name)
            schema = None
            description = None
            typed = False

            if name in tags.vars:
                expr, description = tags.vars[name]
                schema = self.mapper.map_expression(expr, namespace)
                typed = schema is not None

            if schema is None and field_info is not None and field_info.is_typed:
                schema = self.mapper.map_type(field_info.annotation, namespace)
                typed = True

            if schema is None:
                schema = SchemaResult()

            if name in tags.enums:
                schema = self._apply_enum(schema, tags.enums[name])

            description = description or (field_info.description if field_info else None)
            if description and not schema.is_ref:
                schema.description = description

            properties[name] = schema

            has_default = field_info.has_default if field_info else False
            if name in tags.required or (typed and not _is_nullable(schema) and not has_default):
                required.append(name)

        return SchemaResult.object(properties, required)

    @staticmethod
    def _apply_enum(schema: SchemaResult, values: List[str]) -> SchemaResult:
        base = schema.type if schema.type in ('string', 'integer', 'number', 'boolean') else 'string'
        typed_values: List[Any] = values
        if base == 'integer':
            try:
                typed_values = [int(v) for v in values]
            except ValueError:
                base = 'string'
        elif base == 'number':
            try:
                typed_values = [float(v) for v in values]
            except ValueError:
                base = 'string'
        return SchemaResult(type=base, format=schema.format, enum=typed_values, nullable=_is_nullable(schema))

    def _declared_fields(self, cls: type) -> Dict[str, DeclaredField]:
        """Collect reflective property declarations in declaration order."""
        if issubclass(cls, BaseModel):
            return self._pydantic_fields(cls)

        hints = self._type_hints(cls)

        if dataclasses.is_dataclass(cls):
            declared = {}
            for f in dataclasses.fields(cls):
                has_default = f.default is not dataclasses.MISSING or f.default_factory is not dataclasses.MISSING
                declared[f.name] = DeclaredField(
                    name=f.name,
                    annotation=hints.get(f.name, f.type),
                    has_default=has_default,
                    description=f.metadata.get('description') if f.metadata else None,
                )
            return declared

        declared = {}
        for name, annotation in hints.items():
            if name.startswith('_') or typing.get_origin(annotation) is typing.ClassVar:
                continue
            declared[name] = DeclaredField(
                name=name,
                annotation=annotation,
                has_default=hasattr(cls, name),
            )
        return declared

    @staticmethod
    def _pydantic_fields(cls: type) -> Dict[str, DeclaredField]:
        declared = {}
        for name, info in cls.model_fields.items():
            key = info.alias or name
            declared[key] = DeclaredField(
                name=key,
                annotation=info.annotation,
                has_default=not info.is_required(),
                description=info.description,
            )
        return declared

    @staticmethod
    def _type_hints(cls: type) -> Dict[str, Any]:
        try:
            return typing.get_type_hints(cls)
        except (NameError, TypeError) as e:
            # Unresolvable forward references; keep raw annotations (strings are
            # resolved later against the module namespace)
            logger.debug(f"get_type_hints failed for {cls.__qualname__}: {e}")
            hints: Dict[str, Any] = {}
            for klass in reversed(cls.__mro__):
                hints.update(klass.__dict__.get('__annotations__', {}))
            return hints

    def class_summary(self, cls: type) -> Optional[str]:
        """First docstring line of a class, skipping tag lines and generated dataclass signatures."""
        doc = cls.__dict__.get('__doc__')
        if not doc or doc == "An enumeration.":
            return None
        # Generated dataclass signature, not a real docstring
        if dataclasses.is_dataclass(cls) and doc.startswith(f"{cls.__name__}("):
            return None
        for line in doc.strip().splitlines():
            line = line.strip()
            if not line:
                break
            if not line.startswith('@'):
                return line
        return None

    def _in_progress(self) -> set:
        if not hasattr(self._local, 'in_progress'):
            self._local.in_progress = set()
        return self._local.in_progress


def error_message_schema() -> SchemaResult:
    return SchemaResult.object(
        {'message': SchemaResult.string(description='Error message')},
        required=['message'],
    )


def _is_nullable(schema: SchemaResult) -> bool:
    return schema.nullable


def _module_namespace(cls: type) -> Dict[str, Any]:
    module = sys.modules.get(cls.__module__)
    return dict(vars(module)) if module is not None else {}


def _sanitize(name: str) -> str:
    return re.sub(r'[^A-Za-z0-9_]', '_', name).strip('_') or 'Schema'


__all__ = [
    "SchemaResolver",
    "DeclaredField",
    "ERROR_SCHEMA_NAME",
    "error_message_schema",
    "entity_identity",
    "is_model_class",
]
