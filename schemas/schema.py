#!/usr/bin/env python3
"""
Schema Nodes
=============
Typed schema descriptors and $ref handling.

A SchemaResult is either a reference node (only `ref` set) or a fully
inlined node. Serialization supports both OpenAPI 3.0 (`nullable: true`)
and OpenAPI 3.1 (`type: [t, "null"]`).
"""

import copy
from dataclasses import dataclass, field, fields
from typing import Dict, Any, List, Optional, Union

from pipeline.errors import UnresolvedReferenceError

COMPONENTS_PREFIX = "#/components/schemas/"

# Shorthand type names → (type, format)
TYPE_ALIASES = {
    'date': ('string', 'date'),
    'date-time': ('string', 'date-time'),
    'datetime': ('string', 'date-time'),
    'time': ('string', 'time'),
    'email': ('string', 'email'),
    'uuid': ('string', 'uuid'),
    'uri': ('string', 'uri'),
    'url': ('string', 'uri'),
    'binary': ('string', 'binary'),
    'ipv4': ('string', 'ipv4'),
    'ipv6': ('string', 'ipv6'),
}


@dataclass
class SchemaResult:
    """Structured schema node."""
    type: Optional[str] = None
    format: Optional[str] = None
    properties: Dict[str, "SchemaResult"] = field(default_factory=dict)
    required: List[str] = field(default_factory=list)
    nullable: bool = False
    enum: Optional[List[Any]] = None
    items: Optional["SchemaResult"] = None
    ref: Optional[str] = None
    description: Optional[str] = None
    default: Any = None
    example: Any = None
    one_of: List["SchemaResult"] = field(default_factory=list)
    additional_properties: Optional["SchemaResult"] = None

    def __post_init__(self):
        if self.ref is not None:
            populated = [
                f.name for f in fields(self)
                if f.name != 'ref' and getattr(self, f.name) not in (None, False, [], {})
            ]
            if populated:
                raise ValueError(f"Reference schema {self.ref} cannot carry {', '.join(populated)}")

        if self.type in TYPE_ALIASES:
            self.type, alias_format = TYPE_ALIASES[self.type]
            self.format = self.format or alias_format

        # Keep required unique, in declaration order
        self.required = list(dict.fromkeys(self.required))

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @classmethod
    def string(cls, format: Optional[str] = None, **kwargs) -> "SchemaResult":
        return cls(type='string', format=format, **kwargs)

    @classmethod
    def integer(cls, format: Optional[str] = None, **kwargs) -> "SchemaResult":
        return cls(type='integer', format=format, **kwargs)

    @classmethod
    def number(cls, format: Optional[str] = None, **kwargs) -> "SchemaResult":
        return cls(type='number', format=format, **kwargs)

    @classmethod
    def boolean(cls, **kwargs) -> "SchemaResult":
        return cls(type='boolean', **kwargs)

    @classmethod
    def array(cls, items: Optional["SchemaResult"] = None, **kwargs) -> "SchemaResult":
        return cls(type='array', items=items or cls(), **kwargs)

    @classmethod
    def object(cls, properties: Optional[Dict[str, "SchemaResult"]] = None,
               required: Optional[List[str]] = None, **kwargs) -> "SchemaResult":
        return cls(type='object', properties=properties or {}, required=required or [], **kwargs)

    @classmethod
    def reference(cls, name: str) -> "SchemaResult":
        return cls(ref=COMPONENTS_PREFIX + name)

    # ------------------------------------------------------------------

    @property
    def is_ref(self) -> bool:
        return self.ref is not None

    @property
    def ref_name(self) -> Optional[str]:
        if self.ref and self.ref.startswith(COMPONENTS_PREFIX):
            return self.ref[len(COMPONENTS_PREFIX):]
        return None

    @property
    def is_untyped(self) -> bool:
        return self.to_dict() == {}

    def with_nullable(self, nullable: bool = True) -> "SchemaResult":
        """Copy of this node with nullability set; references are wrapped in oneOf."""
        if self.is_ref:
            return SchemaResult(one_of=[self], nullable=nullable) if nullable else self
        clone = copy.copy(self)
        clone.nullable = nullable
        return clone

    def to_dict(self, openapi_version: str = "3.0.3") -> Dict[str, Any]:
        """
        Serialize to an OpenAPI schema object.

        Args:
            openapi_version: Target document version ("3.0.x" or "3.1.x")

        Returns:
            Schema dictionary with fields in a stable order
        """
        if self.is_ref:
            return {'$ref': self.ref}

        is_31 = openapi_version.startswith("3.1")
        result: Dict[str, Any] = {}

        if self.type is not None:
            if self.nullable and is_31:
                result['type'] = [self.type, 'null']
            else:
                result['type'] = self.type
        if self.format:
            result['format'] = self.format
        if self.description:
            result['description'] = self.description
        if self.one_of:
            variants = [s.to_dict(openapi_version) for s in self.one_of]
            if self.nullable and is_31 and self.type is None:
                variants.append({'type': 'null'})
            result['oneOf'] = variants
        if self.properties:
            result['properties'] = {
                name: prop.to_dict(openapi_version) for name, prop in self.properties.items()
            }
        if self.required:
            result['required'] = list(self.required)
        if self.items is not None:
            result['items'] = self.items.to_dict(openapi_version)
        if self.additional_properties is not None:
            result['additionalProperties'] = self.additional_properties.to_dict(openapi_version)
        if self.enum is not None:
            values = list(self.enum)
            if self.nullable and is_31 and None not in values:
                values.append(None)
            result['enum'] = values
        if self.default is not None:
            result['default'] = self.default
        if self.example is not None:
            result['example'] = self.example
        if self.nullable and not is_31:
            result['nullable'] = True

        return result


def resolve_ref(schema: Union[SchemaResult, Dict[str, Any]], document: Dict[str, Any]) -> Union[SchemaResult, Dict[str, Any]]:
    """
    Follow one level of $ref indirection into components.schemas.

    Non-reference schemas are returned unchanged (same object).

    Args:
        schema: SchemaResult or serialized schema dict
        document: Assembled OpenAPI document

    Returns:
        The referenced component definition, or `schema` itself

    Raises:
        UnresolvedReferenceError: If the referenced component is missing

    Example:
        >>> doc = {"components": {"schemas": {"User": {"type": "object"}}}}
        >>> resolve_ref({"$ref": "#/components/schemas/User"}, doc)
        {'type': 'object'}
    """
    if isinstance(schema, SchemaResult):
        ref = schema.ref
    elif isinstance(schema, dict):
        ref = schema.get('$ref')
    else:
        return schema

    if not ref or not ref.startswith(COMPONENTS_PREFIX):
        return schema

    name = ref[len(COMPONENTS_PREFIX):]
    definitions = document.get('components', {}).get('schemas', {})
    if name not in definitions:
        raise UnresolvedReferenceError(ref)
    return definitions[name]
