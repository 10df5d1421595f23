#!/usr/bin/env python3
"""
Components Table
=================
Run-scoped registry of named, reusable schema definitions.

Registration is idempotent: registering a name again with an identical shape
is a no-op. A structurally different shape under an existing name raises
SchemaConsistencyError (fail-fast; the first shape is never replaced).

Shapes are compared by fingerprint: sha256 over canonical JSON with
descriptions stripped and required/enum lists sorted.
"""

import hashlib
import json
import logging
import threading
from typing import Dict, Any, List, Optional, Tuple

from pipeline.errors import SchemaConsistencyError
from .schema import SchemaResult

logger = logging.getLogger("api_docs.schemas.components")

_IGNORED_KEYS = {'description', 'example'}


def _normalize(value: Any) -> Any:
    if isinstance(value, dict):
        normalized = {}
        for key in sorted(value):
            if key in _IGNORED_KEYS:
                continue
            item = value[key]
            if key in ('required', 'enum') and isinstance(item, list):
                normalized[key] = sorted(item, key=repr)
            else:
                normalized[key] = _normalize(item)
        return normalized
    if isinstance(value, list):
        return [_normalize(item) for item in value]
    return value


def fingerprint(schema: SchemaResult) -> str:
    """Structural fingerprint of a schema node."""
    canonical = json.dumps(_normalize(schema.to_dict()), sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


class ComponentsTable:
    """
    Thread-safe components table for one document-generation run.

    Usage:
        table = ComponentsTable()
        ref = table.register("User", user_schema, source="app.models.User")
        table.to_dict()  # {"User": {...}}
    """

    def __init__(self):
        self._schemas: Dict[str, Tuple[SchemaResult, str, Optional[str]]] = {}
        self._security_schemes: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

        self.stats = {
            "registered": 0,
            "duplicates": 0,
        }

    def register(self, name: str, schema: SchemaResult, source: Optional[str] = None) -> SchemaResult:
        """
        Register a named schema and return a reference to it.

        Args:
            name: Component name
            schema: Fully inlined definition
            source: Identity of the entity the schema came from (for diagnostics)

        Returns:
            $ref SchemaResult pointing at the component

        Raises:
            SchemaConsistencyError: If `name` already holds a different shape
        """
        if schema.is_ref:
            raise ValueError(f"Cannot register reference node under '{name}'")

        digest = fingerprint(schema)

        with self._lock:
            existing = self._schemas.get(name)
            if existing is None:
                self._schemas[name] = (schema, digest, source)
                self.stats["registered"] += 1
                logger.debug(f"Registered component schema {name} ({source or 'inline'})")
            elif existing[1] == digest:
                self.stats["duplicates"] += 1
            else:
                raise SchemaConsistencyError(name, existing[2], source)

        return SchemaResult.reference(name)

    def get(self, name: str) -> Optional[SchemaResult]:
        with self._lock:
            entry = self._schemas.get(name)
        return entry[0] if entry else None

    def source_of(self, name: str) -> Optional[str]:
        with self._lock:
            entry = self._schemas.get(name)
        return entry[2] if entry else None

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._schemas)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._schemas

    def __len__(self) -> int:
        with self._lock:
            return len(self._schemas)

    def add_security_scheme(self, name: str, scheme: Dict[str, Any]) -> None:
        """Record a security scheme; the first definition for a name is kept."""
        with self._lock:
            if name not in self._security_schemes:
                self._security_schemes[name] = dict(scheme)
            elif self._security_schemes[name] != scheme:
                logger.debug(f"Security scheme {name} already defined, keeping first definition")

    @property
    def security_schemes(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {name: dict(scheme) for name, scheme in self._security_schemes.items()}

    def to_dict(self, openapi_version: str = "3.0.3") -> Dict[str, Dict[str, Any]]:
        """Serialize all schemas, sorted by component name."""
        with self._lock:
            entries = sorted(self._schemas.items())
        return {name: entry[0].to_dict(openapi_version) for name, entry in entries}
