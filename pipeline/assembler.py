"""
Document Assembler
===================
Folds per-route Operations into the final OpenAPI document.
"""

import logging
from typing import Dict, Any, Iterable, List, Tuple

from schemas.components import ComponentsTable
from .context import CANONICAL_METHODS, RouteInfo
from .results import Operation

logger = logging.getLogger("api_docs.pipeline.assembler")


class DocumentAssembler:
    """
    Build the OpenAPI dictionary from merged operations.

    Usage:
        assembler = DocumentAssembler(config)
        document = assembler.assemble([(route, "GET", operation)], components)
    """

    def __init__(self, config: Any = None):
        self.config = config

    @property
    def openapi_version(self) -> str:
        return getattr(self.config, "openapi_version", None) or "3.0.3"

    def assemble(self, operations: Iterable[Tuple[RouteInfo, str, Operation]],
                 components: ComponentsTable) -> Dict[str, Any]:
        """
        Args:
            operations: (route, method, operation) in route registration order
            components: Components table of the generation run

        Returns:
            OpenAPI document dictionary
        """
        version = self.openapi_version
        paths: Dict[str, Dict[str, Any]] = {}
        tags = set()

        for route, method, operation in operations:
            path = route.openapi_path
            method_key = method.lower()
            path_item = paths.setdefault(path, {})

            if method_key in path_item:
                logger.warning(f"Duplicate operation {method} {path}, keeping the first definition")
                continue

            path_item[method_key] = operation.to_dict(version)
            tags.update(operation.tags)

        for path, path_item in paths.items():
            paths[path] = dict(sorted(path_item.items(), key=lambda item: method_rank(item[0])))

        document: Dict[str, Any] = {
            "openapi": version,
            "info": self._info(),
        }
        servers = self._servers()
        if servers:
            document["servers"] = servers
        if tags:
            document["tags"] = [{"name": tag} for tag in sorted(tags)]
        document["paths"] = paths

        document_components: Dict[str, Any] = {}
        schemas = components.to_dict(version)
        if schemas:
            document_components["schemas"] = schemas
        security_schemes = components.security_schemes
        if security_schemes:
            document_components["securitySchemes"] = dict(sorted(security_schemes.items()))
        if document_components:
            document["components"] = document_components

        logger.debug(f"Assembled {len(paths)} paths, {len(schemas)} schemas")
        return document

    def _info(self) -> Dict[str, Any]:
        info = {
            "title": getattr(self.config, "title", None) or "API Documentation",
            "version": getattr(self.config, "version", None) or "1.0.0",
        }
        description = getattr(self.config, "description", None)
        if description:
            info["description"] = description
        return info

    def _servers(self) -> List[Dict[str, str]]:
        return [{"url": url} for url in getattr(self.config, "servers", None) or []]


def method_rank(method: str) -> int:
    method = method.upper()
    return CANONICAL_METHODS.index(method) if method in CANONICAL_METHODS else len(CANONICAL_METHODS)
