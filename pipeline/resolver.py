#!/usr/bin/env python3
"""
Handler Resolver
=================
Best-effort mapping from a route's handler reference to its source file,
parsed AST node and (optionally) the imported callable.

Accepted handler references:
- controller="app.views:UserView", action="get"
- controller="app.views.UserView", action="get"
- controller="app.views", action="list_users"
- action="app.views:list_users" (no controller)

Resolution failures are not errors: the missing pieces stay None and
AST-dependent extractors degrade to empty results.
"""

import importlib
import importlib.util
import logging
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from cache.source_cache import ParsedSource, SourceCache, find_handler
from .context import AnalysisContext, HandlerNode, RouteInfo

logger = logging.getLogger("api_docs.pipeline.resolver")


@dataclass
class ResolvedHandler:
    """Everything known about a route's handler."""
    module_name: Optional[str] = None
    class_name: Optional[str] = None
    function_name: Optional[str] = None
    source_path: Optional[str] = None
    source_module: Optional[ParsedSource] = None
    ast_node: Optional[HandlerNode] = None
    handler: Any = None


class HandlerResolver:
    """
    Resolve route handlers to source and callables.

    Usage:
        resolver = HandlerResolver(SourceCache())
        resolved = resolver.resolve(route)
        context = resolver.build_context(route, schemas=schema_resolver)
    """

    def __init__(self, source_cache: Optional[SourceCache] = None, import_handlers: bool = True):
        """
        Args:
            source_cache: Parse cache shared by the generation run
            import_handlers: Import handler modules for reflective type inspection
        """
        self.source_cache = source_cache if source_cache is not None else SourceCache()
        self.import_handlers = import_handlers

    def resolve(self, route: RouteInfo) -> ResolvedHandler:
        target = self.split_reference(route)
        if target is None:
            logger.debug(f"{route}: no handler reference")
            return ResolvedHandler()

        module_name, class_name, function_name = target
        resolved = ResolvedHandler(module_name, class_name, function_name)

        resolved.source_path = self._source_path(module_name)
        if resolved.source_path:
            resolved.source_module = self.source_cache.get(resolved.source_path, module_name)
        if resolved.source_module is not None:
            resolved.ast_node = find_handler(resolved.source_module.tree, class_name, function_name)

        if self.import_handlers:
            resolved.handler = self._import_callable(module_name, class_name, function_name)

        if resolved.ast_node is None:
            logger.debug(f"{route}: handler source not found for {module_name}:{class_name or ''}.{function_name}")
        return resolved

    def build_context(self, route: RouteInfo, schemas: Any = None) -> AnalysisContext:
        """Resolve the handler and wrap everything in an AnalysisContext."""
        resolved = self.resolve(route)
        return AnalysisContext(
            route=route,
            ast_node=resolved.ast_node,
            source_file_path=resolved.source_path,
            source_module=resolved.source_module,
            handler=resolved.handler,
            schemas=schemas,
            metadata={
                'module_name': resolved.module_name,
                'class_name': resolved.class_name,
                'function_name': resolved.function_name,
            },
        )

    @staticmethod
    def split_reference(route: RouteInfo) -> Optional[Tuple[str, Optional[str], str]]:
        """Split a handler reference into (module, class or None, function)."""
        controller, action = route.controller, route.action

        if not controller:
            if not action:
                return None
            separator = ':' if ':' in action else '.'
            module_name, _, function_name = action.rpartition(separator)
            if not module_name:
                return None
            if separator == ':' and '.' in function_name:
                class_name, _, function_name = function_name.rpartition('.')
                return module_name, class_name, function_name
            return module_name, None, function_name

        if ':' in controller:
            module_name, _, class_name = controller.partition(':')
            if not action:
                return None
            return module_name, class_name or None, action

        if not action:
            # Bare callable reference in dotted form
            module_name, _, function_name = controller.rpartition('.')
            return (module_name, None, function_name) if module_name else None

        if HandlerResolver._find_spec(controller) is not None:
            return controller, None, action

        module_name, _, class_name = controller.rpartition('.')
        if not module_name:
            return None
        return module_name, class_name, action

    @staticmethod
    def _find_spec(module_name: str):
        try:
            return importlib.util.find_spec(module_name)
        except Exception as e:
            # find_spec imports parent packages, which may fail on their own
            logger.debug(f"Cannot locate module {module_name}: {e}")
            return None

    def _source_path(self, module_name: str) -> Optional[str]:
        spec = self._find_spec(module_name)
        if spec is None or not spec.origin or not spec.origin.endswith('.py'):
            return None
        return spec.origin

    @staticmethod
    def _import_callable(module_name: str, class_name: Optional[str], function_name: str) -> Any:
        try:
            module = importlib.import_module(module_name)
        except Exception as e:
            logger.debug(f"Cannot import handler module {module_name}: {e}")
            return None

        owner = getattr(module, class_name, None) if class_name else module
        if owner is None:
            return None
        return getattr(owner, function_name, None)
