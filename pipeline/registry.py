#!/usr/bin/env python3
"""
Plugin Registry
================
Holds extractors and transformers by contract, ordered by priority.

Ordering: higher priority runs earlier; equal priorities keep registration
order. Core analyzers use 60-100, third-party plugins 50 or below.

The registry is populated once during setup and only read afterwards, so it
can be shared by every worker of a generation run.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Any, List, Optional, Type

from .contracts import EXTRACTOR_CONTRACTS, ExceptionSchemaProvider, Plugin

logger = logging.getLogger("api_docs.pipeline.registry")

DEFAULT_PRIORITY = 50


@dataclass(frozen=True)
class Registration:
    """One registered extension."""
    instance: Any
    priority: int
    sequence: int

    @property
    def name(self) -> str:
        return type(self.instance).__name__


class PluginRegistry:
    """
    Ordered registry of extractors, transformers, exception providers and plugins.

    Usage:
        registry = PluginRegistry()
        registry.register(ExceptionAnalyzer(), priority=90)
        registry.register_plugin(BearerAuthPlugin())

        for analyzer in registry.extractors(ResponseExtractor):
            ...
    """

    def __init__(self):
        self._buckets: Dict[type, List[Registration]] = {c: [] for c in EXTRACTOR_CONTRACTS}
        self._buckets[ExceptionSchemaProvider] = []
        self._plugins: Dict[str, Plugin] = {}
        self._sequence = 0

    def register(self, extension: Any, priority: int = DEFAULT_PRIORITY) -> List[type]:
        """
        Register an extension under every contract it implements.

        Args:
            extension: Object implementing one or more extractor contracts
            priority: Higher values run earlier

        Returns:
            Contract types the extension was filed under

        Raises:
            TypeError: If the extension implements no known contract
        """
        contracts = [c for c in EXTRACTOR_CONTRACTS if isinstance(extension, c)]
        if isinstance(extension, ExceptionSchemaProvider):
            contracts.append(ExceptionSchemaProvider)

        if not contracts:
            raise TypeError(f"{type(extension).__name__} implements no extractor contract")

        record = Registration(extension, int(priority), self._sequence)
        self._sequence += 1

        for contract in contracts:
            bucket = self._buckets[contract]
            bucket.append(record)
            bucket.sort(key=lambda r: (-r.priority, r.sequence))

        logger.debug(
            f"Registered {record.name} (priority {priority}) for "
            f"{', '.join(c.__name__ for c in contracts)}"
        )
        return contracts

    def add_exception_provider(self, provider: ExceptionSchemaProvider, priority: int = DEFAULT_PRIORITY) -> None:
        self.register(provider, priority)

    def register_plugin(self, plugin: Plugin) -> bool:
        """
        Install a plugin by calling its boot() hook.

        A plugin whose boot() raises is not installed and anything it
        registered before failing is removed again.

        Returns:
            True if the plugin was installed
        """
        snapshot = {contract: list(bucket) for contract, bucket in self._buckets.items()}

        try:
            plugin.boot(self)
        except Exception as e:
            self._buckets = snapshot
            logger.error(f"Plugin {plugin.name} failed to boot: {e}")
            return False

        self._plugins[plugin.name] = plugin
        logger.info(f"Plugin {plugin.name} booted (priority {plugin.priority})")
        return True

    def has_plugin(self, name: str) -> bool:
        return name in self._plugins

    @property
    def plugins(self) -> List[Plugin]:
        return list(self._plugins.values())

    def registrations(self, contract: Type) -> List[Registration]:
        """Registration records for a contract, in execution order."""
        return list(self._buckets.get(contract, []))

    def extractors(self, contract: Type) -> List[Any]:
        """Instances registered for a contract, in execution order."""
        return [r.instance for r in self._buckets.get(contract, [])]

    def exception_provider_for(self, exception_type: str) -> Optional[ExceptionSchemaProvider]:
        """Highest-priority provider that documents the given exception type."""
        for record in self._buckets[ExceptionSchemaProvider]:
            if record.instance.provides(exception_type):
                return record.instance
        return None

    def stats(self) -> Dict[str, int]:
        result = {contract.__name__: len(bucket) for contract, bucket in self._buckets.items()}
        result["plugins"] = len(self._plugins)
        return result

    def __len__(self) -> int:
        unique = {id(r.instance) for bucket in self._buckets.values() for r in bucket}
        return len(unique)
