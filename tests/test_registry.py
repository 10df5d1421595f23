import pytest

from pipeline.contracts import (
    ExceptionSchemaProvider,
    Plugin,
    QueryParameterExtractor,
    ResponseExtractor,
    SecuritySchemeDetector,
)
from pipeline.registry import PluginRegistry
from pipeline.results import ResponseResult


class NamedResponses(ResponseExtractor):
    def __init__(self, label):
        self.label = label

    def extract_responses(self, context):
        return []


class ParamsAndResponses(QueryParameterExtractor, ResponseExtractor):
    def extract(self, context):
        return []

    def extract_responses(self, context):
        return []


class TeapotProvider(ExceptionSchemaProvider):
    def provides(self, exception_type):
        return exception_type == "kitchen.Teapot"

    def get_response(self, exception_type):
        return ResponseResult(418, "I'm a teapot")


class HeaderPlugin(Plugin, SecuritySchemeDetector):
    name = "header-auth"

    def boot(self, registry):
        registry.register(self, priority=self.priority)

    def detect(self, context):
        return None


class BrokenPlugin(Plugin):
    name = "broken"

    def boot(self, registry):
        registry.register(NamedResponses("from-broken"), priority=40)
        raise RuntimeError("missing configuration")


def labels(registry):
    return [e.label for e in registry.extractors(ResponseExtractor)]


class TestOrdering:
    def test_higher_priority_runs_first(self):
        registry = PluginRegistry()
        registry.register(NamedResponses("low"), priority=10)
        registry.register(NamedResponses("high"), priority=90)
        registry.register(NamedResponses("mid"), priority=50)

        assert labels(registry) == ["high", "mid", "low"]

    def test_equal_priorities_keep_registration_order(self):
        registry = PluginRegistry()
        registry.register(NamedResponses("first"), priority=60)
        registry.register(NamedResponses("second"), priority=60)
        registry.register(NamedResponses("top"), priority=100)
        registry.register(NamedResponses("third"), priority=60)

        assert labels(registry) == ["top", "first", "second", "third"]

    def test_default_priority(self):
        registry = PluginRegistry()
        registry.register(NamedResponses("core"), priority=60)
        registry.register(NamedResponses("plugin"))

        assert labels(registry) == ["core", "plugin"]
        assert registry.registrations(ResponseExtractor)[1].priority == 50


class TestRegistration:
    def test_multi_contract_extension_is_filed_under_each(self):
        registry = PluginRegistry()
        extension = ParamsAndResponses()

        contracts = registry.register(extension, priority=70)

        assert set(contracts) == {QueryParameterExtractor, ResponseExtractor}
        assert registry.extractors(QueryParameterExtractor) == [extension]
        assert registry.extractors(ResponseExtractor) == [extension]
        assert len(registry) == 1

    def test_rejects_objects_without_contract(self):
        registry = PluginRegistry()
        with pytest.raises(TypeError):
            registry.register(object())

    def test_exception_provider_lookup(self):
        registry = PluginRegistry()
        provider = TeapotProvider()
        registry.add_exception_provider(provider)

        assert registry.exception_provider_for("kitchen.Teapot") is provider
        assert registry.exception_provider_for("kitchen.Kettle") is None

    def test_stats(self):
        registry = PluginRegistry()
        registry.register(ParamsAndResponses())

        stats = registry.stats()
        assert stats["QueryParameterExtractor"] == 1
        assert stats["ResponseExtractor"] == 1
        assert stats["SecuritySchemeDetector"] == 0
        assert stats["plugins"] == 0


class TestPlugins:
    def test_plugin_boot_registers_extensions(self):
        registry = PluginRegistry()
        plugin = HeaderPlugin()

        assert registry.register_plugin(plugin) is True
        assert registry.has_plugin("header-auth")
        assert registry.extractors(SecuritySchemeDetector) == [plugin]
        assert registry.registrations(SecuritySchemeDetector)[0].priority == 50

    def test_failing_plugin_is_not_installed(self):
        registry = PluginRegistry()
        registry.register(NamedResponses("core"), priority=90)

        assert registry.register_plugin(BrokenPlugin()) is False
        assert not registry.has_plugin("broken")
        assert labels(registry) == ["core"]

    def test_registry_usable_after_plugin_failure(self):
        registry = PluginRegistry()
        registry.register_plugin(BrokenPlugin())
        registry.register_plugin(HeaderPlugin())

        assert [p.name for p in registry.plugins] == ["header-auth"]
