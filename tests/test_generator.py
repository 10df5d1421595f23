import json
import textwrap
import uuid

import pytest
import yaml

from main import load_routes, render_document
from pipeline.context import RouteInfo
from pipeline.contracts import ResponseExtractor
from pipeline.errors import ConfigurationError, ExtractorFaultError
from pipeline.orchestrator import DocumentGenerator, GenerationConfig, build_default_registry

BOOKS_APP = '''
from dataclasses import dataclass
from typing import List


class BookLocked(Exception):
    code = 423


@dataclass
class Book:
    id: int
    title: str


@dataclass
class BookCreate:
    title: str


def list_books() -> List[Book]:
    """List all books."""
    return []


def list_books_again() -> List[Book]:
    return []


def create_book(payload: BookCreate) -> Book:
    return Book(1, payload.title)


def get_book(book_id: int) -> Book:
    """
    Fetch one book.

    @deprecated Use /v2/books
    """
    book = lookup(book_id)
    if book.locked:
        raise BookLocked()
    return book


def delete_book(book_id: int) -> None:
    pass
'''


@pytest.fixture
def books_module(tmp_path, monkeypatch):
    name = f"books_app_{uuid.uuid4().hex[:8]}"
    (tmp_path / f"{name}.py").write_text(textwrap.dedent(BOOKS_APP))
    monkeypatch.syspath_prepend(str(tmp_path))
    return name


@pytest.fixture
def routes(books_module):
    entries = [
        {"uri": "/books", "methods": ["GET", "HEAD"], "action": f"{books_module}:list_books"},
        {"uri": "/books", "methods": ["POST"], "action": f"{books_module}:create_book",
         "middleware": ["auth"]},
        {"uri": "/books/<int:book_id>", "methods": ["GET"], "action": f"{books_module}:get_book"},
        {"uri": "/books/{book_id}", "methods": ["DELETE"], "action": f"{books_module}:delete_book",
         "middleware": ["auth"]},
        {"uri": "/books", "methods": ["GET"], "action": f"{books_module}:list_books_again"},
    ]
    return [RouteInfo.from_dict(entry) for entry in entries]


def generate(routes, **options):
    config = GenerationConfig(title="Books API", **options)
    generator = DocumentGenerator(build_default_registry(config), config)
    return generator.generate(routes), generator


class TestDocumentGeneration:
    def test_document_layout(self, routes):
        document, generator = generate(routes, workers=1)

        assert document["openapi"] == "3.0.3"
        assert document["info"] == {"title": "Books API", "version": "1.0.0"}
        assert document["tags"] == [{"name": "Books"}]
        assert list(document["paths"]) == ["/books", "/books/{book_id}"]
        assert list(document["paths"]["/books"]) == ["get", "post"]
        assert list(document["paths"]["/books/{book_id}"]) == ["get", "delete"]
        assert generator.stats["operations"] == 5
        assert generator.stats["paths"] == 2
        assert generator.faults == []

    def test_first_duplicate_operation_wins(self, routes):
        document, _ = generate(routes, workers=1)
        operation = document["paths"]["/books"]["get"]

        assert operation["summary"] == "List all books"
        assert operation["operationId"] == "get.books"
        assert operation["responses"]["200"]["content"]["application/json"]["schema"] == {
            "type": "array",
            "items": {"$ref": "#/components/schemas/Book"},
        }

    def test_create_operation(self, routes):
        document, _ = generate(routes, workers=1)
        operation = document["paths"]["/books"]["post"]

        assert operation["requestBody"]["content"]["application/json"]["schema"] == {
            "$ref": "#/components/schemas/BookCreate"
        }
        assert list(operation["responses"]) == ["201", "401", "422"]
        assert operation["security"] == [{"bearerAuth": []}]

    def test_item_operations(self, routes):
        document, _ = generate(routes, workers=1)
        get_op = document["paths"]["/books/{book_id}"]["get"]
        delete_op = document["paths"]["/books/{book_id}"]["delete"]

        assert get_op["parameters"] == [{
            "name": "book_id",
            "in": "path",
            "required": True,
            "description": "The book id",
            "schema": {"type": "integer"},
        }]
        assert list(get_op["responses"]) == ["200", "404", "423"]
        assert get_op["responses"]["404"]["content"]["application/json"]["schema"] == {
            "$ref": "#/components/schemas/ErrorMessage"
        }
        assert get_op["deprecated"] is True
        assert "security" not in get_op

        assert list(delete_op["responses"]) == ["204", "401", "404"]

    def test_components(self, routes):
        document, _ = generate(routes, workers=1)
        components = document["components"]

        assert list(components["schemas"]) == ["Book", "BookCreate", "ErrorMessage", "ValidationError"]
        assert components["schemas"]["Book"]["required"] == ["id", "title"]
        assert components["securitySchemes"] == {
            "bearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}
        }

    def test_parallel_run_matches_sequential(self, routes):
        sequential, _ = generate(routes, workers=1)
        parallel, _ = generate(routes, workers=4)
        assert parallel == sequential

    @pytest.mark.parametrize("workers", [1, 3])
    def test_progress_callback(self, routes, workers):
        config = GenerationConfig(workers=workers)
        calls = []
        DocumentGenerator(build_default_registry(config), config).generate(
            routes, progress_cb=lambda cur, tot, route: calls.append((cur, tot)))

        assert sorted(calls) == [(i, 5) for i in range(1, 6)]

    def test_openapi_31(self, routes):
        document, _ = generate(routes, workers=1, openapi_version="3.1.0", servers=["https://books.example"])
        assert document["openapi"] == "3.1.0"
        assert document["servers"] == [{"url": "https://books.example"}]

    def test_code_samples(self, routes):
        document, _ = generate(routes, workers=1, code_samples=True, servers=["https://books.example"])
        samples = document["paths"]["/books"]["post"]["x-codeSamples"]
        assert samples[0]["lang"] == "Shell"
        assert "https://books.example/books" in samples[0]["source"]

    def test_unresolvable_handlers_still_documented(self):
        document, _ = generate([RouteInfo.from_dict({"uri": "/health", "action": "missing.module:ping"})])
        operation = document["paths"]["/health"]["get"]

        assert operation["responses"] == {"200": {"description": "Success"}}
        assert operation["tags"] == ["Health"]
        assert "components" not in document

    @pytest.mark.parametrize("import_handlers", [True, False])
    def test_package_failing_on_import_still_documented(self, tmp_path, monkeypatch, import_handlers):
        package = tmp_path / f"brokenpkg_{uuid.uuid4().hex[:8]}"
        package.mkdir()
        (package / "__init__.py").write_text("raise RuntimeError('settings not configured')\n")
        (package / "views.py").write_text("def ping():\n    return 'pong'\n")
        monkeypatch.syspath_prepend(str(tmp_path))

        route = RouteInfo.from_dict({"uri": "/broken", "controller": f"{package.name}.views", "action": "ping"})
        document, generator = generate([route], import_handlers=import_handlers)

        assert document["paths"]["/broken"]["get"]["responses"] == {"200": {"description": "Success"}}
        assert generator.faults == []

    def test_empty_route_table(self):
        document, generator = generate([])
        assert document["paths"] == {}
        assert generator.stats["routes"] == 0


class FailingExtractor(ResponseExtractor):
    def extract_responses(self, context):
        raise KeyError("broken")


class TestFaults:
    def test_faults_are_collected(self, routes):
        config = GenerationConfig(workers=2)
        registry = build_default_registry(config)
        registry.register(FailingExtractor(), priority=5)

        generator = DocumentGenerator(registry, config)
        document = generator.generate(routes)

        assert len(generator.faults) == 5
        assert {f.extractor for f in generator.faults} == {"FailingExtractor"}
        assert generator.stats["faults"] == 5
        assert "post" in document["paths"]["/books"]

    def test_strict_mode_aborts(self, routes):
        config = GenerationConfig(strict=True, workers=1)
        registry = build_default_registry(config)
        registry.register(FailingExtractor(), priority=5)

        with pytest.raises(ExtractorFaultError):
            DocumentGenerator(registry, config).generate(routes)

    def test_strict_mode_aborts_in_parallel(self, routes):
        config = GenerationConfig(strict=True, workers=4)
        registry = build_default_registry(config)
        registry.register(FailingExtractor(), priority=5)

        with pytest.raises(ExtractorFaultError):
            DocumentGenerator(registry, config).generate(routes)


class TestGenerationConfig:
    def test_defaults(self):
        config = GenerationConfig()
        assert config.openapi_version == "3.0.3"
        assert config.workers == 4
        assert config.strict is False

    def test_rejects_unsupported_version(self):
        with pytest.raises(ConfigurationError):
            GenerationConfig(openapi_version="2.0")

    def test_rejects_zero_workers(self):
        with pytest.raises(ConfigurationError):
            GenerationConfig(workers=0)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("APIDOC_TITLE", "Env API")
        monkeypatch.setenv("APIDOC_SERVERS", "https://a.example, https://b.example")
        monkeypatch.setenv("APIDOC_WORKERS", "2")
        monkeypatch.setenv("APIDOC_STRICT", "true")
        monkeypatch.setenv("APIDOC_PLUGINS", "false")

        config = GenerationConfig.from_env()

        assert config.title == "Env API"
        assert config.servers == ["https://a.example", "https://b.example"]
        assert config.workers == 2
        assert config.strict is True
        assert config.include_plugins is False

    def test_from_yaml_file(self, tmp_path):
        path = tmp_path / "apidoc.yaml"
        path.write_text(yaml.safe_dump({
            "title": "File API",
            "openapi_version": "3.1.0",
            "error_status_map": {"app.errors.Locked": 423},
        }))

        config = GenerationConfig.from_file(str(path))

        assert config.title == "File API"
        assert config.openapi_version == "3.1.0"
        assert config.error_status_map == {"app.errors.Locked": 423}

    def test_from_file_rejects_unknown_keys(self, tmp_path):
        path = tmp_path / "apidoc.json"
        path.write_text(json.dumps({"title": "x", "colour": "blue"}))

        with pytest.raises(ConfigurationError, match="colour"):
            GenerationConfig.from_file(str(path))

    def test_overrides_skip_none(self):
        config = GenerationConfig(title="Base").with_overrides(title=None, workers=8)
        assert config.title == "Base"
        assert config.workers == 8


class TestRouteTable:
    def test_load_yaml_mapping(self, tmp_path):
        path = tmp_path / "routes.yaml"
        path.write_text(yaml.safe_dump({"routes": [
            {"uri": "/users", "methods": "GET|POST", "action": "app.views:users"},
        ]}))

        [route] = load_routes(str(path))

        assert route.methods == frozenset({"GET", "POST"})
        assert route.action == "app.views:users"

    def test_load_json_list(self, tmp_path):
        path = tmp_path / "routes.json"
        path.write_text(json.dumps([{"uri": "/a"}, {"uri": "/b/{id}", "methods": ["DELETE"]}]))

        routes = load_routes(str(path))
        assert [str(r) for r in routes] == ["GET /a", "DELETE /b/{id}"]

    @pytest.mark.parametrize("content", ['{"routes": 3}', '[1, 2]', '[{"methods": ["GET"]}]'])
    def test_invalid_tables(self, tmp_path, content):
        path = tmp_path / "routes.json"
        path.write_text(content)

        with pytest.raises(ConfigurationError):
            load_routes(str(path))

    def test_render_yaml_keeps_order(self):
        rendered = render_document({"openapi": "3.0.3", "info": {"title": "T"}}, "yaml")
        assert rendered.splitlines()[0] == "openapi: 3.0.3"
