import pytest

from pipeline.context import AnalysisContext, RouteInfo, parse_path_parameters, to_openapi_path


@pytest.mark.parametrize("uri,expected", [
    ("/users/{user_id}", [("user_id", None)]),
    ("/users/{user_id:int}/posts/{slug}", [("user_id", "int"), ("slug", None)]),
    ("/users/<int:user_id>/files/<path:name>", [("user_id", "int"), ("name", "path")]),
    ("/orgs/:org/repos/:repo", [("org", None), ("repo", None)]),
    ("/health", []),
])
def test_parse_path_parameters(uri, expected):
    assert parse_path_parameters(uri) == expected


@pytest.mark.parametrize("uri,expected", [
    ("/users/<int:user_id>", "/users/{user_id}"),
    ("/users/{user_id:int}", "/users/{user_id}"),
    ("/orgs/:org", "/orgs/{org}"),
    ("users", "/users"),
])
def test_to_openapi_path(uri, expected):
    assert to_openapi_path(uri) == expected


class TestRouteInfo:
    def test_from_dict(self):
        route = RouteInfo.from_dict({
            "uri": "/users/<int:user_id>",
            "methods": "get|head",
            "controller": "app.views:UserView",
            "action": "get",
            "middleware": ["auth"],
        })

        assert route.methods == frozenset({"GET", "HEAD"})
        assert route.path_parameters == ("user_id",)
        assert route.middleware == ("auth",)
        assert route.openapi_path == "/users/{user_id}"
        assert not route.is_closure

    def test_from_dict_requires_uri(self):
        with pytest.raises(ValueError):
            RouteInfo.from_dict({"methods": ["GET"]})

    def test_implicit_methods_are_dropped(self):
        route = RouteInfo("/items", frozenset({"HEAD", "GET", "OPTIONS", "POST"}))
        assert route.emitted_methods == ["GET", "POST"]
        assert route.http_method == "GET"

    def test_implicit_only_route_keeps_its_methods(self):
        route = RouteInfo("/ping", frozenset({"OPTIONS", "HEAD"}))
        assert route.emitted_methods == ["OPTIONS", "HEAD"]

    def test_canonical_method_order(self):
        route = RouteInfo("/items", frozenset({"PATCH", "DELETE", "PUT", "GET"}))
        assert route.emitted_methods == ["GET", "PUT", "DELETE", "PATCH"]

    def test_for_method(self):
        route = RouteInfo("/items/{id}", frozenset({"GET", "DELETE"}), path_parameters=("id",))
        single = route.for_method("delete")

        assert single.methods == frozenset({"DELETE"})
        assert single.path_parameters == ("id",)
        assert str(single) == "DELETE /items/{id}"

    def test_closure_route(self):
        assert RouteInfo("/ping").is_closure


class TestAnalysisContext:
    def test_without_ast(self):
        context = AnalysisContext(route=RouteInfo("/ping"))
        assert not context.has_ast()
        assert context.to_dict() == {
            "route": "GET /ping",
            "source_file_path": None,
            "has_ast": False,
            "has_handler": False,
        }

    def test_with_metadata_copies(self):
        context = AnalysisContext(route=RouteInfo("/ping"), metadata={"a": 1})
        updated = context.with_metadata(b=2)

        assert updated.metadata == {"a": 1, "b": 2}
        assert context.metadata == {"a": 1}
