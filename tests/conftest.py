import textwrap

import pytest

from cache.source_cache import find_handler, parse_source
from pipeline.context import AnalysisContext, RouteInfo
from schemas.components import ComponentsTable
from schemas.resolver import SchemaResolver


def build_context(source=None, function="handler", class_name=None, uri="/items",
                  methods=("GET",), middleware=(), schemas=None, handler=None, module_name=None):
    """AnalysisContext for a handler compiled from source text."""
    route = RouteInfo.from_dict({
        "uri": uri,
        "methods": list(methods),
        "middleware": list(middleware),
        "action": function,
    })
    if source is None:
        return AnalysisContext(route=route, handler=handler, schemas=schemas,
                               metadata={"class_name": class_name})

    parsed = parse_source(textwrap.dedent(source), module_name=module_name)
    node = find_handler(parsed.tree, class_name, function)
    assert node is not None, f"handler {function} not found in source"
    return AnalysisContext(
        route=route,
        ast_node=node,
        source_module=parsed,
        handler=handler,
        schemas=schemas,
        metadata={"class_name": class_name, "function_name": function},
    )


@pytest.fixture
def context_for():
    return build_context


@pytest.fixture
def resolver():
    return SchemaResolver(ComponentsTable())
