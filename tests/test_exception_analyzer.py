import ast

from extractors.exception_analyzer import ExceptionAnalyzer, status_literal
from pipeline.contracts import ExceptionSchemaProvider
from pipeline.context import AnalysisContext, RouteInfo
from pipeline.registry import PluginRegistry
from pipeline.results import ResponseResult


def codes(responses):
    return [r.status_code for r in responses]


def test_not_found_raise(context_for):
    ctx = context_for('''
        from werkzeug.exceptions import NotFound

        def handler(item_id):
            item = repo.get(item_id)
            if item is None:
                raise NotFound()
            return item
    ''')
    responses = ExceptionAnalyzer().extract_responses(ctx)

    assert codes(responses) == [404]
    assert responses[0].description == "Not Found"
    assert responses[0].schema.to_dict()["properties"]["message"]["type"] == "string"


def test_forbidden_raise(context_for):
    ctx = context_for('''
        from werkzeug.exceptions import Forbidden

        def handler():
            raise Forbidden("admins only")
    ''')
    assert codes(ExceptionAnalyzer().extract_responses(ctx)) == [403]


def test_multiple_raises_in_first_seen_order(context_for):
    ctx = context_for('''
        from werkzeug.exceptions import NotFound, Forbidden

        def handler(item_id):
            item = repo.get(item_id)
            if item is None:
                raise NotFound()
            if not item.visible:
                raise Forbidden()
            if item.deleted:
                raise NotFound()
            return item
    ''')
    assert codes(ExceptionAnalyzer().extract_responses(ctx)) == [404, 403]


def test_empty_handler_has_no_error_responses(context_for):
    ctx = context_for('''
        def handler():
            return {"status": "ok"}
    ''')
    assert ExceptionAnalyzer().extract_responses(ctx) == []


def test_missing_ast_returns_empty():
    ctx = AnalysisContext(route=RouteInfo("/items"))
    assert ExceptionAnalyzer().extract_responses(ctx) == []


def test_unknown_exception_types_are_ignored(context_for):
    ctx = context_for('''
        def handler(value):
            if value < 0:
                raise ValueError("negative")
            raise SomethingUnknown
    ''')
    assert ExceptionAnalyzer().extract_responses(ctx) == []


def test_raises_inside_nested_blocks(context_for):
    ctx = context_for('''
        from werkzeug.exceptions import Conflict, Gone

        def handler(items):
            for item in items:
                try:
                    with lock:
                        if item.taken:
                            raise Conflict()
                except KeyError:
                    raise Gone()
    ''')
    assert codes(ExceptionAnalyzer().extract_responses(ctx)) == [409, 410]


def test_module_alias_is_qualified(context_for):
    ctx = context_for('''
        from werkzeug import exceptions as exc

        def handler():
            raise exc.Conflict()
    ''')
    assert codes(ExceptionAnalyzer().extract_responses(ctx)) == [409]


def test_abort_helper(context_for):
    ctx = context_for('''
        from flask import abort

        def handler(name):
            if name in taken:
                abort(409, "Name already taken")
            abort(404)
    ''')
    responses = ExceptionAnalyzer().extract_responses(ctx)

    assert codes(responses) == [409, 404]
    assert responses[0].description == "Name already taken"
    assert responses[1].description == "Not Found"


def test_http_exception_with_status_constant(context_for):
    ctx = context_for('''
        from fastapi import HTTPException, status

        def handler():
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email taken")
    ''')
    responses = ExceptionAnalyzer().extract_responses(ctx)

    assert codes(responses) == [409]
    assert responses[0].description == "Email taken"


def test_lookup_helpers_imply_not_found(context_for):
    ctx = context_for('''
        from django.shortcuts import get_object_or_404

        def handler(request, pk):
            return get_object_or_404(Article, pk=pk)
    ''')
    assert codes(ExceptionAnalyzer().extract_responses(ctx)) == [404]

    ctx = context_for('''
        def handler(pk):
            return Article.query.filter_by(id=pk).first_or_404()
    ''')
    assert codes(ExceptionAnalyzer().extract_responses(ctx)) == [404]


def test_local_exception_subclasses(context_for):
    ctx = context_for('''
        from werkzeug.exceptions import NotFound

        class ItemMissing(NotFound):
            pass

        class ItemLocked(Exception):
            code = 423

        def handler():
            if missing:
                raise ItemMissing()
            raise ItemLocked
    ''')
    responses = ExceptionAnalyzer().extract_responses(ctx)

    assert codes(responses) == [404, 423]
    assert responses[0].source == "ItemMissing"


def test_custom_status_map(context_for):
    ctx = context_for('''
        from app.errors import QuotaExceeded

        def handler():
            raise QuotaExceeded()
    ''')
    analyzer = ExceptionAnalyzer({"app.errors.QuotaExceeded": (402, "Quota exceeded")})
    responses = analyzer.extract_responses(ctx)

    assert codes(responses) == [402]
    assert responses[0].description == "Quota exceeded"


def test_documented_raises(context_for):
    ctx = context_for('''
        from werkzeug.exceptions import NotFound

        def handler():
            """
            Archive an item.

            @throws NotFound Item does not exist

            Raises:
                werkzeug.exceptions.Gone: When the item was archived already
            """
            return archive()
    ''')
    responses = ExceptionAnalyzer().extract_responses(ctx)

    assert codes(responses) == [404, 410]
    assert responses[0].description == "Item does not exist"
    assert responses[1].description == "When the item was archived already"

    assert ExceptionAnalyzer(include_documented=False).extract_responses(ctx) == []


def test_exception_provider_from_registry(context_for):
    class PaymentProvider(ExceptionSchemaProvider):
        def provides(self, exception_type):
            return exception_type.endswith("PaymentRequired")

        def get_response(self, exception_type):
            return ResponseResult(402, "Payment required")

    registry = PluginRegistry()
    registry.register(PaymentProvider())

    ctx = context_for('''
        from billing.errors import PaymentRequired

        def handler():
            raise PaymentRequired()
    ''')
    responses = ExceptionAnalyzer(registry=registry).extract_responses(ctx)

    assert codes(responses) == [402]
    assert responses[0].source == "billing.errors.PaymentRequired"


def test_shared_provider_response_is_not_modified(context_for):
    shared = ResponseResult(402, "Payment required")

    class SharedPaymentProvider(ExceptionSchemaProvider):
        def provides(self, exception_type):
            return exception_type.endswith("PaymentRequired")

        def get_response(self, exception_type):
            return shared

    registry = PluginRegistry()
    registry.register(SharedPaymentProvider())
    analyzer = ExceptionAnalyzer(registry=registry)

    documented = context_for('''
        from billing.errors import PaymentRequired

        def handler():
            """
            Charge the card.

            @throws PaymentRequired Card declined on route A
            """
    ''')
    raising = context_for('''
        from billing.errors import PaymentRequired

        def handler():
            raise PaymentRequired()
    ''')

    [first] = analyzer.extract_responses(documented)
    [second] = analyzer.extract_responses(raising)

    assert first.description == "Card declined on route A"
    assert second.description == "Payment required"
    assert shared.description == "Payment required"
    assert shared.source is None


def test_error_body_registered_as_component(context_for, resolver):
    ctx = context_for('''
        from werkzeug.exceptions import NotFound

        def handler():
            raise NotFound()
    ''', schemas=resolver)
    responses = ExceptionAnalyzer().extract_responses(ctx)

    assert responses[0].schema.ref == "#/components/schemas/ErrorMessage"
    assert "ErrorMessage" in resolver.components


def test_status_literal():
    assert status_literal(ast.parse("404", mode="eval").body) == 404
    assert status_literal(ast.parse("status.HTTP_422_UNPROCESSABLE_ENTITY", mode="eval").body) == 422
    assert status_literal(ast.parse("HTTPStatus.NOT_FOUND", mode="eval").body) == 404
    assert status_literal(ast.parse("HTTPStatus.NOPE", mode="eval").body) is None
    assert status_literal(ast.parse("code", mode="eval").body) is None
