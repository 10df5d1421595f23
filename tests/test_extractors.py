from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

import pytest

from extractors.error_analyzers import (
    AuthenticationErrorExtractor,
    AuthorizationErrorExtractor,
    NotFoundErrorExtractor,
    RateLimitErrorExtractor,
    ValidationErrorExtractor,
)
from extractors.metadata import DocstringTransformer, OperationMetadataTransformer, infer_crud_operation
from extractors.parameters import (
    DocstringParameterExtractor,
    PaginationParameterExtractor,
    PathParameterExtractor,
    RequestArgsParameterExtractor,
)
from extractors.request_body import ModelRequestBodyExtractor
from extractors.responses import ReturnTypeResponseExtractor
from extractors.security import DecoratorSecurityDetector
from pipeline.results import Operation


@dataclass
class ItemCreate:
    """Payload for a new item."""
    name: str
    price: float


@dataclass
class Item:
    id: int
    name: str


@dataclass
class BlankNote:
    """   """
    text: str


@dataclass
class TaggedNote:
    """
    @var text string Note body
    """
    text: str


def create_item(request, payload: ItemCreate) -> Item:
    ...


def create_blank_note(payload: BlankNote):
    ...


def create_tagged_note(payload: TaggedNote):
    ...


def list_items() -> List[Item]:
    ...


def delete_item(item_id: int) -> None:
    ...


def get_document(doc_id: UUID, version: Optional[int] = None):
    ...


def by_name(d):
    return {p.name: p for p in d}


class TestPathParameters:
    def test_types_from_handler_hints(self, context_for):
        ctx = context_for(uri="/documents/{doc_id}", handler=get_document)
        [param] = PathParameterExtractor().extract(ctx)

        assert param.to_dict() == {
            "name": "doc_id",
            "in": "path",
            "required": True,
            "description": "The doc id",
            "schema": {"type": "string", "format": "uuid"},
        }

    def test_types_from_converter(self, context_for):
        ctx = context_for(uri="/users/<int:user_id>")
        [param] = PathParameterExtractor().extract(ctx)
        assert param.schema.type == "integer"

    def test_types_from_source_annotation_and_docstring(self, context_for):
        ctx = context_for('''
            def handler(slug: str, page_id: int):
                """
                Show a page.

                Args:
                    page_id: Numeric page identifier
                """
        ''', uri="/pages/{slug}/{page_id}")
        params = by_name(PathParameterExtractor().extract(ctx))

        assert params["slug"].schema.type == "string"
        assert params["page_id"].schema.type == "integer"
        assert params["page_id"].description == "Numeric page identifier"

    def test_no_placeholders(self, context_for):
        assert PathParameterExtractor().extract(context_for(uri="/health")) == []


class TestQueryParameters:
    def test_request_args_usage(self, context_for):
        ctx = context_for('''
            def handler():
                page = request.args.get("page", 1, type=int)
                q = request.args.get("q")
                tags = request.args.getlist("tag")
                token = request.GET["token"]
                return search(q, page, tags, token)
        ''')
        params = by_name(RequestArgsParameterExtractor().extract(ctx))

        assert params["page"].schema.to_dict() == {"type": "integer", "default": 1}
        assert params["q"].schema.type == "string"
        assert params["tag"].schema.to_dict() == {"type": "array", "items": {"type": "string"}}
        assert params["token"].required is True
        assert params["page"].required is False

    def test_query_defaults_in_signature(self, context_for):
        ctx = context_for('''
            def handler(limit: int = Query(20, description="Max rows"), q: str = Query(...)):
                return []
        ''')
        params = by_name(RequestArgsParameterExtractor().extract(ctx))

        assert params["limit"].to_dict() == {
            "name": "limit",
            "in": "query",
            "required": False,
            "description": "Max rows",
            "schema": {"type": "integer", "default": 20},
        }
        assert params["q"].required is True

    def test_docstring_query_tags(self, context_for):
        ctx = context_for('''
            def handler(item_id):
                """
                @query status string Filter by status
                @enum status {open, closed}
                @query limit int
                @query item_id int
                @required status
                """
        ''')
        params = by_name(DocstringParameterExtractor().extract(ctx))

        assert set(params) == {"status", "limit"}
        assert params["status"].schema.to_dict() == {"type": "string", "enum": ["open", "closed"]}
        assert params["status"].required is True
        assert params["limit"].schema.type == "integer"

    def test_docstring_query_tags_only_for_read_methods(self, context_for):
        ctx = context_for('''
            def handler():
                """@query status string"""
        ''', methods=("POST",))
        assert DocstringParameterExtractor().extract(ctx) == []

    def test_pagination(self, context_for):
        ctx = context_for('''
            def handler():
                return Item.query.paginate(page=page)
        ''')
        assert [p.name for p in PaginationParameterExtractor().extract(ctx)] == ["page", "per_page"]

        ctx = context_for('''
            def handler():
                return Item.query.cursor_paginate()
        ''')
        assert [p.name for p in PaginationParameterExtractor().extract(ctx)] == ["cursor", "per_page"]


class TestBodiesAndResponses:
    def test_model_request_body(self, context_for, resolver):
        ctx = context_for(methods=("POST",), handler=create_item, schemas=resolver)
        body = ModelRequestBodyExtractor().extract_request_body(ctx)

        assert body.schema.ref_name == "ItemCreate"
        assert body.description == "Payload for a new item."
        assert resolver.components.get("ItemCreate").required == ["name", "price"]

    @pytest.mark.parametrize("handler", [create_blank_note, create_tagged_note])
    def test_body_without_summary_line(self, context_for, resolver, handler):
        ctx = context_for(methods=("POST",), handler=handler, schemas=resolver)
        body = ModelRequestBodyExtractor().extract_request_body(ctx)

        assert body.schema.ref_name == handler.__annotations__["payload"].__name__
        assert body.description is None

    def test_no_body_for_get(self, context_for, resolver):
        ctx = context_for(methods=("GET",), handler=create_item, schemas=resolver)
        assert ModelRequestBodyExtractor().extract_request_body(ctx) is None

    def test_post_returns_created(self, context_for, resolver):
        ctx = context_for(methods=("POST",), handler=create_item, schemas=resolver)
        [response] = ReturnTypeResponseExtractor().extract_responses(ctx)

        assert response.status_code == 201
        assert response.schema.ref_name == "Item"

    def test_list_return_type(self, context_for, resolver):
        ctx = context_for(handler=list_items, schemas=resolver)
        [response] = ReturnTypeResponseExtractor().extract_responses(ctx)

        assert response.status_code == 200
        assert response.schema.to_dict() == {"type": "array", "items": {"$ref": "#/components/schemas/Item"}}

    def test_none_return_is_no_content(self, context_for, resolver):
        ctx = context_for(methods=("DELETE",), handler=delete_item, schemas=resolver)
        [response] = ReturnTypeResponseExtractor().extract_responses(ctx)

        assert response.status_code == 204
        assert response.schema is None

    def test_decorator_status_code(self, context_for):
        ctx = context_for('''
            @router.post("/jobs", status_code=202)
            def handler():
                return start_job()
        ''', methods=("POST",))
        [response] = ReturnTypeResponseExtractor().extract_responses(ctx)
        assert response.status_code == 202


class TestRouteErrors:
    def test_authentication_from_middleware(self, context_for):
        ctx = context_for(middleware=("auth",))
        [response] = AuthenticationErrorExtractor().extract_responses(ctx)
        assert (response.status_code, response.description) == (401, "Unauthenticated")

    def test_authentication_from_decorator(self, context_for):
        ctx = context_for('''
            @jwt_required()
            def handler():
                pass
        ''')
        assert [r.status_code for r in AuthenticationErrorExtractor().extract_responses(ctx)] == [401]

    def test_public_route_has_no_auth_errors(self, context_for):
        ctx = context_for()
        assert AuthenticationErrorExtractor().extract_responses(ctx) == []
        assert AuthorizationErrorExtractor().extract_responses(ctx) == []

    def test_authorization_from_middleware_and_decorators(self, context_for):
        ctx = context_for('''
            @permission_required("orders.delete")
            def handler():
                pass
        ''', middleware=("auth", "can:manage-orders"))
        [response] = AuthorizationErrorExtractor().extract_responses(ctx)

        assert response.status_code == 403
        assert response.description == "Forbidden: requires manage-orders, orders.delete"

    def test_not_found_for_path_parameters(self, context_for):
        assert [r.status_code for r in NotFoundErrorExtractor().extract_responses(
            context_for(uri="/items/{id}"))] == [404]
        assert NotFoundErrorExtractor().extract_responses(context_for(uri="/items")) == []

    def test_validation_error_for_body_model(self, context_for, resolver):
        ctx = context_for(methods=("POST",), handler=create_item, schemas=resolver)
        [response] = ValidationErrorExtractor().extract_responses(ctx)

        assert response.status_code == 422
        assert response.schema.ref_name == "ValidationError"
        assert "errors" in resolver.components.get("ValidationError").properties

    def test_validation_error_from_serializer(self, context_for):
        ctx = context_for('''
            def handler(request):
                serializer = OrderSerializer(data=request.data)
                serializer.is_valid(raise_exception=True)
        ''', methods=("POST",))
        assert [r.status_code for r in ValidationErrorExtractor().extract_responses(ctx)] == [400]

    def test_rate_limit_from_middleware(self, context_for):
        ctx = context_for(middleware=("throttle:60,1",))
        [response] = RateLimitErrorExtractor().extract_responses(ctx)

        assert response.status_code == 429
        assert set(response.headers) == {"Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining"}
        assert response.headers["X-RateLimit-Limit"]["example"] == 60

    def test_rate_limit_from_decorator(self, context_for):
        ctx = context_for('''
            @limiter.limit("5 per minute")
            def handler():
                pass
        ''')
        [response] = RateLimitErrorExtractor().extract_responses(ctx)
        assert response.headers["X-RateLimit-Limit"]["example"] == 5


class TestSecurityDetection:
    def test_decorator_schemes(self, context_for):
        ctx = context_for('''
            @login_required
            def handler():
                pass
        ''')
        requirement = DecoratorSecurityDetector().detect(ctx)
        assert requirement.name == "cookieAuth"
        assert requirement.to_dict() == {"cookieAuth": []}

    def test_oauth_scopes(self, context_for):
        ctx = context_for('''
            @require_oauth("profile", "email")
            def handler():
                pass
        ''')
        assert DecoratorSecurityDetector().detect(ctx).to_dict() == {"oauth2": ["profile", "email"]}

    def test_class_decorators_apply_to_methods(self, context_for):
        ctx = context_for('''
            @jwt_required
            class ReportView:
                def get(self):
                    pass
        ''', function="get", class_name="ReportView")
        assert DecoratorSecurityDetector().detect(ctx).name == "bearerAuth"

    def test_no_decorator(self, context_for):
        ctx = context_for('''
            def handler():
                pass
        ''')
        assert DecoratorSecurityDetector().detect(ctx) is None


class TestMetadata:
    def test_crud_inference(self):
        assert infer_crud_operation("GET", "/users") == "list"
        assert infer_crud_operation("GET", "/users/{id}") == "read"
        assert infer_crud_operation("POST", "/users") == "create"
        assert infer_crud_operation("PATCH", "/users/{id}") == "update"
        assert infer_crud_operation("DELETE", "/users/{id}") == "delete"
        assert infer_crud_operation("OPTIONS", "/users") == "unknown"

    def test_generated_metadata(self, context_for):
        ctx = context_for(uri="/api/v1/users/{id}")
        operation = OperationMetadataTransformer().transform(Operation(), ctx)

        assert operation.tags == ["Users"]
        assert operation.summary == "Get user details"
        assert operation.operation_id == "get.api.v1.users.id"

    def test_existing_values_are_kept(self, context_for):
        operation = Operation(summary="Custom", tags=["Admin"])
        operation = OperationMetadataTransformer().transform(operation, context_for(uri="/users"))

        assert operation.summary == "Custom"
        assert operation.tags == ["Admin"]
        assert operation.operation_id == "get.users"

    def test_docstring_metadata(self, context_for):
        ctx = context_for('''
            def handler():
                """
                List active users.

                Only users that logged in during the last 30 days.

                @deprecated Use /v2/users
                """
        ''')
        operation = DocstringTransformer().transform(Operation(summary="List users"), ctx)

        assert operation.summary == "List active users"
        assert operation.description == "Only users that logged in during the last 30 days."
        assert operation.deprecated is True
