import pytest

from schemas.annotations import AnnotationParser, TypeExpr, parse_type_expression


@pytest.mark.parametrize("text,expected", [
    ("int", TypeExpr("int")),
    ("?int", TypeExpr("int", nullable=True)),
    ("int|None", TypeExpr("int", nullable=True)),
    ("null|string", TypeExpr("string", nullable=True)),
    ("Optional[User]", TypeExpr("User", nullable=True)),
    ("str[]", TypeExpr("list", (TypeExpr("str"),))),
    ("list[app.models.User]", TypeExpr("list", (TypeExpr("app.models.User"),))),
    ("dict[str, list[int]]", TypeExpr("dict", (TypeExpr("str"), TypeExpr("list", (TypeExpr("int"),))))),
    ("int|str", TypeExpr("Union", (TypeExpr("int"), TypeExpr("str")))),
])
def test_parse_type_expression(text, expected):
    assert parse_type_expression(text) == expected


@pytest.mark.parametrize("text", ["list[", "int]", "None", "dict[str,]", "123abc", ""])
def test_malformed_type_expression_is_none(text):
    assert parse_type_expression(text) is None


def test_parse_all_tags():
    tags = AnnotationParser.parse("""
        Order resource.

        @var id int Order identifier
        @var note ?string
        @query status string Filter by status
        @enum status {open, "closed"}
        @required id, note
        @throws app.errors.OrderLocked When the order is being edited
        @raises NotFound
        @deprecated Use /v2/orders
    """)

    assert tags.vars["id"] == (TypeExpr("int"), "Order identifier")
    assert tags.vars["note"] == (TypeExpr("string", nullable=True), None)
    assert tags.queries["status"] == (TypeExpr("string"), "Filter by status")
    assert tags.enums["status"] == ["open", "closed"]
    assert tags.required == ["id", "note"]
    assert tags.throws == [("app.errors.OrderLocked", "When the order is being edited"), ("NotFound", None)]
    assert tags.deprecated == "Use /v2/orders"
    assert not tags.is_empty


def test_malformed_tags_are_ignored():
    tags = AnnotationParser.parse("""
        @var count int[[
        @enum size {S,,M}
        @enum color red, green
        @unknown thing
    """)
    assert tags.is_empty


def test_empty_docstring():
    assert AnnotationParser.parse(None).is_empty
    assert AnnotationParser.parse("Plain text only.").is_empty


def test_parse_object_ignores_inherited_docstrings():
    class Base:
        """@var name string"""

    class Child(Base):
        pass

    assert "name" in AnnotationParser.parse_object(Base).vars
    assert AnnotationParser.parse_object(Child).is_empty
