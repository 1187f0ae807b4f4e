from __future__ import annotations

import pytest

from rxsmells.models import SourceLocation
from rxsmells.source.ast import (
    ArrowFunction,
    ExpressionStatement,
    Identifier,
    Literal,
    MemberAccess,
    New,
    OpaqueStatement,
    ReturnStatement,
    This,
    UnsupportedConstruct,
    depth,
    field_reads,
    field_writes,
    free_identifiers,
    is_empty_body,
    operator_count,
    parse_expression,
    parse_location,
    parse_statement,
    parse_statements,
    root_name,
    root_of,
    walk,
)
from tests._fixtures.components import (
    arrow,
    assign,
    binary,
    conditional,
    fn,
    ident,
    invoke,
    lam,
    member,
    pipe,
    this_,
)

FILE = "src/app.component.ts"


def test_bare_string_is_a_dotted_path() -> None:
    parsed = parse_expression("this.http.get", FILE)

    assert parsed == MemberAccess(MemberAccess(This(), "http"), "get")
    assert parse_expression("user?.name", FILE) == MemberAccess(Identifier("user"), "name", True)


def test_optional_marker_applies_to_the_next_access() -> None:
    parsed = parse_expression("order.customer?.name", FILE)

    assert isinstance(parsed, MemberAccess)
    assert isinstance(parsed.object, MemberAccess)
    assert parsed.optional
    assert not parsed.object.optional


def test_scalars_become_literals() -> None:
    assert parse_expression(3, FILE) == Literal(3)
    assert parse_expression(None, FILE) == Literal(None)


def test_new_strips_type_arguments() -> None:
    parsed = parse_expression({"type": "new", "class": "BehaviorSubject<number>", "args": [0]}, FILE)

    assert parsed == New("BehaviorSubject", (Literal(0),))


@pytest.mark.parametrize(
    "node",
    [
        {"type": "spread", "argument": "items"},
        {"type": "member", "object": {"type": "identifier", "name": "row"}, "computed": True},
        {"type": "identifier"},
        {"type": "object", "properties": [{"spread": "rest"}]},
        ["not", "a", "node"],
    ],
)
def test_unprojectable_constructs_raise(node: object) -> None:
    with pytest.raises(UnsupportedConstruct):
        parse_expression(node, FILE)


def test_unsupported_construct_carries_location() -> None:
    with pytest.raises(UnsupportedConstruct) as excinfo:
        parse_expression({"type": "spread", "loc": {"line": 9, "column": 2}}, FILE)

    assert excinfo.value.construct == "spread"
    assert excinfo.value.location == SourceLocation(FILE, 9, 2)
    assert "src/app.component.ts:9:2" in str(excinfo.value)


def test_expression_bodied_arrow_returns_its_value() -> None:
    parsed = parse_expression(lam(["x"], ident("x")), FILE)

    assert isinstance(parsed, ArrowFunction)
    assert parsed.params == ("x",)
    assert parsed.body == (ReturnStatement(Identifier("x")),)


def test_statements_wrap_bare_expressions() -> None:
    statements = parse_statements([fn("load"), {"type": "return"}], FILE)

    assert isinstance(statements[0], ExpressionStatement)
    assert statements[1] == ReturnStatement(None)
    assert parse_statements(None, FILE) == ()


def test_unknown_statement_kind_raises() -> None:
    with pytest.raises(UnsupportedConstruct, match="try"):
        parse_statement({"type": "try", "block": []}, FILE)


@pytest.mark.parametrize(
    ("data", "expected"),
    [
        ({"loc": {"line": 4, "column": 8}}, (4, 8)),
        ({"loc": [3, 1]}, (3, 1)),
        ({"line": "7"}, (7, 0)),
        ({"line": True, "column": "x"}, (0, 0)),
        ({}, (0, 0)),
    ],
)
def test_parse_location_accepts_host_spellings(data: dict, expected: tuple) -> None:
    location = parse_location(data, FILE)

    assert (location.line, location.column) == expected
    assert location.file == FILE


def test_root_helpers_strip_wrappers() -> None:
    template = parse_expression(pipe(member(ident("user"), "orders")), "app.html")
    chain = parse_expression(invoke(this_("destroy$"), "pipe", fn("take", 1)), FILE)

    assert root_of(template) == Identifier("user")
    assert root_name(chain) == "destroy$"


def test_free_identifiers_skip_arrow_parameters() -> None:
    parsed = parse_expression(arrow(["x"], binary("+", ident("x"), ident("offset"))), FILE)

    assert free_identifiers(parsed) == {"offset"}


def test_field_reads_and_writes() -> None:
    parsed = parse_expression(assign(this_("total"), binary("+", this_("subtotal"), this_("tax"))), FILE)

    assert field_reads(parsed) == {"subtotal", "tax"}
    assert set(field_writes(parsed)) == {"total"}


def test_depth_and_operator_count() -> None:
    expression = parse_expression(conditional(binary(">", ident("a"), ident("b")), ident("a"), ident("b")), FILE)

    assert depth(parse_expression(ident("a"), FILE)) == 1
    assert depth(expression) == 3
    assert operator_count(expression) == 2


def test_walk_can_stop_at_nested_functions() -> None:
    parsed = parse_expression(fn("setTimeout", arrow([], fn("refresh"))), FILE)

    def names(enter: bool) -> set:
        return {node.name for node in walk(parsed, enter_functions=enter) if isinstance(node, Identifier)}

    assert names(True) == {"setTimeout", "refresh"}
    assert names(False) == {"setTimeout"}


def test_empty_body_allows_blank_opaque_statements() -> None:
    assert is_empty_body(())
    assert is_empty_body((OpaqueStatement(""),))
    assert not is_empty_body((OpaqueStatement("debugger"),))
    assert not is_empty_body(parse_statements([fn("load")], FILE))
