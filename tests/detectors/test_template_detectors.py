"""Tests for template-level detectors."""

from __future__ import annotations

import pytest

from rxsmells.detectors.template import logic_depth
from rxsmells.source.ast import parse_expression
from tests._fixtures.components import (
    ComponentBuilder,
    analyze,
    binary,
    call,
    conditional,
    detector_ids,
    fn,
    ident,
    invoke,
    lit,
    member,
    pipe,
    this,
)


@pytest.mark.parametrize(
    ("node", "expected"),
    [
        (ident("a"), 1),
        (member(member(member(ident("user"), "address"), "city"), "name"), 1),
        (binary("+", ident("a"), ident("b")), 2),
        (binary("+", binary("+", ident("a"), ident("b")), ident("c")), 3),
        (fn("format", member(ident("user"), "name")), 2),
    ],
)
def test_logic_depth_collapses_property_paths(node: dict, expected: int) -> None:
    assert logic_depth(parse_expression(node, "t.html")) == expected


def _template(*expressions: dict, kind: str = "interpolation") -> ComponentBuilder:
    builder = ComponentBuilder("ViewComponent")
    builder.field("count", fn("signal", lit(0)))
    for index, expression in enumerate(expressions, start=1):
        builder.binding(kind, expression, at=index)
    return builder


# -- logic-in-templates -----------------------------------------------------


def test_method_call_in_binding_is_reported() -> None:
    diagnostics = analyze(_template(fn("formatDate", ident("created"))), enabled=["logic-in-templates"])

    assert detector_ids(diagnostics) == ["logic-in-templates"]
    assert diagnostics[0].message.startswith("Binding 'interpolation' calls formatDate()")


def test_signal_reads_and_helpers_are_not_calls() -> None:
    builder = _template(fn("count"), fn("$any", ident("row")))

    assert analyze(builder, enabled=["logic-in-templates"]) == []


def test_deep_nesting_is_reported() -> None:
    nested = binary("+", binary("+", binary("+", ident("a"), ident("b")), ident("c")), ident("d"))

    diagnostics = analyze(_template(nested), enabled=["logic-in-templates"])

    assert [item.message for item in diagnostics] == [
        "Binding 'interpolation' nests 4 levels deep; precompute it in the component or a pure pipe"
    ]


def test_long_property_path_is_not_logic() -> None:
    path = member(member(member(member(ident("order"), "customer"), "address"), "city"), "name")

    assert analyze(_template(path), enabled=["logic-in-templates"]) == []


def test_operator_threshold_is_configurable() -> None:
    expression = conditional(binary(">", ident("a"), ident("b")), ident("a"), ident("b"))

    diagnostics = analyze(
        _template(expression),
        enabled=["logic-in-templates"],
        config={"detectors": {"thresholds": {"logic-in-templates": {"operators": 1}}}},
    )

    assert "uses 2 operators" in diagnostics[0].message


def test_event_bindings_are_skipped() -> None:
    builder = _template(invoke(this(), "save", ident("$event")), kind="event")

    assert analyze(builder, enabled=["logic-in-templates"]) == []


# -- default-change-detection -----------------------------------------------


def test_default_strategy_is_reported_as_info() -> None:
    diagnostics = analyze(ComponentBuilder("LegacyComponent", on_push=False), enabled=["default-change-detection"])

    assert detector_ids(diagnostics) == ["default-change-detection"]
    assert diagnostics[0].severity.value == "info"
    assert diagnostics[0].message == "LegacyComponent uses the Default change detection strategy; prefer OnPush"


def test_on_push_is_silent() -> None:
    assert analyze(ComponentBuilder("ModernComponent"), enabled=["default-change-detection"]) == []


# -- missing-trackby --------------------------------------------------------


def _repeater(expression: dict, **options: dict) -> ComponentBuilder:
    builder = ComponentBuilder("ListComponent")
    builder.binding("structural", expression, at=6, element="li", target="ngFor", options=options or None)
    return builder


def test_repeater_without_track_by_is_reported() -> None:
    diagnostics = analyze(_repeater(ident("items")), enabled=["missing-trackby"])

    assert detector_ids(diagnostics) == ["missing-trackby"]
    assert diagnostics[0].message == "Repeater over 'items' has no trackBy function"


def test_repeater_over_async_stream_names_the_stream() -> None:
    diagnostics = analyze(_repeater(pipe(ident("items$"), at=6)), enabled=["missing-trackby"])

    assert "'items$'" in diagnostics[0].message


def test_repeater_with_track_by_is_silent() -> None:
    builder = _repeater(ident("items"), trackBy=ident("trackById"))

    assert analyze(builder, enabled=["missing-trackby"]) == []


def test_non_repeater_structural_binding_is_ignored() -> None:
    builder = ComponentBuilder("GuardComponent")
    builder.binding("structural", call(ident("isReady")), at=2, target="ngIf")

    assert analyze(builder, enabled=["missing-trackby"]) == []
