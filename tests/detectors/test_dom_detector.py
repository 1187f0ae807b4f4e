"""Tests for the direct DOM access detector."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from rxsmells.reporting import Diagnostic
from tests._fixtures.components import (
    ComponentBuilder,
    analyze,
    assign,
    detector_ids,
    fn,
    ident,
    invoke,
    lit,
    member,
    param,
    this_,
    var,
)


def _dom(*body: dict, params: tuple = (), config: Optional[Mapping[str, Any]] = None) -> List[Diagnostic]:
    builder = ComponentBuilder("WidgetComponent")
    if params:
        builder.constructor(params=list(params))
    builder.method("ngAfterViewInit", *body)
    return analyze(builder, enabled=["modify-dom-directly"], config=config)


def test_global_document_query_is_an_error() -> None:
    diagnostics = _dom(invoke(ident("document"), "querySelector", lit(".panel"), at=15))

    assert detector_ids(diagnostics) == ["modify-dom-directly"]
    assert diagnostics[0].severity.value == "error"
    assert diagnostics[0].line == 15
    assert "'document.querySelector'" in diagnostics[0].message


def test_writing_through_native_element_is_reported() -> None:
    target = member(member(member(this_("host"), "nativeElement"), "style"), "color")

    diagnostics = _dom(assign(target, lit("red"), at=16), params=(param("host", "ElementRef"),))

    assert [item.line for item in diagnostics] == [16]


def test_jquery_call_is_reported() -> None:
    diagnostics = _dom(fn("$", lit(".panel"), at=17))

    assert "'$()'" in diagnostics[0].message


def test_one_finding_per_statement() -> None:
    statement = invoke(
        member(ident("document"), "body"),
        "appendChild",
        invoke(ident("document"), "createElement", lit("div")),
        at=18,
    )

    assert len(_dom(statement)) == 1


def test_renderer_arguments_are_sanctioned() -> None:
    diagnostics = _dom(
        invoke(this_("renderer"), "addClass", member(this_("host"), "nativeElement"), lit("active")),
        params=(param("renderer", "Renderer2"), param("host", "ElementRef")),
    )

    assert diagnostics == []


def test_configured_wrapper_types_are_sanctioned() -> None:
    body = invoke(this_("helper"), "setText", member(this_("host"), "nativeElement"), lit("hi"), at=19)
    params = (param("helper", "DomHelper"), param("host", "ElementRef"))

    assert detector_ids(_dom(body, params=params)) == ["modify-dom-directly"]
    assert _dom(body, params=params, config={"detectors": {"sanctioned_wrappers": ["DomHelper"]}}) == []


def test_shadowed_global_is_not_the_dom() -> None:
    diagnostics = _dom(
        var("document", this_("model")),
        invoke(ident("document"), "querySelector", lit("title")),
    )

    assert diagnostics == []
