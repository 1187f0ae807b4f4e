"""Tests for component-architecture detectors."""

from __future__ import annotations

from typing import List, Sequence

from tests._fixtures.components import (
    ComponentBuilder,
    analyze,
    array,
    detector_ids,
    ident,
    invoke,
    lit,
    new,
    obj,
    param,
    this_,
)


def _god(state_fields: int, *, navigates: bool = True) -> ComponentBuilder:
    params = [param("http", "HttpClient"), param("router", "Router")]
    builder = ComponentBuilder("DashboardComponent")
    builder.constructor(params=params)
    for index in range(state_fields):
        name = f"field{index}"
        builder.field(name, lit(""))
        builder.binding("interpolation", ident(name), at=index + 1)
    builder.method("load", invoke(this_("http"), "get", lit("/api/dashboard")))
    if navigates:
        builder.method("open", invoke(this_("router"), "navigate", array(lit("/detail"))))
    return builder


# -- god-component ----------------------------------------------------------


def test_component_doing_everything_is_a_god_component() -> None:
    diagnostics = analyze(_god(6), enabled=["god-component"])

    assert detector_ids(diagnostics) == ["god-component"]
    assert diagnostics[0].line == 1
    assert "performs network calls, navigates, and owns 6 template state fields" in diagnostics[0].message


def test_state_at_the_threshold_is_not_reported() -> None:
    assert analyze(_god(5), enabled=["god-component"]) == []


def test_network_without_side_effect_is_not_reported() -> None:
    assert analyze(_god(8, navigates=False), enabled=["god-component"]) == []


def test_state_field_threshold_can_be_lowered() -> None:
    diagnostics = analyze(
        _god(3),
        enabled=["god-component"],
        config={"detectors": {"thresholds": {"god-component": 2}}},
    )

    assert detector_ids(diagnostics) == ["god-component"]


def test_storage_global_counts_as_side_effect() -> None:
    builder = _god(6, navigates=False)
    builder.method("remember", invoke(ident("localStorage"), "setItem", lit("k"), lit("v")))

    diagnostics = analyze(builder, enabled=["god-component"])

    assert "uses localStorage" in diagnostics[0].message


# -- mixing-smart-dumb ------------------------------------------------------


def _mixed(outputs: int, *, collaborators: Sequence[dict] = (param("store", "Store"),)) -> ComponentBuilder:
    builder = ComponentBuilder("ProductTileComponent")
    builder.constructor(params=list(collaborators))
    builder.field("title", lit(""))
    for index in range(outputs):
        builder.field(f"changed{index}", new("EventEmitter"), decorators=["Output"])
    builder.binding("interpolation", ident("title"), at=4)
    return builder


def test_injected_store_with_outputs_and_presentation_is_reported() -> None:
    diagnostics = analyze(_mixed(2), enabled=["mixing-smart-dumb"])

    assert detector_ids(diagnostics) == ["mixing-smart-dumb"]
    assert "injects Store and exposes 2 outputs" in diagnostics[0].message


def test_single_output_is_within_the_threshold() -> None:
    assert analyze(_mixed(1), enabled=["mixing-smart-dumb"]) == []


def test_framework_collaborators_do_not_make_a_component_smart() -> None:
    builder = _mixed(3, collaborators=[param("cdr", "ChangeDetectorRef"), param("el", "ElementRef")])

    assert analyze(builder, enabled=["mixing-smart-dumb"]) == []


# -- inheritance-over-composition -------------------------------------------


def _base_class(*params: dict) -> dict:
    return {
        "name": "BaseListComponent",
        "file": "src/base-list.ts",
        "line": 3,
        "constructor": {"line": 4, "params": list(params), "body": []},
    }


def _subclasses(count: int, base: str = "BaseListComponent") -> List[ComponentBuilder]:
    return [
        ComponentBuilder(f"List{index}Component", extends=base, selector=f"app-list-{index}")
        for index in range(count)
    ]


def test_shared_base_with_collaborators_is_reported_per_subclass() -> None:
    diagnostics = analyze(
        *_subclasses(2),
        classes=[_base_class(param("api", "ApiService"))],
        enabled=["inheritance-over-composition"],
    )

    assert detector_ids(diagnostics) == ["inheritance-over-composition"] * 2
    assert {item.component for item in diagnostics} == {"List0Component", "List1Component"}
    assert "injects ApiService and is shared by 2 components" in diagnostics[0].message
    assert diagnostics[0].evidence[0].file == "src/base-list.ts"


def test_single_subclass_is_not_reported() -> None:
    diagnostics = analyze(
        *_subclasses(1),
        classes=[_base_class(param("api", "ApiService"))],
        enabled=["inheritance-over-composition"],
    )

    assert diagnostics == []


def test_base_without_collaborators_is_not_reported() -> None:
    diagnostics = analyze(*_subclasses(3), classes=[_base_class()], enabled=["inheritance-over-composition"])

    assert diagnostics == []


def test_framework_base_types_are_ignored() -> None:
    diagnostics = analyze(*_subclasses(2, base="Directive"), enabled=["inheritance-over-composition"])

    assert diagnostics == []


# -- duplicate-state --------------------------------------------------------


def _owner(name: str, *, selector: str = "", service: str = "") -> ComponentBuilder:
    builder = ComponentBuilder(name, file=f"src/{name.lower()}.ts", selector=selector or None)
    if service:
        builder.constructor(params=[param("users", service)])
    builder.field("user", obj(name=lit(""), email=lit("")))
    return builder


def test_entity_instances_of_the_same_type_are_duplicates() -> None:
    left = ComponentBuilder("LeftComponent", file="src/left.ts")
    left.field("account", new("Account"))
    right = ComponentBuilder("RightComponent", file="src/right.ts")
    right.field("current", new("Account"))

    diagnostics = analyze(left, right, enabled=["duplicate-state"])

    assert detector_ids(diagnostics) == ["duplicate-state"]
    assert "'account'" in diagnostics[0].message


def test_every_sibling_pair_is_reported_once() -> None:
    diagnostics = analyze(
        _owner("AlphaComponent"),
        _owner("BetaComponent"),
        _owner("GammaComponent"),
        enabled=["duplicate-state"],
    )

    assert [item.component for item in diagnostics] == ["AlphaComponent", "BetaComponent"]
    alpha, beta = diagnostics
    assert alpha.message.startswith("AlphaComponent and BetaComponent, GammaComponent own 'user'")
    assert [location.file for location in alpha.evidence] == ["src/betacomponent.ts", "src/gammacomponent.ts"]
    assert beta.message.startswith("BetaComponent and GammaComponent own 'user'")
    assert [location.file for location in beta.evidence] == ["src/gammacomponent.ts"]


def test_components_sharing_a_service_are_not_duplicates() -> None:
    diagnostics = analyze(
        _owner("CardComponent", service="UserService"),
        _owner("BadgeComponent", service="UserService"),
        enabled=["duplicate-state"],
    )

    assert diagnostics == []


def test_parent_and_child_are_not_siblings() -> None:
    parent = _owner("ShellComponent", selector="app-shell")
    parent.binding("property", ident("user"), at=2, element="app-card", target="user")
    child = _owner("CardComponent", selector="app-card")

    assert analyze(parent, child, enabled=["duplicate-state"]) == []


def test_different_shapes_are_not_duplicates() -> None:
    card = _owner("CardComponent")
    other = ComponentBuilder("OrderComponent", file="src/order.ts")
    other.field("order", obj(id=lit(0), total=lit(0)))

    assert analyze(card, other, enabled=["duplicate-state"]) == []
