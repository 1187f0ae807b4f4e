from __future__ import annotations

import pytest

from rxsmells.orchestrator import Orchestrator
from tests._fixtures.components import (
    ComponentBuilder,
    arrow,
    fn,
    ident,
    invoke,
    lam,
    lit,
    new,
    pipe,
    this,
    this_,
)


@pytest.fixture
def orchestrator() -> Orchestrator:
    """Orchestrator over the default detector registry."""
    return Orchestrator()


@pytest.fixture
def journey_component() -> ComponentBuilder:
    """A derived stream consumed by one subscribe call and two template bindings."""
    builder = ComponentBuilder("JourneyComponent", file="src/journey.component.ts")
    builder.field("journeyId$", new("BehaviorSubject", lit("1")), visibility="private")
    builder.field(
        "journey$",
        invoke(
            this_("journeyId$"),
            "pipe",
            fn("switchMap", lam(["id"], invoke(this_("api"), "load", ident("id"))), at=4),
            at=4,
        ),
    )
    builder.method(
        "ngOnInit",
        invoke(this_("journey$"), "subscribe", arrow(["j"], invoke(this(), "log", ident("j"))), at=20),
    )
    builder.binding("interpolation", pipe(ident("journey$"), at=3, col=4), at=3)
    builder.binding("property", pipe(ident("journey$"), at=7, col=10), at=7, target="title")
    return builder
