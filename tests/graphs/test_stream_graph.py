"""Tests for the stream graph builder."""

from __future__ import annotations

from typing import Iterable, Tuple

from rxsmells.graphs.stream import (
    CHILD_INPUT,
    HTTP_CALL,
    MANUAL_SUBSCRIBE,
    OTHER,
    TEMPLATE_ASYNC,
    StreamGraph,
    StreamGraphBuilder,
)
from rxsmells.graphs.vocabulary import DEFAULT_VOCABULARY, Vocabulary
from rxsmells.source import ComponentModel
from tests._fixtures.components import (
    ComponentBuilder,
    adapt,
    arrow,
    fn,
    ident,
    invoke,
    lam,
    lit,
    member,
    new,
    obj,
    param,
    pipe,
    ret,
    this,
    this_,
    var,
)


def _build(
    builder: ComponentBuilder,
    *,
    vocabulary: Vocabulary = DEFAULT_VOCABULARY,
    selectors: Iterable[str] = (),
) -> Tuple[ComponentModel, StreamGraph]:
    component = adapt(builder)
    return component, StreamGraphBuilder(vocabulary, known_selectors=selectors).build(component)


def _with_source(name: str = "StreamComponent") -> ComponentBuilder:
    return ComponentBuilder(name).field("source$", new("BehaviorSubject", lit(0)), visibility="private")


def test_shared_stream_with_many_consumers_has_no_violation() -> None:
    builder = _with_source()
    builder.field(
        "shared$",
        invoke(
            this_("source$"),
            "pipe",
            fn("map", lam(["v"], ident("v"))),
            fn("shareReplay", obj(bufferSize=lit(1), refCount=lit(True))),
        ),
    )
    builder.method("ngOnInit", invoke(this_("shared$"), "subscribe", arrow(["v"]), at=10))
    builder.binding("interpolation", pipe(ident("shared$"), at=2), at=2)
    builder.binding("interpolation", pipe(ident("shared$"), at=3), at=3)

    component, graph = _build(builder)

    stream_id = f"{component.id}#shared$"
    assert len(graph.sites_for(stream_id)) == 3
    assert graph.stream(stream_id).sharing_operator_present
    assert graph.multiplicity_violations() == []


def test_single_consumer_is_never_a_violation() -> None:
    builder = _with_source()
    builder.field("value$", invoke(this_("source$"), "pipe", fn("map", lam(["v"], ident("v")))))
    builder.binding("interpolation", pipe(ident("value$"), at=2), at=2)

    component, graph = _build(builder)

    assert len(graph.sites_for(f"{component.id}#value$")) == 1
    assert graph.multiplicity_violations() == []


def test_class_and_template_sites_group_under_one_stream() -> None:
    builder = _with_source()
    builder.field("value$", invoke(this_("source$"), "pipe", fn("map", lam(["v"], ident("v")))))
    builder.method("ngOnInit", invoke(this_("value$"), "subscribe", arrow(["v"]), at=10))
    builder.binding("interpolation", pipe(ident("value$"), at=2), at=2)

    component, graph = _build(builder)

    [(stream, sites)] = graph.multiplicity_violations()
    assert stream.id == f"{component.id}#value$"
    assert [site.kind for site in sites] == [MANUAL_SUBSCRIBE, TEMPLATE_ASYNC]
    assert sites[0].enclosing_scope == "ngOnInit"


def test_alias_reads_are_not_consumption_sites() -> None:
    builder = _with_source()
    builder.field("user$", invoke(this_("source$"), "pipe", fn("map", lam(["v"], ident("v")))))
    builder.binding("structural", pipe(ident("user$"), at=2), at=2, target="ngIf", alias="user")
    builder.binding("interpolation", pipe(member(ident("user"), "orders"), at=3), at=3, scope=0)

    _, graph = _build(builder)

    assert len(graph.sites) == 1
    assert graph.sites[0].alias == "user"
    [read] = graph.alias_reads
    assert (read.alias, read.binding_index, read.alias_binding_index) == ("user", 1, 0)


def test_methods_returning_streams_are_stream_producers() -> None:
    builder = ComponentBuilder("LoaderComponent")
    builder.constructor(params=[param("http", "HttpClient")])
    builder.method("load", ret(invoke(this_("http"), "get", lit("/api/items"))))
    builder.binding("interpolation", pipe(fn("load"), at=2), at=2)
    builder.binding("interpolation", pipe(fn("load"), at=3), at=3)

    component, graph = _build(builder)

    stream = graph.stream(graph.method_streams["load"])
    assert stream.id == f"{component.id}#load()"
    assert stream.label == "load()"
    assert stream.producer_kind == HTTP_CALL
    assert stream.completes
    assert [item.label for item, _ in graph.multiplicity_violations()] == ["load()"]


def test_effective_operators_run_from_source_to_consumer() -> None:
    builder = _with_source()
    builder.field("value$", invoke(this_("source$"), "pipe", fn("map", lam(["v"], ident("v")))))
    builder.method(
        "ngOnInit",
        invoke(invoke(this_("value$"), "pipe", fn("filter", lam(["v"], ident("v")))), "subscribe", at=10),
    )

    component, graph = _build(builder)

    [site] = graph.manual_sites
    assert site.stream_id == f"{component.id}#value$"
    assert [op.name for op in site.chain_operators] == ["filter"]
    assert [op.name for op in graph.effective_operators(site)] == ["map", "filter"]
    assert [stream.name for stream in graph.upstream_chain(site.stream_id)] == ["value$", "source$"]


def test_inline_receivers_become_their_own_streams() -> None:
    builder = ComponentBuilder("InlineComponent")
    builder.method("ngOnInit", invoke(fn("interval", lit(5), at=11), "subscribe", arrow(["t"]), at=11))

    component, graph = _build(builder)

    [site] = graph.manual_sites
    stream = graph.stream(site.stream_id)
    assert site.stream_id == f"{component.id}@11:0"
    assert (stream.origin, stream.producer_kind, stream.completes) == ("inline", OTHER, False)


def test_completion_is_inferred_through_field_derivations() -> None:
    builder = ComponentBuilder("CompletionComponent")
    builder.field("once$", fn("of", lit(1)))
    builder.field("ticks$", fn("interval", lit(1000)))
    builder.field("first$", invoke(this_("ticks$"), "pipe", fn("take", lit(1))))
    builder.field("derived$", invoke(this_("once$"), "pipe", fn("map", lam(["v"], ident("v")))))
    builder.field("forever$", invoke(this_("once$"), "pipe", fn("repeat")))

    _, graph = _build(builder)

    completes = {name: graph.stream_for_field(name).completes for name in graph.field_streams}
    assert completes == {
        "once$": True,
        "ticks$": False,
        "first$": True,
        "derived$": True,
        "forever$": False,
    }


def test_connected_multicast_counts_as_sharing() -> None:
    builder = _with_source()
    builder.field("hot$", invoke(this_("source$"), "pipe", fn("publish")))
    builder.method("ngOnInit", invoke(this_("hot$"), "connect"))
    builder.binding("interpolation", pipe(ident("hot$"), at=2), at=2)
    builder.binding("interpolation", pipe(ident("hot$"), at=3), at=3)

    _, graph = _build(builder)

    assert graph.stream_for_field("hot$").sharing_operator_present
    assert graph.multiplicity_violations() == []


def test_subscribe_is_recognised_structurally_and_through_vocabulary() -> None:
    builder = _with_source()
    builder.constructor(params=[param("feed", "FeedService")])
    builder.method(
        "ngOnInit",
        invoke(this_("source$"), "observe", arrow(["v"]), at=10),
        invoke(this_("feed"), "observe", arrow(["v"]), at=11),
    )

    _, default_graph = _build(builder)
    _, taught_graph = _build(builder, vocabulary=DEFAULT_VOCABULARY.extended({"subscribe": ["observe"]}))

    assert [site.location.line for site in default_graph.manual_sites] == [10]
    assert [site.location.line for site in taught_graph.manual_sites] == [10, 11]


def test_nested_subscription_dependency_follows_locals() -> None:
    builder = _with_source()
    builder.method(
        "ngOnInit",
        invoke(
            this_("source$"),
            "subscribe",
            arrow(
                ["id"],
                var("request", invoke(this(), "load", ident("id"))),
                invoke(ident("request"), "subscribe", arrow(["data"]), at=13),
            ),
            at=12,
        ),
    )

    _, graph = _build(builder)

    [nested] = graph.nested_violations()
    assert nested.shared == frozenset({"id"})
    assert nested.outer.location.line == 12
    assert nested.inner.location.line == 13
    assert graph.nested_in(nested.outer.id) == (nested.inner,)


def test_child_inputs_use_dashed_elements_and_known_selectors() -> None:
    builder = ComponentBuilder("ParentComponent")
    builder.field("items$", fn("of", lit(1)))
    builder.binding("property", ident("items$"), at=2, element="app-list", target="items")
    builder.binding("property", ident("items$"), at=3, element="summary", target="items")
    builder.binding("property", ident("items$"), at=4, element="div", target="hidden")

    _, plain = _build(builder)
    _, known = _build(builder, selectors={"summary"})

    assert [site.location.line for site in plain.sites_of_kind(CHILD_INPUT)] == [2]
    assert [site.location.line for site in known.sites_of_kind(CHILD_INPUT)] == [2, 3]
