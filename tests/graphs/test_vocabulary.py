from __future__ import annotations

import pytest

from rxsmells.graphs.vocabulary import DEFAULT_VOCABULARY, CALLBACKS, OBSERVER, CallSignature, Vocabulary
from rxsmells.source.ast import Call, parse_expression
from tests._fixtures.components import arrow, ident, invoke, lit, obj, this_


def _call(node: dict) -> Call:
    parsed = parse_expression(node, "src/vocab.ts")
    assert isinstance(parsed, Call)
    return parsed


def test_subscribe_matches_by_name_and_callback_shape() -> None:
    signature = DEFAULT_VOCABULARY.subscribe

    assert signature.matches(_call(invoke(ident("source"), "subscribe")))
    assert signature.matches(_call(invoke(ident("source"), "subscribe", arrow(["v"]), this_("onError"))))
    assert not signature.matches(_call(invoke(ident("source"), "subscribe", lit(1))))


def test_structural_match_needs_stream_receiver_and_inline_callback() -> None:
    signature = DEFAULT_VOCABULARY.subscribe
    listen = _call(invoke(ident("source"), "listen", arrow(["v"])))
    by_reference = _call(invoke(ident("source"), "listen", this_("onValue")))

    assert not signature.matches(listen)
    assert signature.matches(listen, receiver_is_stream=True)
    assert not signature.matches(by_reference, receiver_is_stream=True)


def test_observer_shape() -> None:
    signature = CallSignature(frozenset({"watch"}), 1, 1, OBSERVER)

    assert signature.matches(_call(invoke(ident("feed"), "watch", obj(next=arrow(["v"])))))
    assert not signature.matches(_call(invoke(ident("feed"), "watch", arrow(["v"]))))


def test_unsubscribe_takes_no_arguments() -> None:
    signature = DEFAULT_VOCABULARY.unsubscribe

    assert signature.matches(_call(invoke(this_("sub"), "unsubscribe")))
    assert not signature.matches(_call(invoke(this_("sub"), "unsubscribe", lit(True))))


def test_extended_merges_names_without_touching_the_default() -> None:
    taught = DEFAULT_VOCABULARY.extended({"subscribe": ["observe"], "sharing_operators": ["shareLatest"]})

    assert "observe" in taught.subscribe.names
    assert taught.subscribe.callback_shape == CALLBACKS
    assert "shareLatest" in taught.sharing_operators
    assert "observe" not in DEFAULT_VOCABULARY.subscribe.names
    assert DEFAULT_VOCABULARY.extended({}) is DEFAULT_VOCABULARY


@pytest.mark.parametrize("key", ["no_such_entry", "listener_release"])
def test_extended_rejects_unknown_entries(key: str) -> None:
    with pytest.raises(KeyError):
        DEFAULT_VOCABULARY.extended({key: ["x"]})


def test_entry_names_cover_sets_and_signatures() -> None:
    names = Vocabulary.entry_names()

    assert {"subscribe", "operators", "dom_globals"} <= names
    assert "listener_release" not in names


def test_type_and_collaborator_helpers() -> None:
    vocab = DEFAULT_VOCABULARY

    assert vocab.is_stream_type("Observable<User[]>")
    assert not vocab.is_stream_type("Promise<User>")
    assert not vocab.is_stream_type(None)
    assert vocab.is_http_collaborator(None, "HttpClient")
    assert vocab.is_http_collaborator("http", None)
    assert not vocab.is_http_collaborator("api", "ApiService")
    assert vocab.release_for("addEventListener") == "removeEventListener"
    assert vocab.release_for("listen") is None
