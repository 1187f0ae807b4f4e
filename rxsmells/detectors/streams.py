"""Detectors over the stream graph: sharing, nesting, and operator placement."""

from __future__ import annotations

from typing import Iterable, List, Set, Tuple

from ..graphs.stream import CHILD_INPUT, SUBJECT_LIKE, OperatorRef, StreamExpr
from ..models import Finding, Severity
from ..source.ast import (
    Assignment,
    ExpressionStatement,
    Literal,
    New,
    ObjectLiteral,
    field_reads,
    field_writes,
    free_identifiers,
    this_field,
)
from .base import Detector, DetectorContext
from .queries import template_names


class MultipleSubscriptionsDetector(Detector):
    id = "multiple-subscriptions"
    title = "Multiple subscriptions to one stream"
    message_template = "Stream '{stream}' is consumed at {count} sites without a sharing operator"

    def detect(self, ctx: DetectorContext) -> Iterable[Finding]:
        for stream, sites in ctx.streams.multiplicity_violations():
            evidence = sorted(site.location for site in sites)
            yield self.finding(
                ctx,
                stream.location,
                evidence=evidence,
                metadata={"stream": stream.id, "sites": [site.kind for site in sites]},
                stream=stream.label,
                count=len(sites),
            )


class GiveStreamsToChildrenDetector(Detector):
    id = "give-streams-to-children"
    title = "Raw stream passed to a child component"
    message_template = "Stream '{stream}' is passed unresolved to input '{target}' of <{element}>"

    def detect(self, ctx: DetectorContext) -> Iterable[Finding]:
        template = ctx.component.template
        for site in ctx.streams.sites_of_kind(CHILD_INPUT):
            stream = ctx.streams.stream(site.stream_id)
            binding = template.binding(site.binding_index) if template is not None else None
            others = [other.location for other in ctx.streams.sites_for(stream.id) if other.id != site.id]
            yield self.finding(
                ctx,
                site.location,
                evidence=[stream.location, *sorted(others)],
                metadata={"stream": stream.id, "shared": stream.sharing_operator_present},
                stream=stream.label,
                target=binding.target if binding is not None else "?",
                element=binding.element if binding is not None else "?",
            )


class NestedSubscriptionsDetector(Detector):
    id = "nested-subscriptions"
    title = "Nested subscriptions"
    message_template = (
        "Subscription nested in another subscription's callback depends on {names}; "
        "compose the streams with a flattening operator instead"
    )

    def detect(self, ctx: DetectorContext) -> Iterable[Finding]:
        for nested in ctx.streams.nested_violations():
            names = ", ".join(f"'{name}'" for name in sorted(nested.shared))
            yield self.finding(
                ctx,
                nested.inner.location,
                evidence=[nested.outer.location, nested.inner.location],
                metadata={"outer": nested.outer.id, "inner": nested.inner.id, "shared": sorted(nested.shared)},
                names=names,
            )


class ManualSubscriptionDetector(Detector):
    """Subscriptions whose callback only copies emitted values into template state."""

    id = "manual-subscription"
    title = "Manual subscription for template state"
    default_severity = Severity.INFO
    message_template = "Subscription to '{stream}' only copies values into {fields}; bind the stream with the async pipe"

    def detect(self, ctx: DetectorContext) -> Iterable[Finding]:
        rendered = template_names(ctx.component)
        if not rendered:
            return
        for site in ctx.streams.manual_sites:
            callback = site.next_callback
            if callback is None or not callback.body:
                continue
            params = set(callback.params)
            copied: List[str] = []
            for statement in callback.body:
                expression = statement.expression if isinstance(statement, ExpressionStatement) else None
                if not isinstance(expression, Assignment):
                    copied = []
                    break
                target = this_field(expression.target)
                if target is None or target not in rendered:
                    copied = []
                    break
                if field_reads(expression.value) or not free_identifiers(expression.value) <= params:
                    copied = []
                    break
                copied.append(target)
            if not copied:
                continue
            stream = ctx.streams.stream(site.stream_id)
            yield self.finding(
                ctx,
                site.location,
                evidence=[stream.location],
                metadata={"fields": copied},
                stream=stream.label,
                fields=", ".join(f"'{name}'" for name in copied),
            )


class TakeUntilNotLastDetector(Detector):
    id = "takeuntil-not-last"
    title = "Cancellation operator is not last"
    message_template = "'{operator}' follows '{cancel}' and keeps subscribing after cancellation"

    def detect(self, ctx: DetectorContext) -> Iterable[Finding]:
        vocab = ctx.vocabulary
        seen: Set[str] = set()
        for site in ctx.streams.manual_sites:
            operators = ctx.streams.effective_operators(site)
            cancel_index = None
            for index, operator in enumerate(operators):
                if operator.name in vocab.cancellation_operators:
                    cancel_index = index
            if cancel_index is None:
                continue
            cancel = operators[cancel_index]
            unsafe = [
                operator
                for operator in operators[cancel_index + 1 :]
                if operator.name not in vocab.safe_after_cancellation
                and operator.name not in vocab.cancellation_operators
            ]
            if not unsafe:
                continue
            location = cancel.location or site.location
            if str(location) in seen:
                continue
            seen.add(str(location))
            yield self.finding(
                ctx,
                location,
                evidence=[op.location for op in unsafe if op.location is not None] or [site.location],
                metadata={"unsafe": [op.name for op in unsafe]},
                operator=unsafe[0].name,
                cancel=cancel.name,
            )


class UnboundedReplayDetector(Detector):
    id = "unbounded-replay"
    title = "shareReplay without refCount"
    message_template = (
        "'{operator}' on '{stream}' keeps the source subscribed forever; "
        "pass {{refCount: true}} or bound the source"
    )

    def detect(self, ctx: DetectorContext) -> Iterable[Finding]:
        vocab = ctx.vocabulary
        for stream in ctx.streams.streams.values():
            if stream.completes:
                continue
            for operator in stream.operators:
                if operator.name in vocab.replay_operators and not _has_ref_count(operator):
                    yield self.finding(
                        ctx,
                        operator.location or stream.location,
                        evidence=[stream.location],
                        metadata={"stream": stream.id},
                        operator=operator.name,
                        stream=stream.label,
                    )


def _has_ref_count(operator: OperatorRef) -> bool:
    for arg in operator.args:
        if isinstance(arg, ObjectLiteral):
            value = arg.get("refCount")
            if isinstance(value, Literal) and value.value is True:
                return True
    return False


class StatefulStreamsDetector(Detector):
    """Side-effect steps that stash values in fields for a later step to read."""

    id = "stateful-streams"
    title = "Stateful stream pipeline"
    message_template = "'{writer}' writes '{field}' which a later '{reader}' step reads; carry the value in the emission"

    def detect(self, ctx: DetectorContext) -> Iterable[Finding]:
        chains: List[Tuple[OperatorRef, ...]] = [stream.operators for stream in ctx.streams.streams.values()]
        chains.extend(site.chain_operators for site in ctx.streams.sites if site.chain_operators)
        reported: Set[str] = set()
        for operators in chains:
            for index, writer in enumerate(operators):
                if writer.name not in ctx.vocabulary.side_effect_operators:
                    continue
                written: Set[str] = set()
                for arg in writer.args:
                    written.update(field_writes(arg))
                if not written:
                    continue
                for reader in operators[index + 1 :]:
                    read: Set[str] = set()
                    for arg in reader.args:
                        read.update(field_reads(arg))
                    shared = sorted(written & read)
                    location = writer.location
                    if not shared or location is None or str(location) in reported:
                        continue
                    reported.add(str(location))
                    yield self.finding(
                        ctx,
                        location,
                        evidence=[reader.location] if reader.location is not None else [],
                        metadata={"fields": shared, "reader": reader.name},
                        writer=writer.name,
                        field=shared[0],
                        reader=reader.name,
                    )


class ExposedSubjectDetector(Detector):
    id = "exposed-subject"
    title = "Public subject field"
    default_severity = Severity.INFO
    message_template = "Subject '{field}' is public; expose it through asObservable() and keep the subject private"

    def detect(self, ctx: DetectorContext) -> Iterable[Finding]:
        for member in ctx.component.fields:
            if not member.is_public or member.is_output or member.is_input:
                continue
            stream = ctx.streams.stream_for_field(member.name)
            if stream is None or not _is_subject(stream):
                continue
            yield self.finding(ctx, member.location, metadata={"stream": stream.id}, field=member.name)


def _is_subject(stream: StreamExpr) -> bool:
    if stream.operators or stream.producer_kind != SUBJECT_LIKE:
        return False
    expression = stream.expression
    if isinstance(expression, New):
        return expression.type_name != "EventEmitter"
    return True


__all__ = [
    "ExposedSubjectDetector",
    "GiveStreamsToChildrenDetector",
    "ManualSubscriptionDetector",
    "MultipleSubscriptionsDetector",
    "NestedSubscriptionsDetector",
    "StatefulStreamsDetector",
    "TakeUntilNotLastDetector",
    "UnboundedReplayDetector",
]
