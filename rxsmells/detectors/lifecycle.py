"""Detectors over the lifecycle graph: teardown, constructor work, and hooks."""

from __future__ import annotations

from typing import Iterable

from ..graphs.lifecycle import is_constructor_scope
from ..models import Finding, Severity
from ..source.ast import is_empty_body
from ..source.model import LIFECYCLE_HOOK
from .base import Detector, DetectorContext


class NotUnsubscribingDetector(Detector):
    """Long-lived manual subscriptions with no teardown reachable from destruction."""

    id = "not-unsubscribing"
    title = "Subscription is never released"
    default_severity = Severity.ERROR
    needs_full_bodies = True
    message_template = (
        "Subscription to '{stream}' in {scope} is never released: no teardown is reachable "
        "from the destroy hook and no cancellation operator is bound to destruction"
    )

    def detect(self, ctx: DetectorContext) -> Iterable[Finding]:
        for site in ctx.streams.manual_sites:
            if ctx.lifecycle.is_torn_down(site.id) or ctx.streams.site_completes(site):
                continue
            stream = ctx.streams.stream(site.stream_id)
            handle = ctx.lifecycle.handles.get(site.id)
            yield self.finding(
                ctx,
                site.location,
                evidence=[stream.location],
                metadata={
                    "stream": stream.id,
                    "producer": stream.producer_kind,
                    "handle": handle.target if handle is not None else None,
                },
                stream=stream.label,
                scope=site.enclosing_scope,
            )


class SubscribeInConstructorDetector(Detector):
    id = "subscribe-in-constructor"
    title = "Subscription started in the constructor"
    message_template = "Subscription to '{stream}' starts in {scope}; move it to an initialization hook"

    def detect(self, ctx: DetectorContext) -> Iterable[Finding]:
        for site in ctx.streams.manual_sites:
            if not is_constructor_scope(site.enclosing_scope):
                continue
            stream = ctx.streams.stream(site.stream_id)
            scope = "the constructor" if site.enclosing_scope == "constructor" else "a field initializer"
            yield self.finding(
                ctx,
                site.location,
                evidence=[stream.location],
                metadata={"stream": stream.id},
                stream=stream.label,
                scope=scope,
            )


class LeakingListenerDetector(Detector):
    id = "leaking-listener"
    title = "Listener or timer is never released"
    needs_full_bodies = True
    message_template = "'{kind}' registered in {scope} is never released from the destroy hook"

    def detect(self, ctx: DetectorContext) -> Iterable[Finding]:
        destroy_hooks = ctx.vocabulary.destroy_hooks
        for resource in ctx.lifecycle.resources:
            if resource.released or resource.scope in destroy_hooks:
                continue
            yield self.finding(
                ctx,
                resource.location,
                metadata={"event": resource.event, "handle": resource.handle_field},
                kind=resource.kind,
                scope=resource.scope,
            )


class EmptyLifecycleHookDetector(Detector):
    id = "empty-lifecycle-hook"
    title = "Empty lifecycle hook"
    default_severity = Severity.INFO
    message_template = "Lifecycle hook '{hook}' is empty; remove it"

    def detect(self, ctx: DetectorContext) -> Iterable[Finding]:
        for member in ctx.component.callables:
            if member.kind == LIFECYCLE_HOOK and is_empty_body(member.body):
                yield self.finding(ctx, member.location, hook=member.name)


__all__ = [
    "EmptyLifecycleHookDetector",
    "LeakingListenerDetector",
    "NotUnsubscribingDetector",
    "SubscribeInConstructorDetector",
]
