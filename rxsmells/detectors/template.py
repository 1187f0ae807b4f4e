"""Template-level detectors: binding complexity, change detection, and repeaters."""

from __future__ import annotations

from typing import Iterable, List, Optional

from ..models import Finding, Severity
from ..source.ast import (
    Call,
    Identifier,
    Literal,
    MemberAccess,
    Node,
    PipeExpr,
    This,
    children,
    operator_count,
    root_name,
    walk,
)
from ..source.model import Binding
from .base import Detector, DetectorContext


def logic_depth(node: Node) -> int:
    """Nesting depth of an expression where a property path counts as one lookup."""
    if isinstance(node, (Identifier, This, Literal)):
        return 1
    if isinstance(node, MemberAccess):
        return logic_depth(node.object)
    nested = [logic_depth(child) for child in children(node)]
    return 1 + (max(nested) if nested else 0)


class LogicInTemplatesDetector(Detector):
    id = "logic-in-templates"
    title = "Logic or function calls in templates"
    default_thresholds = {"depth": 3, "operators": 3}
    message_template = "Binding '{target}' {reason}; precompute it in the component or a pure pipe"

    def applies_to(self, ctx: DetectorContext) -> bool:
        return ctx.component.template is not None

    def detect(self, ctx: DetectorContext) -> Iterable[Finding]:
        template = ctx.component.template
        assert template is not None
        max_depth = ctx.settings.threshold("depth")
        max_operators = ctx.settings.threshold("operators")
        for binding in template.bindings:
            # event handlers are statements, not rendered values
            if binding.kind == "event" or binding.expression is None:
                continue
            expression = binding.expression
            reasons: List[str] = []
            calls = [call for call in walk(expression) if isinstance(call, Call) and _is_method_call(call, ctx)]
            if calls:
                reasons.append(f"calls {_call_label(calls[0])}")
            depth = logic_depth(expression)
            if depth > max_depth:
                reasons.append(f"nests {depth} levels deep")
            operators = operator_count(expression)
            if operators > max_operators:
                reasons.append(f"uses {operators} operators")
            if not reasons:
                continue
            yield self.finding(
                ctx,
                binding.location,
                evidence=[call.loc for call in calls],
                metadata={"depth": depth, "operators": operators, "calls": len(calls)},
                target=binding.target or binding.kind,
                reason=" and ".join(reasons),
            )


def _is_method_call(call: Call, ctx: DetectorContext) -> bool:
    """Calls other than signal reads and template helpers."""
    callee = call.callee
    if isinstance(callee, Identifier):
        if callee.name in ctx.vocabulary.template_helpers:
            return False
        member = ctx.component.symbols.resolve(callee.name)
        if member is not None and member.is_field and member.flags & {"signal", "input"}:
            return False
    return True


def _call_label(call: Call) -> str:
    name = call.method_name or root_name(call.callee) or "a function"
    return f"{name}()"


class DefaultChangeDetectionDetector(Detector):
    id = "default-change-detection"
    title = "Default change detection"
    default_severity = Severity.INFO
    message_template = "{component} uses the Default change detection strategy; prefer OnPush"

    def applies_to(self, ctx: DetectorContext) -> bool:
        return ctx.component.metadata.is_component

    def detect(self, ctx: DetectorContext) -> Iterable[Finding]:
        if not ctx.component.metadata.on_push:
            yield self.finding(ctx, ctx.component.location)


class MissingTrackByDetector(Detector):
    id = "missing-trackby"
    title = "Repeater without trackBy"
    default_severity = Severity.INFO
    message_template = "Repeater over '{items}' has no trackBy function"

    def detect(self, ctx: DetectorContext) -> Iterable[Finding]:
        template = ctx.component.template
        if template is None:
            return
        vocab = ctx.vocabulary
        for binding in template.bindings:
            if binding.kind != "structural" or binding.target not in vocab.repeater_targets:
                continue
            if any(binding.option(name) is not None for name in vocab.track_options):
                continue
            yield self.finding(ctx, binding.location, items=_items_label(binding))


def _items_label(binding: Binding) -> str:
    expression = binding.expression
    if isinstance(expression, PipeExpr):
        expression = expression.expression
    name: Optional[str] = root_name(expression) if expression is not None else None
    return name or "items"


__all__ = [
    "DefaultChangeDetectionDetector",
    "LogicInTemplatesDetector",
    "MissingTrackByDetector",
    "logic_depth",
]
