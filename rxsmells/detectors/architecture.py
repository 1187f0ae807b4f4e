"""Component-architecture detectors, including the cross-component ones."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..models import Finding, SourceLocation
from ..source.ast import Call, Expr, Identifier, New, ObjectLiteral, free_identifiers
from ..source.model import ComponentModel, Extends, Member
from .base import Detector, DetectorContext
from .queries import class_calls, collaborator_type, is_state_field, receiver_collaborator, template_names

_PRIMITIVE_TYPES = {
    "string",
    "number",
    "boolean",
    "any",
    "unknown",
    "void",
    "null",
    "undefined",
    "object",
    "Object",
    "Date",
    "bigint",
    "symbol",
}


class GodComponentDetector(Detector):
    """Components that fetch data, navigate, and own a large block of view state."""

    id = "god-component"
    title = "God component"
    default_thresholds = {"state_fields": 5}
    message_template = (
        "{component} performs network calls, {side_effect}, and owns {count} template state fields; "
        "delegate to injected services"
    )

    def detect(self, ctx: DetectorContext) -> Iterable[Finding]:
        component = ctx.component
        network = self._network_call(ctx)
        if network is None:
            return
        side_effect = self._side_effect(ctx)
        if side_effect is None:
            return
        rendered = template_names(component)
        state = [member for member in component.fields if is_state_field(member) and member.name in rendered]
        limit = ctx.settings.threshold("state_fields")
        if len(state) <= limit:
            return
        effect_kind, effect_call = side_effect
        yield self.finding(
            ctx,
            component.location,
            evidence=[network.loc, effect_call.loc, *(member.location for member in state)],
            metadata={"state_fields": [member.name for member in state], "threshold": limit},
            side_effect=effect_kind,
            count=len(state),
        )

    def _network_call(self, ctx: DetectorContext) -> Optional[Call]:
        vocab = ctx.vocabulary
        for _, call in class_calls(ctx.component):
            name = receiver_collaborator(call)
            if name is None or call.method_name not in vocab.http_methods:
                continue
            if vocab.is_http_collaborator(name, collaborator_type(ctx.component, name)):
                return call
        return None

    def _side_effect(self, ctx: DetectorContext) -> Optional[Tuple[str, Call]]:
        vocab = ctx.vocabulary
        for _, call in class_calls(ctx.component):
            name = receiver_collaborator(call)
            type_name = collaborator_type(ctx.component, name)
            if name is not None and call.method_name in vocab.navigation_methods:
                if type_name in vocab.navigation_types or name in vocab.navigation_field_names:
                    return "navigates", call
            if type_name is not None and type_name in vocab.side_effect_collaborators:
                return f"drives {type_name}", call
            receiver = call.receiver
            if isinstance(call.callee, Identifier) and call.callee.name in vocab.side_effect_globals:
                return f"calls {call.callee.name}()", call
            if isinstance(receiver, Identifier) and receiver.name in vocab.side_effect_globals:
                return f"uses {receiver.name}", call
        return None


class MixingSmartDumbDetector(Detector):
    """Components that play both the container and the presentational role."""

    id = "mixing-smart-dumb"
    title = "Mixing smart and dumb component roles"
    default_thresholds = {"outputs": 1}
    message_template = (
        "{component} injects {collaborators} and exposes {count} outputs while rendering "
        "presentation-only bindings; split it into a container and a presentational component"
    )

    def detect(self, ctx: DetectorContext) -> Iterable[Finding]:
        component = ctx.component
        vocab = ctx.vocabulary
        collaborators = [
            param
            for param in component.injected
            if param.type_name is None or param.type_name not in vocab.framework_collaborator_types
        ]
        if not collaborators:
            return
        outputs = component.outputs
        limit = ctx.settings.threshold("outputs")
        if len(outputs) <= limit:
            return
        presentational = self._presentational_bindings(component)
        if not presentational:
            return
        yield self.finding(
            ctx,
            component.location,
            evidence=[member.location for member in outputs] + presentational[:3],
            metadata={
                "collaborators": [param.name for param in collaborators],
                "outputs": [member.name for member in outputs],
                "threshold": limit,
            },
            collaborators=", ".join(param.type_name or param.name for param in collaborators),
            count=len(outputs),
        )

    def _presentational_bindings(self, component: ComponentModel) -> List[SourceLocation]:
        template = component.template
        if template is None:
            return []
        inputs = {member.name for member in component.inputs}
        found: List[SourceLocation] = []
        for binding in template.bindings:
            if binding.kind not in {"interpolation", "property", "attribute"} or binding.expression is None:
                continue
            if free_identifiers(binding.expression) & inputs:
                continue
            found.append(binding.location)
        return found


class InheritanceOverCompositionDetector(Detector):
    """Several components extend one non-framework base that owns collaborators."""

    id = "inheritance-over-composition"
    title = "Inheritance over composition"
    message_template = (
        "{component} extends '{base}', which injects {collaborators} and is shared by {count} components; "
        "inject the behavior instead"
    )

    def applies_to(self, ctx: DetectorContext) -> bool:
        return isinstance(ctx.component.base, Extends)

    def detect(self, ctx: DetectorContext) -> Iterable[Finding]:
        base = ctx.component.base
        assert isinstance(base, Extends)
        if base.class_id in ctx.vocabulary.framework_base_types:
            return
        siblings = ctx.batch.subclasses_of(base.class_id)
        if len(siblings) < 2:
            return
        injected = ctx.batch.base_injected(base.class_id)
        if not injected:
            return
        others = [component.location for component in siblings if component.id != ctx.component.id]
        support = ctx.batch.classes.get(base.class_id)
        evidence = ([support.location] if support is not None else []) + sorted(others)
        yield self.finding(
            ctx,
            ctx.component.location,
            evidence=evidence,
            metadata={"base": base.class_id, "subclasses": sorted(component.id for component in siblings)},
            base=base.class_id,
            collaborators=", ".join(sorted({param.type_name or param.name for param in injected})),
            count=len(siblings),
        )


class DuplicateStateDetector(Detector):
    """Sibling components that each own the same entity state independently."""

    id = "duplicate-state"
    title = "Duplicate state across components"
    message_template = (
        "{component} and {others} own '{field}' with the same shape; "
        "move the state into a shared injected service"
    )

    def detect(self, ctx: DetectorContext) -> Iterable[Finding]:
        component = ctx.component
        mine = _entity_fields(component, ctx)
        if not mine:
            return
        own_services = _service_types(component, ctx)
        partners: List[Tuple[ComponentModel, List[Tuple[Member, Member]]]] = []
        for other in ctx.batch.components:
            # each unordered pair belongs to the member with the smaller id
            if other.id <= component.id or not ctx.batch.are_siblings(component, other):
                continue
            if own_services & _service_types(other, ctx):
                continue
            theirs = _entity_fields(other, ctx)
            matches = [(member, theirs[shape]) for shape, member in mine.items() if shape in theirs]
            if matches:
                partners.append((other, matches))
        if not partners:
            return
        by_name = {left.name: left for _, matches in partners for left, _ in matches}
        owned = sorted(by_name.values(), key=lambda item: item.location)
        yield self.finding(
            ctx,
            owned[0].location,
            evidence=[right.location for _, matches in partners for _, right in matches],
            metadata={
                "others": [other.id for other, _ in partners],
                "fields": {
                    other.id: [(left.name, right.name) for left, right in matches]
                    for other, matches in partners
                },
            },
            others=", ".join(other.name for other, _ in partners),
            field="', '".join(member.name for member in owned),
        )


def _service_types(component: ComponentModel, ctx: DetectorContext) -> Set[str]:
    framework = ctx.vocabulary.framework_collaborator_types
    return {
        param.type_name
        for param in component.injected
        if param.type_name is not None and param.type_name not in framework
    }


def _entity_fields(component: ComponentModel, ctx: DetectorContext) -> Dict[str, Member]:
    """State fields keyed by shape, for fields initialised inside the component."""
    shapes: Dict[str, Member] = {}
    for member in component.fields:
        if not is_state_field(member) or ctx.streams.stream_for_field(member.name) is not None:
            continue
        shape = _shape(member, ctx)
        if shape is not None:
            shapes.setdefault(shape, member)
    return shapes


def _shape(member: Member, ctx: DetectorContext) -> Optional[str]:
    initializer = _unwrap_state(member.initializer, ctx)
    if isinstance(initializer, ObjectLiteral) and initializer.entries:
        return "{" + ",".join(sorted(initializer.keys)) + "}"
    if isinstance(initializer, New) and _is_entity_type(initializer.type_name, ctx):
        return initializer.type_name
    type_name = member.type_name
    if type_name:
        head = type_name.split("<", 1)[0].split("|", 1)[0].strip().rstrip("[]")
        if _is_entity_type(head, ctx) and member.initializer is not None:
            return head
    return None


def _unwrap_state(expr: Optional[Expr], ctx: DetectorContext) -> Optional[Expr]:
    # signal({...}) wraps the initial entity value
    if isinstance(expr, Call) and expr.method_name in ctx.vocabulary.signal_factories and expr.args:
        return expr.args[0]
    return expr


def _is_entity_type(type_name: str, ctx: DetectorContext) -> bool:
    if not type_name or type_name in _PRIMITIVE_TYPES:
        return False
    vocab = ctx.vocabulary
    return not (
        vocab.is_stream_type(type_name)
        or type_name in vocab.framework_collaborator_types
        or type_name in vocab.framework_base_types
    )


__all__ = [
    "DuplicateStateDetector",
    "GodComponentDetector",
    "InheritanceOverCompositionDetector",
    "MixingSmartDumbDetector",
]
