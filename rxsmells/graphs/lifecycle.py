"""Lifecycle graph: hooks, call reachability, subscription handles, and teardowns."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from ..logging import get_logger
from ..models import SourceLocation
from ..source.ast import (
    ArrayLiteral,
    ArrowFunction,
    Assignment,
    Call,
    Identifier,
    Literal,
    LoopStatement,
    Node,
    Statement,
    This,
    VariableDeclaration,
    root_name,
    this_field,
    walk,
    walk_statements,
)
from ..source.model import CONSTRUCTOR, ComponentModel, Extends, Member
from .stream import ConsumptionSite, StreamGraph
from .vocabulary import DEFAULT_VOCABULARY, Vocabulary

UNSUBSCRIBE = "unsubscribe"
CONTAINER = "container"
SIGNAL = "signal"

DESTROY_REGISTRATION_SCOPE = "destroyRef"

_logger = get_logger("graphs.lifecycle")


@dataclass(frozen=True)
class TeardownRef:
    """A point where a held subscription (or the destruction signal) is released."""

    target_field: str
    enclosing_hook: str
    location: SourceLocation
    kind: str = UNSUBSCRIBE


@dataclass(frozen=True)
class HandleBinding:
    """Where the handle returned by a subscribe call is stored."""

    site_id: str
    field: Optional[str]
    container: Optional[str]
    location: SourceLocation

    @property
    def target(self) -> Optional[str]:
        return self.field or self.container


@dataclass(frozen=True)
class FieldLifetime:
    name: str
    assigned_in: FrozenSet[str]
    released_in: FrozenSet[str]


@dataclass(frozen=True)
class ResourceRegistration:
    """Event listener or timer registered from class code."""

    kind: str
    location: SourceLocation
    scope: str
    handle_field: Optional[str]
    event: Optional[str]
    released: bool


def is_constructor_scope(scope: str) -> bool:
    return scope == CONSTRUCTOR or scope.startswith("field:")


class LifecycleGraph:
    """Per-component lifecycle facts consulted by teardown detectors."""

    def __init__(
        self,
        component_id: str,
        hooks: Iterable[str],
        call_graph: Mapping[str, FrozenSet[str]],
        destroy_reachable: FrozenSet[str],
        hook_reach: Mapping[str, FrozenSet[str]],
        teardowns: Sequence[TeardownRef],
        handles: Mapping[str, HandleBinding],
        destruction_signals: FrozenSet[str],
        site_teardowns: Mapping[str, Tuple[TeardownRef, ...]],
        cancelled_sites: Mapping[str, str],
        lifetimes: Mapping[str, FieldLifetime],
        resources: Sequence[ResourceRegistration] = (),
    ) -> None:
        self.component_id = component_id
        self.hooks = frozenset(hooks)
        self.call_graph = MappingProxyType(dict(call_graph))
        self.destroy_reachable = destroy_reachable
        self.hook_reach = MappingProxyType(dict(hook_reach))
        self.teardowns = tuple(teardowns)
        self.handles = MappingProxyType(dict(handles))
        self.destruction_signals = destruction_signals
        self.site_teardowns = MappingProxyType(dict(site_teardowns))
        self.cancelled_sites = MappingProxyType(dict(cancelled_sites))
        self.lifetimes = MappingProxyType(dict(lifetimes))
        self.resources = tuple(resources)

    def teardowns_for(self, site_id: str) -> Tuple[TeardownRef, ...]:
        return self.site_teardowns.get(site_id, ())

    def cancellation_for(self, site_id: str) -> Optional[str]:
        """Name of the cancellation operator bound to destruction, if any."""
        return self.cancelled_sites.get(site_id)

    def is_torn_down(self, site_id: str) -> bool:
        return bool(self.teardowns_for(site_id)) or site_id in self.cancelled_sites

    def hooks_reaching(self, method: str) -> Tuple[str, ...]:
        return tuple(sorted(hook for hook, reach in self.hook_reach.items() if method in reach))


class LifecycleGraphBuilder:
    """Builds a ``LifecycleGraph`` from a component and its stream graph."""

    def __init__(self, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> None:
        self.vocabulary = vocabulary

    def build(self, component: ComponentModel, streams: StreamGraph) -> LifecycleGraph:
        vocab = self.vocabulary
        callables: Dict[str, Member] = {member.name: member for member in component.callables}
        hook_names = vocab.init_hooks | vocab.destroy_hooks
        hooks = [name for name in callables if name in hook_names]
        if component.constructor is not None:
            hooks.append(CONSTRUCTOR)

        call_graph = {name: frozenset(self._calls(member, callables)) for name, member in callables.items()}
        hook_reach = {hook: _reachable(hook, call_graph) for hook in hooks}
        destroy_reachable: Set[str] = set()
        for hook in hooks:
            if hook in vocab.destroy_hooks:
                destroy_reachable |= hook_reach[hook]

        teardowns: List[TeardownRef] = []
        for name, member in callables.items():
            teardowns.extend(self._teardowns(member.body, name))
        for member in component.fields:
            if member.initializer is not None:
                teardowns.extend(self._teardowns_in(member.initializer, f"field:{member.name}"))

        def reachable(ref: TeardownRef) -> bool:
            return ref.enclosing_hook == DESTROY_REGISTRATION_SCOPE or ref.enclosing_hook in destroy_reachable

        destruction_signals = frozenset(ref.target_field for ref in teardowns if ref.kind == SIGNAL and reachable(ref))

        sites_by_call = {id(site.call): site for site in streams.manual_sites if site.call is not None}
        handles: Dict[str, HandleBinding] = {}
        assigned: Dict[str, Set[str]] = {}
        for name, member in callables.items():
            self._collect_handles(member.body, sites_by_call, handles, assigned, name)
        for member in component.fields:
            if member.initializer is not None:
                site = sites_by_call.get(id(member.initializer))
                if site is not None:
                    handles[site.id] = HandleBinding(site.id, member.name, None, member.location)
                assigned.setdefault(member.name, set()).add(f"field:{member.name}")

        site_teardowns: Dict[str, Tuple[TeardownRef, ...]] = {}
        for site_id, handle in handles.items():
            target = handle.target
            matched = tuple(
                ref
                for ref in teardowns
                if ref.target_field == target and ref.kind in {UNSUBSCRIBE, CONTAINER} and reachable(ref)
            )
            if matched:
                site_teardowns[site_id] = matched

        cancelled: Dict[str, str] = {}
        for site in streams.manual_sites:
            operator = self._cancellation(component, streams, site, destruction_signals)
            if operator is not None:
                cancelled[site.id] = operator

        released: Dict[str, Set[str]] = {}
        for ref in teardowns:
            released.setdefault(ref.target_field, set()).add(ref.enclosing_hook)
        lifetimes = {
            name: FieldLifetime(name, frozenset(assigned.get(name, ())), frozenset(released.get(name, ())))
            for name in sorted(set(assigned) | set(released))
        }

        resources: List[ResourceRegistration] = []
        for name, member in callables.items():
            resources.extend(self._resources(member.body, name, callables, destroy_reachable))

        graph = LifecycleGraph(
            component.id,
            hooks,
            call_graph,
            frozenset(destroy_reachable),
            hook_reach,
            teardowns,
            handles,
            destruction_signals,
            site_teardowns,
            cancelled,
            lifetimes,
            resources,
        )
        _logger.debug(
            "Lifecycle graph for %s: hooks=%s, %d handles, %d teardowns",
            component.name,
            sorted(graph.hooks),
            len(handles),
            len(teardowns),
        )
        return graph

    # -- call graph --------------------------------------------------------

    def _calls(self, member: Member, callables: Mapping[str, Member]) -> Set[str]:
        called: Set[str] = set()
        for node in walk_statements(member.body):
            if isinstance(node, Call) and isinstance(node.receiver, This):
                name = node.method_name
                if name in callables and name != member.name:
                    called.add(name)
        return called

    # -- teardowns ---------------------------------------------------------

    def _teardowns(self, statements: Sequence[Statement], scope: str) -> List[TeardownRef]:
        refs: List[TeardownRef] = []
        for statement in statements:
            refs.extend(self._teardowns_in(statement, scope))
        return refs

    def _teardowns_in(self, root: Node, scope: str) -> List[TeardownRef]:
        vocab = self.vocabulary
        refs: List[TeardownRef] = []
        registrations: Set[int] = set()
        for node in walk(root):
            if isinstance(node, Call) and vocab.destroy_registration.matches(node):
                for arg in node.args:
                    if isinstance(arg, ArrowFunction):
                        registrations.add(id(arg))
                        for inner in arg.body:
                            refs.extend(self._teardowns_in(inner, DESTROY_REGISTRATION_SCOPE))
        skip = _descendant_ids(root, registrations)
        for node in walk(root):
            if id(node) in skip:
                continue
            if isinstance(node, Call):
                receiver = node.receiver
                target = this_field(receiver) if receiver is not None else None
                if target is None:
                    continue
                if vocab.unsubscribe.matches(node):
                    refs.append(TeardownRef(target, scope, node.loc, UNSUBSCRIBE))
                elif vocab.signal_fire.matches(node) and node.method_name in vocab.signal_fire.names:
                    refs.append(TeardownRef(target, scope, node.loc, SIGNAL))
                elif node.method_name == "forEach" and any(
                    isinstance(arg, ArrowFunction) and self._releases(arg) for arg in node.args
                ):
                    refs.append(TeardownRef(target, scope, node.loc, CONTAINER))
            elif isinstance(node, LoopStatement):
                for header in node.header:
                    target = next((this_field(item) for item in walk(header) if this_field(item)), None)
                    if target is not None and any(
                        isinstance(item, Call) and vocab.unsubscribe.matches(item)
                        for item in walk_statements(node.body)
                    ):
                        refs.append(TeardownRef(target, scope, node.loc, CONTAINER))
                        break
        return refs

    def _releases(self, function: ArrowFunction) -> bool:
        return any(
            isinstance(node, Call) and self.vocabulary.unsubscribe.matches(node)
            for node in walk_statements(function.body)
        )

    # -- handles -----------------------------------------------------------

    def _collect_handles(
        self,
        statements: Sequence[Statement],
        sites_by_call: Mapping[int, ConsumptionSite],
        handles: Dict[str, HandleBinding],
        assigned: Dict[str, Set[str]],
        scope: str,
    ) -> None:
        locals_: Dict[str, ConsumptionSite] = {}
        add = self.vocabulary.handle_container_add

        def site_of(expr: Optional[Node]) -> Optional[ConsumptionSite]:
            if expr is None:
                return None
            if isinstance(expr, Identifier):
                return locals_.get(expr.name)
            return sites_by_call.get(id(expr))

        for node in walk_statements(statements):
            if isinstance(node, VariableDeclaration):
                site = site_of(node.init)
                if site is not None:
                    locals_[node.name] = site
            elif isinstance(node, Assignment):
                target = this_field(node.target)
                if target is None:
                    continue
                assigned.setdefault(target, set()).add(scope)
                site = site_of(node.value)
                if site is not None:
                    handles[site.id] = HandleBinding(site.id, target, None, node.loc)
                elif isinstance(node.value, ArrayLiteral):
                    for element in node.value.elements:
                        element_site = site_of(element)
                        if element_site is not None:
                            handles[element_site.id] = HandleBinding(element_site.id, None, target, node.loc)
            elif isinstance(node, Call) and node.receiver is not None and add.matches(node):
                container = this_field(node.receiver)
                if container is None:
                    continue
                for arg in node.args:
                    site = site_of(arg)
                    if site is not None:
                        handles[site.id] = HandleBinding(site.id, None, container, node.loc)

    # -- cancellation ------------------------------------------------------

    def _cancellation(
        self,
        component: ComponentModel,
        streams: StreamGraph,
        site: ConsumptionSite,
        destruction_signals: FrozenSet[str],
    ) -> Optional[str]:
        vocab = self.vocabulary
        for operator in streams.effective_operators(site):
            if operator.name not in vocab.cancellation_operators:
                continue
            if operator.name in vocab.self_bound_cancellation:
                return operator.name
            for arg in operator.args:
                name = root_name(arg)
                if name is None:
                    continue
                if name in destruction_signals:
                    return operator.name
                # signal declared and fired by an inherited base class
                if component.member(name) is None and isinstance(component.base, Extends):
                    return operator.name
        return None

    # -- listeners and timers ---------------------------------------------

    def _resources(
        self,
        statements: Sequence[Statement],
        scope: str,
        callables: Mapping[str, Member],
        destroy_reachable: Set[str],
    ) -> List[ResourceRegistration]:
        vocab = self.vocabulary
        registrations: List[ResourceRegistration] = []
        handle_of: Dict[int, str] = {}
        for node in walk_statements(statements):
            if isinstance(node, Assignment) and isinstance(node.value, Call):
                target = this_field(node.target)
                if target is not None:
                    handle_of[id(node.value)] = target
        for node in walk_statements(statements):
            if not isinstance(node, Call) or node.method_name not in vocab.listener_register:
                continue
            kind = node.method_name or ""
            event = _literal_text(node.args[0]) if node.args and kind == "addEventListener" else None
            if kind == "listen" and len(node.args) >= 2:
                event = _literal_text(node.args[1])
            handle = handle_of.get(id(node))
            released = self._is_released(kind, event, handle, callables, destroy_reachable)
            registrations.append(ResourceRegistration(kind, node.loc, scope, handle, event, released))
        return registrations

    def _is_released(
        self,
        kind: str,
        event: Optional[str],
        handle: Optional[str],
        callables: Mapping[str, Member],
        destroy_reachable: Set[str],
    ) -> bool:
        release = self.vocabulary.release_for(kind)
        for name in destroy_reachable:
            member = callables.get(name)
            if member is None:
                continue
            for node in walk_statements(member.body):
                if not isinstance(node, Call):
                    continue
                if kind == "listen":
                    # renderer.listen returns an unlisten function stored in a field
                    if handle is not None and this_field(node.callee) == handle:
                        return True
                    continue
                if node.method_name != release:
                    continue
                if kind == "addEventListener":
                    released_event = _literal_text(node.args[0]) if node.args else None
                    if event is None or released_event is None or released_event == event:
                        return True
                elif handle is None or any(this_field(arg) == handle for arg in node.args):
                    return True
        return False


def _reachable(start: str, graph: Mapping[str, FrozenSet[str]]) -> FrozenSet[str]:
    seen = {start}
    pending = [start]
    while pending:
        current = pending.pop()
        for target in graph.get(current, frozenset()):
            if target not in seen:
                seen.add(target)
                pending.append(target)
    return frozenset(seen)


def _descendant_ids(root: Node, roots: Set[int]) -> Set[int]:
    if not roots:
        return set()
    found: Set[int] = set()
    for node in walk(root):
        if id(node) in roots:
            found.update(id(item) for item in walk(node))
    return found


def _literal_text(node: Node) -> Optional[str]:
    if isinstance(node, Literal) and isinstance(node.value, str):
        return node.value
    return None


__all__ = [
    "CONTAINER",
    "DESTROY_REGISTRATION_SCOPE",
    "FieldLifetime",
    "HandleBinding",
    "LifecycleGraph",
    "LifecycleGraphBuilder",
    "ResourceRegistration",
    "SIGNAL",
    "TeardownRef",
    "UNSUBSCRIBE",
    "is_constructor_scope",
]
