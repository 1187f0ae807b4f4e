"""Canonical analysis model for components, templates, and support classes."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from ..models import SourceLocation
from .ast import Expr, Statement

FIELD = "field"
METHOD = "method"
ACCESSOR = "accessor"
LIFECYCLE_HOOK = "lifecycle_hook"
CONSTRUCTOR = "constructor"
OPAQUE = "opaque"

CALLABLE_KINDS = frozenset({METHOD, ACCESSOR, LIFECYCLE_HOOK, CONSTRUCTOR})

ON_PUSH = "OnPush"
DEFAULT_STRATEGY = "Default"


@dataclass(frozen=True)
class Parameter:
    """Constructor parameter or ``inject()``-initialised field."""

    name: str
    type_name: Optional[str] = None
    visibility: Optional[str] = None
    location: Optional[SourceLocation] = None


@dataclass(frozen=True)
class Member:
    """Field, method, lifecycle hook, constructor, or opaque class member."""

    name: str
    kind: str
    location: SourceLocation
    visibility: str = "public"
    type_name: Optional[str] = None
    flags: FrozenSet[str] = frozenset()
    initializer: Optional[Expr] = None
    params: Tuple[Parameter, ...] = ()
    body: Tuple[Statement, ...] = ()
    opaque_reason: Optional[str] = None

    @property
    def is_field(self) -> bool:
        return self.kind == FIELD

    @property
    def is_callable(self) -> bool:
        return self.kind in CALLABLE_KINDS

    @property
    def is_opaque(self) -> bool:
        return self.kind == OPAQUE

    @property
    def is_input(self) -> bool:
        return "input" in self.flags

    @property
    def is_output(self) -> bool:
        return "output" in self.flags

    @property
    def is_public(self) -> bool:
        return self.visibility == "public" and not self.name.startswith("#")


@dataclass(frozen=True)
class Binding:
    """One template binding site.

    ``scope`` is the index of the enclosing structural binding, which is how
    aliases (``*ngIf="x$ | async as x"``) are scoped.
    """

    index: int
    kind: str
    element: str
    target: str
    expression: Optional[Expr]
    location: SourceLocation
    alias: Optional[str] = None
    scope: Optional[int] = None
    options: Tuple[Tuple[str, Expr], ...] = ()
    opaque_reason: Optional[str] = None

    def option(self, name: str) -> Optional[Expr]:
        for key, value in self.options:
            if key == name:
                return value
        return None

    @property
    def is_opaque(self) -> bool:
        return self.opaque_reason is not None


@dataclass(frozen=True)
class Template:
    file: str
    bindings: Tuple[Binding, ...] = ()

    def binding(self, index: Optional[int]) -> Optional[Binding]:
        if index is None or index < 0 or index >= len(self.bindings):
            return None
        candidate = self.bindings[index]
        return candidate if candidate.index == index else None

    def scope_chain(self, binding: Binding) -> List[Binding]:
        """Enclosing structural bindings, innermost first."""
        chain: List[Binding] = []
        seen = {binding.index}
        current = self.binding(binding.scope)
        while current is not None and current.index not in seen:
            chain.append(current)
            seen.add(current.index)
            current = self.binding(current.scope)
        return chain

    def visible_aliases(self, binding: Binding) -> Dict[str, Binding]:
        """Aliases in scope for ``binding`` mapped to the binding that introduced them."""
        aliases: Dict[str, Binding] = {}
        for enclosing in self.scope_chain(binding):
            if enclosing.alias and enclosing.alias not in aliases:
                aliases[enclosing.alias] = enclosing
        return aliases

    def elements(self) -> FrozenSet[str]:
        return frozenset(binding.element for binding in self.bindings if binding.element)


@dataclass(frozen=True)
class ClassMetadata:
    """Decorator metadata reduced to the option flags detectors consume."""

    is_component: bool = True
    selector: Optional[str] = None
    change_detection: str = DEFAULT_STRATEGY
    standalone: bool = False
    decorators: Tuple[str, ...] = ()

    @property
    def on_push(self) -> bool:
        return self.change_detection == ON_PUSH


@dataclass(frozen=True)
class NoBase:
    pass


@dataclass(frozen=True)
class Extends:
    class_id: str


BaseRelation = Union[NoBase, Extends]
NO_BASE = NoBase()


class SymbolTable:
    """Names a template may reference, scoped to exactly one component."""

    def __init__(self, members: Iterable[Member]) -> None:
        table: Dict[str, Member] = {}
        for member in members:
            if member.kind == CONSTRUCTOR:
                continue
            table.setdefault(member.name, member)
        self._table = MappingProxyType(table)

    def resolve(self, name: Optional[str]) -> Optional[Member]:
        if name is None:
            return None
        return self._table.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._table

    def names(self) -> FrozenSet[str]:
        return frozenset(self._table)


@dataclass(frozen=True)
class ComponentModel:
    """Immutable projection of one component for a single analysis run."""

    id: str
    name: str
    file: str
    location: SourceLocation
    metadata: ClassMetadata
    members: Tuple[Member, ...]
    injected: Tuple[Parameter, ...] = ()
    template: Optional[Template] = None
    base: BaseRelation = NO_BASE
    symbols: SymbolTable = field(default_factory=lambda: SymbolTable(()), compare=False)

    def member(self, name: str) -> Optional[Member]:
        for member in self.members:
            if member.name == name:
                return member
        return None

    @property
    def fields(self) -> Tuple[Member, ...]:
        return tuple(member for member in self.members if member.is_field)

    @property
    def callables(self) -> Tuple[Member, ...]:
        return tuple(member for member in self.members if member.is_callable)

    @property
    def constructor(self) -> Optional[Member]:
        for member in self.members:
            if member.kind == CONSTRUCTOR:
                return member
        return None

    @property
    def opaque_members(self) -> Tuple[Member, ...]:
        return tuple(member for member in self.members if member.is_opaque)

    @property
    def has_opaque_members(self) -> bool:
        if any(member.is_opaque for member in self.members):
            return True
        if self.template is not None:
            return any(binding.is_opaque for binding in self.template.bindings)
        return False

    @property
    def inputs(self) -> Tuple[Member, ...]:
        return tuple(member for member in self.members if member.is_input)

    @property
    def outputs(self) -> Tuple[Member, ...]:
        return tuple(member for member in self.members if member.is_output)

    def injected_named(self, name: str) -> Optional[Parameter]:
        for param in self.injected:
            if param.name == name:
                return param
        return None


@dataclass(frozen=True)
class SupportClass:
    """Non-component class referenced through a base relation."""

    id: str
    name: str
    file: str
    location: SourceLocation
    injected: Tuple[Parameter, ...] = ()
    base: BaseRelation = NO_BASE
    members: Tuple[Member, ...] = ()


class AnalysisBatch:
    """Read-only cross-component index shared by every detector in a run."""

    def __init__(
        self,
        components: Sequence[ComponentModel],
        classes: Sequence[SupportClass] = (),
    ) -> None:
        self.components: Tuple[ComponentModel, ...] = tuple(components)
        self.classes: Mapping[str, SupportClass] = MappingProxyType({cls.name: cls for cls in classes})
        selectors: Dict[str, ComponentModel] = {}
        for component in self.components:
            if component.metadata.selector:
                selectors.setdefault(component.metadata.selector, component)
        self.by_selector: Mapping[str, ComponentModel] = MappingProxyType(selectors)
        self._by_id = {component.id: component for component in self.components}
        parents: Dict[str, List[str]] = {component.id: [] for component in self.components}
        for component in self.components:
            if component.template is None:
                continue
            for element in sorted(component.template.elements()):
                child = selectors.get(element)
                if child is not None and child.id != component.id and component.id not in parents[child.id]:
                    parents[child.id].append(component.id)
        self._parents = {key: tuple(value) for key, value in parents.items()}

    def component(self, component_id: str) -> Optional[ComponentModel]:
        return self._by_id.get(component_id)

    def parents_of(self, component_id: str) -> Tuple[str, ...]:
        return self._parents.get(component_id, ())

    def are_siblings(self, left: ComponentModel, right: ComponentModel) -> bool:
        """Siblings share a parent template, or both are roots of the batch."""
        if left.id == right.id:
            return False
        left_parents = set(self.parents_of(left.id))
        right_parents = set(self.parents_of(right.id))
        if not left_parents and not right_parents:
            return True
        return bool(left_parents & right_parents)

    def subclasses_of(self, class_id: str) -> Tuple[ComponentModel, ...]:
        return tuple(
            component
            for component in self.components
            if isinstance(component.base, Extends) and component.base.class_id == class_id
        )

    def base_injected(self, class_id: str) -> Tuple[Parameter, ...]:
        """Collaborators injected by ``class_id`` or any of its own ancestors."""
        collected: List[Parameter] = []
        seen: set[str] = set()
        current: Optional[str] = class_id
        while current is not None and current not in seen:
            seen.add(current)
            support = self.classes.get(current)
            if support is None:
                component = next((c for c in self.components if c.name == current), None)
                if component is None:
                    break
                collected.extend(component.injected)
                current = component.base.class_id if isinstance(component.base, Extends) else None
                continue
            collected.extend(support.injected)
            current = support.base.class_id if isinstance(support.base, Extends) else None
        return tuple(collected)


__all__ = [
    "ACCESSOR",
    "AnalysisBatch",
    "BaseRelation",
    "Binding",
    "CONSTRUCTOR",
    "ClassMetadata",
    "ComponentModel",
    "DEFAULT_STRATEGY",
    "Extends",
    "FIELD",
    "LIFECYCLE_HOOK",
    "METHOD",
    "Member",
    "NO_BASE",
    "NoBase",
    "ON_PUSH",
    "OPAQUE",
    "Parameter",
    "SupportClass",
    "SymbolTable",
    "Template",
]
