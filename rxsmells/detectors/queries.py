"""Read-only queries over a component model shared by several detectors."""

from __future__ import annotations

from typing import Iterator, Optional, Set, Tuple

from ..source.ast import Call, Node, free_identifiers, this_field, walk, walk_statements
from ..source.model import CONSTRUCTOR, ComponentModel, Member


def class_nodes(component: ComponentModel) -> Iterator[Tuple[str, Node]]:
    """Every node of class code paired with its enclosing scope name."""
    for member in component.members:
        if member.is_field and member.initializer is not None:
            scope = f"field:{member.name}"
            for node in walk(member.initializer):
                yield scope, node
        elif member.is_callable:
            scope = CONSTRUCTOR if member.kind == CONSTRUCTOR else member.name
            for node in walk_statements(member.body):
                yield scope, node


def class_calls(component: ComponentModel) -> Iterator[Tuple[str, Call]]:
    for scope, node in class_nodes(component):
        if isinstance(node, Call):
            yield scope, node


def template_names(component: ComponentModel) -> Set[str]:
    """Component members referenced from any template binding."""
    names: Set[str] = set()
    template = component.template
    if template is None:
        return names
    for binding in template.bindings:
        if binding.expression is None:
            continue
        for name in free_identifiers(binding.expression):
            if name in component.symbols:
                names.add(name)
        for _, option in binding.options:
            names.update(name for name in free_identifiers(option) if name in component.symbols)
    return names


def collaborator_type(component: ComponentModel, name: Optional[str]) -> Optional[str]:
    """Type of the injected collaborator behind ``this.<name>``."""
    if name is None:
        return None
    param = component.injected_named(name)
    return param.type_name if param is not None else None


def receiver_collaborator(call: Call) -> Optional[str]:
    """Field name when ``call`` is ``this.<field>.<method>(...)``."""
    receiver = call.receiver
    return this_field(receiver) if receiver is not None else None


def is_state_field(member: Member) -> bool:
    """Plain component state: not an input, output, or injected collaborator."""
    return member.is_field and not (member.flags & {"input", "output", "injected", "view_child", "static"})


__all__ = [
    "class_calls",
    "class_nodes",
    "collaborator_type",
    "is_state_field",
    "receiver_collaborator",
    "template_names",
]
