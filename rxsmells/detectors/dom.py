"""Direct platform/DOM access outside sanctioned wrapper types."""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Set, Tuple

from ..models import Finding, Severity, SourceLocation
from ..source.ast import (
    Assignment,
    Call,
    Expr,
    Identifier,
    MemberAccess,
    Node,
    This,
    VariableDeclaration,
    this_field,
    walk,
)
from ..source.model import ComponentModel
from .base import Detector, DetectorContext


class ModifyDomDirectlyDetector(Detector):
    id = "modify-dom-directly"
    title = "Direct DOM manipulation"
    default_severity = Severity.ERROR
    message_template = "Direct DOM access through '{api}'; use Renderer2 or a template binding"

    def applies_to(self, ctx: DetectorContext) -> bool:
        return ctx.component.name not in _sanctioned_types(ctx)

    def detect(self, ctx: DetectorContext) -> Iterable[Finding]:
        scan = _DomScan(ctx)
        reported: Set[SourceLocation] = set()
        for location, api in scan.run():
            if location in reported:
                continue
            reported.add(location)
            yield self.finding(ctx, location, metadata={"api": api}, api=api)


def _sanctioned_types(ctx: DetectorContext) -> FrozenSet[str]:
    extra = ctx.settings.options.get("sanctioned_wrappers") or ()
    return ctx.vocabulary.sanctioned_wrapper_types | frozenset(extra)


class _DomScan:
    """Walks class code once, tracking locals bound to DOM handles."""

    def __init__(self, ctx: DetectorContext) -> None:
        self.vocab = ctx.vocabulary
        self.sanctioned = _sanctioned_types(ctx)
        self.component: ComponentModel = ctx.component

    def run(self) -> Iterator[Tuple[SourceLocation, str]]:
        for member in self.component.members:
            if member.is_field and member.initializer is not None:
                yield from self._scan(member.initializer, {})
            elif member.is_callable:
                locals_: Dict[str, Expr] = {}
                for statement in member.body:
                    yield from self._scan(statement, locals_)

    def _scan(self, root: Node, locals_: Dict[str, Expr]) -> Iterator[Tuple[SourceLocation, str]]:
        wrapped = self._wrapper_arguments(root)
        for node in walk(root):
            if isinstance(node, VariableDeclaration) and node.init is not None:
                locals_[node.name] = node.init
            if id(node) in wrapped:
                continue
            api = self._direct_access(node, locals_)
            if api is not None:
                # one finding per statement
                yield node.loc, api
                return

    def _wrapper_arguments(self, root: Node) -> Set[int]:
        """Nodes passed as arguments to a sanctioned wrapper (``this.renderer.addClass(el, ...)``)."""
        covered: Set[int] = set()
        for node in walk(root):
            if not isinstance(node, Call) or node.receiver is None:
                continue
            name = this_field(node.receiver)
            param = self.component.injected_named(name) if name is not None else None
            if param is None or param.type_name not in self.sanctioned:
                continue
            for arg in node.args:
                covered.update(id(item) for item in walk(arg))
        return covered

    def _direct_access(self, node: Node, locals_: Dict[str, Expr]) -> Optional[str]:
        vocab = self.vocab
        if isinstance(node, MemberAccess):
            obj = node.object
            if isinstance(obj, Identifier):
                if obj.name in vocab.dom_globals and not self._shadowed(obj.name, locals_):
                    return f"{obj.name}.{node.property}"
                if obj.name == "window" and node.property in vocab.dom_window_members:
                    return f"window.{node.property}"
            if node.property in vocab.native_handle_members:
                return node.property
        if isinstance(node, Call):
            callee = node.callee
            # jQuery-style $('.selector') calls
            if isinstance(callee, Identifier) and callee.name in vocab.dom_globals:
                if not self._shadowed(callee.name, locals_):
                    return f"{callee.name}()"
            receiver = node.receiver
            if (
                isinstance(receiver, Identifier)
                and node.method_name in vocab.dom_methods
                and self._is_dom_local(receiver.name, locals_)
            ):
                return f"{receiver.name}.{node.method_name}"
        if isinstance(node, Assignment):
            target = node.target
            for item in _access_chain(target):
                if isinstance(item.object, This):
                    break
                if item.property in vocab.dom_write_members:
                    return item.property
        return None

    def _shadowed(self, name: str, locals_: Dict[str, Expr]) -> bool:
        return name in locals_

    def _is_dom_local(self, name: str, locals_: Dict[str, Expr]) -> bool:
        bound = locals_.get(name)
        if bound is None:
            return False
        for node in walk(bound):
            if isinstance(node, Identifier) and node.name in self.vocab.dom_globals:
                return True
            if isinstance(node, MemberAccess) and node.property in self.vocab.native_handle_members:
                return True
        return False


def _access_chain(node: Node) -> List[MemberAccess]:
    chain: List[MemberAccess] = []
    current: Node = node
    while isinstance(current, MemberAccess):
        chain.append(current)
        current = current.object
    return chain


__all__ = ["ModifyDomDirectlyDetector"]
