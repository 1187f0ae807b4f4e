"""Helpers for writing parser-output documents in tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from rxsmells.config import config_from_mapping
from rxsmells.orchestrator import Orchestrator
from rxsmells.reporting import Diagnostic
from rxsmells.source import ComponentAdapter, ComponentModel

Node = Dict[str, Any]


def _loc(node: Node, at: Optional[int], col: int = 0) -> Node:
    if at is not None:
        node["loc"] = {"line": at, "column": col}
    return node


def ident(name: str, at: Optional[int] = None) -> Node:
    return _loc({"type": "identifier", "name": name}, at)


def this() -> Node:
    return {"type": "this"}


def member(obj: Node, prop: str, at: Optional[int] = None) -> Node:
    return _loc({"type": "member", "object": obj, "property": prop}, at)


def this_(name: str, at: Optional[int] = None) -> Node:
    """``this.<name>``"""
    return member(this(), name, at)


def call(callee: Node, *args: Node, at: Optional[int] = None, col: int = 0) -> Node:
    return _loc({"type": "call", "callee": callee, "args": list(args)}, at, col)


def invoke(receiver: Node, name: str, *args: Node, at: Optional[int] = None, col: int = 0) -> Node:
    """``receiver.name(args)``"""
    return call(member(receiver, name, at), *args, at=at, col=col)


def fn(name: str, *args: Node, at: Optional[int] = None) -> Node:
    """Free function call such as ``map(x => x)``."""
    return call(ident(name, at), *args, at=at)


def arrow(params: Sequence[str], *body: Node, at: Optional[int] = None) -> Node:
    return _loc({"type": "arrow", "params": list(params), "body": list(body)}, at)


def lam(params: Sequence[str], expression: Node) -> Node:
    """Expression-bodied arrow (``x => expr``)."""
    return {"type": "arrow", "params": list(params), "body": expression}


def assign(target: Node, value: Node, at: Optional[int] = None) -> Node:
    return _loc({"type": "assign", "target": target, "value": value}, at)


def new(type_name: str, *args: Node, at: Optional[int] = None) -> Node:
    return _loc({"type": "new", "class": type_name, "args": list(args)}, at)


def lit(value: Any) -> Node:
    return {"type": "literal", "value": value}


def obj(**properties: Node) -> Node:
    return {"type": "object", "properties": dict(properties)}


def array(*elements: Node) -> Node:
    return {"type": "array", "elements": list(elements)}


def binary(operator: str, left: Node, right: Node) -> Node:
    return {"type": "binary", "operator": operator, "left": left, "right": right}


def conditional(test: Node, consequent: Node, alternate: Node) -> Node:
    return {"type": "conditional", "test": test, "consequent": consequent, "alternate": alternate}


def pipe(expression: Node, name: str = "async", at: Optional[int] = None, col: int = 0) -> Node:
    return _loc({"type": "pipe", "expression": expression, "name": name}, at, col)


def var(name: str, init: Node, at: Optional[int] = None) -> Node:
    return _loc({"type": "var", "name": name, "init": init}, at)


def ret(value: Node) -> Node:
    return {"type": "return", "value": value}


def loop(header: Sequence[Node], *body: Node) -> Node:
    return {"type": "loop", "header": list(header), "body": list(body)}


class ComponentBuilder:
    """Fluent writer for one component entry; members get increasing line numbers."""

    def __init__(
        self,
        name: str,
        *,
        file: Optional[str] = None,
        selector: Optional[str] = None,
        on_push: bool = True,
        extends: Optional[str] = None,
        line: int = 1,
    ) -> None:
        self.name = name
        self.file = file or f"src/{name.lower()}.ts"
        self._decorator_args: Dict[str, Any] = {}
        if selector:
            self._decorator_args["selector"] = selector
        if on_push:
            self._decorator_args["changeDetection"] = "ChangeDetectionStrategy.OnPush"
        self._extends = extends
        self._line = line
        self._members: List[Node] = []
        self._constructor: Optional[Node] = None
        self._bindings: List[Node] = []

    def _next_line(self) -> int:
        self._line += 1
        return self._line

    def field(
        self,
        name: str,
        initializer: Optional[Node] = None,
        *,
        type: Optional[str] = None,
        visibility: Optional[str] = None,
        decorators: Iterable[str] = (),
        static: bool = False,
    ) -> "ComponentBuilder":
        entry: Node = {"kind": "field", "name": name, "line": self._next_line()}
        if initializer is not None:
            entry["initializer"] = initializer
        if type:
            entry["type"] = type
        if visibility:
            entry["visibility"] = visibility
        if decorators:
            entry["decorators"] = list(decorators)
        if static:
            entry["static"] = True
        self._members.append(entry)
        return self

    def method(self, name: str, *body: Node, type: Optional[str] = None, visibility: Optional[str] = None) -> "ComponentBuilder":
        entry: Node = {"kind": "method", "name": name, "line": self._next_line(), "body": list(body)}
        if type:
            entry["type"] = type
        if visibility:
            entry["visibility"] = visibility
        self._members.append(entry)
        return self

    def raw_member(self, entry: Node) -> "ComponentBuilder":
        self._members.append({"line": self._next_line(), **entry})
        return self

    def constructor(self, *body: Node, params: Sequence[Node] = ()) -> "ComponentBuilder":
        self._constructor = {"line": self._next_line(), "params": list(params), "body": list(body)}
        return self

    def binding(
        self,
        kind: str,
        expression: Optional[Node],
        *,
        at: int,
        col: int = 0,
        element: str = "div",
        target: str = "",
        alias: Optional[str] = None,
        scope: Optional[int] = None,
        options: Optional[Mapping[str, Node]] = None,
    ) -> "ComponentBuilder":
        entry: Node = {"kind": kind, "element": element, "target": target, "loc": {"line": at, "column": col}}
        if expression is not None:
            entry["expression"] = expression
        if alias:
            entry["alias"] = alias
        if scope is not None:
            entry["scope"] = scope
        if options:
            entry["options"] = dict(options)
        self._bindings.append(entry)
        return self

    def build(self) -> Node:
        data: Node = {
            "name": self.name,
            "file": self.file,
            "line": 1,
            "decorators": [{"name": "Component", "args": self._decorator_args}],
            "members": list(self._members),
        }
        if self._constructor is not None:
            data["constructor"] = self._constructor
        if self._extends:
            data["extends"] = self._extends
        if self._bindings:
            data["template"] = {"file": self.file.replace(".ts", ".html"), "bindings": list(self._bindings)}
        return data


def param(name: str, type_name: str, visibility: str = "private") -> Node:
    return {"name": name, "type": type_name, "visibility": visibility}


def document(*components: ComponentBuilder, classes: Sequence[Node] = ()) -> Node:
    return {"components": [item.build() for item in components], "classes": list(classes)}


def adapt(builder: ComponentBuilder) -> ComponentModel:
    return ComponentAdapter().adapt_component(builder.build())


def analyze(
    *components: ComponentBuilder,
    classes: Sequence[Node] = (),
    enabled: Optional[Sequence[str]] = None,
    config: Optional[Mapping[str, Any]] = None,
) -> List[Diagnostic]:
    """Run the full pipeline over the builders and return the sorted diagnostics."""
    data = dict(config or {})
    if enabled is not None:
        detectors = dict(data.get("detectors") or {})
        detectors["enabled"] = list(enabled)
        data["detectors"] = detectors
    outcome = Orchestrator().analyze_document(document(*components, classes=classes), config_from_mapping(data))
    return outcome.reporter.diagnostics()


def detector_ids(diagnostics: Iterable[Any]) -> List[str]:
    return sorted(item.detector_id for item in diagnostics)


def write_document(root: Path, relative: str, data: Any) -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


__all__ = [
    "ComponentBuilder",
    "adapt",
    "analyze",
    "arrow",
    "assign",
    "binary",
    "call",
    "conditional",
    "detector_ids",
    "document",
    "fn",
    "ident",
    "invoke",
    "lam",
    "lit",
    "loop",
    "member",
    "new",
    "obj",
    "param",
    "pipe",
    "ret",
    "this",
    "this_",
    "var",
    "write_document",
]
