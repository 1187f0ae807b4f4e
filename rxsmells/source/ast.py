"""Language-neutral expression trees for component code and template bindings.

The external front-end parser emits nodes as JSON mappings with a ``type``
discriminator. ``parse_expression``/``parse_statements`` project them into the
frozen node classes below; node kinds without a projection raise
``UnsupportedConstruct`` so the adapter can degrade the owning member to an
opaque node.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, FrozenSet, Iterator, Mapping, Optional, Sequence, Set, Tuple, Union

from ..models import SourceLocation, UNKNOWN_LOCATION


class UnsupportedConstruct(ValueError):
    """Raised when the input uses a construct the analysis model cannot project."""

    def __init__(self, construct: str, location: SourceLocation | None = None) -> None:
        where = f" at {location}" if location is not None else ""
        super().__init__(f"Unsupported construct '{construct}'{where}")
        self.construct = construct
        self.location = location


@dataclass(frozen=True)
class Node:
    loc: SourceLocation = field(default=UNKNOWN_LOCATION, kw_only=True, compare=False)


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Identifier(Node):
    name: str


@dataclass(frozen=True)
class This(Node):
    pass


@dataclass(frozen=True)
class MemberAccess(Node):
    object: "Expr"
    property: str
    optional: bool = False


@dataclass(frozen=True)
class Call(Node):
    callee: "Expr"
    args: Tuple["Expr", ...] = ()

    @property
    def method_name(self) -> Optional[str]:
        if isinstance(self.callee, MemberAccess):
            return self.callee.property
        if isinstance(self.callee, Identifier):
            return self.callee.name
        return None

    @property
    def receiver(self) -> Optional["Expr"]:
        if isinstance(self.callee, MemberAccess):
            return self.callee.object
        return None


@dataclass(frozen=True)
class New(Node):
    type_name: str
    args: Tuple["Expr", ...] = ()


@dataclass(frozen=True)
class ArrowFunction(Node):
    params: Tuple[str, ...] = ()
    body: Tuple["Statement", ...] = ()


@dataclass(frozen=True)
class Assignment(Node):
    target: "Expr"
    value: "Expr"
    operator: str = "="


@dataclass(frozen=True)
class Literal(Node):
    value: Any = None


@dataclass(frozen=True)
class Binary(Node):
    operator: str
    left: "Expr"
    right: "Expr"


@dataclass(frozen=True)
class Unary(Node):
    operator: str
    operand: "Expr"


@dataclass(frozen=True)
class Conditional(Node):
    test: "Expr"
    consequent: "Expr"
    alternate: "Expr"


@dataclass(frozen=True)
class ObjectLiteral(Node):
    entries: Tuple[Tuple[str, "Expr"], ...] = ()

    def get(self, key: str) -> Optional["Expr"]:
        for name, value in self.entries:
            if name == key:
                return value
        return None

    @property
    def keys(self) -> FrozenSet[str]:
        return frozenset(name for name, _ in self.entries)


@dataclass(frozen=True)
class ArrayLiteral(Node):
    elements: Tuple["Expr", ...] = ()


@dataclass(frozen=True)
class PipeExpr(Node):
    """Template transform application (``value | name:arg``)."""

    expression: "Expr"
    name: str
    args: Tuple["Expr", ...] = ()


@dataclass(frozen=True)
class Opaque(Node):
    text: str = ""


Expr = Union[
    Identifier,
    This,
    MemberAccess,
    Call,
    New,
    ArrowFunction,
    Assignment,
    Literal,
    Binary,
    Unary,
    Conditional,
    ObjectLiteral,
    ArrayLiteral,
    PipeExpr,
    Opaque,
]


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExpressionStatement(Node):
    expression: Expr


@dataclass(frozen=True)
class ReturnStatement(Node):
    value: Optional[Expr] = None


@dataclass(frozen=True)
class VariableDeclaration(Node):
    name: str
    init: Optional[Expr] = None


@dataclass(frozen=True)
class IfStatement(Node):
    test: Expr
    consequent: Tuple["Statement", ...] = ()
    alternate: Tuple["Statement", ...] = ()


@dataclass(frozen=True)
class LoopStatement(Node):
    header: Tuple[Expr, ...] = ()
    body: Tuple["Statement", ...] = ()


@dataclass(frozen=True)
class OpaqueStatement(Node):
    text: str = ""


Statement = Union[
    ExpressionStatement,
    ReturnStatement,
    VariableDeclaration,
    IfStatement,
    LoopStatement,
    OpaqueStatement,
]


# ---------------------------------------------------------------------------
# Parsing from the parser's JSON contract
# ---------------------------------------------------------------------------


def parse_location(data: Mapping[str, Any], file: str) -> SourceLocation:
    """Read ``loc``/``line``/``column`` keys from a node mapping."""
    loc = data.get("loc")
    if isinstance(loc, Mapping):
        return SourceLocation(file=file, line=_as_int(loc.get("line")), column=_as_int(loc.get("column")))
    if isinstance(loc, (list, tuple)) and loc:
        column = loc[1] if len(loc) > 1 else 0
        return SourceLocation(file=file, line=_as_int(loc[0]), column=_as_int(column))
    return SourceLocation(file=file, line=_as_int(data.get("line")), column=_as_int(data.get("column")))


def parse_expression(data: Any, file: str) -> Expr:
    """Project one JSON expression node.

    A bare string is shorthand for a dotted path (``"this.http.get"``).
    """
    if isinstance(data, str):
        return _parse_path(data, SourceLocation(file=file))
    if isinstance(data, (int, float, bool)) or data is None:
        return Literal(data, loc=SourceLocation(file=file))
    if not isinstance(data, Mapping):
        raise UnsupportedConstruct(type(data).__name__)

    kind = str(data.get("type", "")).lower()
    loc = parse_location(data, file)
    parser = _EXPRESSION_PARSERS.get(kind)
    if parser is None:
        raise UnsupportedConstruct(kind or "<untyped>", loc)
    return parser(data, file, loc)


def parse_statements(data: Any, file: str) -> Tuple[Statement, ...]:
    if data is None:
        return ()
    if not isinstance(data, Sequence) or isinstance(data, (str, bytes)):
        data = [data]
    return tuple(parse_statement(item, file) for item in data)


def parse_statement(data: Any, file: str) -> Statement:
    if isinstance(data, Mapping):
        kind = str(data.get("type", "")).lower()
        loc = parse_location(data, file)
        parser = _STATEMENT_PARSERS.get(kind)
        if parser is not None:
            return parser(data, file, loc)
        if kind not in _EXPRESSION_PARSERS:
            raise UnsupportedConstruct(kind or "<untyped>", loc)
    expression = parse_expression(data, file)
    return ExpressionStatement(expression, loc=expression.loc)


def _parse_path(path: str, loc: SourceLocation) -> Expr:
    parts = [part for part in path.strip().split(".") if part]
    if not parts:
        raise UnsupportedConstruct("empty path", loc)
    head, *rest = parts
    # "a?.b": the marker makes the following access optional
    optional = head.endswith("?")
    head = head.rstrip("?")
    node: Expr = This(loc=loc) if head == "this" else Identifier(head, loc=loc)
    for part in rest:
        node = MemberAccess(node, part.rstrip("?"), optional, loc=loc)
        optional = part.endswith("?")
    return node


def _exprs(values: Any, file: str) -> Tuple[Expr, ...]:
    if values is None:
        return ()
    if not isinstance(values, Sequence) or isinstance(values, (str, bytes)):
        values = [values]
    return tuple(parse_expression(value, file) for value in values)


def _parse_identifier(data: Mapping[str, Any], file: str, loc: SourceLocation) -> Expr:
    name = data.get("name")
    if not isinstance(name, str) or not name:
        raise UnsupportedConstruct("identifier without name", loc)
    return Identifier(name, loc=loc)


def _parse_this(data: Mapping[str, Any], file: str, loc: SourceLocation) -> Expr:
    return This(loc=loc)


def _parse_member(data: Mapping[str, Any], file: str, loc: SourceLocation) -> Expr:
    prop = data.get("property")
    if not isinstance(prop, str):
        # computed access (obj[key]) has no static projection
        raise UnsupportedConstruct("computed member access", loc)
    obj = parse_expression(data.get("object"), file)
    return MemberAccess(obj, prop, bool(data.get("optional", False)), loc=loc)


def _parse_call(data: Mapping[str, Any], file: str, loc: SourceLocation) -> Expr:
    callee = parse_expression(data.get("callee"), file)
    return Call(callee, _exprs(data.get("args") or data.get("arguments"), file), loc=loc)


def _parse_new(data: Mapping[str, Any], file: str, loc: SourceLocation) -> Expr:
    type_name = data.get("class") or data.get("callee")
    if not isinstance(type_name, str):
        raise UnsupportedConstruct("new with dynamic class", loc)
    return New(_strip_generics(type_name), _exprs(data.get("args") or data.get("arguments"), file), loc=loc)


def _parse_arrow(data: Mapping[str, Any], file: str, loc: SourceLocation) -> Expr:
    params = tuple(str(param) for param in data.get("params") or ())
    body = data.get("body")
    if isinstance(body, Mapping) and str(body.get("type", "")).lower() in _EXPRESSION_PARSERS:
        value = parse_expression(body, file)
        statements: Tuple[Statement, ...] = (ReturnStatement(value, loc=value.loc),)
    elif isinstance(body, str):
        value = parse_expression(body, file)
        statements = (ReturnStatement(value, loc=value.loc),)
    else:
        statements = parse_statements(body, file)
    return ArrowFunction(params, statements, loc=loc)


def _parse_assign(data: Mapping[str, Any], file: str, loc: SourceLocation) -> Expr:
    return Assignment(
        parse_expression(data.get("target"), file),
        parse_expression(data.get("value"), file),
        str(data.get("operator", "=")),
        loc=loc,
    )


def _parse_literal(data: Mapping[str, Any], file: str, loc: SourceLocation) -> Expr:
    return Literal(data.get("value"), loc=loc)


def _parse_binary(data: Mapping[str, Any], file: str, loc: SourceLocation) -> Expr:
    return Binary(
        str(data.get("operator", "?")),
        parse_expression(data.get("left"), file),
        parse_expression(data.get("right"), file),
        loc=loc,
    )


def _parse_unary(data: Mapping[str, Any], file: str, loc: SourceLocation) -> Expr:
    return Unary(str(data.get("operator", "?")), parse_expression(data.get("operand"), file), loc=loc)


def _parse_conditional(data: Mapping[str, Any], file: str, loc: SourceLocation) -> Expr:
    return Conditional(
        parse_expression(data.get("test"), file),
        parse_expression(data.get("consequent"), file),
        parse_expression(data.get("alternate"), file),
        loc=loc,
    )


def _parse_object(data: Mapping[str, Any], file: str, loc: SourceLocation) -> Expr:
    raw = data.get("properties") or {}
    if not isinstance(raw, Mapping):
        raise UnsupportedConstruct("object literal with spread or computed keys", loc)
    entries = tuple((str(key), parse_expression(value, file)) for key, value in raw.items())
    return ObjectLiteral(entries, loc=loc)


def _parse_array(data: Mapping[str, Any], file: str, loc: SourceLocation) -> Expr:
    return ArrayLiteral(_exprs(data.get("elements"), file), loc=loc)


def _parse_pipe(data: Mapping[str, Any], file: str, loc: SourceLocation) -> Expr:
    name = data.get("name")
    if not isinstance(name, str):
        raise UnsupportedConstruct("pipe without name", loc)
    return PipeExpr(parse_expression(data.get("expression"), file), name, _exprs(data.get("args"), file), loc=loc)


def _parse_opaque(data: Mapping[str, Any], file: str, loc: SourceLocation) -> Expr:
    return Opaque(str(data.get("text", "")), loc=loc)


def _parse_expression_statement(data: Mapping[str, Any], file: str, loc: SourceLocation) -> Statement:
    return ExpressionStatement(parse_expression(data.get("expression"), file), loc=loc)


def _parse_return(data: Mapping[str, Any], file: str, loc: SourceLocation) -> Statement:
    value = data.get("value")
    return ReturnStatement(parse_expression(value, file) if value is not None else None, loc=loc)


def _parse_var(data: Mapping[str, Any], file: str, loc: SourceLocation) -> Statement:
    name = data.get("name")
    if not isinstance(name, str):
        raise UnsupportedConstruct("destructuring declaration", loc)
    init = data.get("init")
    return VariableDeclaration(name, parse_expression(init, file) if init is not None else None, loc=loc)


def _parse_if(data: Mapping[str, Any], file: str, loc: SourceLocation) -> Statement:
    return IfStatement(
        parse_expression(data.get("test"), file),
        parse_statements(data.get("consequent"), file),
        parse_statements(data.get("alternate"), file),
        loc=loc,
    )


def _parse_loop(data: Mapping[str, Any], file: str, loc: SourceLocation) -> Statement:
    return LoopStatement(_exprs(data.get("header"), file), parse_statements(data.get("body"), file), loc=loc)


def _parse_opaque_statement(data: Mapping[str, Any], file: str, loc: SourceLocation) -> Statement:
    return OpaqueStatement(str(data.get("text", "")), loc=loc)


_EXPRESSION_PARSERS: Dict[str, Callable[[Mapping[str, Any], str, SourceLocation], Expr]] = {
    "identifier": _parse_identifier,
    "this": _parse_this,
    "member": _parse_member,
    "call": _parse_call,
    "new": _parse_new,
    "arrow": _parse_arrow,
    "function": _parse_arrow,
    "assign": _parse_assign,
    "literal": _parse_literal,
    "binary": _parse_binary,
    "unary": _parse_unary,
    "conditional": _parse_conditional,
    "object": _parse_object,
    "array": _parse_array,
    "pipe": _parse_pipe,
    "opaque": _parse_opaque,
}

_STATEMENT_PARSERS: Dict[str, Callable[[Mapping[str, Any], str, SourceLocation], Statement]] = {
    "expression": _parse_expression_statement,
    "return": _parse_return,
    "var": _parse_var,
    "if": _parse_if,
    "loop": _parse_loop,
    "opaque_statement": _parse_opaque_statement,
}


def _strip_generics(type_name: str) -> str:
    return type_name.split("<", 1)[0].strip()


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return 0
    return 0


# ---------------------------------------------------------------------------
# Traversal helpers
# ---------------------------------------------------------------------------


def children(node: Node) -> Iterator[Node]:
    """Yield direct child nodes in source order."""
    for item in fields(node):
        if item.name == "loc":
            continue
        value = getattr(node, item.name)
        if isinstance(value, Node):
            yield value
        elif isinstance(value, tuple):
            for element in value:
                if isinstance(element, Node):
                    yield element
                elif isinstance(element, tuple) and len(element) == 2 and isinstance(element[1], Node):
                    yield element[1]


def walk(node: Node, *, enter_functions: bool = True) -> Iterator[Node]:
    """Pre-order traversal; optionally stop at nested arrow functions."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        if not enter_functions and isinstance(current, ArrowFunction) and current is not node:
            continue
        stack.extend(reversed(list(children(current))))


def walk_statements(statements: Sequence[Statement], *, enter_functions: bool = True) -> Iterator[Node]:
    for statement in statements:
        yield from walk(statement, enter_functions=enter_functions)


def depth(node: Node) -> int:
    """Height of the expression tree (a leaf has depth 1)."""
    nested = [depth(child) for child in children(node)]
    return 1 + (max(nested) if nested else 0)


def operator_count(node: Node) -> int:
    """Number of binary/unary/conditional operators in an expression."""
    return sum(1 for item in walk(node) if isinstance(item, (Binary, Unary, Conditional)))


def this_field(node: Node) -> Optional[str]:
    """Return ``f`` when ``node`` is exactly ``this.f``."""
    if isinstance(node, MemberAccess) and isinstance(node.object, This):
        return node.property
    return None


def root_of(node: Node) -> Node:
    """Strip member access, call and pipe wrappers down to the base expression."""
    current = node
    while True:
        if isinstance(current, MemberAccess):
            if isinstance(current.object, This):
                return current
            current = current.object
        elif isinstance(current, Call):
            current = current.callee
        elif isinstance(current, PipeExpr):
            current = current.expression
        elif isinstance(current, Unary) and current.operator == "!":
            # non-null assertion
            current = current.operand
        else:
            return current


def root_name(node: Node) -> Optional[str]:
    """Name of the identifier or ``this`` field an access chain starts from."""
    base = root_of(node)
    if isinstance(base, Identifier):
        return base.name
    return this_field(base)


def free_identifiers(node: Node) -> Set[str]:
    """Identifiers referenced in ``node`` that are not bound by a nested arrow."""
    names: Set[str] = set()
    _collect_free(node, frozenset(), names)
    return names


def _collect_free(node: Node, bound: FrozenSet[str], names: Set[str]) -> None:
    if isinstance(node, Identifier):
        if node.name not in bound:
            names.add(node.name)
        return
    if isinstance(node, ArrowFunction):
        bound = bound | frozenset(node.params)
    for child in children(node):
        _collect_free(child, bound, names)


def field_reads(node: Node) -> Set[str]:
    """``this.f`` reads in ``node`` excluding assignment targets."""
    targets = {id(item.target) for item in walk(node) if isinstance(item, Assignment)}
    reads: Set[str] = set()
    for item in walk(node):
        name = this_field(item)
        if name is not None and id(item) not in targets:
            reads.add(name)
    return reads


def field_writes(node: Node) -> Dict[str, Assignment]:
    """``this.f = ...`` assignments in ``node`` keyed by field name."""
    writes: Dict[str, Assignment] = {}
    for item in walk(node):
        if isinstance(item, Assignment):
            name = this_field(item.target)
            if name is not None and name not in writes:
                writes[name] = item
    return writes


def is_empty_body(statements: Sequence[Statement]) -> bool:
    return all(isinstance(statement, OpaqueStatement) and not statement.text for statement in statements)


__all__ = [
    "ArrayLiteral",
    "ArrowFunction",
    "Assignment",
    "Binary",
    "Call",
    "Conditional",
    "Expr",
    "ExpressionStatement",
    "Identifier",
    "IfStatement",
    "Literal",
    "LoopStatement",
    "MemberAccess",
    "New",
    "Node",
    "ObjectLiteral",
    "Opaque",
    "OpaqueStatement",
    "PipeExpr",
    "ReturnStatement",
    "Statement",
    "This",
    "Unary",
    "UnsupportedConstruct",
    "VariableDeclaration",
    "children",
    "depth",
    "field_reads",
    "field_writes",
    "free_identifiers",
    "is_empty_body",
    "operator_count",
    "parse_expression",
    "parse_location",
    "parse_statement",
    "parse_statements",
    "root_name",
    "root_of",
    "this_field",
    "walk",
    "walk_statements",
]
