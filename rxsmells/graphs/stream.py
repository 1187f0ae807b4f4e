"""Stream graph: stream-producing expressions and the sites that consume them."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from ..logging import get_logger
from ..models import SourceLocation
from ..source.ast import (
    ArrowFunction,
    Assignment,
    Call,
    Expr,
    ExpressionStatement,
    Identifier,
    IfStatement,
    LoopStatement,
    MemberAccess,
    New,
    Node,
    ObjectLiteral,
    PipeExpr,
    ReturnStatement,
    Statement,
    This,
    VariableDeclaration,
    children,
    field_reads,
    free_identifiers,
    root_of,
    this_field,
    walk,
    walk_statements,
)
from ..source.model import ACCESSOR, CONSTRUCTOR, METHOD, Binding, ComponentModel, Member
from .vocabulary import DEFAULT_VOCABULARY, Vocabulary

FIELD_PRODUCER = "field"
COMPUTED = "computed"
HTTP_CALL = "httpCall"
SUBJECT_LIKE = "subjectLike"
OTHER = "other"

MANUAL_SUBSCRIBE = "manualSubscribe"
TEMPLATE_ASYNC = "templateAsync"
CHILD_INPUT = "childInput"

TEMPLATE_SCOPE = "template"

_logger = get_logger("graphs.stream")


@dataclass(frozen=True)
class OperatorRef:
    name: str
    args: Tuple[Expr, ...] = field(default=(), compare=False)
    location: Optional[SourceLocation] = None

    @property
    def callbacks(self) -> Tuple[ArrowFunction, ...]:
        return tuple(arg for arg in self.args if isinstance(arg, ArrowFunction))


@dataclass(frozen=True)
class StreamExpr:
    """A stream-producing expression: field initializer, method return, or inline receiver."""

    id: str
    location: SourceLocation
    producer_kind: str
    origin: str
    name: Optional[str] = None
    operators: Tuple[OperatorRef, ...] = ()
    sharing_operator_present: bool = False
    upstream: Tuple[str, ...] = ()
    completes: bool = False
    expression: Optional[Expr] = field(default=None, compare=False)

    @property
    def operator_names(self) -> Tuple[str, ...]:
        return tuple(op.name for op in self.operators)

    @property
    def label(self) -> str:
        if self.name:
            return f"{self.name}()" if self.origin == "method" else self.name
        return f"stream at line {self.location.line}"


@dataclass(frozen=True)
class ConsumptionSite:
    """A place that subscribes to or renders a stream."""

    id: str
    kind: str
    stream_id: str
    location: SourceLocation
    enclosing_scope: str
    chain_operators: Tuple[OperatorRef, ...] = ()
    call: Optional[Call] = field(default=None, compare=False)
    binding_index: Optional[int] = None
    parent_site: Optional[str] = None
    callbacks: Tuple[ArrowFunction, ...] = field(default=(), compare=False)
    callback_taint: FrozenSet[str] = frozenset()
    dependencies: FrozenSet[str] = frozenset()
    alias: Optional[str] = None

    @property
    def next_callback(self) -> Optional[ArrowFunction]:
        return self.callbacks[0] if self.callbacks else None


@dataclass(frozen=True)
class AliasRead:
    """Template reference to a local alias rather than to the stream itself."""

    alias: str
    binding_index: int
    alias_binding_index: int
    location: SourceLocation


@dataclass(frozen=True)
class NestedSubscription:
    outer: ConsumptionSite
    inner: ConsumptionSite
    shared: FrozenSet[str]


class StreamGraph:
    """Per-component stream graph; read-only once built."""

    def __init__(
        self,
        component_id: str,
        streams: Mapping[str, StreamExpr],
        sites: Sequence[ConsumptionSite],
        field_streams: Mapping[str, str],
        method_streams: Mapping[str, str],
        alias_reads: Sequence[AliasRead] = (),
        vocabulary: Vocabulary = DEFAULT_VOCABULARY,
    ) -> None:
        self.component_id = component_id
        self.streams: Mapping[str, StreamExpr] = MappingProxyType(dict(streams))
        self.sites: Tuple[ConsumptionSite, ...] = tuple(sites)
        self.field_streams: Mapping[str, str] = MappingProxyType(dict(field_streams))
        self.method_streams: Mapping[str, str] = MappingProxyType(dict(method_streams))
        self.alias_reads: Tuple[AliasRead, ...] = tuple(alias_reads)
        self._vocabulary = vocabulary
        self._sites_by_id = {site.id: site for site in self.sites}

    def stream(self, stream_id: str) -> StreamExpr:
        return self.streams[stream_id]

    def stream_for_field(self, name: str) -> Optional[StreamExpr]:
        stream_id = self.field_streams.get(name)
        return self.streams.get(stream_id) if stream_id else None

    def site(self, site_id: str) -> Optional[ConsumptionSite]:
        return self._sites_by_id.get(site_id)

    def sites_for(self, stream_id: str) -> Tuple[ConsumptionSite, ...]:
        return tuple(site for site in self.sites if site.stream_id == stream_id)

    def sites_of_kind(self, kind: str) -> Tuple[ConsumptionSite, ...]:
        return tuple(site for site in self.sites if site.kind == kind)

    @property
    def manual_sites(self) -> Tuple[ConsumptionSite, ...]:
        return self.sites_of_kind(MANUAL_SUBSCRIBE)

    def nested_in(self, site_id: str) -> Tuple[ConsumptionSite, ...]:
        return tuple(site for site in self.sites if site.parent_site == site_id)

    def consumption_groups(self) -> Dict[str, Tuple[ConsumptionSite, ...]]:
        """Sites grouped by resolved stream, in order of first appearance."""
        groups: Dict[str, List[ConsumptionSite]] = {}
        for site in self.sites:
            groups.setdefault(site.stream_id, []).append(site)
        return {key: tuple(value) for key, value in groups.items()}

    def is_hot_source(self, stream: StreamExpr) -> bool:
        """Subjects without operators multicast by construction."""
        return stream.producer_kind == SUBJECT_LIKE and not stream.operators

    def multiplicity_violations(self) -> List[Tuple[StreamExpr, Tuple[ConsumptionSite, ...]]]:
        """Streams consumed at two or more sites without a sharing operator.

        Template reads of a local alias (``stream | async as value``) are
        recorded as ``AliasRead`` instead of sites, so the
        assign-to-local-and-reuse shape never reaches this grouping.
        """
        violations: List[Tuple[StreamExpr, Tuple[ConsumptionSite, ...]]] = []
        for stream_id, group in self.consumption_groups().items():
            if len(group) < 2:
                continue
            stream = self.streams[stream_id]
            if stream.sharing_operator_present or self.is_hot_source(stream):
                continue
            violations.append((stream, group))
        return violations

    def nested_violations(self) -> List[NestedSubscription]:
        nested: List[NestedSubscription] = []
        for inner in self.manual_sites:
            if inner.parent_site is None:
                continue
            outer = self._sites_by_id.get(inner.parent_site)
            if outer is None:
                continue
            shared = inner.dependencies & outer.callback_taint
            if shared:
                nested.append(NestedSubscription(outer=outer, inner=inner, shared=frozenset(shared)))
        return nested

    def upstream_chain(self, stream_id: str) -> Tuple[StreamExpr, ...]:
        """The stream followed by every stream it derives from (nearest first)."""
        ordered: List[StreamExpr] = []
        seen: Set[str] = set()
        pending = [stream_id]
        while pending:
            current = pending.pop(0)
            if current in seen or current not in self.streams:
                continue
            seen.add(current)
            stream = self.streams[current]
            ordered.append(stream)
            pending.extend(stream.upstream)
        return tuple(ordered)

    def effective_operators(self, site: ConsumptionSite) -> Tuple[OperatorRef, ...]:
        """Operators between the source and the consumer, upstream first."""
        operators: List[OperatorRef] = []
        for stream in reversed(self.upstream_chain(site.stream_id)):
            operators.extend(stream.operators)
        operators.extend(site.chain_operators)
        return tuple(operators)

    def site_completes(self, site: ConsumptionSite) -> bool:
        """True when the consumed chain is proven to complete on its own."""
        names = [op.name for op in site.chain_operators]
        if any(name in self._vocabulary.bounding_operators for name in names):
            return True
        if any(name in self._vocabulary.unbounding_operators for name in names):
            return False
        return self.streams[site.stream_id].completes


@dataclass
class _Chain:
    root: Node
    operators: List[OperatorRef]
    producer_kind: Optional[str] = None
    root_field: Optional[str] = None
    root_method: Optional[str] = None
    upstream: Tuple[str, ...] = ()
    root_completes: bool = False
    saw_pipe: bool = False

    @property
    def is_stream(self) -> bool:
        return self.saw_pipe or self.producer_kind is not None


@dataclass
class _Context:
    scope: str
    env: Dict[str, Expr]
    parent: Optional[str] = None


class StreamGraphBuilder:
    """Builds a ``StreamGraph`` for one component."""

    def __init__(
        self,
        vocabulary: Vocabulary = DEFAULT_VOCABULARY,
        *,
        known_selectors: Iterable[str] = (),
    ) -> None:
        self.vocabulary = vocabulary
        self.known_selectors = frozenset(known_selectors)

    def build(self, component: ComponentModel) -> StreamGraph:
        scan = _StreamScan(component, self.vocabulary, self.known_selectors)
        graph = scan.run()
        _logger.debug(
            "Stream graph for %s: %d streams, %d sites",
            component.name,
            len(graph.streams),
            len(graph.sites),
        )
        return graph


class _StreamScan:
    """Single-use scan state; one instance per component build."""

    def __init__(self, component: ComponentModel, vocabulary: Vocabulary, selectors: FrozenSet[str]) -> None:
        self.component = component
        self.vocab = vocabulary
        self.selectors = selectors
        self.stream_fields: Set[str] = set()
        self.stream_methods: Set[str] = set()
        self.field_sources: Dict[str, Expr] = {}
        self.connected_fields: Set[str] = set()
        self.streams: Dict[str, StreamExpr] = {}
        self.field_streams: Dict[str, str] = {}
        self.method_streams: Dict[str, str] = {}
        self.sites: List[ConsumptionSite] = []
        self.alias_reads: List[AliasRead] = []
        self._counter = 0

    def run(self) -> StreamGraph:
        self._collect_field_sources()
        self._discover_stream_members()
        self._build_member_streams()
        for member in self.component.members:
            if member.is_field and member.initializer is not None:
                self._scan_expr(member.initializer, _Context(scope=f"field:{member.name}", env={}))
            elif member.is_callable:
                scope = CONSTRUCTOR if member.kind == CONSTRUCTOR else member.name
                self._scan_statements(member.body, _Context(scope=scope, env={}))
        self._scan_template()
        return StreamGraph(
            self.component.id,
            self.streams,
            self.sites,
            self.field_streams,
            self.method_streams,
            self.alias_reads,
            self.vocab,
        )

    # -- discovery ---------------------------------------------------------

    def _collect_field_sources(self) -> None:
        for member in self.component.members:
            if member.is_field and member.initializer is not None:
                self.field_sources[member.name] = member.initializer
        for member in self.component.callables:
            for node in walk_statements(member.body):
                if isinstance(node, Assignment):
                    name = this_field(node.target)
                    if name is not None and name not in self.field_sources:
                        self.field_sources[name] = node.value
                elif isinstance(node, Call) and self.vocab.connect.matches(node):
                    name = this_field(node.receiver) if node.receiver is not None else None
                    if name is not None:
                        self.connected_fields.add(name)

    def _discover_stream_members(self) -> None:
        for member in self.component.members:
            if member.is_field and (
                self.vocab.is_stream_type(member.type_name) or member.name.endswith("$")
            ):
                self.stream_fields.add(member.name)
            elif member.kind in {METHOD, ACCESSOR} and self.vocab.is_stream_type(member.type_name):
                self.stream_methods.add(member.name)
        for name in self.field_sources:
            if name.endswith("$"):
                self.stream_fields.add(name)
        # Iterate to a fixpoint: fields derived from stream fields are streams too.
        changed = True
        while changed:
            changed = False
            for name, source in self.field_sources.items():
                if name in self.stream_fields or self._is_signal_or_io(name):
                    continue
                chain = self._chain(source, {})
                if chain is not None and chain.is_stream:
                    self.stream_fields.add(name)
                    changed = True
            for member in self.component.callables:
                if member.kind not in {METHOD, ACCESSOR} or member.name in self.stream_methods:
                    continue
                if any(chain.is_stream for chain in self._return_chains(member)):
                    self.stream_methods.add(member.name)
                    changed = True

    def _is_signal_or_io(self, name: str) -> bool:
        member = self.component.member(name)
        if member is None:
            return False
        if member.is_output:
            return False
        source = self.field_sources.get(name)
        if isinstance(source, Call) and source.method_name in self.vocab.signal_factories:
            return True
        return False

    def _return_chains(self, member: Member) -> List[_Chain]:
        chains: List[_Chain] = []
        env: Dict[str, Expr] = {}
        for node in walk_statements(member.body, enter_functions=False):
            if isinstance(node, VariableDeclaration) and node.init is not None:
                env[node.name] = node.init
            elif isinstance(node, ReturnStatement) and node.value is not None:
                chain = self._chain(node.value, env)
                if chain is not None:
                    chains.append(chain)
        return chains

    def _build_member_streams(self) -> None:
        pending = sorted(self.stream_fields)
        specs: Dict[str, Tuple[Member | None, Optional[_Chain]]] = {}
        for name in pending:
            member = self.component.member(name)
            source = self.field_sources.get(name)
            chain = self._chain(source, {}) if source is not None else None
            specs[name] = (member, chain)

        completes_memo: Dict[str, bool] = {}

        def field_completes(name: str, stack: FrozenSet[str] = frozenset()) -> bool:
            if name in completes_memo:
                return completes_memo[name]
            if name in stack or name not in specs:
                return False
            _, chain = specs[name]
            result = self._chain_completes(chain, lambda up: field_completes(up, stack | {name}))
            completes_memo[name] = result
            return result

        for name in pending:
            member, chain = specs[name]
            location = member.location if member is not None else self._location_of(self.field_sources.get(name))
            stream_id = f"{self.component.id}#{name}"
            producer = self._producer_for_field(member, chain)
            operators = tuple(chain.operators) if chain is not None else ()
            upstream = tuple(f"{self.component.id}#{up}" for up in (chain.upstream if chain else ()))
            self.streams[stream_id] = StreamExpr(
                id=stream_id,
                location=location,
                producer_kind=producer,
                origin="field",
                name=name,
                operators=operators,
                sharing_operator_present=self._sharing_present(operators, connected=name in self.connected_fields),
                upstream=upstream,
                completes=field_completes(name),
                expression=self.field_sources.get(name),
            )
            self.field_streams[name] = stream_id

        for name in sorted(self.stream_methods):
            member = self.component.member(name)
            if member is None:
                continue
            chains = self._return_chains(member)
            chain = chains[0] if chains else None
            operators = tuple(chain.operators) if chain is not None else ()
            upstream = tuple(f"{self.component.id}#{up}" for up in (chain.upstream if chain else ()))
            producer = COMPUTED
            if chain is not None and chain.producer_kind == HTTP_CALL and not chain.upstream:
                producer = HTTP_CALL
            stream_id = f"{self.component.id}#{name}()"
            self.streams[stream_id] = StreamExpr(
                id=stream_id,
                location=member.location,
                producer_kind=producer,
                origin="method",
                name=name,
                operators=operators,
                sharing_operator_present=self._sharing_present(operators),
                upstream=upstream,
                completes=bool(chains) and all(
                    self._chain_completes(item, field_completes) for item in chains
                ),
                expression=None,
            )
            self.method_streams[name] = stream_id

    def _producer_for_field(self, member: Optional[Member], chain: Optional[_Chain]) -> str:
        if chain is not None and chain.producer_kind is not None:
            return chain.producer_kind
        if member is not None and member.type_name:
            head = member.type_name.split("<", 1)[0].strip()
            if head in self.vocab.subject_types:
                return SUBJECT_LIKE
        return OTHER

    # -- chain analysis ----------------------------------------------------

    def _chain(self, expr: Optional[Expr], env: Mapping[str, Expr], depth: int = 0) -> Optional[_Chain]:
        """Unwind ``source.pipe(...).op(...)`` into its root and ordered operators."""
        if expr is None or depth > 8:
            return None
        operators: List[OperatorRef] = []
        saw_pipe = False
        current: Node = expr
        while True:
            if isinstance(current, Call) and current.receiver is not None:
                name = current.method_name or ""
                if name == "pipe":
                    operators[:0] = self._pipe_operators(current)
                    saw_pipe = True
                    current = current.receiver
                    continue
                if name in self.vocab.operators and name not in self.vocab.http_methods:
                    operators.insert(0, OperatorRef(name, current.args, current.loc))
                    current = current.receiver
                    continue
            break

        chain = _Chain(root=current, operators=operators, saw_pipe=saw_pipe)
        self._classify_root(chain, current, env, depth)
        return chain if chain.is_stream else None

    def _pipe_operators(self, call: Call) -> List[OperatorRef]:
        refs: List[OperatorRef] = []
        for arg in call.args:
            if isinstance(arg, Call) and arg.method_name:
                refs.append(OperatorRef(arg.method_name, arg.args, arg.loc))
            elif isinstance(arg, Identifier):
                refs.append(OperatorRef(arg.name, (), arg.loc))
        return refs

    def _classify_root(self, chain: _Chain, root: Node, env: Mapping[str, Expr], depth: int) -> None:
        vocab = self.vocab
        name = this_field(root)
        if name is not None:
            if name in self.stream_fields:
                chain.producer_kind = FIELD_PRODUCER
                chain.root_field = name
                chain.upstream = (name,)
            return
        if isinstance(root, MemberAccess) and (
            root.property in vocab.stream_accessors or root.property.endswith("$")
        ):
            chain.producer_kind = OTHER
            return
        if isinstance(root, New):
            if root.type_name in vocab.subject_types:
                chain.producer_kind = SUBJECT_LIKE
            return
        if isinstance(root, Identifier):
            if root.name in vocab.completing_constants:
                chain.producer_kind = OTHER
                chain.root_completes = True
                return
            bound = env.get(root.name)
            if bound is not None:
                inner = self._chain(bound, env, depth + 1)
                if inner is not None:
                    chain.operators[:0] = inner.operators
                    chain.producer_kind = inner.producer_kind or OTHER
                    chain.root_field = inner.root_field
                    chain.root_method = inner.root_method
                    chain.upstream = inner.upstream
                    chain.root_completes = inner.root_completes
                    chain.saw_pipe = chain.saw_pipe or inner.saw_pipe
            return
        if not isinstance(root, Call):
            return

        method = root.method_name
        receiver = root.receiver
        if isinstance(root.callee, Identifier):
            if method in vocab.creation_functions:
                chain.producer_kind = HTTP_CALL if method in {"ajax", "fromFetch"} else OTHER
                chain.root_completes = method in vocab.completing_creation or (
                    method == "timer" and len(root.args) <= 1
                )
                chain.upstream = self._fields_in_args(root.args)
            return
        if receiver is None:
            return
        receiver_field = this_field(receiver)
        if receiver_field is not None and method in vocab.http_methods:
            injected = self.component.injected_named(receiver_field)
            type_name = injected.type_name if injected is not None else None
            if vocab.is_http_collaborator(receiver_field, type_name):
                chain.producer_kind = HTTP_CALL
                chain.root_completes = True
                return
        if isinstance(receiver, This) and method in self.stream_methods:
            chain.producer_kind = COMPUTED
            chain.root_method = method
            return
        if method in vocab.stream_accessors:
            inner = self._chain(receiver, env, depth + 1)
            if inner is not None and inner.is_stream:
                chain.operators[:0] = inner.operators
                chain.producer_kind = inner.producer_kind
                chain.root_field = inner.root_field
                chain.upstream = inner.upstream
                return
            if receiver_field is not None and receiver_field in self.stream_fields:
                chain.producer_kind = FIELD_PRODUCER
                chain.root_field = receiver_field
                chain.upstream = (receiver_field,)
                return
            chain.producer_kind = OTHER

    def _fields_in_args(self, args: Sequence[Expr]) -> Tuple[str, ...]:
        found: List[str] = []
        for arg in args:
            for node in walk(arg, enter_functions=False):
                name = this_field(node)
                if name is not None and name in self.stream_fields and name not in found:
                    found.append(name)
        return tuple(found)

    def _chain_completes(self, chain: Optional[_Chain], upstream_completes) -> bool:  # type: ignore[no-untyped-def]
        if chain is None:
            return False
        names = [op.name for op in chain.operators]
        if any(name in self.vocab.bounding_operators for name in names):
            return True
        if any(name in self.vocab.unbounding_operators for name in names):
            return False
        if chain.producer_kind == FIELD_PRODUCER or chain.upstream:
            return bool(chain.upstream) and all(upstream_completes(name) for name in chain.upstream) and (
                chain.root_completes or chain.producer_kind == FIELD_PRODUCER
            )
        return chain.root_completes

    def _sharing_present(self, operators: Sequence[OperatorRef], *, connected: bool = False) -> bool:
        names = [op.name for op in operators]
        if any(name in self.vocab.sharing_operators for name in names):
            return True
        for index, name in enumerate(names):
            if name in self.vocab.multicast_operators:
                if connected or any(later in self.vocab.ref_count_operators for later in names[index + 1 :]):
                    return True
        return False

    # -- class code sites --------------------------------------------------

    def _scan_statements(self, statements: Sequence[Statement], ctx: _Context) -> None:
        for statement in statements:
            if isinstance(statement, VariableDeclaration):
                if statement.init is not None:
                    self._scan_expr(statement.init, ctx)
                    ctx.env[statement.name] = statement.init
            elif isinstance(statement, ExpressionStatement):
                self._scan_expr(statement.expression, ctx)
            elif isinstance(statement, ReturnStatement):
                if statement.value is not None:
                    self._scan_expr(statement.value, ctx)
            elif isinstance(statement, IfStatement):
                self._scan_expr(statement.test, ctx)
                self._scan_statements(statement.consequent, ctx)
                self._scan_statements(statement.alternate, ctx)
            elif isinstance(statement, LoopStatement):
                for header in statement.header:
                    self._scan_expr(header, ctx)
                self._scan_statements(statement.body, ctx)

    def _scan_expr(self, node: Node, ctx: _Context) -> None:
        if isinstance(node, Call) and self._is_subscribe(node, ctx.env):
            self._record_manual(node, ctx)
            return
        if isinstance(node, ArrowFunction):
            self._scan_statements(node.body, _Context(scope=ctx.scope, env=dict(ctx.env), parent=ctx.parent))
            return
        for child in children(node):
            self._scan_expr(child, ctx)

    def _is_subscribe(self, call: Call, env: Mapping[str, Expr]) -> bool:
        if call.receiver is None:
            return False
        name = call.method_name or ""
        if name == "pipe" or name in self.vocab.operators or name in self.vocab.signal_fire.names:
            return False
        if name in self.vocab.subscribe.names:
            return self.vocab.subscribe.matches(call)
        chain = self._chain(call.receiver, env)
        return self.vocab.subscribe.matches(call, receiver_is_stream=chain is not None and chain.is_stream)

    def _record_manual(self, call: Call, ctx: _Context) -> None:
        receiver = call.receiver
        assert receiver is not None
        chain = self._chain(receiver, ctx.env) or _Chain(root=receiver, operators=[])
        stream_id, chain_ops = self._resolve_stream(chain, receiver)

        callbacks = self._callbacks(call)
        params: Tuple[str, ...] = callbacks[0].params if callbacks else ()
        taint = set(params)
        if callbacks:
            taint.update(f"this.{name}" for name in self._tainted_fields(callbacks[0], set(params)))

        site = ConsumptionSite(
            id=self._next_id(MANUAL_SUBSCRIBE, call.loc),
            kind=MANUAL_SUBSCRIBE,
            stream_id=stream_id,
            location=call.loc,
            enclosing_scope=ctx.scope,
            chain_operators=chain_ops,
            call=call,
            parent_site=ctx.parent,
            callbacks=callbacks,
            callback_taint=frozenset(taint),
            dependencies=frozenset(self._dependencies(receiver, ctx.env)),
        )
        self.sites.append(site)

        self._scan_expr(receiver, ctx)
        for callback in self._all_callback_functions(call):
            inner_ctx = _Context(scope=ctx.scope, env=dict(ctx.env), parent=site.id)
            self._scan_statements(callback.body, inner_ctx)

    def _resolve_stream(self, chain: _Chain, receiver: Expr) -> Tuple[str, Tuple[OperatorRef, ...]]:
        if chain.root_field is not None and chain.root_field in self.field_streams:
            return self.field_streams[chain.root_field], tuple(chain.operators)
        if chain.root_method is not None and chain.root_method in self.method_streams:
            return self.method_streams[chain.root_method], tuple(chain.operators)
        operators = tuple(chain.operators)
        stream_id = f"{self.component.id}@{receiver.loc.line}:{receiver.loc.column}"
        if stream_id in self.streams:
            stream_id = f"{stream_id}#{self._counter}"
        upstream = tuple(f"{self.component.id}#{name}" for name in chain.upstream if name in self.field_streams)
        completes_lookup = {
            key: stream.completes for key, stream in self.streams.items()
        }
        self.streams[stream_id] = StreamExpr(
            id=stream_id,
            location=receiver.loc,
            producer_kind=chain.producer_kind or OTHER,
            origin="inline",
            operators=operators,
            sharing_operator_present=self._sharing_present(operators),
            upstream=upstream,
            completes=self._chain_completes(
                chain, lambda name: completes_lookup.get(f"{self.component.id}#{name}", False)
            ),
            expression=receiver,
        )
        return stream_id, ()

    def _callbacks(self, call: Call) -> Tuple[ArrowFunction, ...]:
        """Next/error/complete callbacks, next first."""
        if not call.args:
            return ()
        first = call.args[0]
        if isinstance(first, ObjectLiteral):
            ordered = [first.get(key) for key in ("next", "error", "complete")]
            return tuple(item for item in ordered if isinstance(item, ArrowFunction))
        return tuple(arg for arg in call.args if isinstance(arg, ArrowFunction))

    def _all_callback_functions(self, call: Call) -> List[ArrowFunction]:
        functions: List[ArrowFunction] = []
        for arg in call.args:
            if isinstance(arg, ArrowFunction):
                functions.append(arg)
            elif isinstance(arg, ObjectLiteral):
                functions.extend(value for _, value in arg.entries if isinstance(value, ArrowFunction))
        return functions

    def _tainted_fields(self, callback: ArrowFunction, tainted: Set[str]) -> Set[str]:
        """Fields assigned from the callback parameter inside the callback body."""
        fields_written: Set[str] = set()
        names = set(tainted)
        for node in walk_statements(callback.body):
            if isinstance(node, VariableDeclaration) and node.init is not None:
                if free_identifiers(node.init) & names:
                    names.add(node.name)
            elif isinstance(node, Assignment):
                target = this_field(node.target)
                if target is not None and free_identifiers(node.value) & names:
                    fields_written.add(target)
        return fields_written

    def _dependencies(self, receiver: Expr, env: Mapping[str, Expr]) -> Set[str]:
        names: Set[str] = set()
        pending = list(free_identifiers(receiver))
        names.update(f"this.{name}" for name in field_reads(receiver))
        seen: Set[str] = set()
        while pending:
            name = pending.pop()
            if name in seen:
                continue
            seen.add(name)
            names.add(name)
            bound = env.get(name)
            if bound is not None:
                pending.extend(free_identifiers(bound))
                names.update(f"this.{item}" for item in field_reads(bound))
        return names

    def _next_id(self, kind: str, loc: SourceLocation) -> str:
        self._counter += 1
        return f"{self.component.id}!{kind}:{loc.line}:{loc.column}:{self._counter}"

    def _location_of(self, expr: Optional[Expr]) -> SourceLocation:
        if expr is not None:
            return expr.loc
        return self.component.location

    # -- template sites ----------------------------------------------------

    def _scan_template(self) -> None:
        template = self.component.template
        if template is None:
            return
        for binding in template.bindings:
            if binding.is_opaque or binding.expression is None:
                continue
            aliases = template.visible_aliases(binding)
            found_async = False
            for node in walk(binding.expression):
                if isinstance(node, PipeExpr) and node.name in self.vocab.async_pipes:
                    found_async = True
                    self._record_template_async(binding, node, aliases)
            if not found_async:
                self._record_child_input(binding, aliases)

    def _record_template_async(self, binding: Binding, pipe: PipeExpr, aliases: Mapping[str, Binding]) -> None:
        inner = pipe.expression
        base = root_of(inner)
        if isinstance(base, Identifier) and base.name in aliases:
            self.alias_reads.append(
                AliasRead(
                    alias=base.name,
                    binding_index=binding.index,
                    alias_binding_index=aliases[base.name].index,
                    location=pipe.loc,
                )
            )
            return
        stream_id, chain_ops = self._resolve_template_stream(inner, base)
        self.sites.append(
            ConsumptionSite(
                id=self._next_id(TEMPLATE_ASYNC, pipe.loc),
                kind=TEMPLATE_ASYNC,
                stream_id=stream_id,
                location=pipe.loc,
                enclosing_scope=TEMPLATE_SCOPE,
                chain_operators=chain_ops,
                binding_index=binding.index,
                alias=binding.alias if binding.expression is pipe else None,
            )
        )

    def _resolve_template_stream(self, inner: Expr, base: Node) -> Tuple[str, Tuple[OperatorRef, ...]]:
        name = base.name if isinstance(base, Identifier) else this_field(base)
        member = self.component.symbols.resolve(name)
        chain = self._chain(inner, {})
        chain_ops = tuple(chain.operators) if chain is not None else ()
        if member is not None and member.is_field:
            if member.name not in self.field_streams:
                self._add_late_field_stream(member)
            return self.field_streams[member.name], chain_ops
        if member is not None and member.is_callable:
            stream_id = self.method_streams.get(member.name)
            if stream_id is not None:
                return stream_id, chain_ops
        stream_id = f"{self.component.id}@{inner.loc.line}:{inner.loc.column}"
        if stream_id in self.streams:
            stream_id = f"{stream_id}#{self._counter}"
        producer = COMPUTED if member is not None and member.is_callable else OTHER
        self.streams[stream_id] = StreamExpr(
            id=stream_id,
            location=inner.loc,
            producer_kind=producer,
            origin="inline",
            name=name,
            operators=chain_ops,
            sharing_operator_present=self._sharing_present(chain_ops),
            expression=inner,
        )
        return stream_id, ()

    def _add_late_field_stream(self, member: Member) -> None:
        stream_id = f"{self.component.id}#{member.name}"
        self.streams[stream_id] = StreamExpr(
            id=stream_id,
            location=member.location,
            producer_kind=self._producer_for_field(member, None),
            origin="field",
            name=member.name,
        )
        self.field_streams[member.name] = stream_id

    def _record_child_input(self, binding: Binding, aliases: Mapping[str, Binding]) -> None:
        if binding.kind not in {"property", "two_way"} or not self._is_child_component(binding.element):
            return
        expression = binding.expression
        if not isinstance(expression, Identifier) or expression.name in aliases:
            return
        stream_id = self.field_streams.get(expression.name)
        if stream_id is None:
            return
        self.sites.append(
            ConsumptionSite(
                id=self._next_id(CHILD_INPUT, binding.location),
                kind=CHILD_INPUT,
                stream_id=stream_id,
                location=binding.location,
                enclosing_scope=TEMPLATE_SCOPE,
                binding_index=binding.index,
            )
        )

    def _is_child_component(self, element: str) -> bool:
        if not element:
            return False
        return element in self.selectors or "-" in element


__all__ = [
    "AliasRead",
    "CHILD_INPUT",
    "COMPUTED",
    "ConsumptionSite",
    "FIELD_PRODUCER",
    "HTTP_CALL",
    "MANUAL_SUBSCRIBE",
    "NestedSubscription",
    "OTHER",
    "OperatorRef",
    "SUBJECT_LIKE",
    "StreamExpr",
    "StreamGraph",
    "StreamGraphBuilder",
    "TEMPLATE_ASYNC",
    "TEMPLATE_SCOPE",
]
