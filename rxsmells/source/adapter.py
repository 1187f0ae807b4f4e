"""Projection of parser JSON documents into the canonical component model."""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from ..graphs.vocabulary import DEFAULT_VOCABULARY, Vocabulary
from ..logging import get_logger
from ..models import SourceLocation
from .ast import (
    Call,
    Expr,
    Identifier,
    Literal,
    MemberAccess,
    UnsupportedConstruct,
    parse_expression,
    parse_location,
    parse_statements,
)
from .model import (
    ACCESSOR,
    CONSTRUCTOR,
    DEFAULT_STRATEGY,
    FIELD,
    LIFECYCLE_HOOK,
    METHOD,
    NO_BASE,
    ON_PUSH,
    OPAQUE,
    BaseRelation,
    Binding,
    ClassMetadata,
    ComponentModel,
    Extends,
    Member,
    Parameter,
    SupportClass,
    SymbolTable,
    Template,
)

_logger = get_logger("source.adapter")

_MEMBER_KINDS = {
    "field": FIELD,
    "property": FIELD,
    "method": METHOD,
    "getter": ACCESSOR,
    "setter": ACCESSOR,
    "accessor": ACCESSOR,
    "constructor": CONSTRUCTOR,
    "hook": LIFECYCLE_HOOK,
    "lifecycle_hook": LIFECYCLE_HOOK,
}

_BINDING_KINDS = {"interpolation", "property", "event", "structural", "two_way", "attribute"}

_MEMBER_DECORATOR_FLAGS = {
    "Input": "input",
    "Output": "output",
    "ViewChild": "view_child",
    "ViewChildren": "view_child",
    "ContentChild": "view_child",
    "ContentChildren": "view_child",
    "HostListener": "host_listener",
    "HostBinding": "host_binding",
}

_COMPONENT_DECORATORS = {"Component"}
_ON_PUSH_SPELLINGS = {"onpush", "changedetectionstrategy.onpush", "0"}


class SourceFormatError(ValueError):
    """Raised when a document does not follow the parser's JSON contract."""


class ComponentAdapter:
    """Builds ``ComponentModel``/``SupportClass`` values from parser output."""

    def __init__(self, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> None:
        self.vocabulary = vocabulary

    def adapt_document(
        self, data: Any, *, source: Optional[str] = None
    ) -> Tuple[List[ComponentModel], List[SupportClass]]:
        """Accept ``{"components": [...], "classes": [...]}``, a list, or one component."""
        if isinstance(data, list):
            raw_components: Sequence[Any] = data
            raw_classes: Sequence[Any] = ()
        elif isinstance(data, Mapping):
            if "components" in data or "classes" in data:
                raw_components = _as_list(data.get("components"), "components", source)
                raw_classes = _as_list(data.get("classes"), "classes", source)
            else:
                raw_components = [data]
                raw_classes = ()
        else:
            where = f" in {source}" if source else ""
            raise SourceFormatError(f"Expected a JSON object or array{where}, got {type(data).__name__}")

        components = [self.adapt_component(item, file=source) for item in raw_components]
        classes = [self.adapt_class(item, file=source) for item in raw_classes]
        return components, classes

    def adapt_component(self, data: Any, *, file: Optional[str] = None) -> ComponentModel:
        if not isinstance(data, Mapping):
            raise SourceFormatError(f"Component entry must be an object, got {type(data).__name__}")
        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise SourceFormatError(f"Component entry without a class name in {file or '<input>'}")
        path = str(data.get("file") or file or "<input>")
        location = _location(data, path)

        members: List[Member] = []
        injected: List[Parameter] = []
        ctor = data.get("constructor")
        if isinstance(ctor, Mapping):
            member, params = self._constructor(ctor, path)
            members.append(member)
            injected.extend(params)

        for raw in _as_list(data.get("members"), "members", path):
            member = self._member(raw, path)
            members.append(member)
            collaborator = self._injected_field(member)
            if collaborator is not None:
                injected.append(collaborator)

        template = self._template(data.get("template"), path)
        metadata = self._metadata(data.get("decorators"))
        model = ComponentModel(
            id=str(data.get("id") or f"{path}#{name}"),
            name=name,
            file=path,
            location=location,
            metadata=metadata,
            members=tuple(members),
            injected=tuple(injected),
            template=template,
            base=_base(data.get("extends")),
            symbols=SymbolTable(members),
        )
        opaque = model.opaque_members
        if opaque:
            _logger.debug("%s retains %d opaque member(s)", name, len(opaque))
        return model

    def adapt_class(self, data: Any, *, file: Optional[str] = None) -> SupportClass:
        if not isinstance(data, Mapping):
            raise SourceFormatError(f"Class entry must be an object, got {type(data).__name__}")
        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise SourceFormatError(f"Class entry without a name in {file or '<input>'}")
        path = str(data.get("file") or file or "<input>")
        members: List[Member] = []
        injected: List[Parameter] = []
        ctor = data.get("constructor")
        if isinstance(ctor, Mapping):
            member, params = self._constructor(ctor, path)
            members.append(member)
            injected.extend(params)
        for raw in _as_list(data.get("members"), "members", path):
            member = self._member(raw, path)
            members.append(member)
            collaborator = self._injected_field(member)
            if collaborator is not None:
                injected.append(collaborator)
        return SupportClass(
            id=str(data.get("id") or f"{path}#{name}"),
            name=name,
            file=path,
            location=_location(data, path),
            injected=tuple(injected),
            base=_base(data.get("extends")),
            members=tuple(members),
        )

    # -- members -----------------------------------------------------------

    def _constructor(self, data: Mapping[str, Any], path: str) -> Tuple[Member, List[Parameter]]:
        location = _location(data, path)
        params = [_parameter(raw, path) for raw in _as_list(data.get("params"), "params", path)]
        injected = [param for param in params if param.visibility or param.type_name]
        try:
            body = parse_statements(data.get("body"), path)
        except UnsupportedConstruct as exc:
            _logger.debug("Constructor body at %s is opaque: %s", location, exc)
            return Member("constructor", OPAQUE, location, opaque_reason=str(exc)), injected
        member = Member("constructor", CONSTRUCTOR, location, params=tuple(params), body=body)
        return member, injected

    def _member(self, data: Any, path: str) -> Member:
        if not isinstance(data, Mapping):
            raise SourceFormatError(f"Member entry must be an object, got {type(data).__name__}")
        name = str(data.get("name") or "<anonymous>")
        location = _location(data, path)
        try:
            return self._project_member(name, data, path, location)
        except UnsupportedConstruct as exc:
            _logger.debug("Member %s at %s is opaque: %s", name, location, exc)
            return Member(
                name,
                OPAQUE,
                location,
                visibility=str(data.get("visibility") or "public"),
                opaque_reason=str(exc),
            )

    def _project_member(self, name: str, data: Mapping[str, Any], path: str, location: SourceLocation) -> Member:
        raw_kind = str(data.get("kind", "")).lower()
        kind = _MEMBER_KINDS.get(raw_kind)
        if kind is None:
            raise UnsupportedConstruct(f"member kind '{raw_kind or '<missing>'}'", location)
        if kind == METHOD and name in self.vocabulary.init_hooks | self.vocabulary.destroy_hooks:
            kind = LIFECYCLE_HOOK

        flags: Set[str] = set(_member_flags(data.get("decorators")))
        if data.get("static"):
            flags.add("static")
        if data.get("readonly"):
            flags.add("readonly")
        type_name = data.get("type")

        initializer: Optional[Expr] = None
        body: Tuple = ()
        params: Tuple[Parameter, ...] = ()
        if kind == FIELD:
            raw_init = data.get("initializer")
            if raw_init is not None:
                initializer = parse_expression(raw_init, path)
                flags.update(self._initializer_flags(initializer))
        else:
            params = tuple(_parameter(raw, path) for raw in _as_list(data.get("params"), "params", path))
            body = parse_statements(data.get("body"), path)

        return Member(
            name=name,
            kind=kind,
            location=location,
            visibility=str(data.get("visibility") or "public"),
            type_name=str(type_name) if type_name else None,
            flags=frozenset(flags),
            initializer=initializer,
            params=params,
            body=body,
        )

    def _initializer_flags(self, initializer: Expr) -> Set[str]:
        vocab = self.vocabulary
        flags: Set[str] = set()
        if isinstance(initializer, Call):
            name = initializer.method_name
            callee = initializer.callee
            # input.required<T>() is spelled as a member call on the factory
            if isinstance(callee, MemberAccess) and isinstance(callee.object, Identifier):
                if callee.object.name in vocab.input_factories:
                    name = callee.object.name
            if name in vocab.input_factories and isinstance(callee, (Identifier, MemberAccess)):
                flags.add("input")
                if name == "model":
                    flags.add("output")
            elif name in vocab.output_factories and isinstance(callee, Identifier):
                flags.add("output")
            elif name in vocab.inject_functions and isinstance(callee, Identifier):
                flags.add("injected")
            elif name in vocab.signal_factories and isinstance(callee, Identifier):
                flags.add("signal")
        return flags

    def _injected_field(self, member: Member) -> Optional[Parameter]:
        if "injected" not in member.flags or not isinstance(member.initializer, Call):
            return None
        args = member.initializer.args
        type_name = member.type_name
        if args:
            first = args[0]
            if isinstance(first, Identifier):
                type_name = first.name
            elif isinstance(first, Literal) and isinstance(first.value, str):
                type_name = first.value
        return Parameter(member.name, type_name, member.visibility, member.location)

    # -- template ----------------------------------------------------------

    def _template(self, data: Any, path: str) -> Optional[Template]:
        if data is None:
            return None
        if isinstance(data, list):
            data = {"bindings": data}
        if not isinstance(data, Mapping):
            raise SourceFormatError(f"Template must be an object or a list of bindings in {path}")
        file = str(data.get("file") or path)
        raw_bindings = _as_list(data.get("bindings"), "bindings", file)
        bindings = [self._binding(index, raw, file) for index, raw in enumerate(raw_bindings)]
        return Template(file=file, bindings=tuple(bindings))

    def _binding(self, index: int, data: Any, file: str) -> Binding:
        if not isinstance(data, Mapping):
            raise SourceFormatError(f"Binding entry must be an object, got {type(data).__name__}")
        location = _location(data, file)
        kind = str(data.get("kind", "")).lower()
        element = str(data.get("element") or "")
        target = str(data.get("target") or "")
        scope = data.get("scope")
        scope = scope if isinstance(scope, int) and not isinstance(scope, bool) else None
        alias = data.get("alias") if isinstance(data.get("alias"), str) else None
        raw_options = _as_mapping(data.get("options"), "options", file)
        try:
            if kind not in _BINDING_KINDS:
                raise UnsupportedConstruct(f"binding kind '{kind or '<missing>'}'", location)
            raw = data.get("expression")
            expression = parse_expression(raw, file) if raw is not None else None
            options = tuple(
                (str(key), parse_expression(value, file)) for key, value in raw_options.items()
            )
        except UnsupportedConstruct as exc:
            _logger.debug("Binding %d at %s is opaque: %s", index, location, exc)
            return Binding(index, kind, element, target, None, location, alias, scope, (), str(exc))
        return Binding(index, kind, element, target, expression, location, alias, scope, options)

    # -- decorators --------------------------------------------------------

    def _metadata(self, data: Any) -> ClassMetadata:
        if data is None:
            return ClassMetadata()
        decorators = list(_decorators(data))
        names = tuple(name for name, _ in decorators)
        args: Mapping[str, Any] = {}
        for name, options in decorators:
            if name in _COMPONENT_DECORATORS and isinstance(options, Mapping):
                args = options
                break
        selector = args.get("selector")
        return ClassMetadata(
            is_component=any(name in _COMPONENT_DECORATORS for name in names),
            selector=str(selector) if selector else None,
            change_detection=resolve_change_detection(args.get("changeDetection")),
            standalone=bool(args.get("standalone", False)),
            decorators=names,
        )


def resolve_change_detection(value: Any) -> str:
    """Reduce the host spellings of the OnPush strategy to ``ON_PUSH``."""
    if isinstance(value, Mapping):
        value = value.get("strategy", value.get("value"))
    if isinstance(value, bool) or value is None:
        return DEFAULT_STRATEGY
    if str(value).strip().lower() in _ON_PUSH_SPELLINGS:
        return ON_PUSH
    return DEFAULT_STRATEGY


def _decorators(data: Any) -> Iterable[Tuple[str, Any]]:
    if isinstance(data, Mapping):
        data = [{"name": key, "args": value} for key, value in data.items()]
    elif data is not None and not isinstance(data, list):
        raise SourceFormatError(f"'decorators' must be a list or an object, got {type(data).__name__}")
    for item in data or ():
        if isinstance(item, str):
            yield item.lstrip("@"), None
        elif isinstance(item, Mapping) and isinstance(item.get("name"), str):
            yield item["name"].lstrip("@"), item.get("args")


def _member_flags(data: Any) -> Iterable[str]:
    for name, _ in _decorators(data):
        flag = _MEMBER_DECORATOR_FLAGS.get(name)
        if flag is not None:
            yield flag


def _parameter(data: Any, path: str) -> Parameter:
    if isinstance(data, str):
        return Parameter(data)
    if not isinstance(data, Mapping):
        raise SourceFormatError(f"Parameter entry must be an object or name, got {type(data).__name__}")
    type_name = data.get("type")
    if isinstance(type_name, str):
        type_name = type_name.split("<", 1)[0].strip()
    visibility = data.get("visibility")
    return Parameter(
        name=str(data.get("name") or "<anonymous>"),
        type_name=type_name or None,
        visibility=str(visibility) if visibility else None,
        location=_location(data, path),
    )


def _base(value: Any) -> BaseRelation:
    if isinstance(value, str) and value:
        return Extends(value.split("<", 1)[0].strip())
    if isinstance(value, Mapping) and isinstance(value.get("name"), str):
        return Extends(value["name"])
    return NO_BASE


def _location(data: Mapping[str, Any], path: str) -> SourceLocation:
    return parse_location(data, path)


def _as_list(value: Any, key: str, source: Optional[str]) -> Sequence[Any]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise SourceFormatError(f"'{key}' must be a list in {source or '<input>'}")
    return value


def _as_mapping(value: Any, key: str, source: Optional[str]) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise SourceFormatError(f"'{key}' must be an object in {source or '<input>'}")
    return value


__all__ = [
    "ComponentAdapter",
    "SourceFormatError",
    "resolve_change_detection",
]
