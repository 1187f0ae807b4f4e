"""Configurable vocabulary of stream, lifecycle, and platform signatures.

Subscribe/teardown recognition goes through ``CallSignature`` (name set,
arity, callback shape) so that renamed APIs can be taught through
configuration instead of code changes.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, FrozenSet, Mapping, Optional, Sequence, Tuple

from ..source.ast import ArrowFunction, Call, Expr, Identifier, MemberAccess, ObjectLiteral

CALLBACKS = "callbacks"
OBSERVER = "observer"
ANY = "any"
NONE = "none"


def _is_callback(expr: Expr) -> bool:
    # method references (this.onNext) count as callbacks
    return isinstance(expr, (ArrowFunction, MemberAccess, Identifier))


def _is_observer(expr: Expr) -> bool:
    return isinstance(expr, ObjectLiteral) and bool(expr.keys & {"next", "error", "complete"})


@dataclass(frozen=True)
class CallSignature:
    """Structural signature of a call: accepted names, arity, and callback shape."""

    names: FrozenSet[str]
    min_args: int = 0
    max_args: int = 3
    callback_shape: str = ANY

    def arity_matches(self, call: Call) -> bool:
        return self.min_args <= len(call.args) <= self.max_args

    def shape_matches(self, call: Call) -> bool:
        if self.callback_shape == ANY:
            return True
        if self.callback_shape == NONE:
            return not call.args
        if self.callback_shape == OBSERVER:
            return len(call.args) == 1 and _is_observer(call.args[0])
        return all(_is_callback(arg) or _is_observer(arg) for arg in call.args)

    def matches(self, call: Call, *, receiver_is_stream: bool = False) -> bool:
        """Match by name, or structurally when the receiver is a known stream.

        The structural path requires at least one inline callback or observer
        object so that plain method calls on streams are not mistaken for
        subscriptions.
        """
        if not self.arity_matches(call):
            return False
        if call.method_name in self.names:
            return self.shape_matches(call)
        if not receiver_is_stream or not call.args or self.callback_shape in {ANY, NONE}:
            return False
        has_inline = any(isinstance(arg, ArrowFunction) or _is_observer(arg) for arg in call.args)
        return has_inline and all(_is_callback(arg) or _is_observer(arg) for arg in call.args)

    def extended(self, names: Sequence[str]) -> "CallSignature":
        return replace(self, names=self.names | frozenset(names))


def _names(*values: str) -> FrozenSet[str]:
    return frozenset(values)


@dataclass(frozen=True)
class Vocabulary:
    """Fixed vocabulary consulted by the graph builders and detectors."""

    subscribe: CallSignature = CallSignature(_names("subscribe"), 0, 3, CALLBACKS)
    unsubscribe: CallSignature = CallSignature(_names("unsubscribe"), 0, 0, NONE)
    handle_container_add: CallSignature = CallSignature(_names("add", "push"), 1, 1, ANY)
    signal_fire: CallSignature = CallSignature(_names("next", "complete"), 0, 1, ANY)
    destroy_registration: CallSignature = CallSignature(_names("onDestroy"), 1, 1, CALLBACKS)
    connect: CallSignature = CallSignature(_names("connect"), 0, 0, NONE)

    creation_functions: FrozenSet[str] = _names(
        "of",
        "from",
        "interval",
        "timer",
        "combineLatest",
        "merge",
        "forkJoin",
        "fromEvent",
        "fromEventPattern",
        "defer",
        "concat",
        "zip",
        "race",
        "iif",
        "range",
        "throwError",
        "fromFetch",
        "ajax",
        "webSocket",
        "toObservable",
        "partition",
    )
    completing_creation: FrozenSet[str] = _names(
        "of", "from", "forkJoin", "range", "throwError", "fromFetch", "ajax", "iif"
    )
    completing_constants: FrozenSet[str] = _names("EMPTY")
    subject_types: FrozenSet[str] = _names(
        "Subject", "BehaviorSubject", "ReplaySubject", "AsyncSubject", "EventEmitter"
    )
    stream_type_markers: FrozenSet[str] = _names(
        "Observable", "Subject", "BehaviorSubject", "ReplaySubject", "AsyncSubject", "EventEmitter"
    )
    http_types: FrozenSet[str] = _names("HttpClient", "Http", "HttpService")
    http_field_names: FrozenSet[str] = _names("http", "httpClient", "_http")
    http_methods: FrozenSet[str] = _names(
        "get", "post", "put", "patch", "delete", "head", "options", "request", "jsonp"
    )
    stream_accessors: FrozenSet[str] = _names("asObservable", "valueChanges", "statusChanges", "events", "select")
    operators: FrozenSet[str] = _names(
        "map",
        "filter",
        "tap",
        "do",
        "switchMap",
        "mergeMap",
        "flatMap",
        "concatMap",
        "exhaustMap",
        "switchMapTo",
        "mergeMapTo",
        "concatMapTo",
        "scan",
        "reduce",
        "debounceTime",
        "throttleTime",
        "auditTime",
        "sampleTime",
        "distinctUntilChanged",
        "distinctUntilKeyChanged",
        "distinct",
        "startWith",
        "endWith",
        "withLatestFrom",
        "combineLatestWith",
        "mergeWith",
        "concatWith",
        "zipWith",
        "catchError",
        "retry",
        "retryWhen",
        "repeat",
        "repeatWhen",
        "delay",
        "pluck",
        "mapTo",
        "skip",
        "skipUntil",
        "skipWhile",
        "take",
        "takeLast",
        "takeWhile",
        "first",
        "last",
        "single",
        "elementAt",
        "find",
        "finalize",
        "finally",
        "count",
        "toArray",
        "defaultIfEmpty",
        "throwIfEmpty",
        "every",
        "isEmpty",
        "max",
        "min",
        "skipLast",
        "pairwise",
        "bufferTime",
        "buffer",
        "timeout",
        "expand",
        "groupBy",
        "share",
        "shareReplay",
        "publish",
        "publishReplay",
        "publishLast",
        "publishBehavior",
        "multicast",
        "refCount",
        "takeUntil",
        "takeUntilDestroyed",
        "untilDestroyed",
    )
    sharing_operators: FrozenSet[str] = _names("share", "shareReplay")
    multicast_operators: FrozenSet[str] = _names(
        "publish", "publishReplay", "publishLast", "publishBehavior", "multicast"
    )
    ref_count_operators: FrozenSet[str] = _names("refCount")
    cancellation_operators: FrozenSet[str] = _names("takeUntil", "takeUntilDestroyed", "untilDestroyed")
    self_bound_cancellation: FrozenSet[str] = _names("takeUntilDestroyed", "untilDestroyed")
    bounding_operators: FrozenSet[str] = _names("take", "first", "single", "elementAt")
    unbounding_operators: FrozenSet[str] = _names("repeat", "repeatWhen", "expand")
    safe_after_cancellation: FrozenSet[str] = _names(
        "count",
        "defaultIfEmpty",
        "endWith",
        "every",
        "finalize",
        "finally",
        "isEmpty",
        "last",
        "max",
        "min",
        "publish",
        "publishBehavior",
        "publishLast",
        "publishReplay",
        "refCount",
        "reduce",
        "share",
        "shareReplay",
        "skipLast",
        "takeLast",
        "throwIfEmpty",
        "toArray",
    )
    side_effect_operators: FrozenSet[str] = _names("tap", "do")
    replay_operators: FrozenSet[str] = _names("shareReplay")
    async_pipes: FrozenSet[str] = _names("async", "push", "ngrxPush")
    signal_factories: FrozenSet[str] = _names(
        "signal", "computed", "input", "model", "toSignal", "linkedSignal", "viewChild", "contentChild"
    )
    input_factories: FrozenSet[str] = _names("input", "model")
    output_factories: FrozenSet[str] = _names("output", "outputFromObservable")
    inject_functions: FrozenSet[str] = _names("inject")

    init_hooks: FrozenSet[str] = _names(
        "ngOnInit",
        "ngOnChanges",
        "ngDoCheck",
        "ngAfterContentInit",
        "ngAfterContentChecked",
        "ngAfterViewInit",
        "ngAfterViewChecked",
    )
    destroy_hooks: FrozenSet[str] = _names("ngOnDestroy")
    constructor_names: FrozenSet[str] = _names("constructor")

    navigation_types: FrozenSet[str] = _names("Router", "Location", "NavController")
    navigation_field_names: FrozenSet[str] = _names("router", "location", "navController")
    navigation_methods: FrozenSet[str] = _names(
        "navigate", "navigateByUrl", "back", "forward", "go", "navigateForward", "navigateRoot"
    )
    side_effect_globals: FrozenSet[str] = _names("localStorage", "sessionStorage", "alert", "confirm", "open")
    side_effect_collaborators: FrozenSet[str] = _names("MatDialog", "MatSnackBar", "Title", "Meta", "ToastrService")

    dom_globals: FrozenSet[str] = _names("document", "jQuery", "$")
    dom_window_members: FrozenSet[str] = _names("document", "getComputedStyle", "scrollTo")
    native_handle_members: FrozenSet[str] = _names("nativeElement")
    dom_write_members: FrozenSet[str] = _names("innerHTML", "outerHTML", "innerText", "textContent", "style", "className")
    dom_methods: FrozenSet[str] = _names(
        "querySelector",
        "querySelectorAll",
        "getElementById",
        "getElementsByClassName",
        "getElementsByTagName",
        "createElement",
        "appendChild",
        "removeChild",
        "insertAdjacentHTML",
        "setAttribute",
        "focus",
    )
    sanctioned_wrapper_types: FrozenSet[str] = _names("Renderer2", "Renderer", "DomSanitizer", "DOCUMENT")

    listener_register: FrozenSet[str] = _names("addEventListener", "setInterval", "listen")
    listener_release: Tuple[Tuple[str, str], ...] = (
        ("addEventListener", "removeEventListener"),
        ("setInterval", "clearInterval"),
    )

    framework_base_types: FrozenSet[str] = _names(
        "Object", "HTMLElement", "LitElement", "Component", "PureComponent", "Directive"
    )
    framework_collaborator_types: FrozenSet[str] = _names(
        "ChangeDetectorRef",
        "ElementRef",
        "Renderer2",
        "Injector",
        "NgZone",
        "DestroyRef",
        "ViewContainerRef",
        "TemplateRef",
        "DomSanitizer",
        "FormBuilder",
        "ActivatedRoute",
        "Router",
        "Location",
        "ApplicationRef",
    )
    template_helpers: FrozenSet[str] = _names("$any")
    repeater_targets: FrozenSet[str] = _names("ngFor", "ngForOf", "*ngFor")
    track_options: FrozenSet[str] = _names("trackBy", "ngForTrackBy", "track")

    def release_for(self, register: str) -> Optional[str]:
        for name, release in self.listener_release:
            if name == register:
                return release
        return None

    def extended(self, overrides: Mapping[str, Sequence[str]]) -> "Vocabulary":
        """Return a copy with extra names merged into the given vocabulary entries."""
        updates: Dict[str, Any] = {}
        known = {item.name: item for item in fields(self)}
        for key, values in overrides.items():
            if key not in known:
                raise KeyError(key)
            current = getattr(self, key)
            names = [str(value) for value in values]
            if isinstance(current, CallSignature):
                updates[key] = current.extended(names)
            elif isinstance(current, frozenset):
                updates[key] = current | frozenset(names)
            else:
                raise KeyError(key)
        return replace(self, **updates) if updates else self

    @classmethod
    def entry_names(cls) -> FrozenSet[str]:
        default = DEFAULT_VOCABULARY
        return frozenset(
            item.name
            for item in fields(cls)
            if isinstance(getattr(default, item.name), (frozenset, CallSignature))
        )

    def is_http_collaborator(self, name: Optional[str], type_name: Optional[str]) -> bool:
        if type_name is not None and type_name in self.http_types:
            return True
        return name is not None and name in self.http_field_names

    def is_stream_type(self, type_name: Optional[str]) -> bool:
        if not type_name:
            return False
        head = type_name.split("<", 1)[0].strip()
        return head in self.stream_type_markers


DEFAULT_VOCABULARY = Vocabulary()


__all__ = [
    "ANY",
    "CALLBACKS",
    "CallSignature",
    "DEFAULT_VOCABULARY",
    "NONE",
    "OBSERVER",
    "Vocabulary",
]
