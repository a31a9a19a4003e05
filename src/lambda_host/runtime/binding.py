# =============================================================================
# Parameter Binding
# =============================================================================
# Turns a handler or hook signature into a list of ParameterDescriptors once,
# at build time, and resolves them per call. Each parameter comes from one
# source: the event, the invocation context, the deadline token, the feature
# set, or the service resolver.
# =============================================================================

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Callable, Dict, List, Optional, Tuple, get_args, get_origin, get_type_hints

from lambda_host.envelopes.base import Envelope
from lambda_host.runtime.context import InvocationContext, LambdaContext
from lambda_host.runtime.deadline import DeadlineToken
from lambda_host.runtime.deps import ServiceProvider, ServiceScope
from lambda_host.runtime.errors import ConfigurationError, describe
from lambda_host.runtime.features import EventFeature, FeatureSet
from lambda_host.runtime.pipeline import call_maybe_async
from lambda_host.runtime.serialization import JsonSerializer, type_name

logger = logging.getLogger(__name__)

_EMPTY = inspect.Parameter.empty


class ParameterSource(str, Enum):
    EVENT = "event"
    CONTEXT = "context"
    LAMBDA_CONTEXT = "lambda_context"
    CANCELLATION = "cancellation"
    FEATURES = "features"
    FEATURE = "feature"
    SERVICE = "service"
    RESOLVER = "resolver"
    DEFAULT = "default"


# =============================================================================
# MARKERS
# =============================================================================

class FromEvent:
    """Annotated marker: bind this parameter from the invocation event."""

    def __repr__(self) -> str:
        return "FromEvent()"


class FromServices:
    """Annotated marker: resolve this parameter from the service resolver."""

    def __init__(self, key: Any = None):
        self.key = key

    def __repr__(self) -> str:
        return f"FromServices({self.key!r})"


class FromFeatures:
    """Annotated marker: read this parameter from the invocation's FeatureSet."""

    def __repr__(self) -> str:
        return "FromFeatures()"


@dataclass
class HookContext:
    """What an init or shutdown hook can bind against."""
    services: ServiceProvider
    cancellation: DeadlineToken


@dataclass(frozen=True)
class ParameterDescriptor:
    name: str
    annotation: Any
    source: ParameterSource
    resolve: Callable[[Any], Any]
    keyword_only: bool = False


# =============================================================================
# EVENT BINDING
# =============================================================================

@dataclass(frozen=True)
class EventBinding:
    """
    How the raw event becomes the value handed to the handler.

    Envelope annotations (e.g. SqsEnvelope[Order]) build the envelope from the
    raw event and extract its payload; other annotations are validated from
    the raw event directly.
    """
    target: Any = Any
    envelope_type: Optional[type] = None
    payload_type: Any = Any

    @classmethod
    def for_annotation(cls, annotation: Any) -> "EventBinding":
        if annotation is _EMPTY:
            return cls()
        origin = get_origin(annotation) or annotation
        if isinstance(origin, type) and issubclass(origin, Envelope):
            args = get_args(annotation)
            return cls(target=annotation, envelope_type=origin, payload_type=args[0] if args else Any)
        return cls(target=annotation)

    def bind(self, raw_event: Any, serializer: JsonSerializer) -> Any:
        if self.envelope_type is not None:
            if isinstance(raw_event, (bytes, bytearray, str)):
                raw_event = serializer.loads(raw_event)
            envelope = self.envelope_type.from_event(raw_event, self.payload_type)
            envelope.extract_payload(serializer.options)
            return envelope
        if isinstance(raw_event, (bytes, bytearray, str)) and self.target not in (str, bytes):
            return serializer.loads(raw_event, self.target)
        return serializer.from_jsonable(raw_event, self.target)


# =============================================================================
# CALLABLE BINDING
# =============================================================================

@dataclass(frozen=True)
class Binding:
    """A callable plus the descriptors needed to call it."""
    func: Callable[..., Any]
    parameters: Tuple[ParameterDescriptor, ...]
    event: Optional[EventBinding] = None

    @property
    def name(self) -> str:
        return describe(self.func)

    async def invoke(self, source: Any) -> Any:
        """Resolve every parameter against ``source`` and call the function."""
        args: List[Any] = []
        kwargs: Dict[str, Any] = {}
        for parameter in self.parameters:
            value = parameter.resolve(source)
            if parameter.keyword_only:
                kwargs[parameter.name] = value
            else:
                args.append(value)
        return await call_maybe_async(self.func, *args, **kwargs)

    def as_delegate(self):
        """Terminal pipeline delegate storing the result on the context."""
        async def handler_delegate(context: InvocationContext) -> None:
            context.response = await self.invoke(context)

        handler_delegate.__qualname__ = self.name
        return handler_delegate


def _resolve_hints(func: Callable[..., Any]) -> Dict[str, Any]:
    target = func if inspect.isfunction(func) or inspect.ismethod(func) else getattr(func, "__call__", func)
    try:
        return get_type_hints(target, include_extras=True)
    except Exception as e:
        logger.debug(f"Could not resolve type hints for {describe(func)}: {e}")
        return {}


def _split_annotated(annotation: Any) -> Tuple[Any, Tuple[Any, ...]]:
    if get_origin(annotation) is Annotated:
        base, *metadata = get_args(annotation)
        return base, tuple(metadata)
    return annotation, ()


def _with_default(getter: Callable[[Any], Any], default: Any) -> Callable[[Any], Any]:
    if default is _EMPTY:
        return getter

    def resolve(source: Any) -> Any:
        value = getter(source)
        return default if value is None else value

    return resolve


def _service_getter(key: Any, required: bool) -> Callable[[Any], Any]:
    if required:
        return lambda source: source.services.get_required(key)
    return lambda source: source.services.get(key)


def _bind_event(context: InvocationContext) -> Any:
    return context.event


def _bind_feature(feature_type: Any) -> Callable[[InvocationContext], Any]:
    return lambda context: context.features.get(feature_type)


def bind_callable(
    func: Callable[..., Any],
    services: ServiceProvider,
    for_handler: bool = True,
) -> Binding:
    """
    Build the Binding for a handler (``for_handler=True``) or a lifecycle hook.

    Raises:
        ConfigurationError: a parameter has no source, or more than one
            parameter claims the event
    """
    if not callable(func):
        raise ConfigurationError(f"{type(func).__name__} is not callable")
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Cannot inspect signature of {describe(func)}: {e}") from e

    hints = _resolve_hints(func)
    descriptors: List[ParameterDescriptor] = []
    event_binding: Optional[EventBinding] = None
    owner = describe(func)

    for parameter in signature.parameters.values():
        if parameter.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        annotation = hints.get(parameter.name, parameter.annotation)
        base, metadata = _split_annotated(annotation)
        default = parameter.default
        keyword_only = parameter.kind == inspect.Parameter.KEYWORD_ONLY

        source, resolve = _classify(parameter.name, base, metadata, services, for_handler, default)

        if source is ParameterSource.EVENT:
            if event_binding is not None:
                if default is not _EMPTY:
                    source, resolve = ParameterSource.DEFAULT, (lambda _, d=default: d)
                else:
                    raise ConfigurationError(
                        f"{owner}: parameter '{parameter.name}' cannot be bound; "
                        f"the event is already bound to another parameter"
                    )
            else:
                event_binding = EventBinding.for_annotation(base)

        if source is None:
            if default is _EMPTY:
                raise ConfigurationError(
                    f"{owner}: cannot bind parameter '{parameter.name}' of type {type_name(base)}; "
                    f"register it as a service or give it a default"
                )
            source, resolve = ParameterSource.DEFAULT, (lambda _, d=default: d)

        descriptors.append(ParameterDescriptor(parameter.name, base, source, resolve, keyword_only))

    logger.debug(f"Bound {owner}: {[(d.name, d.source.value) for d in descriptors]}")
    return Binding(func, tuple(descriptors), event_binding)


def _classify(
    name: str,
    base: Any,
    metadata: Tuple[Any, ...],
    services: ServiceProvider,
    for_handler: bool,
    default: Any,
) -> Tuple[Optional[ParameterSource], Optional[Callable[[Any], Any]]]:
    for marker in metadata:
        if isinstance(marker, FromEvent) or marker is FromEvent:
            if not for_handler:
                raise ConfigurationError(f"Parameter '{name}': lifecycle hooks have no event")
            return ParameterSource.EVENT, _bind_event
        if isinstance(marker, FromServices) or marker is FromServices:
            key = getattr(marker, "key", None) or base
            return ParameterSource.SERVICE, _with_default(_service_getter(key, default is _EMPTY), default)
        if isinstance(marker, FromFeatures) or marker is FromFeatures:
            if not for_handler:
                raise ConfigurationError(f"Parameter '{name}': lifecycle hooks have no feature set")
            return ParameterSource.FEATURE, _with_default(_bind_feature(base), default)

    if base is DeadlineToken:
        return ParameterSource.CANCELLATION, lambda source: source.cancellation
    if base is ServiceProvider:
        if for_handler:
            return ParameterSource.RESOLVER, lambda context: context.services.provider
        return ParameterSource.RESOLVER, lambda hook: hook.services

    if for_handler:
        if base is InvocationContext:
            return ParameterSource.CONTEXT, lambda context: context
        if base is FeatureSet:
            return ParameterSource.FEATURES, lambda context: context.features
        if base is ServiceScope:
            return ParameterSource.RESOLVER, lambda context: context.services
        if base is LambdaContext or (base is _EMPTY and name in ("context", "lambda_context")):
            return ParameterSource.LAMBDA_CONTEXT, lambda context: context.lambda_context

    if base is not _EMPTY and _is_registered(services, base):
        return ParameterSource.SERVICE, _with_default(_service_getter(base, default is _EMPTY), default)

    if for_handler:
        return ParameterSource.EVENT, _bind_event
    return None, None


def _is_registered(services: ServiceProvider, key: Any) -> bool:
    try:
        return services.is_registered(key)
    except TypeError:
        return False


def bind_event(context: InvocationContext, binding: Optional[EventBinding], serializer: JsonSerializer) -> Any:
    """
    Bind the raw event of ``context`` and record it in the feature set.

    Handlers without an event parameter see the raw event.
    """
    if binding is None:
        context.event = context.raw_event
        return context.event
    context.event = binding.bind(context.raw_event, serializer)
    context.features.set(EventFeature(context.event, binding.target))
    return context.event
