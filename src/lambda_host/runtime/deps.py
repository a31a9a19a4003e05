# =============================================================================
# Service Resolution
# =============================================================================
# Minimal resolver shared by init hooks, handlers and shutdown hooks.
# Singletons live for the whole execution environment; scoped services live
# for one invocation and are closed when it ends.
# AWS clients are lazy-loaded on first access and cached per process.
# =============================================================================

import inspect
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

import boto3

from lambda_host.runtime.errors import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SINGLETON = "singleton"
SCOPED = "scoped"

_MISSING = object()


@dataclass
class ServiceDescriptor:
    key: Any
    lifetime: str
    factory: Optional[Callable[[Any], Any]] = None
    instance: Any = _MISSING


@dataclass
class AwsClients:
    """
    Lazy boto3 clients shared by all invocations.

    Usage:
        def handle(order: Order, aws: AwsClients):
            aws.client("sqs").send_message(...)
            aws.resource("dynamodb").Table("orders").put_item(...)
    """
    region: str = "us-east-1"
    _clients: Dict[str, Any] = field(default_factory=dict, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def client(self, service: str, region: Optional[str] = None):
        """Cached boto3 client for ``service``."""
        key = f"client:{service}:{region or self.region}"
        with self._lock:
            if key not in self._clients:
                logger.debug(f"Creating boto3 client service={service} region={region or self.region}")
                self._clients[key] = boto3.client(service, region_name=region or self.region)
            return self._clients[key]

    def resource(self, service: str, region: Optional[str] = None):
        """Cached boto3 resource for ``service``."""
        key = f"resource:{service}:{region or self.region}"
        with self._lock:
            if key not in self._clients:
                logger.debug(f"Creating boto3 resource service={service} region={region or self.region}")
                self._clients[key] = boto3.resource(service, region_name=region or self.region)
            return self._clients[key]

    def clear(self) -> None:
        with self._lock:
            self._clients.clear()


class ServiceProvider:
    """
    Process-wide service resolver.

    Registrations are made before the application is built; afterwards the
    provider is only read.

    Usage:
        services.add_singleton(Repository, lambda sp: Repository(sp.get(AwsClients)))
        services.add_scoped(UnitOfWork, lambda scope: UnitOfWork())
    """

    def __init__(self):
        self._descriptors: Dict[Any, ServiceDescriptor] = {}
        self._lock = threading.RLock()
        self._frozen = False

    # ==========================================================================
    # Registration
    # ==========================================================================

    def add_instance(self, key: Any, instance: Any) -> "ServiceProvider":
        return self._add(ServiceDescriptor(key, SINGLETON, instance=instance))

    def add_singleton(self, key: Any, factory: Optional[Callable[[Any], Any]] = None) -> "ServiceProvider":
        """Register a singleton; ``factory`` receives the provider. Defaults to key()."""
        return self._add(ServiceDescriptor(key, SINGLETON, factory=factory or _default_factory(key)))

    def add_scoped(self, key: Any, factory: Optional[Callable[[Any], Any]] = None) -> "ServiceProvider":
        """Register a per-invocation service; ``factory`` receives the scope."""
        return self._add(ServiceDescriptor(key, SCOPED, factory=factory or _default_factory(key)))

    def _add(self, descriptor: ServiceDescriptor) -> "ServiceProvider":
        if self._frozen:
            raise ConfigurationError(f"Cannot register {_key_name(descriptor.key)} after the application was built")
        self._descriptors[descriptor.key] = descriptor
        return self

    def freeze(self) -> None:
        self._frozen = True

    # ==========================================================================
    # Resolution
    # ==========================================================================

    def is_registered(self, key: Any) -> bool:
        return key in self._descriptors

    def lifetime_of(self, key: Any) -> Optional[str]:
        descriptor = self._descriptors.get(key)
        return descriptor.lifetime if descriptor else None

    def get(self, key: Type[T]) -> Optional[T]:
        """Resolve a singleton, or None if it is not registered."""
        descriptor = self._descriptors.get(key)
        if descriptor is None:
            return None
        if descriptor.lifetime == SCOPED:
            raise LookupError(f"{_key_name(key)} is scoped and must be resolved from a ServiceScope")
        return self._singleton(descriptor)

    def get_required(self, key: Type[T]) -> T:
        if key not in self._descriptors:
            raise LookupError(f"No service registered for {_key_name(key)}")
        return self.get(key)

    def _singleton(self, descriptor: ServiceDescriptor) -> Any:
        with self._lock:
            if descriptor.instance is _MISSING:
                descriptor.instance = descriptor.factory(self)
            return descriptor.instance

    def create_scope(self) -> "ServiceScope":
        return ServiceScope(self)

    def singletons(self) -> List[Any]:
        return [d.instance for d in self._descriptors.values() if d.instance is not _MISSING]

    async def aclose(self) -> List[Exception]:
        """
        Close factory-built singletons in reverse registration order.

        Instances passed to add_instance() belong to the caller and are left
        open. Returns the errors raised while closing.
        """
        owned = [
            d.instance for d in self._descriptors.values()
            if d.factory is not None and d.instance is not _MISSING
        ]
        errors = await _close_all(reversed(owned), "singleton")
        for descriptor in self._descriptors.values():
            if descriptor.factory is not None:
                descriptor.instance = _MISSING
        return errors


class ServiceScope:
    """Invocation-scoped resolver. Scoped instances are closed by aclose()."""

    def __init__(self, provider: ServiceProvider):
        self.provider = provider
        self._instances: Dict[Any, Any] = {}
        self._closed = False

    def get(self, key: Type[T]) -> Optional[T]:
        if self._closed:
            raise RuntimeError("Service scope is closed")
        descriptor = self.provider._descriptors.get(key)
        if descriptor is None:
            return None
        if descriptor.lifetime == SINGLETON:
            return self.provider._singleton(descriptor)
        if key not in self._instances:
            self._instances[key] = descriptor.factory(self)
        return self._instances[key]

    def get_required(self, key: Type[T]) -> T:
        if not self.provider.is_registered(key):
            raise LookupError(f"No service registered for {_key_name(key)}")
        return self.get(key)

    @property
    def closed(self) -> bool:
        return self._closed

    async def aclose(self) -> None:
        """Close scoped instances in reverse creation order. Idempotent."""
        if self._closed:
            return
        self._closed = True
        errors = await _close_all(reversed(list(self._instances.values())), "scoped")
        self._instances.clear()
        if errors:
            raise errors[0]


async def _close_all(instances, kind: str) -> List[Exception]:
    errors: List[Exception] = []
    for instance in instances:
        closer = getattr(instance, "aclose", None) or getattr(instance, "close", None)
        if closer is None:
            continue
        try:
            result = closer()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.exception(f"Error closing {kind} service {type(instance).__name__}: {e}")
            errors.append(e)
    return errors


def _default_factory(key: Any) -> Callable[[Any], Any]:
    if not callable(key):
        raise TypeError(f"A factory is required for {_key_name(key)}")
    return lambda resolver: key()


def _key_name(key: Any) -> str:
    return getattr(key, "__name__", None) or repr(key)


def create_services(region: Optional[str] = None) -> ServiceProvider:
    """Create a ServiceProvider with the host's default registrations."""
    services = ServiceProvider()
    services.add_singleton(AwsClients, lambda _: AwsClients(region=region or "us-east-1"))
    return services
