# =============================================================================
# Feature Set
# =============================================================================
# A type-keyed bag of per-invocation values. Middleware and binders use it to
# hand typed data to each other without widening InvocationContext.
# =============================================================================

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional, Tuple, Type, TypeVar

T = TypeVar("T")

FeatureProvider = Callable[["FeatureSet"], None]


class FeatureSet:
    """
    Mapping from a type to exactly one instance of that type.

    Absent features are reported as None by get(), never as an error.

    Usage:
        features.set(EventSourceFeature("sqs"))
        source = features.get(EventSourceFeature)
    """

    __slots__ = ("_features",)

    def __init__(self):
        self._features: Dict[type, Any] = {}

    def set(self, instance: Any, as_type: Optional[type] = None) -> None:
        """Store ``instance`` under its own type, or under ``as_type``."""
        key = as_type or type(instance)
        if as_type is not None and not isinstance(instance, as_type):
            raise TypeError(f"{type(instance).__name__} is not an instance of {as_type.__name__}")
        self._features[key] = instance

    def get(self, feature_type: Type[T]) -> Optional[T]:
        return self._features.get(feature_type)

    def try_get(self, feature_type: Type[T]) -> Tuple[bool, Optional[T]]:
        """Returns (found, value)."""
        if feature_type in self._features:
            return True, self._features[feature_type]
        return False, None

    def remove(self, feature_type: type) -> None:
        self._features.pop(feature_type, None)

    def __contains__(self, feature_type: type) -> bool:
        return feature_type in self._features

    def __iter__(self) -> Iterator[Tuple[type, Any]]:
        return iter(list(self._features.items()))

    def __len__(self) -> int:
        return len(self._features)

    def __repr__(self) -> str:
        names = ", ".join(t.__name__ for t in self._features)
        return f"FeatureSet({names})"


def create_feature_set(providers: Tuple[FeatureProvider, ...] = ()) -> FeatureSet:
    """Create a new FeatureSet and let each provider populate it, in order."""
    features = FeatureSet()
    for provider in providers:
        provider(features)
    return features


# =============================================================================
# BUILT-IN FEATURES
# =============================================================================

@dataclass(frozen=True)
class EventSourceFeature:
    """Detected trigger of the current invocation (api_gateway, sqs, ...)."""
    source: str


@dataclass(frozen=True)
class EventFeature:
    """The bound event value and the type it was bound to."""
    value: Any
    bound_type: Any = None


@dataclass(frozen=True)
class ResponseFeature:
    """The handler result before it was packed for the platform."""
    value: Any
