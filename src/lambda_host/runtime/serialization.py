# =============================================================================
# Payload Serialization
# =============================================================================
# JSON (de)serialization used by envelopes and by the binder. Validation into
# typed values goes through pydantic TypeAdapters, so dataclasses, pydantic
# models, TypedDicts and typed collections all bind the same way.
# =============================================================================

import dataclasses
import json
import types
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import (
    Annotated,
    Any,
    Callable,
    Dict,
    Optional,
    Tuple,
    Union,
    get_args,
    get_origin,
    get_type_hints,
    is_typeddict,
)

from pydantic import BaseModel, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel, to_pascal, to_snake
from pydantic_core import PydanticSerializationError, to_jsonable_python

from lambda_host.runtime.errors import PayloadDeserializationError, PayloadSerializationError

NAMING_POLICIES: Dict[str, Callable[[str], str]] = {
    "camelCase": to_camel,
    "PascalCase": to_pascal,
    "snake_case": to_snake,
    "kebab-case": lambda name: to_snake(name).replace("_", "-"),
}

_SEQUENCE_ORIGINS = (list, tuple, set, frozenset)


@dataclass(frozen=True)
class SerializerOptions:
    """
    Payload serialization configuration.

    Attributes:
        naming_policy: key policy applied to dataclass/model fields when packing
            (one of NAMING_POLICIES, or None to keep Python field names)
        ignore_none: drop fields whose value is None when packing
        case_insensitive: match incoming keys to fields ignoring case, '_' and '-'
        strict: use pydantic strict mode when validating
        indent: JSON indentation for packed payloads
        ensure_ascii: escape non-ASCII characters when packing
    """
    naming_policy: Optional[str] = None
    ignore_none: bool = False
    case_insensitive: bool = True
    strict: bool = False
    indent: Optional[int] = None
    ensure_ascii: bool = False

    def __post_init__(self):
        if self.naming_policy is not None and self.naming_policy not in NAMING_POLICIES:
            raise ValueError(f"Unknown naming policy: {self.naming_policy!r}")


@lru_cache(maxsize=256)
def _adapter(target: Any) -> TypeAdapter:
    return TypeAdapter(target)


def _normalize(key: str) -> str:
    return key.replace("_", "").replace("-", "").lower()


def type_name(target: Any) -> str:
    return getattr(target, "__name__", None) or repr(target)


def _field_types(target: Any) -> Optional[Dict[str, Any]]:
    """Incoming key -> annotation for object-like targets, None otherwise."""
    if isinstance(target, type) and issubclass(target, BaseModel):
        return {(f.alias or name): f.annotation for name, f in target.model_fields.items()}
    if isinstance(target, type) and dataclasses.is_dataclass(target):
        try:
            hints = get_type_hints(target)
        except (NameError, TypeError):
            hints = {}
        return {f.name: hints.get(f.name, f.type) for f in dataclasses.fields(target) if f.init}
    if is_typeddict(target):
        return dict(get_type_hints(target))
    return None


def _admits_none(annotation: Any) -> bool:
    if annotation is Any or annotation is None or annotation is type(None):
        return True
    origin = get_origin(annotation)
    if origin is Annotated:
        return _admits_none(get_args(annotation)[0])
    if origin is Union or origin is types.UnionType:
        return any(_admits_none(a) for a in get_args(annotation))
    return False


@lru_cache(maxsize=256)
def _nullable_required(target: Any) -> Tuple[str, ...]:
    """Required fields of an object-like target whose annotation accepts None."""
    if isinstance(target, type) and issubclass(target, BaseModel):
        return tuple(
            f.alias or name
            for name, f in target.model_fields.items()
            if f.is_required() and _admits_none(f.annotation)
        )
    if isinstance(target, type) and dataclasses.is_dataclass(target):
        types_by_name = _field_types(target)
        return tuple(
            f.name
            for f in dataclasses.fields(target)
            if f.init
            and f.default is dataclasses.MISSING
            and f.default_factory is dataclasses.MISSING
            and _admits_none(types_by_name[f.name])
        )
    return ()


class JsonSerializer:
    """JSON <-> typed value conversion for a given set of SerializerOptions."""

    def __init__(self, options: Optional[SerializerOptions] = None):
        self.options = options or SerializerOptions()
        policy = self.options.naming_policy
        self._rename = NAMING_POLICIES[policy] if policy else (lambda name: name)

    # ==========================================================================
    # Deserialization
    # ==========================================================================

    def loads(self, data: Union[str, bytes, bytearray], target: Any = Any) -> Any:
        """Parse JSON text and bind it to ``target``."""
        if isinstance(data, (bytes, bytearray)):
            try:
                data = data.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise PayloadDeserializationError(f"Payload is not valid UTF-8: {exc}") from exc
        if data is None or data == "":
            return self.from_jsonable(None, target)
        try:
            parsed = json.loads(data)
        except json.JSONDecodeError as exc:
            raise PayloadDeserializationError(f"Payload is not valid JSON: {exc}") from exc
        return self.from_jsonable(parsed, target)

    def from_jsonable(self, data: Any, target: Any = Any) -> Any:
        """Bind already-decoded JSON data to ``target``."""
        if target is Any or target is object:
            return data
        data = self._match_keys(data, target)
        adapter = _adapter(target)
        try:
            if self.options.strict:
                # strict python-mode validation only accepts dataclass instances
                return adapter.validate_json(json.dumps(data), strict=True)
            return adapter.validate_python(data)
        except ValidationError as exc:
            raise PayloadDeserializationError(
                f"Could not bind payload to {type_name(target)}: {exc.error_count()} validation error(s)\n{exc}"
            ) from exc

    def _match_keys(self, data: Any, target: Any) -> Any:
        origin = get_origin(target)
        args = get_args(target)

        if origin is Union or origin is types.UnionType:
            members = [a for a in args if a is not type(None)]
            if len(members) == 1:
                return self._match_keys(data, members[0])
            return data

        if origin is Annotated:
            return self._match_keys(data, args[0])

        if origin in _SEQUENCE_ORIGINS and isinstance(data, list):
            if origin is tuple and len(args) > 1 and args[-1] is not Ellipsis:
                return [self._match_keys(v, t) for v, t in zip(data, args)] + data[len(args):]
            item = args[0] if args else Any
            return [self._match_keys(v, item) for v in data]

        if origin in (dict, Mapping) and isinstance(data, dict):
            value_type = args[1] if len(args) == 2 else Any
            return {k: self._match_keys(v, value_type) for k, v in data.items()}

        fields = _field_types(origin or target)
        if fields is None or not isinstance(data, dict):
            return data

        lookup = {_normalize(name): name for name in fields}
        matched: Dict[Any, Any] = {}
        for key, value in data.items():
            if not isinstance(key, str):
                matched[key] = value
                continue
            name = key if key in fields else None
            if name is None and self.options.case_insensitive:
                name = lookup.get(_normalize(key))
            if name is None:
                matched[key] = value
            elif name not in matched or name == key:
                matched[name] = self._match_keys(value, fields[name])

        # packing with ignore_none drops None fields; restore them
        if self.options.ignore_none:
            for name in _nullable_required(origin or target):
                matched.setdefault(name, None)
        return matched

    # ==========================================================================
    # Serialization
    # ==========================================================================

    def dumps(self, value: Any) -> str:
        """Serialize ``value`` to JSON text."""
        jsonable = self.to_jsonable(value)
        try:
            return json.dumps(
                jsonable,
                ensure_ascii=self.options.ensure_ascii,
                indent=self.options.indent,
                allow_nan=False,
            )
        except (TypeError, ValueError) as exc:
            raise PayloadSerializationError(f"Could not serialize {type(value).__name__}: {exc}") from exc

    def to_jsonable(self, value: Any) -> Any:
        """Convert ``value`` to JSON-compatible Python data, applying the naming policy."""
        try:
            return self._dump(value)
        except PydanticSerializationError as exc:
            raise PayloadSerializationError(f"Could not serialize {type(value).__name__}: {exc}") from exc

    def _dump(self, value: Any) -> Any:
        if value is None or isinstance(value, (bool, int, float)) and not isinstance(value, Enum):
            return value
        if isinstance(value, Enum):
            return self._dump(value.value)
        if isinstance(value, str):
            return str(value)
        if isinstance(value, BaseModel):
            return self._dump_fields(
                (field.alias or self._rename(name), getattr(value, name))
                for name, field in type(value).model_fields.items()
            )
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            return self._dump_fields(
                (self._rename(f.name), getattr(value, f.name)) for f in dataclasses.fields(value)
            )
        if isinstance(value, Mapping):
            return {self._dump_key(k): self._dump(v) for k, v in value.items()}
        if isinstance(value, (list, tuple, set, frozenset)):
            return [self._dump(v) for v in value]
        return to_jsonable_python(value)

    def _dump_fields(self, items) -> Dict[str, Any]:
        result = {}
        for key, value in items:
            if value is None and self.options.ignore_none:
                continue
            result[key] = self._dump(value)
        return result

    def _dump_key(self, key: Any) -> str:
        if isinstance(key, str):
            return key
        return str(to_jsonable_python(key))
