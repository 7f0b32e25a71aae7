"""
Msgpack codecs for cache values.

Values that know how to encode themselves (MsgpackMarshaler) take the fast
path and are written with their own to_msgpack(). Everything else goes
through the reflective path: msgpack with a default encoder for common
Python types, pydantic models and dataclasses.
"""

import dataclasses
from abc import ABC, abstractmethod
from datetime import datetime, date
from decimal import Decimal
from typing import Any, Callable, Optional, Protocol, Type, runtime_checkable
from uuid import UUID

import msgpack
from pydantic import BaseModel, ValidationError

from ..shared.errors import SerializationError


Marshaler = Callable[[Any], bytes]
Unmarshaler = Callable[[bytes, Optional[type]], Any]


@runtime_checkable
class MsgpackMarshaler(Protocol):
    """A value with its own msgpack encoding."""

    def to_msgpack(self) -> bytes:
        ...


@runtime_checkable
class MsgpackUnmarshaler(Protocol):
    """A type which can rebuild itself from its msgpack encoding."""

    @classmethod
    def from_msgpack(cls, data: bytes) -> Any:
        ...


# msgpack extension type codes of the non-native types
EXT_DATETIME = 1
EXT_DATE = 2
EXT_DECIMAL = 3
EXT_UUID = 4
EXT_SET = 5
EXT_FROZENSET = 6


def _packb(value: Any) -> bytes:
    return msgpack.packb(value, default=default_encoder, use_bin_type=True)


def _unpackb(data: bytes) -> Any:
    return msgpack.unpackb(data, ext_hook=decode_ext_type, strict_map_key=False, raw=False)


def default_encoder(obj: Any) -> Any:
    """Encode types msgpack does not know natively."""
    if isinstance(obj, datetime):
        return msgpack.ExtType(EXT_DATETIME, obj.isoformat().encode())
    elif isinstance(obj, date):
        return msgpack.ExtType(EXT_DATE, obj.isoformat().encode())
    elif isinstance(obj, Decimal):
        return msgpack.ExtType(EXT_DECIMAL, str(obj).encode())
    elif isinstance(obj, UUID):
        return msgpack.ExtType(EXT_UUID, obj.bytes)
    elif isinstance(obj, set):
        return msgpack.ExtType(EXT_SET, _packb(list(obj)))
    elif isinstance(obj, frozenset):
        return msgpack.ExtType(EXT_FROZENSET, _packb(list(obj)))
    elif isinstance(obj, BaseModel):
        return obj.model_dump(mode="python")
    elif dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        # Nested dataclasses become plain maps
        return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}

    raise TypeError(f"Object of type {type(obj).__name__} is not msgpack serializable")


def decode_ext_type(code: int, data: bytes) -> Any:
    """Restore the extension types written by default_encoder."""
    if code == EXT_DATETIME:
        return datetime.fromisoformat(data.decode())
    elif code == EXT_DATE:
        return date.fromisoformat(data.decode())
    elif code == EXT_DECIMAL:
        return Decimal(data.decode())
    elif code == EXT_UUID:
        return UUID(bytes=data)
    elif code == EXT_SET:
        return set(_unpackb(data))
    elif code == EXT_FROZENSET:
        return frozenset(_unpackb(data))

    return msgpack.ExtType(code, data)


def _type_name(value: Any) -> str:
    return value.__name__ if isinstance(value, type) else type(value).__name__


class Codec(ABC):
    """Strategy for turning cache values into bytes and back."""

    @abstractmethod
    def marshal(self, value: Any) -> bytes:
        ...

    @abstractmethod
    def unmarshal(self, data: bytes, target: Optional[type] = None) -> Any:
        ...


class NativeMsgpackCodec(Codec):
    """Fast path: delegate to the value's own msgpack methods."""

    def marshal(self, value: Any) -> bytes:
        try:
            return value.to_msgpack()
        except Exception as e:
            raise SerializationError(
                f"Native msgpack encoding failed: {e}",
                operation="marshal",
                value_type=_type_name(value),
                original_error=e,
            ) from e

    def unmarshal(self, data: bytes, target: Optional[type] = None) -> Any:
        if target is None:
            raise SerializationError(
                "Native msgpack decoding needs a target type",
                operation="unmarshal",
            )
        try:
            return target.from_msgpack(data)
        except Exception as e:
            raise SerializationError(
                f"Native msgpack decoding failed: {e}",
                operation="unmarshal",
                value_type=_type_name(target),
                original_error=e,
            ) from e


class ReflectiveMsgpackCodec(Codec):
    """Slow path: generic msgpack with type coercion on decode."""

    def marshal(self, value: Any) -> bytes:
        try:
            return _packb(value)
        except (TypeError, ValueError, OverflowError) as e:
            raise SerializationError(
                f"Msgpack encoding failed: {e}",
                operation="marshal",
                value_type=_type_name(value),
                original_error=e,
            ) from e

    def unmarshal(self, data: bytes, target: Optional[type] = None) -> Any:
        try:
            obj = _unpackb(data)
        except (msgpack.exceptions.ExtraData, msgpack.exceptions.UnpackException, TypeError, ValueError) as e:
            raise SerializationError(
                f"Msgpack decoding failed: {e}",
                operation="unmarshal",
                value_type=_type_name(target) if target is not None else None,
                original_error=e,
            ) from e

        if target is None:
            return obj
        return self._coerce(obj, target)

    def _coerce(self, obj: Any, target: Type[Any]) -> Any:
        """
        Convert a decoded value to target.

        Pydantic models are validated recursively. Dataclasses are built from
        the top level mapping only, so nested dataclass fields stay dicts; use
        pydantic models for nested values. Beyond that only lists become
        tuples or sets and ints become floats.
        """
        try:
            if isinstance(target, type) and issubclass(target, BaseModel):
                return target.model_validate(obj)
            if dataclasses.is_dataclass(target) and isinstance(obj, dict):
                return target(**obj)
            if not dataclasses.is_dataclass(target) and isinstance(obj, target):
                return obj
            if isinstance(obj, list) and target in (tuple, set, frozenset):
                return target(obj)
            if target is float and isinstance(obj, int) and not isinstance(obj, bool):
                return float(obj)
        except (TypeError, ValueError, ValidationError) as e:
            raise SerializationError(
                f"Cannot convert cached {type(obj).__name__} to {_type_name(target)}: {e}",
                operation="unmarshal",
                value_type=_type_name(target),
                original_error=e,
            ) from e

        raise SerializationError(
            f"Cannot convert cached {type(obj).__name__} to {_type_name(target)}",
            operation="unmarshal",
            value_type=_type_name(target),
        )


class MsgpackCodec(Codec):
    """Pick the native codec when the value supports it, else the reflective one."""

    def __init__(self, native: Optional[Codec] = None, reflective: Optional[Codec] = None):
        self.native = native or NativeMsgpackCodec()
        self.reflective = reflective or ReflectiveMsgpackCodec()

    def marshal(self, value: Any) -> bytes:
        if isinstance(value, MsgpackMarshaler):
            return self.native.marshal(value)
        return self.reflective.marshal(value)

    def unmarshal(self, data: bytes, target: Optional[type] = None) -> Any:
        if isinstance(target, type) and issubclass(target, MsgpackUnmarshaler):
            return self.native.unmarshal(data, target)
        return self.reflective.unmarshal(data, target)


_default_codec = MsgpackCodec()


def msgpack_marshaler(value: Any) -> bytes:
    """Default Marshaler used by RedisOptions."""
    return _default_codec.marshal(value)


def msgpack_unmarshaler(data: bytes, target: Optional[type] = None) -> Any:
    """Default Unmarshaler used by RedisOptions."""
    return _default_codec.unmarshal(data, target)
