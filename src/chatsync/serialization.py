"""msgspec codecs for the persisted JSON layout (storage file, CLI output)."""

from typing import Any, TypeVar

import msgspec

_encoder = msgspec.json.Encoder()
_document_decoder = msgspec.json.Decoder(dict[str, Any])


def to_json(obj: object, *, indent: int = 0) -> bytes:
    data = _encoder.encode(obj)
    return msgspec.json.format(data, indent=indent) if indent else data


def decode_document(data: bytes | str) -> dict[str, Any]:
    """Decodes a JSON object; anything else is a `msgspec.ValidationError`."""
    return _document_decoder.decode(data)


def to_builtins(obj: object) -> Any:
    """Structs (and containers of structs) as plain values, camelCase keys included."""
    return msgspec.to_builtins(obj)


def to_record(obj: object) -> dict[str, Any]:
    """A struct's fields as a mapping; with `omit_defaults` unset fields are left out."""
    match res := msgspec.to_builtins(obj):
        case dict():
            return res
        case _:
            raise TypeError(f"Expected a record, got {type(res).__name__}")


T = TypeVar("T")


def convert(obj: object, type_spec: type[T]) -> T:
    return msgspec.convert(obj, type_spec)
