"""
Raid Datum Codec - Plutus data CBOR for the pool records.

Generic layer:
- encode(variant, fields) -> bytes
- decode(data) -> Constr(variant, fields)

Typed layer (the one producers should use; pycardano to_cbor / from_cbor):
- encode_record(record) -> bytes
- decode_record(cls, data) -> record

Constructor tags follow the Plutus data encoding: variants 0-6 use tags
121-127, 7-127 use 1280-1400, anything larger uses tag 102 with
[variant, fields]. Non-empty arrays are written indefinite-length.
"""
import io
from dataclasses import fields as dataclass_fields
from typing import Any, List, NamedTuple, Sequence, Type, TypeVar

import cbor2
from pycardano.exception import DecodingException, DeserializeException
from pycardano.plutus import PlutusData
from pycardano.serialization import IndefiniteList, default_encoder

from raid_errors import DatumFormatError

R = TypeVar("R", bound=PlutusData)

MAX_BYTES_CHUNK = 64


class Constr(NamedTuple):
    """A decoded constructor application: variant index plus ordered fields."""
    index: int
    fields: List[Any]


# =============================================================================
# TAGS
# =============================================================================

def constr_tag(index: int) -> int:
    """CBOR tag number for constructor variant `index`."""
    if index < 0:
        raise ValueError(f"constructor index must be >= 0, got {index}")
    if index < 7:
        return 121 + index
    if index < 128:
        return 1280 + index - 7
    return 102


def constr_index(tag: int) -> int:
    """Variant index for a constructor tag, -1 if the tag is not one."""
    if 121 <= tag <= 127:
        return tag - 121
    if 1280 <= tag <= 1400:
        return tag - 1280 + 7
    return -1


# =============================================================================
# ENCODE
# =============================================================================

def _array(items: list):
    return IndefiniteList(items) if items else []


def _to_primitive(value: Any, path: str) -> Any:
    if isinstance(value, bool):
        raise ValueError(f"booleans are not plutus data ({path})")
    if isinstance(value, int):
        return value
    if isinstance(value, (bytes, bytearray)):
        if len(value) > MAX_BYTES_CHUNK:
            raise ValueError(f"byte string longer than {MAX_BYTES_CHUNK} bytes ({path})")
        return bytes(value)
    if isinstance(value, Constr):
        return _constr_primitive(value.index, value.fields, path)
    if isinstance(value, PlutusData):
        return _constr_primitive(value.CONSTR_ID, _record_fields(value), path)
    if isinstance(value, (list, tuple)):
        return _array([_to_primitive(v, f"{path}[{i}]") for i, v in enumerate(value)])
    raise ValueError(f"unsupported datum value {type(value).__name__} ({path})")


def _constr_primitive(index: int, fields: Sequence[Any], path: str) -> cbor2.CBORTag:
    items = [_to_primitive(v, f"{path}.{i}") for i, v in enumerate(fields)]
    tag = constr_tag(index)
    if tag == 102:
        return cbor2.CBORTag(tag, [index, _array(items)])
    return cbor2.CBORTag(tag, _array(items))


def encode(index: int, fields: Sequence[Any]) -> bytes:
    """Encode a constructor application to CBOR bytes."""
    return cbor2.dumps(_constr_primitive(index, fields, "$"), default=default_encoder)


def _record_fields(record: PlutusData) -> List[Any]:
    return [getattr(record, f.name) for f in dataclass_fields(record)]


def encode_record(record: PlutusData) -> bytes:
    """Encode a typed record using its declared CONSTR_ID and field order."""
    return record.to_cbor()


# =============================================================================
# DECODE
# =============================================================================

def _from_primitive(value: Any, data: bytes, path: str) -> Any:
    # Shape errors are found after the stream is decoded: they name a field
    # path, not a byte offset.
    if isinstance(value, bool) or value is None or isinstance(value, float):
        raise DatumFormatError("not plutus data", data, None, path)
    if isinstance(value, int):
        return value
    if isinstance(value, bytes):
        return value
    if isinstance(value, list):
        return [_from_primitive(v, data, f"{path}[{i}]") for i, v in enumerate(value)]
    if isinstance(value, cbor2.CBORTag):
        if value.tag == 102:
            if not (isinstance(value.value, list) and len(value.value) == 2
                    and isinstance(value.value[0], int) and isinstance(value.value[1], list)):
                raise DatumFormatError("malformed tag 102 constructor", data, None, path)
            index, raw_fields = value.value
        else:
            index = constr_index(value.tag)
            raw_fields = value.value
            if index < 0:
                raise DatumFormatError(f"unexpected CBOR tag {value.tag}", data, None, path)
            if not isinstance(raw_fields, list):
                raise DatumFormatError("constructor fields must be an array", data, None, path)
        return Constr(index, [
            _from_primitive(v, data, f"{path}.{i}") for i, v in enumerate(raw_fields)
        ])
    raise DatumFormatError(f"unsupported item {type(value).__name__}", data, None, path)


def decode(data: bytes) -> Constr:
    """
    Decode CBOR bytes into a constructor application.

    Raises DatumFormatError with the byte offset where decoding stopped for
    malformed, truncated or over-long input, and with a field path for items
    that are not plutus data.
    """
    data = bytes(data)
    fp = io.BytesIO(data)
    try:
        value = cbor2.CBORDecoder(fp).decode()
    except (cbor2.CBORDecodeError, EOFError, ValueError, TypeError) as e:
        raise DatumFormatError(f"malformed datum ({e})", data, fp.tell()) from e
    end = fp.tell()
    if end < len(data):
        raise DatumFormatError("trailing bytes after datum", data, end)
    result = _from_primitive(value, data, "$")
    if not isinstance(result, Constr):
        raise DatumFormatError("datum is not a constructor", data, None, "$")
    return result


# =============================================================================
# TYPED RECORDS
# =============================================================================

def decode_record(cls: Type[R], data: bytes) -> R:
    """Decode bytes into `cls`; variant, arity and field types are checked by pycardano."""
    data = bytes(data)
    try:
        return cls.from_cbor(data)
    except (DeserializeException, DecodingException, cbor2.CBORDecodeError, TypeError, ValueError) as e:
        raise DatumFormatError(f"not a {cls.__name__} ({e})", data, None, cls.__name__) from e
