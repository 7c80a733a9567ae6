"""
Value codecs.

Cache values are JSON with type tags so datetimes survive a round trip.
Store snapshots and exports are Arrow tables built from the store's field
rules, written as IPC streams.
"""

import json
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

import pyarrow as pa
import pyarrow.ipc as ipc

from .exceptions import SerializationError
from .schema import FieldRule, FieldType


class TaggedJSONEncoder(json.JSONEncoder):
    """JSON encoder for the extra types records carry."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return {"__datetime__": obj.isoformat()}
        elif isinstance(obj, date):
            return {"__date__": obj.isoformat()}
        elif isinstance(obj, (set, frozenset)):
            return {"__set__": sorted(obj, key=repr)}
        elif isinstance(obj, bytes):
            return {"__bytes__": obj.hex()}
        return super().default(obj)


def _decode_tags(obj: Dict[str, Any]) -> Any:
    if len(obj) == 1:
        if "__datetime__" in obj:
            return datetime.fromisoformat(obj["__datetime__"])
        if "__date__" in obj:
            return date.fromisoformat(obj["__date__"])
        if "__set__" in obj:
            return set(obj["__set__"])
        if "__bytes__" in obj:
            return bytes.fromhex(obj["__bytes__"])
    return obj


def serialize(value: Any) -> bytes:
    """Serialize a cache value. Raises SerializationError."""
    try:
        return json.dumps(value, cls=TaggedJSONEncoder, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Cannot serialize {type(value).__name__}: {e}") from e


def deserialize(raw: bytes) -> Any:
    """Deserialize a cache value, returning the raw bytes if they are not valid JSON."""
    try:
        return json.loads(raw, object_hook=_decode_tags)
    except (ValueError, TypeError):
        return raw


# ---------------------------------------------------------------------------
# Arrow tables
# ---------------------------------------------------------------------------

TIMESTAMP_TYPE = pa.timestamp('us', tz='UTC')
INT64_MIN, INT64_MAX = -(2 ** 63), 2 ** 63 - 1

# Field metadata marking a column of tagged-JSON text
ENCODING_KEY = b"encoding"
JSON_ENCODING = b"tagged-json"


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _typed_column(rule: FieldRule, present: List[Any]) -> Optional[pa.DataType]:
    """
    Arrow type holding every present value of a schema field unchanged,
    or None when the column has to fall back to tagged JSON.
    """
    if any(v is None for v in present):
        return None
    if rule.type is FieldType.STRING:
        if all(isinstance(v, str) for v in present):
            return pa.string()
    elif rule.type is FieldType.NUMBER:
        if all(_is_int(v) and INT64_MIN <= v <= INT64_MAX for v in present):
            return pa.int64()
        if all(isinstance(v, float) for v in present):
            return pa.float64()
    elif rule.type is FieldType.DATE:
        if all(isinstance(v, datetime) and v.tzinfo is not None for v in present):
            return TIMESTAMP_TYPE
    else:
        raise ValueError(f"Unhandled field type: {rule.type}")
    return None


def _json_text(name: str, value: Any) -> str:
    try:
        return json.dumps(value, cls=TaggedJSONEncoder, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Column {name} cannot be encoded: {e}") from e


def records_to_table(records: List[Mapping[str, Any]], schema: Mapping[str, FieldRule],
                     metadata: Optional[Dict[str, str]] = None) -> pa.Table:
    """
    Build an Arrow table from records.

    A schema field whose values all match its rule gets a native column.
    Every other field (fields outside the schema, values of the wrong type,
    explicit None) is stored as tagged-JSON text so it reloads unchanged.
    A null cell means the record did not have the field.
    Raises SerializationError if a value cannot be encoded.
    """
    names = list(schema.keys())
    for record in records:
        for name in record.keys():
            if name not in schema and name not in names:
                names.append(name)

    arrays = []
    fields = []
    for name in names:
        present = [record[name] for record in records if name in record]
        arrow_type = _typed_column(schema[name], present) if name in schema else None

        if arrow_type is not None:
            try:
                array = pa.array([record.get(name) for record in records], type=arrow_type)
            except (pa.ArrowInvalid, pa.ArrowTypeError, TypeError, OverflowError) as e:
                raise SerializationError(f"Column {name} cannot be encoded: {e}") from e
            fields.append(pa.field(name, arrow_type))
        else:
            texts = [_json_text(name, record[name]) if name in record else None for record in records]
            array = pa.array(texts, type=pa.string())
            fields.append(pa.field(name, pa.string(), metadata={ENCODING_KEY: JSON_ENCODING}))
        arrays.append(array)

    arrow_schema = pa.schema(fields, metadata=metadata)
    return pa.Table.from_arrays(arrays, schema=arrow_schema)


def _is_json_column(field: pa.Field) -> bool:
    return bool(field.metadata) and field.metadata.get(ENCODING_KEY) == JSON_ENCODING


def table_to_records(table: pa.Table) -> List[Dict[str, Any]]:
    """
    Convert a table written by records_to_table back to records.
    Raises ValueError if a JSON column holds invalid text.
    """
    records: List[Dict[str, Any]] = [{} for _ in range(table.num_rows)]
    for field in table.schema:
        is_json = _is_json_column(field)
        for record, value in zip(records, table.column(field.name).to_pylist()):
            if value is None:
                continue
            if is_json:
                value = json.loads(value, object_hook=_decode_tags)
            elif isinstance(value, datetime) and value.tzinfo is not None:
                value = value.astimezone(timezone.utc)
            record[field.name] = value
    return records


def encode_snapshot(table: pa.Table) -> bytes:
    """Write a table as an Arrow IPC stream."""
    sink = pa.BufferOutputStream()
    with ipc.new_stream(sink, table.schema) as writer:
        writer.write_table(table)
    return sink.getvalue().to_pybytes()


def decode_snapshot(raw: bytes) -> pa.Table:
    """Read an Arrow IPC stream written by encode_snapshot."""
    reader = ipc.open_stream(pa.py_buffer(raw))
    return reader.read_all()


# ---------------------------------------------------------------------------
# Wire timestamps
# ---------------------------------------------------------------------------

def coerce_datetime(value: Any) -> Any:
    """
    Interpret a wire timestamp as an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), ISO 8601 text with an
    optional trailing ``Z`` and epoch milliseconds. Anything else is returned
    unchanged so validation can reject it.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return value
    else:
        return value

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_dates(record: Mapping[str, Any], schema: Mapping[str, FieldRule]) -> Dict[str, Any]:
    """Copy of record with every present date-typed field passed through coerce_datetime."""
    normalized = dict(record)
    for name, rule in schema.items():
        if rule.type is FieldType.DATE and normalized.get(name) is not None:
            normalized[name] = coerce_datetime(normalized[name])
    return normalized
