"""
Wire encodings for rosbridge operations.

JSON is the default for every topic; byte payloads are carried as base64
strings. BSON embeds them as native binary values and saves the base64
overhead, but not every rosbridge build accepts it, so it is opt-in per topic.
"""

import base64
import json

import bson
from bson.errors import BSONError

JSON = "json"
BSON = "bson"
ENCODINGS_SUPPORTED = [JSON, BSON]


class SerializationError(Exception):
    """A message could not be encoded."""


def _json_default(value):
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_json(message):
    try:
        return json.dumps(message, default=_json_default, allow_nan=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise SerializationError(f"JSON encoding failed: {e}") from e


def _bson_ready(value):
    # bson stores bytes as binary subtype 0 on its own; only containers need walking.
    if isinstance(value, dict):
        return {key: _bson_ready(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_bson_ready(item) for item in value]
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    return value


def encode_bson(message):
    try:
        return bson.encode(_bson_ready(message))
    except (BSONError, TypeError, ValueError, OverflowError) as e:
        raise SerializationError(f"BSON encoding failed: {e}") from e


def encode(message, encoding=JSON):
    """Encodes an operation as ``str`` (JSON) or ``bytes`` (BSON)."""
    if encoding == JSON:
        return encode_json(message)
    if encoding == BSON:
        return encode_bson(message)
    raise ValueError(f"Unsupported encoding '{encoding}'; expected one of {ENCODINGS_SUPPORTED}")
