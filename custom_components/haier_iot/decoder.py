"""Decoder for digital model pushes received over the websocket.

A ``GenMsgDown`` push carries a base64 JSON document ``{dev, args}`` where
``args`` is itself a base64, compressed JSON digital model.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import zlib
from typing import Any

import voluptuous as vol

from .exceptions import HaierDecodeError
from .models import Attribute, DigitalModel
from .schema import ATTRIBUTE_SCHEMA, DIGITAL_MODEL_SCHEMA, PUSH_PAYLOAD_SCHEMA

_LOGGER = logging.getLogger(__name__)

# Accept both zlib and gzip headers.
_AUTO_DETECT_WBITS = zlib.MAX_WBITS | 32


def _b64decode(data: str, reason: str) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as err:
        raise HaierDecodeError(reason, str(err)) from err


def _json_loads(data: bytes, reason: str) -> Any:
    try:
        return json.loads(data)
    except (UnicodeDecodeError, ValueError) as err:
        raise HaierDecodeError(reason, str(err)) from err


def parse_dev_digital_model(data: Any) -> DigitalModel:
    """Validate decoded digital model data.

    Attributes that do not match the attribute shape are dropped and logged;
    the remaining ones are kept.

    Raises:
        HaierDecodeError: If the model itself does not have the expected shape.

    """
    try:
        model = DIGITAL_MODEL_SCHEMA(data)
    except vol.Invalid as err:
        raise HaierDecodeError("model_shape", str(err)) from err

    attributes = []
    for entry in model["attributes"]:
        try:
            attributes.append(Attribute.from_dict(ATTRIBUTE_SCHEMA(entry)))
        except vol.Invalid as err:
            _LOGGER.warning("Dropping malformed attribute %s: %s", entry, err)

    return DigitalModel(alarms=list(model["alarms"] or []), attributes=attributes)


def decode_dev_digital_model(payload: str) -> tuple[str, DigitalModel]:
    """Decode a digital model push.

    Args:
        payload: The ``data`` member of a ``GenMsgDown`` envelope.

    Returns:
        Tuple of (device_id, DigitalModel).

    Raises:
        HaierDecodeError: With ``reason`` naming the step that failed.

    """
    outer = _json_loads(_b64decode(payload, "outer_base64"), "outer_json")
    try:
        outer = PUSH_PAYLOAD_SCHEMA(outer)
    except vol.Invalid as err:
        raise HaierDecodeError("outer_shape", str(err)) from err

    compressed = _b64decode(outer["args"], "args_base64")
    try:
        raw = zlib.decompress(compressed, _AUTO_DETECT_WBITS)
    except zlib.error as err:
        raise HaierDecodeError("decompress", str(err)) from err

    model = parse_dev_digital_model(_json_loads(raw, "inner_json"))
    return outer["dev"], model
