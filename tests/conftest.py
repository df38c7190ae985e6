"""Pytest configuration and fixtures for Haier IoT tests."""

from __future__ import annotations

import base64
import json
import zlib
from typing import TYPE_CHECKING, Any

import pytest

from custom_components.haier_iot.const import RET_CODE_SUCCESS

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

TEST_USERNAME = "13800000000"
TEST_PASSWORD = "password123"
TEST_ACCESS_TOKEN = "test_uhome_access_token"
TEST_DEVICE_ID = "DC330D0A1B2C"


def create_push_payload(
    device_id: str,
    model: Any,
    *,
    compress: Callable[[bytes], bytes] = zlib.compress,
) -> str:
    """Build a ``GenMsgDown`` data payload the way the relay server does.

    Args:
        device_id: Device the push is for.
        model: Digital model data, serialised to JSON.
        compress: Compression applied to the model before base64.

    Returns:
        The base64 encoded ``{dev, args}`` document.

    """
    args = base64.b64encode(compress(json.dumps(model).encode())).decode()
    outer = json.dumps({"dev": device_id, "args": args}).encode()
    return base64.b64encode(outer).decode()


@pytest.fixture
def storage_dir(tmp_path: Path) -> Path:
    """Fixture providing an empty storage directory."""
    return tmp_path / "haier-iot"


@pytest.fixture
def sample_token_info_data() -> dict:
    """Fixture providing the ``tokenInfo`` member of a login response."""
    return {
        "accountToken": "test_account_token",
        "expiresIn": 604800,
        "tokenType": "Bearer",
        "refreshToken": "test_refresh_token",
        "uhomeAccessToken": TEST_ACCESS_TOKEN,
        "uhomeUserId": "1001",
        "uocUserId": "2002",
    }


@pytest.fixture
def sample_login_response(sample_token_info_data: dict) -> dict:
    """Fixture providing a sample login API response.

    Args:
        sample_token_info_data: Token info fixture.

    Returns:
        A dictionary representing a login API response.

    """
    return {
        "retCode": RET_CODE_SUCCESS,
        "retInfo": "success",
        "data": {"tokenInfo": sample_token_info_data},
    }


@pytest.fixture
def sample_family_list_response() -> dict:
    """Fixture providing a sample family list API response."""
    return {
        "retCode": RET_CODE_SUCCESS,
        "retInfo": "success",
        "data": {
            "createfamilies": [{"familyId": "family1", "familyName": "Home"}],
            "joinfamilies": [{"familyId": "family2", "familyName": "Parents"}],
        },
    }


@pytest.fixture
def sample_devices_response() -> dict:
    """Fixture providing a sample devices-by-family API response.

    Returns:
        A dictionary representing a device list with two devices.

    """
    return {
        "retCode": RET_CODE_SUCCESS,
        "retInfo": "success",
        "data": {
            "deviceinfos": [
                {
                    "deviceId": TEST_DEVICE_ID,
                    "deviceName": "Living room AC",
                    "deviceType": "AirConditioner",
                    "wifiType": "wifi-type-1",
                    "familyId": "family1",
                    "online": True,
                },
                {"deviceId": "DC330D0A9999", "deviceName": "Water heater"},
            ],
        },
    }


@pytest.fixture
def sample_digital_model_data() -> dict:
    """Fixture providing a digital model with two well-formed attributes."""
    return {
        "alarms": [],
        "attributes": [
            {
                "name": "onOffStatus",
                "desc": "Power",
                "readable": True,
                "writable": True,
                "invisible": False,
                "valueRange": {
                    "type": "LIST",
                    "dataList": [
                        {"data": "true", "desc": "On"},
                        {"data": "false", "desc": "Off"},
                    ],
                },
                "value": "false",
            },
            {
                "name": "targetTemperature",
                "desc": "Target temperature",
                "readable": True,
                "writable": True,
                "invisible": False,
                "valueRange": {
                    "type": "STEP",
                    "dataStep": {
                        "dataType": "Double",
                        "step": "0.5",
                        "minValue": "16",
                        "maxValue": "30",
                    },
                },
                "value": "24",
            },
        ],
    }


@pytest.fixture
def sample_digital_model_response(sample_digital_model_data: dict) -> dict:
    """Fixture providing a digital model API response for one device."""
    return {
        "retCode": RET_CODE_SUCCESS,
        "retInfo": "success",
        "data": {TEST_DEVICE_ID: json.dumps(sample_digital_model_data)},
    }


@pytest.fixture
def sample_wss_url_response() -> dict:
    """Fixture providing a websocket gateway assignment response."""
    return {
        "retCode": RET_CODE_SUCCESS,
        "retInfo": "success",
        "data": {"agAddr": "wss://ag.haier.example:443/"},
    }


@pytest.fixture
def device_id() -> str:
    """Fixture providing the id of the sample device."""
    return TEST_DEVICE_ID


@pytest.fixture
def push_payload_factory() -> Callable[..., str]:
    """Fixture providing :func:`create_push_payload`."""
    return create_push_payload
