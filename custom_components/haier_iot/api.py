"""API client for the Haier IoT cloud.

This module provides the signed request/response layer used by the
session: authentication, family and device listing, digital model
fetches, the command fallback and the websocket address assignment.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx
import voluptuous as vol
from homeassistant.helpers.httpx_client import create_async_httpx_client
from httpx_retries import Retry, RetryTransport

from .auth import HaierAuth, generate_sequence_id, now_ms, sign_request
from .const import (
    API_URL_BATCH_SEND_COMMAND,
    API_URL_GET_DEV_DIGITAL_MODEL,
    API_URL_GET_DEVICES_BY_FAMILY_ID,
    API_URL_GET_FAMILY_LIST,
    API_URL_GET_WSS_URL,
    API_URL_LOGIN,
    APP_ID,
    APP_KEY,
    LANGUAGE,
    PHONE_TYPE,
    REQUEST_TIMEOUT,
    RET_CODE_SUCCESS,
    TIMEZONE,
)
from .decoder import parse_dev_digital_model
from .exceptions import HaierApiError, HaierAuthError, HaierDecodeError
from .models import DeviceInfo, DigitalModel, FamilyInfo, TokenInfo
from .schema import (
    DEVICE_INFO_SCHEMA,
    DEVICES_DATA_SCHEMA,
    DIGITAL_MODELS_DATA_SCHEMA,
    FAMILY_LIST_DATA_SCHEMA,
    LOGIN_RESPONSE_DATA_SCHEMA,
    RESPONSE_SCHEMA,
    WSS_URL_DATA_SCHEMA,
)

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant

_LOGGER = logging.getLogger(__name__)

# HTTP status codes
HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401


def create_headers(
    access_token: str | None,
    timestamp: int,
    sequence_id: str,
    sign: str,
) -> dict[str, str]:
    """Create HTTP headers for a signed Haier API request.

    Args:
        access_token: Access token, omitted for the login request.
        timestamp: Millisecond timestamp the signature was computed with.
        sequence_id: Sequence id derived from the timestamp.
        sign: Request signature.

    Returns:
        Dictionary containing HTTP headers for API requests.

    """
    headers = {
        "appId": APP_ID,
        "appKey": APP_KEY,
        "language": LANGUAGE,
        "timezone": TIMEZONE,
        "content-type": "application/json;charset=UTF-8",
        "accept": "application/json, text/plain, */*",
        "timestamp": str(timestamp),
        "sequenceId": sequence_id,
        "sign": sign,
    }
    if access_token:
        headers["accessToken"] = access_token
    return headers


def is_http_error(status: int) -> bool:
    """Check if HTTP status code indicates an error."""
    return status >= HTTP_BAD_REQUEST


def is_auth_error(status: int) -> bool:
    """Check if HTTP status code indicates authentication error."""
    return status == HTTP_UNAUTHORIZED


def is_api_error(data: dict[str, Any]) -> bool:
    """Check if API response carries a non-success return code.

    Args:
        data: API response data dictionary.

    Returns:
        True if ``retCode`` is not the success code, False otherwise.

    """
    return data.get("retCode") != RET_CODE_SUCCESS


def validate_response(response: httpx.Response) -> dict[str, Any]:
    """Validate HTTP response and return parsed JSON data.

    Args:
        response: HTTP response object to validate.

    Returns:
        Parsed JSON envelope (``retCode``, ``retInfo``, ``data``).

    Raises:
        HaierAuthError: If the server rejected the credentials.
        HaierApiError: If an HTTP or application level error is detected.

    """
    _validate_http_status(response)
    try:
        data = RESPONSE_SCHEMA(response.json())
    except (ValueError, vol.Invalid) as err:
        error_msg = f"Malformed response: {err}"
        raise HaierApiError("invalid_response", error_msg) from err
    _validate_api_status(data)
    return data


def _validate_http_status(response: httpx.Response) -> None:
    if not is_http_error(response.status_code):
        return

    if is_auth_error(response.status_code):
        auth_error = "Authentication error"
        raise HaierAuthError(auth_error)

    raise HaierApiError(str(response.status_code), "Request failed")


def _validate_api_status(data: dict[str, Any]) -> None:
    if not is_api_error(data):
        return

    _LOGGER.error("[Response] %s %s", data["retCode"], data.get("retInfo"))
    raise HaierApiError(data["retCode"], data.get("retInfo") or "Unknown API error")


def extract_token_info(data: dict[str, Any], timestamp: int) -> TokenInfo:
    """Extract the credential from a login response.

    Args:
        data: Validated response envelope.
        timestamp: Millisecond timestamp the login request was sent with.

    Returns:
        TokenInfo expiring ``expiresIn`` seconds after ``timestamp``.

    Raises:
        HaierAuthError: If the response does not carry a token.

    """
    try:
        token_data = LOGIN_RESPONSE_DATA_SCHEMA(data.get("data"))["tokenInfo"]
    except vol.Invalid as err:
        error_msg = f"Login failed: unexpected response ({err})"
        raise HaierAuthError(error_msg) from err

    return TokenInfo.from_dict(
        {**token_data, "expiresAt": timestamp + token_data["expiresIn"] * 1000}
    )


def extract_families(data: dict[str, Any]) -> list[FamilyInfo]:
    """Extract created and joined families from a family list response."""
    try:
        families = FAMILY_LIST_DATA_SCHEMA(data.get("data") or {})
    except vol.Invalid as err:
        _LOGGER.warning("Unexpected family list response: %s", err)
        return []

    created = families["createfamilies"] or []
    joined = families["joinfamilies"] or []
    return [
        FamilyInfo(family_id=f["familyId"], family_name=f["familyName"])
        for f in [*created, *joined]
    ]


def extract_devices(data: dict[str, Any]) -> list[DeviceInfo]:
    """Extract device list from a devices-by-family response.

    Records that do not look like a device are logged and skipped.
    """
    try:
        records = DEVICES_DATA_SCHEMA(data.get("data") or {})["deviceinfos"] or []
    except vol.Invalid as err:
        _LOGGER.warning("Unexpected device list response: %s", err)
        return []

    devices = []
    for record in records:
        try:
            device = DEVICE_INFO_SCHEMA(record)
        except vol.Invalid as err:
            _LOGGER.warning("Skipping malformed device record %s: %s", record, err)
            continue
        devices.append(
            DeviceInfo(
                device_id=device["deviceId"],
                device_name=device.get("deviceName") or device["deviceId"],
                device_type=device.get("deviceType"),
                wifi_type=device.get("wifiType"),
                family_id=device.get("familyId"),
                online=device.get("online"),
                raw=record,
            )
        )
    return devices


def extract_dev_digital_model(
    data: dict[str, Any], device_id: str
) -> DigitalModel | None:
    """Extract one device's digital model from a digital models response.

    The server keys models by device id, each one a JSON string.

    Raises:
        HaierApiError: If the model is present but cannot be parsed.

    """
    try:
        models = DIGITAL_MODELS_DATA_SCHEMA(data.get("data") or {})
    except vol.Invalid as err:
        raise HaierApiError("invalid_response", str(err)) from err

    raw_model = models.get(device_id)
    if raw_model is None:
        return None

    try:
        if isinstance(raw_model, str):
            raw_model = json.loads(raw_model)
        return parse_dev_digital_model(raw_model)
    except (ValueError, HaierDecodeError) as err:
        error_msg = f"Malformed digital model for {device_id}: {err}"
        raise HaierApiError("invalid_response", error_msg) from err


def extract_wss_address(data: dict[str, Any]) -> str:
    """Extract the websocket gateway address from an assignment response."""
    try:
        return WSS_URL_DATA_SCHEMA(data.get("data"))["agAddr"]
    except vol.Invalid as err:
        raise HaierApiError("invalid_response", str(err)) from err


def create_session_client(hass: HomeAssistant) -> httpx.AsyncClient:
    """Create HTTP client with retry logic for the Haier API.

    Args:
        hass: Home Assistant instance.

    Returns:
        Configured httpx AsyncClient with retry transport.

    """
    base_client = create_async_httpx_client(hass, timeout=REQUEST_TIMEOUT)
    retry = Retry(total=3, backoff_factor=0.5)
    base_client._transport = RetryTransport(  # noqa: SLF001
        transport=base_client._transport,  # noqa: SLF001
        retry=retry,
    )
    return base_client


class HaierApi:
    """Signed request layer over an httpx session.

    Every request except the login carries an access token resolved through
    :class:`HaierAuth`, a millisecond timestamp, a sequence id and a
    signature over the exact target and body sent.
    """

    def __init__(
        self,
        session: httpx.AsyncClient,
        storage_dir: Path | str,
        username: str,
        password: str,
    ) -> None:
        self._session = session
        self.auth = HaierAuth(storage_dir, username, password, self.async_authenticate)

    async def _async_request(
        self,
        method: str,
        url: str,
        *,
        body: Any = None,
        params: dict[str, Any] | None = None,
        authenticated: bool = True,
    ) -> tuple[dict[str, Any], int]:
        access_token = (
            await self.auth.async_get_access_token() if authenticated else None
        )
        request_url = httpx.URL(url, params=params)
        content = (
            json.dumps(body, ensure_ascii=False, separators=(",", ":"))
            if body is not None
            else ""
        )
        timestamp = now_ms()
        headers = create_headers(
            access_token,
            timestamp,
            generate_sequence_id(timestamp),
            sign_request(request_url.raw_path.decode("ascii"), content, timestamp),
        )

        _LOGGER.debug("[Request] %s %s", method, request_url)
        response = await self._session.request(
            method,
            request_url,
            headers=headers,
            content=content.encode("utf-8") if content else None,
        )
        return validate_response(response), timestamp

    async def async_request(
        self,
        method: str,
        url: str,
        *,
        body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send an authenticated, signed request and return the envelope.

        Raises:
            HaierAuthError: If no access token can be obtained.
            HaierApiError: If the server reports an error.
            httpx.RequestError: If the request cannot be sent.

        """
        data, _ = await self._async_request(method, url, body=body, params=params)
        return data

    async def async_authenticate(self) -> TokenInfo:
        """Log in with the configured username and password.

        Returns:
            TokenInfo expiring ``expiresIn`` seconds after the request.

        Raises:
            HaierAuthError: If authentication fails.
            HaierApiError: If API request fails.

        """
        payload = {
            "username": self.auth.username,
            "password": self.auth.password,
            "phoneType": PHONE_TYPE,
        }

        _LOGGER.debug("Authenticating with Haier API")
        data, timestamp = await self._async_request(
            "POST", API_URL_LOGIN, body=payload, authenticated=False
        )
        token_info = extract_token_info(data, timestamp)
        _LOGGER.debug("Successfully authenticated with Haier API")
        return token_info

    async def async_get_family_list(self) -> list[FamilyInfo]:
        """Fetch the families the account created or joined."""
        data = await self.async_request("POST", API_URL_GET_FAMILY_LIST, body={})
        families = extract_families(data)
        _LOGGER.debug("Retrieved %d families from Haier API", len(families))
        return families

    async def async_get_devices_by_family_id(self, family_id: str) -> list[DeviceInfo]:
        """Fetch the devices bound to a family."""
        data = await self.async_request(
            "GET", API_URL_GET_DEVICES_BY_FAMILY_ID, params={"familyId": family_id}
        )
        devices = extract_devices(data)
        _LOGGER.debug(
            "Retrieved %d devices for family %s from Haier API", len(devices), family_id
        )
        return devices

    async def async_get_dev_digital_model(self, device_id: str) -> DigitalModel | None:
        """Fetch the current digital model of a device."""
        data = await self.async_request(
            "POST",
            API_URL_GET_DEV_DIGITAL_MODEL,
            body={"deviceInfoList": [{"deviceId": device_id}]},
        )
        return extract_dev_digital_model(data, device_id)

    async def async_send_batch_command(
        self, device_id: str, payload: dict[str, Any]
    ) -> dict[str, Any]:
        """Send a batch command over REST.

        Returns:
            The ``data`` member of the response envelope.

        """
        _LOGGER.debug("Sending batch command to device %s over REST", device_id)
        data = await self.async_request(
            "POST",
            API_URL_BATCH_SEND_COMMAND.format(device_id=device_id),
            body=payload,
        )
        return data.get("data") or {}

    async def async_get_wss_url(self) -> str:
        """Ask the cloud for a websocket gateway and build the connection URL.

        The URL embeds a fresh access token and the client identity.
        """
        client_id = self.auth.client_id
        access_token = await self.auth.async_get_access_token()
        data = await self.async_request(
            "POST",
            API_URL_GET_WSS_URL,
            body={"clientId": client_id, "token": access_token},
        )
        address = extract_wss_address(data).rstrip("/")
        return str(
            httpx.URL(
                f"{address}/userag",
                params={"token": access_token, "agClientId": client_id},
            )
        )
