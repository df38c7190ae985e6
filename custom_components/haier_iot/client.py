"""Haier IoT session facade.

Composes the REST layer, the credential manager, the websocket session and
the digital model cache into the client used by the integration.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any

import voluptuous as vol

from .api import HaierApi
from .auth import generate_sequence_id
from .const import (
    CACHE_FLUSH_DELAY,
    DEFAULT_STORAGE_DIR,
    DIGITAL_MODEL_DIR,
    RECONNECT_BASE_DELAY,
    TOPIC_BATCH_CMD_REQ,
)
from .exceptions import HaierValidationError
from .models import DigitalModel, DigitalModelUpdate
from .schema import COMMANDS_SCHEMA
from .store import DiskMap
from .websocket import HaierWebSocketManager

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    import httpx

    from .models import DeviceInfo, FamilyInfo, TokenInfo

_LOGGER = logging.getLogger(__name__)


def build_batch_command(
    device_id: str, commands: list[dict[str, str]]
) -> dict[str, Any]:
    """Build the batch command payload shared by the websocket and REST paths.

    Args:
        device_id: Target device.
        commands: Validated list of ``{attribute name: value}`` mappings,
            applied in order.

    Returns:
        Payload with one ``data`` entry per command.

    """
    sn = generate_sequence_id()
    return {
        "sn": sn,
        "trace": uuid.uuid4().hex,
        "data": [
            {
                "deviceId": device_id,
                "index": index,
                "cmdArgs": cmd_args,
                "subSn": f"{sn}:{index}",
                "delaySeconds": 0,
            }
            for index, cmd_args in enumerate(commands)
        ],
    }


class HaierIoT:
    """Client for one Haier IoT account.

    Digital models are cached on disk under ``<storage_dir>/dev-digital-model``
    and kept current by websocket pushes and by the commands sent through
    this client. Command results are applied to the cache optimistically;
    if the device rejects a command the cache stays ahead of the device
    until the next push or forced fetch.
    """

    def __init__(
        self,
        session: httpx.AsyncClient,
        username: str,
        password: str,
        storage_dir: Path | str | None = None,
        *,
        reconnect_base_delay: float = RECONNECT_BASE_DELAY,
        max_reconnect_delay: float | None = None,
        cache_flush_delay: float = CACHE_FLUSH_DELAY,
    ) -> None:
        """Initialize the client.

        Args:
            session: HTTP client used for REST calls.
            username: Account username.
            password: Account password.
            storage_dir: Base directory for tokens, client id and cache.
            reconnect_base_delay: First websocket reconnect delay in seconds.
            max_reconnect_delay: Optional ceiling for the reconnect delay.
            cache_flush_delay: Debounce window for cache writes in seconds.

        """
        self._storage_dir = (
            Path(storage_dir) if storage_dir is not None else DEFAULT_STORAGE_DIR
        )
        self.api = HaierApi(session, self._storage_dir, username, password)
        self.websocket = HaierWebSocketManager(
            self.api.async_get_wss_url,
            reconnect_base_delay=reconnect_base_delay,
            max_reconnect_delay=max_reconnect_delay,
        )
        self._dev_digital_models: DiskMap[DigitalModel] = DiskMap(
            self._storage_dir / DIGITAL_MODEL_DIR,
            flush_delay=cache_flush_delay,
            encode=DigitalModel.to_dict,
            decode=DigitalModel.from_dict,
        )
        self._update_callbacks: list[Callable[[DigitalModelUpdate], None]] = []
        self._unregister_websocket = self.websocket.register_device_update_callback(
            self._handle_device_update
        )

    @property
    def storage_dir(self) -> Path:
        """Return the base directory for tokens, client id and cache."""
        return self._storage_dir

    @property
    def client_id(self) -> str:
        """Return the durable client identity."""
        return self.api.auth.client_id

    @property
    def connected(self) -> bool:
        """Return True if the websocket is open."""
        return self.websocket.connected

    @property
    def dev_digital_models(self) -> DiskMap[DigitalModel]:
        """Return the digital model cache."""
        return self._dev_digital_models

    def register_dev_digital_model_update_callback(
        self,
        callback: Callable[[DigitalModelUpdate], None],
    ) -> Callable[[], None]:
        """Register a callback for digital model changes.

        Called after the cache has been updated, for websocket pushes and for
        optimistic updates after a command.

        Returns:
            A function to unregister the callback.

        """
        self._update_callbacks.append(callback)

        def unregister() -> None:
            if callback in self._update_callbacks:
                self._update_callbacks.remove(callback)

        return unregister

    def _emit(self, update: DigitalModelUpdate) -> None:
        for callback in list(self._update_callbacks):
            try:
                callback(update)
            except Exception:
                _LOGGER.exception("Error in digital model update callback")

    def _handle_device_update(self, update: DigitalModelUpdate) -> None:
        self._dev_digital_models.set(update.device_id, update.model)
        self._emit(update)

    def load_credentials(self) -> None:
        """Read the client id and stored token from disk.

        Blocking. Later reads are served from memory, so callers on an event
        loop can run this once in an executor.
        """
        _ = self.api.auth.client_id
        _ = self.api.auth.token_info

    async def async_login(self) -> TokenInfo:
        """Log in and persist the credential."""
        return await self.api.auth.async_login()

    async def async_get_family_list(self) -> list[FamilyInfo]:
        """Return the families the account created or joined."""
        return await self.api.async_get_family_list()

    async def async_get_devices_by_family_id(self, family_id: str) -> list[DeviceInfo]:
        """Return the devices bound to ``family_id``."""
        return await self.api.async_get_devices_by_family_id(family_id)

    async def async_connect(self) -> None:
        """Open the websocket session."""
        await self.websocket.async_connect()

    async def async_subscribe_devices(self, device_ids: Iterable[str]) -> bool:
        """Subscribe to pushes for ``device_ids``, now or on the next connect."""
        return await self.websocket.async_subscribe_devices(device_ids)

    async def async_get_dev_digital_model(
        self, device_id: str, force_update: bool = False
    ) -> DigitalModel | None:
        """Return the digital model of a device.

        Args:
            device_id: Device to look up.
            force_update: Skip the cache and fetch from the cloud.

        Returns:
            The model, or None if the cloud has none for this device.

        """
        if not force_update:
            cached = self._dev_digital_models.get(device_id)
            if cached is not None:
                return cached

        model = await self.api.async_get_dev_digital_model(device_id)
        if model is not None:
            self._dev_digital_models.set(device_id, model)
        return model

    async def async_send_commands(
        self, device_id: str, commands: list[dict[str, Any]]
    ) -> None:
        """Send attribute changes to a device.

        The websocket is used while it is open; otherwise, or if that send
        fails, the command goes over REST.

        Args:
            device_id: Target device.
            commands: Non-empty list of ``{attribute name: value}`` mappings.

        Raises:
            HaierValidationError: If the device id or commands are malformed.
            HaierApiError: If the REST fallback fails.
            HaierAuthError: If the REST fallback cannot authenticate.

        """
        if not isinstance(device_id, str) or not device_id:
            error_msg = f"Invalid device id: {device_id!r}"
            raise HaierValidationError(error_msg)
        try:
            commands = COMMANDS_SCHEMA(commands)
        except vol.Invalid as err:
            error_msg = f"Invalid commands: {err}"
            raise HaierValidationError(error_msg) from err

        payload = build_batch_command(device_id, commands)

        sent = False
        if self.websocket.connected:
            sent = await self.websocket.async_send(TOPIC_BATCH_CMD_REQ, payload)
        if not sent:
            _LOGGER.debug("Sending command for %s over REST", device_id)
            await self.api.async_send_batch_command(device_id, payload)

        self._apply_commands(device_id, commands)

    def _apply_commands(self, device_id: str, commands: list[dict[str, str]]) -> None:
        """Write command values into the cached model and emit the change."""
        model = self._dev_digital_models.get(device_id)
        if model is None:
            _LOGGER.debug("No cached digital model for %s to update", device_id)
            return

        for cmd_args in commands:
            for name, value in cmd_args.items():
                if not model.set_value(name, value):
                    _LOGGER.debug("Device %s has no attribute %s", device_id, name)

        self._dev_digital_models.set(device_id, model)
        self._emit(DigitalModelUpdate(device_id=device_id, model=model))

    async def async_disconnect(self) -> None:
        """Close the websocket session."""
        await self.websocket.async_disconnect()

    async def async_close(self) -> None:
        """Close the websocket session and flush the cache."""
        self._unregister_websocket()
        await self.async_disconnect()
        self._dev_digital_models.close()
