"""Coordinator for Haier IoT integration."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

import httpx
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from .const import DEFAULT_POLL_INTERVAL, DOMAIN
from .exceptions import HaierApiClientError, HaierAuthError

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant

    from .client import HaierIoT
    from .models import DigitalModel, DigitalModelUpdate

_LOGGER = logging.getLogger(__name__)


class HaierDeviceCoordinator(DataUpdateCoordinator[dict[str, "DigitalModel"]]):
    """Coordinator holding the digital models of tracked Haier devices.

    Models are polled over REST as a fallback; websocket pushes are applied
    as they arrive.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        client: HaierIoT,
        device_ids: list[str],
    ) -> None:
        super().__init__(
            hass,
            _LOGGER,
            name=f"{DOMAIN}_devices",
            update_interval=timedelta(seconds=DEFAULT_POLL_INTERVAL),
        )
        self._client = client
        self._device_ids = device_ids
        self.data = {}

    @property
    def device_ids(self) -> list[str]:
        return list(self._device_ids)

    async def _async_update_data(self) -> dict[str, DigitalModel]:
        if not self._device_ids:
            _LOGGER.debug("No Haier devices registered for polling")
            return {}

        models: dict[str, DigitalModel] = {}
        try:
            for device_id in self._device_ids:
                model = await self._client.async_get_dev_digital_model(
                    device_id, force_update=True
                )
                if model is not None:
                    models[device_id] = model
        except HaierAuthError as err:
            error_msg = f"Authentication error while polling devices: {err}"
            raise UpdateFailed(error_msg) from err
        except HaierApiClientError as err:
            error_msg = f"API error while polling devices: {err}"
            raise UpdateFailed(error_msg) from err
        except httpx.RequestError as err:
            error_msg = f"Connection error while polling devices: {err}"
            raise UpdateFailed(error_msg) from err

        missing = set(self._device_ids) - set(models)
        if missing:
            _LOGGER.debug("Did not receive digital model for devices: %s", missing)

        _LOGGER.debug("Polled digital models for %d devices", len(models))
        return models

    def handle_device_update(self, update: DigitalModelUpdate) -> None:
        """Apply a pushed digital model for a tracked device."""
        if update.device_id not in self._device_ids:
            _LOGGER.debug("Ignoring update for untracked device %s", update.device_id)
            return

        self.async_set_updated_data(
            {**(self.data or {}), update.device_id: update.model}
        )
