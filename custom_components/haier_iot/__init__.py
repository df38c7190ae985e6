"""The Haier IoT integration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from .api import create_session_client
from .client import HaierIoT
from .const import CONF_PASSWORD, CONF_USERNAME, DOMAIN, STORAGE_SUBDIR
from .coordinator import HaierDeviceCoordinator
from .exceptions import HaierApiClientError, HaierAuthError

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant

    from .models import DeviceInfo

_LOGGER = logging.getLogger(__name__)


async def async_discover_devices(client: HaierIoT) -> list[DeviceInfo]:
    """Return the devices of every family the account can see."""
    devices: list[DeviceInfo] = []
    for family in await client.async_get_family_list():
        devices.extend(await client.async_get_devices_by_family_id(family.family_id))
    return devices


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up Haier IoT from a config entry."""
    _LOGGER.info("Setting up Haier IoT integration for entry %s", entry.entry_id)

    if CONF_USERNAME not in entry.data or CONF_PASSWORD not in entry.data:
        _LOGGER.error("Missing credentials for entry %s", entry.entry_id)
        return False

    client = HaierIoT(
        create_session_client(hass),
        entry.data[CONF_USERNAME],
        entry.data[CONF_PASSWORD],
        hass.config.path(STORAGE_SUBDIR, DOMAIN),
    )
    await hass.async_add_executor_job(client.load_credentials)

    try:
        devices = await async_discover_devices(client)
    except HaierAuthError as err:
        _LOGGER.warning("Login failed for entry %s: %s", entry.entry_id, err)
        await client.async_close()
        return False
    except (HaierApiClientError, httpx.HTTPError) as err:
        _LOGGER.error("Could not list devices for entry %s: %s", entry.entry_id, err)
        await client.async_close()
        return False
    _LOGGER.info("Found %d Haier devices", len(devices))

    device_ids = list(dict.fromkeys(device.device_id for device in devices))
    coordinator = HaierDeviceCoordinator(hass, client, device_ids)
    await coordinator.async_refresh()
    unregister = client.register_dev_digital_model_update_callback(
        coordinator.handle_device_update
    )

    # Subscribing first makes the subscription the first frame after open
    await client.async_subscribe_devices(device_ids)
    try:
        await client.async_connect()
    except (HaierApiClientError, httpx.HTTPError) as err:
        _LOGGER.warning(
            "WebSocket unavailable for entry %s, relying on polling: %s",
            entry.entry_id,
            err,
        )

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = {
        "client": client,
        "coordinator": coordinator,
        "devices": devices,
        "unregister": unregister,
    }
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry and close its client."""
    _LOGGER.info("Unloading Haier IoT integration for entry %s", entry.entry_id)

    data = hass.data.get(DOMAIN, {}).pop(entry.entry_id, None)
    if data is None:
        _LOGGER.warning("No data to unload for entry %s", entry.entry_id)
        return True

    data["unregister"]()
    await data["client"].async_close()
    return True
