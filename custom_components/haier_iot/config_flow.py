"""
Configuration flow for Haier IoT integration.

The user step logs in once with the submitted credentials. The resulting
token is persisted under the integration storage so the first setup of
the entry does not have to log in again.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx
import voluptuous as vol
from homeassistant.config_entries import ConfigFlow, ConfigFlowResult
from homeassistant.helpers.httpx_client import get_async_client

from .api import HaierApi
from .const import (
    CONF_PASSWORD,
    CONF_USERNAME,
    DOMAIN,
    ERROR_API_ERROR,
    ERROR_CANNOT_CONNECT,
    ERROR_INVALID_AUTH,
    ERROR_TIMEOUT,
    ERROR_UNKNOWN,
    STORAGE_SUBDIR,
)
from .exceptions import HaierApiClientError, HaierAuthError

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant

_LOGGER = logging.getLogger(__name__)

USER_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_USERNAME): str,
        vol.Required(CONF_PASSWORD): str,
    }
)


def login_error_key(err: Exception) -> str:
    """
    Map a login failure to a config flow error key.

    Login failures arrive as HaierAuthError wrapping the transport error,
    if any, so the cause decides between a network problem and rejected
    credentials.
    """
    cause = err.__cause__ if isinstance(err, HaierAuthError) else err
    if isinstance(cause, httpx.ConnectError):
        return ERROR_CANNOT_CONNECT
    if isinstance(cause, httpx.TimeoutException):
        return ERROR_TIMEOUT
    if isinstance(err, HaierAuthError):
        return ERROR_INVALID_AUTH
    if isinstance(err, HaierApiClientError):
        return ERROR_API_ERROR
    return ERROR_UNKNOWN


async def async_validate_credentials(
    hass: HomeAssistant, username: str, password: str
) -> None:
    """Log in with ``username`` and ``password`` and persist the token."""
    haier_api = HaierApi(
        get_async_client(hass),
        hass.config.path(STORAGE_SUBDIR, DOMAIN),
        username,
        password,
    )
    await haier_api.auth.async_login()


class HaierIoTConfigFlow(ConfigFlow, domain=DOMAIN):
    """Handle configuration flow for Haier IoT integration."""

    VERSION = 1

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """
        Handle the initial step of the config flow.

        Args:
            user_input: User input data containing username and password.

        Returns:
            ConfigFlowResult indicating the next step or errors.

        """
        errors: dict[str, str] = {}

        if user_input is not None:
            username = user_input[CONF_USERNAME]
            password = user_input[CONF_PASSWORD]

            await self.async_set_unique_id(username.lower())
            self._abort_if_unique_id_configured()

            try:
                await async_validate_credentials(self.hass, username, password)
            except Exception as err:
                errors["base"] = login_error_key(err)
                if errors["base"] == ERROR_INVALID_AUTH:
                    _LOGGER.warning("Login rejected for %s: %s", username, err)
                else:
                    _LOGGER.exception("Haier IoT login failed (%s)", errors["base"])
            else:
                return self.async_create_entry(
                    title=f"Haier IoT ({username})",
                    data={
                        CONF_USERNAME: username,
                        CONF_PASSWORD: password,
                    },
                )

        return self.async_show_form(
            step_id="user",
            data_schema=USER_SCHEMA,
            errors=errors,
        )
