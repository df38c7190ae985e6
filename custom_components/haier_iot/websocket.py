"""WebSocket session for Haier IoT real-time updates.

This module keeps one live connection to the Haier relay server: it opens
the socket with a freshly assigned URL, sends heartbeats, reconnects with
exponential backoff, replays the device subscription after every reconnect
and turns digital model pushes into typed updates.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import TYPE_CHECKING, Any

import httpx
import voluptuous as vol
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.protocol import State

from .auth import generate_sequence_id
from .const import (
    BUSIN_TYPE_DIGITAL_MODEL,
    CONNECT_TIMEOUT,
    HEARTBEAT_INTERVAL,
    MAX_RECONNECT_ATTEMPTS,
    RECONNECT_BASE_DELAY,
    TOPIC_BOUND_DEVS,
    TOPIC_GEN_MSG_DOWN,
    TOPIC_HEARTBEAT,
    TOPIC_HEARTBEAT_ACK,
)
from .decoder import decode_dev_digital_model
from .exceptions import (
    HaierApiClientError,
    HaierDecodeError,
    HaierTransportError,
    HaierValidationError,
)
from .models import ConnectionStatus, DigitalModelUpdate
from .schema import DEVICE_IDS_SCHEMA, ENVELOPE_SCHEMA, GEN_MSG_DOWN_SCHEMA

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from websockets.asyncio.client import ClientConnection

_LOGGER = logging.getLogger(__name__)


class HaierWebSocketManager:
    """Manager for the Haier relay WebSocket connection.

    At most one transport is live at a time; replacing it always detaches
    and closes the previous one first. The subscribed device set is the
    source of truth replayed after every reconnect.

    The topics handled are:
    - HeartBeatAck: Heartbeat acknowledgement, observed only
    - GenMsgDown: Digital model pushes, decoded and dispatched to callbacks
    """

    def __init__(
        self,
        get_url: Callable[[], Awaitable[str]],
        *,
        connect_timeout: float = CONNECT_TIMEOUT,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
        reconnect_base_delay: float = RECONNECT_BASE_DELAY,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
        max_reconnect_delay: float | None = None,
    ) -> None:
        """Initialize the WebSocket manager.

        Args:
            get_url: Coroutine function returning a connection URL that embeds
                a fresh access token and the client identity.
            connect_timeout: Seconds to wait for the socket to open.
            heartbeat_interval: Seconds between heartbeat frames.
            reconnect_base_delay: Delay before the first reconnect attempt,
                doubled on every further attempt.
            max_reconnect_attempts: Attempts after which reconnection stops.
            max_reconnect_delay: Optional ceiling for the backoff delay. None
                lets the delay grow until the attempt cap is reached.

        """
        self._get_url = get_url
        self._connect_timeout = connect_timeout
        self._heartbeat_interval = heartbeat_interval
        self._reconnect_base_delay = reconnect_base_delay
        self._max_reconnect_attempts = max_reconnect_attempts
        self._max_reconnect_delay = max_reconnect_delay

        self._ws: ClientConnection | None = None
        self._status = ConnectionStatus.DISCONNECTED
        self._reconnect_attempts = 0
        self._subscribed_device_ids: dict[str, None] = {}
        self._shutdown = False

        self._reader_task: asyncio.Task[None] | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None

        self._device_update_callbacks: list[Callable[[DigitalModelUpdate], None]] = []

    @property
    def status(self) -> ConnectionStatus:
        """Return the connection status."""
        return self._status

    @property
    def connected(self) -> bool:
        """Return True if the WebSocket is open."""
        return self._status is ConnectionStatus.OPEN

    @property
    def reconnect_attempts(self) -> int:
        """Return reconnect attempts made since the last successful open."""
        return self._reconnect_attempts

    @property
    def subscribed_device_ids(self) -> list[str]:
        """Return the subscribed device ids in subscription order."""
        return list(self._subscribed_device_ids)

    @property
    def heartbeat_active(self) -> bool:
        """Return True while the heartbeat loop runs."""
        return self._heartbeat_task is not None and not self._heartbeat_task.done()

    def register_device_update_callback(
        self,
        callback: Callable[[DigitalModelUpdate], None],
    ) -> Callable[[], None]:
        """Register a callback for digital model updates.

        Args:
            callback: Function to call when a device update is received.

        Returns:
            A function to unregister the callback.

        """
        self._device_update_callbacks.append(callback)

        def unregister() -> None:
            if callback in self._device_update_callbacks:
                self._device_update_callbacks.remove(callback)

        return unregister

    def backoff_delay(self, attempt: int) -> float:
        """Return the delay before reconnect ``attempt`` (counted from 0)."""
        delay = self._reconnect_base_delay * 2**attempt
        if self._max_reconnect_delay is not None:
            return min(delay, self._max_reconnect_delay)
        return delay

    async def async_connect(self) -> None:
        """Connect to the Haier relay server.

        A call while a connection attempt is in progress does nothing. A
        pending reconnect is cancelled and the attempt budget starts over;
        if the socket cannot be opened, reconnection is scheduled before
        the error is raised.

        Raises:
            HaierTransportError: If the socket cannot be opened in time.
            HaierAuthError: If no access token can be obtained.
            HaierApiError: If the gateway assignment request fails.

        """
        if self._status is ConnectionStatus.CONNECTING:
            _LOGGER.debug("Already connecting to Haier WebSocket")
            return

        self._shutdown = False
        await self._async_cancel_reconnect()
        self._reconnect_attempts = 0
        try:
            await self._async_open()
        except HaierTransportError:
            if not self._shutdown:
                self._schedule_reconnect()
            raise

    async def _async_open(self) -> None:
        if self._status is ConnectionStatus.CONNECTING:
            _LOGGER.debug("Already connecting to Haier WebSocket")
            return

        self._status = ConnectionStatus.CONNECTING
        try:
            url = await self._get_url()
            _LOGGER.info("Connecting to Haier WebSocket")
            async with asyncio.timeout(self._connect_timeout):
                ws = await websockets.connect(
                    url,
                    open_timeout=None,
                    ping_interval=None,
                )
        except TimeoutError as err:
            self._status = ConnectionStatus.DISCONNECTED
            error_msg = f"Timed out after {self._connect_timeout}s opening WebSocket"
            raise HaierTransportError(error_msg) from err
        except (OSError, WebSocketException) as err:
            self._status = ConnectionStatus.DISCONNECTED
            error_msg = f"Failed to open WebSocket: {err}"
            raise HaierTransportError(error_msg) from err
        except (HaierApiClientError, httpx.HTTPError):
            self._status = ConnectionStatus.DISCONNECTED
            raise

        await self._close_transport(self._detach_transport())
        self.attach_transport(ws)
        self._status = ConnectionStatus.OPEN
        self._reconnect_attempts = 0
        _LOGGER.info("Successfully connected to Haier WebSocket")
        self._start_heartbeat()

        if self._subscribed_device_ids:
            await self._async_send_subscription()

    def attach_transport(self, ws: ClientConnection) -> ClientConnection | None:
        """Make ``ws`` the live transport and start reading from it.

        Any previous transport is detached first; it is returned so the
        caller can close it.
        """
        previous = self._detach_transport()
        self._ws = ws
        self._reader_task = asyncio.create_task(self._read_loop(ws))
        return previous

    def _detach_transport(self) -> ClientConnection | None:
        self._cancel_task(self._reader_task)
        self._reader_task = None
        self._stop_heartbeat()
        previous, self._ws = self._ws, None
        return previous

    @staticmethod
    def _cancel_task(task: asyncio.Task[Any] | None) -> None:
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _close_transport(self, ws: ClientConnection | None) -> None:
        if ws is None:
            return
        try:
            await ws.close()
        except (OSError, WebSocketException):
            _LOGGER.debug("Error closing previous WebSocket", exc_info=True)

    def _start_heartbeat(self) -> None:
        self._stop_heartbeat()
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    def _stop_heartbeat(self) -> None:
        self._cancel_task(self._heartbeat_task)
        self._heartbeat_task = None

    async def _heartbeat_loop(self) -> None:
        """Send a heartbeat every interval; a failed send reconnects."""
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            sent = await self.async_send(
                TOPIC_HEARTBEAT, {"sn": generate_sequence_id(), "duration": 0}
            )
            if not sent:
                _LOGGER.warning("Heartbeat failed, reconnecting Haier WebSocket")
                await self._async_handle_transport_lost(self._ws)
                return

    async def _read_loop(self, ws: ClientConnection) -> None:
        """Consume frames from ``ws`` in order until it closes."""
        try:
            async for raw in ws:
                self._handle_message(raw)
        except ConnectionClosed as err:
            _LOGGER.warning("Haier WebSocket closed: %s", err)
        except (OSError, WebSocketException) as err:
            _LOGGER.warning("Haier WebSocket error: %s", err)
        else:
            _LOGGER.warning("Haier WebSocket disconnected")
        await self._async_handle_transport_lost(ws)

    async def _async_handle_transport_lost(self, ws: ClientConnection | None) -> None:
        if ws is None or ws is not self._ws:
            return
        self._detach_transport()
        self._status = ConnectionStatus.DISCONNECTED
        if not self._shutdown:
            self._schedule_reconnect()
        await self._close_transport(ws)

    def _schedule_reconnect(self) -> None:
        """Schedule a reconnection sequence unless one is already running."""
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        if self._reconnect_attempts >= self._max_reconnect_attempts:
            _LOGGER.error(
                "Not reconnecting to Haier WebSocket: %d attempts exhausted",
                self._reconnect_attempts,
            )
            return
        self._reconnect_task = asyncio.create_task(self._async_reconnect())

    async def _async_reconnect(self) -> None:
        while not self._shutdown:
            if self._reconnect_attempts >= self._max_reconnect_attempts:
                _LOGGER.error(
                    "Giving up reconnecting to Haier WebSocket after %d attempts",
                    self._reconnect_attempts,
                )
                return

            delay = self.backoff_delay(self._reconnect_attempts)
            self._reconnect_attempts += 1
            _LOGGER.info(
                "Reconnecting to Haier WebSocket in %.1fs (attempt %d/%d)",
                delay,
                self._reconnect_attempts,
                self._max_reconnect_attempts,
            )
            await asyncio.sleep(delay)
            if self._shutdown or self._status is not ConnectionStatus.DISCONNECTED:
                return

            try:
                await self._async_open()
            except (HaierApiClientError, httpx.HTTPError) as err:
                _LOGGER.warning(
                    "Reconnect attempt %d failed: %s", self._reconnect_attempts, err
                )
                continue

            # The new socket may already have dropped while resubscribing.
            if self._status is not ConnectionStatus.DISCONNECTED:
                return

    async def _async_cancel_reconnect(self) -> None:
        if self._reconnect_task is None:
            return
        self._cancel_task(self._reconnect_task)
        with contextlib.suppress(asyncio.CancelledError):
            await self._reconnect_task
        self._reconnect_task = None

    async def async_disconnect(self) -> None:
        """Disconnect from the WebSocket server and stop reconnecting."""
        self._shutdown = True
        await self._async_cancel_reconnect()

        previous = self._detach_transport()
        self._status = ConnectionStatus.DISCONNECTED
        if previous is not None:
            await self._close_transport(previous)
            _LOGGER.info("Disconnected from Haier WebSocket")

    async def async_send(self, topic: str, content: Any) -> bool:
        """Send an application message.

        Returns:
            True if the frame was handed to an open transport, False if the
            socket is not open or the send failed. Nothing is queued.

        Raises:
            HaierValidationError: If the message is not a valid envelope.

        """
        try:
            envelope = ENVELOPE_SCHEMA({"topic": topic, "content": content})
            frame = json.dumps(envelope, ensure_ascii=False)
        except (vol.Invalid, TypeError, ValueError) as err:
            _LOGGER.error("Refusing to send invalid message %r: %s", topic, err)
            error_msg = f"Invalid message: {err}"
            raise HaierValidationError(error_msg) from err

        ws = self._ws
        if ws is None or not self.connected or ws.state is not State.OPEN:
            _LOGGER.warning("Cannot send %s: Haier WebSocket is not open", topic)
            return False

        try:
            await ws.send(frame)
        except (OSError, WebSocketException) as err:
            _LOGGER.warning("Failed to send %s: %s", topic, err)
            return False

        _LOGGER.debug("Sent %s via WebSocket", topic)
        return True

    async def async_subscribe_devices(self, device_ids: Iterable[str]) -> bool:
        """Add devices to the subscription set and send the full set.

        The set is remembered while offline and sent on the next open.

        Returns:
            True if the subscription was sent now, False otherwise.

        Raises:
            HaierValidationError: If a device id is not a non-empty string.

        """
        try:
            ids = DEVICE_IDS_SCHEMA(list(device_ids))
        except vol.Invalid as err:
            error_msg = f"Invalid device ids: {err}"
            raise HaierValidationError(error_msg) from err

        for device_id in ids:
            self._subscribed_device_ids.setdefault(device_id)

        if not self.connected:
            _LOGGER.debug("Subscription for %s deferred until connected", ids)
            return False
        return await self._async_send_subscription()

    async def _async_send_subscription(self) -> bool:
        return await self.async_send(
            TOPIC_BOUND_DEVS, {"devs": list(self._subscribed_device_ids)}
        )

    def _handle_message(self, raw: str | bytes) -> None:
        """Process one inbound frame; malformed frames are dropped."""
        try:
            message = ENVELOPE_SCHEMA(json.loads(raw))
        except (TypeError, ValueError, vol.Invalid) as err:
            _LOGGER.warning("Dropping malformed WebSocket frame %r: %s", raw, err)
            return

        topic = message["topic"]
        if topic == TOPIC_HEARTBEAT_ACK:
            _LOGGER.debug("Received heartbeat acknowledgement")
        elif topic == TOPIC_GEN_MSG_DOWN:
            self._handle_gen_msg_down(message["content"])
        else:
            _LOGGER.debug("Ignoring WebSocket message with topic %s", topic)

    def _handle_gen_msg_down(self, content: Any) -> None:
        """Decode a digital model push and dispatch it."""
        try:
            content = GEN_MSG_DOWN_SCHEMA(content)
        except vol.Invalid as err:
            _LOGGER.warning("Invalid GenMsgDown content: %s", err)
            return

        busin_type = content.get("businType")
        if busin_type not in (None, BUSIN_TYPE_DIGITAL_MODEL):
            _LOGGER.debug("Ignoring GenMsgDown of type %s", busin_type)
            return

        try:
            device_id, model = decode_dev_digital_model(content["data"])
        except HaierDecodeError as err:
            _LOGGER.warning("Dropping undecodable digital model push: %s", err)
            return

        _LOGGER.debug("Received digital model update via WebSocket: %s", device_id)
        update = DigitalModelUpdate(device_id=device_id, model=model)
        for callback in list(self._device_update_callbacks):
            try:
                callback(update)
            except Exception:
                _LOGGER.exception("Error in device update callback")
