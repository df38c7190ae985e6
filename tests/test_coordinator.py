"""Tests for the Haier Device Coordinator."""

from datetime import timedelta
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
from homeassistant.helpers.update_coordinator import UpdateFailed

from custom_components.haier_iot.const import DEFAULT_POLL_INTERVAL
from custom_components.haier_iot.coordinator import HaierDeviceCoordinator
from custom_components.haier_iot.exceptions import (
    HaierApiError,
    HaierAuthError,
    HaierTransportError,
)
from custom_components.haier_iot.models import DigitalModel, DigitalModelUpdate

DEVICE_IDS = ["dev1", "dev2"]


@pytest.fixture
def mock_hass() -> Mock:
    """Create a mock Home Assistant instance."""
    return Mock()


@pytest.fixture
def sample_model(sample_digital_model_data: dict) -> DigitalModel:
    """Create a digital model from the sample data."""
    return DigitalModel.from_dict(sample_digital_model_data)


@pytest.fixture
def mock_client(sample_model: DigitalModel) -> Mock:
    """Create a mock HaierIoT client."""
    client = Mock()
    client.async_get_dev_digital_model = AsyncMock(return_value=sample_model)
    return client


@pytest.fixture
def coordinator(mock_hass: Mock, mock_client: Mock) -> HaierDeviceCoordinator:
    """Create a HaierDeviceCoordinator instance for testing."""
    return HaierDeviceCoordinator(mock_hass, mock_client, DEVICE_IDS)


class TestHaierDeviceCoordinatorInit:
    """Tests for HaierDeviceCoordinator initialization."""

    def test_init_sets_devices_and_interval(
        self,
        coordinator: HaierDeviceCoordinator,
    ) -> None:
        """Test that init sets device ids and update interval correctly."""
        assert coordinator.device_ids == DEVICE_IDS
        assert coordinator.update_interval == timedelta(seconds=DEFAULT_POLL_INTERVAL)
        assert coordinator.data == {}

    def test_device_ids_returns_copy(
        self,
        coordinator: HaierDeviceCoordinator,
    ) -> None:
        """Test that callers cannot change the tracked device list."""
        coordinator.device_ids.append("dev3")
        assert coordinator.device_ids == DEVICE_IDS


class TestHaierDeviceCoordinatorAsyncUpdateData:
    """Tests for _async_update_data method."""

    @pytest.mark.asyncio
    async def test_async_update_data_forces_fetch_for_each_device(
        self,
        coordinator: HaierDeviceCoordinator,
        mock_client: Mock,
        sample_model: DigitalModel,
    ) -> None:
        """Test that polling bypasses the cache for every tracked device."""
        result = await coordinator._async_update_data()

        assert result == {"dev1": sample_model, "dev2": sample_model}
        calls = mock_client.async_get_dev_digital_model.call_args_list
        assert [call.args for call in calls] == [("dev1",), ("dev2",)]
        assert all(call.kwargs == {"force_update": True} for call in calls)

    @pytest.mark.asyncio
    async def test_async_update_data_skips_devices_without_model(
        self,
        coordinator: HaierDeviceCoordinator,
        mock_client: Mock,
        sample_model: DigitalModel,
    ) -> None:
        """Test that devices without a model are left out of the result."""
        mock_client.async_get_dev_digital_model.side_effect = [sample_model, None]

        result = await coordinator._async_update_data()

        assert result == {"dev1": sample_model}

    @pytest.mark.asyncio
    async def test_async_update_data_without_devices(
        self,
        mock_hass: Mock,
        mock_client: Mock,
    ) -> None:
        """Test that polling with no devices makes no requests."""
        coordinator = HaierDeviceCoordinator(mock_hass, mock_client, [])

        assert await coordinator._async_update_data() == {}
        mock_client.async_get_dev_digital_model.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("error", "message"),
        [
            (HaierAuthError("Token rejected"), "Authentication error"),
            (HaierApiError("B00001", "Server busy"), "API error"),
            (HaierTransportError("Gateway unavailable"), "API error"),
            (httpx.ConnectError("Connection refused"), "Connection error"),
        ],
    )
    async def test_async_update_data_raises_update_failed(
        self,
        coordinator: HaierDeviceCoordinator,
        mock_client: Mock,
        error: Exception,
        message: str,
    ) -> None:
        """Test that client failures surface as UpdateFailed."""
        mock_client.async_get_dev_digital_model.side_effect = error

        with pytest.raises(UpdateFailed, match=message) as exc_info:
            await coordinator._async_update_data()

        assert exc_info.value.__cause__ is error


class TestHaierDeviceCoordinatorHandleDeviceUpdate:
    """Tests for handle_device_update method."""

    def test_handle_device_update_merges_pushed_model(
        self,
        coordinator: HaierDeviceCoordinator,
        sample_model: DigitalModel,
    ) -> None:
        """Test that a push replaces one device's model and keeps the others."""
        other = DigitalModel()
        coordinator.data = {"dev2": other}

        coordinator.handle_device_update(
            DigitalModelUpdate(device_id="dev1", model=sample_model)
        )

        assert coordinator.data == {"dev1": sample_model, "dev2": other}
        assert coordinator.last_update_success is True

    def test_handle_device_update_ignores_untracked_device(
        self,
        coordinator: HaierDeviceCoordinator,
        sample_model: DigitalModel,
    ) -> None:
        """Test that pushes for other devices are ignored."""
        coordinator.handle_device_update(
            DigitalModelUpdate(device_id="unknown", model=sample_model)
        )

        assert coordinator.data == {}
