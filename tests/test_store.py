"""Tests for the Haier IoT disk cache."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING

import pytest

from custom_components.haier_iot.models import DigitalModel
from custom_components.haier_iot.store import DiskMap, escape_key, unescape_key

if TYPE_CHECKING:
    from pathlib import Path

LONG_FLUSH_DELAY = 60.0


class TestEscapeKey:
    """Tests for escape_key and unescape_key."""

    @pytest.mark.parametrize(
        "key",
        [
            "DC330D0A1B2C",
            "family/device",
            "with space",
            "温度传感器",
            "100%",
            "..",
            "a\\b:c*d?",
        ],
    )
    def test_round_trip(self, key: str) -> None:
        """Test that unescaping an escaped key returns the original key."""
        assert unescape_key(escape_key(key)) == key

    def test_escaped_key_is_a_single_path_component(self) -> None:
        """Test that escaped keys contain no path separators."""
        escaped = escape_key("../etc/passwd")
        assert "/" not in escaped
        assert escaped != "../etc/passwd"


class TestDiskMap:
    """Tests for DiskMap."""

    @pytest.mark.asyncio
    async def test_get_returns_value_before_flush(self, tmp_path: Path) -> None:
        """Test that set followed by get returns the value before flushing."""
        cache = DiskMap(tmp_path, flush_delay=LONG_FLUSH_DELAY)

        cache.set("key", {"value": 1})

        assert cache.get("key") == {"value": 1}
        assert cache.pending_keys == {"key"}
        assert not (tmp_path / "key.json").exists()
        cache.close()

    @pytest.mark.asyncio
    async def test_debounced_flush_writes_to_disk(self, tmp_path: Path) -> None:
        """Test that writes reach the disk after the debounce window."""
        cache = DiskMap(tmp_path, flush_delay=0.01)

        cache.set("key", {"value": 1})
        await asyncio.sleep(0.1)

        assert json.loads((tmp_path / "key.json").read_text()) == {"value": 1}
        assert cache.pending_keys == set()

    @pytest.mark.asyncio
    async def test_flush_keeps_newest_value(self, tmp_path: Path) -> None:
        """Test that repeated writes to one key coalesce to the newest value."""
        cache = DiskMap(tmp_path, flush_delay=LONG_FLUSH_DELAY)

        cache.set("key", "first")
        cache.set("key", "second")
        cache.flush()

        assert json.loads((tmp_path / "key.json").read_text()) == "second"
        cache.close()

    @pytest.mark.asyncio
    async def test_flush_is_idempotent(self, tmp_path: Path) -> None:
        """Test that flushing twice leaves the same content on disk."""
        cache = DiskMap(tmp_path, flush_delay=LONG_FLUSH_DELAY)
        cache.set("key", [1, 2, 3])

        cache.flush()
        cache.flush()

        assert json.loads((tmp_path / "key.json").read_text()) == [1, 2, 3]
        cache.close()

    @pytest.mark.asyncio
    async def test_close_flushes_pending_writes(self, tmp_path: Path) -> None:
        """Test that close writes pending values immediately."""
        cache = DiskMap(tmp_path, flush_delay=LONG_FLUSH_DELAY)
        cache.set("key", "value")

        cache.close()

        assert json.loads((tmp_path / "key.json").read_text()) == "value"

    def test_zero_delay_writes_immediately(self, tmp_path: Path) -> None:
        """Test that a zero flush delay writes on every set."""
        cache = DiskMap(tmp_path, flush_delay=0)

        cache.set("key", "value")

        assert json.loads((tmp_path / "key.json").read_text()) == "value"

    def test_set_without_running_loop_writes_immediately(
        self, tmp_path: Path
    ) -> None:
        """Test that set outside an event loop does not lose the write."""
        cache = DiskMap(tmp_path, flush_delay=LONG_FLUSH_DELAY)

        cache.set("key", "value")

        assert (tmp_path / "key.json").exists()

    def test_get_reads_through_to_disk(self, tmp_path: Path) -> None:
        """Test that a new cache instance reads entries written earlier."""
        DiskMap(tmp_path, flush_delay=0).set("family/device", {"a": "b"})

        cache = DiskMap(tmp_path, flush_delay=0)

        assert cache.get("family/device") == {"a": "b"}
        assert "family/device" in cache

    def test_get_missing_key_returns_none(self, tmp_path: Path) -> None:
        """Test that get returns None for unknown keys."""
        cache = DiskMap(tmp_path)
        assert cache.get("missing") is None
        assert cache.has("missing") is False

    def test_get_ignores_corrupt_file(self, tmp_path: Path) -> None:
        """Test that an unreadable cache file is treated as missing."""
        (tmp_path / "broken.json").write_text("{not json")
        cache = DiskMap(tmp_path)

        assert cache.get("broken") is None

    @pytest.mark.parametrize("content", ["[1, 2]", '"model"', "42"])
    def test_get_ignores_file_of_wrong_shape(
        self, tmp_path: Path, content: str
    ) -> None:
        """Test that valid JSON the decoder cannot use is treated as missing."""
        (tmp_path / "dev1.json").write_text(content)
        cache: DiskMap[DigitalModel] = DiskMap(
            tmp_path, encode=DigitalModel.to_dict, decode=DigitalModel.from_dict
        )

        assert cache.get("dev1") is None
        assert cache.values() == []

    def test_delete(self, tmp_path: Path) -> None:
        """Test that delete removes entries from memory and disk."""
        cache = DiskMap(tmp_path, flush_delay=0)
        cache.set("key", "value")

        assert cache.delete("key") is True
        assert cache.get("key") is None
        assert not (tmp_path / "key.json").exists()
        assert cache.delete("key") is False

    def test_keys_values_and_entries(self, tmp_path: Path) -> None:
        """Test that listing merges memory and disk entries with original keys."""
        DiskMap(tmp_path, flush_delay=0).set("on disk/1", 1)
        cache = DiskMap(tmp_path, flush_delay=0)
        cache.set("in memory", 2)

        assert sorted(cache.keys()) == ["in memory", "on disk/1"]
        assert sorted(cache.values()) == [1, 2]
        assert sorted(cache.entries()) == [("in memory", 2), ("on disk/1", 1)]
        assert len(cache) == 2
        assert sorted(cache) == ["in memory", "on disk/1"]

    def test_clear(self, tmp_path: Path) -> None:
        """Test that clear empties memory and disk."""
        cache = DiskMap(tmp_path, flush_delay=0)
        cache.set("a", 1)
        cache.set("b", 2)

        cache.clear()

        assert cache.keys() == []
        assert list(tmp_path.iterdir()) == []

    def test_creates_cache_directory(self, tmp_path: Path) -> None:
        """Test that the cache directory is created on demand."""
        cache_dir = tmp_path / "nested" / "cache"
        DiskMap(cache_dir)
        assert cache_dir.is_dir()

    def test_encode_and_decode_digital_models(
        self, tmp_path: Path, sample_digital_model_data: dict
    ) -> None:
        """Test that digital models survive a trip through the disk."""
        model = DigitalModel.from_dict(sample_digital_model_data)
        DiskMap(
            tmp_path,
            flush_delay=0,
            encode=DigitalModel.to_dict,
            decode=DigitalModel.from_dict,
        ).set("device", model)

        cache: DiskMap[DigitalModel] = DiskMap(
            tmp_path, encode=DigitalModel.to_dict, decode=DigitalModel.from_dict
        )
        loaded = cache.get("device")

        assert loaded == model
        assert loaded.attribute("targetTemperature").value == "24"
