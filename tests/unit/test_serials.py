"""Serial number format and uniqueness under concurrent generation."""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from carbon_kernel.domain.clock import DeterministicClock
from carbon_kernel.utils.serials import (
    SERIAL_PATTERN,
    SerialNumberGenerator,
    is_well_formed,
    parse_serial,
)


class TestFormat:

    def test_default_prefix_and_year(self):
        clock = DeterministicClock(datetime(2025, 6, 30, tzinfo=timezone.utc))
        serial = SerialNumberGenerator(clock=clock)()
        parts = parse_serial(serial)
        assert parts is not None
        assert parts.prefix == "CCR"
        assert parts.year == 2025
        assert SERIAL_PATTERN.match(serial)

    def test_custom_prefix(self):
        serial = SerialNumberGenerator(prefix="UCR2")()
        assert serial.startswith("UCR2-")
        assert is_well_formed(serial)

    @pytest.mark.parametrize("prefix", ["", "c", "1CR", "CCR-X", "A" * 17])
    def test_bad_prefix_rejected(self, prefix):
        with pytest.raises(ValueError, match="Serial prefix"):
            SerialNumberGenerator(prefix=prefix)

    @pytest.mark.parametrize(
        "serial",
        [
            "",
            "CCR-2024-0123456789AB",
            "CCR-2024-0123456789ab-0001ABCDEF",
            "ccr-2024-0123456789AB-0001ABCDEF",
            "CCR-24-0123456789AB-0001ABCDEF",
            "CCR-2024-0123456789AB-0001ABCDEF-X",
        ],
    )
    def test_malformed_serials(self, serial):
        assert parse_serial(serial) is None
        assert not is_well_formed(serial)

    def test_parse_round_trips_fields(self):
        parts = parse_serial("CCR-2024-0000000000FF-00100000AB")
        assert parts.stamp == 0xFF
        assert parts.counter == 0x0010
        assert parts.entropy == 0xAB


class TestUniqueness:

    def test_sequential_serials_distinct(self):
        generate = SerialNumberGenerator()
        serials = [generate() for _ in range(10_000)]
        assert len(set(serials)) == len(serials)

    def test_concurrent_serials_distinct(self):
        generate = SerialNumberGenerator()

        def batch(_):
            return [generate() for _ in range(1_250)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            serials = [s for chunk in pool.map(batch, range(8)) for s in chunk]

        assert len(serials) == 10_000
        assert len(set(serials)) == 10_000
