"""Tests for the stale/current decision."""

from unittest.mock import MagicMock

import pytest

from tests.helpers import StaticUpdateProvider, make_table
from workunits.lib.detector import ChangeCheck, ChangeDetector
from workunits.lib.errors import ProviderError
from workunits.lib.units import Watermark


class TestChangeDetector:
    """Tests for ChangeDetector."""

    @pytest.mark.parametrize(
        "update_time,low,stale",
        [
            (51, 50, True),
            (50, 50, False),
            (49, 50, False),
            (1, 0, True),
            (0, 0, False),
        ],
    )
    def test_strictly_greater_is_stale(self, update_time, low, stale):
        detector = ChangeDetector(StaticUpdateProvider({"sales@orders": update_time}))
        assert detector.is_stale(make_table(), Watermark(low)) is stale

    def test_check_reports_inputs(self):
        table = make_table()
        detector = ChangeDetector(StaticUpdateProvider({"sales@orders": 100}))

        check = detector.check(table, Watermark(50))

        assert check == ChangeCheck(unit=table, update_time=100, low_watermark=Watermark(50))
        assert check.stale

    def test_provider_error_propagates_unchanged(self):
        provider = StaticUpdateProvider({}, failing=["sales@orders"])
        detector = ChangeDetector(provider)

        with pytest.raises(ProviderError, match="update time unavailable"):
            detector.check(make_table(), Watermark(0))

    def test_other_exceptions_become_provider_error(self):
        provider = MagicMock()
        provider.name = "mock"
        provider.get_update_time.side_effect = PermissionError("denied")
        detector = ChangeDetector(provider)

        with pytest.raises(ProviderError) as exc_info:
            detector.check(make_table(), Watermark(0))

        assert exc_info.value.provider == "mock"
        assert exc_info.value.unit == make_table()
        assert exc_info.value.details["cause_type"] == "PermissionError"
