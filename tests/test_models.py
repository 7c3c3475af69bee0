"""
Tests for core data models.
"""

import json
from datetime import datetime, timezone

import pytest

from container_insights.models.core import HostMetadata, Sample, Severity, TelemetryRecord


class TestHostMetadata:
    """Test cases for HostMetadata."""

    def test_defaults_are_empty_strings(self):
        metadata = HostMetadata()
        assert metadata.location_key == ""
        assert metadata.public_ip == ""
        assert metadata.is_incomplete is True

    def test_partial_metadata_is_incomplete(self):
        assert HostMetadata(location_key="eastus").is_incomplete is True
        assert HostMetadata(public_ip="1.2.3.4").is_incomplete is True

    def test_complete_metadata(self):
        assert HostMetadata(location_key="eastus", public_ip="1.2.3.4").is_incomplete is False

    def test_immutable(self):
        metadata = HostMetadata(location_key="eastus", public_ip="1.2.3.4")
        with pytest.raises(AttributeError):
            metadata.location_key = "westus"


class TestSample:
    """Test cases for Sample."""

    def _sample(self, count=3, location="eastus", ip="9.9.9.9"):
        return Sample(
            session_count=count,
            location_key=location,
            server_ip=ip,
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc)
        )

    def test_message_is_compact_json(self):
        assert self._sample().to_message() == '{"Sessions":3,"LocationKey":"eastus","ServerIP":"9.9.9.9"}'

    def test_message_with_empty_metadata(self):
        message = json.loads(self._sample(count=0, location="", ip="").to_message())
        assert message == {"Sessions": 0, "LocationKey": "", "ServerIP": ""}

    def test_negative_count_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            self._sample(count=-1)


class TestTelemetryRecord:

    def test_severity_values_match_sink_levels(self):
        assert Severity.INFORMATION.value == "INFO"
        assert Severity.VERBOSE.value == "DEBUG"

    def test_properties_default(self):
        record = TelemetryRecord(message="m", severity=Severity.INFORMATION)
        assert record.properties == {}
        assert record.timestamp is None
