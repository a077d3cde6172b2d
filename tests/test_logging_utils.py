import json
import logging

from bookmarks_sync.core.logging_utils import EnhancedJsonFormatter, generate_correlation_id
from bookmarks_sync.core.time_utils import iso_to_ms, ms_to_iso


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="bookmarks_sync.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="bookmarks_refresh_completed",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_groups_extra_fields():
    formatter = EnhancedJsonFormatter(include_location=False, include_process_info=False)

    payload = json.loads(
        formatter.format(
            _record(cid="abc", duration_ms=12, trigger="scheduled", count=3, bucket="b")
        )
    )

    assert payload["message"] == "bookmarks_refresh_completed"
    assert payload["level"] == "INFO"
    assert payload["correlation_id"] == "abc"
    assert payload["timing"] == {"duration_ms": 12}
    assert payload["refresh"] == {"trigger": "scheduled", "count": 3}
    assert payload["extra"] == {"bucket": "b"}
    assert "line" not in payload


def test_formatter_serializes_unknown_objects():
    formatter = EnhancedJsonFormatter()

    payload = json.loads(formatter.format(_record(store=object())))

    assert payload["extra"]["store"].startswith("<object")


def test_correlation_ids_are_short_and_unique():
    first, second = generate_correlation_id(), generate_correlation_id()
    assert len(first) == 12
    assert first != second


def test_iso_round_trip():
    assert ms_to_iso(0) == "1970-01-01T00:00:00Z"
    assert iso_to_ms("1970-01-01T00:00:01Z") == 1000
    assert iso_to_ms("2025-01-01T00:00:00") == iso_to_ms("2025-01-01T00:00:00Z")
    assert iso_to_ms("yesterday") is None
    assert ms_to_iso(None) is None
