import pytest

from tssbench.timing import TimingContext, TimingRecord, format_duration


@pytest.mark.parametrize(
    "duration_ns, expected",
    [
        (1_500_000_000, "1.5s"),
        (1_000_000_000, "1s"),
        (61_234_567_890, "61.235s"),
        (999_000_000, "999ms"),
        (1_000_000, "1ms"),
        (2_345_600, "2.346ms"),
        (999_999, "999.999µs"),
        (500, "0.5µs"),
        (1_000, "1µs"),
        (0, "0µs"),
    ],
)
def test_format_duration(duration_ns, expected):
    """Each duration lands in the largest unit it reaches."""
    assert format_duration(duration_ns) == expected


def test_format_duration_uses_dot_separator():
    """The decimal separator does not depend on the locale."""
    assert "," not in format_duration(1_234_000_000)
    assert format_duration(1_234_000_000) == "1.234s"


def test_timing_record_durations():
    record = TimingRecord(name="iteration", start_ns=1_000, end_ns=2_501_000)
    assert record.duration_ns == 2_500_000
    assert record.duration_ms == 2.5


def test_timing_context_records_on_exit():
    """A record is appended once the block finishes."""
    records = []
    with TimingContext("iteration", records, iteration=1):
        assert records == []

    assert len(records) == 1
    assert records[0].name == "iteration"
    assert records[0].metadata == {"iteration": 1}
    assert records[0].duration_ns >= 0


def test_timing_context_records_when_block_raises():
    """A failing block still leaves its timing behind."""
    records = []
    with pytest.raises(RuntimeError):
        with TimingContext("iteration", records):
            raise RuntimeError("device fault")

    assert len(records) == 1
