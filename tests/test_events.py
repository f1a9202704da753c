from datetime import datetime

import pytest

from events import (
    CSV_HEADER,
    EventLog,
    EventType,
    LogClosedError,
    format_time,
    parse_csv,
    parse_time,
    report_filename,
)


class Ticker:
    def __init__(self, *times):
        self.times = list(times)

    def __call__(self):
        return self.times.pop(0)


class TestEventLog:
    def test_append_keeps_order_and_stamps(self):
        log = EventLog(Ticker(0, 1500, 61000))
        log.append(EventType.META, "Candidate: Ada")
        log.append(EventType.MULTIPLE_FACES, "Multiple faces detected")
        log.append(EventType.OBJECT, "book: 70%")
        assert [e.time_ms for e in log] == [0, 1500, 61000]
        assert [e.type for e in log.events()] == [EventType.META, EventType.MULTIPLE_FACES, EventType.OBJECT]
        assert log.count(EventType.OBJECT) == 1
        assert log.count(EventType.NO_FACE) == 0
        assert len(log) == 3

    def test_append_returns_nothing(self):
        log = EventLog(lambda: 0)
        assert log.append(EventType.META, "x") is None

    def test_frozen_log_rejects_appends(self):
        log = EventLog(lambda: 0)
        log.append(EventType.META, "x")
        log.freeze()
        with pytest.raises(LogClosedError):
            log.append(EventType.OBJECT, "book: 90%")
        assert len(log) == 1

    def test_events_snapshot_is_immutable(self):
        log = EventLog(lambda: 5)
        log.append(EventType.META, "x")
        snap = log.events()
        log.append(EventType.META, "y")
        assert len(snap) == 1


class TestTimeFormat:
    @pytest.mark.parametrize("ms, text", [
        (0, "00:00"),
        (999, "00:00"),
        (61000, "01:01"),
        (3599999, "59:59"),
        (3600000, "01:00:00"),
        (3723000, "01:02:03"),
    ])
    def test_format(self, ms, text):
        assert format_time(ms) == text

    def test_parse_inverts_format(self):
        assert parse_time("01:01") == 61000
        assert parse_time("01:02:03") == 3723000

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_time("12")


class TestCsv:
    def test_header_and_comma_substitution(self):
        log = EventLog(Ticker(4200))
        log.append(EventType.META, "Candidate: Doe, Jane")
        lines = log.to_csv().splitlines()
        assert lines[0] == ",".join(CSV_HEADER)
        assert lines[1] == "00:04,META,Candidate: Doe; Jane"

    def test_round_trip_recovers_time_and_type(self):
        stamps = [0, 999, 10200, 3661500]
        log = EventLog(Ticker(*stamps))
        log.append(EventType.MULTIPLE_FACES, "Multiple faces detected")
        log.append(EventType.OBJECT, "cell phone: 82%")
        log.append(EventType.NO_FACE, "No face detected > 10s")
        log.append(EventType.SESSION_ENDED, "Session ended")
        parsed = parse_csv(log.to_csv())
        assert [e.type for e in parsed] == [e.type for e in log]
        for written, back in zip(log, parsed):
            assert 0 <= written.time_ms - back.time_ms < 1000

    def test_parse_rejects_unknown_header(self):
        with pytest.raises(ValueError):
            parse_csv("when,what\n00:01,META\n")


def test_report_filename_has_no_colons_or_dots_in_stamp():
    name = report_filename(now=datetime(2024, 5, 1, 9, 30, 15, 250000))
    assert name == "proctoring_report_2024-05-01T09-30-15-250.csv"
