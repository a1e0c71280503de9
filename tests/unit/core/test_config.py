"""
Tests for configuration tables and the clock
"""
import json
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from meta_progression.core.clock import Clock, build_clock, to_millis
from meta_progression.core.config import ConfigurationError, load_json_table


class TestLoadJsonTable:

    def test_missing_path_means_defaults(self):
        assert load_json_table(None) is None
        assert load_json_table("") is None

    def test_reads_object(self, tmp_path):
        path = tmp_path / "rewards.json"
        path.write_text(json.dumps({"type_probabilities": {"coins": 100}}))

        assert load_json_table(str(path)) == {"type_probabilities": {"coins": 100}}

    def test_unreadable_file_is_fatal(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_json_table(str(tmp_path / "missing.json"))

    def test_invalid_json_is_fatal(self, tmp_path):
        path = tmp_path / "rewards.json"
        path.write_text("{coins: 100")

        with pytest.raises(ConfigurationError):
            load_json_table(str(path))

    def test_top_level_must_be_object(self, tmp_path):
        path = tmp_path / "rewards.json"
        path.write_text("[1, 2, 3]")

        with pytest.raises(ConfigurationError):
            load_json_table(str(path))


class TestClock:

    def test_build_clock_with_timezone(self, test_settings):
        clock = build_clock(test_settings.model_copy(update={"CHALLENGE_TIMEZONE": "Europe/Berlin"}))
        assert clock.tz == ZoneInfo("Europe/Berlin")

    def test_build_clock_local_time(self, test_settings):
        assert build_clock(test_settings).tz is None

    def test_unknown_timezone_rejected(self, test_settings):
        with pytest.raises(ConfigurationError):
            build_clock(test_settings.model_copy(update={"CHALLENGE_TIMEZONE": "Mars/Olympus_Mons"}))

    def test_day_start_in_clock_timezone(self):
        clock = Clock(ZoneInfo("America/New_York"))
        moment = datetime(2025, 3, 11, 2, 30, tzinfo=timezone.utc)  # 22:30 on the 10th in New York

        start = clock.day_start(moment)

        assert start.date().isoformat() == "2025-03-10"
        assert (start.hour, start.minute) == (0, 0)

    def test_calendar_days_between(self):
        clock = Clock(timezone.utc)
        late = datetime(2025, 3, 10, 23, 59, tzinfo=timezone.utc)
        early = datetime(2025, 3, 11, 0, 1, tzinfo=timezone.utc)

        assert clock.calendar_days_between(to_millis(late), early) == 1
        assert clock.calendar_days_between(to_millis(late), late) == 0

    def test_next_day_start_across_dst(self):
        clock = Clock(ZoneInfo("America/New_York"))
        # Clocks spring forward on 2025-03-09
        moment = datetime(2025, 3, 9, 12, 0, tzinfo=ZoneInfo("America/New_York"))

        nxt = clock.next_day_start(moment)

        assert nxt.date().isoformat() == "2025-03-10"
        assert (nxt.hour, nxt.minute) == (0, 0)
        assert nxt.timestamp() - clock.day_start(moment).timestamp() == 23 * 3600

    def test_millis_round_trip(self):
        clock = Clock(timezone.utc)
        moment = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)

        assert clock.from_millis(to_millis(moment)) == moment
