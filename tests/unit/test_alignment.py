import math

import pytest

from tsfview.core.errors import DataInconsistencyError
from tsfview.services.alignment import align, classify, to_points
from tsfview.services.data_loader import normalize_rows
from tsfview.utils.time_windows import build_calendar


@pytest.fixture
def april():
    return build_calendar("2022-04-01", 1, 7)


def test_one_row_per_calendar_day(april, scenario_rows):
    frame = align(april, normalize_rows(scenario_rows))
    assert frame["date"].tolist() == april


def test_missing_days_are_nan_not_zero(april, scenario_rows):
    frame = align(april, normalize_rows(scenario_rows)).set_index("date")
    assert frame.loc["2022-04-05", "value"] == 12
    assert frame.loc["2022-04-10", "forecast_value"] == 15
    empty = frame.drop(index=["2022-04-05", "2022-04-10"])
    assert len(empty) == 35
    assert empty.isna().all().all()


def test_empty_rows_give_all_empty_grid(april):
    frame = align(april, [])
    assert len(frame) == 37
    assert frame[["value", "forecast_value", "low", "high"]].isna().all().all()


def test_duplicate_dates_last_row_wins():
    cal = ["2022-04-01", "2022-04-02"]
    rows = [
        {"date": "2022-04-01", "value": 1.0},
        {"date": "2022-04-01", "value": 2.0},
    ]
    frame = align(cal, rows)
    assert frame["value"].iloc[0] == 2.0
    assert math.isnan(frame["value"].iloc[1])


def test_rows_outside_calendar_ignored():
    cal = ["2022-04-01", "2022-04-02"]
    frame = align(cal, [{"date": "2022-05-01", "value": 9.0}, {"date": "2022-04-02", "value": 3.0}])
    assert len(frame) == 2
    assert frame["value"].iloc[1] == 3.0


def test_timestamp_dates_truncated_to_day():
    frame = align(["2022-04-01"], [{"date": "2022-04-01T00:00:00Z", "value": 4.0}])
    assert frame["value"].iloc[0] == 4.0


def test_unsorted_calendar_rejected():
    with pytest.raises(DataInconsistencyError):
        align(["2022-04-02", "2022-04-01"], [])


def test_invalid_raw_date_rejected():
    with pytest.raises(DataInconsistencyError):
        align(["2022-04-01"], [{"date": "2022-02-30", "value": 1.0}])


def test_aux_fields_aligned():
    frame = align(["2022-04-01"], [{"date": "2022-04-01", "arima": 5.0}], ["value", "arima"])
    assert frame["arima"].iloc[0] == 5.0
    assert math.isnan(frame["value"].iloc[0])


def test_points_carry_none_for_missing():
    points = to_points(align(["2022-04-01"], [{"date": "2022-04-01", "value": 3.0}]))
    assert points[0].date == "2022-04-01"
    assert points[0].value == 3.0
    assert points[0].forecast_value is None


class TestClassify:
    def full_frame(self, cal):
        rows = [{"date": d, "value": 1.0, "forecast_value": 2.0, "low": 1.0, "high": 3.0} for d in cal]
        return align(cal, rows)

    def test_boundary_splits_segments(self, april):
        seg = classify(self.full_frame(april), "2022-04-01")
        assert seg.historical_actual == list(range(7))
        assert seg.forecast_actual == list(range(7, 37))
        assert seg.preroll == (0, 7)

    def test_segments_disjoint_and_cover_actuals(self, april):
        seg = classify(self.full_frame(april), "2022-04-01")
        assert not set(seg.historical_actual) & set(seg.forecast_actual)
        assert sorted(seg.historical_actual + seg.forecast_actual) == list(range(37))

    def test_forecast_lines_never_enter_preroll(self, april):
        seg = classify(self.full_frame(april), "2022-04-01")
        for line in (seg.forecast_line, seg.low_line, seg.high_line):
            assert min(line) == 7

    def test_boundary_day_is_forecast(self, april):
        seg = classify(self.full_frame(april), "2022-04-01")
        assert not seg.is_forecast(6)
        assert seg.is_forecast(7)

    def test_actual_after_boundary_is_comparison_actual(self, april, scenario_rows):
        seg = classify(align(april, normalize_rows(scenario_rows)), "2022-04-01")
        day = april.index("2022-04-05")
        assert seg.forecast_actual == [day]
        assert seg.historical_actual == []
        assert seg.forecast_line == [april.index("2022-04-10")]
