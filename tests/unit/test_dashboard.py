import threading
import time

import pytest

from conftest import StubClient
from tsfview.core.errors import DataInconsistencyError, FetchError, InvalidWindowError
from tsfview.services.composer import panel_variant
from tsfview.services.dashboard import (
    MODEL_VIEWS,
    GenerationGuard,
    PanelPipeline,
    PanelSpec,
    model_dashboard_specs,
)


def rows(value):
    return [{"date": "2022-04-03", "value": value}, {"date": "2022-04-04", "fv": value + 1}]


def interval_spec(title="Forecast"):
    return [PanelSpec(title, panel_variant("interval"))]


class TestScenario:
    def test_sparse_month_renders_full_calendar(self, scenario_rows):
        client = StubClient({None: scenario_rows})
        [result] = PanelPipeline(client).load("F1", "2022-04-01", 1, interval_spec())

        assert result.status == "ok"
        frame = result.frame.set_index("date")
        assert len(frame) == 37
        assert frame.loc["2022-04-05", "value"] == 12
        assert frame.loc["2022-04-10", "forecast_value"] == 15
        assert frame.drop(index=["2022-04-05", "2022-04-10"]).isna().all().all()

    def test_query_spans_preroll_through_month_end(self, scenario_rows):
        client = StubClient({None: scenario_rows})
        PanelPipeline(client).load("F1", "2022-04-01", 1, interval_spec())
        assert client.queries == [("F1", "2022-03-25", "2022-04-30", None)]

    def test_single_points_draw_no_band_or_lines(self, scenario_rows):
        client = StubClient({None: scenario_rows})
        [result] = PanelPipeline(client).load("F1", "2022-04-01", 1, interval_spec())
        panel = result.panel
        assert panel.band == []
        assert "Interval (low-high)" not in [i.label for i in panel.legend]
        assert panel.strokes == []
        assert [i.label for i in panel.legend] == ["Historical"]

    def test_domain_covers_all_values(self, scenario_rows):
        client = StubClient({None: scenario_rows})
        [result] = PanelPipeline(client).load("F1", "2022-04-01", 1, interval_spec())
        assert result.panel.y_domain == (pytest.approx(9.2), pytest.approx(20.8))


class TestModelDashboard:
    def test_specs(self):
        specs = model_dashboard_specs()
        assert [s.title for s in specs] == ["ARIMA", "HWES", "SES", "Full"]
        assert [s.view for s in specs[:3]] == list(MODEL_VIEWS.values())
        assert specs[3].view is None

    def test_panels_share_domain(self):
        client = StubClient({
            MODEL_VIEWS["ARIMA"]: rows(10.0),
            MODEL_VIEWS["HWES"]: rows(50.0),
            MODEL_VIEWS["SES"]: rows(30.0),
            None: rows(20.0),
        })
        results = PanelPipeline(client).load("F1", "2022-04-01", 1, model_dashboard_specs())
        domains = {r.panel.y_domain for r in results}
        assert len(domains) == 1
        lo, hi = domains.pop()
        assert lo < 10.0 and hi > 51.0

    def test_failed_panel_reported_others_render(self):
        client = StubClient({
            MODEL_VIEWS["ARIMA"]: rows(10.0),
            MODEL_VIEWS["HWES"]: FetchError("HTTP 503"),
            MODEL_VIEWS["SES"]: rows(30.0),
            None: rows(20.0),
        })
        results = PanelPipeline(client).load("F1", "2022-04-01", 1, model_dashboard_specs())
        assert [r.status for r in results] == ["ok", "error", "ok", "ok"]
        assert results[1].message.startswith("No data available for HWES")
        assert results[1].panel is None

    def test_independent_domains_when_not_shared(self):
        client = StubClient({
            MODEL_VIEWS["ARIMA"]: rows(10.0),
            MODEL_VIEWS["HWES"]: rows(50.0),
            MODEL_VIEWS["SES"]: rows(30.0),
            None: rows(20.0),
        })
        results = PanelPipeline(client).load("F1", "2022-04-01", 1, model_dashboard_specs(), share_domain=False)
        assert len({r.panel.y_domain for r in results}) == 4


class TestValidation:
    def test_bad_window_fails_before_fetch(self):
        client = StubClient()
        with pytest.raises(InvalidWindowError):
            PanelPipeline(client).load("F1", "2022-04-01", 0, interval_spec())
        assert client.queries == []

    def test_crossed_bounds_propagate(self):
        bad = [
            {"date": "2022-04-02", "low": 5, "high": 6},
            {"date": "2022-04-03", "low": 9, "high": 6},
        ]
        with pytest.raises(DataInconsistencyError):
            PanelPipeline(StubClient({None: bad})).load("F1", "2022-04-01", 1, interval_spec())


class TestGenerationGuard:
    def test_only_latest_token_is_current(self):
        guard = GenerationGuard()
        first = guard.begin("chart")
        second = guard.begin("chart")
        assert not guard.is_current("chart", first)
        assert guard.is_current("chart", second)

    def test_slots_are_independent(self):
        guard = GenerationGuard()
        a = guard.begin("a")
        guard.begin("b")
        assert guard.is_current("a", a)

    def test_superseded_load_is_discarded(self, scenario_rows):
        guard = GenerationGuard()

        class Interrupting(StubClient):
            def query_view(self, *args, **kwargs):
                guard.begin("chart")  # a newer request starts mid-flight
                return super().query_view(*args, **kwargs)

        pipeline = PanelPipeline(Interrupting({None: scenario_rows}), guard=guard)
        [result] = pipeline.load("F1", "2022-04-01", 1, interval_spec(), slot="chart")
        assert result.status == "stale"
        assert result.panel is None and result.frame is None

    def test_newest_of_overlapping_loads_wins(self, scenario_rows):
        guard = GenerationGuard()
        gate = threading.Event()
        calls = []

        class Slow(StubClient):
            def query_view(self, *args, **kwargs):
                calls.append(args)
                if len(calls) == 1:
                    assert gate.wait(5)
                return super().query_view(*args, **kwargs)

        pipeline = PanelPipeline(Slow({None: scenario_rows}), guard=guard)
        out = {}

        def run_older():
            out["old"] = pipeline.load("F1", "2022-04-01", 1, interval_spec(), slot="s")

        older = threading.Thread(target=run_older)
        older.start()
        while not calls:
            time.sleep(0.01)
        out["new"] = pipeline.load("F1", "2022-05-01", 1, interval_spec(), slot="s")
        gate.set()
        older.join(5)

        assert out["new"][0].status == "ok"
        assert out["old"][0].status == "stale"
