import sys
from pathlib import Path

import pandas as pd
import streamlit as st

# ------------------------------------------------------------------
# Local imports (reuse the service layer without the HTTP hop)
# ------------------------------------------------------------------
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from tsfview.core.config import DEFAULT_MONTHS, ENGINE_API_URL, MAX_MONTHS, configure_logging  # type: ignore
from tsfview.core.errors import DataInconsistencyError, FetchError, InvalidWindowError  # type: ignore
from tsfview.services.composer import compose_panel, panel_variant, to_figure  # type: ignore
from tsfview.services.dashboard import PanelPipeline, PanelSpec, model_dashboard_specs  # type: ignore
from tsfview.services.data_loader import QueryClient  # type: ignore
from tsfview.services.fetch import ResilientFetcher  # type: ignore
from tsfview.services.scales import ChartFrame  # type: ignore
from tsfview.utils.time_windows import segment_boundary  # type: ignore


# ------------------------------------------------------------------
# Config / constants
# ------------------------------------------------------------------
APP_TITLE = "Forecast Panels"
LAYOUTS = {
    "interval": "Interval (low-high band)",
    "seasonal": "Targeted seasonal (4 panels)",
    "models": "ARIMA / HWES / SES + Full",
}
SMALL_FRAME = ChartFrame(width=520, height=360, top=24, right=12, bottom=90, left=56)
WIDE_FRAME = ChartFrame()


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------
@st.cache_resource(show_spinner=False)
def get_client() -> QueryClient:
    configure_logging()
    return QueryClient(ResilientFetcher(ENGINE_API_URL))


@st.cache_resource(show_spinner=False)
def get_pipelines() -> dict:
    client = get_client()
    return {
        "small": PanelPipeline(client, chart=SMALL_FRAME),
        "wide": PanelPipeline(client, chart=WIDE_FRAME),
    }


def load_options():
    try:
        return get_client().list_forecast_ids()
    except FetchError as exc:
        st.error(f"Could not load forecasts: {exc}")
        return []


def load_months(forecast_id):
    try:
        return get_client().available_months(forecast_id)
    except FetchError as exc:
        st.error(f"Failed to scan dates: {exc}")
        return []


def render_results(results, columns=None):
    slots = columns or [st.container() for _ in results]
    for slot, res in zip(slots, results):
        with slot:
            st.markdown(f"**{res.title}**")
            if res.status == "stale":
                continue
            if res.status != "ok":
                st.warning(res.message)
                continue
            st.plotly_chart(to_figure(res.panel), use_container_width=True)


def render_layout(layout, forecast_id, start_month, months_count):
    pipelines = get_pipelines()
    if layout == "interval":
        specs = [PanelSpec("Forecast", panel_variant("interval"))]
        render_results(pipelines["wide"].load(forecast_id, start_month, months_count, specs, slot="interval"))
        return
    if layout == "seasonal":
        specs = [PanelSpec(f"Panel {i + 1}", panel_variant("seasonal")) for i in range(4)]
    else:
        specs = model_dashboard_specs()
    results = pipelines["small"].load(forecast_id, start_month, months_count, specs, slot=layout)
    render_results(results[:3], st.columns(3))
    bottom = results[3]
    if bottom.status == "ok":
        # same shared domain, wide frame
        bottom.panel = compose_panel(
            bottom.frame, segment_boundary(start_month), specs[3].variant,
            shared_domain=bottom.panel.y_domain, chart=WIDE_FRAME, title=bottom.title,
        )
    render_results([bottom])


# ------------------------------------------------------------------
# Page
# ------------------------------------------------------------------
st.set_page_config(page_title=APP_TITLE, layout="wide")
st.title(APP_TITLE)
st.caption(f"Query service: {ENGINE_API_URL}")

options = load_options()
if not options:
    st.info("No forecasts available from the query service.")
    st.stop()

c1, c2, c3, c4 = st.columns([2.4, 1, 1, 1.6])
names = {o["id"]: o["name"] for o in options}
forecast_id = c1.selectbox("Forecast (forecast_name)", list(names), format_func=lambda k: names[k])
months = load_months(forecast_id)
month = c2.selectbox("Start month", months, disabled=not months)
months_count = c3.selectbox("Months to show", list(range(1, MAX_MONTHS + 1)), index=DEFAULT_MONTHS - 1)
layout = c4.radio("Layout", list(LAYOUTS), format_func=LAYOUTS.get, horizontal=False)

if st.button("Run", type="primary", disabled=not month):
    with st.spinner("Loading…"):
        try:
            render_layout(layout, forecast_id, f"{month}-01", int(months_count))
        except InvalidWindowError as exc:
            st.error(f"Invalid window: {exc}")
        except DataInconsistencyError as exc:
            st.error(f"Data inconsistency, chart not drawn: {exc}")
    st.caption(f"Rendered {pd.Timestamp.now(tz='UTC'):%Y-%m-%d %H:%M} UTC")
