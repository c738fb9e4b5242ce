import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from ..core.config import PREROLL_DAYS
from ..core.errors import FetchError
from ..utils.time_windows import build_calendar, segment_boundary
from .alignment import align
from .composer import Panel, PanelVariant, compose_panel, panel_variant
from .data_loader import BASE_FIELDS, QueryClient, normalize_rows
from .scales import ChartFrame, y_domain

logger = logging.getLogger(__name__)

# Pre-baked per-model views of the query service
MODEL_VIEWS = {
    "ARIMA": "engine.tsf_arima_m_a0",
    "HWES": "engine.tsf_hwes_m_a0",
    "SES": "engine.tsf_ses_m_a0",
}


@dataclass(frozen=True)
class PanelSpec:
    title: str
    variant: PanelVariant
    view: Optional[str] = None


@dataclass
class PanelResult:
    title: str
    status: str                      # ok | error | stale
    message: str = ""
    frame: Optional[pd.DataFrame] = None
    panel: Optional[Panel] = None


def model_dashboard_specs() -> List[PanelSpec]:
    """One panel per model view plus the full interval view underneath."""
    specs = [PanelSpec(name, panel_variant("model", label=name), view) for name, view in MODEL_VIEWS.items()]
    specs.append(PanelSpec("Full", panel_variant("interval")))
    return specs


class GenerationGuard:
    """Per-slot request counter; results of a superseded request are dropped."""

    def __init__(self):
        self._generations: Dict[str, int] = {}
        self._lock = threading.Lock()

    def begin(self, slot: str) -> int:
        with self._lock:
            token = self._generations.get(slot, 0) + 1
            self._generations[slot] = token
            return token

    def is_current(self, slot: str, token: int) -> bool:
        with self._lock:
            return self._generations.get(slot) == token


def shared_y_domain(frames: Sequence[pd.DataFrame], fields: Sequence[str]) -> Tuple[float, float]:
    return y_domain(list(frames), fields)


def _union_fields(variants: Sequence[PanelVariant]) -> List[str]:
    out: List[str] = []
    for v in variants:
        out += [f for f in v.fields if f not in out]
    return out


def compose_panels(
    frames: Sequence[pd.DataFrame],
    boundary,
    specs: Sequence[PanelSpec],
    chart: ChartFrame = ChartFrame(),
    x_mode: str = "index",
) -> List[Panel]:
    """Compose sibling panels on one Y domain computed over all of them."""
    if len(frames) != len(specs):
        raise ValueError("frames and specs must have the same length")
    domain = shared_y_domain(frames, _union_fields([s.variant for s in specs]))
    return [
        compose_panel(frame, boundary, spec.variant, shared_domain=domain, chart=chart, title=spec.title, x_mode=x_mode)
        for frame, spec in zip(frames, specs)
    ]


@dataclass
class PanelPipeline:
    """calendar -> query -> align -> compose for a parameter triple."""

    client: QueryClient
    preroll_days: int = PREROLL_DAYS
    chart: ChartFrame = field(default_factory=ChartFrame)
    guard: GenerationGuard = field(default_factory=GenerationGuard)
    x_mode: str = "index"

    def load_frame(self, forecast_id: str, start_month: str, months_count: int,
                   view: Optional[str] = None, aux_fields: Sequence[str] = ()) -> pd.DataFrame:
        calendar = build_calendar(start_month, months_count, self.preroll_days)
        res = self.client.query_view(forecast_id, calendar[0], calendar[-1], view=view)
        rows = normalize_rows(res["rows"], aux_fields)
        return align(calendar, rows, [*BASE_FIELDS, *aux_fields])

    def load(self, forecast_id: str, start_month: str, months_count: int,
             specs: Sequence[PanelSpec], share_domain: bool = True, slot: str = "default") -> List[PanelResult]:
        """Render every panel in ``specs``.

        A panel whose fetch failed comes back with ``status="error"`` and no
        frame. If a newer ``load`` for the same ``slot`` started meanwhile,
        every result is marked ``stale`` and carries nothing to draw.
        """
        build_calendar(start_month, months_count, self.preroll_days)  # reject bad windows before any fetch
        boundary = segment_boundary(start_month)
        token = self.guard.begin(slot)

        def fetch_one(spec: PanelSpec):
            try:
                return self.load_frame(forecast_id, start_month, months_count, spec.view, spec.variant.aux_fields), None
            except FetchError as exc:
                logger.warning("No data for %s (%s): %s", spec.title, forecast_id, exc)
                return None, f"No data available for {spec.title}: {exc}"

        with ThreadPoolExecutor(max_workers=max(1, len(specs)), thread_name_prefix="tsf-panel") as pool:
            loaded = list(pool.map(fetch_one, specs))

        if not self.guard.is_current(slot, token):
            logger.info("Discarding superseded results for slot %s", slot)
            return [PanelResult(spec.title, "stale", "superseded by a newer request") for spec in specs]

        ok = [(spec, frame) for spec, (frame, _) in zip(specs, loaded) if frame is not None]
        domain = None
        if share_domain and ok:
            domain = shared_y_domain([f for _, f in ok], _union_fields([s.variant for s, _ in ok]))

        results = []
        for spec, (frame, error) in zip(specs, loaded):
            if frame is None:
                results.append(PanelResult(spec.title, "error", error))
                continue
            panel = compose_panel(frame, boundary, spec.variant, shared_domain=domain,
                                  chart=self.chart, title=spec.title, x_mode=self.x_mode)
            results.append(PanelResult(spec.title, "ok", frame=frame, panel=panel))
        return results
