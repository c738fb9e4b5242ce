"""Panel composition: aligned grid -> pixel-space scene -> plotly figure.

A ``Panel`` is plain data: every coordinate is already in pixels, so a
panel can be inspected in tests or handed to any vector backend.
``to_figure`` draws it with plotly on fixed pixel axes.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Callable, List, Optional, Sequence, Tuple

import pandas as pd
import plotly.graph_objects as go

from ..utils.time_windows import fmt_mdy
from .alignment import SegmentIndex, classify
from .band import Vertex, build_band
from .scales import ChartFrame, index_x_scale, nice_ticks, time_x_scale, value_y_scale, y_domain

PREROLL_FILL = "rgba(0,0,0,0.08)"
AUX_PALETTE = ["#ff7f0e", "#9467bd", "#8c564b", "#e377c2", "#17becf", "#bcbd22"]


@dataclass(frozen=True)
class ChartSeries:
    key: str
    label: str
    field: str
    color: str
    width: float
    dash: Optional[str] = None
    legend: bool = True


@dataclass(frozen=True)
class PanelVariant:
    name: str
    series: Tuple[ChartSeries, ...]          # z-order, bottom first
    band_fill: Optional[str] = None
    band_label: str = "Forecast Interval"
    preroll_label: str = "Historical"

    @property
    def fields(self) -> List[str]:
        out = []
        for s in self.series:
            if s.field not in out:
                out.append(s.field)
        if self.band_fill:
            out += [f for f in ("low", "high") if f not in out]
        return out

    @property
    def aux_fields(self) -> List[str]:
        return [s.field for s in self.series if s.key.startswith("aux:")]


def _actuals() -> Tuple[ChartSeries, ChartSeries]:
    return (
        ChartSeries("historical_actual", "Historical Values", "value", "#000", 1.8),
        ChartSeries("forecast_actual", "Actuals (for comparison)", "value", "#000", 2.4, "4,6"),
    )


def panel_variant(name: str = "interval", label: Optional[str] = None,
                  aux_fields: Sequence[str] = ()) -> PanelVariant:
    """Stroke/fill configuration for one of the chart variants.

    interval: green band, low/high lines listed in the legend
    seasonal: gold band, bound lines drawn but not listed
    model:    no band, forecast labelled by the model name
    compare:  no band, one extra line per auxiliary model field
    """
    hist, fut = _actuals()
    if name == "interval":
        series = (
            ChartSeries("low_line", "Low (low)", "low", "#2ca02c", 1.8),
            ChartSeries("high_line", "High (high)", "high", "#2ca02c", 1.8, "4,2"),
            ChartSeries("forecast_line", label or "Forecast (fv)", "forecast_value", "#1f77b4", 2.4),
            hist, fut,
        )
        return PanelVariant(name, series, band_fill="rgba(0,180,0,0.18)", band_label="Interval (low-high)")
    if name == "seasonal":
        series = (
            ChartSeries("low_line", "Low", "low", "#2ca02c", 1.8, legend=False),
            ChartSeries("high_line", "High", "high", "#2ca02c", 1.8, legend=False),
            ChartSeries("forecast_line", label or "Targeted Seasonal Forecast", "forecast_value", "#1f77b4", 2.4),
            hist, fut,
        )
        return PanelVariant(name, series, band_fill="rgba(255,215,0,0.22)")
    if name == "model":
        series = (
            ChartSeries("forecast_line", label or "Forecast", "forecast_value", "#1f77b4", 2.4),
            hist, fut,
        )
        return PanelVariant(name, series)
    if name == "compare":
        aux = tuple(
            ChartSeries(f"aux:{f}", f.upper(), f, AUX_PALETTE[i % len(AUX_PALETTE)], 1.8)
            for i, f in enumerate(aux_fields)
        )
        series = (
            ChartSeries("forecast_line", label or "Forecast", "forecast_value", "#1f77b4", 2.4),
            *aux,
            hist, fut,
        )
        return PanelVariant(name, series)
    raise ValueError(f"Unknown panel variant {name!r}")


# ------------------------------------------------------------------
# Scene
# ------------------------------------------------------------------
@dataclass(frozen=True)
class Stroke:
    series: ChartSeries
    points: List[Vertex]


@dataclass(frozen=True)
class Gridline:
    y: float
    value: float
    label: str


@dataclass(frozen=True)
class DateLabel:
    x: float
    y: float
    text: str
    angle: int = 90


@dataclass(frozen=True)
class LegendItem:
    kind: str            # "line" | "fill"
    label: str
    color: str
    width: Optional[float] = None
    dash: Optional[str] = None


@dataclass(frozen=True)
class Panel:
    title: str
    frame: ChartFrame
    y_domain: Tuple[float, float]
    axes: List[Tuple[Vertex, Vertex]]
    gridlines: List[Gridline]
    preroll_rect: Optional[Tuple[float, float, float, float]]
    band: List[Vertex]
    band_fill: Optional[str]
    strokes: List[Stroke]
    date_labels: List[DateLabel]
    legend: List[LegendItem] = field(default_factory=list)


def _indices(seg: SegmentIndex, key: str) -> List[int]:
    if key.startswith("aux:"):
        return seg.aux.get(key[4:], [])
    return getattr(seg, key)


def _x_positions(frame: pd.DataFrame, chart: ChartFrame, x_mode: str) -> Callable[[int], float]:
    n = len(frame)
    if x_mode == "time":
        scale = time_x_scale(frame["date"].tolist(), chart)
        ords = [date.fromisoformat(d).toordinal() for d in frame["date"]]
        return lambda i: scale(ords[i])
    if x_mode != "index":
        raise ValueError(f"x_mode must be 'index' or 'time', got {x_mode!r}")
    return index_x_scale(n, chart)


def compose_panel(
    frame: pd.DataFrame,
    boundary,
    variant: PanelVariant,
    shared_domain: Optional[Tuple[float, float]] = None,
    chart: ChartFrame = ChartFrame(),
    title: str = "",
    x_mode: str = "index",
) -> Panel:
    """Build one panel scene from an aligned grid.

    When ``shared_domain`` is given it is used as-is; the panel computes its
    own domain only when none is supplied.
    """
    seg = classify(frame, boundary, variant.aux_fields)
    domain = tuple(shared_domain) if shared_domain is not None else y_domain(frame, variant.fields)
    x_at = _x_positions(frame, chart, x_mode)
    y_at = value_y_scale(domain, chart)
    n = len(frame)
    left, right = chart.x_range
    bottom = chart.plot_bottom

    axes = [((left, bottom), (right, bottom)), ((left, float(chart.top)), (left, bottom))]
    gridlines = [
        Gridline(y_at(v), v, f"{v:g}")
        for v in nice_ticks(domain[0], domain[1])
        if domain[0] <= v <= domain[1]
    ]

    preroll_rect = None
    n_hist = seg.preroll[1]
    if n and n_hist:
        x0 = x_at(0)
        x1 = x_at(n_hist) if n_hist < n else x_at(n - 1)
        preroll_rect = (x0, float(chart.top), x1, bottom)

    band = build_band(frame, "low", "high", seg.is_forecast, x_at, y_at) if variant.band_fill else []

    strokes = []
    for s in variant.series:
        idx = _indices(seg, s.key)
        if len(idx) < 2:
            # a single point draws no line
            continue
        col = frame[s.field].to_numpy(dtype=float)
        strokes.append(Stroke(s, [(x_at(i), y_at(col[i])) for i in idx]))

    date_labels = [DateLabel(x_at(i), bottom + 8, fmt_mdy(d)) for i, d in enumerate(frame["date"])]

    legend = _legend(variant, strokes, band, preroll_rect)
    return Panel(
        title=title,
        frame=chart,
        y_domain=(float(domain[0]), float(domain[1])),
        axes=axes,
        gridlines=gridlines,
        preroll_rect=preroll_rect,
        band=band,
        band_fill=variant.band_fill if band else None,
        strokes=strokes,
        date_labels=date_labels,
        legend=legend,
    )


_LEGEND_ORDER = ["historical_actual", "forecast_actual", "forecast_line", "low_line", "high_line"]


def _legend(variant: PanelVariant, strokes: List[Stroke], band: List[Vertex],
            preroll_rect) -> List[LegendItem]:
    drawn = {s.series.key: s.series for s in strokes if s.series.legend}
    keys = [k for k in _LEGEND_ORDER if k in drawn] + [k for k in drawn if k not in _LEGEND_ORDER]
    items = [LegendItem("line", drawn[k].label, drawn[k].color, drawn[k].width, drawn[k].dash) for k in keys]
    if band:
        items.append(LegendItem("fill", variant.band_label, variant.band_fill))
    if preroll_rect is not None:
        items.append(LegendItem("fill", variant.preroll_label, PREROLL_FILL))
    return items


# ------------------------------------------------------------------
# Plotly rendering
# ------------------------------------------------------------------
def _plotly_dash(dash: Optional[str]) -> str:
    if not dash:
        return "solid"
    return ",".join(f"{part.strip()}px" for part in dash.split(","))


def to_figure(panel: Panel) -> go.Figure:
    c = panel.frame
    fig = go.Figure()
    shapes = []

    if panel.preroll_rect is not None:
        x0, y0, x1, y1 = panel.preroll_rect
        shapes.append(dict(type="rect", x0=x0, y0=y0, x1=x1, y1=y1, fillcolor=PREROLL_FILL,
                           line=dict(width=0), layer="below"))
    for g in panel.gridlines:
        shapes.append(dict(type="line", x0=c.left - 5, x1=c.width - c.right, y0=g.y, y1=g.y,
                           line=dict(color="#eee", width=1), layer="below"))
    for (x0, y0), (x1, y1) in panel.axes:
        shapes.append(dict(type="line", x0=x0, y0=y0, x1=x1, y1=y1, line=dict(color="#999", width=1)))
    for lbl in panel.date_labels:
        shapes.append(dict(type="line", x0=lbl.x, x1=lbl.x, y0=c.plot_bottom, y1=c.plot_bottom + 6,
                           line=dict(color="#aaa", width=1)))

    legend_labels = {item.label for item in panel.legend}

    if panel.band:
        xs = [p[0] for p in panel.band] + [panel.band[0][0]]
        ys = [p[1] for p in panel.band] + [panel.band[0][1]]
        fig.add_trace(go.Scatter(
            x=xs, y=ys, mode="lines", fill="toself", fillcolor=panel.band_fill,
            line=dict(width=0), hoverinfo="skip", name="band", showlegend=False,
        ))

    for stroke in panel.strokes:
        s = stroke.series
        fig.add_trace(go.Scatter(
            x=[p[0] for p in stroke.points],
            y=[p[1] for p in stroke.points],
            mode="lines",
            name=s.label,
            line=dict(color=s.color, width=s.width, dash=_plotly_dash(s.dash)),
            showlegend=False,
            hoverinfo="skip",
        ))

    # legend proxies keep the legend order independent of the drawing order
    for item in panel.legend:
        if item.kind == "line":
            proxy = go.Scatter(x=[None], y=[None], mode="lines", name=item.label,
                               line=dict(color=item.color, width=item.width, dash=_plotly_dash(item.dash)))
        else:
            proxy = go.Scatter(x=[None], y=[None], mode="markers", name=item.label,
                               marker=dict(symbol="square", size=14, color=item.color))
        fig.add_trace(proxy)

    annotations = [
        dict(x=c.left - 10, y=g.y, text=g.label, showarrow=False, xanchor="right",
             font=dict(size=11, color="#666"))
        for g in panel.gridlines
    ]
    annotations += [
        dict(x=lbl.x, y=lbl.y, text=lbl.text, textangle=lbl.angle, showarrow=False,
             xanchor="center", yanchor="top", font=dict(size=11, color="#666"))
        for lbl in panel.date_labels
    ]

    fig.update_layout(
        width=c.width,
        height=c.height,
        margin=dict(l=0, r=0, t=0, b=0),
        plot_bgcolor="white",
        paper_bgcolor="white",
        shapes=shapes,
        annotations=annotations,
        showlegend=bool(legend_labels),
        legend=dict(
            x=(c.left + 10) / c.width,
            y=1 - (c.top + 10) / c.height,
            xanchor="left",
            yanchor="top",
            bgcolor="#fff",
            bordercolor="#ddd",
            borderwidth=1,
            font=dict(size=12, color="#333"),
        ),
        xaxis=dict(range=[0, c.width], visible=False, fixedrange=True),
        yaxis=dict(range=[c.height, 0], visible=False, fixedrange=True),
    )
    if panel.title:
        fig.update_layout(title=dict(text=panel.title, x=0.01, y=0.99, xanchor="left", yanchor="top"))
    return fig
