import math
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..core.config import CHART_HEIGHT, CHART_PADDING, CHART_WIDTH, TICK_TARGET, Y_PAD_RATIO


@dataclass(frozen=True)
class ChartFrame:
    """Pixel geometry of one panel."""

    width: int = CHART_WIDTH
    height: int = CHART_HEIGHT
    top: int = CHART_PADDING["top"]
    right: int = CHART_PADDING["right"]
    bottom: int = CHART_PADDING["bottom"]
    left: int = CHART_PADDING["left"]

    @property
    def x_range(self) -> Tuple[float, float]:
        return float(self.left), float(self.width - self.right)

    @property
    def y_range(self) -> Tuple[float, float]:
        # inverted: larger values render higher
        return float(self.height - self.bottom), float(self.top)

    @property
    def plot_bottom(self) -> float:
        return float(self.height - self.bottom)


class LinearScale:
    def __init__(self, domain: Tuple[float, float], range_: Tuple[float, float]):
        self.domain = (float(domain[0]), float(domain[1]))
        self.range = (float(range_[0]), float(range_[1]))

    def __call__(self, v: float) -> float:
        d0, d1 = self.domain
        r0, r1 = self.range
        if d1 == d0:
            return r0
        return r0 + (float(v) - d0) * (r1 - r0) / (d1 - d0)

    def __repr__(self) -> str:
        return f"LinearScale(domain={self.domain}, range={self.range})"


def index_x_scale(n: int, frame: ChartFrame) -> LinearScale:
    """Uniform day spacing: point index ``0..n-1`` across the plot width."""
    return LinearScale((0, max(1, n - 1)), frame.x_range)


def time_x_scale(dates: Sequence[str], frame: ChartFrame) -> LinearScale:
    """Absolute time spacing over UTC day ordinals; call with ``date.toordinal()``."""
    ordinals = [date.fromisoformat(str(d)[:10]).toordinal() for d in dates]
    if not ordinals:
        return LinearScale((0, 1), frame.x_range)
    t0, t1 = min(ordinals), max(ordinals)
    return LinearScale((t0, max(t0 + 1, t1)), frame.x_range)


def value_y_scale(domain: Tuple[float, float], frame: ChartFrame) -> LinearScale:
    return LinearScale(domain, frame.y_range)


FrameLike = Union[pd.DataFrame, Iterable[pd.DataFrame]]


def _values(frames: FrameLike, fields: Sequence[str]) -> np.ndarray:
    if isinstance(frames, pd.DataFrame):
        frames = [frames]
    chunks = []
    for df in frames:
        if df is None:
            continue
        cols = [f for f in fields if f in df.columns]
        if cols:
            chunks.append(df[cols].to_numpy(dtype=float).ravel())
    if not chunks:
        return np.array([], dtype=float)
    vals = np.concatenate(chunks)
    return vals[np.isfinite(vals)]


def y_domain(frames: FrameLike, fields: Sequence[str], pad_ratio: float = Y_PAD_RATIO) -> Tuple[float, float]:
    """Padded value domain over ``fields`` of one or several aligned frames.

    The pad is ``(max - min) * pad_ratio``, or 1 when the range is zero, so the
    domain never degenerates. With no values at all the base range is [0, 1].
    """
    vals = _values(frames, fields)
    if vals.size:
        lo, hi = float(vals.min()), float(vals.max())
    else:
        lo, hi = 0.0, 1.0
    pad = (hi - lo) * pad_ratio or 1.0
    return lo - pad, hi + pad


def nice_ticks(vmin: float, vmax: float, target: int = TICK_TARGET) -> List[float]:
    if not (math.isfinite(vmin) and math.isfinite(vmax)):
        return [0.0, 1.0]
    if vmin == vmax:
        return [vmin, vmin + 1]
    if vmin > vmax:
        vmin, vmax = vmax, vmin
    target = max(1, int(target))
    span = vmax - vmin
    step = 10 ** math.floor(math.log10(span / target))
    err = (target * step) / span
    if err <= 0.15:
        mult = 10
    elif err <= 0.35:
        mult = 5
    elif err <= 0.75:
        mult = 2
    else:
        mult = 1
    s = mult * step
    start = math.floor(vmin / s)
    stop = math.ceil(vmax / s)
    digits = max(0, -math.floor(math.log10(s))) + 1
    return [round(k * s, digits) for k in range(start, stop + 1)]
