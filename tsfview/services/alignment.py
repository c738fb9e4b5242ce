"""Calendar alignment of sparse query rows and historical/forecast segmentation."""

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..core.errors import DataInconsistencyError
from ..models.schemas import DailyPoint
from .data_loader import BASE_FIELDS


def _check_calendar(calendar: Sequence[str]) -> None:
    prev = None
    for d in calendar:
        try:
            day = date.fromisoformat(str(d))
        except ValueError as exc:
            raise DataInconsistencyError(f"calendar contains invalid day {d!r}") from exc
        if prev is not None and day <= prev:
            raise DataInconsistencyError(f"calendar is not strictly ascending at {d}")
        prev = day


def _raw_frame(raw_rows: Iterable[dict]) -> pd.DataFrame:
    raw = pd.DataFrame([dict(r) for r in raw_rows or [] if r is not None])
    if raw.empty or "date" not in raw.columns:
        return pd.DataFrame(columns=["date"]).set_index("date")
    raw = raw[raw["date"].notna()].copy()
    raw["date"] = raw["date"].map(lambda d: str(d)[:10])
    for d in raw["date"]:
        try:
            date.fromisoformat(d)
        except ValueError as exc:
            raise DataInconsistencyError(f"raw row has invalid date {d!r}") from exc
    # duplicates: the last row in input order wins
    return raw.drop_duplicates(subset="date", keep="last").set_index("date")


def align(calendar: Sequence[str], raw_rows: Iterable[dict],
          fields: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """One row per calendar day; days missing from ``raw_rows`` carry NaN in every field.

    Values are never reordered, filtered, interpolated or carried forward.
    """
    _check_calendar(calendar)
    fields = list(fields) if fields is not None else list(BASE_FIELDS)
    raw = _raw_frame(raw_rows)
    frame = pd.DataFrame({"date": list(calendar)})
    for name in fields:
        if name in raw.columns:
            col = pd.to_numeric(raw[name], errors="coerce").reindex(frame["date"])
            frame[name] = col.to_numpy(dtype=float)
        else:
            frame[name] = np.nan
    return frame


def to_points(frame: pd.DataFrame) -> List[DailyPoint]:
    points = []
    for rec in frame.to_dict(orient="records"):
        clean = {k: (None if isinstance(v, float) and np.isnan(v) else v) for k, v in rec.items()}
        points.append(DailyPoint(**clean))
    return points


@dataclass(frozen=True)
class SegmentIndex:
    historical_actual: List[int]
    forecast_actual: List[int]
    forecast_line: List[int]
    low_line: List[int]
    high_line: List[int]
    aux: Dict[str, List[int]] = field(default_factory=dict)
    preroll: Tuple[int, int] = (0, 0)

    def is_forecast(self, i: int) -> bool:
        return i >= self.preroll[1]


def _present(frame: pd.DataFrame, name: str) -> pd.Series:
    if name not in frame.columns:
        return pd.Series(False, index=frame.index)
    return frame[name].notna()


def classify(frame: pd.DataFrame, boundary, aux_fields: Sequence[str] = ()) -> SegmentIndex:
    """Split the aligned grid at ``boundary`` (first day of the start month).

    Forecast-oriented series only ever take points on or after the boundary,
    even where raw data has values in the pre-roll.
    """
    boundary = boundary.isoformat() if isinstance(boundary, date) else str(boundary)[:10]
    historical = frame["date"] < boundary
    forecast = ~historical

    def idx(mask: pd.Series) -> List[int]:
        return [int(i) for i in np.flatnonzero(mask.to_numpy())]

    n_hist = int(historical.sum())
    return SegmentIndex(
        historical_actual=idx(historical & _present(frame, "value")),
        forecast_actual=idx(forecast & _present(frame, "value")),
        forecast_line=idx(forecast & _present(frame, "forecast_value")),
        low_line=idx(forecast & _present(frame, "low")),
        high_line=idx(forecast & _present(frame, "high")),
        aux={name: idx(forecast & _present(frame, name)) for name in aux_fields},
        preroll=(0, n_hist),
    )
