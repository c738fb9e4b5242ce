from typing import Callable, List, Tuple

import numpy as np
import pandas as pd

from ..core.errors import DataInconsistencyError

Vertex = Tuple[float, float]


def build_band(
    frame: pd.DataFrame,
    low_field: str,
    high_field: str,
    eligible: Callable[[int], bool],
    x_scale: Callable[[int], float],
    y_scale: Callable[[float], float],
) -> List[Vertex]:
    """Closed polygon around the low/high interval.

    Vertices run along ``high`` in ascending date order, then back along
    ``low`` in descending order. Fewer than two eligible points give ``[]``.
    Crossed bounds are rejected, not repaired.
    """
    if low_field not in frame.columns or high_field not in frame.columns:
        return []
    lows = frame[low_field].to_numpy(dtype=float)
    highs = frame[high_field].to_numpy(dtype=float)
    picked = [
        i for i in range(len(frame))
        if not np.isnan(lows[i]) and not np.isnan(highs[i]) and eligible(i)
    ]
    if len(picked) < 2:
        return []
    for i in picked:
        if lows[i] > highs[i]:
            raise DataInconsistencyError(
                f"{low_field} > {high_field} on {frame['date'].iloc[i]}: {lows[i]} > {highs[i]}"
            )
    top = [(x_scale(i), y_scale(highs[i])) for i in picked]
    bottom = [(x_scale(i), y_scale(lows[i])) for i in reversed(picked)]
    return top + bottom
