import math
from typing import List, Tuple


def values_from_series(series: List[Tuple[float, float]]) -> List[float]:
    """Extract numeric values from a list of (timestamp, value) tuples.
    Drops None, NaN and infinite values.
    """
    vals: List[float] = []
    for ts, v in series:
        if v is None:
            continue
        try:
            fv = float(v)
        except (TypeError, ValueError):
            continue
        if math.isnan(fv) or math.isinf(fv):
            continue
        vals.append(fv)
    return vals

