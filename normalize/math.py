import math
from typing import Iterable, List


def _finite(samples: Iterable[float]) -> List[float]:
    return [float(v) for v in samples if not (math.isnan(v) or math.isinf(v))]


def avg(samples: List[float]) -> float:
    if not samples:
        raise ValueError("samples must not be empty")
    return math.fsum(samples) / len(samples)


def median(samples: List[float]) -> float:
    if not samples:
        raise ValueError("samples must not be empty")
    s = sorted(samples)
    n = len(s)
    if n % 2 == 1:
        return float(s[n // 2])
    return (s[n // 2 - 1] + s[n // 2]) / 2.0


def stdev(samples: List[float]) -> float:
    """Sample standard deviation (N-1 denominator); 0.0 for fewer than 2 samples."""
    n = len(samples)
    if n < 2:
        return 0.0
    mean = avg(samples)
    acc = math.fsum((v - mean) ** 2 for v in samples)
    return math.sqrt(acc / (n - 1))


def finite_min(samples: Iterable[float]) -> float:
    """Minimum over finite values; NaN if there are none."""
    vals = _finite(samples)
    if not vals:
        return float('nan')
    return min(vals)


def finite_sum(samples: Iterable[float]) -> float:
    return math.fsum(_finite(samples))


def round_half_away(x: float) -> float:
    # exact: x - floor(x) is representable for any finite float
    a = abs(x)
    fl = math.floor(a)
    r = fl + 1 if a - fl >= 0.5 else fl
    return math.copysign(r, x)


def magic_round(x: float) -> float:
    """Round to whole numbers at magnitude >= 1000, otherwise keep up to 4 significant digits."""
    if x == 0 or math.isnan(x) or math.isinf(x):
        return x
    if x < 0:
        return -magic_round(-x)
    digits = max(0.0, round_half_away(3 - math.log10(x)))
    try:
        scale = round_half_away(math.pow(10, digits))
    except OverflowError:
        # subnormal input: no representable scale
        return x
    if scale == 0:
        return x
    return round_half_away(x * scale) / scale
