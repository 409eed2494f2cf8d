from __future__ import annotations

import math
from typing import Optional

from .models import ConfidenceInterval
from .utils import clamp

Z_95 = 1.96  # Z_{0.975}


def wilson_interval(n_clean: int, n_dirt: int, *, z: float = Z_95) -> Optional[ConfidenceInterval]:
    """Wilson score interval for the fraction of contaminant fragments.

    Returns ``None`` when there are no clean or contaminant fragments.
    """
    n = n_clean + n_dirt
    if n <= 0:
        return None

    p = n_dirt / n
    center = p + 0.5 * z * z / n
    width = z * math.sqrt(p * (1.0 - p) / n + 0.25 * z * z / (n * n))
    denom = 1.0 + z * z / n

    return ConfidenceInterval(
        lower=clamp(100.0 * (center - width) / denom, 0.0, 100.0),
        estimate=clamp(100.0 * p, 0.0, 100.0),
        upper=clamp(100.0 * (center + width) / denom, 0.0, 100.0),
    )
