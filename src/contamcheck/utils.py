from __future__ import annotations

import gzip
import json
import logging
import re
from pathlib import Path
from typing import Any, Optional, TextIO, Tuple

logger = logging.getLogger(__name__)


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def ensure_outdir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def open_textmaybe_gzip(path: str | Path, mode: str = "rt") -> TextIO:
    p = str(path)
    if p.endswith(".gz"):
        return gzip.open(p, mode)  # type: ignore[return-value]
    return open(p, mode)


def write_json(path: str | Path, obj: Any) -> None:
    with open(path, "wt", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True)


def parse_span(text: str) -> Tuple[int, Optional[int]]:
    """Parse a 1-based inclusive ``M-N`` range into 0-based ``[M-1, N)``.

    Either side may be omitted (``100-``, ``-500``).
    """
    m = re.fullmatch(r"\s*(\d*)\s*-\s*(\d*)\s*", text)
    if m is None:
        raise ValueError(f"Span must look like M-N, got: {text!r}")
    lo, hi = m.group(1), m.group(2)
    span_from = max(int(lo) - 1, 0) if lo else 0
    span_to = int(hi) if hi else None
    if span_to is not None and span_to <= span_from:
        raise ValueError(f"Empty span: {text!r}")
    return span_from, span_to
