"""Terminal display adapter: log-frequency bands and text bars.

Reads snapshots only; never mutates them. Works for any spectrum length, so
a frame-size change needs no special handling here.
"""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from mic_spectrum.pipeline.snapshot import SpectrumSnapshot

MIN_DB = -120.0
MAX_DB = 0.0
F_MIN = 20.0

_BLOCKS = " ▁▂▃▄▅▆▇█"


@dataclass(frozen=True)
class Band:
    """One display bar: the loudest bin between two log-spaced edges."""

    f_low: float
    f_high: float
    level_db: float


def log_bands(
    spectrum_db: np.ndarray,
    sample_rate: int,
    n_bands: int = 64,
    f_min: float = F_MIN,
    floor_db: float = -150.0,
) -> List[Band]:
    """Group bins into ``n_bands`` log-spaced bands from ``f_min`` to Nyquist.

    Bands narrower than one bin (common at low frequencies with small
    frames) are dropped.
    """
    n = spectrum_db.shape[0]
    nyquist = sample_rate / 2.0
    if n < 2 or n_bands < 1 or f_min >= nyquist:
        return []

    edges = np.exp(np.linspace(np.log(f_min), np.log(nyquist), n_bands + 1))
    bin_hz = nyquist / n
    bands: List[Band] = []
    for f_low, f_high in zip(edges[:-1], edges[1:]):
        start = min(int(f_low / bin_hz), n - 1)
        end = min(int(f_high / bin_hz), n - 1)
        if end <= start:
            continue
        level = max(floor_db, float(spectrum_db[start:end].max()))
        bands.append(Band(float(f_low), float(f_high), level))
    return bands


def level_fraction(db: float, min_db: float = MIN_DB, max_db: float = MAX_DB) -> float:
    """Map a level onto 0..1 of the plot height, clamped."""
    clamped = min(max(db, min_db), max_db)
    return (clamped - min_db) / (max_db - min_db)


def render_bars(
    bands: List[Band],
    height: int = 8,
    min_db: float = MIN_DB,
    max_db: float = MAX_DB,
) -> List[str]:
    """Draw bands as vertical text bars, top row first."""
    if not bands:
        return []
    # Height of each bar in eighths of a row
    eighths = [int(round(level_fraction(b.level_db, min_db, max_db) * height * 8)) for b in bands]
    rows = []
    for row in range(height - 1, -1, -1):
        base = row * 8
        rows.append("".join(_BLOCKS[min(max(e - base, 0), 8)] for e in eighths))
    return rows


def format_status(snapshot: Optional[SpectrumSnapshot], loudness_db: float) -> str:
    """One-line readout: level, peak frequency, frame size and rate."""
    if snapshot is None:
        return f"Level: {loudness_db:6.1f} dBFS  (waiting for audio)"
    return (
        f"Level: {snapshot.loudness_db:6.1f} dBFS  "
        f"Peak: {snapshot.peak_frequency:8.1f} Hz  "
        f"N={snapshot.frame_size} @ {snapshot.sample_rate} Hz"
    )
