"""Spectrum conversion: FFT output -> single-sided, window-corrected dBFS.

Calibration: a full-scale sine aligned to a bin reads 0 dBFS. The steps are
applied in this order and must stay in this order:

    |X[k]| -> / N -> / coherent gain -> x2 (k != 0) -> 20*log10 -> floor
"""

from __future__ import annotations

from typing import Optional

import numpy as np

FLOOR_DB = -150.0
EPSILON = 1e-12


def magnitude_spectrum_db(
    real: np.ndarray,
    imag: np.ndarray,
    coherent_gain: float,
    frame_size: int,
    floor_db: float = FLOOR_DB,
    epsilon: float = EPSILON,
    out: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Convert transform output into N/2 dBFS values.

    Args:
        real: Real part of the transform, length N.
        imag: Imaginary part of the transform, length N.
        coherent_gain: Mean of the analysis window coefficients.
        frame_size: N.
        floor_db: Lowest reported level.
        epsilon: Magnitude floor before the log.
        out: Optional float64 buffer of length N/2 to write into.

    Returns:
        dBFS values for bins 0 .. N/2 - 1 (DC .. just below Nyquist).
    """
    bins = frame_size // 2
    if out is None:
        out = np.empty(bins, dtype=np.float64)
    gain = coherent_gain if coherent_gain > 0.0 else epsilon

    np.hypot(real[:bins], imag[:bins], out=out)
    out /= frame_size
    out /= gain
    out[1:] *= 2.0
    np.maximum(out, epsilon, out=out)
    np.log10(out, out=out)
    out *= 20.0
    np.maximum(out, floor_db, out=out)
    return out


def rms_dbfs(
    samples: np.ndarray,
    floor_db: float = FLOOR_DB,
    epsilon: float = EPSILON,
) -> float:
    """RMS level of normalized samples in dBFS, floored."""
    if samples.size == 0:
        return floor_db
    x = samples.astype(np.float64, copy=False)
    rms = float(np.sqrt(np.mean(x * x)))
    return max(20.0 * float(np.log10(max(rms, epsilon))), floor_db)


def bin_frequencies(frame_size: int, sample_rate: int) -> np.ndarray:
    """Center frequency in Hz of each of the N/2 published bins."""
    return np.arange(frame_size // 2, dtype=np.float64) * (sample_rate / frame_size)


class ExponentialSmoother:
    """First-order IIR smoothing: ``alpha * new + (1 - alpha) * old``.

    The first update seeds the state with the input as-is. Works for scalars
    and arrays; a change of array length reseeds.
    """

    def __init__(self, alpha: float):
        if not 0.0 < alpha <= 1.0:
            raise ValueError(f"alpha must be in (0, 1], got {alpha}")
        self.alpha = alpha
        self._state: Optional[np.ndarray] = None

    @property
    def seeded(self) -> bool:
        return self._state is not None

    def reset(self) -> None:
        self._state = None

    def update(self, values):
        """Blend ``values`` into the state and return the smoothed value.

        Arrays come back as a new array (safe to publish); scalars as float.
        """
        new = np.asarray(values, dtype=np.float64)
        if self._state is None or self._state.shape != new.shape:
            self._state = new.copy()
        else:
            self._state = self.alpha * new + (1.0 - self.alpha) * self._state
        if self._state.ndim == 0:
            return float(self._state)
        return self._state.copy()
