"""Hann analysis window with coherent-gain correction."""

from dataclasses import dataclass

import numpy as np

from mic_spectrum.exceptions import InvalidSizeError


@dataclass(frozen=True, eq=False)
class Window:
    """Immutable window coefficients for one frame size."""

    coefficients: np.ndarray
    coherent_gain: float

    @property
    def size(self) -> int:
        return int(self.coefficients.shape[0])

    def apply(self, samples: np.ndarray, out: np.ndarray) -> np.ndarray:
        """Multiply ``samples`` by the window into ``out`` (no allocation)."""
        return np.multiply(samples, self.coefficients, out=out)


def hann_window(size: int) -> Window:
    """Build a symmetric Hann window and its coherent gain.

    w[i] = 0.5 * (1 - cos(2*pi*i / (N - 1))), gain = mean(w), ~0.5 for Hann.
    A new Window is returned on every call; callers rebuild it whenever the
    frame size changes.
    """
    if size < 2:
        raise InvalidSizeError(size, "window needs at least 2 samples")
    i = np.arange(size, dtype=np.float64)
    coefficients = 0.5 * (1.0 - np.cos(2.0 * np.pi * i / (size - 1)))
    coefficients.flags.writeable = False
    return Window(coefficients=coefficients, coherent_gain=float(coefficients.mean()))
