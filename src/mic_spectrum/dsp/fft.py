"""In-place radix-2 Cooley-Tukey FFT over split real/imaginary buffers.

Iterative form: a bit-reversal permutation, then log2(N) butterfly stages
with the butterfly span doubling from 2 to N. Each stage is vectorized with
numpy across all of its butterflies; the twiddle factors of a stage are
built once per plan by repeatedly rotating with exp(-2*pi*j / span).
Forward transform only.
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Tuple

import numpy as np

from mic_spectrum.audio.config import is_power_of_two
from mic_spectrum.exceptions import InvalidSizeError


def _bit_reversal_permutation(n: int) -> np.ndarray:
    perm = np.arange(n)
    j = 0
    for i in range(1, n - 1):
        bit = n >> 1
        while j >= bit:
            j -= bit
            bit >>= 1
        j += bit
        if i < j:
            perm[i], perm[j] = perm[j], perm[i]
    return perm


def _stage_twiddles(span: int) -> Tuple[np.ndarray, np.ndarray]:
    """Twiddles w^k for k in [0, span/2), w = exp(-2*pi*j/span), by incremental rotation."""
    half = span >> 1
    angle = -2.0 * np.pi / span
    step = np.full(half, complex(np.cos(angle), np.sin(angle)))
    step[0] = 1.0
    w = np.cumprod(step)
    return np.ascontiguousarray(w.real), np.ascontiguousarray(w.imag)


class _Plan:
    """Size-dependent tables shared by every transform of one length."""

    def __init__(self, size: int):
        self.size = size
        self.permutation = _bit_reversal_permutation(size)
        self.stages: List[Tuple[int, np.ndarray, np.ndarray]] = []
        span = 2
        while span <= size:
            tw_re, tw_im = _stage_twiddles(span)
            self.stages.append((span, tw_re, tw_im))
            span <<= 1


@lru_cache(maxsize=16)
def _plan_for(size: int) -> _Plan:
    return _Plan(size)


def _check_size(n: int) -> None:
    if n < 1 or not is_power_of_two(n):
        raise InvalidSizeError(n)


class FFTEngine:
    """Forward FFT over engine-owned ``real``/``imag`` buffers of length N.

    Fill ``real`` and ``imag``, call ``execute()``, read the result back from
    the same buffers. All scratch space is allocated up front.
    """

    def __init__(self, size: int):
        _check_size(size)
        self.size = size
        self.real = np.zeros(size, dtype=np.float64)
        self.imag = np.zeros(size, dtype=np.float64)
        self._plan = _plan_for(size)
        half = max(size // 2, 1)
        self._perm_scratch = np.empty(size, dtype=np.float64)
        self._v_re = np.empty(half, dtype=np.float64)
        self._v_im = np.empty(half, dtype=np.float64)
        self._tmp = np.empty(half, dtype=np.float64)

    def execute(self) -> None:
        """Transform ``real``/``imag`` in place."""
        _transform(
            self.real,
            self.imag,
            self._plan,
            self._perm_scratch,
            self._v_re,
            self._v_im,
            self._tmp,
        )


def fft_inplace(real: np.ndarray, imag: np.ndarray) -> None:
    """Forward FFT of caller-owned float64 arrays, in place.

    Raises:
        InvalidSizeError: Length is not a power of two, or real/imag lengths differ.
    """
    n = real.shape[0]
    if imag.shape[0] != n:
        raise InvalidSizeError(imag.shape[0], f"imaginary length differs from real length {n}")
    _check_size(n)
    if not (real.flags.c_contiguous and imag.flags.c_contiguous):
        raise ValueError("fft_inplace needs contiguous arrays")
    if not (np.issubdtype(real.dtype, np.floating) and np.issubdtype(imag.dtype, np.floating)):
        raise ValueError("fft_inplace needs floating point arrays")
    half = max(n // 2, 1)
    _transform(
        real,
        imag,
        _plan_for(n),
        np.empty(n, dtype=real.dtype),
        np.empty(half, dtype=real.dtype),
        np.empty(half, dtype=real.dtype),
        np.empty(half, dtype=real.dtype),
    )


def _transform(
    real: np.ndarray,
    imag: np.ndarray,
    plan: _Plan,
    perm_scratch: np.ndarray,
    v_re: np.ndarray,
    v_im: np.ndarray,
    tmp: np.ndarray,
) -> None:
    n = plan.size
    if n == 1:
        return

    np.take(real, plan.permutation, out=perm_scratch)
    real[:] = perm_scratch
    np.take(imag, plan.permutation, out=perm_scratch)
    imag[:] = perm_scratch

    for span, tw_re, tw_im in plan.stages:
        half = span >> 1
        blocks = n // span
        re = real.reshape(blocks, span)
        im = imag.reshape(blocks, span)
        top_re, bot_re = re[:, :half], re[:, half:]
        top_im, bot_im = im[:, :half], im[:, half:]
        vr = v_re.reshape(blocks, half)
        vi = v_im.reshape(blocks, half)
        t = tmp.reshape(blocks, half)

        # v = bottom * w
        np.multiply(bot_re, tw_re, out=vr)
        np.multiply(bot_im, tw_im, out=t)
        np.subtract(vr, t, out=vr)
        np.multiply(bot_re, tw_im, out=vi)
        np.multiply(bot_im, tw_re, out=t)
        np.add(vi, t, out=vi)

        # bottom = top - v, top = top + v
        np.subtract(top_re, vr, out=bot_re)
        np.subtract(top_im, vi, out=bot_im)
        np.add(top_re, vr, out=top_re)
        np.add(top_im, vi, out=top_im)
