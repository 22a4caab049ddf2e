"""Windowing, FFT and spectrum conversion."""

from mic_spectrum.dsp.fft import FFTEngine, fft_inplace
from mic_spectrum.dsp.spectrum import (
    ExponentialSmoother,
    bin_frequencies,
    magnitude_spectrum_db,
    rms_dbfs,
)
from mic_spectrum.dsp.window import Window, hann_window

__all__ = [
    "ExponentialSmoother",
    "FFTEngine",
    "Window",
    "bin_frequencies",
    "fft_inplace",
    "hann_window",
    "magnitude_spectrum_db",
    "rms_dbfs",
]
