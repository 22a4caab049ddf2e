"""Live microphone spectrum analyzer - audio capture, Hann/FFT/dBFS, smoothing, controller."""

from mic_spectrum._types import Condition, PipelineState
from mic_spectrum.audio import AnalyzerConfig, SoundDeviceInput, ToneInput
from mic_spectrum.pipeline import PipelineController, SpectrumSnapshot

__all__ = [
    "AnalyzerConfig",
    "Condition",
    "PipelineController",
    "PipelineState",
    "SoundDeviceInput",
    "SpectrumSnapshot",
    "ToneInput",
]
