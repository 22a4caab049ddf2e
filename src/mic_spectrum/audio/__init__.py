"""Audio capture configuration and input devices."""

from mic_spectrum.audio.config import AnalyzerConfig
from mic_spectrum.audio.device import (
    AudioInput,
    InputHandle,
    SoundDeviceInput,
    ToneInput,
    list_input_devices,
    select_sample_rate,
)

__all__ = [
    "AnalyzerConfig",
    "AudioInput",
    "InputHandle",
    "SoundDeviceInput",
    "ToneInput",
    "list_input_devices",
    "select_sample_rate",
]
