"""Typed exceptions for the microphone spectrum analyzer.

Hierarchy:
    MicSpectrumError (base)
    +-- ConfigError
    |   +-- UnsupportedFrameSizeError
    +-- InvalidSizeError (transform/window length, also a ValueError)
    +-- DeviceError
    |   +-- DeviceUnavailableError
    |   +-- CaptureStopTimeoutError
    +-- MicrophonePermissionError
    |   +-- PermissionDeniedError
    |   +-- PermissionLostError
    +-- InvalidTransitionError
"""

from __future__ import annotations

from typing import Optional, Sequence


class MicSpectrumError(Exception):
    """Base for all mic_spectrum exceptions."""


# --- Configuration ---


class ConfigError(MicSpectrumError):
    """Invalid analyzer configuration."""


class UnsupportedFrameSizeError(ConfigError):
    """Frame size is not one of the supported transform sizes."""

    def __init__(self, frame_size: int, supported: Sequence[int]) -> None:
        self.frame_size = frame_size
        self.supported = tuple(supported)
        choices = ", ".join(str(s) for s in self.supported)
        super().__init__(f"Unsupported frame size {frame_size} (choose one of: {choices})")


# --- DSP ---


class InvalidSizeError(MicSpectrumError, ValueError):
    """Transform or window invoked with an unusable length.

    A programming error: the controller only ever passes supported sizes.
    """

    def __init__(self, size: int, reason: str = "must be a power of two") -> None:
        self.size = size
        self.reason = reason
        super().__init__(f"Invalid size {size}: {reason}")


# --- Device ---


class DeviceError(MicSpectrumError):
    """Audio input device error."""


class DeviceUnavailableError(DeviceError):
    """Device cannot be opened at any candidate rate, or failed permanently while reading."""

    def __init__(self, detail: str, sample_rate: Optional[int] = None) -> None:
        self.detail = detail
        self.sample_rate = sample_rate
        where = f" at {sample_rate} Hz" if sample_rate is not None else ""
        super().__init__(f"Audio input unavailable{where}: {detail}")


class CaptureStopTimeoutError(DeviceError):
    """Capture thread did not exit within the stop timeout."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Capture thread still running after {timeout_seconds:.1f}s")


# --- Permission ---


class MicrophonePermissionError(MicSpectrumError):
    """Microphone access capability problem."""


class PermissionDeniedError(MicrophonePermissionError):
    """Recording requested while microphone access is not granted."""

    def __init__(self) -> None:
        super().__init__("Microphone access is not granted")


class PermissionLostError(MicrophonePermissionError):
    """Microphone access was revoked while capturing."""

    def __init__(self) -> None:
        super().__init__("Microphone access was revoked; capture stopped")


# --- Lifecycle ---


class InvalidTransitionError(MicSpectrumError):
    """Invalid state transition in the pipeline controller."""

    def __init__(self, from_state: str, to_state: str) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state} -> {to_state}")
