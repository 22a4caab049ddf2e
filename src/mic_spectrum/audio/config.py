"""Centralized capture and analysis configuration.

Defaults:
- Audio: mono 16-bit PCM, first accepted rate of 44.1/48/22.05/16 kHz
- FFT: Hann window, 2048 samples (512 ... 8192 selectable)
- Smoothing: loudness 0.2 new / 0.8 old, spectrum 0.3 new / 0.7 old
- Cadence: 50 ms between frames (~20 updates per second)
"""

from dataclasses import dataclass, replace
from typing import Tuple

from mic_spectrum.exceptions import ConfigError, UnsupportedFrameSizeError

FRAME_SIZES: Tuple[int, ...] = (512, 1024, 2048, 4096, 8192)
SAMPLE_RATES: Tuple[int, ...] = (44_100, 48_000, 22_050, 16_000)

# Full scale for signed 16-bit PCM
PCM16_FULL_SCALE = 32768.0


def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


@dataclass(frozen=True)
class AnalyzerConfig:
    """Spectrum analyzer configuration."""

    # Transform
    frame_size: int = 2048
    frame_sizes: Tuple[int, ...] = FRAME_SIZES

    # Recording
    sample_rates: Tuple[int, ...] = SAMPLE_RATES
    channels: int = 1  # mono

    # Cadence between published frames
    hop_interval_sec: float = 0.05

    # Exponential smoothing weight of the newest value
    loudness_alpha: float = 0.2
    spectrum_alpha: float = 0.3

    # dBFS floor and log epsilon
    floor_db: float = -150.0
    epsilon: float = 1e-12

    # Loudness shown before the first frame arrives
    initial_loudness_db: float = -120.0

    # Device reads
    read_timeout_sec: float = 0.1
    max_empty_reads: int = 20

    # Bounded wait when joining the capture thread
    stop_timeout_sec: float = 2.0

    def __post_init__(self) -> None:
        if not self.frame_sizes:
            raise ConfigError("frame_sizes must not be empty")
        for size in self.frame_sizes:
            if size < 2 or not is_power_of_two(size):
                raise ConfigError(f"frame size {size} is not a power of two >= 2")
        if self.frame_size not in self.frame_sizes:
            raise UnsupportedFrameSizeError(self.frame_size, self.frame_sizes)
        if not self.sample_rates or any(rate <= 0 for rate in self.sample_rates):
            raise ConfigError("sample_rates must be a non-empty list of positive rates")
        if self.channels != 1:
            raise ConfigError("only mono capture is supported")
        for name in ("loudness_alpha", "spectrum_alpha"):
            value = getattr(self, name)
            if not 0.0 < value <= 1.0:
                raise ConfigError(f"{name} must be in (0, 1], got {value}")
        if self.epsilon <= 0.0:
            raise ConfigError("epsilon must be positive")
        if self.hop_interval_sec < 0.0:
            raise ConfigError("hop_interval_sec must be >= 0")
        if self.read_timeout_sec <= 0.0 or self.stop_timeout_sec <= 0.0:
            raise ConfigError("read and stop timeouts must be positive")
        if self.max_empty_reads < 1:
            raise ConfigError("max_empty_reads must be >= 1")

    def with_frame_size(self, frame_size: int) -> "AnalyzerConfig":
        """Copy with a different frame size (validated)."""
        if frame_size not in self.frame_sizes:
            raise UnsupportedFrameSizeError(frame_size, self.frame_sizes)
        return replace(self, frame_size=frame_size)

    @property
    def bins(self) -> int:
        """Number of single-sided spectrum bins (N/2)."""
        return self.frame_size // 2

    def bin_hz(self, sample_rate: int) -> float:
        """Frequency spacing between bins."""
        return sample_rate / self.frame_size

    def frame_duration_sec(self, sample_rate: int) -> float:
        """Time covered by one frame."""
        return self.frame_size / sample_rate
