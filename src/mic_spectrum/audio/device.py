"""Audio inputs: mono 16-bit PCM from a microphone or a synthetic tone.

Every input exposes the same blocking-read contract to the capture loop:

    handle = audio_input.open(sample_rate)
    n = handle.read(buffer, offset, count)   # 0 .. count samples, 0 = nothing yet
    handle.abort()                            # from another thread: wake the reader
    handle.close()
"""

from __future__ import annotations

import queue
import threading
from typing import Dict, List, Optional, Protocol, Sequence

import numpy as np

try:
    import sounddevice as sd
except (ImportError, OSError):
    # OSError: the package is installed but the PortAudio library is missing
    sd = None  # type: ignore

from mic_spectrum.exceptions import DeviceUnavailableError
from mic_spectrum.logging import get_logger

logger = get_logger("audio.device")


class InputHandle(Protocol):
    """An open capture device owned by one capture loop."""

    sample_rate: int

    def read(self, buffer: np.ndarray, offset: int, count: int) -> int:
        """Copy up to ``count`` int16 samples into ``buffer[offset:]``.

        Returns the number of samples copied; 0 when nothing arrived within
        the read timeout or the handle was aborted. Raises DeviceError on a
        permanent failure.
        """
        ...

    def abort(self) -> None:
        """Stop accepting reads and wake a blocked reader. Thread-safe."""
        ...

    def close(self) -> None:
        """Release the device. Idempotent."""
        ...


class AudioInput(Protocol):
    """Factory for input handles."""

    def supports(self, sample_rate: int, channels: int = 1) -> bool:
        ...

    def open(self, sample_rate: int, channels: int = 1, blocksize: int = 0) -> InputHandle:
        ...


def select_sample_rate(
    audio_input: AudioInput,
    candidates: Sequence[int],
    channels: int = 1,
) -> int:
    """Return the first candidate rate the input accepts.

    Raises:
        DeviceUnavailableError: No candidate is accepted. There is no blind
            fallback to an unverified rate.
    """
    for rate in candidates:
        if audio_input.supports(rate, channels):
            logger.debug("sample_rate_selected", sample_rate=rate)
            return rate
        logger.debug("sample_rate_rejected", sample_rate=rate)
    tried = ", ".join(str(r) for r in candidates)
    raise DeviceUnavailableError(f"no candidate sample rate accepted (tried {tried})")


def _require_sounddevice() -> None:
    if sd is None:
        raise ImportError("sounddevice (and PortAudio) is required for recording. pip install sounddevice")


def list_input_devices() -> List[Dict[str, object]]:
    """Input-capable PortAudio devices as ``{index, name, channels, default_samplerate}``."""
    _require_sounddevice()
    devices = []
    for index, info in enumerate(sd.query_devices()):
        if info["max_input_channels"] > 0:
            devices.append(
                {
                    "index": index,
                    "name": info["name"],
                    "channels": info["max_input_channels"],
                    "default_samplerate": info["default_samplerate"],
                }
            )
    return devices


class SoundDeviceInput:
    """Microphone input through PortAudio (sounddevice)."""

    def __init__(self, device: Optional[int] = None, read_timeout_sec: float = 0.1):
        self.device = device
        self.read_timeout_sec = read_timeout_sec

    def supports(self, sample_rate: int, channels: int = 1) -> bool:
        _require_sounddevice()
        try:
            sd.check_input_settings(
                device=self.device,
                channels=channels,
                dtype="int16",
                samplerate=sample_rate,
            )
        except (sd.PortAudioError, ValueError):
            return False
        return True

    def open(self, sample_rate: int, channels: int = 1, blocksize: int = 0) -> "_SoundDeviceHandle":
        _require_sounddevice()
        handle = _SoundDeviceHandle(
            device=self.device,
            sample_rate=sample_rate,
            channels=channels,
            blocksize=blocksize,
            read_timeout_sec=self.read_timeout_sec,
        )
        handle.start()
        return handle


class _SoundDeviceHandle:
    """PortAudio stream whose callback feeds a queue drained by ``read``."""

    def __init__(
        self,
        device: Optional[int],
        sample_rate: int,
        channels: int,
        blocksize: int,
        read_timeout_sec: float,
    ):
        self.sample_rate = sample_rate
        self._read_timeout_sec = read_timeout_sec
        self._queue: "queue.Queue[Optional[np.ndarray]]" = queue.Queue()
        # Oldest chunks are dropped once more than this many samples wait unread
        self.max_backlog = 2 * blocksize if blocksize > 0 else sample_rate // 5
        self._backlog = 0
        self._backlog_lock = threading.Lock()
        self._pending: Optional[np.ndarray] = None
        self._pending_pos = 0
        self._aborted = threading.Event()
        self._closed = False
        self.overflows = 0
        self.dropped = 0
        try:
            self._stream = sd.InputStream(
                samplerate=sample_rate,
                channels=channels,
                dtype="int16",
                blocksize=blocksize,
                device=device,
                callback=self._callback,
            )
        except (sd.PortAudioError, ValueError) as exc:
            raise DeviceUnavailableError(str(exc), sample_rate) from exc

    def _callback(self, indata: np.ndarray, _frames: int, _time: object, status: object) -> None:
        if status:
            self.overflows += 1
        if self._aborted.is_set():
            return
        chunk = indata[:, 0].copy()
        with self._backlog_lock:
            self._queue.put(chunk)
            self._backlog += chunk.shape[0]
            while self._backlog > self.max_backlog:
                try:
                    oldest = self._queue.get_nowait()
                except queue.Empty:
                    break
                if oldest is None:
                    self._queue.put(None)
                    break
                self._backlog -= oldest.shape[0]
                self.dropped += 1

    @property
    def backlog(self) -> int:
        """Samples queued and not yet handed to the reader."""
        with self._backlog_lock:
            return self._backlog

    def start(self) -> None:
        try:
            self._stream.start()
        except sd.PortAudioError as exc:
            self._stream.close(ignore_errors=True)
            self._closed = True
            raise DeviceUnavailableError(str(exc), self.sample_rate) from exc

    def read(self, buffer: np.ndarray, offset: int, count: int) -> int:
        if self._aborted.is_set():
            return 0
        if self._pending is None:
            try:
                chunk = self._queue.get(timeout=self._read_timeout_sec)
            except queue.Empty:
                if not self._stream.active and not self._aborted.is_set():
                    raise DeviceUnavailableError("input stream stopped unexpectedly", self.sample_rate)
                return 0
            if chunk is None:
                return 0
            with self._backlog_lock:
                self._backlog -= chunk.shape[0]
            self._pending = chunk
            self._pending_pos = 0

        available = self._pending.shape[0] - self._pending_pos
        n = min(count, available)
        buffer[offset : offset + n] = self._pending[self._pending_pos : self._pending_pos + n]
        self._pending_pos += n
        if self._pending_pos >= self._pending.shape[0]:
            self._pending = None
        return n

    def abort(self) -> None:
        self._aborted.set()
        self._queue.put(None)
        try:
            self._stream.abort(ignore_errors=True)
        except sd.PortAudioError as exc:
            logger.warning("stream_abort_failed", error=str(exc))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stream.close(ignore_errors=True)
        if self.overflows or self.dropped:
            logger.warning(
                "input_overflows",
                count=self.overflows,
                dropped_chunks=self.dropped,
                sample_rate=self.sample_rate,
            )


class ToneInput:
    """Synthetic mono sine source with the same contract as a microphone.

    Args:
        frequency: Tone frequency in Hz.
        amplitude: Peak amplitude relative to full scale (1.0 = 0 dBFS).
        realtime: Pace reads at the sample rate (for demos). Off for tests.
        supported_rates: Rates the fake device accepts (None = any).
    """

    def __init__(
        self,
        frequency: float = 1000.0,
        amplitude: float = 0.5,
        realtime: bool = True,
        supported_rates: Optional[Sequence[int]] = None,
    ):
        self.frequency = frequency
        self.amplitude = amplitude
        self.realtime = realtime
        self.supported_rates = tuple(supported_rates) if supported_rates is not None else None

    def supports(self, sample_rate: int, channels: int = 1) -> bool:
        if channels != 1:
            return False
        return self.supported_rates is None or sample_rate in self.supported_rates

    def open(self, sample_rate: int, channels: int = 1, blocksize: int = 0) -> "_ToneHandle":
        if not self.supports(sample_rate, channels):
            raise DeviceUnavailableError("tone source does not accept this format", sample_rate)
        return _ToneHandle(self.frequency, self.amplitude, sample_rate, self.realtime)


class _ToneHandle:
    def __init__(self, frequency: float, amplitude: float, sample_rate: int, realtime: bool):
        self.sample_rate = sample_rate
        self._frequency = frequency
        self._amplitude = amplitude
        self._realtime = realtime
        self._position = 0
        self._aborted = threading.Event()

    def read(self, buffer: np.ndarray, offset: int, count: int) -> int:
        if self._realtime:
            self._aborted.wait(count / self.sample_rate)
        if self._aborted.is_set():
            return 0
        t = (self._position + np.arange(count)) / self.sample_rate
        x = self._amplitude * np.sin(2.0 * np.pi * self._frequency * t)
        buffer[offset : offset + count] = np.clip(np.round(x * 32768.0), -32768, 32767)
        self._position += count
        return count

    def abort(self) -> None:
        self._aborted.set()

    def close(self) -> None:
        self._aborted.set()
