"""Capture loop: device -> RMS -> Hann -> FFT -> dBFS -> smoothing -> snapshot.

One loop per capture session, run on a dedicated thread by the controller.
All frame-sized buffers are allocated once here; a new frame size means a
new loop.

Per iteration:
  1. read exactly N samples (short reads retried)
  2. RMS loudness of the raw frame, smoothed 0.2 / 0.8
  3. Hann window into the FFT buffer, imaginary part zeroed
  4. in-place FFT
  5. single-sided dBFS spectrum
  6. bin-wise smoothing 0.3 / 0.7
  7. publish snapshot (latest wins)
  8. interruptible sleep of hop_interval_sec
"""

from __future__ import annotations

import threading
from typing import Callable, List, Optional

import numpy as np

from mic_spectrum.audio.config import PCM16_FULL_SCALE, AnalyzerConfig
from mic_spectrum.audio.device import InputHandle
from mic_spectrum.dsp import (
    ExponentialSmoother,
    FFTEngine,
    Window,
    magnitude_spectrum_db,
    rms_dbfs,
)
from mic_spectrum.exceptions import DeviceError, DeviceUnavailableError, InvalidSizeError
from mic_spectrum.logging import get_logger
from mic_spectrum.pipeline.snapshot import SnapshotSlot, SpectrumSnapshot, make_snapshot

# Called once from the capture thread after the device is released.
ExitCallback = Callable[["CaptureLoop", Optional[BaseException]], None]


class CaptureLoop:
    """Producer side of the pipeline. Owns the input handle until it exits.

    Interface:
      loop = CaptureLoop(handle, sample_rate=44100, window=hann_window(2048),
                         slot=SnapshotSlot(), config=AnalyzerConfig())
      threading.Thread(target=loop.run).start()
      ...
      loop.request_stop()   # from any thread; the blocked read returns promptly
    """

    def __init__(
        self,
        handle: InputHandle,
        sample_rate: int,
        window: Window,
        slot: SnapshotSlot,
        config: Optional[AnalyzerConfig] = None,
        on_exit: Optional[ExitCallback] = None,
    ):
        self.config = config or AnalyzerConfig()
        self.frame_size = self.config.frame_size
        if window.size != self.frame_size:
            raise InvalidSizeError(window.size, f"window does not match frame size {self.frame_size}")
        self.handle = handle
        self.sample_rate = sample_rate
        self.window = window
        self.slot = slot
        self.engine = FFTEngine(self.frame_size)
        self.log = get_logger("pipeline.capture_loop", frame_size=self.frame_size, sample_rate=sample_rate)

        self._pcm = np.zeros(self.frame_size, dtype=np.int16)
        self._samples = np.zeros(self.frame_size, dtype=np.float64)
        self._db = np.zeros(self.frame_size // 2, dtype=np.float64)
        self._loudness = ExponentialSmoother(self.config.loudness_alpha)
        self._spectrum = ExponentialSmoother(self.config.spectrum_alpha)

        self._on_exit = on_exit
        self._stop_event = threading.Event()
        self._release_lock = threading.Lock()
        self._released = False
        self.frames = 0
        self.error: Optional[BaseException] = None

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    @property
    def released(self) -> bool:
        return self._released

    def request_stop(self) -> None:
        """Signal the loop to exit and wake a blocked read. Safe from any thread."""
        self._stop_event.set()
        self.handle.abort()

    def _read_frame(self) -> bool:
        """Fill the PCM buffer with exactly N samples. False if a stop arrived first."""
        n_total = self.frame_size
        filled = 0
        empty_reads = 0
        while filled < n_total:
            if self._stop_event.is_set():
                return False
            n = self.handle.read(self._pcm, filled, n_total - filled)
            if n < 0:
                raise DeviceUnavailableError(f"read returned {n}", self.sample_rate)
            if n == 0:
                empty_reads += 1
                if empty_reads > self.config.max_empty_reads:
                    raise DeviceUnavailableError(
                        f"no samples after {empty_reads} consecutive reads",
                        self.sample_rate,
                    )
                continue
            empty_reads = 0
            filled += n
        return not self._stop_event.is_set()

    def process_frame(self, pcm: np.ndarray) -> SpectrumSnapshot:
        """Analyze one int16 frame of length N and publish the result."""
        cfg = self.config
        np.divide(pcm, PCM16_FULL_SCALE, out=self._samples)

        loudness = self._loudness.update(rms_dbfs(self._samples, cfg.floor_db, cfg.epsilon))

        self.window.apply(self._samples, out=self.engine.real)
        self.engine.imag.fill(0.0)
        self.engine.execute()

        magnitude_spectrum_db(
            self.engine.real,
            self.engine.imag,
            self.window.coherent_gain,
            self.frame_size,
            floor_db=cfg.floor_db,
            epsilon=cfg.epsilon,
            out=self._db,
        )
        smoothed = self._spectrum.update(self._db)

        snapshot = make_snapshot(
            smoothed,
            loudness,
            frame_size=self.frame_size,
            sample_rate=self.sample_rate,
            sequence=self.slot.published + 1,
        )
        self.slot.publish(snapshot)
        self.frames += 1
        return snapshot

    def run(self) -> None:
        """Loop until stopped or the device fails; always releases the device."""
        self.log.info("capture_started")
        error: Optional[BaseException] = None
        try:
            while not self._stop_event.is_set():
                if not self._read_frame():
                    break
                self.process_frame(self._pcm)
                if self._stop_event.wait(self.config.hop_interval_sec):
                    break
        except DeviceError as exc:
            error = exc
            self.log.error("capture_device_failed", error=str(exc))
        except Exception as exc:
            error = exc
            self.log.exception("capture_loop_crashed")
        finally:
            self._release()

        self.error = error
        self.log.info("capture_stopped", frames=self.frames, failed=error is not None)
        if self._on_exit is not None:
            self._on_exit(self, error)

    def run_for_n_frames(self, n: int) -> List[SpectrumSnapshot]:
        """Read and analyze exactly n frames on the calling thread (no sleep); used for tests."""
        snapshots: List[SpectrumSnapshot] = []
        while len(snapshots) < n:
            if not self._read_frame():
                break
            snapshots.append(self.process_frame(self._pcm))
        return snapshots

    def _release(self) -> None:
        with self._release_lock:
            if self._released:
                return
            self._released = True
        try:
            self.handle.close()
        except DeviceError as exc:
            self.log.warning("device_close_failed", error=str(exc))
