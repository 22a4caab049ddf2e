"""PipelineController: lifecycle owner of the capture loop.

States:
    STOPPED -> STARTING -> RUNNING -> STOPPING -> STOPPED

Rules:
- start() only from STOPPED and only with microphone permission.
- stop() from STARTING / RUNNING / STOPPING; a no-op when already STOPPED.
- reconfigure() is stop() then start(); the old loop has released the device
  before the new one opens it.
- Losing permission while active forces stop() and reports PERMISSION_LOST.
- A device failure inside the loop moves RUNNING -> STOPPED and reports
  UNAVAILABLE_DEVICE. Nothing restarts automatically.

Two locks: the reentrant lifecycle lock serializes start/stop/reconfigure and
is held while joining the capture thread; the state lock guards the fields
the capture thread touches when it exits, so it never waits on a join.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from mic_spectrum._types import Condition, PipelineState
from mic_spectrum.audio.config import AnalyzerConfig
from mic_spectrum.audio.device import AudioInput, select_sample_rate
from mic_spectrum.dsp import Window, hann_window
from mic_spectrum.exceptions import (
    CaptureStopTimeoutError,
    DeviceUnavailableError,
    InvalidTransitionError,
    PermissionDeniedError,
    PermissionLostError,
)
from mic_spectrum.logging import get_logger
from mic_spectrum.pipeline.capture_loop import CaptureLoop
from mic_spectrum.pipeline.snapshot import SnapshotSlot, SpectrumSnapshot

logger = get_logger("pipeline.controller")

FaultCallback = Callable[[BaseException], None]


class PipelineController:
    """Starts, stops and reconfigures the capture loop; exposes the latest snapshot.

    Interface:
      controller = PipelineController(SoundDeviceInput(), permission_granted=True)
      controller.start()
      snapshot = controller.latest()       # None until the first frame
      controller.reconfigure(4096)
      controller.set_permission(False)     # forces a stop, condition PERMISSION_LOST
      controller.stop()

    ``on_fault`` is called with the error after an asynchronous failure
    (device failure on the capture thread, permission loss). It may run on
    the capture thread and is never called with a lock held.
    """

    def __init__(
        self,
        audio_input: AudioInput,
        config: Optional[AnalyzerConfig] = None,
        permission_granted: bool = False,
        on_fault: Optional[FaultCallback] = None,
    ):
        self.audio_input = audio_input
        self._config = config or AnalyzerConfig()
        self._permission = permission_granted
        self._on_fault = on_fault
        self._slot = SnapshotSlot()

        self._lifecycle_lock = threading.RLock()
        self._state_lock = threading.Lock()
        self._state = PipelineState.STOPPED
        self._condition = Condition.NONE
        self._fault: Optional[BaseException] = None
        self._loop: Optional[CaptureLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._sample_rate: Optional[int] = None
        self._window: Optional[Window] = None

    # --- Readers ---

    @property
    def config(self) -> AnalyzerConfig:
        return self._config

    @property
    def frame_size(self) -> int:
        return self._config.frame_size

    @property
    def sample_rate(self) -> Optional[int]:
        """Rate of the current (or last) capture session."""
        return self._sample_rate

    @property
    def window(self) -> Optional[Window]:
        return self._window

    @property
    def state(self) -> PipelineState:
        with self._state_lock:
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state is PipelineState.RUNNING

    @property
    def condition(self) -> Condition:
        with self._state_lock:
            return self._condition

    @property
    def fault(self) -> Optional[BaseException]:
        with self._state_lock:
            return self._fault

    @property
    def permission_granted(self) -> bool:
        return self._permission

    def latest(self) -> Optional[SpectrumSnapshot]:
        """Most recent complete snapshot, or None before the first frame."""
        return self._slot.latest()

    @property
    def loudness_db(self) -> float:
        snapshot = self._slot.latest()
        if snapshot is None:
            return self._config.initial_loudness_db
        return snapshot.loudness_db

    def wait_for_snapshot(
        self,
        after: Optional[SpectrumSnapshot] = None,
        timeout: Optional[float] = None,
    ) -> Optional[SpectrumSnapshot]:
        """Block until a snapshot newer than ``after`` is published (or timeout)."""
        return self._slot.wait_newer(after, timeout)

    # --- Lifecycle ---

    def _set_state(self, new_state: PipelineState) -> None:
        # Caller holds the state lock.
        if new_state is not self._state:
            logger.debug("state_changed", from_state=self._state.value, to_state=new_state.value)
        self._state = new_state

    def start(self) -> None:
        """Acquire the device and spawn the capture thread.

        Raises:
            InvalidTransitionError: Not STOPPED.
            PermissionDeniedError: Microphone access not granted.
            DeviceUnavailableError: No accepted sample rate, or the device failed to open.
        """
        with self._lifecycle_lock:
            with self._state_lock:
                if self._state is not PipelineState.STOPPED:
                    raise InvalidTransitionError(self._state.value, PipelineState.STARTING.value)
                if not self._permission:
                    raise PermissionDeniedError()
                self._set_state(PipelineState.STARTING)

            cfg = self._config
            try:
                sample_rate = select_sample_rate(self.audio_input, cfg.sample_rates, cfg.channels)
                handle = self.audio_input.open(sample_rate, channels=cfg.channels, blocksize=cfg.frame_size)
            except DeviceUnavailableError as exc:
                with self._state_lock:
                    self._set_state(PipelineState.STOPPED)
                    self._condition = Condition.UNAVAILABLE_DEVICE
                    self._fault = exc
                logger.error("device_unavailable", error=str(exc))
                raise
            except BaseException:
                with self._state_lock:
                    self._set_state(PipelineState.STOPPED)
                raise

            try:
                window = hann_window(cfg.frame_size)
                loop = CaptureLoop(
                    handle,
                    sample_rate=sample_rate,
                    window=window,
                    slot=self._slot,
                    config=cfg,
                    on_exit=self._on_loop_exit,
                )
            except BaseException:
                handle.close()
                with self._state_lock:
                    self._set_state(PipelineState.STOPPED)
                raise
            thread = threading.Thread(target=loop.run, name="mic-fft", daemon=True)

            with self._state_lock:
                self._loop = loop
                self._thread = thread
                self._sample_rate = sample_rate
                self._window = window
                self._condition = Condition.NONE
                self._fault = None
                self._set_state(PipelineState.RUNNING)
            thread.start()
            logger.info("pipeline_started", frame_size=cfg.frame_size, sample_rate=sample_rate)

    def stop(self) -> None:
        """Stop the capture loop, wait for it to release the device.

        Raises:
            CaptureStopTimeoutError: The thread did not exit within
                ``stop_timeout_sec``; state stays STOPPING and stop() may be retried.
        """
        with self._lifecycle_lock:
            with self._state_lock:
                if self._state is PipelineState.STOPPED:
                    return
                self._set_state(PipelineState.STOPPING)
                loop, thread = self._loop, self._thread

            if loop is not None:
                loop.request_stop()
            if thread is not None and thread is not threading.current_thread():
                thread.join(self._config.stop_timeout_sec)
                if thread.is_alive():
                    logger.error("capture_stop_timeout", timeout_sec=self._config.stop_timeout_sec)
                    raise CaptureStopTimeoutError(self._config.stop_timeout_sec)

            with self._state_lock:
                self._loop = None
                self._thread = None
                self._set_state(PipelineState.STOPPED)
            logger.info("pipeline_stopped", frames=loop.frames if loop is not None else 0)

    def toggle(self) -> bool:
        """Start when stopped, stop otherwise. Returns True if now running."""
        with self._lifecycle_lock:
            if self.state is PipelineState.STOPPED:
                self.start()
                return True
            self.stop()
            return False

    def reconfigure(self, frame_size: int) -> None:
        """Switch to a new frame size, restarting the capture loop if it is active.

        Raises:
            UnsupportedFrameSizeError: ``frame_size`` is not a supported size.
        """
        with self._lifecycle_lock:
            new_config = self._config.with_frame_size(frame_size)
            if frame_size == self._config.frame_size:
                return
            was_active = self.state is not PipelineState.STOPPED
            if was_active:
                self.stop()
            old_size = self._config.frame_size
            self._config = new_config
            self._slot.clear()
            logger.info("frame_size_changed", old=old_size, new=frame_size, restart=was_active)
            if was_active:
                self.start()

    def set_permission(self, granted: bool) -> None:
        """Track the externally owned microphone permission.

        Revocation while active stops capture and reports PERMISSION_LOST.
        Granting never starts capture by itself.

        Raises:
            CaptureStopTimeoutError: The forced stop timed out. The condition
                is still PERMISSION_LOST and ``on_fault`` is still called.
        """
        error: Optional[PermissionLostError] = None
        try:
            with self._lifecycle_lock:
                was_granted = self._permission
                self._permission = granted
                if granted or not was_granted:
                    return
                if self.state is PipelineState.STOPPED:
                    return

                logger.warning("permission_lost")
                error = PermissionLostError()
                try:
                    self.stop()
                finally:
                    with self._state_lock:
                        self._condition = Condition.PERMISSION_LOST
                        self._fault = error
        finally:
            # Reported even when stop() timed out and is propagating.
            if error is not None:
                self._notify_fault(error)

    def close(self) -> None:
        self.stop()

    def __enter__(self) -> "PipelineController":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    # --- Capture thread callbacks ---

    def _on_loop_exit(self, loop: CaptureLoop, error: Optional[BaseException]) -> None:
        with self._state_lock:
            if loop is not self._loop:
                return
            if error is not None:
                self._fault = error
                self._condition = Condition.UNAVAILABLE_DEVICE
            if self._state is PipelineState.RUNNING:
                # Loop ended on its own; the device is already released.
                self._loop = None
                self._thread = None
                self._set_state(PipelineState.STOPPED)
        if error is not None:
            logger.error("pipeline_fault", error=str(error), condition=Condition.UNAVAILABLE_DEVICE.value)
            self._notify_fault(error)

    def _notify_fault(self, error: BaseException) -> None:
        if self._on_fault is not None:
            self._on_fault(error)
