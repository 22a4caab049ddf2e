"""Latest-wins publication of spectrum snapshots.

The capture thread is the only writer. A snapshot is fully built before it
is published and never changes afterwards, so publishing is a reference swap
and readers either see the previous snapshot or the new one.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Optional

import numpy as np


@dataclass(frozen=True, eq=False)
class SpectrumSnapshot:
    """One published analysis result.

    ``spectrum_db`` holds frame_size / 2 read-only dBFS values covering
    0 .. sample_rate / 2.
    """

    spectrum_db: np.ndarray
    loudness_db: float
    frame_size: int
    sample_rate: int
    sequence: int
    timestamp: float = field(default_factory=time.monotonic)

    @property
    def bin_hz(self) -> float:
        return self.sample_rate / self.frame_size

    @property
    def peak_bin(self) -> int:
        return int(np.argmax(self.spectrum_db))

    @property
    def peak_frequency(self) -> float:
        """Frequency of the loudest bin in Hz."""
        return self.peak_bin * self.bin_hz


def make_snapshot(
    spectrum_db: np.ndarray,
    loudness_db: float,
    frame_size: int,
    sample_rate: int,
    sequence: int,
) -> SpectrumSnapshot:
    """Freeze ``spectrum_db`` (takes ownership) and wrap it in a snapshot."""
    if spectrum_db.shape != (frame_size // 2,):
        raise ValueError(
            f"spectrum has {spectrum_db.shape[0]} bins, expected {frame_size // 2} for frame size {frame_size}"
        )
    spectrum_db.flags.writeable = False
    return SpectrumSnapshot(
        spectrum_db=spectrum_db,
        loudness_db=float(loudness_db),
        frame_size=frame_size,
        sample_rate=sample_rate,
        sequence=sequence,
    )


class SnapshotSlot:
    """Single-writer, multi-reader slot holding the current snapshot.

    ``publish`` never waits for readers; ``latest`` never waits for the
    writer beyond the reference swap. Readers that want to block until
    something newer arrives use ``wait_newer``.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._current: Optional[SpectrumSnapshot] = None
        self._published = 0

    @property
    def published(self) -> int:
        """Total number of snapshots published since creation."""
        return self._published

    def publish(self, snapshot: SpectrumSnapshot) -> None:
        with self._cond:
            self._current = snapshot
            self._published += 1
            self._cond.notify_all()

    def latest(self) -> Optional[SpectrumSnapshot]:
        with self._cond:
            return self._current

    def clear(self) -> None:
        with self._cond:
            self._current = None

    def wait_newer(
        self,
        after: Optional[SpectrumSnapshot],
        timeout: Optional[float] = None,
    ) -> Optional[SpectrumSnapshot]:
        """Block until a snapshot other than ``after`` is current.

        Returns the current snapshot (possibly still ``after`` or None on
        timeout).
        """
        with self._cond:
            self._cond.wait_for(
                lambda: self._current is not None and self._current is not after,
                timeout=timeout,
            )
            return self._current
