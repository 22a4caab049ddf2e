"""Capture pipeline: capture loop, snapshot slot, controller."""

from mic_spectrum.pipeline.capture_loop import CaptureLoop
from mic_spectrum.pipeline.controller import PipelineController
from mic_spectrum.pipeline.snapshot import SnapshotSlot, SpectrumSnapshot

__all__ = ["CaptureLoop", "PipelineController", "SnapshotSlot", "SpectrumSnapshot"]
