"""Shared enums for the capture pipeline."""

from __future__ import annotations

from enum import Enum


class PipelineState(Enum):
    """Capture session lifecycle.

    STOPPED -> STARTING -> RUNNING -> STOPPING -> STOPPED
    """

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class Condition(Enum):
    """Reportable condition exposed to the display layer."""

    NONE = "none"
    UNAVAILABLE_DEVICE = "unavailable_device"
    PERMISSION_LOST = "permission_lost"
