from .events import ScanEvent, ScanSource
from .keyboard import KeystrokeBuffer
from .camera import (
    CameraChannel,
    CameraError,
    CameraNotFound,
    CameraPermissionDenied,
    QueuedFrameSource,
    ScannerInitFailure,
)
from .arbiter import InputArbiter

__all__ = [
    "ScanEvent",
    "ScanSource",
    "KeystrokeBuffer",
    "CameraChannel",
    "CameraError",
    "CameraNotFound",
    "CameraPermissionDenied",
    "QueuedFrameSource",
    "ScannerInitFailure",
    "InputArbiter",
]
