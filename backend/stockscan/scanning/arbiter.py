# Overview: Input arbitration; exactly one live acquisition channel per scanning session.

"""
InputArbiter

Normalizes camera decodes, keystroke bursts and manual submissions into
ScanEvent callbacks. Only the channel matching the current mode delivers
events; input for any other channel is ignored.

switch_mode() always tears the previous channel down before bringing the
next one up. A camera that cannot be opened degrades the arbiter to MANUAL
and leaves the error in last_error for the caller to report.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from .camera import CameraChannel, CameraError, FrameSource, QueuedFrameSource
from .events import ScanEvent, ScanSource
from .keyboard import KeystrokeBuffer


logger = logging.getLogger(__name__)


class ArbiterClosed(RuntimeError):
    pass


class InputArbiter:
    def __init__(
        self,
        on_event: Callable[[ScanEvent], None],
        *,
        mode: ScanSource | str = ScanSource.MANUAL,
        key_gap_ms: int = 50,
        camera_factory: Callable[[], FrameSource] = QueuedFrameSource,
        camera_max_attempts: int = 5,
        camera_backoff_seconds: float = 0.2,
        sleep: Callable[[float], None] = time.sleep,
        on_tone: Callable[[str], None] | None = None,
    ):
        self._on_event = on_event
        self._camera_factory = camera_factory
        self._camera_max_attempts = camera_max_attempts
        self._camera_backoff_seconds = camera_backoff_seconds
        self._sleep = sleep
        self._on_tone = on_tone
        self.key_gap_ms = key_gap_ms

        self.mode: ScanSource | None = None
        self.camera: CameraChannel | None = None
        self.keyboard: KeystrokeBuffer | None = None
        self.last_error: CameraError | None = None
        self.closed = False

        self.switch_mode(mode)

    @property
    def camera_source(self) -> FrameSource | None:
        return self.camera.source if self.camera else None

    def switch_mode(self, mode: ScanSource | str) -> ScanSource:
        """Tear down the live channel and start the requested one. Returns the resulting mode."""
        if self.closed:
            raise ArbiterClosed("Input arbiter is closed")
        if not isinstance(mode, ScanSource):
            mode = ScanSource.parse(mode)

        self._teardown()
        self.last_error = None

        if mode == ScanSource.CAMERA:
            channel = CameraChannel(
                self._camera_factory(),
                max_attempts=self._camera_max_attempts,
                backoff_seconds=self._camera_backoff_seconds,
                sleep=self._sleep,
                on_decode=self._on_tone,
            )
            try:
                channel.open()
            except CameraError as exc:
                channel.close()
                return self._degrade(exc)
            self.camera = channel
        elif mode == ScanSource.EXTERNAL:
            self.keyboard = KeystrokeBuffer(self.key_gap_ms)

        self.mode = mode
        logger.debug("Input mode is now %s", mode.value)
        return mode

    def fail_camera(self, error: CameraError) -> ScanSource:
        """Camera failure reported after start (device lost, permission revoked)."""
        if self.closed:
            raise ArbiterClosed("Input arbiter is closed")
        self._teardown()
        return self._degrade(error)

    def _degrade(self, error: CameraError) -> ScanSource:
        logger.warning("Camera unavailable (%s), falling back to manual entry", error)
        self.last_error = error
        self.mode = ScanSource.MANUAL
        return self.mode

    def _teardown(self) -> None:
        if self.camera is not None:
            self.camera.close()
            self.camera = None
        if self.keyboard is not None:
            self.keyboard.reset()
            self.keyboard = None

    def _emit(self, code: str, source: ScanSource) -> bool:
        if self.closed or self.mode != source:
            return False
        self._on_event(ScanEvent(code=code, source=source))
        return True

    def submit_manual(self, text: str) -> bool:
        return self._emit(text, ScanSource.MANUAL)

    def feed_key(self, key: str, at_ms: float) -> bool:
        if self.closed or self.mode != ScanSource.EXTERNAL or self.keyboard is None:
            return False
        text = self.keyboard.feed(key, at_ms)
        if text is None:
            return False
        return self._emit(text, ScanSource.EXTERNAL)

    def pump_camera(self) -> int:
        """Deliver every pending camera decode; returns how many events were emitted."""
        if self.closed or self.mode != ScanSource.CAMERA or self.camera is None:
            return 0
        try:
            decoded = self.camera.pump()
        except CameraError as exc:
            self.fail_camera(exc)
            return 0

        emitted = 0
        for text in decoded:
            if self._emit(text, ScanSource.CAMERA):
                emitted += 1
        return emitted

    def close(self) -> None:
        if self.closed:
            return
        self._teardown()
        self.closed = True
        self.mode = None
