# Overview: Camera input channel with bounded initialization retry and guaranteed release.

"""
Camera channel

Frame decoding happens on the capture device; this side receives decoded text
through a FrameSource. Opening the source is retried up to max_attempts times
with a fixed backoff, except for permission and missing-device errors which
no retry can fix. Exhausted retries raise ScannerInitFailure.

The channel is a context manager: the source is stopped on every exit path,
and close() is idempotent.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Callable, Protocol


logger = logging.getLogger(__name__)


class CameraError(Exception):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class CameraPermissionDenied(CameraError):
    pass


class CameraNotFound(CameraError):
    pass


class ScannerInitFailure(CameraError):
    """All initialization attempts failed; the operator should switch to manual entry."""


NON_RETRYABLE = (CameraPermissionDenied, CameraNotFound)


class FrameSource(Protocol):
    def start(self) -> None: ...

    def read(self) -> str | None: ...

    def stop(self) -> None: ...


class QueuedFrameSource:
    """FrameSource fed with text decoded by the client-side camera."""

    def __init__(self):
        self._pending: deque[str] = deque()
        self.started = False

    def push(self, text: str) -> None:
        self._pending.append(text)

    def start(self) -> None:
        self.started = True

    def read(self) -> str | None:
        if not self.started or not self._pending:
            return None
        return self._pending.popleft()

    def stop(self) -> None:
        self.started = False
        self._pending.clear()


class CameraChannel:
    def __init__(
        self,
        source: FrameSource,
        *,
        max_attempts: int = 5,
        backoff_seconds: float = 0.2,
        sleep: Callable[[float], None] = time.sleep,
        on_decode: Callable[[str], None] | None = None,
    ):
        self.source = source
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._on_decode = on_decode
        self.attempts = 0
        self.is_open = False

    def open(self) -> "CameraChannel":
        if self.is_open:
            return self

        last_error: Exception | None = None
        self.attempts = 0
        while self.attempts < self.max_attempts:
            self.attempts += 1
            try:
                self.source.start()
                self.is_open = True
                logger.debug("Camera started after %d attempt(s)", self.attempts)
                return self
            except NON_RETRYABLE:
                raise
            except CameraError as exc:
                last_error = exc
                logger.warning(
                    "Camera init attempt %d/%d failed: %s",
                    self.attempts, self.max_attempts, exc,
                )
                if self.attempts < self.max_attempts:
                    self._sleep(self.backoff_seconds)

        raise ScannerInitFailure(
            "Failed to initialize scanner. Switch to manual input.",
            details={"attempts": self.attempts, "error": str(last_error) if last_error else None},
        )

    def poll(self) -> str | None:
        """Return the next decoded code, or None. A decode plays the confirmation tone."""
        if not self.is_open:
            return None
        text = self.source.read()
        if not text:
            return None
        if self._on_decode is not None:
            self._on_decode(text)
        return text

    def pump(self) -> list[str]:
        decoded = []
        while True:
            text = self.poll()
            if text is None:
                return decoded
            decoded.append(text)

    def close(self) -> None:
        if not self.is_open:
            return
        self.is_open = False
        try:
            self.source.stop()
        except CameraError:
            logger.warning("Camera stop failed", exc_info=True)

    def __enter__(self) -> "CameraChannel":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
