# Overview: Keystroke-burst listener for external hardware scanners (keyboard wedge).

"""
Hardware scanners type the code as a fast burst of keystrokes followed by
Enter. Human typing is much slower, so a gap longer than gap_ms between two
keystrokes discards what was buffered so far.

Timestamps are supplied by the caller (milliseconds, monotonic) so the buffer
has no clock of its own.
"""

from __future__ import annotations

import logging


logger = logging.getLogger(__name__)

ENTER_KEYS = frozenset({"Enter", "\n", "\r"})


class KeystrokeBuffer:
    def __init__(self, gap_ms: int = 50):
        self.gap_ms = gap_ms
        self._chars: list[str] = []
        self._last_at: float | None = None

    @property
    def pending(self) -> str:
        return "".join(self._chars)

    def feed(self, key: str, at_ms: float) -> str | None:
        """
        Process one keystroke.

        Returns the buffered text when Enter closes a non-empty burst,
        otherwise None.
        """
        if self._chars and self._last_at is not None and at_ms - self._last_at > self.gap_ms:
            logger.debug("Keystroke gap %.0fms > %dms, discarding %r", at_ms - self._last_at, self.gap_ms, self.pending)
            self._chars.clear()
        self._last_at = at_ms

        if key in ENTER_KEYS:
            if not self._chars:
                return None
            text = self.pending
            self._chars.clear()
            return text

        # Modifier/navigation keys arrive with multi-character names
        if len(key) != 1:
            return None

        self._chars.append(key)
        return None

    def reset(self) -> None:
        self._chars.clear()
        self._last_at = None
