from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ScanSource(str, Enum):
    CAMERA = "camera"
    EXTERNAL = "external"
    MANUAL = "manual"

    @classmethod
    def parse(cls, value: str) -> "ScanSource":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            raise ValueError(f"Unknown input mode: {value!r}") from None


@dataclass(frozen=True)
class ScanEvent:
    """One acquired code. The code is passed through untrimmed; the resolver trims."""
    code: str
    source: ScanSource
