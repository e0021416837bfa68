"""Frame decimation ahead of the recognition pipeline."""

from __future__ import annotations

import logging

LOGGER = logging.getLogger("emotionrec.pipeline.throttle")


class FrameThrottle:
    """Forwards one frame out of every ``ratio`` incoming frames.

    The counter is owned by the frame-delivery context; it is not thread-safe
    and must only be advanced by the thread that receives camera frames.
    """

    def __init__(self, ratio: int = 4) -> None:
        if ratio < 1:
            raise ValueError(f"Throttle ratio must be >= 1, got {ratio}")
        self.ratio = int(ratio)
        self.counter = 0

    def should_process(self) -> bool:
        self.counter += 1
        if self.counter != self.ratio:
            return False
        self.counter = 0
        return True

    def reset(self) -> None:
        self.counter = 0
