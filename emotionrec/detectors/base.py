"""Asynchronous face detection adapter."""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import List, Optional, Protocol

import numpy as np

from emotionrec.pipeline.selection import passes_min_face_size
from emotionrec.types import FaceBoundingBox

LOGGER = logging.getLogger("emotionrec.detectors")


class FaceDetector(Protocol):
    def detect(self, image: np.ndarray) -> List[FaceBoundingBox]:
        ...


class AsyncFaceDetector:
    """Runs a synchronous detector off the frame-delivery thread.

    ``detect`` returns a future resolving to the face boxes narrower than
    ``smallest_face_size`` of the image width removed, or failing with the
    detector's exception.
    """

    def __init__(
        self,
        detector: FaceDetector,
        smallest_face_size: float = 0.15,
        executor: Optional[Executor] = None,
    ) -> None:
        self.detector = detector
        self.smallest_face_size = smallest_face_size
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="emotionrec-detect")

    def _detect(self, image: np.ndarray) -> List[FaceBoundingBox]:
        frame_width = int(image.shape[1])
        boxes = self.detector.detect(image)
        return [box for box in boxes if passes_min_face_size(box, frame_width, self.smallest_face_size)]

    def detect(self, image: np.ndarray) -> Future:
        return self.executor.submit(self._detect, image)

    def close(self) -> None:
        if self._owns_executor:
            self.executor.shutdown(wait=True)
