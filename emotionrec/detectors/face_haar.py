"""OpenCV Haar cascade face detector."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np

from emotionrec.types import FaceBoundingBox

LOGGER = logging.getLogger("emotionrec.detectors.haar")

DEFAULT_CASCADE = "haarcascade_frontalface_default.xml"


class HaarFaceDetector:
    """Frontal face detector bundled with opencv-python; CPU only, no downloads."""

    def __init__(
        self,
        cascade_path: Optional[str] = None,
        scale_factor: float = 1.2,
        min_neighbors: int = 5,
        smallest_face_size: float = 0.0,
    ) -> None:
        resolved = cascade_path or str(Path(cv2.data.haarcascades) / DEFAULT_CASCADE)
        self.classifier = cv2.CascadeClassifier(resolved)
        if self.classifier.empty():
            raise RuntimeError(f"Unable to load Haar cascade {resolved}")
        self.scale_factor = scale_factor
        self.min_neighbors = min_neighbors
        self.smallest_face_size = smallest_face_size
        LOGGER.info(
            "Loaded Haar face detector cascade=%s scale_factor=%.2f min_neighbors=%d",
            resolved,
            scale_factor,
            min_neighbors,
        )

    def detect(self, image: np.ndarray) -> List[FaceBoundingBox]:
        if image.ndim == 3 and image.shape[2] == 4:
            gray = cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
        elif image.ndim == 3:
            gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        else:
            gray = image
        min_side = max(1, int(self.smallest_face_size * gray.shape[1]))
        faces = self.classifier.detectMultiScale(
            gray,
            scaleFactor=self.scale_factor,
            minNeighbors=self.min_neighbors,
            minSize=(min_side, min_side),
        )
        return [FaceBoundingBox(int(x), int(y), int(x + w), int(y + h)) for (x, y, w, h) in faces]
