"""RetinaFace detection via InsightFace."""

from __future__ import annotations

import logging
import os
from typing import List, Optional, Sequence, Tuple

import numpy as np

from emotionrec.inference.engine import default_providers
from emotionrec.types import FaceBoundingBox

LOGGER = logging.getLogger("emotionrec.detectors.retina")


class RetinaFaceDetector:
    """Wrapper around InsightFace RetinaFace returning face boxes only."""

    def __init__(
        self,
        providers: Optional[Sequence[str]] = None,
        det_size: Tuple[int, int] = (640, 640),
        det_thresh: float = 0.5,
    ) -> None:
        os.environ.setdefault("OMP_NUM_THREADS", "2")
        os.environ.setdefault("ORT_INTRA_OP_NUM_THREADS", "2")
        try:
            from insightface.app import FaceAnalysis
        except ImportError as exc:  # pragma: no cover - import guard
            raise RuntimeError(
                "insightface is required for RetinaFaceDetector. "
                "Install it via `pip install insightface`."
            ) from exc

        self.det_size = tuple(det_size)
        self.det_thresh = det_thresh
        self.providers: Tuple[str, ...] = tuple(providers) if providers else default_providers()
        self.app = FaceAnalysis(name="buffalo_l", allowed_modules=["detection"], providers=list(self.providers))
        self.app.prepare(ctx_id=0, det_size=self.det_size)
        backend = None
        try:
            detection_model = self.app.models.get("detection")
            if detection_model is not None and hasattr(detection_model, "session"):
                backend = detection_model.session.get_providers()[0]
        except Exception:  # pragma: no cover - optional logging
            backend = None
        LOGGER.info(
            "Loaded RetinaFace detector det_size=%s det_thresh=%.2f providers=%s backend=%s",
            self.det_size,
            det_thresh,
            self.providers,
            backend,
        )

    def detect(self, image: np.ndarray) -> List[FaceBoundingBox]:
        """Run RetinaFace on a BGR image and return boxes above the threshold."""
        faces = self.app.get(image)
        boxes: List[FaceBoundingBox] = []
        for face in faces:
            if float(face.det_score) < self.det_thresh:
                continue
            x1, y1, x2, y2 = (float(v) for v in face.bbox)
            boxes.append(FaceBoundingBox.from_xyxy(x1, y1, x2, y2))
        return boxes
