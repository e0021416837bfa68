"""Overlay rendering of per-frame emotion results."""

from __future__ import annotations

import logging
from typing import Tuple

import cv2
import numpy as np

from emotionrec.types import Emotion, FrameResult

LOGGER = logging.getLogger("emotionrec.viz.overlay")

DEFAULT_COLOR = (0, 255, 255)


def _scale_box(box: Tuple[int, int, int, int], sx: float, sy: float) -> Tuple[int, int, int, int]:
    x1, y1, x2, y2 = box
    return int(x1 * sx), int(y1 * sy), int(x2 * sx), int(y2 * sy)


def draw_results(
    frame: np.ndarray,
    result: FrameResult,
    color: Tuple[int, int, int] = DEFAULT_COLOR,
    thickness: int = 2,
) -> np.ndarray:
    """Draw face boxes and emotion labels in place.

    Box coordinates are scaled from ``result.image_size`` to the frame size.
    Unclassified faces get a box without a label.
    """
    src_w, src_h = result.image_size
    if src_w <= 0 or src_h <= 0:
        return frame
    sx = frame.shape[1] / float(src_w)
    sy = frame.shape[0] / float(src_h)
    for face in result.faces:
        x1, y1, x2, y2 = _scale_box(face.bbox.as_xyxy(), sx, sy)
        cv2.rectangle(frame, (x1, y1), (x2, y2), color, thickness)
        if face.emotion is Emotion.UNCLASSIFIED:
            continue
        text_y = max(15, y1 - 10)
        cv2.putText(frame, face.emotion.label, (x1, text_y), cv2.FONT_HERSHEY_SIMPLEX, 0.8, color, 2)
    return frame
