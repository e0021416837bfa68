"""Frame orientation and face crop preprocessing."""

from __future__ import annotations

import logging
from typing import Tuple

import cv2
import numpy as np

from emotionrec.types import ClassificationInput, FaceBoundingBox

LOGGER = logging.getLogger("emotionrec.pipeline.preprocess")

_ROTATIONS = {
    90: cv2.ROTATE_90_CLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


def normalize_orientation(image: np.ndarray, rotation_degrees: int = 0, mirror: bool = False) -> np.ndarray:
    """Rotate clockwise to upright and optionally mirror.

    Always returns a new contiguous array, so the caller may release the
    source buffer afterwards.
    """
    if rotation_degrees not in (0, 90, 180, 270):
        raise ValueError(f"Unsupported rotation {rotation_degrees}; expected 0, 90, 180 or 270")
    if rotation_degrees:
        upright = cv2.rotate(image, _ROTATIONS[rotation_degrees])
    else:
        upright = image
    if mirror:
        upright = cv2.flip(upright, 1)
    return np.array(upright, copy=True, order="C")


def _crop_to_bbox(image: np.ndarray, bbox: FaceBoundingBox) -> np.ndarray:
    crop = image[bbox.top : bbox.bottom, bbox.left : bbox.right]
    if crop.size == 0:
        raise ValueError(f"Empty crop for box {bbox.as_xyxy()} in image {image.shape[:2]}")
    return crop


def _to_gray(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    channels = image.shape[2]
    if channels == 1:
        return image[:, :, 0]
    if channels == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    if channels == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    raise ValueError(f"Unsupported channel count {channels}")


class FacePreprocessor:
    """Turns a face region into a normalized single-channel model tensor."""

    def __init__(self, input_size: Tuple[int, int]) -> None:
        width, height = (int(v) for v in input_size)
        if width < 1 or height < 1:
            raise ValueError(f"Invalid model input size {input_size}")
        self.input_size = (width, height)

    @property
    def tensor_nbytes(self) -> int:
        width, height = self.input_size
        return width * height * np.dtype(np.float32).itemsize

    def process(self, image: np.ndarray, bbox: FaceBoundingBox) -> np.ndarray:
        """Crop, grayscale, resize, and scale pixels from [0, 255] to [-1, 1]."""
        crop = _crop_to_bbox(image, bbox)
        gray = _to_gray(crop)
        resized = cv2.resize(gray, self.input_size, interpolation=cv2.INTER_AREA)
        tensor = resized.astype(np.float32)
        tensor /= np.float32(127.5)
        tensor -= np.float32(1.0)
        return tensor

    def build_input(self, image: np.ndarray, bbox: FaceBoundingBox) -> ClassificationInput:
        return ClassificationInput(bbox=bbox, tensor=self.process(image, bbox))
