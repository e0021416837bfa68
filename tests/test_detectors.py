import numpy as np
import pytest

from emotionrec.config import PipelineConfig
from emotionrec.detectors import build_detector
from emotionrec.detectors.base import AsyncFaceDetector
from emotionrec.detectors.face_haar import HaarFaceDetector
from emotionrec.types import FaceBoundingBox


class _ListDetector:
    def __init__(self, boxes):
        self.boxes = boxes

    def detect(self, image):
        return list(self.boxes)


class _BrokenDetector:
    def detect(self, image):
        raise ValueError("bad frame")


def test_async_detector_drops_faces_below_min_size():
    small = FaceBoundingBox(0, 0, 10, 10)
    large = FaceBoundingBox(30, 30, 60, 60)
    detector = AsyncFaceDetector(_ListDetector([small, large]), smallest_face_size=0.15)
    try:
        boxes = detector.detect(np.zeros((100, 100, 3), dtype=np.uint8)).result(timeout=5)
    finally:
        detector.close()

    assert boxes == [large]


def test_async_detector_propagates_errors():
    detector = AsyncFaceDetector(_BrokenDetector())
    try:
        error = detector.detect(np.zeros((10, 10, 3), dtype=np.uint8)).exception(timeout=5)
    finally:
        detector.close()

    assert isinstance(error, ValueError)


def test_haar_detector_finds_nothing_on_blank_frame():
    detector = HaarFaceDetector(smallest_face_size=0.15)

    assert detector.detect(np.zeros((120, 160, 3), dtype=np.uint8)) == []


def test_haar_detector_rejects_missing_cascade(tmp_path):
    with pytest.raises(RuntimeError):
        HaarFaceDetector(cascade_path=str(tmp_path / "missing.xml"))


def test_build_detector_defaults_to_haar():
    detector = build_detector(PipelineConfig(smallest_face_size=0.25))
    try:
        assert isinstance(detector.detector, HaarFaceDetector)
        assert detector.smallest_face_size == pytest.approx(0.25)
    finally:
        detector.close()
