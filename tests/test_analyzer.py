import threading
from concurrent.futures import Future, ThreadPoolExecutor

import numpy as np

from emotionrec.config import PipelineConfig
from emotionrec.detectors.base import AsyncFaceDetector
from emotionrec.pipeline.analyzer import FrameAnalyzer
from emotionrec.types import Emotion, FaceBoundingBox, Frame


class _StaticDetector:
    def __init__(self, boxes=(), error=None):
        self.boxes = list(boxes)
        self.error = error
        self.images = []

    def detect(self, image):
        self.images.append(image)
        future = Future()
        if self.error is not None:
            future.set_exception(self.error)
        else:
            future.set_result(list(self.boxes))
        return future


class _PendingDetector:
    def __init__(self):
        self.future = Future()

    def detect(self, image):
        return self.future


class _HappyEngine:
    def __init__(self, ready=True, input_size=(8, 8)):
        self.executor = ThreadPoolExecutor(max_workers=2)
        self.is_initialized = ready
        self.input_size = input_size
        self.tensors = []

    def classify(self, tensor):
        self.tensors.append(tensor)
        scores = np.zeros(7, dtype=np.float32)
        scores[Emotion.HAPPY - 1] = 1.0
        return scores


def _frame(sequence=1, height=60, width=80, rotation=0, release=None):
    image = np.full((height, width, 3), 90, dtype=np.uint8)
    return Frame(image=image, sequence=sequence, rotation_degrees=rotation, release=release)


def _analyzer(engine, detector, published, ratio=1):
    return FrameAnalyzer(
        engine,
        detector,
        sink=published.append,
        config=PipelineConfig(frame_processing_ratio=ratio, frame_processing_timeout_ms=1000),
    )


def test_throttled_frames_are_released_without_processing():
    released = []
    detector = _StaticDetector()
    engine = _HappyEngine()
    analyzer = _analyzer(engine, detector, [], ratio=4)
    try:
        outcomes = []
        for idx in range(1, 9):
            future = analyzer.analyze(_frame(sequence=idx, release=lambda idx=idx: released.append(idx)))
            if future is not None:
                future.result(timeout=5)
            outcomes.append(future)
    finally:
        analyzer.close()
        engine.executor.shutdown()

    assert [idx for idx, fut in enumerate(outcomes, start=1) if fut is not None] == [4, 8]
    assert released == list(range(1, 9))
    assert len(detector.images) == 2
    assert analyzer.stats.frames_received == 8
    assert analyzer.stats.frames_processed == 2


def test_publishes_aligned_result_for_faces_inside_the_frame():
    inside_a = FaceBoundingBox(0, 0, 20, 20)
    outside = FaceBoundingBox(70, 10, 90, 30)
    inside_b = FaceBoundingBox(30, 20, 60, 50)
    published = []
    engine = _HappyEngine()
    analyzer = _analyzer(engine, _StaticDetector([inside_a, outside, inside_b]), published)
    try:
        result = analyzer.analyze(_frame(sequence=5)).result(timeout=5)
    finally:
        analyzer.close()
        engine.executor.shutdown()

    assert published == [result]
    assert result.sequence == 5
    assert result.image_size == (80, 60)
    assert [face.bbox for face in result.faces] == [inside_a, inside_b]
    assert all(face.emotion is Emotion.HAPPY for face in result.faces)
    assert all(tensor.shape == (8, 8) for tensor in engine.tensors)


def test_detection_runs_on_upright_image():
    detector = _StaticDetector()
    engine = _HappyEngine()
    published = []
    analyzer = _analyzer(engine, detector, published)
    try:
        result = analyzer.analyze(_frame(height=60, width=80, rotation=90)).result(timeout=5)
    finally:
        analyzer.close()
        engine.executor.shutdown()

    assert detector.images[0].shape[:2] == (80, 60)
    assert result.image_size == (60, 80)


def test_empty_face_list_publishes_empty_result_without_classifying():
    published = []
    engine = _HappyEngine()
    analyzer = _analyzer(engine, _StaticDetector([]), published)
    try:
        result = analyzer.analyze(_frame()).result(timeout=5)
    finally:
        analyzer.close()
        engine.executor.shutdown()

    assert result.faces == []
    assert published == [result]
    assert engine.tensors == []


def test_detection_failure_drops_the_frame():
    published = []
    engine = _HappyEngine()
    analyzer = _analyzer(engine, _StaticDetector(error=RuntimeError("detector offline")), published)
    try:
        outcome = analyzer.analyze(_frame()).result(timeout=5)
        analyzer.analyze(_frame(sequence=2)).result(timeout=5)
        analyzer.detector = _StaticDetector([FaceBoundingBox(0, 0, 10, 10)])
        recovered = analyzer.analyze(_frame(sequence=3)).result(timeout=5)
    finally:
        analyzer.close()
        engine.executor.shutdown()

    assert outcome is None
    assert analyzer.stats.frames_dropped == 2
    assert [r.sequence for r in published] == [3]
    assert recovered.faces[0].emotion is Emotion.HAPPY


def test_uninitialized_engine_skips_classification():
    published = []
    detector = _StaticDetector([FaceBoundingBox(0, 0, 20, 20)])
    engine = _HappyEngine(ready=False, input_size=None)
    analyzer = _analyzer(engine, detector, published)
    try:
        outcome = analyzer.analyze(_frame()).result(timeout=5)
    finally:
        analyzer.close()
        engine.executor.shutdown()

    assert outcome is None
    assert published == []
    assert engine.tensors == []
    assert len(detector.images) == 1
    assert analyzer.stats.frames_skipped_uninitialized == 1


def test_frame_is_released_before_detection_completes():
    released = []
    detector = _PendingDetector()
    engine = _HappyEngine()
    published = []
    analyzer = _analyzer(engine, detector, published)
    try:
        future = analyzer.analyze(_frame(release=lambda: released.append(True)))
        assert released == [True]
        assert not future.done()
        detector.future.set_result([])
        assert future.result(timeout=5).faces == []
    finally:
        analyzer.close()
        engine.executor.shutdown()


def test_sink_errors_do_not_break_the_pipeline():
    def _bad_sink(result):
        raise RuntimeError("renderer gone")

    engine = _HappyEngine()
    analyzer = FrameAnalyzer(
        engine,
        _StaticDetector([FaceBoundingBox(0, 0, 20, 20)]),
        sink=_bad_sink,
        config=PipelineConfig(frame_processing_ratio=1),
    )
    try:
        result = analyzer.analyze(_frame()).result(timeout=5)
    finally:
        analyzer.close()
        engine.executor.shutdown()

    assert result is not None
    assert analyzer.stats.frames_published == 1


class _GatedDetector:
    def __init__(self):
        self.gate = threading.Event()
        self.calls = 0

    def detect(self, image):
        self.calls += 1
        self.gate.wait(timeout=5)
        return []


def test_frames_skipped_while_previous_pass_is_running():
    released = []
    slow = _GatedDetector()
    detector = AsyncFaceDetector(slow, smallest_face_size=0.15)
    engine = _HappyEngine()
    published = []
    analyzer = _analyzer(engine, detector, published, ratio=4)
    try:
        outcomes = [
            analyzer.analyze(_frame(sequence=idx, release=lambda idx=idx: released.append(idx)))
            for idx in range(1, 801)
        ]
        slow.gate.set()
        first = outcomes[3].result(timeout=5)
        tail = [analyzer.analyze(_frame(sequence=idx)) for idx in range(801, 805)]
        after = tail[-1].result(timeout=5)
    finally:
        detector.close()
        analyzer.close()
        engine.executor.shutdown()

    assert [idx for idx, fut in enumerate(outcomes, start=1) if fut is not None] == [4]
    assert released == list(range(1, 801))
    assert analyzer.stats.frames_skipped_busy == 199
    assert slow.calls == 2
    assert first.sequence == 4
    assert after.sequence == 804


def test_detector_refusing_work_drops_the_frame():
    detector = AsyncFaceDetector(_StaticDetector())
    detector.close()
    engine = _HappyEngine()
    published = []
    released = []
    analyzer = _analyzer(engine, detector, published)
    try:
        outcome = analyzer.analyze(_frame(release=lambda: released.append(True))).result(timeout=5)
        retry = analyzer.analyze(_frame(sequence=2)).result(timeout=5)
    finally:
        analyzer.close()
        engine.executor.shutdown()

    assert outcome is None
    assert retry is None
    assert released == [True]
    assert published == []
    assert analyzer.stats.frames_dropped == 2
