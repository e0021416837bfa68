"""Per-frame orchestration: throttle, detect, select, preprocess, classify, publish."""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import asdict, dataclass
from typing import Callable, Dict, List, Optional

import numpy as np

from emotionrec.config import PipelineConfig
from emotionrec.inference.batch import BatchClassifier
from emotionrec.pipeline.preprocess import FacePreprocessor, normalize_orientation
from emotionrec.pipeline.selection import select_faces
from emotionrec.pipeline.throttle import FrameThrottle
from emotionrec.types import FaceBoundingBox, Frame, FrameResult

LOGGER = logging.getLogger("emotionrec.pipeline.analyzer")

ResultSink = Callable[[FrameResult], None]


@dataclass
class PipelineStats:
    """Counters; received/processed are written by the frame-delivery thread, the rest by the main context."""

    frames_received: int = 0
    frames_processed: int = 0
    frames_dropped: int = 0
    frames_skipped_busy: int = 0
    frames_skipped_uninitialized: int = 0
    frames_published: int = 0
    faces_classified: int = 0
    faces_unclassified: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


class FrameAnalyzer:
    """Turns camera frames into published ``FrameResult`` objects.

    ``analyze`` is called sequentially from the frame-delivery thread. Face
    detection runs on the detector's own context; the remainder of each pass
    resumes on ``main_executor`` (a single thread unless one is supplied), so
    results are published one at a time and in completion order.

    At most one pass is in flight: a frame accepted by the throttle while the
    previous pass is still running is released and skipped, so only the
    latest frame is ever waiting on the detector.
    """

    def __init__(
        self,
        engine,
        detector,
        sink: ResultSink,
        config: Optional[PipelineConfig] = None,
        main_executor: Optional[Executor] = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self.engine = engine
        self.detector = detector
        self.sink = sink
        self.throttle = FrameThrottle(self.config.frame_processing_ratio)
        self.classifier = BatchClassifier(engine, timeout_ms=self.config.frame_processing_timeout_ms)
        self.stats = PipelineStats()
        self._owns_main = main_executor is None
        self.main_executor = main_executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="emotionrec-main")
        self._preprocessor: Optional[FacePreprocessor] = None
        self._in_flight: Optional[Future] = None

    def analyze(self, frame: Frame) -> Optional[Future]:
        """Process a camera frame; the frame is always closed before returning.

        Returns None for throttled frames and for frames skipped while the
        previous pass is running, otherwise a future resolving to the
        published ``FrameResult`` or to None when the frame was dropped.
        """
        self.stats.frames_received += 1
        if not self.throttle.should_process():
            frame.close()
            return None
        if self._in_flight is not None and not self._in_flight.done():
            frame.close()
            self.stats.frames_skipped_busy += 1
            LOGGER.debug("Previous frame still in flight; skipping frame %d", frame.sequence)
            return None
        try:
            image = normalize_orientation(frame.image, frame.rotation_degrees, frame.mirror)
        finally:
            frame.close()
        self.stats.frames_processed += 1

        result_future: Future = Future()
        sequence = frame.sequence
        try:
            detection = self.detector.detect(image)
        except Exception as exc:
            self.stats.frames_dropped += 1
            LOGGER.error("Face detection failed for frame %d: %s", sequence, exc)
            result_future.set_result(None)
            return result_future
        self._in_flight = result_future
        detection.add_done_callback(lambda done: self._on_detected(done, image, sequence, result_future))
        return result_future

    def _on_detected(self, detection: Future, image: np.ndarray, sequence: int, result_future: Future) -> None:
        try:
            self.main_executor.submit(self._resume, detection, image, sequence, result_future)
        except RuntimeError as exc:
            LOGGER.warning("Dropping frame %d: main context unavailable (%s)", sequence, exc)
            result_future.set_result(None)

    def _get_preprocessor(self) -> FacePreprocessor:
        input_size = tuple(self.engine.input_size)
        if self._preprocessor is None or self._preprocessor.input_size != input_size:
            self._preprocessor = FacePreprocessor(input_size)
        return self._preprocessor

    def _resume(self, detection: Future, image: np.ndarray, sequence: int, result_future: Future) -> None:
        try:
            result = self._process_detection(detection, image, sequence)
        except Exception as exc:
            LOGGER.exception("Frame %d failed after detection", sequence)
            result_future.set_exception(exc)
            return
        result_future.set_result(result)

    def _process_detection(self, detection: Future, image: np.ndarray, sequence: int) -> Optional[FrameResult]:
        exc = detection.exception()
        if exc is not None:
            self.stats.frames_dropped += 1
            LOGGER.error("Face detection failed for frame %d: %s", sequence, exc)
            return None

        height, width = image.shape[:2]
        boxes: List[FaceBoundingBox] = list(detection.result())
        accepted = select_faces(boxes, width, height)

        if not self.engine.is_initialized:
            self.stats.frames_skipped_uninitialized += 1
            LOGGER.debug(
                "Classifier not ready; skipping frame %d with %d faces",
                sequence,
                len(accepted),
            )
            return None

        preprocessor = self._get_preprocessor()
        inputs = [preprocessor.build_input(image, bbox) for bbox in accepted]
        faces = self.classifier.classify(inputs)
        result = FrameResult(image_size=(width, height), faces=faces, sequence=sequence)

        unclassified = result.unclassified_count
        self.stats.faces_classified += len(faces) - unclassified
        self.stats.faces_unclassified += unclassified
        self._publish(result)
        return result

    def _publish(self, result: FrameResult) -> None:
        self.stats.frames_published += 1
        try:
            self.sink(result)
        except Exception:
            LOGGER.exception("Result sink raised for frame %s", result.sequence)

    def close(self) -> None:
        if self._owns_main:
            self.main_executor.shutdown(wait=True)
        LOGGER.info("Frame analyzer closed stats=%s", self.stats.as_dict())
