"""Fan-out/fan-in classification of all faces found in one frame."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Executor, Future, wait
from typing import List, Optional, Sequence

from emotionrec.inference.engine import EngineStateError
from emotionrec.types import ClassificationInput, Emotion, FaceEmotionResult, emotion_from_scores

LOGGER = logging.getLogger("emotionrec.inference.batch")


class BatchClassifier:
    """Classifies a batch of faces under one shared deadline.

    Every input gets exactly one result at the same index. Faces whose task
    has not finished when the deadline expires, or whose task failed, are
    reported as UNCLASSIFIED with their original box. Expired tasks are
    cancelled if they have not started; a task already running is abandoned,
    not interrupted, and may keep its worker busy past the deadline.
    """

    def __init__(self, engine, timeout_ms: int = 200, executor: Optional[Executor] = None) -> None:
        if timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {timeout_ms}")
        self.engine = engine
        self.timeout_ms = int(timeout_ms)
        self.executor = executor if executor is not None else engine.executor

    def _classify_one(self, item: ClassificationInput) -> Emotion:
        return emotion_from_scores(self.engine.classify(item.tensor))

    def classify(self, inputs: Sequence[ClassificationInput]) -> List[FaceEmotionResult]:
        if not inputs:
            return []
        if not self.engine.is_initialized:
            raise EngineStateError("Batch classification requested before the engine is ready.")

        started = time.monotonic()
        futures: List[Future] = [self.executor.submit(self._classify_one, item) for item in inputs]
        done, pending = wait(futures, timeout=self.timeout_ms / 1000.0)
        for future in pending:
            future.cancel()

        results: List[FaceEmotionResult] = []
        failed = 0
        for idx, (item, future) in enumerate(zip(inputs, futures)):
            emotion = Emotion.UNCLASSIFIED
            if future in done:
                exc = future.exception()
                if exc is None:
                    emotion = future.result()
                else:
                    failed += 1
                    LOGGER.warning("Classification of face %d %s failed: %s", idx, item.bbox.as_xyxy(), exc)
            results.append(FaceEmotionResult(bbox=item.bbox, emotion=emotion))

        elapsed_ms = (time.monotonic() - started) * 1000.0
        if pending:
            LOGGER.warning(
                "Batch deadline %dms reached: %d/%d faces unclassified",
                self.timeout_ms,
                len(pending),
                len(inputs),
            )
        LOGGER.debug(
            "Classified batch faces=%d timed_out=%d failed=%d elapsed=%.1fms",
            len(inputs),
            len(pending),
            failed,
            elapsed_ms,
        )
        return results
