"""Common dataclasses and type aliases used across the emotionrec package."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

# Image size order: width, height (pixels)
Size = Tuple[int, int]


class Emotion(IntEnum):
    """Emotion categories. UNCLASSIFIED is reserved for timeouts and failures."""

    UNCLASSIFIED = 0
    ANGRY = 1
    DISGUST = 2
    FEAR = 3
    HAPPY = 4
    SAD = 5
    SURPRISE = 6
    NEUTRAL = 7

    @property
    def label(self) -> str:
        return self.name.capitalize()


# Order of the classifier output vector; index 0 of the vector maps to ANGRY.
MODEL_EMOTIONS: Tuple[Emotion, ...] = tuple(e for e in Emotion if e is not Emotion.UNCLASSIFIED)


def emotion_from_scores(scores: Sequence[float]) -> Emotion:
    """Map a classifier output vector to the highest scoring emotion.

    Exact ties resolve to the lowest index. The model never yields
    UNCLASSIFIED: index 0 of the vector is shifted past the reserved slot.
    """
    values = np.asarray(scores, dtype=np.float32).reshape(-1)
    if values.size != len(MODEL_EMOTIONS):
        raise ValueError(
            f"Expected {len(MODEL_EMOTIONS)} class scores, got {values.size}"
        )
    max_index = int(np.argmax(values))
    return Emotion(max_index + 1)


@dataclass(frozen=True)
class FaceBoundingBox:
    """Axis-aligned face rectangle in frame pixel coordinates."""

    left: int
    top: int
    right: int
    bottom: int

    @classmethod
    def from_xyxy(cls, x1: float, y1: float, x2: float, y2: float) -> "FaceBoundingBox":
        return cls(int(round(x1)), int(round(y1)), int(round(x2)), int(round(y2)))

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    def as_xyxy(self) -> Tuple[int, int, int, int]:
        return self.left, self.top, self.right, self.bottom

    def to_dict(self) -> Dict[str, int]:
        return {
            "left": self.left,
            "top": self.top,
            "right": self.right,
            "bottom": self.bottom,
        }


@dataclass
class Frame:
    """Camera frame handed to the pipeline.

    The pixel buffer belongs to the camera layer: call ``close`` once the
    pipeline no longer needs it so the producer can reuse the memory.
    """

    image: np.ndarray
    sequence: int
    rotation_degrees: int = 0
    mirror: bool = False
    release: Optional[Callable[[], None]] = None
    _closed: bool = field(default=False, init=False, repr=False)

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.release is not None:
            self.release()


@dataclass
class ClassificationInput:
    """A face box paired with its model-ready tensor (single channel, ~[-1, 1])."""

    bbox: FaceBoundingBox
    tensor: np.ndarray

    def to_bytes(self) -> bytes:
        """Flat row-major float32 buffer in native byte order."""
        return np.ascontiguousarray(self.tensor, dtype=np.float32).tobytes()


@dataclass(frozen=True)
class FaceEmotionResult:
    bbox: FaceBoundingBox
    emotion: Emotion

    def to_dict(self) -> Dict:
        return {"bbox": self.bbox.to_dict(), "emotion": self.emotion.label}


@dataclass
class FrameResult:
    """Per-frame output, faces index-aligned with the classified face list."""

    image_size: Size
    faces: List[FaceEmotionResult] = field(default_factory=list)
    sequence: Optional[int] = None

    @property
    def unclassified_count(self) -> int:
        return sum(1 for face in self.faces if face.emotion is Emotion.UNCLASSIFIED)

    def to_dict(self) -> Dict:
        width, height = self.image_size
        return {
            "sequence": self.sequence,
            "image_size": {"width": width, "height": height},
            "faces": [face.to_dict() for face in self.faces],
        }
