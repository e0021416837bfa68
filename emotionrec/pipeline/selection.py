"""Face box filters applied between detection and classification."""

from __future__ import annotations

import logging
from typing import Iterable, List

from emotionrec.types import FaceBoundingBox

LOGGER = logging.getLogger("emotionrec.pipeline.selection")


def is_face_in_frame_bounds(bbox: FaceBoundingBox, frame_width: int, frame_height: int) -> bool:
    """Return True when the box is non-empty and lies fully inside the frame."""
    return (
        0 <= bbox.left < bbox.right <= frame_width
        and 0 <= bbox.top < bbox.bottom <= frame_height
    )


def select_faces(
    boxes: Iterable[FaceBoundingBox],
    frame_width: int,
    frame_height: int,
) -> List[FaceBoundingBox]:
    """Keep boxes fully inside the frame, preserving detector order.

    Boxes touching outside the frame are dropped, not clamped, and are not
    reported downstream.
    """
    accepted: List[FaceBoundingBox] = []
    for bbox in boxes:
        if is_face_in_frame_bounds(bbox, frame_width, frame_height):
            accepted.append(bbox)
        else:
            LOGGER.debug(
                "Dropping face %s outside frame %dx%d",
                bbox.as_xyxy(),
                frame_width,
                frame_height,
            )
    return accepted


def passes_min_face_size(bbox: FaceBoundingBox, frame_width: int, smallest_face_size: float) -> bool:
    """Face width must be at least ``smallest_face_size`` of the frame width."""
    return bbox.width >= smallest_face_size * frame_width
