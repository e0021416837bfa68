import numpy as np
import pytest

from emotionrec.types import (
    MODEL_EMOTIONS,
    Emotion,
    FaceBoundingBox,
    FaceEmotionResult,
    Frame,
    FrameResult,
    emotion_from_scores,
)


def test_model_emotions_skip_the_reserved_slot():
    assert Emotion.UNCLASSIFIED not in MODEL_EMOTIONS
    assert MODEL_EMOTIONS[0] is Emotion.ANGRY
    assert len(MODEL_EMOTIONS) == 7


def test_highest_score_maps_past_unclassified():
    scores = np.array([0.1, 0.0, 0.0, 0.7, 0.1, 0.1, 0.0], dtype=np.float32)
    assert emotion_from_scores(scores) is Emotion.HAPPY


def test_first_index_wins_exact_ties():
    scores = [0.0, 0.4, 0.0, 0.0, 0.4, 0.2, 0.0]
    assert emotion_from_scores(scores) is Emotion.DISGUST


def test_index_zero_maps_to_angry_not_unclassified():
    assert emotion_from_scores([1, 0, 0, 0, 0, 0, 0]) is Emotion.ANGRY


def test_wrong_score_count_rejected():
    with pytest.raises(ValueError):
        emotion_from_scores([0.5, 0.5])


def test_bbox_from_float_coordinates_rounds():
    bbox = FaceBoundingBox.from_xyxy(10.4, 20.6, 50.5, 80.2)
    assert bbox.as_xyxy() == (10, 21, 50, 80)
    assert bbox.width == 40
    assert bbox.height == 59


def test_frame_release_runs_once():
    calls = []
    frame = Frame(image=np.zeros((4, 4, 3), dtype=np.uint8), sequence=1, release=lambda: calls.append(1))
    frame.close()
    frame.close()
    assert calls == [1]
    assert frame.closed


def test_frame_result_to_dict():
    result = FrameResult(
        image_size=(320, 240),
        faces=[FaceEmotionResult(FaceBoundingBox(1, 2, 30, 40), Emotion.SAD)],
        sequence=12,
    )
    payload = result.to_dict()
    assert payload["sequence"] == 12
    assert payload["image_size"] == {"width": 320, "height": 240}
    assert payload["faces"] == [
        {"bbox": {"left": 1, "top": 2, "right": 30, "bottom": 40}, "emotion": "Sad"}
    ]
