"""Model execution: the inference engine and the batch coordinator."""

from emotionrec.inference.batch import BatchClassifier
from emotionrec.inference.engine import EngineState, EngineStateError, InferenceEngine, ModelLoadError

__all__ = ["BatchClassifier", "EngineState", "EngineStateError", "InferenceEngine", "ModelLoadError"]
