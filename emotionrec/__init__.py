"""
Real-time facial emotion recognition.

Frames flow through `pipeline.analyzer.FrameAnalyzer`: throttle, detect,
select, preprocess, classify on `inference.InferenceEngine`, publish.
"""

__version__ = "0.1.0"

__all__ = [
    "config",
    "detectors",
    "inference",
    "pipeline",
    "viz",
    "io_utils",
    "types",
]
