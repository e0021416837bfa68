"""Pipeline configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from emotionrec.io_utils import load_yaml

LOGGER = logging.getLogger("emotionrec.config")

VALID_ROTATIONS = (0, 90, 180, 270)
VALID_DETECTORS = ("haar", "retina")


@dataclass
class PipelineConfig:
    # Smallest desired face, as a proportion of the face width to the frame width
    smallest_face_size: float = 0.15
    frame_processing_timeout_ms: int = 200
    # One frame out of every `frame_processing_ratio` is processed
    frame_processing_ratio: int = 4
    model_path: str = "models/facial_expression_quant.onnx"
    providers: Optional[List[str]] = None
    workers: Optional[int] = None
    serialize_inference: bool = False
    detector: str = "haar"
    det_thresh: float = 0.5
    det_size: Tuple[int, int] = (640, 640)
    rotation_degrees: int = 0
    mirror: bool = False
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    def validate(self) -> "PipelineConfig":
        for key in _INT_FIELDS:
            value = getattr(self, key)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{key} must be an integer, got {value!r}")
        if self.frame_processing_ratio < 1:
            raise ValueError(f"frame_processing_ratio must be >= 1, got {self.frame_processing_ratio}")
        if self.frame_processing_timeout_ms <= 0:
            raise ValueError(
                f"frame_processing_timeout_ms must be positive, got {self.frame_processing_timeout_ms}"
            )
        if not 0.0 < self.smallest_face_size <= 1.0:
            raise ValueError(f"smallest_face_size must be in (0, 1], got {self.smallest_face_size}")
        if self.rotation_degrees not in VALID_ROTATIONS:
            raise ValueError(f"rotation_degrees must be one of {VALID_ROTATIONS}, got {self.rotation_degrees}")
        if self.detector not in VALID_DETECTORS:
            raise ValueError(f"detector must be one of {VALID_DETECTORS}, got {self.detector!r}")
        if self.workers is not None and self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PipelineConfig":
        known = {f.name for f in fields(cls) if f.name != "extra"}
        values: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in data.items():
            if key in known:
                values[key] = value
            else:
                extra[key] = value
        if extra:
            LOGGER.warning("Ignoring unknown pipeline config keys: %s", sorted(extra))
        for key in _INT_FIELDS:
            if key in values:
                values[key] = _as_int(key, values[key])
        if values.get("workers") is not None:
            values["workers"] = _as_int("workers", values["workers"])
        for key in _FLOAT_FIELDS:
            if key in values:
                values[key] = _as_float(key, values[key])
        for key in _BOOL_FIELDS:
            if key in values and not isinstance(values[key], bool):
                raise ValueError(f"{key} must be true or false, got {values[key]!r}")
        if "det_size" in values:
            det_size = values["det_size"]
            if not isinstance(det_size, (list, tuple)) or len(det_size) != 2:
                raise ValueError(f"det_size must be a [width, height] pair, got {det_size!r}")
            values["det_size"] = tuple(_as_int("det_size", v) for v in det_size)
        if values.get("providers") is not None:
            providers = values["providers"]
            if isinstance(providers, str):
                providers = [providers]
            values["providers"] = [str(p) for p in providers]
        for key in ("model_path", "detector"):
            if key in values and not isinstance(values[key], str):
                raise ValueError(f"{key} must be a string, got {values[key]!r}")
        if "model_path" in values:
            values["model_path"] = str(Path(values["model_path"]).expanduser())
        config = cls(**values, extra=extra)
        return config.validate()


_INT_FIELDS = ("frame_processing_ratio", "frame_processing_timeout_ms", "rotation_degrees")
_FLOAT_FIELDS = ("smallest_face_size", "det_thresh")
_BOOL_FIELDS = ("serialize_inference", "mirror")


def _as_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{key} must be a whole number, got {value!r}")
    return int(value)


def _as_float(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError(f"{key} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{key} must be a number, got {value!r}") from exc


def load_config(path: Optional[Path]) -> PipelineConfig:
    """Load a pipeline config YAML; a missing path yields the defaults."""
    if path is None:
        return PipelineConfig()
    path = Path(path)
    if not path.exists():
        LOGGER.warning("Pipeline config %s not found; using defaults", path)
        return PipelineConfig()
    data = load_yaml(path)
    config = PipelineConfig.from_dict(data)
    LOGGER.info(
        "Loaded pipeline config %s ratio=%d timeout_ms=%d min_face=%.2f detector=%s",
        path,
        config.frame_processing_ratio,
        config.frame_processing_timeout_ms,
        config.smallest_face_size,
        config.detector,
    )
    return config
