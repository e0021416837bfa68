"""I/O helpers shared across the CLI entrypoint and pipeline modules."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Dict, TextIO

import yaml

LOGGER = logging.getLogger("emotionrec.io")


def ensure_dir(path: Path) -> Path:
    """Create directory (and parents) if it does not exist."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return a dictionary."""
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping at the top of {path}, got {type(data).__name__}")
    LOGGER.debug("Loaded YAML config %s -> keys=%s", path, list(data.keys()))
    return data


def _json_default(obj: Any) -> Any:
    if is_dataclass(obj):
        return asdict(obj)
    if isinstance(obj, Path):
        return str(obj)
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def write_json_line(fh: TextIO, data: Any) -> None:
    """Append one JSON document per line (with dataclass support)."""
    fh.write(json.dumps(data, default=_json_default))
    fh.write("\n")


def setup_logging(level: int = logging.INFO) -> None:
    """Configure application logging if not already configured."""
    if logging.getLogger().handlers:
        logging.getLogger().setLevel(level)
        return
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

