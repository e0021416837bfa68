"""ONNX Runtime engine wrapping the quantized facial expression classifier."""

from __future__ import annotations

import logging
import mmap
import os
import platform
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import numpy as np
import onnxruntime as ort

from emotionrec.types import MODEL_EMOTIONS

LOGGER = logging.getLogger("emotionrec.inference.engine")

TensorLike = Union[np.ndarray, bytes, bytearray, memoryview]

_ACCELERATED_PROVIDERS = (
    "CUDAExecutionProvider",
    "DmlExecutionProvider",
    "NnapiExecutionProvider",
    "QNNExecutionProvider",
)


class EngineState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    CLOSED = "closed"


class EngineStateError(RuntimeError):
    """Engine used outside the READY state; indicates a wiring bug."""


class ModelLoadError(OSError):
    """Model file is readable but cannot be used by the classifier."""


def default_providers() -> Tuple[str, ...]:
    """Accelerated ONNX providers present on this host, CPU always last."""
    available = set(ort.get_available_providers())
    providers = [name for name in _ACCELERATED_PROVIDERS if name in available]
    system = platform.system()
    machine = platform.machine().lower()
    if system == "Darwin" and machine in {"arm64", "aarch64"} and "CoreMLExecutionProvider" in available:
        providers.insert(0, "CoreMLExecutionProvider")
    providers.append("CPUExecutionProvider")
    return tuple(providers)


def load_model_bytes(path: Path) -> bytes:
    """Read the model through a read-only memory map."""
    with path.open("rb") as fh:
        if os.fstat(fh.fileno()).st_size == 0:
            raise ModelLoadError(f"Model file {path} is empty")
        with mmap.mmap(fh.fileno(), 0, access=mmap.ACCESS_READ) as mapped:
            return mapped[:]


def _static_dim(value) -> Optional[int]:
    return value if isinstance(value, int) and value > 0 else None


def _parse_input_shape(shape: Sequence) -> Tuple[Tuple[int, int], Tuple[int, ...]]:
    """Return ((width, height), feed_shape) for a single-channel image input."""
    dims = list(shape)
    if len(dims) == 4 and dims[3] == 1:
        height, width = _static_dim(dims[1]), _static_dim(dims[2])
        feed = (1, height, width, 1)
    elif len(dims) == 4 and dims[1] == 1:
        height, width = _static_dim(dims[2]), _static_dim(dims[3])
        feed = (1, 1, height, width)
    elif len(dims) == 3:
        height, width = _static_dim(dims[1]), _static_dim(dims[2])
        feed = (1, height, width)
    else:
        raise ModelLoadError(f"Unsupported model input shape {dims}; expected one grayscale channel")
    if height is None or width is None:
        raise ModelLoadError(f"Model input shape {dims} has no static spatial size")
    return (width, height), feed  # type: ignore[return-value]


class InferenceEngine:
    """Owns the classifier session and the worker pool that runs it.

    States: UNINITIALIZED -> INITIALIZING -> READY -> CLOSED. Only READY
    accepts ``classify``. A failed ``initialize`` returns to UNINITIALIZED so
    it can be retried; CLOSED is terminal.

    ``InferenceSession.run`` is safe to call concurrently, so classify calls
    are not serialized unless ``serialize=True`` is requested for a provider
    that is not reentrant.
    """

    def __init__(
        self,
        model_path: Union[str, Path],
        providers: Optional[Sequence[str]] = None,
        workers: Optional[int] = None,
        serialize: bool = False,
        intra_op_threads: int = 1,
    ) -> None:
        self.model_path = Path(model_path).expanduser()
        self.providers: Tuple[str, ...] = tuple(providers) if providers else default_providers()
        self.workers = int(workers or os.cpu_count() or 1)
        self.intra_op_threads = max(1, int(intra_op_threads))
        self.executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="emotionrec-infer")
        self.input_size: Optional[Tuple[int, int]] = None
        self.backend: Optional[str] = None

        self._cond = threading.Condition()
        self._state = EngineState.UNINITIALIZED
        self._in_flight = 0
        self._session = None
        self._input_name: Optional[str] = None
        self._output_name: Optional[str] = None
        self._feed_shape: Tuple[int, ...] = ()
        self._init_future: Optional[Future] = None
        self._close_future: Optional[Future] = None
        self._run_lock: Optional[threading.Lock] = threading.Lock() if serialize else None

    @property
    def state(self) -> EngineState:
        with self._cond:
            return self._state

    @property
    def is_initialized(self) -> bool:
        return self.state is EngineState.READY

    def initialize(self) -> Future:
        """Load the model on the worker pool; failures are set on the future."""
        with self._cond:
            if self._state is EngineState.CLOSED:
                raise EngineStateError("Inference engine is closed.")
            if self._state in (EngineState.INITIALIZING, EngineState.READY) and self._init_future is not None:
                return self._init_future
            self._state = EngineState.INITIALIZING
            future: Future = Future()
            self._init_future = future
        self.executor.submit(self._initialize_session, future)
        return future

    def _build_session_options(self):
        options = ort.SessionOptions()
        options.intra_op_num_threads = self.intra_op_threads
        options.inter_op_num_threads = 1
        options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        return options

    def _create_session(self, model_bytes: bytes):
        options = self._build_session_options()
        try:
            return ort.InferenceSession(model_bytes, sess_options=options, providers=list(self.providers))
        except Exception as exc:
            if self.providers == ("CPUExecutionProvider",):
                raise ModelLoadError(f"Unable to load model {self.model_path}: {exc}") from exc
            LOGGER.warning(
                "Session creation with providers=%s failed (%s); falling back to CPU.",
                self.providers,
                exc,
            )
        try:
            return ort.InferenceSession(model_bytes, sess_options=options, providers=["CPUExecutionProvider"])
        except Exception as exc:
            raise ModelLoadError(f"Unable to load model {self.model_path}: {exc}") from exc

    def _initialize_session(self, future: Future) -> None:
        try:
            model_bytes = load_model_bytes(self.model_path)
            session = self._create_session(model_bytes)
            model_input = session.get_inputs()[0]
            if model_input.type != "tensor(float)":
                raise ModelLoadError(f"Model input must be tensor(float), got {model_input.type}")
            input_size, feed_shape = _parse_input_shape(model_input.shape)
            model_output = session.get_outputs()[0]
            classes = _static_dim(list(model_output.shape)[-1]) if model_output.shape else None
            if classes is not None and classes != len(MODEL_EMOTIONS):
                raise ModelLoadError(
                    f"Model predicts {classes} classes, expected {len(MODEL_EMOTIONS)}"
                )
        except Exception as exc:
            with self._cond:
                if self._state is EngineState.INITIALIZING:
                    self._state = EngineState.UNINITIALIZED
            LOGGER.error("Error setting up emotion classifier from %s: %s", self.model_path, exc)
            future.set_exception(exc)
            return

        with self._cond:
            if self._state is EngineState.CLOSED:
                future.set_exception(EngineStateError("Inference engine closed during initialization."))
                return
            self._session = session
            self._input_name = model_input.name
            self._output_name = model_output.name
            self._feed_shape = feed_shape
            self.input_size = input_size
            try:
                self.backend = session.get_providers()[0]
            except Exception:  # pragma: no cover - provider introspection best-effort
                self.backend = None
            self._state = EngineState.READY
        LOGGER.info(
            "Initialized emotion classifier model=%s input=%dx%d providers=%s backend=%s workers=%d",
            self.model_path,
            input_size[0],
            input_size[1],
            self.providers,
            self.backend,
            self.workers,
        )
        future.set_result(None)

    def _prepare_feed(self, tensor: TensorLike) -> np.ndarray:
        if isinstance(tensor, (bytes, bytearray, memoryview)):
            values = np.frombuffer(tensor, dtype=np.float32)
        else:
            values = np.asarray(tensor, dtype=np.float32)
        expected = int(np.prod(self._feed_shape))
        if values.size != expected:
            raise ValueError(f"Tensor has {values.size} values, model expects {expected}")
        return values.reshape(self._feed_shape)

    def classify(self, tensor: TensorLike) -> np.ndarray:
        """Run one forward pass and return the class score vector."""
        with self._cond:
            if self._state is not EngineState.READY:
                raise EngineStateError(
                    f"Inference session is not initialized yet (state={self._state.value})."
                )
            session = self._session
            self._in_flight += 1
        try:
            feed = self._prepare_feed(tensor)
            if self._run_lock is not None:
                with self._run_lock:
                    outputs = session.run([self._output_name], {self._input_name: feed})
            else:
                outputs = session.run([self._output_name], {self._input_name: feed})
        finally:
            with self._cond:
                self._in_flight -= 1
                self._cond.notify_all()
        scores = np.asarray(outputs[0], dtype=np.float32).reshape(-1)
        if scores.size != len(MODEL_EMOTIONS):
            raise ValueError(f"Model returned {scores.size} scores, expected {len(MODEL_EMOTIONS)}")
        return scores

    def close(self) -> Future:
        """Stop accepting work and release the session once in-flight calls drain."""
        with self._cond:
            if self._close_future is not None:
                return self._close_future
            self._state = EngineState.CLOSED
            future: Future = Future()
            self._close_future = future
        self.executor.submit(self._release_session, future)
        self.executor.shutdown(wait=False)
        return future

    def _release_session(self, future: Future) -> None:
        with self._cond:
            while self._in_flight:
                self._cond.wait()
            self._session = None
        LOGGER.info("Closed emotion classifier session.")
        future.set_result(None)
