"""Inference worker process (run with ``python -m lingoworker.worker``)."""

from lingoworker.worker.backends import GenerationBackend, create_backend
from lingoworker.worker.runtime import WorkerRuntime, run_worker

__all__ = ["GenerationBackend", "WorkerRuntime", "create_backend", "run_worker"]
