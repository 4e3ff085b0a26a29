from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Optional
import datetime as dt
import json
import logging
import platform
import socket
import time

import torch

logger = logging.getLogger(__name__)


def _now_iso():
    """Returns the current UTC time in ISO 8601 format."""
    return dt.datetime.now(dt.timezone.utc).isoformat()


class JsonlLogger:
    """Append-only JSONL event writer."""
    def __init__(self, path: Path):
        path.parent.mkdir(parents=True, exist_ok=True)
        self.path = path

    def write(self, event: Dict[str, Any]) -> None:
        """
        Appends one event as a JSON line.

        Args:
            event: The event to write; ``ts`` is added when absent.
        """
        event.setdefault("ts", _now_iso())
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(event, ensure_ascii=False) + "\n")


def make_run_logger(artifacts_dir: Path) -> JsonlLogger:
    """Logger for one index-build run: ``<artifacts>/metrics/run-YYYYMMDD-HHMMSS.jsonl``."""
    metrics_dir = Path(artifacts_dir) / "metrics"
    fname = f"run-{dt.datetime.now(dt.timezone.utc).strftime('%Y%m%d-%H%M%S')}.jsonl"
    return JsonlLogger(metrics_dir / fname)


def make_queries_logger(artifacts_dir: Path) -> JsonlLogger:
    """Daily query telemetry: ``<artifacts>/metrics/queries-YYYYMMDD.jsonl``."""
    metrics_dir = Path(artifacts_dir) / "metrics"
    fname = f"queries-{dt.datetime.now(dt.timezone.utc).strftime('%Y%m%d')}.jsonl"
    return JsonlLogger(metrics_dir / fname)


class StageTimer:
    """Times a block and records it.

    The elapsed milliseconds go into ``timings[stage]`` when a dict is given,
    and into a ``{"type": "stage"}`` event when a logger is given.
    """
    def __init__(
        self,
        stage: str,
        logger: Optional[JsonlLogger] = None,
        timings: Optional[Dict[str, float]] = None,
        meta: Optional[Dict[str, Any]] = None,
    ):
        self.stage = stage
        self.logger = logger
        self.timings = timings
        self.meta = meta or {}
        self.t0 = 0.0
        self.t_ms = 0.0

    def __enter__(self):
        self.t0 = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.t_ms = round((time.perf_counter() - self.t0) * 1000.0, 3)
        if self.timings is not None:
            self.timings[f"{self.stage}_ms"] = self.t_ms
        if self.logger is not None:
            ev = {"type": "stage", "stage": self.stage, "t_ms": self.t_ms}
            ev.update(self.meta)
            if exc is not None:
                ev["error"] = repr(exc)
            self.logger.write(ev)


def safe_log_query(query_logger: Optional[JsonlLogger], event: Dict[str, Any]) -> None:
    """Write query telemetry; IO problems are logged, never raised to the caller."""
    if query_logger is None:
        return
    try:
        query_logger.write({"type": "query", **event})
    except (OSError, TypeError, ValueError) as e:
        logger.warning("Failed to write query telemetry: %s", e)


def log_env(run_logger: JsonlLogger, artifacts_dir: Path, corpus_path: Path) -> None:
    """
    Logs host, interpreter and accelerator information for a build run.

    Args:
        run_logger: The logger to use.
        artifacts_dir: The directory where artifacts are stored.
        corpus_path: The corpus being indexed.
    """
    info: Dict[str, Any] = {
        "type": "env",
        "host": socket.gethostname(),
        "platform": platform.platform(),
        "python": platform.python_version(),
        "artifacts_dir": str(Path(artifacts_dir).resolve()),
        "corpus_path": str(Path(corpus_path).resolve()),
    }
    try:
        info["cuda_available"] = str(torch.cuda.is_available())
        if torch.cuda.is_available():
            info["cuda_device"] = torch.cuda.get_device_name(0)
            info["torch"] = torch.__version__
    except AttributeError as e:
        info["cuda_probe_error"] = repr(e)
    run_logger.write(info)
