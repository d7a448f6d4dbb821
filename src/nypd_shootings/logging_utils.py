"""
Structured run logs.

Each script run writes ``logs/<script>_<run_id>.jsonl``: one JSON object per
line with ``timestamp``, ``script_name``, ``run_id``, ``level``, ``message`` and
an optional ``extra`` payload. The same messages are echoed to stdout through
the standard ``logging`` module.

Pipeline stages report through ``log_stage`` (rows in/out plus stage stats)
and run inside ``stage()``, which records the failing stage name before the
exception propagates.
"""

import json
import logging
import sys
import traceback
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from nypd_shootings.hashing import get_versions, hash_dict
from nypd_shootings.paths import LOGS_DIR

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def generate_run_id() -> str:
    """UTC timestamp plus a short random suffix, e.g. ``20240105_221530_1a2b3c4d``."""
    return f"{datetime.now(timezone.utc):%Y%m%d_%H%M%S}_{uuid.uuid4().hex[:8]}"


class JSONLLogger:
    """
    JSONL run logger used by every script and by ``run_pipeline``.

    Usage:
        with get_logger("02_build_clean_incidents") as logger:
            logger.log_config(config)
            with logger.stage("schema_filter"):
                ...
                logger.log_stage("schema_filter", rows_in, rows_out, extra=stats)
    """

    def __init__(
        self,
        script_name: str,
        run_id: Optional[str] = None,
        log_dir: Optional[Path] = None,
    ):
        self.script_name = script_name
        self.run_id = run_id or generate_run_id()
        self.log_dir = Path(log_dir) if log_dir is not None else LOGS_DIR
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.log_file = self.log_dir / f"{script_name}_{self.run_id}.jsonl"
        self._file_handle = open(self.log_file, "a", encoding="utf-8")

        self._console = logging.StreamHandler(sys.stdout)
        self._console.setLevel(logging.INFO)
        self._console.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
        self._logger = logging.getLogger(f"nypd_shootings.{script_name}")
        self._logger.setLevel(logging.DEBUG)
        self._logger.addHandler(self._console)

        self._emit("INFO", "Logger initialized", {
            "log_file": str(self.log_file),
            "versions": get_versions(),
        }, echo=False)

    def _emit(
        self,
        level: str,
        message: str,
        extra: Optional[Dict[str, Any]] = None,
        echo: bool = True,
    ) -> None:
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "script_name": self.script_name,
            "run_id": self.run_id,
            "level": level,
            "message": message,
        }
        if extra:
            record["extra"] = extra
        self._file_handle.write(json.dumps(record, default=str) + "\n")
        self._file_handle.flush()
        if echo:
            self._logger.log(_LEVELS[level], message)

    def debug(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        self._emit("DEBUG", message, extra)

    def info(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        self._emit("INFO", message, extra)

    def warning(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        self._emit("WARNING", message, extra)

    def error(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        self._emit("ERROR", message, extra)

    # -- structured records ---------------------------------------------------

    def log_config(self, config: Mapping[str, Any]) -> str:
        """Record the parameters and return their digest."""
        digest = hash_dict(config)
        self._emit("INFO", "Configuration loaded", {"config": dict(config), "config_digest": digest}, echo=False)
        return digest

    def log_artifacts(
        self,
        inputs: Optional[Mapping[str, Any]] = None,
        outputs: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Record the files a run read and/or wrote."""
        payload = {}
        if inputs:
            payload["inputs"] = {k: str(v) for k, v in inputs.items()}
        if outputs:
            payload["outputs"] = {k: str(v) for k, v in outputs.items()}
        self._emit("INFO", "Artifacts registered", payload, echo=False)

    def log_metrics(self, metrics: Dict[str, Any]) -> None:
        self._emit("INFO", "Metrics recorded", {"metrics": metrics}, echo=False)

    def log_stage(
        self,
        stage: str,
        rows_in: int,
        rows_out: int,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Row counts entering and leaving a pipeline stage."""
        payload = {"stage": stage, "rows_in": rows_in, "rows_out": rows_out, **(extra or {})}
        self._emit("INFO", f"Stage complete: {stage}", payload, echo=False)
        self._logger.info(f"{stage}: {rows_in:,} -> {rows_out:,} rows")

    @contextmanager
    def stage(self, name: str):
        """Log which stage failed, then let the exception propagate unchanged."""
        try:
            yield
        except Exception as e:
            self.error(f"Stage '{name}' failed: {type(e).__name__}: {e}", extra={"stage": name})
            raise

    # -- lifecycle ------------------------------------------------------------

    def close(self) -> None:
        if self._file_handle.closed:
            return
        self._emit("INFO", "Logger closing", echo=False)
        self._file_handle.close()
        self._logger.removeHandler(self._console)

    def __enter__(self) -> "JSONLLogger":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is not None:
            self.error(
                f"Exception occurred: {exc_type.__name__}: {exc_val}",
                extra={"traceback": "".join(traceback.format_exception(exc_type, exc_val, exc_tb))},
            )
        self.close()


def get_logger(
    script_name: str,
    run_id: Optional[str] = None,
    log_dir: Optional[Path] = None,
) -> JSONLLogger:
    """Logger for a numbered script; logs go to ``LOGS_DIR`` unless ``log_dir`` is given."""
    return JSONLLogger(script_name=script_name, run_id=run_id, log_dir=log_dir)
