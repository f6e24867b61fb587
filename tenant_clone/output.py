"""Logging setup and JSON audit files for clone runs."""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# Set up module logger
logger = logging.getLogger(__name__)

ENTITY_TYPES = ("categories", "products", "images", "settings")
LOGS_DIR_ENV = "TENANT_CLONE_LOGS_DIR"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def setup_logging(debug: bool = False, tenant_id: str | None = None, command: str = "clone") -> Path | None:
    """Send the package's debug output to a per-run file.

    One file per command run, named after the command and the tenant it
    writes to, e.g. ``logs/reconcile-3f2a9c1d-2026-01-05-101500.log``.
    Calling it again replaces the file handler of the previous run.

    Returns:
        Path to the log file, or None when debug is off
    """
    package_logger = logging.getLogger("tenant_clone")

    for handler in list(package_logger.handlers):
        if getattr(handler, "tenant_clone_run_log", False):
            package_logger.removeHandler(handler)
            handler.close()

    if not debug:
        return None

    timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d-%H%M%S")
    parts = [command, tenant_id[:8] if tenant_id else None, timestamp]
    log_path = get_logs_dir() / ("-".join(p for p in parts if p) + ".log")

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.tenant_clone_run_log = True
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    package_logger.addHandler(file_handler)
    package_logger.setLevel(logging.DEBUG)

    return log_path


def get_logs_dir() -> Path:
    """Directory for debug logs and audit files, created on demand.

    ``$TENANT_CLONE_LOGS_DIR`` when set, otherwise ``./logs``.
    """
    logs_dir = Path(os.getenv(LOGS_DIR_ENV) or Path.cwd() / "logs")
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir


class CloneLogger:
    """Incremental audit log for a clone run.

    Creates the JSON file immediately and rewrites it after every entry.
    - Success: minimal info (source id, new id)
    - Failure: error message, error type and the payload that was sent
    """

    def __init__(
        self,
        source_tenant_id: str,
        target_tenant_id: str,
        output_dir: Path | None = None,
    ):
        if output_dir is None:
            output_dir = get_logs_dir()

        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d-%H%M%S")
        # Format: clone-{source}-to-{target}-{timestamp}.json
        filename = f"clone-{source_tenant_id[:8]}-to-{target_tenant_id[:8]}-{timestamp}.json"
        self.filepath = output_dir / filename
        self.source_tenant_id = source_tenant_id
        self.target_tenant_id = target_tenant_id

        self._data: dict[str, Any] = {
            "metadata": {
                "started_at": datetime.now(timezone.utc).isoformat(),
                "source_tenant_id": source_tenant_id,
                "target_tenant_id": target_tenant_id,
                "status": "in_progress",
            },
            "summary": {entity: {"success": 0, "failed": 0} for entity in ENTITY_TYPES},
            "error_summary": {entity: {} for entity in ENTITY_TYPES},
            "operations": [],
        }
        self._write()

    def _write(self) -> None:
        """Write current state to file."""
        with open(self.filepath, "w") as f:
            json.dump(self._data, f, indent=2, ensure_ascii=False)

    def log_success(
        self,
        entity_type: str,
        source_id: str | None,
        new_id: str | None,
        identifier: str | None = None,
    ) -> None:
        """Log a successful operation.

        Args:
            entity_type: One of categories, products, images, settings
            source_id: ID in the source tenant
            new_id: ID created in the target tenant
            identifier: Human-readable identifier (title, name, url)
        """
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "status": "success",
            "entity_type": entity_type,
            "source_id": source_id,
            "new_id": new_id,
        }
        if identifier:
            entry["identifier"] = identifier

        self._data["operations"].append(entry)
        self._data["summary"][entity_type]["success"] += 1
        self._write()

    def log_failure(
        self,
        entity_type: str,
        source_id: str | None,
        error_message: str,
        error_type: str = "unknown",
        request_payload: dict | list | None = None,
        identifier: str | None = None,
    ) -> None:
        """Log a failed operation with the details needed to debug it."""
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "status": "failed",
            "entity_type": entity_type,
            "source_id": source_id,
            "error": error_message,
            "error_type": error_type,
        }
        if identifier:
            entry["identifier"] = identifier
        if request_payload:
            entry["request_payload"] = request_payload

        self._data["operations"].append(entry)
        self._data["summary"][entity_type]["failed"] += 1

        error_counts = self._data["error_summary"][entity_type]
        error_counts[error_type] = error_counts.get(error_type, 0) + 1

        self._write()

    def get_summary(self) -> dict[str, dict[str, int]]:
        """Success/failure counts per entity type."""
        return self._data["summary"]

    def get_error_summary(self) -> dict[str, dict[str, int]]:
        """Error counts by type for each entity.

        Example: {"products": {"duplicate": 5, "validation": 2}}
        """
        return self._data["error_summary"]

    def complete(self, status: str = "completed", result: dict | None = None) -> str:
        """Mark the run as finished and return the log file path.

        Args:
            status: Final status (completed, failed, cancelled)
            result: Final result counts to embed in the metadata
        """
        self._data["metadata"]["completed_at"] = datetime.now(timezone.utc).isoformat()
        self._data["metadata"]["status"] = status
        if result is not None:
            self._data["metadata"]["result"] = result
        self._write()
        return str(self.filepath)
