from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from .config import RunPolicy
from .errors import SchemaVersionError
from .records import OutcomeRecord, RunResult

LOGGER = logging.getLogger("httpbench.persistence")

SCHEMA_VERSION = 1


def result_to_dict(result: RunResult) -> dict[str, Any]:
    return {
        "schema_version": SCHEMA_VERSION,
        "summaries": [record.to_dict() for record in result.summaries],
        "total_bytes_read": result.total_bytes_read,
        "max_connections": result.max_connections,
        "behavior": result.behavior.to_dict(),
        "failures": dict(sorted(result.failures.items())),
    }


def result_from_dict(payload: dict[str, Any]) -> RunResult:
    version = payload.get("schema_version")
    if version != SCHEMA_VERSION:
        raise SchemaVersionError(
            f"session schema version {version!r} is not supported (expected {SCHEMA_VERSION})"
        )
    return RunResult(
        summaries=[OutcomeRecord.from_dict(item) for item in payload["summaries"]],
        total_bytes_read=int(payload["total_bytes_read"]),
        max_connections=int(payload["max_connections"]),
        behavior=RunPolicy.from_dict(payload["behavior"]),
        failures={str(k): int(v) for k, v in payload.get("failures", {}).items()},
    )


def save(result: RunResult, path: str | Path) -> Path:
    """Write ``result`` as a JSON session file; the result itself is left untouched."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w", encoding="utf-8") as f:
        json.dump(result_to_dict(result), f, indent=2)
    LOGGER.info("Session with %d records saved to %s", result.completed, target)
    return target


def load(path: str | Path) -> RunResult:
    with open(Path(path), "r", encoding="utf-8") as f:
        payload = json.load(f)
    return result_from_dict(payload)


def export_csv(result: RunResult, path: str | Path) -> Path:
    """Write one row per outcome record, the way benchmark runs are archived."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    frame = result.to_dataframe()
    frame.to_csv(target, index=False)
    LOGGER.info("Saved %d records to %s", len(frame), target)
    return target


__all__ = [
    "SCHEMA_VERSION",
    "result_to_dict",
    "result_from_dict",
    "save",
    "load",
    "export_csv",
]
