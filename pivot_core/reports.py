"""Saved pivot reports.

A ``ReportStore`` keeps the whole report list under one namespace key of a
key-value backend. Every write replaces the full list (last write wins).
Read failures yield an empty list; write failures yield ``None``/``False``
so callers decide how to surface them.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from pivot_core.filters import PivotConfig, config_to_dict, normalize_config

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "pivotReports"


class KeyValueBackend(Protocol):
    def read(self, key: str) -> Optional[str]: ...

    def write(self, key: str, value: str) -> None: ...


class MemoryBackend:
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def read(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def write(self, key: str, value: str) -> None:
        self._data[key] = value


class FileBackend:
    """One JSON file per key inside ``directory``."""

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(value)
            os.replace(tmp, self._path(key))
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class PivotReport:
    id: str
    name: str
    created_at: str
    updated_at: str
    config: PivotConfig

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "config": config_to_dict(self.config),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "PivotReport":
        return cls(
            id=str(raw["id"]),
            name=str(raw["name"]),
            created_at=str(raw.get("created_at") or ""),
            updated_at=str(raw.get("updated_at") or ""),
            config=normalize_config(raw.get("config") or {}),
        )


class ReportStore:
    def __init__(self, backend: KeyValueBackend, namespace: str = DEFAULT_NAMESPACE) -> None:
        self.backend = backend
        self.namespace = namespace

    def list_reports(self) -> List[PivotReport]:
        try:
            stored = self.backend.read(self.namespace)
            if not stored:
                return []
            raw = json.loads(stored)
            if not isinstance(raw, list):
                logger.warning("Report store %r holds %s, not a list", self.namespace, type(raw).__name__)
                return []
            return [PivotReport.from_dict(item) for item in raw]
        except Exception:
            logger.exception("Error loading reports from %r", self.namespace)
            return []

    def get(self, report_id: str) -> Optional[PivotReport]:
        for report in self.list_reports():
            if report.id == report_id:
                return report
        return None

    def _write(self, reports: List[PivotReport]) -> bool:
        try:
            self.backend.write(self.namespace, json.dumps([r.to_dict() for r in reports], ensure_ascii=False))
            return True
        except Exception:
            logger.exception("Error writing reports to %r", self.namespace)
            return False

    def save(self, name: str, config: dict | PivotConfig) -> Optional[PivotReport]:
        now = _now_iso()
        report = PivotReport(
            id=uuid.uuid4().hex,
            name=name,
            created_at=now,
            updated_at=now,
            config=normalize_config(config),
        )
        reports = self.list_reports()
        reports.append(report)
        return report if self._write(reports) else None

    def update(self, report_id: str, *, name: str) -> Optional[PivotReport]:
        """Only ``name`` and ``updated_at`` change; the saved config is untouched."""
        reports = self.list_reports()
        for idx, report in enumerate(reports):
            if report.id == report_id:
                updated = PivotReport(
                    id=report.id,
                    name=name,
                    created_at=report.created_at,
                    updated_at=_now_iso(),
                    config=report.config,
                )
                reports[idx] = updated
                return updated if self._write(reports) else None
        return None

    def rename(self, report_id: str, new_name: str) -> Optional[PivotReport]:
        return self.update(report_id, name=new_name)

    def delete(self, report_id: str) -> bool:
        reports = self.list_reports()
        remaining = [r for r in reports if r.id != report_id]
        if len(remaining) == len(reports):
            return False
        return self._write(remaining)

    def load_config(self, report_id: str) -> Optional[PivotConfig]:
        """The saved config, which replaces (never merges into) the live parameters."""
        report = self.get(report_id)
        return report.config if report is not None else None
