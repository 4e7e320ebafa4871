from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlarmRecord:
    name: str
    sequence_id: int
    scheduled_at: datetime

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "sequence_id": self.sequence_id,
            "scheduled_at": self.scheduled_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AlarmRecord":
        name = data.get("name")
        scheduled_raw = data.get("scheduled_at")
        if not name or not scheduled_raw:
            raise ValueError("Alarm payload missing name/scheduled_at fields")
        return cls(
            name=str(name),
            sequence_id=int(data.get("sequence_id") or 0),
            scheduled_at=datetime.fromisoformat(scheduled_raw),
        )


def load_alarms(path: Path) -> List[AlarmRecord]:
    if not path.exists():
        return []
    try:
        with path.open("r", encoding="utf-8") as f:
            payload = json.load(f)
    except (OSError, ValueError) as exc:
        logger.error("Failed to load alarms from %s: %s", path, exc)
        return []
    alarms: List[AlarmRecord] = []
    for item in payload or []:
        try:
            alarms.append(AlarmRecord.from_dict(item))
        except (TypeError, ValueError, AttributeError) as exc:
            logger.warning("Skipping alarm item due to parse error: %s", exc)
    return alarms


def save_alarms(path: Path, alarms: List[AlarmRecord]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    serializable = [a.to_dict() for a in alarms]
    with path.open("w", encoding="utf-8") as f:
        json.dump(serializable, f, ensure_ascii=False, indent=2)
