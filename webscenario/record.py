from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class Status(str, enum.Enum):
    HEALTHY = "HEALTHY"
    FAILURE = "FAILURE"
    UNKNOWN = "UNKNOWN"
    ABORTED = "ABORTED"


@dataclass
class Record:
    """One monitoring result line."""

    time: datetime
    status: Status
    latency: float
    target: str
    message: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "time": self.time.isoformat(timespec="seconds"),
            "status": self.status.value,
            "latency": round(float(self.latency), 3),
            "target": self.target,
        }
        if self.message:
            payload["message"] = self.message
        if self.extra:
            payload["extra"] = self.extra
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


__all__ = ["Record", "Status"]
