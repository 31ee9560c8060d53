from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from popmart.utils.clock import format_timestamp, to_iso

SOURCE_CHAIN = "chain"
SOURCE_LOCAL = "local"


@dataclass(frozen=True)
class AuditLogEntry:
    title: str
    timestamp: datetime
    detail: str
    actor: str | None
    status: str
    sort_key: str = ""
    source: str = SOURCE_LOCAL

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "timestamp": to_iso(self.timestamp),
            "display": format_timestamp(self.timestamp),
            "detail": self.detail,
            "actor": self.actor,
            "status": self.status,
            "sortKey": self.sort_key,
            "source": self.source,
        }
