import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, Iterable, List, Optional

from .types import LogImpact

logger = logging.getLogger("AdminLog")


@dataclass
class AuditRecord:
    """One audited change to a device setting."""
    device: str
    field: str
    old: Any
    new: Any
    message: str
    impact: LogImpact = LogImpact.MEDIUM
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'device': self.device,
            'field': self.field,
            'old': _plain(self.old),
            'new': _plain(self.new),
            'message': self.message,
            'impact': self.impact.value,
            'timestamp': self.timestamp.isoformat(),
        }


def _plain(value: Any) -> Any:
    """Make enum values JSON friendly."""
    if hasattr(value, 'name') and hasattr(value, 'value'):
        return value.name
    return value


class AuditSink(ABC):
    """Receives audit records produced by device setting changes."""

    @abstractmethod
    def add(self, record: AuditRecord) -> None:
        pass


class AuditLog(AuditSink):
    """In-memory audit log keeping the most recent records."""

    def __init__(self, max_records: int = 1000):
        self._records: Deque[AuditRecord] = deque(maxlen=max_records)
        self._lock = threading.Lock()

    def add(self, record: AuditRecord) -> None:
        with self._lock:
            self._records.append(record)
        logger.info(f"[{record.impact.value}] {record.message}")

    def records(self, device: Optional[str] = None) -> List[AuditRecord]:
        with self._lock:
            if device is None:
                return list(self._records)
            return [r for r in self._records if r.device == device]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


def emit_best_effort(sink: Optional[AuditSink], records: Iterable[AuditRecord]) -> int:
    """
    Hand records to an audit sink. A failing sink is logged and skipped;
    it never undoes the change the records describe.

    Returns:
        Number of records accepted by the sink
    """
    if sink is None:
        return 0
    accepted = 0
    for record in records:
        try:
            sink.add(record)
            accepted += 1
        except Exception:
            logger.exception(f"Audit sink failed for {record.device}.{record.field}")
    return accepted
