import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List

logger = logging.getLogger(__name__)


@dataclass
class Notice:
    id: int
    level: str  # 'success' or 'error'
    message: str
    created_at: datetime = field(default_factory=datetime.now)


class Notifier:
    """
    User-facing notices (the toast surface).

    Notices stay until dismissed; every notice is also written to the log.
    """

    def __init__(self):
        self.notices: List[Notice] = []
        self._next_id = 1

    def _push(self, level: str, message: str) -> Notice:
        notice = Notice(id=self._next_id, level=level, message=message)
        self._next_id += 1
        self.notices.append(notice)
        return notice

    def success(self, message: str) -> Notice:
        logger.info(f"[notice] {message}")
        return self._push("success", message)

    def error(self, message: str) -> Notice:
        logger.warning(f"[notice] {message}")
        return self._push("error", message)

    def dismiss(self, notice_id: int) -> bool:
        for i, notice in enumerate(self.notices):
            if notice.id == notice_id:
                del self.notices[i]
                return True
        return False

    def messages(self, level: str = None) -> List[str]:
        return [n.message for n in self.notices if level is None or n.level == level]
