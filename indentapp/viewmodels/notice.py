from __future__ import annotations

from dataclasses import dataclass


SUCCESS = "success"
WARNING = "warning"
DANGER = "danger"


@dataclass(frozen=True)
class Notice:
    """A transient message for the user, rendered as a flash toast."""

    level: str
    message: str


class NoticeLog:
    def __init__(self) -> None:
        self._notices: list[Notice] = []

    def raise_notice(self, level: str, message: str) -> Notice:
        notice = Notice(level=level, message=message)
        self._notices.append(notice)
        return notice

    def success(self, message: str) -> Notice:
        return self.raise_notice(SUCCESS, message)

    def warning(self, message: str) -> Notice:
        return self.raise_notice(WARNING, message)

    def danger(self, message: str) -> Notice:
        return self.raise_notice(DANGER, message)

    def pop_all(self) -> list[Notice]:
        notices, self._notices = self._notices, []
        return notices

    def __len__(self) -> int:
        return len(self._notices)
