from __future__ import annotations

from urllib.parse import urlparse

from flask import flash

from indentapp.viewmodels.notice import SUCCESS, NoticeLog


def flash_notices(notices: NoticeLog, *, include_success: bool = True) -> None:
    for notice in notices.pop_all():
        if notice.level == SUCCESS and not include_success:
            continue
        flash(notice.message, notice.level)


def safe_next(target: str | None, fallback: str) -> str:
    """Only follow local redirect targets."""

    if not target:
        return fallback
    parsed = urlparse(target)
    if parsed.scheme or parsed.netloc or not target.startswith("/") or target.startswith("//"):
        return fallback
    return target
