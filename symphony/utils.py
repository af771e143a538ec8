"""Filesystem and timestamp helpers."""

import os
from datetime import datetime, timedelta, timezone
from typing import Optional


def atomic_write_text(path: str, content: str):
    """Write *content* to *path* so readers never see a partial file.

    The content goes to a sibling ``<path>.tmp.<pid>`` file first, which is
    then renamed over the target. Rename is atomic on one filesystem, so a
    crash leaves either the old document or the new one, plus at most a
    stray temp file.
    """
    tmp_path = f"{path}.tmp.{os.getpid()}"
    try:
        with open(tmp_path, 'w', encoding='utf-8') as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
        except OSError:
            pass
        raise


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a ``Z`` suffix."""
    return moment.astimezone(timezone.utc).isoformat(
        timespec='milliseconds').replace('+00:00', 'Z')


def utc_now_iso() -> str:
    return to_iso(utc_now())


def iso_after_ms(delay_ms: int, start: Optional[datetime] = None) -> str:
    return to_iso((start or utc_now()) + timedelta(milliseconds=delay_ms))


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def elapsed_ms(since: Optional[str], until: Optional[datetime] = None) -> int:
    """Milliseconds from the ISO timestamp *since* to *until* (default now).

    Unknown or unparseable start times count as zero.
    """
    start = parse_iso(since)
    if start is None:
        return 0
    delta = (until or utc_now()) - start
    return max(0, int(delta.total_seconds() * 1000))
