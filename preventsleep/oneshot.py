"""One-shot mode: keep the host awake for a duration or until a deadline."""
import asyncio
import re
from datetime import datetime, timedelta
from typing import Optional

from loguru import logger

from .errors import ValidationError
from .scheduler.schedule import parse_time

logger = logger.bind(module="oneshot")

# [D.]HH:MM[:SS]
_DURATION_RE = re.compile(r"^\s*(?:(\d+)\.)?(\d{1,2}):(\d{2})(?::(\d{2}))?\s*$")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as '00:30:00', '1:30' or '2.04:00:00'."""
    match = _DURATION_RE.match(text or "")
    if not match:
        raise ValidationError(f"Invalid duration: {text!r} (example: 00:30:00)")
    days, hours, minutes, seconds = (int(g) if g else 0 for g in match.groups())
    if minutes > 59 or seconds > 59:
        raise ValidationError(f"Invalid duration: {text!r} (example: 00:30:00)")
    return timedelta(days=days, hours=hours, minutes=minutes, seconds=seconds)


def parse_deadline(text: str, now: Optional[datetime] = None) -> datetime:
    """Parse an ISO datetime, or a bare time of day meaning its next occurrence."""
    now = now or datetime.now()
    try:
        deadline = datetime.fromisoformat(text.strip())
    except ValueError:
        pass
    else:
        if deadline.tzinfo is not None:
            # Compare in local wall-clock time, like the bare HH:MM form
            deadline = deadline.astimezone().replace(tzinfo=None)
        return deadline

    try:
        at = parse_time(text)
    except ValidationError:
        raise ValidationError(
            f"Invalid datetime or time: {text!r} (example: 2026-09-20T10:30:00 or 17:00)"
        ) from None
    deadline = datetime.combine(now.date(), at)
    if deadline <= now:
        deadline += timedelta(days=1)
    return deadline


def resolve_duration(
    duration: Optional[str] = None,
    until: Optional[str] = None,
    now: Optional[datetime] = None,
) -> timedelta:
    """Turn the --for / --until arguments into a positive duration."""
    if until:
        now = now or datetime.now()
        remaining = parse_deadline(until, now) - now
        if remaining <= timedelta(0):
            raise ValidationError("The --until time must be in the future.")
        return remaining
    if duration:
        remaining = parse_duration(duration)
        if remaining <= timedelta(0):
            raise ValidationError("The --for duration must be positive.")
        return remaining
    raise ValidationError("Either --for or --until is required")


async def prevent_sleep_for(driver, duration: timedelta, keep_display_on: bool = False) -> None:
    """Hold the inhibition for ``duration``, releasing it on exit or cancel."""
    await asyncio.to_thread(driver.apply, True, keep_display_on)
    logger.info(
        f"Preventing system sleep for {duration.total_seconds() / 60:.1f} minutes"
        f"{' (display kept on)' if keep_display_on else ''}"
    )
    try:
        await asyncio.sleep(duration.total_seconds())
    finally:
        await asyncio.to_thread(driver.apply, False, False)
        logger.info("System can now sleep again")
