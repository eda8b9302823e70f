from datetime import datetime, timezone
import time


def get_current_timestamp() -> int:
    """Get current time as millisecond timestamp"""
    return int(time.time() * 1000)

def from_timestamp(timestamp: int) -> datetime:
    """Convert millisecond timestamp to UTC datetime"""
    return datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc)

def format_timestamp(timestamp: int | None) -> str:
    """Human readable UTC time for status reports"""
    if timestamp is None:
        return "never"
    return from_timestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S UTC")

def format_duration(milliseconds: int) -> str:
    """Format an uptime in milliseconds as ``1d 2h 3m 4s``"""
    seconds = milliseconds // 1000
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)

    parts = []
    if days:
        parts.append(f"{days}d")
    if hours or days:
        parts.append(f"{hours}h")
    if minutes or hours or days:
        parts.append(f"{minutes}m")
    parts.append(f"{seconds}s")
    return " ".join(parts)
