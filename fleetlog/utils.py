from datetime import datetime, timezone


def normalize_plate(plate: str) -> str:
    return plate.strip().upper()


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
