"""Small helpers shared across the bridge."""

import uuid
from datetime import datetime, timezone


def generate_job_id(kind: str = "") -> str:
    """Short id for a reply job, e.g. ``chat-1a2b3c4d``."""
    unique_part = uuid.uuid4().hex[:8]
    if kind:
        return f"{kind}-{unique_part}"
    return unique_part


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with a ``Z`` suffix, as the health check reports it."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
