import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict


@dataclass
class Event:
    id: str
    timestamp: datetime
    source: str


def event_header(source: str) -> Dict[str, Any]:
    """Common Event fields for a freshly emitted event."""
    return {"id": str(uuid.uuid4()), "timestamp": datetime.now(timezone.utc), "source": source}
