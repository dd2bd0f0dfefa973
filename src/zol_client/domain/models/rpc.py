from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class FreshnessToken:
    """Recent blockhash every submission must attach."""
    blockhash: str
    last_valid_block_height: int
    captured_at: float  # monotonic seconds, same clock as the cache


@dataclass(frozen=True)
class ConfirmationResult:
    signature: str
    commitment: str
    err: Optional[Any] = None

    @property
    def is_success(self) -> bool:
        return self.err is None


@dataclass(frozen=True)
class RpcStats:
    current_endpoint: int
    total_endpoints: int
    queue_length: int
    requests_in_flight: int
