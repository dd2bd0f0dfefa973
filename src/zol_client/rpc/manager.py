"""
manager.py - RPC reliability layer over several Solana endpoints.

Features:
1. Failover: a failed call moves to the next endpoint (wrap-around) and
   retries; once every endpoint was tried the loop backs off linearly.
2. Backpressure: best-effort reads go through a priority queue drained by a
   single loop with a fixed in-flight cap.
3. Freshness token: the latest blockhash is cached briefly so concurrent
   submissions share one fetch.

Writes (send / confirm) bypass the queue but still fail over.

Usage:
    rpc = RpcManager(["https://api.devnet.solana.com", "https://backup.example"])

    token = await rpc.get_freshness_token()
    account = await rpc.fetch_account(address, priority=5)
    signature = await rpc.send_raw_transaction(bytes(signed_tx))
    result = await rpc.confirm_transaction(signature, "confirmed", token.last_valid_block_height)

    await rpc.close()
"""

from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Set

from loguru import logger
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed, Finalized, Processed
from solana.rpc.types import TxOpts
from solders.pubkey import Pubkey
from solders.signature import Signature

from ..cache.store import CacheKeys, CacheOptions, DataCache
from ..domain.events import EndpointSwitched, RpcRequestCompleted, event_header
from ..domain.models.rpc import ConfirmationResult, FreshnessToken, RpcStats
from ..ports.telemetry import ObservabilitySink, safe_emit

RpcOperation = Callable[[Any], Awaitable[Any]]

COMMITMENTS = {"processed": Processed, "confirmed": Confirmed, "finalized": Finalized}

# getMultipleAccounts accepts at most 100 keys per call
MAX_BATCH_SIZE = 100


def to_commitment(value: str) -> Commitment:
    try:
        return COMMITMENTS[value.lower()]
    except KeyError:
        raise ValueError(f"Unknown commitment level: {value!r}") from None


class RpcManagerClosed(RuntimeError):
    """Raised to queued callers when the manager shuts down."""


def _fail_if_pending(future: asyncio.Future) -> None:
    if not future.done():
        future.set_exception(RpcManagerClosed("RpcManager closed"))


def _redact(url: str) -> str:
    # Drop query strings, they often carry API keys
    return url.split("?", 1)[0]


@dataclass
class Endpoint:
    url: str
    client: Any  # AsyncClient or a compatible handle


@dataclass
class QueuedRequest:
    operation: RpcOperation
    priority: int
    future: asyncio.Future
    seq: int


class RpcManager:
    def __init__(
        self,
        endpoints: Sequence[str],
        client_factory: Callable[[str], Any] = AsyncClient,
        cache: Optional[DataCache] = None,
        sink: Optional[ObservabilitySink] = None,
        max_concurrent_requests: int = 10,
        freshness_ttl_seconds: float = 30.0,
        backoff_base_seconds: float = 1.0,
        max_retries: int = 2,
        commitment: str = "confirmed",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not endpoints:
            raise ValueError("RpcManager needs at least one endpoint")
        if max_concurrent_requests <= 0:
            raise ValueError("max_concurrent_requests must be > 0")

        self._endpoints: List[Endpoint] = [Endpoint(url=url, client=client_factory(url)) for url in endpoints]
        self._current = 0
        self.cache = cache or DataCache()
        self.sink = sink
        self.max_concurrent_requests = max_concurrent_requests
        self.freshness_ttl_seconds = freshness_ttl_seconds
        self.backoff_base_seconds = backoff_base_seconds
        self.max_retries = max_retries
        self.commitment = commitment
        self._sleep = sleep

        # Request queue
        self._queue: List[QueuedRequest] = []
        self._seq = itertools.count()
        self._in_flight = 0
        self._slot_released = asyncio.Event()
        self._drain_task: Optional[asyncio.Task] = None
        self._workers: Set[asyncio.Task] = set()
        self._closed = False

        logger.info(
            f"RPC_MANAGER | init | endpoints={len(self._endpoints)} | "
            f"primary={_redact(self._endpoints[0].url)} | max_concurrent={max_concurrent_requests}"
        )

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        cache: Optional[DataCache] = None,
        sink: Optional[ObservabilitySink] = None,
    ) -> "RpcManager":
        """Build from an RpcSettings section."""
        commitment = to_commitment(settings.commitment)

        def factory(url: str) -> AsyncClient:
            return AsyncClient(url, commitment=commitment, timeout=settings.request_timeout_seconds)

        return cls(
            settings.endpoints,
            client_factory=factory,
            cache=cache,
            sink=sink,
            max_concurrent_requests=settings.max_concurrent_requests,
            freshness_ttl_seconds=settings.freshness_ttl_seconds,
            backoff_base_seconds=settings.backoff_base_seconds,
            max_retries=settings.max_retries,
            commitment=settings.commitment,
        )

    # =========================================================================
    # FAILOVER
    # =========================================================================

    @property
    def current_endpoint_index(self) -> int:
        return self._current

    @property
    def current_endpoint(self) -> Endpoint:
        return self._endpoints[self._current]

    def _switch_endpoint(self, reason: str) -> None:
        previous = self._current
        self._current = (self._current + 1) % len(self._endpoints)
        endpoint = self._endpoints[self._current]
        logger.warning(
            f"RPC_FAILOVER | from={previous} | to={self._current} | endpoint={_redact(endpoint.url)}"
        )
        safe_emit(
            self.sink,
            EndpointSwitched(
                **event_header("rpc_manager"),
                from_index=previous,
                to_index=self._current,
                endpoint=_redact(endpoint.url),
                reason=reason,
            ),
        )

    def _record(self, endpoint: Endpoint, started: float, error: Optional[BaseException] = None) -> None:
        safe_emit(
            self.sink,
            RpcRequestCompleted(
                **event_header("rpc_manager"),
                endpoint=_redact(endpoint.url),
                success=error is None,
                duration_ms=(time.perf_counter() - started) * 1000.0,
                error=None if error is None else f"{type(error).__name__}: {error}",
            ),
        )

    async def execute(self, operation: RpcOperation, max_retries: Optional[int] = None) -> Any:
        """
        Run `operation(client)` against the current endpoint with failover.

        Makes at most max_retries + 1 attempts. The last raw error is raised
        unchanged when they are all used up.
        """
        retries = self.max_retries if max_retries is None else max_retries
        start_index = self._current
        last_error: Optional[Exception] = None

        for attempt in range(retries + 1):
            endpoint = self._endpoints[self._current]
            started = time.perf_counter()
            try:
                result = await operation(endpoint.client)
            except Exception as exc:
                last_error = exc
                self._record(endpoint, started, exc)
                logger.warning(
                    f"RPC_FAIL | endpoint={self._current} | attempt={attempt + 1}/{retries + 1} | "
                    f"{type(exc).__name__}: {exc}"
                )
                if attempt >= retries:
                    break
                if len(self._endpoints) > 1:
                    self._switch_endpoint(reason=f"{type(exc).__name__}: {exc}")
                # Every endpoint had a go this round
                if self._current == start_index:
                    delay = self.backoff_base_seconds * (attempt + 1)
                    logger.debug(f"RPC_BACKOFF | {delay:.2f}s")
                    await self._sleep(delay)
                continue

            self._record(endpoint, started)
            return result

        assert last_error is not None
        logger.error(f"RPC_EXHAUSTED | attempts={retries + 1} | {type(last_error).__name__}: {last_error}")
        raise last_error

    # =========================================================================
    # REQUEST QUEUE
    # =========================================================================

    async def queue_request(self, operation: RpcOperation, priority: int = 0) -> Any:
        """
        Enqueue a best-effort read. Higher priority runs first; equal
        priorities keep arrival order.
        """
        if self._closed:
            raise RpcManagerClosed("RpcManager closed")
        future = asyncio.get_running_loop().create_future()
        self._queue.append(QueuedRequest(operation, priority, future, next(self._seq)))
        self._queue.sort(key=lambda r: (-r.priority, r.seq))
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.create_task(self._drain(), name="rpc-queue-drain")
        return await future

    async def _drain(self) -> None:
        while self._queue:
            if self._in_flight >= self.max_concurrent_requests:
                self._slot_released.clear()
                await self._slot_released.wait()
                continue

            request = self._queue.pop(0)
            if request.future.done():
                # Caller went away while queued
                continue

            self._in_flight += 1
            worker = asyncio.create_task(self._run_queued(request), name=f"rpc-request-{request.seq}")
            self._workers.add(worker)
            worker.add_done_callback(self._workers.discard)
            # A worker cancelled before or during its call still settles the caller
            worker.add_done_callback(lambda _task, future=request.future: _fail_if_pending(future))

    async def _run_queued(self, request: QueuedRequest) -> None:
        try:
            result = await self.execute(request.operation)
        except Exception as exc:
            if not request.future.done():
                request.future.set_exception(exc)
        else:
            if not request.future.done():
                request.future.set_result(result)
        finally:
            self._in_flight -= 1
            self._slot_released.set()

    def stats(self) -> RpcStats:
        return RpcStats(
            current_endpoint=self._current,
            total_endpoints=len(self._endpoints),
            queue_length=len(self._queue),
            requests_in_flight=self._in_flight,
        )

    # =========================================================================
    # FRESHNESS TOKEN
    # =========================================================================

    async def get_freshness_token(self, commitment: Optional[str] = None) -> FreshnessToken:
        key = CacheKeys.blockhash()
        cached = self.cache.get(key)
        if cached.value is not None and not cached.is_stale:
            return cached.value

        level = to_commitment(commitment or self.commitment)
        try:
            resp = await self.execute(lambda client: client.get_latest_blockhash(level))
        except Exception:
            self.invalidate_freshness_token()
            raise

        token = FreshnessToken(
            blockhash=str(resp.value.blockhash),
            last_valid_block_height=resp.value.last_valid_block_height,
            captured_at=self.cache.clock(),
        )
        self.cache.set(key, token, CacheOptions(ttl=self.freshness_ttl_seconds, allow_stale=False))
        logger.debug(f"BLOCKHASH | fetched | {token.blockhash[:8]}... | valid_until={token.last_valid_block_height}")
        return token

    def invalidate_freshness_token(self) -> None:
        self.cache.invalidate(CacheKeys.blockhash())

    # =========================================================================
    # NAMED CALLS
    # =========================================================================

    async def get_account_info(self, address: Pubkey, commitment: Optional[str] = None) -> Any:
        """Fresh, unqueued account read. Returns the account or None."""
        level = to_commitment(commitment or self.commitment)
        resp = await self.execute(lambda client: client.get_account_info(address, commitment=level))
        return resp.value

    async def fetch_account(self, address: Pubkey, priority: int = 0) -> Any:
        """Queued account read for display / best-effort paths."""
        level = to_commitment(self.commitment)
        resp = await self.queue_request(
            lambda client: client.get_account_info(address, commitment=level),
            priority=priority,
        )
        return resp.value

    async def batch_fetch(self, addresses: Sequence[Pubkey], commitment: Optional[str] = None) -> List[Any]:
        """
        Read many accounts with as few calls as possible.

        The result lines up with `addresses`; accounts that do not exist are None.
        """
        if not addresses:
            return []
        level = to_commitment(commitment or self.commitment)
        results: List[Any] = []
        keys = list(addresses)
        for i in range(0, len(keys), MAX_BATCH_SIZE):
            chunk = keys[i:i + MAX_BATCH_SIZE]
            resp = await self.execute(lambda client, c=chunk: client.get_multiple_accounts(c, commitment=level))
            values = list(resp.value or [])
            results.extend(values[j] if j < len(values) else None for j in range(len(chunk)))
        return results

    async def get_token_account_balance(self, token_account: Pubkey, commitment: Optional[str] = None) -> int:
        """Raw token amount (base units)."""
        level = to_commitment(commitment or self.commitment)
        resp = await self.execute(lambda client: client.get_token_account_balance(token_account, commitment=level))
        return int(resp.value.amount)

    async def send_raw_transaction(
        self,
        data: bytes,
        skip_preflight: bool = False,
        preflight_commitment: Optional[str] = None,
    ) -> str:
        opts = TxOpts(
            skip_preflight=skip_preflight,
            preflight_commitment=to_commitment(preflight_commitment or self.commitment),
        )
        resp = await self.execute(lambda client: client.send_raw_transaction(data, opts=opts))
        signature = str(resp.value)
        logger.info(f"TX_SENT | sig={signature}")
        return signature

    async def confirm_transaction(
        self,
        signature: str,
        commitment: str = "confirmed",
        last_valid_block_height: Optional[int] = None,
    ) -> ConfirmationResult:
        """
        Wait until `signature` reaches `commitment`.

        An on-chain failure is returned in `err`, not raised.
        """
        sig = Signature.from_string(signature)
        level = to_commitment(commitment)
        resp = await self.execute(
            lambda client: client.confirm_transaction(sig, level, last_valid_block_height=last_valid_block_height)
        )
        status = resp.value[0] if resp.value else None
        err = status.err if status is not None else None
        return ConfirmationResult(signature=signature, commitment=commitment, err=err)

    async def close(self) -> None:
        """Fail queued and in-flight queued reads, then close every client."""
        self._closed = True
        pending, self._queue = self._queue, []
        for request in pending:
            _fail_if_pending(request.future)
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
        workers = list(self._workers)
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        if pending or workers:
            logger.warning(f"RPC_MANAGER | closed with {len(pending)} queued and {len(workers)} in flight")
        for endpoint in self._endpoints:
            close = getattr(endpoint.client, "close", None)
            if close is not None:
                await close()
        logger.info("RPC_MANAGER | closed")
