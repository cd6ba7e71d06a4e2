"""
Web search for the web_search tool.

Two backends return the same normalized (title, snippet, url) triples:

- ExaSearchClient: calls the Exa search API directly.
- DelegatedSearchClient: asks the supervising process to run the search
  (SEARCH_REQUEST signal) and waits for it to write the results back on the
  supervisor input channel. Waits are bounded; an unanswered request is
  abandoned and reported as a timeout.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Protocol

import httpx

from tool_modules.aa_meet_bridge.src.config import SearchConfig
from tool_modules.aa_meet_bridge.src.errors import SearchError, SearchTimeoutError
from tool_modules.aa_meet_bridge.src.signals import MeetingSignal, SignalChannel

logger = logging.getLogger(__name__)

MIN_RESULTS = 1
MAX_RESULTS = 5
DEFAULT_RESULTS = 3


@dataclass(frozen=True)
class SearchResult:
    title: str
    snippet: str
    url: str


def clamp_count(count: Optional[int]) -> int:
    """Clamp a requested result count to what the provider supports."""
    try:
        value = int(count) if count is not None else DEFAULT_RESULTS
    except (TypeError, ValueError):
        value = DEFAULT_RESULTS
    return max(MIN_RESULTS, min(MAX_RESULTS, value))


def normalize_results(raw_results: list, count: int) -> List[SearchResult]:
    """
    Map provider-shaped results to SearchResult triples.

    Accepts Exa's shape (summary/text) as well as the simpler
    (snippet) shape a supervisor may send back.
    """
    results = []
    for raw in (raw_results or [])[:count]:
        if not isinstance(raw, dict):
            continue
        results.append(
            SearchResult(
                title=raw.get("title") or "",
                snippet=raw.get("snippet") or raw.get("summary") or raw.get("text") or "",
                url=raw.get("url") or "",
            )
        )
    return results


class SearchClient(Protocol):
    async def search(self, query: str, count: int = DEFAULT_RESULTS) -> List[SearchResult]: ...


class ExaSearchClient:
    """HTTP client for the Exa search API."""

    def __init__(self, config: SearchConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client or httpx.AsyncClient(timeout=config.timeout_seconds)
        self._owns_client = client is None

    def build_payload(self, query: str, count: int) -> dict:
        return {
            "query": query,
            "numResults": count,
            "type": "auto",
            "userLocation": self.config.location,
            "contents": {"summary": {"query": query}},
        }

    async def search(self, query: str, count: int = DEFAULT_RESULTS) -> List[SearchResult]:
        """
        Run a web search.

        Args:
            query: Search query
            count: Number of results wanted (clamped to 1-5)

        Returns:
            Up to `count` normalized results, best first

        Raises:
            SearchError: On transport failure or a provider error
        """
        count = clamp_count(count)
        headers = {"x-api-key": self.config.api_key}

        try:
            response = await self._client.post(
                self.config.url, json=self.build_payload(query, count), headers=headers
            )
            data = response.json()
        except httpx.HTTPError as e:
            raise SearchError(f"Search request failed: {e}") from e
        except ValueError as e:
            raise SearchError(f"Search returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise SearchError("Search returned an unexpected body")
        if data.get("error"):
            raise SearchError(str(data["error"]))
        if response.status_code >= 400:
            raise SearchError(f"Search returned {response.status_code}")

        results = normalize_results(data.get("results", []), count)
        logger.info(f'[SEARCH] 🔍 "{query}" -> {len(results)} result(s)')
        return results

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


@dataclass
class PendingSearch:
    """A search waiting for the supervisor's answer."""

    request_id: str
    query: str
    future: asyncio.Future
    created_at: datetime = field(default_factory=datetime.now)


class PendingSearchRegistry:
    """Maps request ids to futures resolved by injected results."""

    def __init__(self):
        self._pending: Dict[str, PendingSearch] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: str) -> bool:
        return request_id in self._pending

    def register(self, query: str, request_id: Optional[str] = None) -> PendingSearch:
        request_id = request_id or uuid.uuid4().hex[:12]
        loop = asyncio.get_running_loop()
        pending = PendingSearch(request_id=request_id, query=query, future=loop.create_future())
        self._pending[request_id] = pending
        return pending

    def resolve(self, request_id: str, results: list) -> bool:
        """Complete a pending search. Returns False for unknown or finished ids."""
        pending = self._pending.pop(request_id, None)
        if pending is None:
            logger.debug(f"[SEARCH] No pending search with id {request_id}")
            return False
        if pending.future.done():
            return False
        pending.future.set_result(results)
        logger.info(f"[SEARCH] ✅ Received search results for {request_id}")
        return True

    def discard(self, request_id: str) -> None:
        pending = self._pending.pop(request_id, None)
        if pending and not pending.future.done():
            pending.future.cancel()

    async def wait(self, pending: PendingSearch, timeout: float) -> list:
        """Wait for results; abandon the request after `timeout` seconds."""
        try:
            return await asyncio.wait_for(pending.future, timeout=timeout)
        except asyncio.TimeoutError:
            raise SearchTimeoutError(pending.request_id, timeout)
        finally:
            self._pending.pop(pending.request_id, None)

    def cancel_all(self) -> None:
        for request_id in list(self._pending):
            self.discard(request_id)


class DelegatedSearchClient:
    """Search performed by the supervising process."""

    def __init__(
        self,
        signals: SignalChannel,
        registry: PendingSearchRegistry,
        timeout: float = 30.0,
    ):
        self.signals = signals
        self.registry = registry
        self.timeout = timeout

    async def search(self, query: str, count: int = DEFAULT_RESULTS) -> List[SearchResult]:
        count = clamp_count(count)
        pending = self.registry.register(query)

        logger.info(f'[SEARCH] 📨 Delegating search {pending.request_id}: "{query}"')
        self.signals.emit(
            MeetingSignal.SEARCH_REQUEST,
            id=pending.request_id,
            query=query,
            count=count,
        )

        raw_results = await self.registry.wait(pending, self.timeout)
        return normalize_results(raw_results, count)


def build_search_client(
    config: SearchConfig,
    signals: SignalChannel,
    registry: PendingSearchRegistry,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Optional[SearchClient]:
    """Pick the search backend for the configuration, or None if search is off."""
    if config.mode == "delegate":
        return DelegatedSearchClient(signals, registry, timeout=config.timeout_seconds)
    if config.api_key:
        return ExaSearchClient(config, client=http_client)
    return None
