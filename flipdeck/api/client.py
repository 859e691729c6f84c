"""
Async client for the remote flashcard store (a PostgREST-compatible REST API),
with circuit breaker protection and a local write-through backup.
"""

import asyncio
import json
import logging
import time
from typing import Any

import aiohttp
from pydantic import ValidationError

from flipdeck.exceptions import RemoteError
from flipdeck.models.flashcards import FlashcardSet
from flipdeck.storage.cache import LocalCacheStore
from flipdeck.utils.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerError,
    CircuitState,
)
from flipdeck.utils.structured_logger import RemoteLogger, StructuredLogger

from .rows import CARDS_TABLE, SETS_TABLE, cards_to_rows, set_from_row, set_to_row

log = logging.getLogger(__name__)

# PostgREST answers a single-object request that matched no rows with this code
NO_ROWS_CODE = "PGRST116"
OBJECT_ACCEPT = "application/vnd.pgrst.object+json"


def _is_service_failure(exc: BaseException) -> bool:
    """Client-side (4xx) errors mean the service answered; they don't trip the breaker."""
    if isinstance(exc, asyncio.CancelledError):
        return False
    if isinstance(exc, RemoteError) and exc.status is not None:
        return exc.status >= 500
    return True


class RemoteStoreClient:
    """
    CRUD over the two remote tables: flashcard sets and the cards belonging to them.

    Features:
    - Translation between wire rows and domain models
    - Circuit breaker for remote resilience
    - Best-effort compensation for multi-step card writes
    - Write-through of every save/delete to a local backup cache
    - Connection pooling
    """

    REST_PATH = "/rest/v1/"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        backup: LocalCacheStore | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        events: RemoteLogger | None = None,
        request_timeout: float = 30,
    ):
        """
        Initializes the remote client.

        Args:
            base_url: Root URL of the service, e.g. https://xyz.supabase.co
            api_key: Access key sent as both `apikey` and bearer token.
            backup: Local cache written through on every save/delete.
            circuit_breaker: Breaker guarding every request.
            events: Structured logger for request events.
            request_timeout: Total per-request timeout in seconds.
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.backup = backup
        self.request_timeout = request_timeout

        self._session: aiohttp.ClientSession | None = None
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60,
            success_threshold=2,
            is_failure=_is_service_failure,
        )
        self._events = events or RemoteLogger(
            StructuredLogger("flipdeck.api", enable_json=False)
        )

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    def on_connectivity(self, online: bool) -> None:
        """
        Connectivity subscriber: a restored connection closes the circuit so the
        next call reaches the service instead of waiting out the recovery timeout.
        """
        if online and self._circuit_breaker.state is not CircuitState.CLOSED:
            log.info("Connectivity restored; closing the remote circuit breaker.")
            self._circuit_breaker.reset()

    async def _initialize_session(self) -> None:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=20,
                ttl_dns_cache=300,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={
                    "apikey": self.api_key,
                    "Authorization": f"Bearer {self.api_key}",
                    "Accept": "application/json",
                    "Accept-Encoding": "gzip, deflate",
                },
                timeout=aiohttp.ClientTimeout(
                    total=self.request_timeout, connect=10
                ),
            )

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "RemoteStoreClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        table: str,
        params: dict[str, str] | None = None,
        payload: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        Performs one REST call and returns the decoded JSON body (None when empty).

        Raises:
            RemoteError: For transport failures, non-2xx responses and an open circuit.
        """
        await self._initialize_session()
        url = f"{self.base_url}{self.REST_PATH}{table}"

        try:
            async with self._circuit_breaker:
                start_time = time.monotonic()
                async with self._session.request(
                    method, url, params=params, json=payload, headers=headers
                ) as r:
                    duration_ms = (time.monotonic() - start_time) * 1000
                    if r.status >= 400:
                        raise await self._error_from_response(r, method, table)

                    self._events.request_completed(method, table, r.status, duration_ms)
                    body = await r.text()
                    return json.loads(body) if body.strip() else None

        except CircuitBreakerError as e:
            log.error(f"[red]Circuit breaker is open for remote calls: {e}[/red]")
            raise RemoteError(f"Remote store unavailable: {e}") from e
        except RemoteError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self._events.request_failed(method, table, None, str(e) or type(e).__name__)
            raise RemoteError(
                f"{method} {table} failed: {str(e) or type(e).__name__}"
            ) from e

    async def _error_from_response(
        self, r: aiohttp.ClientResponse, method: str, table: str
    ) -> RemoteError:
        """Builds a RemoteError from a PostgREST error body ({code, message, ...})."""
        text = await r.text()
        code = None
        message = text or r.reason or "Unknown error"
        try:
            body = json.loads(text)
            if isinstance(body, dict):
                code = body.get("code")
                message = body.get("message") or message
        except ValueError:
            pass

        if code != NO_ROWS_CODE:
            self._events.request_failed(method, table, r.status, message)
        return RemoteError(
            f"{method} {table} returned HTTP {r.status}: {message}",
            status=r.status,
            code=code,
        )

    async def _fetch_card_rows(self, set_id: str) -> list[dict[str, Any]]:
        rows = await self._request(
            "GET",
            CARDS_TABLE,
            params={
                "select": "*",
                "set_id": f"eq.{set_id}",
                "order": "created_at.asc",
            },
        )
        if rows is None:
            return []
        if not isinstance(rows, list):
            raise RemoteError(f"Expected a list of card rows for set '{set_id}'.")
        return rows

    @staticmethod
    def _check_set_row(row: Any) -> dict[str, Any]:
        """Rejects anything that is not an object carrying an id."""
        if not isinstance(row, dict) or row.get("id") in (None, ""):
            raise RemoteError(f"Malformed set row from the remote store: {row!r:.200}")
        return row

    @staticmethod
    def _assemble(row: dict[str, Any], card_rows: list[dict[str, Any]]) -> FlashcardSet:
        try:
            return set_from_row(row, card_rows)
        except (AttributeError, KeyError, TypeError, ValueError, ValidationError) as e:
            raise RemoteError(f"Malformed set row '{row['id']}': {e}") from e

    # Public API Methods
    async def list_sets(self) -> list[FlashcardSet]:
        """
        Fetches every set (newest first) together with its cards (oldest first).
        """
        rows = await self._request(
            "GET", SETS_TABLE, params={"select": "*", "order": "created_at.desc"}
        )
        if rows is None:
            rows = []
        if not isinstance(rows, list):
            raise RemoteError("Expected a list of set rows from the remote store.")
        rows = [self._check_set_row(row) for row in rows]
        card_lists = await asyncio.gather(
            *(self._fetch_card_rows(str(row["id"])) for row in rows)
        )
        return [self._assemble(row, cards) for row, cards in zip(rows, card_lists)]

    async def get_set(self, set_id: str) -> FlashcardSet | None:
        """Fetches one set with its cards; returns None if the id does not exist."""
        try:
            row = await self._request(
                "GET",
                SETS_TABLE,
                params={"select": "*", "id": f"eq.{set_id}"},
                headers={"Accept": OBJECT_ACCEPT},
            )
        except RemoteError as e:
            if e.code == NO_ROWS_CODE:
                return None
            raise

        if not row:
            return None
        row = self._check_set_row(row)
        return self._assemble(row, await self._fetch_card_rows(set_id))

    async def save_set(self, flashcard_set: FlashcardSet) -> None:
        """
        Upserts the set row, then replaces all of its card rows.

        The backup cache is updated whether or not the remote write succeeds;
        remote failures still propagate.
        """
        try:
            await self._request(
                "POST",
                SETS_TABLE,
                payload=set_to_row(flashcard_set),
                headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
            )

            snapshot = await self._fetch_card_rows(flashcard_set.id)
            await self._request(
                "DELETE", CARDS_TABLE, params={"set_id": f"eq.{flashcard_set.id}"}
            )

            card_rows = cards_to_rows(flashcard_set)
            if card_rows:
                try:
                    await self._request(
                        "POST",
                        CARDS_TABLE,
                        payload=card_rows,
                        headers={"Prefer": "return=minimal"},
                    )
                except RemoteError:
                    await self._restore_cards("save_set", flashcard_set.id, snapshot)
                    raise
            log.debug(
                f"Saved set '{flashcard_set.id}' with {len(card_rows)} cards remotely."
            )
        except RemoteError as e:
            log.error(f"Error saving set '{flashcard_set.id}': {e}")
            raise
        finally:
            if self.backup:
                self.backup.upsert(flashcard_set)

    async def delete_set(self, set_id: str) -> None:
        """
        Deletes the set's card rows, then the set row. The backup cache entry
        is removed whether or not the remote delete succeeds.
        """
        try:
            snapshot = await self._fetch_card_rows(set_id)
            await self._request("DELETE", CARDS_TABLE, params={"set_id": f"eq.{set_id}"})
            try:
                await self._request("DELETE", SETS_TABLE, params={"id": f"eq.{set_id}"})
            except RemoteError:
                await self._restore_cards("delete_set", set_id, snapshot)
                raise
            log.debug(f"Deleted set '{set_id}' remotely.")
        except RemoteError as e:
            log.error(f"Error deleting set '{set_id}': {e}")
            raise
        finally:
            if self.backup:
                self.backup.remove(set_id)

    async def _restore_cards(
        self, operation: str, set_id: str, snapshot: list[dict[str, Any]]
    ) -> None:
        """Re-inserts previously read card rows after a partially failed write."""
        if not snapshot:
            return
        ok = True
        try:
            await self._request(
                "POST", CARDS_TABLE, payload=snapshot, headers={"Prefer": "return=minimal"}
            )
        except RemoteError as e:
            ok = False
            log.error(
                f"[red]Could not restore {len(snapshot)} cards of set '{set_id}' "
                f"after a failed {operation}: {e}[/red]"
            )
        self._events.compensation(operation, set_id, len(snapshot), ok)

    async def count_sets(self) -> int:
        rows = await self._request("GET", SETS_TABLE, params={"select": "id"})
        return len(rows or [])

    async def ping(self) -> bool:
        """Returns True if the remote store answers a minimal query."""
        try:
            await self._request(
                "GET", SETS_TABLE, params={"select": "id", "limit": "1"}
            )
            return True
        except RemoteError as e:
            log.debug(f"Remote ping failed: {e}")
            return False
