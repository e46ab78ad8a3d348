"""
Interview record store

Persists completed turns and reloads recent history when a session
(re)connects. The store is an external collaborator: failures are logged
by the caller and never end a voice session.

Implementations:
- HTTPInterviewStore: REST API at {RECORD_STORE_URL}/interviews/{id}/messages
- InMemoryInterviewStore: free mode (no interview id) and tests

Environment Variables:
- RECORD_STORE_URL: Record store base URL (unset = in-memory store)
- RECORD_STORE_API_KEY: Optional key, sent as "Authorization: Key <key>"
"""

import os
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from interview_voice.config.logging_config import get_logger
from interview_voice.llm import LLMMessage

logger = get_logger(__name__)

RECORD_STORE_URL = os.getenv('RECORD_STORE_URL')
RECORD_STORE_API_KEY = os.getenv('RECORD_STORE_API_KEY') or os.getenv('SERVICE_API_KEY')


class StoreError(Exception):
    """Record store request failed."""


def turn_messages(user_text: Optional[str], assistant_text: str) -> list[LLMMessage]:
    messages = [LLMMessage(role="user", content=user_text)] if user_text is not None else []
    messages.append(LLMMessage(role="assistant", content=assistant_text))
    return messages


class InterviewStore(ABC):

    @abstractmethod
    async def load_history(self, interview_id: str, limit: int) -> list[LLMMessage]:
        """
        Most recent user/assistant messages, oldest first.

        Raises:
            StoreError: Store unreachable or returned an invalid response
        """
        pass

    @abstractmethod
    async def append_turn(self, interview_id: str, user_text: Optional[str], assistant_text: str) -> None:
        """
        Record one completed exchange (user_text is None for turns the
        interviewer started on its own).

        Raises:
            StoreError: Write failed
        """
        pass

    async def close(self) -> None:
        pass


class InMemoryInterviewStore(InterviewStore):
    """Process-local store keyed by interview id."""

    def __init__(self):
        self._messages: dict[str, list[LLMMessage]] = {}

    async def load_history(self, interview_id: str, limit: int) -> list[LLMMessage]:
        messages = self._messages.get(interview_id, [])
        if limit <= 0:
            return []
        return list(messages[-limit:])

    async def append_turn(self, interview_id: str, user_text: Optional[str], assistant_text: str) -> None:
        self._messages.setdefault(interview_id, []).extend(turn_messages(user_text, assistant_text))


class HTTPInterviewStore(InterviewStore):
    """
    REST-backed store.

    GET  /interviews/{id}/messages?limit=N → [{"role", "content", "created_at"?}, ...]
         rows are ordered by created_at when every row carries it
    POST /interviews/{id}/messages          {"messages": [{"role", "content"}, ...]}
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_s: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or RECORD_STORE_URL or '').rstrip('/')
        if not self.base_url:
            raise ValueError("RECORD_STORE_URL is not set")
        self.api_key = api_key if api_key is not None else RECORD_STORE_API_KEY
        self.timeout = timeout_s
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        logger.info(f"🗄️ HTTPInterviewStore initialized (url={self.base_url})")

    async def load_history(self, interview_id: str, limit: int) -> list[LLMMessage]:
        if limit <= 0:
            return []
        client = await self._ensure_client()
        try:
            response = await client.get(
                f"{self.base_url}/interviews/{interview_id}/messages",
                params={'limit': limit},
                headers=self._headers(),
            )
            response.raise_for_status()
            rows = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise StoreError(f"failed to load history for {interview_id}: {e}") from e

        if not isinstance(rows, list):
            raise StoreError(f"unexpected history payload for {interview_id}")

        if rows and all(isinstance(r, dict) and 'created_at' in r for r in rows):
            rows = sorted(rows, key=lambda r: r['created_at'])

        history = [
            LLMMessage(role=row['role'], content=row['content'])
            for row in rows
            if isinstance(row, dict) and row.get('role') in ('user', 'assistant') and row.get('content')
        ]
        logger.debug(f"🗄️ Loaded {len(history)} messages for interview {interview_id}")
        return history[-limit:]

    async def append_turn(self, interview_id: str, user_text: Optional[str], assistant_text: str) -> None:
        client = await self._ensure_client()
        payload = {'messages': [m.model_dump() for m in turn_messages(user_text, assistant_text)]}
        try:
            response = await client.post(
                f"{self.base_url}/interviews/{interview_id}/messages",
                json=payload,
                headers=self._headers(),
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise StoreError(f"failed to append turn for {interview_id}: {e}") from e

    def _headers(self) -> dict:
        if self.api_key:
            return {'Authorization': f"Key {self.api_key}"}
        return {}

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client


def create_interview_store() -> InterviewStore:
    """HTTP store when RECORD_STORE_URL is set, otherwise in-memory."""
    if RECORD_STORE_URL:
        return HTTPInterviewStore()
    logger.warning("🗄️ RECORD_STORE_URL not set, using in-memory interview store")
    return InMemoryInterviewStore()


# Singleton instance
_interview_store: Optional[InterviewStore] = None


def get_interview_store() -> InterviewStore:
    global _interview_store
    if _interview_store is None:
        _interview_store = create_interview_store()
    return _interview_store
