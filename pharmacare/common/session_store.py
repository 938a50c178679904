"""Session repositories used by the conversation flow.

Two implementations share the :class:`SessionStore` interface:

* :class:`InMemorySessionStore` keeps sessions in a process-wide dict. It is
  the default and loses every session (and in-progress cart) on restart.
* :class:`DynamoDBSessionStore` persists each session as a single item with
  ``PK = SESSION#<phone>`` and ``SK = STATE``.

Neither store coordinates between processes; within a process the
conversation flow serializes turns per user before touching the store.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from pharmacare.common.config import Settings
from pharmacare.common.conversation_state import (
    ConversationState,
    merge_conversation_state,
)
from pharmacare.common.helpers.dynamodb_helper import DynamoDBHelper
from pharmacare.common.logger import custom_logger, mask_phone

logger = custom_logger()

_SESSION_PK_PREFIX = "SESSION#"
_SESSION_SORT_KEY = "STATE"


class SessionStore(ABC):
    @abstractmethod
    def get(self, user_id: str) -> ConversationState:
        """Return the session for ``user_id``, creating a default one if absent."""

    @abstractmethod
    def update(self, user_id: str, **fields: Any) -> ConversationState:
        """Merge ``fields`` into the session and return the new value."""

    @abstractmethod
    def count(self) -> int:
        """Number of sessions currently held by the store."""

    def clear_cart(self, user_id: str) -> ConversationState:
        return self.update(user_id, cart=[])


class InMemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self._sessions: Dict[str, ConversationState] = {}
        self._guard = threading.Lock()

    def get(self, user_id: str) -> ConversationState:
        with self._guard:
            session = self._sessions.get(user_id)
            if session is None:
                session = ConversationState(phone_number=user_id)
                self._sessions[user_id] = session
                logger.debug(
                    "Created new session", extra={"user": mask_phone(user_id)}
                )
            return session

    def update(self, user_id: str, **fields: Any) -> ConversationState:
        current = self.get(user_id)
        with self._guard:
            updated = merge_conversation_state(current, fields)
            self._sessions[user_id] = updated
            return updated

    def count(self) -> int:
        with self._guard:
            return len(self._sessions)


class DynamoDBSessionStore(SessionStore):
    def __init__(self, dynamodb_helper: DynamoDBHelper) -> None:
        self.dynamodb_helper = dynamodb_helper

    def _load(self, user_id: str) -> Optional[Dict[str, Any]]:
        item = self.dynamodb_helper.get_item_by_pk_and_sk(
            f"{_SESSION_PK_PREFIX}{user_id}", _SESSION_SORT_KEY
        )
        return item or None

    def get(self, user_id: str) -> ConversationState:
        item = self._load(user_id)
        session = ConversationState.from_item(user_id, item)
        if item is None:
            self.dynamodb_helper.put_item(session.as_item())
            logger.debug(
                "Created new persisted session", extra={"user": mask_phone(user_id)}
            )
        return session

    def update(self, user_id: str, **fields: Any) -> ConversationState:
        current = ConversationState.from_item(user_id, self._load(user_id))
        updated = merge_conversation_state(current, fields)
        self.dynamodb_helper.put_item(updated.as_item())
        return updated

    def count(self) -> int:
        return self.dynamodb_helper.count_items_by_pk_prefix(_SESSION_PK_PREFIX)


def build_session_store(settings: Settings) -> SessionStore:
    if settings.session_store == "dynamodb":
        if not settings.dynamodb_table:
            raise RuntimeError("DYNAMODB_TABLE is required when SESSION_STORE=dynamodb")
        return DynamoDBSessionStore(
            DynamoDBHelper(
                table_name=settings.dynamodb_table,
                endpoint_url=settings.endpoint_url,
            )
        )
    if settings.session_store != "memory":
        logger.warning(
            "Unknown SESSION_STORE value; using in-memory sessions",
            extra={"session_store": settings.session_store},
        )
    return InMemorySessionStore()
