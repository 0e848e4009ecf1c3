"""
LexRAG - Chat Log Repository
=============================
Async store of question / answer exchanges backed by MongoDB via
``motor``.  The conversation layer writes one document per answered
question, with the retrieval metrics of that turn under
``context.retrieval_metrics``; the quality evaluator reads recent logs
back to bucket retrieval issues.

Collection schema (``chat_logs``)::

    {
        "user_id": str | None,
        "question": str,
        "answer": str,
        "context": {"retrieval_metrics": {...}, ...},
        "model": str | None,
        "created_at": datetime
    }
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

import motor.motor_asyncio

from lexrag.config.settings import settings
from lexrag.src.core.exceptions import ConfigurationError
from lexrag.src.core.models import ChatLogRecord, RetrievalMetrics
from lexrag.src.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class ChatLogSource(Protocol):
    """Anything that can return recent chat logs, newest first."""

    async def fetch_recent(self, limit: int, since: datetime | None = None) -> list[ChatLogRecord]: ...


# ══════════════════════════════════════════════════════════════════════
#  MONGODB SINGLETON CLIENT
# ══════════════════════════════════════════════════════════════════════

_mongo_client: motor.motor_asyncio.AsyncIOMotorClient | None = None


def _get_mongo_client() -> motor.motor_asyncio.AsyncIOMotorClient:
    """Return (or create) the module-level async MongoDB client."""
    global _mongo_client
    if _mongo_client is None:
        if settings.MONGO_URI is None:
            raise ConfigurationError("MONGO_URI")
        _mongo_client = motor.motor_asyncio.AsyncIOMotorClient(settings.MONGO_URI.get_secret_value())
        logger.info("MongoDB async client created (singleton).")
    return _mongo_client


class ChatLogRepository:
    """
    Append and read chat logs.

    Parameters
    ----------
    collection
        Optional pre-built motor collection (tests, custom databases).
        Defaults to ``settings.CHAT_LOG_COLLECTION`` in ``settings.MONGO_DB_NAME``.
    """

    __slots__ = ("_collection",)

    def __init__(self, collection: Any | None = None) -> None:
        if collection is None:
            client = _get_mongo_client()
            collection = client[settings.MONGO_DB_NAME][settings.CHAT_LOG_COLLECTION]
        self._collection = collection


    async def add_log(self, question: str, answer: str, context: dict[str, Any] | None = None, model: str | None = None, user_id: str | None = None, retrieval_metrics: RetrievalMetrics | None = None) -> str:
        """
        Store one exchange.  Returns the inserted document id.

        ``retrieval_metrics``, when given, is stored under
        ``context["retrieval_metrics"]``.
        """
        payload_context = dict(context or {})
        if retrieval_metrics is not None:
            payload_context["retrieval_metrics"] = retrieval_metrics.model_dump(mode="json")

        document = {"user_id": user_id, "question": question, "answer": answer, "context": payload_context, "model": model, "created_at": datetime.now(timezone.utc)}
        result = await self._collection.insert_one(document)
        logger.debug("[LOGS] Stored chat log %s.", result.inserted_id)
        return str(result.inserted_id)


    async def fetch_recent(self, limit: int, since: datetime | None = None) -> list[ChatLogRecord]:
        """Return up to *limit* logs, newest first, optionally on or after *since*."""
        query: dict[str, Any] = {"created_at": {"$gte": since}} if since is not None else {}
        cursor = self._collection.find(query, {"_id": 0}).sort("created_at", -1).limit(limit)
        documents = await cursor.to_list(length=limit)
        return [ChatLogRecord.model_validate(doc) for doc in documents]
