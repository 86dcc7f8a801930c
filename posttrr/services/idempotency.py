"""Idempotency service so a retried broadcast is not sent twice."""

import hashlib
from datetime import timedelta
from typing import Any
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from posttrr.database import as_utc, utcnow
from posttrr.errors import api_error
from posttrr.models.idempotency import IdempotencyKey

# Idempotency keys expire after 24 hours
IDEMPOTENCY_TTL = timedelta(hours=24)


class IdempotencyService:
    """Tracks ``Idempotency-Key`` headers on write operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def hash_request_body(body: bytes) -> str:
        """Generate SHA256 hash of request body."""
        return hashlib.sha256(body).hexdigest()

    async def _get(self, key: str, user_id: UUID, lock: bool = False) -> IdempotencyKey | None:
        query = (
            select(IdempotencyKey)
            .where(IdempotencyKey.key == key)
            .where(IdempotencyKey.user_id == user_id)
        )
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def acquire_lock(
        self,
        key: str,
        user_id: UUID,
        method: str,
        path: str,
        request_hash: str,
    ) -> tuple[bool, dict | None]:
        """
        Attempt to acquire idempotency lock.

        Returns:
            (True, None) - Lock acquired, proceed with request
            (False, cached_response) - Request already completed, return cached

        Raises:
            HTTPException(409) - Conflict (different payload or in-progress)
        """
        now = utcnow()

        try:
            self.db.add(
                IdempotencyKey(
                    key=key,
                    user_id=user_id,
                    method=method,
                    path=path,
                    request_hash=request_hash,
                    status="processing",
                    created_at=now,
                )
            )
            await self.db.commit()
            return (True, None)
        except IntegrityError:
            await self.db.rollback()

        record = await self._get(key, user_id, lock=True)
        if not record:
            raise api_error(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "INTERNAL_ERROR",
                "Idempotency key state error",
            )

        # Expired keys may be reused
        if as_utc(record.created_at) < now - IDEMPOTENCY_TTL:
            record.method = method
            record.path = path
            record.request_hash = request_hash
            record.status = "processing"
            record.response_body = None
            record.response_status = None
            record.created_at = now
            await self.db.commit()
            return (True, None)

        if (
            record.method != method
            or record.path != path
            or record.request_hash != request_hash
        ):
            raise api_error(
                status.HTTP_409_CONFLICT,
                "IDEMPOTENCY_CONFLICT",
                "Idempotency key reused with different request",
            )

        if record.status == "processing":
            raise api_error(
                status.HTTP_409_CONFLICT,
                "IDEMPOTENCY_IN_PROGRESS",
                "Request with this idempotency key is currently processing",
            )

        if record.status == "completed":
            return (
                False,
                {
                    "body": record.response_body,
                    "status": record.response_status,
                },
            )

        # FAILED status - allow retry
        record.status = "processing"
        record.created_at = now
        await self.db.commit()
        return (True, None)

    async def complete(
        self,
        key: str,
        user_id: UUID,
        response: dict[str, Any],
        status_code: int,
    ) -> None:
        """Mark request as completed with cached response."""
        record = await self._get(key, user_id)
        if record:
            record.status = "completed"
            record.response_body = response
            record.response_status = status_code
            record.completed_at = utcnow()
            await self.db.commit()

    async def fail(self, key: str, user_id: UUID) -> None:
        """Mark request as failed (allows retry with same key)."""
        record = await self._get(key, user_id)
        if record:
            record.status = "failed"
            await self.db.commit()
