"""
Matrix session storage in Redis.
"""

import json
import uuid
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional, Tuple
import redis.asyncio as aioredis
from redis.exceptions import WatchError

from variant_matrix.core.matrix import VariantMatrix, MatrixOptions

logger = logging.getLogger(__name__)


class SessionNotFoundError(LookupError):
    """Matrix session does not exist or has expired."""
    pass


class SessionConflictError(RuntimeError):
    """Concurrent writers kept invalidating an update."""
    pass


def _now() -> str:
    return datetime.utcnow().isoformat()


@dataclass
class MatrixSession:
    """A persisted variant matrix plus bookkeeping."""
    session_id: str
    matrix: VariantMatrix
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def to_json(self) -> str:
        return json.dumps({
            "session_id": self.session_id,
            "matrix": self.matrix.to_dict(),
            "created_at": self.created_at,
            "updated_at": self.updated_at
        })

    @classmethod
    def from_json(cls, raw: str, options: Optional[MatrixOptions] = None) -> "MatrixSession":
        data = json.loads(raw)
        return cls(
            session_id=data["session_id"],
            matrix=VariantMatrix.from_dict(data.get("matrix", {}), options),
            created_at=data.get("created_at") or _now(),
            updated_at=data.get("updated_at") or _now()
        )


class RedisSessionStore:
    """
    Store matrix sessions as JSON strings with a TTL.

    A session is always written whole, so readers never see a row whose
    fields were only partly updated. Edits go through update(), which
    retries when another writer changed the session in between.
    """

    def __init__(
        self,
        redis_client: aioredis.Redis,
        options: Optional[MatrixOptions] = None,
        ttl_seconds: int = 86400,
        max_retries: int = 5
    ):
        """
        Initialize session store.

        Args:
            redis_client: Redis async client
            options: Matrix options applied to loaded sessions
            ttl_seconds: Session lifetime, refreshed on every save
            max_retries: Attempts per update before giving up on conflicts
        """
        self.redis = redis_client
        self.options = options or MatrixOptions()
        self.ttl_seconds = ttl_seconds
        self.max_retries = max_retries

    @staticmethod
    def _key(session_id: str) -> str:
        return f"matrix:{session_id}:session"

    async def create(self, matrix: VariantMatrix) -> MatrixSession:
        """Persist a new session for `matrix`."""
        matrix.options = self.options
        session = MatrixSession(session_id=str(uuid.uuid4()), matrix=matrix)
        await self.save(session)
        logger.info(f"Created matrix session {session.session_id} for '{matrix.product_name}'")
        return session

    async def get(self, session_id: str) -> MatrixSession:
        """
        Load a session.

        Raises:
            SessionNotFoundError: Unknown or expired session
        """
        raw = await self.redis.get(self._key(session_id))
        if raw is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        if isinstance(raw, bytes):
            raw = raw.decode()
        return MatrixSession.from_json(raw, self.options)

    async def save(self, session: MatrixSession) -> MatrixSession:
        session.updated_at = _now()
        await self.redis.set(self._key(session.session_id), session.to_json(), ex=self.ttl_seconds)
        return session

    async def update(
        self,
        session_id: str,
        action: Callable[[VariantMatrix], Any]
    ) -> Tuple[MatrixSession, Any]:
        """
        Apply `action` to a session's matrix and write it back atomically.

        The key is WATCHed between read and write; when another writer gets
        in first the whole load/apply/write is retried on the fresh value.

        Args:
            session_id: Matrix session ID
            action: Mutation applied to the loaded matrix; exceptions abort
                the update without writing

        Returns:
            (saved session, action's return value)

        Raises:
            SessionNotFoundError: Unknown or expired session
            SessionConflictError: Still conflicting after max_retries attempts
        """
        key = self._key(session_id)

        for attempt in range(1, self.max_retries + 1):
            async with self.redis.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    if raw is None:
                        raise SessionNotFoundError(f"Session {session_id} not found")
                    if isinstance(raw, bytes):
                        raw = raw.decode()

                    session = MatrixSession.from_json(raw, self.options)
                    result = action(session.matrix)
                    session.updated_at = _now()

                    pipe.multi()
                    pipe.set(key, session.to_json(), ex=self.ttl_seconds)
                    await pipe.execute()
                    return session, result
                except WatchError:
                    logger.info(f"Session {session_id} changed during update, retrying ({attempt}/{self.max_retries})")

        raise SessionConflictError(f"Session {session_id} is being modified concurrently, please retry")

    async def delete(self, session_id: str) -> bool:
        deleted = await self.redis.delete(self._key(session_id))
        return deleted > 0
