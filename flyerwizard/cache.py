"""
cache.py — Redis caching layer for the migration wizard.

Namespace conventions:
  wizard:session:{session_id}         → serialized WizardSession          TTL 30 min
  wizard:idempotency:{key}            → session_id of a confirmed session TTL 24h
  wizard:result:{session_id}          → ConfirmWizardResult JSON          TTL 24h
  wizard:list:{shopping_list_id}      → session_id holding the list lock  TTL 30 min
  wizard:rate_limit:start:{user_id}   → start counter (fixed window)      TTL 1h

Design:
  - Uses redis.asyncio (async client, part of redis-py 5.x — do NOT use aioredis separately)
  - Pool created once in lifespan, stored on app.state.redis
  - Helper functions take the client as a param — no module-level global state
  - get_wizard_session re-checks expires_at after decoding: the key TTL and the stored
    timestamp can disagree under clock skew, and the timestamp wins
  - Idempotency entries outlive sessions (24h vs 30 min) so a retried confirm still finds
    its original result after the session is gone
  - Any RedisError surfaces as WizardInternalError
"""
import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from flyerwizard.config import settings
from flyerwizard.errors import SessionNotFoundError, WizardInternalError
from flyerwizard.time_utils import utcnow
from flyerwizard.wizard.schemas import ConfirmWizardResult, WizardSession

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# TTL constants (seconds)
# ---------------------------------------------------------------------------
WIZARD_SESSION_TTL: int = settings.wizard_session_ttl_seconds          # 30 minutes
WIZARD_IDEMPOTENCY_TTL: int = settings.wizard_idempotency_ttl_seconds  # 24 hours
RATE_LIMIT_WINDOW: int = 3600                                          # 1 hour

# ---------------------------------------------------------------------------
# Key prefix constants
# ---------------------------------------------------------------------------
SESSION_PREFIX = "wizard:session"
IDEMPOTENCY_PREFIX = "wizard:idempotency"
RESULT_PREFIX = "wizard:result"
LIST_PREFIX = "wizard:list"
RATE_LIMIT_PREFIX = "wizard:rate_limit:start"


# ---------------------------------------------------------------------------
# Key builders
# ---------------------------------------------------------------------------

def make_session_key(session_id: str) -> str:
    """Build Redis key for a wizard session: wizard:session:{session_id}"""
    return f"{SESSION_PREFIX}:{session_id}"


def make_idempotency_key(key: str) -> str:
    return f"{IDEMPOTENCY_PREFIX}:{key}"


def make_result_key(session_id: str) -> str:
    return f"{RESULT_PREFIX}:{session_id}"


def make_list_key(shopping_list_id: int) -> str:
    return f"{LIST_PREFIX}:{shopping_list_id}"


def make_rate_limit_key(user_id: int) -> str:
    return f"{RATE_LIMIT_PREFIX}:{user_id}"


# ---------------------------------------------------------------------------
# Pool factory — called once in lifespan
# ---------------------------------------------------------------------------

async def create_redis_pool() -> aioredis.Redis:
    """
    Create and return an async Redis connection pool.
    Called once in FastAPI lifespan startup — stored on app.state.redis.
    Verifies connectivity with PING before returning.
    """
    client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )
    await client.ping()
    logger.info("Redis connection pool established at %s", settings.redis_url)
    return client


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------

async def save_wizard_session(client: aioredis.Redis, session: WizardSession) -> None:
    """
    Store the full session with TTL 30 min.
    Overwrites any existing value and resets the TTL on every write.
    """
    key = make_session_key(session.id)
    try:
        await client.setex(key, WIZARD_SESSION_TTL, session.model_dump_json())
    except RedisError as exc:
        raise WizardInternalError(f"Failed to save wizard session: {exc}") from exc
    logger.info("Wizard session saved session_id=%s ttl=%ds", session.id, WIZARD_SESSION_TTL)


async def get_wizard_session(
    client: aioredis.Redis, session_id: str
) -> Optional[WizardSession]:
    """
    Retrieve a wizard session.
    Returns None if the key is absent, or if the stored expires_at has already passed
    (the stale entry is deleted before returning).
    """
    key = make_session_key(session_id)
    try:
        raw = await client.get(key)
    except RedisError as exc:
        raise WizardInternalError(f"Failed to load wizard session: {exc}") from exc
    if raw is None:
        return None

    session = WizardSession.model_validate_json(raw)
    if session.is_expired(utcnow()):
        logger.info("Wizard session past expires_at, deleting session_id=%s", session_id)
        await delete_wizard_session(client, session_id)
        return None
    return session


async def delete_wizard_session(client: aioredis.Redis, session_id: str) -> None:
    """Remove a session. Deleting an absent key is not an error."""
    try:
        await client.delete(make_session_key(session_id))
    except RedisError as exc:
        raise WizardInternalError(f"Failed to delete wizard session: {exc}") from exc
    logger.info("Wizard session deleted session_id=%s", session_id)


async def extend_wizard_session_ttl(client: aioredis.Redis, session_id: str) -> None:
    """Reset the key TTL to 30 min. Raises SessionNotFoundError if the key is gone."""
    key = make_session_key(session_id)
    try:
        if not await client.exists(key):
            raise SessionNotFoundError(session_id)
        await client.expire(key, WIZARD_SESSION_TTL)
    except RedisError as exc:
        raise WizardInternalError(f"Failed to extend wizard session TTL: {exc}") from exc


# ---------------------------------------------------------------------------
# Idempotency helpers
# ---------------------------------------------------------------------------

async def save_idempotency_key(client: aioredis.Redis, key: str, session_id: str) -> None:
    """Map a client idempotency key to the confirmed session id, TTL 24h."""
    try:
        await client.setex(make_idempotency_key(key), WIZARD_IDEMPOTENCY_TTL, session_id)
    except RedisError as exc:
        raise WizardInternalError(f"Failed to save idempotency key: {exc}") from exc
    logger.info("Idempotency key stored session_id=%s ttl=%ds", session_id, WIZARD_IDEMPOTENCY_TTL)


async def get_idempotency_key(client: aioredis.Redis, key: str) -> Optional[str]:
    """Return the session id a key was used for, or None."""
    try:
        return await client.get(make_idempotency_key(key))
    except RedisError as exc:
        raise WizardInternalError(f"Failed to read idempotency key: {exc}") from exc


async def save_confirm_result(client: aioredis.Redis, result: ConfirmWizardResult) -> None:
    """Cache a confirm result under its session id, TTL 24h, for idempotent replays."""
    try:
        await client.setex(
            make_result_key(result.session_id),
            WIZARD_IDEMPOTENCY_TTL,
            result.model_dump_json(),
        )
    except RedisError as exc:
        raise WizardInternalError(f"Failed to save confirm result: {exc}") from exc


async def get_confirm_result(
    client: aioredis.Redis, session_id: str
) -> Optional[ConfirmWizardResult]:
    try:
        raw = await client.get(make_result_key(session_id))
    except RedisError as exc:
        raise WizardInternalError(f"Failed to read confirm result: {exc}") from exc
    if raw is None:
        return None
    return ConfirmWizardResult.model_validate_json(raw)


# ---------------------------------------------------------------------------
# List → session pointer (who holds the list lock)
# ---------------------------------------------------------------------------

async def set_list_session(client: aioredis.Redis, shopping_list_id: int, session_id: str) -> None:
    try:
        await client.setex(make_list_key(shopping_list_id), WIZARD_SESSION_TTL, session_id)
    except RedisError as exc:
        raise WizardInternalError(f"Failed to record list session: {exc}") from exc


async def get_list_session(client: aioredis.Redis, shopping_list_id: int) -> Optional[str]:
    try:
        return await client.get(make_list_key(shopping_list_id))
    except RedisError as exc:
        raise WizardInternalError(f"Failed to read list session: {exc}") from exc


async def clear_list_session(client: aioredis.Redis, shopping_list_id: int) -> None:
    try:
        await client.delete(make_list_key(shopping_list_id))
    except RedisError as exc:
        raise WizardInternalError(f"Failed to clear list session: {exc}") from exc


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------

async def check_start_rate_limit(
    client: aioredis.Redis,
    user_id: int,
    limit: int,
    window: int = RATE_LIMIT_WINDOW,
) -> bool:
    """
    Count one wizard start for user_id in a fixed window.
    Returns True if the start is allowed. limit <= 0 disables the check.
    """
    if limit <= 0:
        return True
    key = make_rate_limit_key(user_id)
    try:
        count = await client.incr(key)
        if count == 1:
            await client.expire(key, window)
    except RedisError as exc:
        raise WizardInternalError(f"Rate limit check failed: {exc}") from exc
    return count <= limit
