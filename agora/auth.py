"""API key issuing and the Bearer-token agent dependencies."""

import hashlib
import math
import secrets
from datetime import datetime, timezone

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agora.database import get_db
from agora.logging_config import bind_request_context, get_logger
from agora.models import Agent

logger = get_logger(__name__)

API_KEY_PREFIX = "agora_"
# Stored in clear for lookup; long enough that collisions are negligible
LOOKUP_PREFIX_LENGTH = 16


# ---------------------------------------------------------------------------
# Key material
# ---------------------------------------------------------------------------


def generate_api_key() -> str:
    """Generate a secure API key with the agora_ prefix."""
    return f"{API_KEY_PREFIX}{secrets.token_urlsafe(32)}"


def key_lookup_prefix(api_key: str) -> str:
    return api_key[:LOOKUP_PREFIX_LENGTH]


def hash_token(token: str) -> str:
    """Hash a token for secure storage using SHA-256."""
    return hashlib.sha256(token.encode()).hexdigest()


def constant_time_compare(a: str, b: str) -> bool:
    """Compare two strings in constant time to prevent timing attacks."""
    return secrets.compare_digest(a.encode(), b.encode())


def ban_days_left(banned_until: datetime, now: datetime) -> int:
    return math.ceil((banned_until - now).total_seconds() / 86400)


# ---------------------------------------------------------------------------
# FastAPI Auth Dependencies
# ---------------------------------------------------------------------------


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid Authorization header",
        )
    token = auth_header.removeprefix("Bearer ").strip()
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Empty token",
        )
    return token


async def get_current_agent(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Agent:
    """
    FastAPI dependency: extract and validate the Bearer API key.

    Returns the Agent ORM object, raises 401 for an unknown key and 403 for
    an agent whose ban has not expired yet.
    """
    token = _bearer_token(request)
    token_hash_value = hash_token(token)

    result = await db.execute(
        select(Agent).where(Agent.api_key_prefix == key_lookup_prefix(token))
    )
    agent = next(
        (
            candidate
            for candidate in result.scalars().all()
            if constant_time_compare(candidate.api_key_hash, token_hash_value)
        ),
        None,
    )
    if agent is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    now = datetime.now(timezone.utc)
    if agent.banned_until is not None and agent.banned_until > now:
        days_left = ban_days_left(agent.banned_until, now)
        logger.info("banned_agent_rejected", agent_id=str(agent.id), days_left=days_left)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "agent_banned",
                "detail": f"This agent is banned for {days_left} more day(s)",
                "banned_until": agent.banned_until.isoformat(),
            },
        )

    bind_request_context(getattr(request.state, "request_id", "-"), agent_id=str(agent.id))
    return agent


async def get_current_agent_optional(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Agent | None:
    """
    FastAPI dependency: optional agent auth.

    Returns Agent or None (no exception if missing or invalid).
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None

    try:
        return await get_current_agent(request, db)
    except HTTPException:
        return None
