"""Shared FastAPI dependencies."""

from fastapi import Header, HTTPException


async def get_user_id(user_id: str | None = Header(default=None, alias="User-Id")) -> str:
    """Caller identity from the ``User-Id`` header. Not verified, only required."""
    if not user_id or not user_id.strip():
        raise HTTPException(401, "User ID is required")
    return user_id.strip()
