"""Pydantic schemas for bearer credentials."""

from __future__ import annotations

from pydantic import BaseModel


class TokenPayload(BaseModel):
    sub: str | None = None
    type: str | None = None
