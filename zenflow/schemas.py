"""
Pydantic schemas for the Zenflow API.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel


class CredentialsRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class AuthResponse(BaseModel):
    username: str
    token: str


class MeResponse(BaseModel):
    username: str


class LogEntry(BaseModel):
    date: str
    type: str
    value: Union[int, float]


class LogsResponse(BaseModel):
    logs: list[LogEntry]


class LogRequest(BaseModel):
    date: Optional[str] = None
    type: Optional[str] = None
    # Coerced by the store: non-numeric values become 0.
    value: Any = None


class MetaRequest(BaseModel):
    meta: Optional[dict] = None


class MetaResponse(BaseModel):
    meta: dict


class OkResponse(BaseModel):
    ok: bool = True


class HealthResponse(BaseModel):
    status: str
    backend: str
