"""
HTTP routes for the Zenflow API.

Every route except registration, login and health requires a bearer token;
``get_current_user`` resolves it before the handler body runs, so stores
are only ever called with a verified username.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from zenflow.auth import Authenticator
from zenflow.dependencies import (
    Services,
    get_authenticator,
    get_current_user,
    get_log_store,
    get_meta_store,
    get_services,
)
from zenflow.schemas import (
    AuthResponse,
    CredentialsRequest,
    HealthResponse,
    LogEntry,
    LogRequest,
    LogsResponse,
    MeResponse,
    MetaRequest,
    MetaResponse,
    OkResponse,
)
from zenflow.stores import ActivityLogStore, MetadataStore

router = APIRouter()


@router.post("/register", response_model=AuthResponse, status_code=201)
def register(
    payload: CredentialsRequest,
    authenticator: Authenticator = Depends(get_authenticator),
):
    token = authenticator.register(payload.username, payload.password)
    return AuthResponse(username=payload.username, token=token)


@router.post("/login", response_model=AuthResponse)
def login(
    payload: CredentialsRequest,
    authenticator: Authenticator = Depends(get_authenticator),
):
    token = authenticator.authenticate(payload.username, payload.password)
    return AuthResponse(username=payload.username, token=token)


@router.get("/me", response_model=MeResponse)
def me(username: str = Depends(get_current_user)):
    return MeResponse(username=username)


@router.get("/logs", response_model=LogsResponse)
def list_logs(
    username: str = Depends(get_current_user),
    store: ActivityLogStore = Depends(get_log_store),
):
    records = store.list_logs(username)
    return LogsResponse(logs=[LogEntry(**record.as_dict()) for record in records])


@router.post("/logs", response_model=OkResponse)
def upsert_log(
    payload: LogRequest,
    username: str = Depends(get_current_user),
    store: ActivityLogStore = Depends(get_log_store),
):
    store.upsert_log(username, payload.date, payload.type, payload.value)
    return OkResponse()


@router.get("/meta", response_model=MetaResponse)
def get_meta(
    username: str = Depends(get_current_user),
    store: MetadataStore = Depends(get_meta_store),
):
    return MetaResponse(meta=store.get_meta(username))


@router.post("/meta", response_model=OkResponse)
def set_meta(
    payload: MetaRequest,
    username: str = Depends(get_current_user),
    store: MetadataStore = Depends(get_meta_store),
):
    store.set_meta(username, payload.meta)
    return OkResponse()


@router.get("/health", response_model=HealthResponse)
def health(services: Services = Depends(get_services)):
    status = "ok" if services.backend.ping() else "degraded"
    return HealthResponse(status=status, backend=services.backend.kind)
