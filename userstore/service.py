"""HTTP API exposing the user record operations."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from .config import Settings, load_settings
from .models import User
from .repository import UserNotFoundError, UserRepository
from .storage import JSONFileStore, StoreError

logger = logging.getLogger("userstore.service")


class CreateUserRequest(BaseModel):
    display_name: str = Field(..., max_length=255)
    email: str = Field(..., max_length=320)


class UpdateUserRequest(BaseModel):
    display_name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=320)


class UserResponse(BaseModel):
    id: int
    display_name: str
    email: str
    created_at: datetime


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        display_name=user.display_name,
        email=user.email,
        created_at=user.created_at,
    )


def build_repository(settings: Settings) -> UserRepository:
    """Create a repository backed by the JSON file named in ``settings``."""

    store = JSONFileStore(settings.store_path, create_missing=settings.create_missing)
    return UserRepository(store)


def create_app(
    *,
    repository: UserRepository | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Instantiate the FastAPI application serving the user API."""

    if repository is None:
        repository = build_repository(settings or load_settings())

    app = FastAPI(
        title="User Store API",
        version="1.0.0",
        description="CRUD access to user records persisted in a JSON file.",
    )
    app.state.repository = repository

    def get_repository() -> UserRepository:
        return repository

    router = APIRouter(prefix="/api/v1/users", tags=["users"])

    @router.get("", response_model=List[UserResponse])
    def list_users(repo: UserRepository = Depends(get_repository)) -> List[UserResponse]:
        return [user_to_response(user) for user in repo.list_users()]

    @router.post("", status_code=status.HTTP_201_CREATED, response_model=UserResponse)
    def create_user(
        payload: CreateUserRequest,
        repo: UserRepository = Depends(get_repository),
    ) -> UserResponse:
        user = repo.create_user(payload.display_name, payload.email)
        return user_to_response(user)

    @router.get("/{user_id}", response_model=UserResponse)
    def get_user(user_id: int, repo: UserRepository = Depends(get_repository)) -> UserResponse:
        try:
            user = repo.get_user(user_id)
        except UserNotFoundError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        return user_to_response(user)

    @router.patch("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
    def update_user(
        user_id: int,
        payload: UpdateUserRequest,
        repo: UserRepository = Depends(get_repository),
    ) -> Response:
        try:
            repo.update_user(user_id, display_name=payload.display_name, email=payload.email)
        except UserNotFoundError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_user(user_id: int, repo: UserRepository = Depends(get_repository)) -> Response:
        try:
            repo.delete_user(user_id)
        except UserNotFoundError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/", response_class=PlainTextResponse)
    def server_time() -> str:
        return datetime.now(timezone.utc).isoformat()

    @app.get("/healthz")
    def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    app.include_router(router)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(StoreError)
    async def handle_store_error(request: Request, exc: StoreError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    return app


__all__ = [
    "CreateUserRequest",
    "UpdateUserRequest",
    "UserResponse",
    "build_repository",
    "create_app",
    "user_to_response",
]
