"""
Klara Backend — User Routes
=============================

Endpoints:
    POST   /api/user/profile              create or sync profile from Clerk data
    GET    /api/user/profile              get profile (created on first call)
    DELETE /api/user/profile              delete account, notes and chat history
    PUT    /api/user/api-keys             store provider keys
    DELETE /api/user/api-keys/{key_type}  remove one provider key
    GET    /api/user/with-notes           profile plus all notes

Responses report `has_openai_key` / `has_gemini_key`, never the keys.
"""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_current_subject
from app.database import get_db_session
from app.schemas.common import MessageResponse, error_responses
from app.schemas.user import (
    APIKeysUpdate,
    APIKeysUpdateResponse,
    UserProfileCreate,
    UserProfileResponse,
    UserWithNotesResponse,
)
from app.services.user_service import key_status, to_profile, user_service

router = APIRouter(
    prefix="/api/user",
    tags=["User"],
    responses=error_responses(400, 401, 404, 500),
)


@router.post("/profile", response_model=UserProfileResponse)
async def create_or_sync_profile(
    body: UserProfileCreate,
    response: Response,
    clerk_id: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_db_session),
) -> UserProfileResponse:
    user, created = await user_service.create_or_sync(db, clerk_id, body)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return to_profile(user)


@router.get("/profile", response_model=UserProfileResponse)
async def get_profile(
    clerk_id: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_db_session),
) -> UserProfileResponse:
    user, _ = await user_service.get_or_create(db, clerk_id)
    return to_profile(user)


@router.delete("/profile", response_model=MessageResponse)
async def delete_profile(
    clerk_id: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await user_service.delete_user(db, clerk_id)
    return MessageResponse(message="User deleted successfully")


@router.put("/api-keys", response_model=APIKeysUpdateResponse)
async def update_api_keys(
    body: APIKeysUpdate,
    clerk_id: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_db_session),
) -> APIKeysUpdateResponse:
    user = await user_service.update_api_keys(db, clerk_id, body)
    return APIKeysUpdateResponse(
        message="API keys updated successfully",
        api_key_status=key_status(user),
    )


@router.delete("/api-keys/{key_type}", response_model=MessageResponse)
async def delete_api_key(
    key_type: str,
    clerk_id: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await user_service.delete_api_key(db, clerk_id, key_type)
    return MessageResponse(message=f"{key_type} API key deleted successfully")


@router.get("/with-notes", response_model=UserWithNotesResponse)
async def get_user_with_notes(
    clerk_id: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_db_session),
) -> UserWithNotesResponse:
    return await user_service.get_with_notes(db, clerk_id)
