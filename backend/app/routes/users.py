"""
Mailroom Backend — User Route Handlers
========================================

What:  /api/users — registration (multipart, optional profile image),
       login (JSON) and profile image replace/fetch.

Response shapes:
    register → {"user": {id, name, email}, "token": "..."}
    login    → {"user": {id, name, email, hasProfileImage}, "token": "..."}
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.dependencies import get_auth_service, read_upload, require_user
from app.schemas.common import Envelope, ErrorResponse, MessageEnvelope
from app.schemas.user import LoginRequest, LoginResult, RegisterResult, UserProfile, UserPublic
from app.services.auth_service import AuthService

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.post(
    "/register",
    status_code=201,
    response_model=Envelope[RegisterResult],
    responses={400: {"description": "Invalid input or email taken", "model": ErrorResponse}},
    summary="Create an account and return a session token",
)
async def register(
    name: Optional[str] = Form(default=None),
    email: Optional[str] = Form(default=None),
    password: Optional[str] = Form(default=None),
    profile_image: Optional[UploadFile] = File(default=None, alias="profileImage"),
    db: AsyncSession = Depends(get_db_session),
    service: AuthService = Depends(get_auth_service),
) -> Envelope[RegisterResult]:
    upload = await read_upload(profile_image)
    user, token = await service.register(db, name, email, password, upload)
    return Envelope(
        data=RegisterResult(user=UserPublic.model_validate(user), token=token),
    )


@router.post(
    "/login",
    response_model=Envelope[LoginResult],
    responses={
        400: {"description": "Email or password missing", "model": ErrorResponse},
        401: {"description": "Invalid email or password", "model": ErrorResponse},
    },
    summary="Authenticate and return a session token",
)
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
    service: AuthService = Depends(get_auth_service),
) -> Envelope[LoginResult]:
    user, token = await service.login(db, credentials.email, credentials.password)
    profile = UserProfile(
        id=user.id,
        name=user.name,
        email=user.email,
        has_profile_image=user.profile_image is not None,
    )
    return Envelope(data=LoginResult(user=profile, token=token))


@router.post(
    "/{user_id}/profile-image",
    response_model=MessageEnvelope,
    responses={
        400: {"description": "Missing or rejected image, malformed id", "model": ErrorResponse},
        403: {"description": "Token belongs to another user", "model": ErrorResponse},
        404: {"description": "User not found", "model": ErrorResponse},
    },
    summary="Replace the user's profile image",
)
async def update_profile_image(
    user_id: str,
    profile_image: Optional[UploadFile] = File(default=None, alias="profileImage"),
    db: AsyncSession = Depends(get_db_session),
    service: AuthService = Depends(get_auth_service),
    token_user_id: Optional[str] = Depends(require_user),
) -> MessageEnvelope:
    user_id = service.ensure_owner(user_id, token_user_id)
    upload = await read_upload(profile_image)
    await service.update_profile_image(db, user_id, upload)
    return MessageEnvelope(message="Profile image updated successfully")


@router.get(
    "/{user_id}/profile-image",
    response_class=FileResponse,
    responses={
        403: {"description": "Token belongs to another user", "model": ErrorResponse},
        404: {"description": "User or profile image not found", "model": ErrorResponse},
    },
    summary="Fetch the user's profile image",
)
async def get_profile_image(
    user_id: str,
    db: AsyncSession = Depends(get_db_session),
    service: AuthService = Depends(get_auth_service),
    token_user_id: Optional[str] = Depends(require_user),
) -> FileResponse:
    user_id = service.ensure_owner(user_id, token_user_id)
    path, ref = await service.profile_image(db, user_id)
    return FileResponse(path=str(path), media_type=ref.mimetype)
