"""
Mailroom Backend — Route Dependencies
=======================================

What:  FastAPI dependencies that hand route handlers their services and,
       when enabled, the authenticated user id.
Why:   Services are constructed once per application in `create_app()`;
       routes look them up on `app.state` instead of importing singletons.
"""

from typing import Optional

from fastapi import Depends, Request, UploadFile
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import Settings
from app.exceptions import UnauthorizedError
from app.services.ai_prompt_template_service import AIPromptTemplateService
from app.services.attachment_store import IncomingFile
from app.services.auth_service import AuthService
from app.services.contact_service import ContactService
from app.services.template_service import TemplateService

bearer_scheme = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_contact_service(request: Request) -> ContactService:
    return request.app.state.contact_service


def get_template_service(request: Request) -> TemplateService:
    return request.app.state.template_service


def get_ai_prompt_template_service(request: Request) -> AIPromptTemplateService:
    return request.app.state.ai_prompt_template_service


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


async def require_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    app_settings: Settings = Depends(get_settings),
    auth_service: AuthService = Depends(get_auth_service),
) -> Optional[str]:
    """
    Bearer-token check for mutating routes.

    Returns the user id from the token, or None when `require_auth` is off
    and no token was sent. A token that is sent is always verified.
    """
    if credentials is None:
        if app_settings.require_auth:
            raise UnauthorizedError(message="Authentication required")
        return None
    return auth_service.decode_token(credentials.credentials)


async def read_upload(upload: Optional[UploadFile]) -> Optional[IncomingFile]:
    """
    Read a multipart file into memory for the services.

    Browsers send an empty part with no filename when a file input is left
    blank; that counts as no upload.
    """
    if upload is None:
        return None
    try:
        if not upload.filename:
            return None
        content = await upload.read()
        return IncomingFile(
            content=content,
            filename=upload.filename,
            mimetype=upload.content_type,
            content_length=upload.size,
        )
    finally:
        await upload.close()
