"""
Mailroom Backend — User & Auth Schemas
========================================

Responses never carry the password hash. Registration is multipart (it may
include a profile image); login is a JSON body.
"""

from pydantic import Field

from app.schemas.common import ApiModel


class LoginRequest(ApiModel):
    # Blank values reach the service, which answers "Email and password
    # are required"; no min_length here
    email: str = Field(default="", max_length=320)
    password: str = Field(default="", max_length=1024)


class UserPublic(ApiModel):
    id: str
    name: str
    email: str


class UserProfile(UserPublic):
    has_profile_image: bool = False


class RegisterResult(ApiModel):
    user: UserPublic
    token: str


class LoginResult(ApiModel):
    user: UserProfile
    token: str
