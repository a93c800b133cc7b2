"""
Mailroom Backend — Auth Service
=================================

What:  User registration, login, session tokens and profile images.
Why:   Keeps password handling and token issuance in one place, away from
       the routes.
How:   passlib's bcrypt context hashes and verifies passwords in a worker
       thread (bcrypt is CPU-bound and would stall the event loop);
       python-jose signs HS256 JWTs carrying {sub, iat, exp}.

Security rules:
    - The plaintext password is never persisted or logged
    - The hash is computed once per plaintext change; profile-image updates
      never touch it
    - Unknown email and wrong password produce the same 401 message
    - A token only grants access to its own user's profile image
"""

import logging
from datetime import timedelta
from pathlib import Path
from typing import Optional, Tuple

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from app.config import Settings, settings
from app.exceptions import (
    ForbiddenError,
    MailroomError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from app.models.base import AttachmentRef, utcnow
from app.models.user import User
from app.schemas.contact import EMAIL_PATTERN
from app.services.attachment_store import IMAGE_POLICY, AttachmentStore, IncomingFile
from app.services.repository import Repository

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

INVALID_CREDENTIALS = "Invalid email or password"


class AuthService:
    """
    Args:
        store: attachment storage for profile images
        app_settings: source of the JWT secret, algorithm and lifetime
    """

    def __init__(self, store: AttachmentStore, app_settings: Settings = settings):
        self.store = store
        self.settings = app_settings
        self.repository = Repository(
            User,
            key_field="email",
            resource="user",
            duplicate_message="Email already exists",
        )

    # ── Passwords ─────────────────────────────────────────────────────────

    async def hash_password(self, password: str) -> str:
        return await run_in_threadpool(pwd_context.hash, password)

    async def verify_password(self, password: str, password_hash: str) -> bool:
        return await run_in_threadpool(pwd_context.verify, password, password_hash)

    # ── Tokens ────────────────────────────────────────────────────────────

    def create_token(self, user_id: str) -> str:
        now = utcnow()
        claims = {
            "sub": user_id,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(hours=self.settings.jwt_expire_hours)).timestamp()),
        }
        return jwt.encode(claims, self.settings.jwt_secret, algorithm=self.settings.jwt_algorithm)

    def decode_token(self, token: str) -> str:
        """
        Verify signature and expiry.

        Returns:
            The user id from the `sub` claim.

        Raises:
            UnauthorizedError for malformed, tampered or expired tokens
        """
        try:
            claims = jwt.decode(
                token, self.settings.jwt_secret, algorithms=[self.settings.jwt_algorithm]
            )
        except JWTError as e:
            logger.info("Rejected session token: %s", str(e))
            raise UnauthorizedError(message="Invalid or expired token")

        user_id = claims.get("sub")
        if not user_id:
            raise UnauthorizedError(message="Invalid or expired token")
        return user_id

    # ── Accounts ──────────────────────────────────────────────────────────

    async def register(
        self,
        db: AsyncSession,
        name: Optional[str],
        email: Optional[str],
        password: Optional[str],
        profile_image: Optional[IncomingFile] = None,
    ) -> Tuple[User, str]:
        """
        Create an account and issue its first token.

        Raises:
            ValidationError: missing field, bad email format, rejected image
            DuplicateKeyError: "Email already exists"
        """
        name = (name or "").strip()
        email = (email or "").strip().lower()
        if not name or not email or not password:
            raise ValidationError(message="Name, email and password are required fields")
        if not EMAIL_PATTERN.match(email):
            raise ValidationError(message="Invalid email format", field="email")

        ref: Optional[AttachmentRef] = None
        if profile_image is not None:
            ref = await self.store.validate_and_store(
                content=profile_image.content,
                filename=profile_image.filename,
                mimetype=profile_image.mimetype,
                policy=IMAGE_POLICY,
                content_length=profile_image.content_length,
            )

        try:
            user = await self.repository.create(
                db,
                name=name,
                email=email,
                password_hash=await self.hash_password(password),
                profile_image_filename=ref.filename if ref else None,
                profile_image_path=ref.location if ref else None,
                profile_image_mimetype=ref.mimetype if ref else None,
            )
        except MailroomError:
            if ref is not None:
                await self.store.delete(ref.location)
            raise

        logger.info("User registered: %s", user.id)
        return user, self.create_token(user.id)

    async def login(
        self, db: AsyncSession, email: Optional[str], password: Optional[str]
    ) -> Tuple[User, str]:
        email = (email or "").strip().lower()
        if not email or not password:
            raise ValidationError(message="Email and password are required")

        user = await self.repository.find_by_key(db, email)
        if user is None or not await self.verify_password(password, user.password_hash):
            logger.info("Failed login attempt")
            raise UnauthorizedError(message=INVALID_CREDENTIALS)

        logger.info("User logged in: %s", user.id)
        return user, self.create_token(user.id)

    # ── Profile image ─────────────────────────────────────────────────────

    def ensure_owner(self, user_id: str, token_user_id: Optional[str]) -> str:
        """
        Check that a session token may act on `user_id`.

        A malformed id is still a 400. With no token (open mode) anyone may
        proceed; a token for a different user is refused with 403.
        """
        user_id = self.repository.validate_id(user_id)
        if token_user_id is not None and token_user_id.lower() != user_id:
            logger.warning("User %s tried to access profile image of %s", token_user_id, user_id)
            raise ForbiddenError(context={"user_id": user_id})
        return user_id

    async def update_profile_image(
        self, db: AsyncSession, user_id: str, upload: Optional[IncomingFile]
    ) -> User:
        """Replace the stored image; the previous file is deleted first."""
        if upload is None:
            raise ValidationError(message="Profile image is required", field="profileImage")

        user = await self.repository.get_by_id(db, user_id)
        ref = await self.store.validate_and_store(
            content=upload.content,
            filename=upload.filename,
            mimetype=upload.mimetype,
            policy=IMAGE_POLICY,
            content_length=upload.content_length,
        )

        previous = user.profile_image
        if previous is not None:
            await self.store.delete(previous.location)

        try:
            user = await self.repository.update(
                db,
                user,
                {
                    "profile_image_filename": ref.filename,
                    "profile_image_path": ref.location,
                    "profile_image_mimetype": ref.mimetype,
                },
            )
        except MailroomError:
            await self.store.delete(ref.location)
            raise

        logger.info("Profile image updated for user %s", user.id)
        return user

    async def profile_image(self, db: AsyncSession, user_id: str) -> Tuple[Path, AttachmentRef]:
        not_found = NotFoundError(resource="user", message="User or profile image not found")
        user = await self.repository.find_by_id(db, user_id)
        if user is None or user.profile_image is None:
            raise not_found
        ref = user.profile_image
        try:
            return self.store.resolve(ref.location), ref
        except NotFoundError:
            raise not_found

