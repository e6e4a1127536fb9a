"""
PROCTO - Authentication Service
Business logic for user registration, login, and token management
"""
import logging
import uuid
from datetime import timedelta
from hashlib import sha256

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utc_now
from app.core.config import settings
from app.core.security import (
    create_access_token,
    create_refresh_token,
    get_password_hash,
    verify_password,
    verify_token,
)
from app.models.user import RefreshToken, User, UserRole
from app.schemas.user import TokenResponse, UserCreate

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Base authentication error."""
    pass


class InvalidCredentialsError(AuthenticationError):
    """Invalid email or password."""
    pass


class AccountLockedError(AuthenticationError):
    """Account is locked due to failed attempts."""
    pass


class TokenError(AuthenticationError):
    """Token validation error."""
    pass


def _hash_token(token: str) -> str:
    return sha256(token.encode()).hexdigest()


class AuthService:
    """Service for authentication operations."""

    MAX_FAILED_ATTEMPTS = 5
    LOCKOUT_DURATION_MINUTES = 30

    def __init__(self, db: AsyncSession):
        self.db = db

    async def register_user(self, user_data: UserCreate) -> User:
        """
        Register a new student or faculty account.

        Raises:
            ValueError: If email already exists
        """
        email = user_data.email.lower()
        existing = await self.db.execute(
            select(User).where(User.email == email)
        )
        if existing.scalar_one_or_none():
            raise ValueError("Email already registered")

        user = User(
            email=email,
            hashed_password=get_password_hash(user_data.password),
            first_name=user_data.first_name,
            last_name=user_data.last_name,
            role=user_data.role,
            is_verified=False,
        )

        self.db.add(user)
        await self.db.flush()
        await self.db.refresh(user)

        logger.info("Registered %s account %s", user.role, user.id)
        return user

    async def authenticate(self, email: str, password: str) -> User:
        """
        Authenticate user with email and password.

        Raises:
            InvalidCredentialsError: If credentials are invalid
            AccountLockedError: If account is locked
        """
        result = await self.db.execute(
            select(User).where(User.email == email.lower())
        )
        user = result.scalar_one_or_none()

        if not user or not user.is_active:
            raise InvalidCredentialsError("Invalid email or password")

        if user.is_locked:
            raise AccountLockedError(
                f"Account locked. Try again in {self.LOCKOUT_DURATION_MINUTES} minutes."
            )

        if not verify_password(password, user.hashed_password):
            user.failed_login_attempts += 1

            if user.failed_login_attempts >= self.MAX_FAILED_ATTEMPTS:
                user.locked_until = utc_now() + timedelta(
                    minutes=self.LOCKOUT_DURATION_MINUTES
                )
                logger.warning("Account %s locked after repeated failed logins", user.id)

            # The counter must survive the rollback of the rejected request
            await self.db.commit()
            raise InvalidCredentialsError("Invalid email or password")

        # Reset failed attempts on successful login
        user.failed_login_attempts = 0
        user.locked_until = None
        user.last_login = utc_now()
        await self.db.flush()

        return user

    async def create_tokens(self, user: User) -> TokenResponse:
        """Create access and refresh tokens, storing only the refresh token's hash."""
        access_token = create_access_token(
            subject=str(user.id),
            role=UserRole(user.role).value,
        )
        refresh_token = create_refresh_token(subject=str(user.id))

        self.db.add(RefreshToken(
            user_id=user.id,
            token_hash=_hash_token(refresh_token),
            expires_at=utc_now() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        ))
        await self.db.flush()

        return TokenResponse(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        )

    async def refresh_tokens(self, refresh_token: str) -> TokenResponse:
        """
        Rotate a refresh token: revoke it and issue a fresh pair.

        Raises:
            TokenError: If refresh token is invalid, expired or revoked
        """
        user_id = verify_token(refresh_token, token_type="refresh")
        if not user_id:
            raise TokenError("Invalid refresh token")

        result = await self.db.execute(
            select(RefreshToken).where(
                RefreshToken.token_hash == _hash_token(refresh_token),
                RefreshToken.revoked_at.is_(None)
            )
        )
        token_record = result.scalar_one_or_none()

        if not token_record or token_record.is_expired:
            raise TokenError("Refresh token expired or revoked")

        user = await self.get_user_by_id(user_id)
        if not user or not user.is_active:
            raise TokenError("User not found or inactive")

        token_record.revoked_at = utc_now()

        return await self.create_tokens(user)

    async def logout(self, refresh_token: str) -> None:
        """Logout user by revoking refresh token."""
        result = await self.db.execute(
            select(RefreshToken).where(RefreshToken.token_hash == _hash_token(refresh_token))
        )
        token_record = result.scalar_one_or_none()

        if token_record:
            token_record.revoked_at = utc_now()
            await self.db.flush()

    async def get_user_by_id(self, user_id: str | uuid.UUID) -> User | None:
        """Get user by ID. Malformed ids resolve to no user."""
        if isinstance(user_id, str):
            try:
                user_id = uuid.UUID(user_id)
            except ValueError:
                return None

        result = await self.db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()
