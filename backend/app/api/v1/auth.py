"""
PROCTO - Authentication API Routes

Accounts are self-registered as ``student`` (the default) or ``faculty``;
asking for ``admin`` fails request validation, since admins are provisioned
outside the API. Login hands out an access/refresh pair whose access token
carries the role that every other router authorizes against.

Auth failures map to: 401 for bad credentials or tokens, 423 while an
account is locked out after repeated failed logins.
"""
from fastapi import APIRouter, HTTPException, status

from app.api.deps import CurrentUser, DbSession
from app.schemas.user import (
    TokenRefresh,
    TokenResponse,
    UserCreate,
    UserLogin,
    UserResponse,
)
from app.services.auth import (
    AccountLockedError,
    AuthService,
    InvalidCredentialsError,
    TokenError,
)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a student or faculty account",
)
async def register(user_data: UserCreate, db: DbSession) -> UserResponse:
    try:
        user = await AuthService(db).register_user(user_data)
    except ValueError as e:
        # Email already registered
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return UserResponse.model_validate(user)


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Exchange email and password for tokens",
)
async def login(credentials: UserLogin, db: DbSession) -> TokenResponse:
    auth_service = AuthService(db)

    try:
        user = await auth_service.authenticate(
            email=credentials.email,
            password=credentials.password,
        )
    except InvalidCredentialsError as e:
        raise _unauthorized(str(e))
    except AccountLockedError as e:
        raise HTTPException(status_code=status.HTTP_423_LOCKED, detail=str(e))

    return await auth_service.create_tokens(user)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Rotate tokens; the presented refresh token is revoked",
)
async def refresh_token(token_data: TokenRefresh, db: DbSession) -> TokenResponse:
    try:
        return await AuthService(db).refresh_tokens(token_data.refresh_token)
    except TokenError as e:
        raise _unauthorized(str(e))


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT, summary="Revoke a refresh token")
async def logout(token_data: TokenRefresh, db: DbSession) -> None:
    """Unknown tokens are ignored so logout is safe to repeat."""
    await AuthService(db).logout(token_data.refresh_token)


@router.get("/me", response_model=UserResponse, summary="Get the signed-in account")
async def get_current_user_profile(current_user: CurrentUser) -> UserResponse:
    return UserResponse.model_validate(current_user)
