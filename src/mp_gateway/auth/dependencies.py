"""FastAPI dependencies: get_current_user, require_admin.

Usage in any protected router:
    from src.mp_gateway.auth.dependencies import get_current_user

    @router.get("/protected")
    async def protected(user: UserModel = Depends(get_current_user)):
        ...
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_common.database import get_db_session
from src.mp_common.errors import AccountDisabledError, InvalidCredentialsError, NotAuthorizedError
from src.mp_gateway.auth.jwt_handler import decode_access_token
from src.mp_gateway.user.db_models import UserModel

# tokenUrl points at the external auth service's login endpoint (Swagger "Authorize" button)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")

# Reusable 401 exception with WWW-Authenticate header (OAuth2 standard)
_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired token",
    headers={"WWW-Authenticate": "Bearer"},
)


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> UserModel:
    """Validate the Bearer token and return the caller's UserModel.

    Raises HTTP 401 if the token is missing, invalid, expired, or names an unknown user.
    Raises AccountDisabledError (403) if the user is disabled.
    """
    try:
        payload = decode_access_token(token)
    except InvalidCredentialsError:
        raise _CREDENTIALS_EXCEPTION from None

    result = await db.execute(select(UserModel).where(UserModel.id == payload["sub"]))
    user = result.scalar_one_or_none()
    if user is None:
        raise _CREDENTIALS_EXCEPTION

    if not user.is_active:
        raise AccountDisabledError()

    return user


async def require_admin(
    current_user: UserModel = Depends(get_current_user),
) -> UserModel:
    """Dispute resolution and ledger audit are admin-only."""
    if not current_user.is_admin:
        raise NotAuthorizedError("Admin privileges required")
    return current_user
