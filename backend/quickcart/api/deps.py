"""
FastAPI dependencies for authentication and service wiring.

Tokens are verified here and turned into an ``Actor``. What the actor may do
is decided by the authorization policy inside the services, not by the
routes.
"""

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from quickcart.core.logging import get_logger, set_actor
from quickcart.core.security import TokenError, decode_access_token
from quickcart.database.connection import get_db
from quickcart.database.models.user import User
from quickcart.services.authorization.policy import Actor

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)

DatabaseSession = Annotated[AsyncSession, Depends(get_db)]


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: DatabaseSession,
) -> User:
    """
    Validate the bearer token and load the user it names.

    Raises:
        HTTPException: 401 if the token is missing or invalid or the user does
            not exist, 403 if the account is inactive
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        logger.warning("Authentication failed: No credentials provided")
        raise credentials_exception

    try:
        payload = decode_access_token(credentials.credentials)
    except TokenError as e:
        logger.warning("Authentication failed", error=str(e), **e.context)
        raise credentials_exception from e

    try:
        user = await db.get(User, payload["sub"])
    except SQLAlchemyError as e:
        logger.error(
            "Database error during user retrieval",
            user_id=str(payload["sub"]),
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        ) from e

    if user is None:
        logger.warning("Authentication failed: User not found", user_id=str(payload["sub"]))
        raise credentials_exception

    if not user.is_active:
        logger.warning("Authentication failed: User account is inactive", user_id=str(user.id))
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user account",
        )

    return user


async def get_current_actor(
    user: Annotated[User, Depends(get_current_user)],
) -> Actor:
    """
    The authenticated user as seen by the authorization policy.

    The role comes from the user row, so a demoted user loses access even
    while an older token is still valid.
    """
    set_actor(str(user.id), user.role.value)
    return Actor(id=user.id, role=user.role)


CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
