from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer
from .jwt_handler import verify_access_token

# Defines the expected header format (Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_token_payload(request: Request, token: str = Depends(oauth2_scheme)) -> dict:
    if not token:
        raise _credentials_exception()

    payload = verify_access_token(token)
    if payload is None or payload.get("sub") is None:
        raise _credentials_exception()

    # Store in request state for downstream use (like rate limiting and audit logs)
    request.state.user_id = payload["sub"]
    return payload


async def get_current_user(payload: dict = Depends(get_token_payload)) -> str:
    """Dependency to validate JWT and return the user ID (sub)."""
    return payload["sub"]


async def require_admin(payload: dict = Depends(get_token_payload)) -> str:
    """Dependency for back-office routes: the token must carry the admin role."""
    if payload.get("role") != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return payload["sub"]
