from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request

from shared.config.settings import get_settings
from .jwt_handler import verify_access_token


def user_id_or_ip(request: Request) -> str:
    """
    Key function for SlowAPI.
    Admin calls are keyed by the user ID in the bearer token; shoppers are
    anonymous, so they fall back to the client's IP address.
    """
    auth_header = request.headers.get("Authorization")

    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1]
        payload = verify_access_token(token)
        if payload and "sub" in payload:
            return f"user:{payload['sub']}"

    return f"ip:{get_remote_address(request)}"


def checkout_limit() -> str:
    return get_settings().checkout_rate_limit


def login_limit() -> str:
    return get_settings().login_rate_limit


limiter = Limiter(key_func=user_id_or_ip)
