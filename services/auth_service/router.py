from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.responses import ApiResponse, ok
from shared.security.dependencies import get_current_user, require_admin
from shared.security.rate_limiter import limiter, login_limit

from .schemas import TokenResponse, UserCreate, UserLogin, UserResponse
from .service import AuthService

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _one(user) -> dict:
    return UserResponse.model_validate(user).model_dump()


@router.post(
    "/register",
    response_model=ApiResponse[UserResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create another back-office account",
    dependencies=[Depends(require_admin)],
)
async def register(payload: UserCreate, db: AsyncSession = Depends(get_db)):
    user = await AuthService.register(db, payload)
    return ok(_one(user), message="User created successfully")


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Authenticate and receive a JWT access token",
)
@limiter.limit(login_limit)
async def login(request: Request, payload: UserLogin, db: AsyncSession = Depends(get_db)):
    return await AuthService.login(db, payload)


@router.get(
    "/me",
    response_model=ApiResponse[UserResponse],
    summary="Get the current authenticated user's profile",
)
async def get_me(
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(_one(await AuthService.get_user_by_id(db, int(user_id))))
