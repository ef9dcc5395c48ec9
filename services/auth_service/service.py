import structlog
from fastapi import HTTPException, status
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from shared.security.jwt_handler import create_access_token

from .models import User
from .repository import UserRepository
from .schemas import TokenResponse, UserCreate, UserLogin

logger = structlog.get_logger(__name__)

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ADMIN_ROLE = "admin"


class AuthService:

    @staticmethod
    def _hash_password(password: str) -> str:
        return _pwd_context.hash(password)

    @staticmethod
    def _verify_password(plain: str, hashed: str) -> bool:
        return _pwd_context.verify(plain, hashed)

    @staticmethod
    async def register(db: AsyncSession, data: UserCreate, role: str = ADMIN_ROLE) -> User:
        existing = await UserRepository.get_by_username_or_email(db, data.username, data.email)
        if existing:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Username or email already registered",
            )
        user = User(
            username=data.username,
            email=data.email,
            hashed_password=AuthService._hash_password(data.password),
            role=role,
        )
        user = await UserRepository.create(db, user)
        logger.info("user_registered", user_id=user.id, role=role)
        return user

    @staticmethod
    async def login(db: AsyncSession, data: UserLogin) -> TokenResponse:
        user = await UserRepository.get_by_email(db, data.email)
        if not user or not AuthService._verify_password(data.password, user.hashed_password):
            logger.info("login_failed", email=data.email)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect email or password",
                headers={"WWW-Authenticate": "Bearer"},
            )
        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Account is disabled",
            )
        await UserRepository.touch_last_login(db, user.id)
        token = create_access_token(data={"sub": str(user.id), "role": user.role})
        logger.info("login_succeeded", user_id=user.id)
        return TokenResponse(access_token=token)

    @staticmethod
    async def get_user_by_id(db: AsyncSession, user_id: int) -> User:
        user = await UserRepository.get_by_id(db, user_id)
        if not user:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        return user

    @staticmethod
    async def bootstrap_admin(db: AsyncSession, email: str | None, password: str | None) -> User | None:
        """Create the first admin from configuration when the users table is empty."""
        if not email or not password:
            return None
        if await UserRepository.count(db):
            return None
        username = email.split("@", 1)[0]
        user = User(
            username=username,
            email=email,
            hashed_password=AuthService._hash_password(password),
            role=ADMIN_ROLE,
        )
        user = await UserRepository.create(db, user)
        logger.info("admin_bootstrapped", user_id=user.id, username=username)
        return user
