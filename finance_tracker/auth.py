from datetime import datetime, timedelta
from typing import Optional

import bcrypt
import jwt
import structlog
from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from finance_tracker.config import get_settings
from finance_tracker.database import get_db
from finance_tracker.errors import ConflictError, FinanceAPIError, ForbiddenError
from finance_tracker.models import User
from finance_tracker.responses import envelope
from finance_tracker.schemas import SigninRequest, SignupRequest, UserOut

logger = structlog.get_logger(__name__)

auth_router = APIRouter()
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/v1/auth/signin", auto_error=False)


class UnauthorizedError(FinanceAPIError):
    status_code = status.HTTP_401_UNAUTHORIZED


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    settings = get_settings()
    expire = datetime.utcnow() + (expires_delta or timedelta(days=settings.jwt_expire_days))
    to_encode = {"sub": str(user_id), "exp": expire}
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> User:
    if not token:
        raise UnauthorizedError("Access denied. No token provided.")

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        user_id = payload.get("sub")
        if user_id is None:
            raise UnauthorizedError("Invalid token.")
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token has expired. Please login again.")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid token.")

    try:
        user = db.get(User, int(user_id))
    except ValueError:
        raise UnauthorizedError("Invalid token.")
    if user is None:
        raise UnauthorizedError("User not found. Token is invalid.")
    if not user.is_active:
        raise ForbiddenError("Account is deactivated. Please contact support.")
    return user


def _auth_payload(user: User) -> dict:
    return {"user": UserOut.model_validate(user), "token": create_access_token(user.id)}


@auth_router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(body: SignupRequest, db: Session = Depends(get_db)):
    existing = db.query(User).filter(User.email == body.email).first()
    if existing:
        raise ConflictError("User with this email already exists")

    user = User(name=body.name, email=body.email, password_hash=hash_password(body.password))
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info("user_registered", user_id=user.id)
    return envelope(_auth_payload(user), message="User registered successfully")


@auth_router.post("/signin")
async def signin(body: SigninRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == body.email).first()
    if not user or not verify_password(body.password, user.password_hash):
        raise UnauthorizedError("Invalid email or password")
    if not user.is_active:
        raise ForbiddenError("Account is deactivated. Please contact support.")

    user.last_login = datetime.utcnow()
    db.commit()
    db.refresh(user)

    logger.info("user_signed_in", user_id=user.id)
    return envelope(_auth_payload(user), message="Login successful")


@auth_router.get("/me")
async def me(current_user: User = Depends(get_current_user)):
    return envelope({"user": UserOut.model_validate(current_user)})


@auth_router.post("/logout")
async def logout(current_user: User = Depends(get_current_user)):
    # tokens are stateless; the client discards its copy
    logger.info("user_logged_out", user_id=current_user.id)
    return envelope(message="Logged out successfully")
