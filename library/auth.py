from datetime import datetime, timedelta, timezone
import logging
from typing import Optional, Tuple

import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from library import constants, crud, models, schemas
from library.config import settings
from library.exceptions import (
    DatabaseError,
    ForbiddenError,
    InactiveUserError,
    InvalidCredentialsError,
    UnauthorizedError,
    UserNotFoundError,
)
from library.models import utcnow
from library.storage import get_db

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed hash or a password bcrypt refuses to process
        return False


def create_access_token(user: models.User) -> str:
    issued_at = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role.value,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=settings.jwt_expiration_minutes),
    }
    return jwt.encode(
        payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm
    )


def decode_access_token(token: str) -> dict:
    try:
        return jwt.decode(
            token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError(constants.TOKEN_EXPIRED)
    except jwt.InvalidTokenError:
        raise UnauthorizedError(constants.INVALID_TOKEN)


def signup(db: Session, user: schemas.UserCreate) -> models.User:
    return crud.create_user_record(db, user)


def login(db: Session, credentials: schemas.LoginRequest) -> Tuple[str, models.User]:
    user = crud.find_user_by_email(db, credentials.email)
    if user is None:
        raise InvalidCredentialsError()
    if not user.is_active:
        raise InactiveUserError()
    if not verify_password(credentials.password, user.hashed_password):
        raise InvalidCredentialsError()

    try:
        user.last_login_at = utcnow()
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise DatabaseError("login", str(e))
    db.refresh(user)

    logger.info(f"User logged in: {user.email}")
    return create_access_token(user), user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> models.User:
    if credentials is None:
        raise UnauthorizedError()

    payload = decode_access_token(credentials.credentials)
    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise UnauthorizedError(constants.INVALID_TOKEN)

    try:
        return crud.get_user_by_id(db, user_id)
    except UserNotFoundError:
        raise UnauthorizedError()


def require_admin(user: models.User = Depends(get_current_user)) -> models.User:
    if user.role != models.UserRole.ADMIN:
        raise ForbiddenError()
    return user
