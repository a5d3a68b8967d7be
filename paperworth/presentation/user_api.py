import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from paperworth.config import Settings, get_settings
from paperworth.data.base import get_db
from paperworth.domain.deadline import RequestDeadline
from paperworth.domain.errors import NotFound, Unauthorized
from paperworth.domain.models import User
from paperworth.domain.services.auth_service import (
    Identity,
    TokenVerifier,
    authenticate_user,
    create_access_token,
    get_user_for_identity,
    link_firebase_user,
    local_uid,
    register_user,
)
from paperworth.logging_config import log_action
from paperworth.presentation.dependencies import (
    IDENTITY_TIMEOUT_CAP_SECONDS,
    get_current_identity,
    get_deadline,
    get_token_verifier,
)
from paperworth.presentation.schemas import CamelModel, UtcDateTime

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


class FirebaseAuthRequest(CamelModel):
    uid: str
    email: str
    name: Optional[str] = None
    id_token: str


class RegisterRequest(CamelModel):
    name: str = ""
    email: str
    password: str


class LoginRequest(CamelModel):
    email: str
    password: str


class UserResponse(CamelModel):
    id: int
    name: str
    email: str
    created_at: Optional[UtcDateTime] = None

    @staticmethod
    def from_domain(user: User) -> "UserResponse":
        return UserResponse(
            id=user.id, name=user.name, email=user.email, created_at=user.created_at
        )


class TokenResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


@router.post("/firebase-auth", response_model=UserResponse)
def firebase_auth_endpoint(
    req: FirebaseAuthRequest,
    db: Session = Depends(get_db),
    verifier: TokenVerifier = Depends(get_token_verifier),
    deadline: RequestDeadline = Depends(get_deadline),
):
    with log_action(logger, "firebase-auth", user=req.uid):
        identity = verifier.verify_firebase(
            req.id_token, timeout=deadline.timeout(IDENTITY_TIMEOUT_CAP_SECONDS)
        )
        user = link_firebase_user(db, identity, req.uid, req.email, req.name)
        return UserResponse.from_domain(user)


@router.post("/register", response_model=UserResponse, status_code=201)
def register_user_endpoint(req: RegisterRequest, db: Session = Depends(get_db)):
    with log_action(logger, "register"):
        user = register_user(db, req.name, req.email, req.password)
        return UserResponse.from_domain(user)


@router.post("/login", response_model=TokenResponse)
def login_endpoint(
    req: LoginRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    with log_action(logger, "login"):
        user = authenticate_user(db, req.email, req.password)
        if not user:
            raise Unauthorized("Incorrect email or password")
        access_token = create_access_token(
            data={"sub": local_uid(user), "email": user.email},
            secret_key=settings.secret_key,
            expires_delta=timedelta(minutes=settings.access_token_expire_minutes),
        )
        return TokenResponse(
            access_token=access_token, user=UserResponse.from_domain(user)
        )


@router.get("/me", response_model=UserResponse)
def read_users_me(
    identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)
):
    user = get_user_for_identity(db, identity)
    if user is None:
        raise NotFound("No local user for this identity")
    return UserResponse.from_domain(user)
