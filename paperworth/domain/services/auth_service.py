import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from paperworth.config import Settings
from paperworth.data.repositories.user_repository import (
    create_user,
    get_user,
    get_user_by_email,
    get_user_by_firebase_id,
    update_user,
)
from paperworth.domain.errors import BadRequest, Conflict, Unauthorized
from paperworth.domain.models import User, utcnow
from paperworth.integrations.firebase_tokens import (
    FirebaseTokenError,
    FirebaseTokenVerifier,
)

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ALGORITHM = "HS256"
FIREBASE_PASSWORD_PREFIX = "!firebase:"
DEFAULT_DISPLAY_NAME = "User"


@dataclass
class Identity:
    uid: str
    email: Optional[str] = None


def verify_password(plain_password, hashed_password):
    # Users provisioned through Firebase carry a placeholder, not a hash.
    if not hashed_password or pwd_context.identify(hashed_password) is None:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def local_uid(user: User) -> str:
    return user.firebase_id or str(user.id)


def create_access_token(
    data: dict, secret_key: str, expires_delta: timedelta | None = None
):
    to_encode = data.copy()
    expire = utcnow() + (expires_delta or timedelta(minutes=60))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret_key, algorithm=ALGORITHM)


class TokenVerifier:
    """
    Resolves a bearer token to an Identity.

    Local HS256 tokens are checked against SECRET_KEY; anything else is
    treated as a Firebase ID token.
    """

    def __init__(self, settings: Settings, firebase: FirebaseTokenVerifier):
        self.settings = settings
        self.firebase = firebase

    def verify(self, token: str, timeout: float = 10.0) -> Identity:
        try:
            header = jwt.get_unverified_header(token)
        except JWTError:
            raise Unauthorized("Invalid token")

        if header.get("alg") == ALGORITHM:
            try:
                payload = jwt.decode(
                    token, self.settings.secret_key, algorithms=[ALGORITHM]
                )
            except JWTError:
                raise Unauthorized("Invalid token")
            if not payload.get("sub"):
                raise Unauthorized("Invalid token")
            return Identity(uid=payload["sub"], email=payload.get("email"))

        return self.verify_firebase(token, timeout=timeout)

    def verify_firebase(self, token: str, timeout: float = 10.0) -> Identity:
        """Accept only a Firebase ID token; local tokens are rejected."""
        try:
            claims = self.firebase.verify(token, timeout=timeout)
        except FirebaseTokenError as e:
            logger.info("Rejected Firebase token: %s", e)
            raise Unauthorized("Invalid token")
        return Identity(uid=claims["uid"], email=claims.get("email"))


def register_user(db: Session, name: str, email: str, password: str) -> User:
    email = email.strip().lower()
    if not email or "@" not in email:
        raise BadRequest("A valid email is required")
    if len(password) < 8:
        raise BadRequest("Password must be at least 8 characters long")
    if get_user_by_email(db, email):
        raise Conflict("Email already registered")
    try:
        return create_user(
            db,
            email=email,
            name=name.strip() or DEFAULT_DISPLAY_NAME,
            password_hash=get_password_hash(password),
        )
    except IntegrityError:
        db.rollback()
        raise Conflict("Email already registered")


def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
    user = get_user_by_email(db, email.strip().lower())
    if not user or not verify_password(password, user.password_hash):
        return None
    return user


def link_firebase_user(
    db: Session, verified: Identity, uid: str, email: str, name: Optional[str]
) -> User:
    """
    Resolve or provision the local user for a verified Firebase identity.

    Lookup order is Firebase uid, then email (linking the uid onto that user);
    otherwise a new user is created with a placeholder password.
    """
    if verified.uid != uid:
        raise Unauthorized("Token does not match user")
    email = (email or "").strip().lower()
    if verified.email and verified.email.strip().lower() != email:
        raise Unauthorized("Token does not match email")
    name = (name or "").strip()

    user = get_user_by_firebase_id(db, uid)
    if user:
        if name and name != user.name:
            user = update_user(db, user.id, name=name)
        return user

    if not email:
        raise BadRequest("Email is required")

    user = get_user_by_email(db, email)
    if user:
        fields = {"firebase_id": uid}
        if name and name != user.name:
            fields["name"] = name
        logger.info("Linking Firebase uid to existing user %s", user.id)
        return update_user(db, user.id, **fields)

    try:
        user = create_user(
            db,
            email=email,
            name=name or DEFAULT_DISPLAY_NAME,
            password_hash=FIREBASE_PASSWORD_PREFIX + uid,
            firebase_id=uid,
        )
        logger.info("Provisioned user %s for Firebase uid", user.id)
        return user
    except IntegrityError:
        # Lost a race with a concurrent sign-in for the same email.
        db.rollback()
        user = get_user_by_email(db, email)
        if user is None:
            raise
        if user.firebase_id != uid:
            user = update_user(db, user.id, firebase_id=uid)
        return user


def get_user_for_identity(db: Session, identity: Identity) -> Optional[User]:
    user = get_user_by_firebase_id(db, identity.uid)
    if user:
        return user
    if identity.uid.isdigit():
        user = get_user(db, int(identity.uid))
        if user:
            return user
    if identity.email:
        return get_user_by_email(db, identity.email.lower())
    return None
