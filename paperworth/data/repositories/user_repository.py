from typing import Optional

from sqlalchemy import Column, DateTime, Integer, String

from paperworth.data.base import Base
from paperworth.domain.models import User, utcnow


class UserORM(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    firebase_id = Column(String, unique=True, index=True, nullable=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)


def user_to_domain(user_orm: UserORM) -> User:
    return User(
        id=user_orm.id,
        email=user_orm.email,
        name=user_orm.name,
        firebase_id=user_orm.firebase_id,
        password_hash=user_orm.password_hash,
        created_at=user_orm.created_at,
    )


def get_user(db, user_id: int) -> Optional[User]:
    user = db.query(UserORM).filter(UserORM.id == user_id).first()
    return user_to_domain(user) if user else None


def get_user_by_email(db, email: str) -> Optional[User]:
    user = db.query(UserORM).filter(UserORM.email == email).first()
    return user_to_domain(user) if user else None


def get_user_by_firebase_id(db, firebase_id: str) -> Optional[User]:
    user = db.query(UserORM).filter(UserORM.firebase_id == firebase_id).first()
    return user_to_domain(user) if user else None


def create_user(
    db, email: str, name: str, password_hash: str, firebase_id: Optional[str] = None
) -> User:
    db_user = UserORM(
        email=email,
        name=name,
        password_hash=password_hash,
        firebase_id=firebase_id,
        created_at=utcnow(),
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return user_to_domain(db_user)


def update_user(db, user_id: int, **fields) -> Optional[User]:
    user = db.query(UserORM).filter(UserORM.id == user_id).first()
    if not user:
        return None
    for key, value in fields.items():
        setattr(user, key, value)
    db.commit()
    db.refresh(user)
    return user_to_domain(user)
