from dataclasses import dataclass
from typing import Optional
import uuid

from sqlalchemy.orm import Session

from xpired.models.user import User


@dataclass(frozen=True)
class ContactInfo:
    email: str
    name: str
    phone: Optional[str] = None


def get_user(db: Session, user_id: uuid.UUID) -> Optional[User]:
    return db.get(User, user_id)


def create_user(db: Session, *, email: str, name: str, phone_number: Optional[str] = None) -> User:
    user = User(email=email, name=name, phone_number=phone_number or None)
    db.add(user)
    db.flush()
    return user


def get_contact_info(db: Session, user_id: uuid.UUID) -> Optional[ContactInfo]:
    user = get_user(db, user_id)
    if user is None:
        return None
    phone = (user.phone_number or "").strip() or None
    return ContactInfo(email=user.email, name=user.name, phone=phone)
