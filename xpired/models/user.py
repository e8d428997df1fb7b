import uuid

from sqlalchemy import Column, String, Uuid
from sqlalchemy.orm import relationship

from xpired.db.base import Base
from xpired.db.types import UTCDateTime
from xpired.utils.timezone import utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    phone_number = Column(String, nullable=True)

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    documents = relationship("Document", back_populates="owner", cascade="all, delete-orphan", passive_deletes=True)
