from typing import Any, Dict, List, Optional
import uuid

from sqlalchemy.orm import Session

from xpired.models.document import Document


def get_document(db: Session, document_id: uuid.UUID) -> Optional[Document]:
    return db.get(Document, document_id)


def list_documents_by_user(db: Session, *, user_id: uuid.UUID) -> List[Document]:
    return (
        db.query(Document)
        .filter(Document.user_id == user_id)
        .order_by(Document.created_at.desc())
        .all()
    )


def create_document(db: Session, *, user_id: uuid.UUID, fields: Dict[str, Any]) -> Document:
    document = Document(user_id=user_id, **fields)
    db.add(document)
    db.flush()
    return document


def update_document(db: Session, document: Document, fields: Dict[str, Any]) -> Document:
    for key, value in fields.items():
        setattr(document, key, value)
    db.add(document)
    db.flush()
    return document


def delete_document(db: Session, document: Document) -> None:
    db.delete(document)
    db.flush()
