from typing import Generator, Optional
import hmac
import uuid

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from xpired.core.config import settings
from xpired.reminders.runtime import ReminderRuntime
from xpired.reminders.service import DocumentReminderService


def get_runtime(request: Request) -> ReminderRuntime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service is starting up")
    return runtime


def get_db(runtime: ReminderRuntime = Depends(get_runtime)) -> Generator[Session, None, None]:
    db = runtime.session_factory()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_service(
    db: Session = Depends(get_db),
    runtime: ReminderRuntime = Depends(get_runtime),
) -> DocumentReminderService:
    return runtime.service(db)


def verify_api_key(api_key: str) -> bool:
    return any(hmac.compare_digest(api_key, valid) for valid in settings.VALID_API_KEYS)


def verify_api_key_dependency(
    x_api_key: Optional[str] = Header(None),
    authorization: Optional[str] = Header(None)
) -> bool:
    """
    Dependency to verify API key for specific endpoints
    """
    if not settings.REQUIRE_API_KEY:
        return True

    # Extract API key from headers
    api_key = None
    if x_api_key:
        api_key = x_api_key
    elif authorization and authorization.startswith("Bearer "):
        api_key = authorization.split(" ")[1]

    if not api_key or not verify_api_key(api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )

    return True


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> uuid.UUID:
    """Caller identity is established upstream and forwarded in ``X-User-Id``."""
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid X-User-Id header")
