from datetime import datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from medrecords.models.session import UserSession


def get_by_token(db: Session, token: str) -> UserSession | None:
    return db.query(UserSession).filter(UserSession.session_token == token).first()


def create(db: Session, session: UserSession) -> UserSession:
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def save(db: Session, session: UserSession) -> None:
    db.add(session)
    db.commit()


def deactivate_all_for_user(db: Session, user_id: str) -> int:
    result = db.execute(
        update(UserSession)
        .where(UserSession.user_id == user_id, UserSession.is_active.is_(True))
        .values(is_active=False)
    )
    db.commit()
    return result.rowcount or 0


def deactivate_expired(db: Session, now: datetime) -> int:
    result = db.execute(
        update(UserSession)
        .where(UserSession.expires_at <= now, UserSession.is_active.is_(True))
        .values(is_active=False)
    )
    db.commit()
    return result.rowcount or 0
