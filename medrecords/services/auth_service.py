import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from medrecords.core.config import settings
from medrecords.core.errors import DuplicateEmail, InvalidCredentials, NotFound, StorageFailure, ValidationError
from medrecords.models.base import utcnow
from medrecords.models.enums import Gender
from medrecords.models.session import UserSession
from medrecords.models.user import User
from medrecords.repositories import sessions as session_repo
from medrecords.repositories import users as user_repo
from medrecords.schemas.auth import PublicUser
from medrecords.services.file_service import UploadedFile, normalize_content_type
from medrecords.services.password_service import hash_password, needs_rehash, verify_password
from medrecords.storage.blob_storage import PROFILES, BlobStorage

logger = logging.getLogger(__name__)


@dataclass
class LoginResult:
    token: str
    user: PublicUser


def to_public_user(user: User) -> PublicUser:
    return PublicUser(
        id=str(user.id),
        full_name=user.full_name,
        email=user.email,
        gender=Gender(user.gender).value,
        phone_number=user.phone_number,
        profile_image=user.profile_image or "",
    )


def generate_session_token() -> str:
    # 256 bits from the OS CSPRNG, URL/cookie safe.
    return secrets.token_urlsafe(32)


def signup(db: Session, full_name: str, email: str, gender: str, phone_number: str, password: str) -> PublicUser:
    """Create an active account. Does not log the user in."""
    parsed_gender = Gender.parse(gender)
    if not password:
        raise ValidationError("Password is required")
    if user_repo.email_taken(db, email):
        raise DuplicateEmail()

    user = User(
        full_name=full_name.strip(),
        email=email,
        gender=parsed_gender,
        phone_number=phone_number.strip(),
        password_hash=hash_password(password),
        is_active=True,
    )
    try:
        user = user_repo.save(db, user)
    except IntegrityError as e:
        # Lost a race against a concurrent signup; the unique index decides.
        db.rollback()
        raise DuplicateEmail() from e

    logger.info("New account registered: %s", user.id)
    return to_public_user(user)


def login(db: Session, email: str, password: str, client_ip: str, user_agent: str) -> LoginResult:
    user = user_repo.get_by_email(db, email)
    if user is None or not user.is_active or not verify_password(password, user.password_hash):
        logger.info("Failed login attempt for %s", email)
        raise InvalidCredentials()

    now = utcnow()
    session = UserSession(
        user_id=user.id,
        session_token=generate_session_token(),
        created_at=now,
        expires_at=now + timedelta(days=settings.session_lifetime_days),
        last_accessed_at=now,
        ip_address=client_ip or "Unknown",
        user_agent=user_agent or "",
        is_active=True,
    )
    session = session_repo.create(db, session)

    user.last_login_at = now
    if needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
    user = user_repo.save(db, user)

    logger.info("User %s logged in from %s", user.id, session.ip_address)
    return LoginResult(token=session.session_token, user=to_public_user(user))


def resolve(db: Session, token: str | None) -> PublicUser | None:
    """Map a session token to its owner, or None.

    Valid only while the session is active, unexpired, and its user active.
    Every successful resolution advances `last_accessed_at`.
    """
    if not token:
        return None
    session = session_repo.get_by_token(db, token)
    if session is None or not session.is_active:
        return None

    now = utcnow()
    if now >= session.expires_at:
        session.is_active = False
        session_repo.save(db, session)
        return None

    user = session.user
    if user is None or not user.is_active:
        return None

    previous = session.last_accessed_at
    session.last_accessed_at = now if previous is None or now > previous else previous
    session_repo.save(db, session)
    return to_public_user(user)


def logout(db: Session, token: str | None) -> bool:
    """Deactivate the session behind `token`. True if such a session exists, already inactive or not."""
    if not token:
        return False
    try:
        session = session_repo.get_by_token(db, token)
        if session is None:
            return False
        if session.is_active:
            session.is_active = False
            session_repo.save(db, session)
            logger.info("Session closed for user %s", session.user_id)
        return True
    except Exception:
        db.rollback()
        logger.exception("Logout failed")
        return False


def logout_everywhere(db: Session, user_id: str) -> int:
    count = session_repo.deactivate_all_for_user(db, user_id)
    logger.info("Closed %d session(s) for user %s", count, user_id)
    return count


def cleanup_expired_sessions(db: Session) -> int:
    count = session_repo.deactivate_expired(db, utcnow())
    if count:
        logger.info("Deactivated %d expired session(s)", count)
    return count


def get_user(db: Session, user_id: str) -> PublicUser | None:
    user = user_repo.get_by_id(db, user_id)
    return to_public_user(user) if user else None


def _validate_picture(picture: UploadedFile) -> None:
    if not picture.data:
        raise ValidationError("Profile picture is empty")
    content_type = normalize_content_type(picture.content_type)
    if content_type not in settings.allowed_picture_content_types:
        raise ValidationError("Invalid image type. Allowed: JPEG, PNG, GIF")
    if len(picture.data) > settings.max_profile_picture_size:
        limit_mb = settings.max_profile_picture_size // 1024 // 1024
        raise ValidationError(f"Profile picture exceeds maximum allowed size of {limit_mb} MB")


def update_profile(
    db: Session,
    storage: BlobStorage,
    user_id: str,
    full_name: str,
    email: str,
    gender: str,
    phone_number: str,
    picture: UploadedFile | None = None,
) -> PublicUser:
    user = user_repo.get_by_id(db, user_id)
    if user is None:
        raise NotFound("User not found")

    parsed_gender = Gender.parse(gender)
    if email != user.email and user_repo.email_taken(db, email, exclude_user_id=user_id):
        raise DuplicateEmail("Email is already in use by another account")
    if picture is not None:
        _validate_picture(picture)

    old_picture = user.profile_image or ""
    new_picture = None
    if picture is not None:
        new_picture = storage.save(picture.data, picture.file_name, picture.content_type, PROFILES)

    user.full_name = full_name.strip()
    user.email = email
    user.gender = parsed_gender
    user.phone_number = phone_number.strip()
    if new_picture:
        user.profile_image = new_picture

    try:
        user = user_repo.save(db, user)
    except IntegrityError as e:
        db.rollback()
        if new_picture:
            _discard_blob(storage, new_picture)
        raise DuplicateEmail("Email is already in use by another account") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Profile save failed for user %s: %s", user_id, e)
        if new_picture:
            _discard_blob(storage, new_picture)
        raise StorageFailure("An error occurred while updating the profile") from e

    if new_picture and old_picture:
        _discard_blob(storage, old_picture)

    logger.info("Profile updated for user %s", user.id)
    return to_public_user(user)


def _discard_blob(storage: BlobStorage, path: str) -> None:
    """Best-effort removal; a leftover blob never fails the caller."""
    try:
        storage.delete(path)
    except Exception:
        logger.warning("Could not delete blob %s", path, exc_info=True)
