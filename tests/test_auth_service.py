from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from medrecords.core.errors import DuplicateEmail, InvalidCredentials, NotFound, StorageFailure, ValidationError
from medrecords.models.base import utcnow
from medrecords.models.enums import Gender
from medrecords.models.session import UserSession
from medrecords.models.user import User
from medrecords.repositories import sessions as session_repo
from medrecords.services import auth_service
from medrecords.services.file_service import UploadedFile
from medrecords.services.password_service import hash_password_legacy
from medrecords.storage.blob_storage import PROFILES, guess_content_type

from conftest import PASSWORD, blob_files

PNG = b"\x89PNG\r\n\x1a\n" + b"0" * 64


def _login(db, email="a@x.com", password=PASSWORD):
    return auth_service.login(db, email, password, "127.0.0.1", "pytest")


def test_signup_creates_user_without_session(db, make_user):
    user = make_user(gender="female")
    assert user.gender == "Female"
    assert db.query(UserSession).count() == 0
    stored = db.query(User).filter(User.id == user.id).one()
    assert stored.is_active
    assert stored.password_hash != PASSWORD


def test_public_user_has_no_password_hash(make_user):
    user = make_user()
    assert "password_hash" not in user.model_dump()


def test_signup_rejects_unknown_gender(make_user):
    with pytest.raises(ValidationError):
        make_user(gender="other")


def test_signup_duplicate_email(make_user):
    make_user()
    with pytest.raises(DuplicateEmail):
        make_user(full_name="Someone Else")


def test_signup_race_surfaces_duplicate_email(db, make_user, monkeypatch):
    make_user()
    # Both requests passed the pre-check; the unique index picks the loser.
    monkeypatch.setattr(auth_service.user_repo, "email_taken", lambda *a, **kw: False)
    with pytest.raises(DuplicateEmail):
        make_user(full_name="Racer")
    assert db.query(User).filter(User.email == "a@x.com").count() == 1


def test_login_returns_token_and_stamps_last_login(db, make_user):
    user = make_user()
    result = _login(db)
    assert result.user.id == user.id
    assert len(result.token) >= 32

    session = session_repo.get_by_token(db, result.token)
    assert session.is_active
    assert session.ip_address == "127.0.0.1"
    assert timedelta(days=6, hours=23) < session.expires_at - session.created_at <= timedelta(days=7)
    assert db.query(User).filter(User.id == user.id).one().last_login_at is not None


def test_tokens_are_unique_per_login(db, make_user):
    make_user()
    assert _login(db).token != _login(db).token


@pytest.mark.parametrize("email, password", [("a@x.com", "wrong"), ("nobody@x.com", PASSWORD)])
def test_login_failures_share_one_error(db, make_user, email, password):
    make_user()
    with pytest.raises(InvalidCredentials) as exc:
        _login(db, email, password)
    assert exc.value.message == "Invalid email or password"


def test_inactive_user_cannot_log_in(db, make_user):
    user = make_user()
    db.query(User).filter(User.id == user.id).update({"is_active": False})
    db.commit()
    with pytest.raises(InvalidCredentials):
        _login(db)


def test_login_upgrades_legacy_hash(db):
    db.add(
        User(
            full_name="Legacy",
            email="old@x.com",
            gender=Gender.Male,
            phone_number="1",
            password_hash=hash_password_legacy(PASSWORD),
        )
    )
    db.commit()
    _login(db, "old@x.com")
    stored = db.query(User).filter(User.email == "old@x.com").one()
    assert stored.password_hash.startswith("$pbkdf2-sha256$")
    _login(db, "old@x.com")


def test_resolve_returns_user_and_advances_last_access(db, make_user):
    user = make_user()
    token = _login(db).token
    session = session_repo.get_by_token(db, token)
    before = session.last_accessed_at

    assert auth_service.resolve(db, token).id == user.id
    db.refresh(session)
    first = session.last_accessed_at
    assert first >= before

    assert auth_service.resolve(db, token).id == user.id
    db.refresh(session)
    assert session.last_accessed_at >= first


def test_last_access_never_moves_backwards(db, make_user):
    make_user()
    token = _login(db).token
    session = session_repo.get_by_token(db, token)
    future = utcnow() + timedelta(hours=1)
    session.last_accessed_at = future
    db.commit()

    assert auth_service.resolve(db, token) is not None
    db.refresh(session)
    assert session.last_accessed_at == future


@pytest.mark.parametrize("token", [None, "", "not-a-token"])
def test_resolve_unknown_token(db, token):
    assert auth_service.resolve(db, token) is None


def test_expired_session_is_lazily_deactivated(db, make_user):
    make_user()
    token = _login(db).token
    session = session_repo.get_by_token(db, token)
    session.expires_at = utcnow() - timedelta(seconds=1)
    db.commit()

    assert auth_service.resolve(db, token) is None
    db.refresh(session)
    assert session.is_active is False


def test_resolve_rejects_inactive_owner(db, make_user):
    user = make_user()
    token = _login(db).token
    db.query(User).filter(User.id == user.id).update({"is_active": False})
    db.commit()
    assert auth_service.resolve(db, token) is None


def test_logout_deactivates_and_is_idempotent(db, make_user):
    make_user()
    token = _login(db).token
    assert auth_service.logout(db, token) is True
    assert auth_service.resolve(db, token) is None
    assert auth_service.logout(db, token) is True
    assert auth_service.logout(db, "missing") is False
    assert auth_service.logout(db, None) is False


def test_logout_everywhere(db, make_user):
    user = make_user()
    tokens = [_login(db).token for _ in range(3)]
    assert auth_service.logout_everywhere(db, user.id) == 3
    assert all(auth_service.resolve(db, t) is None for t in tokens)


def test_cleanup_expired_sessions(db, make_user):
    make_user()
    live, stale = _login(db).token, _login(db).token
    session = session_repo.get_by_token(db, stale)
    session.expires_at = utcnow() - timedelta(days=1)
    db.commit()

    assert auth_service.cleanup_expired_sessions(db) == 1
    assert auth_service.resolve(db, live) is not None
    db.refresh(session)
    assert session.is_active is False


def test_deleting_user_cascades_to_sessions(db, make_user):
    user = make_user()
    _login(db)
    db.delete(db.query(User).filter(User.id == user.id).one())
    db.commit()
    assert db.query(UserSession).count() == 0


def _update(db, storage, user_id, picture=None, **overrides):
    fields = dict(full_name="Alice Updated", email="a@x.com", gender="FEMALE", phone_number="555-0199")
    fields.update(overrides)
    return auth_service.update_profile(db, storage, user_id=user_id, picture=picture, **fields)


def test_update_profile_fields(db, storage, make_user):
    user = make_user()
    updated = _update(db, storage, user.id, email="alice@x.com")
    assert updated.full_name == "Alice Updated"
    assert updated.email == "alice@x.com"
    assert updated.phone_number == "555-0199"
    assert updated.profile_image == ""


def test_update_profile_email_must_stay_unique(db, storage, make_user):
    make_user(email="b@x.com")
    user = make_user()
    with pytest.raises(DuplicateEmail):
        _update(db, storage, user.id, email="b@x.com")


def test_update_profile_rejects_bad_gender(db, storage, make_user):
    user = make_user()
    with pytest.raises(ValidationError):
        _update(db, storage, user.id, gender="unknown")


def test_update_profile_unknown_user(db, storage):
    with pytest.raises(NotFound):
        _update(db, storage, "missing-id")


def test_update_profile_replaces_picture(db, storage, make_user):
    user = make_user()
    first = _update(db, storage, user.id, picture=UploadedFile(PNG, "me.png", "image/png"))
    assert first.profile_image.startswith("profiles/me_")
    assert storage.exists(first.profile_image)

    second = _update(db, storage, user.id, picture=UploadedFile(PNG, "new me.png", "image/png"))
    assert second.profile_image != first.profile_image
    assert storage.exists(second.profile_image)
    assert not storage.exists(first.profile_image)


def test_failed_old_picture_delete_does_not_block_update(db, storage, make_user, monkeypatch):
    user = make_user()
    first = _update(db, storage, user.id, picture=UploadedFile(PNG, "me.png", "image/png"))

    def broken_delete(path):
        raise OSError("disk on fire")

    monkeypatch.setattr(storage, "delete", broken_delete)
    second = _update(db, storage, user.id, picture=UploadedFile(PNG, "me2.png", "image/png"))
    assert second.profile_image != first.profile_image


@pytest.mark.parametrize(
    "picture",
    [
        UploadedFile(b"%PDF", "me.pdf", "application/pdf"),
        UploadedFile(b"", "me.png", "image/png"),
        UploadedFile(b"0" * (5 * 1024 * 1024 + 1), "me.png", "image/png"),
    ],
)
def test_invalid_pictures_are_rejected_without_side_effects(db, storage, make_user, picture):
    user = make_user()
    with pytest.raises(ValidationError):
        _update(db, storage, user.id, picture=picture)
    assert blob_files(storage, PROFILES) == []
    assert db.query(User).filter(User.id == user.id).one().full_name == "Alice Doe"


def test_picture_content_type_parameters_are_ignored(db, storage, make_user):
    user = make_user()
    updated = _update(db, storage, user.id, picture=UploadedFile(PNG, "me.png", "Image/PNG; charset=binary"))
    assert storage.exists(updated.profile_image)


def test_stemless_picture_name_keeps_its_extension(db, storage, make_user):
    user = make_user()
    updated = _update(db, storage, user.id, picture=UploadedFile(PNG, ".png", "image/png"))
    assert updated.profile_image.startswith("profiles/file_")
    assert guess_content_type(updated.profile_image) == "image/png"


def test_store_failure_on_profile_save_discards_new_picture(db, storage, make_user, monkeypatch):
    user = make_user()
    first = _update(db, storage, user.id, picture=UploadedFile(PNG, "me.png", "image/png"))

    def broken_save(db, user):
        raise OperationalError("UPDATE", {}, Exception("database is locked"))

    monkeypatch.setattr(auth_service.user_repo, "save", broken_save)
    with pytest.raises(StorageFailure):
        _update(db, storage, user.id, full_name="Never Saved", picture=UploadedFile(PNG, "me2.png", "image/png"))

    assert blob_files(storage, PROFILES) == [first.profile_image.split("/", 1)[1]]
    stored = db.query(User).filter(User.id == user.id).one()
    assert stored.full_name == "Alice Updated"
    assert stored.profile_image == first.profile_image
