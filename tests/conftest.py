import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from medrecords.api.deps import get_db, get_storage
from medrecords.database.session import enable_sqlite_foreign_keys
from medrecords.models.base import Base
from medrecords.services import auth_service
from medrecords.storage.blob_storage import BlobStorage

PASSWORD = "secret1"


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool, future=True)
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


@pytest.fixture
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def storage(tmp_path):
    return BlobStorage(tmp_path / "uploads")


@pytest.fixture
def make_user(db):
    def _make(email="a@x.com", password=PASSWORD, full_name="Alice Doe", gender="Female", phone_number="555-0100"):
        return auth_service.signup(db, full_name, email, gender, phone_number, password)

    return _make


@pytest.fixture
def client(session_factory, storage):
    from medrecords.main import app

    def _override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_storage] = lambda: storage
    # Not used as a context manager: startup hooks would touch the configured database.
    yield TestClient(app)
    app.dependency_overrides.clear()


def blob_files(storage: BlobStorage, subfolder: str) -> list:
    return sorted(p.name for p in (storage.base_path / subfolder).iterdir())
