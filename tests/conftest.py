import os
import tempfile
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

_RUNTIME_DIR = tempfile.mkdtemp(prefix="storefront-tests-")

os.environ["ENVIRONMENT"] = "development"
os.environ["SECRET_KEY"] = "test-secret-key-for-the-storefront-suite-0123456789"
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_RUNTIME_DIR, 'app.db')}"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["DISCORD_BOT_TOKEN"] = ""
os.environ["ADMIN_DISCORD_IDS"] = "900000000000000001"
os.environ["ADMIN_ALLOWED_IPS"] = ""
os.environ["LOG_DIR"] = ""
os.environ["PROOF_UPLOAD_DIR"] = os.path.join(_RUNTIME_DIR, "proofs")
os.environ["BACKUP_DIR"] = os.path.join(_RUNTIME_DIR, "backups")

import storefront.models  # noqa: F401,E402
from storefront.db.base_class import Base  # noqa: E402
from storefront.db.session import get_db  # noqa: E402
from storefront.main import app  # noqa: E402

ADMIN_DISCORD_ID = "900000000000000001"


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    db_file = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    db_file.close()

    engine = create_engine(
        f"sqlite:///{db_file.name}",
        connect_args={"check_same_thread": False},
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
        os.unlink(db_file.name)


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.state.limiter.reset()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
