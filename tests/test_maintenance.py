import os
import sqlite3
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from storefront.core.security import create_access_token
from storefront.models.otp import OTPRequest
from storefront.models.token_blacklist import TokenBlacklist
from storefront.models.user import User
from storefront.services import backup_service
from storefront.tasks import maintenance_tasks

ADMIN_DISCORD_ID = "900000000000000001"


def _sqlite_file(path, rows=("first",)) -> str:
    connection = sqlite3.connect(path)
    with connection:
        connection.execute("CREATE TABLE IF NOT EXISTS notes (body TEXT)")
        connection.execute("DELETE FROM notes")
        connection.executemany("INSERT INTO notes (body) VALUES (?)", [(row,) for row in rows])
    connection.close()
    return str(path)


def _notes(path) -> list:
    connection = sqlite3.connect(path)
    try:
        return [row[0] for row in connection.execute("SELECT body FROM notes ORDER BY rowid")]
    finally:
        connection.close()


def test_backup_copies_database(tmp_path):
    database = _sqlite_file(tmp_path / "live.db", rows=("moon", "stars"))
    backup_dir = tmp_path / "backups"

    path = backup_service.backup_database(f"sqlite:///{database}", str(backup_dir), retention=5)

    assert os.path.basename(path).startswith("backup-")
    assert _notes(path) == ["moon", "stars"]
    assert backup_service.list_backups(str(backup_dir)) == [path]


def test_backup_prunes_old_copies(tmp_path):
    database = _sqlite_file(tmp_path / "live.db")
    backup_dir = tmp_path / "backups"

    paths = [
        backup_service.backup_database(f"sqlite:///{database}", str(backup_dir), retention=2)
        for _ in range(4)
    ]

    assert backup_service.list_backups(str(backup_dir)) == [paths[3], paths[2]]


def test_backup_requires_sqlite_file(tmp_path):
    with pytest.raises(backup_service.BackupError):
        backup_service.backup_database("postgresql://user:pw@localhost/shop", str(tmp_path))
    with pytest.raises(backup_service.BackupError):
        backup_service.backup_database(f"sqlite:///{tmp_path / 'missing.db'}", str(tmp_path))


def test_restore_keeps_safety_copy(tmp_path):
    live = _sqlite_file(tmp_path / "live.db", rows=("before",))
    backup_dir = tmp_path / "backups"
    snapshot = backup_service.backup_database(f"sqlite:///{live}", str(backup_dir), retention=5)
    _sqlite_file(tmp_path / "live.db", rows=("after",))

    safety_copy = backup_service.restore_database(snapshot, f"sqlite:///{live}", str(backup_dir))

    assert _notes(live) == ["before"]
    assert os.path.basename(safety_copy).startswith("pre-restore-")
    assert _notes(safety_copy) == ["after"]
    assert backup_service.list_backups(str(backup_dir)) == [snapshot]


def test_restore_missing_backup(tmp_path):
    with pytest.raises(backup_service.BackupError):
        backup_service.restore_database(str(tmp_path / "nope.db"), f"sqlite:///{tmp_path / 'live.db'}")


def test_cleanup_tasks_remove_expired_rows(db_session: Session, monkeypatch):
    monkeypatch.setattr(maintenance_tasks, "SessionLocal", lambda: db_session)
    now = datetime.utcnow()
    db_session.add_all([
        OTPRequest(phone="9876543210", code_hash="old", expires_at=now - timedelta(minutes=70),
                   created_at=now - timedelta(minutes=75)),
        OTPRequest(phone="9876543210", code_hash="fresh", expires_at=now + timedelta(minutes=5)),
        TokenBlacklist(jti="expired", user_id=1, expires_at=now - timedelta(days=1)),
        TokenBlacklist(jti="active", user_id=1, expires_at=now + timedelta(days=1)),
    ])
    db_session.commit()

    otp_result = maintenance_tasks.cleanup_expired_otps.apply().get()
    token_result = maintenance_tasks.cleanup_expired_blacklisted_tokens.apply().get()

    assert otp_result == {"deleted": 1}
    assert token_result == {"deleted": 1}
    assert [otp.code_hash for otp in db_session.query(OTPRequest).all()] == ["fresh"]
    assert [token.jti for token in db_session.query(TokenBlacklist).all()] == ["active"]


def test_admin_cleanup_endpoint(client: TestClient, db_session: Session):
    admin = User(discord_id=ADMIN_DISCORD_ID, username="owner")
    db_session.add(admin)
    db_session.add(
        OTPRequest(phone="9876543210", code_hash="old", expires_at=datetime.utcnow() - timedelta(hours=2),
                   created_at=datetime.utcnow() - timedelta(hours=2))
    )
    db_session.commit()
    client.cookies.set("access_token", create_access_token({"sub": str(admin.id)}))

    response = client.post("/api/v1/admin/maintenance/cleanup-otps")

    assert response.status_code == 200
    assert response.json()["data"] == {"deleted": 1}
