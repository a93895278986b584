import pytest

import auth
import db
from models import ROLE_OWNER, SessionContext


@pytest.fixture
def database(tmp_path, monkeypatch):
    """Fresh SQLite file per test with the default Owner and payment methods."""
    path = tmp_path / "membership.db"
    monkeypatch.setattr(db, "DB_FILE", path)
    monkeypatch.setattr("config.UPLOAD_DIR", tmp_path / "uploads")
    db.init_db(auth.hash_password("secret1", rounds=4))
    return path


@pytest.fixture
def owner(database):
    admin = db.fetch_one("SELECT id, name FROM admin_users ORDER BY id LIMIT 1")
    return SessionContext(admin_id=admin["id"], admin_name=admin["name"], role=ROLE_OWNER)
