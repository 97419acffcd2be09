import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def set_admin_pin(repo, pin: str = "Admin#1234") -> str:
    from stockdash.repositories.sqlite_repo import SqliteRepository

    conn = repo._conn()
    cur = conn.cursor()
    cur.execute(
        "UPDATE user_profiles SET pin=?, must_change_pin=0 WHERE username='admin'",
        (SqliteRepository._hash_pin(pin),),
    )
    conn.commit()
    conn.close()
    return pin


@pytest.fixture
def repo(tmp_path: Path, monkeypatch):
    from stockdash.repositories.sqlite_repo import SqliteRepository

    monkeypatch.delenv("STOCKDASH_BOOTSTRAP_ADMIN_PIN", raising=False)
    r = SqliteRepository(tmp_path / "inventory.db")
    r.init_db()
    return r


@pytest.fixture
def container(tmp_path: Path, monkeypatch):
    from stockdash.application.container import build_container
    from stockdash.config import Settings

    monkeypatch.delenv("STOCKDASH_BOOTSTRAP_ADMIN_PIN", raising=False)
    return build_container(tmp_path / "inventory.db", settings=Settings(currency_symbol="$"), backup_dir=tmp_path / "backups")
