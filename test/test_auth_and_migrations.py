from pathlib import Path

import pytest

from conftest import set_admin_pin

from stockdash.domain.errors import AuthorizationError, NotFoundError
from stockdash.domain.models import UserProfile
from stockdash.repositories.sqlite_repo import SqliteRepository
from stockdash.services.auth_service import PERMISSIONS, AuthService, LoginPolicy, can


def _fetch_admin_row(repo, columns: str = "pin"):
    conn = repo._conn()
    cur = conn.cursor()
    cur.execute(f"SELECT {columns} FROM user_profiles WHERE username='admin'")
    row = cur.fetchone()
    conn.close()
    return row


def test_migrations_are_recorded_and_idempotent(tmp_path: Path):
    repo = SqliteRepository(tmp_path / "m.db")
    repo.init_db()
    repo.init_db()

    conn = repo._conn()
    cur = conn.cursor()
    cur.execute("SELECT version FROM schema_migrations ORDER BY version")
    versions = [int(r[0]) for r in cur.fetchall()]
    cur.execute("SELECT COUNT(*) FROM user_profiles")
    users = int(cur.fetchone()[0])
    conn.close()

    assert versions == [1, 2, 3]
    assert users == 1
    assert repo.integrity_check() == "ok"


def test_migration_failure_restores_db(tmp_path: Path):
    class BrokenMigrationRepo(SqliteRepository):
        def _migration_v3_lookup_indexes(self, cur):
            raise RuntimeError("forced migration failure")

    db = tmp_path / "broken.db"
    repo = SqliteRepository(db)
    repo.init_db()

    conn = repo._conn()
    cur = conn.cursor()
    cur.execute("DELETE FROM schema_migrations WHERE version = 3")
    conn.commit()
    conn.close()

    with pytest.raises(RuntimeError, match="Original database restored"):
        BrokenMigrationRepo(db).run_migrations()

    conn = repo._conn()
    cur = conn.cursor()
    cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
    after = int(cur.fetchone()[0])
    conn.close()

    assert after == 2
    assert list(tmp_path.glob("broken.pre_migration_*.bak"))


def test_bootstrap_admin_pin_is_written_to_file_and_hashed(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("STOCKDASH_BOOTSTRAP_ADMIN_PIN", raising=False)
    repo = SqliteRepository(tmp_path / "bootstrap.db")
    repo.init_db()

    pin = (tmp_path / ".admin_bootstrap_pin").read_text(encoding="utf-8").strip()
    assert pin
    stored, role, must_change = _fetch_admin_row(repo, "pin, role, must_change_pin")
    assert stored.startswith("pbkdf2_sha256$")
    assert role == "super_admin"
    assert int(must_change) == 1

    user = AuthService(repo).login("admin", pin)
    assert user.must_change_pin == 1


def test_explicit_bootstrap_pin_wins(tmp_path: Path):
    repo = SqliteRepository(tmp_path / "pinned.db")
    repo.init_db(bootstrap_pin="Start#2024")
    assert AuthService(repo).login("admin", "Start#2024").username == "admin"


def test_bootstrap_admin_is_reactivated_when_no_user_is_active(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("STOCKDASH_BOOTSTRAP_ADMIN_PIN", raising=False)
    repo = SqliteRepository(tmp_path / "inactive.db")
    repo.init_db()

    conn = repo._conn()
    conn.execute("UPDATE user_profiles SET is_active=0, must_change_pin=0 WHERE username='admin'")
    conn.commit()
    conn.close()

    pin_file = tmp_path / ".admin_bootstrap_pin"
    before = pin_file.read_text(encoding="utf-8").strip()
    repo.init_db()
    after = pin_file.read_text(encoding="utf-8").strip()

    assert after and after != before
    active, must_change = _fetch_admin_row(repo, "is_active, must_change_pin")
    assert int(active) == 1
    assert int(must_change) == 1
    assert AuthService(repo).login("admin", after).role == "super_admin"


def test_legacy_plain_pin_is_upgraded_to_hash_on_successful_login(tmp_path: Path):
    repo = SqliteRepository(tmp_path / "legacy.db")
    repo.init_db()

    conn = repo._conn()
    conn.execute("UPDATE user_profiles SET pin='1234' WHERE username='admin'")
    conn.commit()
    conn.close()

    AuthService(repo).login("admin", "1234")
    assert _fetch_admin_row(repo)[0].startswith("pbkdf2_sha256$")


def test_auth_rejects_wrong_pin_and_blank_user(tmp_path: Path):
    repo = SqliteRepository(tmp_path / "a.db")
    repo.init_db()
    auth = AuthService(repo)

    with pytest.raises(AuthorizationError, match="Invalid username or PIN"):
        auth.login("admin", "wrong")
    with pytest.raises(AuthorizationError, match="Invalid username or PIN"):
        auth.login("nobody", "wrong")
    with pytest.raises(AuthorizationError, match="required"):
        auth.login("   ", "x")


def test_auth_service_locks_after_failed_attempts(tmp_path: Path):
    repo = SqliteRepository(tmp_path / "lock.db")
    repo.init_db()
    admin_pin = set_admin_pin(repo)
    policy = LoginPolicy(max_failed_attempts=2, lockout_seconds=30, min_pin_length=8)
    auth = AuthService(repo, policy=policy)

    with pytest.raises(AuthorizationError, match="Invalid"):
        auth.login("admin", "bad")
    with pytest.raises(AuthorizationError, match="locked"):
        auth.login("admin", "bad")

    # the right pin is refused while the lock lasts, from any service instance
    with pytest.raises(AuthorizationError, match="Retry in"):
        AuthService(repo, policy=policy).login("admin", admin_pin)


def test_successful_login_resets_failed_attempts(tmp_path: Path):
    repo = SqliteRepository(tmp_path / "reset.db")
    repo.init_db()
    admin_pin = set_admin_pin(repo)
    auth = AuthService(repo, policy=LoginPolicy(max_failed_attempts=2, lockout_seconds=30))

    with pytest.raises(AuthorizationError):
        auth.login("admin", "bad")
    auth.login("admin", admin_pin)
    with pytest.raises(AuthorizationError, match="Invalid"):
        auth.login("admin", "bad")


def test_admin_cannot_create_user_with_weak_pin(tmp_path: Path):
    repo = SqliteRepository(tmp_path / "weak_pin.db")
    repo.init_db()
    auth = AuthService(repo)
    admin = auth.login("admin", set_admin_pin(repo))

    with pytest.raises(AuthorizationError, match="at least"):
        auth.create_user(admin, "staff1", "1234", "staff")
    with pytest.raises(AuthorizationError, match="letter"):
        auth.create_user(admin, "staff1", "12345678", "staff")
    with pytest.raises(AuthorizationError, match="number"):
        auth.create_user(admin, "staff1", "OnlyLetters", "staff")
    with pytest.raises(AuthorizationError, match="Unknown role"):
        auth.create_user(admin, "staff1", "Staff1234", "seller")


def test_role_rules_for_user_management(tmp_path: Path):
    repo = SqliteRepository(tmp_path / "roles.db")
    repo.init_db()
    auth = AuthService(repo)
    root = auth.login("admin", set_admin_pin(repo))

    auth.create_user(root, "boss", "Boss12345", "admin")
    auth.create_user(root, "mgr", "Manager123", "manager")
    auth.create_user(root, "clerk", "Clerk1234", "staff")

    boss = auth.login("boss", "Boss12345")
    mgr = auth.login("mgr", "Manager123")
    assert boss.must_change_pin == 1

    with pytest.raises(AuthorizationError, match="super admin"):
        auth.create_user(boss, "boss2", "Boss12345", "admin")
    with pytest.raises(AuthorizationError):
        auth.create_user(mgr, "x", "Viewer123", "guest")
    with pytest.raises(AuthorizationError):
        auth.create_user(root, "clerk", "Clerk1234", "staff")

    roles = {u.username: u.role for u in auth.list_users()}
    assert roles == {"admin": "super_admin", "boss": "admin", "mgr": "manager", "clerk": "staff"}

    clerk_id = next(u.id for u in auth.list_users() if u.username == "clerk")
    auth.deactivate_user(boss, clerk_id)
    assert "clerk" not in {u.username for u in auth.list_users()}
    assert "clerk" in {u.username for u in auth.list_users(include_inactive=True)}
    with pytest.raises(AuthorizationError):
        auth.login("clerk", "Clerk1234")

    with pytest.raises(AuthorizationError, match="own account"):
        auth.deactivate_user(boss, boss.id)
    with pytest.raises(AuthorizationError, match="super admin"):
        auth.deactivate_user(boss, root.id)
    with pytest.raises(NotFoundError):
        auth.deactivate_user(root, 999)


def test_duplicate_user_leaves_database_writable(tmp_path: Path):
    repo = SqliteRepository(tmp_path / "dupe.db")
    repo.init_db()
    auth = AuthService(repo)
    root = auth.login("admin", set_admin_pin(repo))
    clerk_id = auth.create_user(root, "clerk", "Clerk1234", "staff")

    with pytest.raises(AuthorizationError, match="Could not create user") as failed:
        auth.create_user(root, "clerk", "Other1234", "staff")
    # the failed insert must not hold the write lock while its error is alive
    assert failed.value.__cause__ is not None

    temp_id = auth.create_user(root, "temp", "Temp12345", "guest")
    assert temp_id > clerk_id
    auth.deactivate_user(root, temp_id)
    with pytest.raises(AuthorizationError, match="Invalid"):
        auth.login("clerk", "Wrong1234")
    assert auth.login("clerk", "Clerk1234").role == "staff"
    assert {u.username for u in auth.list_users()} == {"admin", "clerk"}


def test_change_my_pin(tmp_path: Path):
    repo = SqliteRepository(tmp_path / "change_pin.db")
    repo.init_db()
    auth = AuthService(repo)
    admin_pin = set_admin_pin(repo)
    admin = auth.login("admin", admin_pin)

    with pytest.raises(AuthorizationError, match="incorrect"):
        auth.change_my_pin(admin, "bad-current1", "NewPass123", "NewPass123")
    with pytest.raises(AuthorizationError, match="does not match"):
        auth.change_my_pin(admin, admin_pin, "NewPass123", "NewPass124")
    with pytest.raises(AuthorizationError, match="different"):
        auth.change_my_pin(admin, "Admin1234", "Admin1234", "Admin1234")

    auth.change_my_pin(admin, admin_pin, "NewPass123", "NewPass123")
    with pytest.raises(AuthorizationError):
        auth.login("admin", admin_pin)
    assert auth.login("admin", "NewPass123").must_change_pin == 0


def test_permission_matrix():
    def user(role):
        return UserProfile(id=1, username=role, role=role)

    assert can(user("super_admin"), "manage_users")
    assert can(user("admin"), "backup_restore")
    assert not can(user("manager"), "clear_data")
    assert can(user("manager"), "import_excel")
    assert can(user("staff"), "create_sale")
    assert not can(user("staff"), "create_purchase")
    assert not can(user("guest"), "create_sale")
    assert can(user("guest"), "export_report")
    assert not can(user("admin"), "launch_rockets")
    assert all("super_admin" in roles for roles in PERMISSIONS.values())
