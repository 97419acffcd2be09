import json
from pathlib import Path

import pytest
import requests

from stockdash.domain.errors import BackupError, HostedBackendError
from stockdash.repositories.sqlite_repo import SqliteRepository
from stockdash.services.backup_service import BackupService
from stockdash.services.hosted_client import HostedClient
from stockdash.services.inventory_service import InventoryService
from stockdash.services.purchase_service import PurchaseService
from stockdash.services.returns_service import SalesReturnService
from stockdash.services.sales_service import SalesService
from stockdash.services.sync_service import SyncService
from stockdash.services.voucher_service import VoucherService


def _seed(repo) -> int:
    inv = InventoryService(repo)
    pid = inv.add_product("SKU-R-1", "Restore test", opening_stock=10, purchase_price=1, sell_price=2)
    sale = SalesService(repo).add_sale(pid, 2, customer_name="Karim")
    SalesReturnService(repo).add(sale, 1, "Dented")
    PurchaseService(repo).create_order("Acme", [{"product_id": pid, "quantity": 4}])
    VoucherService(repo, "sales").create("Rahim", [{"product_id": pid, "quantity": 1}])
    return pid


def test_snapshot_create_and_restore(tmp_path: Path):
    db_path = tmp_path / "shop.db"
    repo = SqliteRepository(db_path)
    repo.init_db()
    _seed(repo)

    backup = BackupService(repo, db_path, tmp_path / "backups")
    snapshot = backup.create_backup()
    assert snapshot.name.startswith("inventory_backup_")
    assert snapshot.suffix == ".db"
    assert backup.list_backups() == [snapshot]

    conn = repo._conn()
    conn.execute("DELETE FROM sales_voucher_items")
    conn.execute("DELETE FROM sales_vouchers")
    conn.commit()
    conn.close()
    assert repo.list_vouchers("sales") == []

    backup.restore_backup(snapshot)
    assert [v.customer_name for v in repo.list_vouchers("sales")] == ["Rahim"]
    assert any(p.sku == "SKU-R-1" for p in repo.list_products())


def test_snapshot_retention_and_bad_files(tmp_path: Path):
    db_path = tmp_path / "shop.db"
    repo = SqliteRepository(db_path)
    repo.init_db()
    backup = BackupService(repo, db_path, tmp_path / "backups", max_snapshots=2)
    for _ in range(4):
        backup.create_backup()
    assert len(backup.list_backups()) == 2

    with pytest.raises(BackupError, match="not found"):
        backup.restore_backup(tmp_path / "missing.db")

    junk = tmp_path / "junk.db"
    junk.write_bytes(b"this is not sqlite at all" * 100)
    with pytest.raises(BackupError):
        backup.restore_backup(junk)


def test_json_backup_round_trip(tmp_path: Path):
    db_path = tmp_path / "shop.db"
    repo = SqliteRepository(db_path)
    repo.init_db()
    pid = _seed(repo)
    backup = BackupService(repo, db_path, tmp_path / "backups")

    target = backup.export_json(tmp_path / "backup.json")
    payload = json.loads(target.read_text(encoding="utf-8"))
    assert payload["version"] == "1.0"
    assert payload["products"][0]["openingStock"] == 10
    assert payload["salesVouchers"][0]["items"][0]["productName"] == "Restore test"
    assert payload["salesReturns"][0]["originalSaleId"] == payload["sales"][0]["id"]

    SalesService(repo).clear_all()
    assert repo.list_sales() == []

    counts = backup.restore_json(target)
    assert counts["sales"] == 1
    assert counts["sales_returns"] == 1
    assert counts["sales_voucher_items"] == 1
    assert counts["skipped"] == 0

    # restored rows are taken as-is; the persisted stock comes with the product rows
    product = repo.get_product_by_id(pid)
    assert product.stock == 11
    assert [s.customer_name for s in repo.list_sales()] == ["Karim"]
    assert repo.list_purchases()[0].purchase_order_id == "PO0001"


def test_json_restore_skips_rows_the_store_rejects(tmp_path: Path):
    db_path = tmp_path / "shop.db"
    repo = SqliteRepository(db_path)
    repo.init_db()
    backup = BackupService(repo, db_path, tmp_path / "backups")

    payload = {
        "products": [
            {"id": 1, "sku": "A", "name": "Alpha", "category": "", "unit": "", "stock": 3, "reorderPoint": 1,
             "openingStock": 3, "purchasePrice": 1, "sellPrice": 2},
            {"id": 2, "sku": "A", "name": "Duplicate sku", "category": "", "unit": "", "stock": 1, "reorderPoint": 1,
             "openingStock": 1, "purchasePrice": 1, "sellPrice": 2},
        ],
        "sales": [
            {"id": 1, "productId": 1, "productName": "Alpha", "quantity": 1, "unitPrice": 2, "totalAmount": 2,
             "date": "2024-01-01", "status": "Completed"},
            {"id": 2, "productId": 1, "productName": "Alpha", "quantity": 1, "unitPrice": 2, "totalAmount": 2,
             "date": "2024-01-01", "status": "Shipped"},
        ],
        "purchases": [],
        "salesReturns": [],
    }
    counts = backup.restore_payload(payload)
    assert counts["products"] == 1
    assert counts["sales"] == 1
    assert counts["skipped"] == 2


def test_json_restore_rejects_incomplete_payload(tmp_path: Path):
    db_path = tmp_path / "shop.db"
    repo = SqliteRepository(db_path)
    repo.init_db()
    _seed(repo)
    backup = BackupService(repo, db_path, tmp_path / "backups")

    with pytest.raises(BackupError, match="salesReturns"):
        backup.restore_payload({"products": [], "sales": [], "purchases": []})
    with pytest.raises(BackupError):
        backup.restore_payload(["not", "a", "dict"])

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(BackupError, match="Could not read"):
        backup.restore_json(broken)

    assert len(repo.list_sales()) == 1


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text or (json.dumps(payload) if payload is not None else "")
        self.content = self.text.encode("utf-8")

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, responses=None, error=None):
        self.responses = list(responses or [])
        self.error = error
        self.calls = []

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        self.calls.append({"method": method, "url": url, "params": params, "json": json, "headers": headers})
        if self.error:
            raise self.error
        return self.responses.pop(0) if self.responses else FakeResponse(204)


def test_hosted_client_builds_postgrest_requests():
    session = FakeSession([FakeResponse(200, {"access_token": "tok-1"}), FakeResponse(200, [{"id": 1}])])
    client = HostedClient("https://shop.example.co/", "anon-key", session=session)

    client.sign_in("owner@example.com", "secret")
    rows = client.select("products", order="id", sku="A-1")

    sign_in, select = session.calls
    assert sign_in["url"] == "https://shop.example.co/auth/v1/token"
    assert sign_in["params"] == {"grant_type": "password"}
    assert select["url"] == "https://shop.example.co/rest/v1/products"
    assert select["params"] == {"select": "*", "sku": "eq.A-1", "order": "id"}
    assert select["headers"]["Authorization"] == "Bearer tok-1"
    assert select["headers"]["apikey"] == "anon-key"
    assert rows == [{"id": 1}]

    client.insert("products", [{"id": 1}], upsert=True)
    assert session.calls[-1]["headers"]["Prefer"].startswith("resolution=merge-duplicates")

    client.sign_out()
    client.delete("products", id=1)
    assert session.calls[-1]["headers"]["Authorization"] == "Bearer anon-key"
    assert session.calls[-1]["params"] == {"id": "eq.1"}


def test_hosted_client_errors():
    with pytest.raises(HostedBackendError):
        HostedClient("", "key")

    client = HostedClient("https://x.example", "key", session=FakeSession([FakeResponse(401, {"message": "bad jwt"})]))
    with pytest.raises(HostedBackendError, match="bad jwt") as exc:
        client.select("products")
    assert exc.value.status_code == 401

    listed = HostedClient("https://x.example", "key", session=FakeSession([FakeResponse(409, [{"code": "23505"}])]))
    with pytest.raises(HostedBackendError, match="23505") as exc:
        listed.insert("products", [{"id": 1}])
    assert exc.value.status_code == 409

    offline = HostedClient("https://x.example", "key", session=FakeSession(error=requests.ConnectionError("down")))
    with pytest.raises(HostedBackendError, match="unreachable"):
        offline.select("products")

    guarded = HostedClient("https://x.example", "key", session=FakeSession())
    with pytest.raises(HostedBackendError):
        guarded.update("products", {"name": "x"})
    with pytest.raises(HostedBackendError):
        guarded.delete("products")

    no_token = HostedClient("https://x.example", "key", session=FakeSession([FakeResponse(200, {"user": {}})]))
    with pytest.raises(HostedBackendError, match="access token"):
        no_token.sign_in("a@b.c", "pw")


class FakeHostedClient:
    def __init__(self, tables=None):
        self.tables = tables or {}
        self.inserted = {}

    def insert(self, table, rows, upsert=False):
        assert upsert
        self.inserted[table] = list(rows)
        return list(rows)

    def select(self, table, order=None, **filters):
        return [dict(r, remote_only_column="x") for r in self.tables.get(table, [])]


def test_sync_push_sends_every_table(repo):
    _seed(repo)
    client = FakeHostedClient()
    pushed = SyncService(repo, client).push()

    assert pushed["products"] == 1
    assert pushed["sales"] == 1
    assert pushed["companies"] == 0
    assert "user_profiles" not in pushed
    assert client.inserted["products"][0]["sku"] == "SKU-R-1"

    assert SyncService(repo, FakeHostedClient()).push(["sales"]) == {"sales": 1}
    with pytest.raises(HostedBackendError):
        SyncService(repo, client).push(["nope"])


def test_sync_pull_replaces_local_tables(repo):
    _seed(repo)
    remote = {
        "products": [
            {"id": 7, "sku": "R-7", "name": "Remote", "category": "", "unit": "", "stock": 5, "reorder_point": 1,
             "opening_stock": 5, "purchase_price": 1.0, "sell_price": 2.0},
        ],
        "sales": [],
        "sales_returns": [],
        "purchases": [],
        "sales_vouchers": [],
        "sales_voucher_items": [],
    }
    restored = SyncService(repo, FakeHostedClient(remote)).pull(list(remote))

    assert restored["products"] == 1
    assert [p.sku for p in repo.list_products()] == ["R-7"]
    assert repo.list_sales() == []
