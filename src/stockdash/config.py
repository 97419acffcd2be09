from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import sys


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path
    backups_dir: Path


@dataclass(frozen=True)
class Settings:
    currency_symbol: str = "৳"
    page_size: int = 50
    hosted_url: str = ""
    hosted_key: str = ""
    bootstrap_admin_pin: str = ""

    @property
    def hosted_enabled(self) -> bool:
        return bool(self.hosted_url and self.hosted_key)


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "StockDashboard") -> AppPaths:
    override = os.environ.get("STOCKDASH_HOME", "").strip()
    if override:
        base = Path(override)
    elif sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    backups = base / "backups"
    db = base / "inventory.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)
    backups.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs, backups_dir=backups)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def load_settings() -> Settings:
    return Settings(
        currency_symbol=os.environ.get("STOCKDASH_CURRENCY", "").strip() or "৳",
        page_size=_env_int("STOCKDASH_PAGE_SIZE", 50),
        hosted_url=os.environ.get("STOCKDASH_HOSTED_URL", "").strip().rstrip("/"),
        hosted_key=os.environ.get("STOCKDASH_HOSTED_KEY", "").strip(),
        bootstrap_admin_pin=os.environ.get("STOCKDASH_BOOTSTRAP_ADMIN_PIN", "").strip(),
    )
