from __future__ import annotations

import logging

from stockdash.application.container import build_container
from stockdash.config import get_app_paths, load_settings
from stockdash.logging_config import setup_logging
from stockdash.ui.app import App
from stockdash.ui.login import ask_login

log = logging.getLogger(__name__)


def main() -> None:
    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=logging.INFO)

    settings = load_settings()
    container = build_container(paths.db_path, settings=settings, backup_dir=paths.backups_dir)

    pin_file = paths.db_path.parent / ".admin_bootstrap_pin"
    hint = f"First-run admin PIN is stored in {pin_file}" if pin_file.exists() else ""
    user = ask_login(container.auth, pin_hint=hint)
    if user is None:
        log.info("login_cancelled")
        return

    app = App(
        container,
        user,
        db_path=str(paths.db_path),
        logs_dir=str(paths.logs_dir),
    )
    app.mainloop()


if __name__ == "__main__":
    main()
