from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import re
import sqlite3

from stockdash.domain.errors import AuthorizationError, NotFoundError
from stockdash.domain.models import UserProfile

log = logging.getLogger(__name__)

ROLES = ("super_admin", "admin", "manager", "staff", "guest")
ADMIN_ROLES = {"super_admin", "admin"}


@dataclass(frozen=True)
class LoginPolicy:
    min_pin_length: int = 8
    max_failed_attempts: int = 5
    lockout_seconds: int = 60


def _validate_secret_strength(secret: str, *, min_len: int) -> None:
    if len(secret) < min_len:
        raise AuthorizationError(f"PIN must have at least {min_len} characters.")
    if not re.search(r"[A-Za-z]", secret):
        raise AuthorizationError("PIN must include at least one letter.")
    if not re.search(r"\d", secret):
        raise AuthorizationError("PIN must include at least one number.")


_EVERYONE = set(ROLES)
_WRITERS = {"super_admin", "admin", "manager", "staff"}
_MANAGERS = {"super_admin", "admin", "manager"}

PERMISSIONS: dict[str, set[str]] = {
    "view": _EVERYONE,
    "export_report": _EVERYONE,
    "create_sale": _WRITERS,
    "manage_returns": _WRITERS,
    "manage_vouchers": _WRITERS,
    "manage_products": _MANAGERS,
    "create_purchase": _MANAGERS,
    "process_return": _MANAGERS,
    "manage_catalog": _MANAGERS,
    "import_excel": _MANAGERS,
    "reconcile_stock": _MANAGERS,
    "delete_product": ADMIN_ROLES,
    "clear_data": ADMIN_ROLES,
    "backup_restore": ADMIN_ROLES,
    "sync_hosted": ADMIN_ROLES,
    "manage_users": ADMIN_ROLES,
    "manage_companies": ADMIN_ROLES,
}


def can(user: UserProfile, action: str) -> bool:
    allowed_roles = PERMISSIONS.get(action)
    if not allowed_roles:
        return False
    return user.role in allowed_roles


def require_role(user: UserProfile, allowed: set[str]) -> None:
    if user.role not in allowed:
        raise AuthorizationError(f"Role '{user.role}' is not allowed to perform this action.")


class AuthService:
    def __init__(self, repo, policy: LoginPolicy | None = None):
        self.repo = repo
        self.policy = policy or LoginPolicy()

    def list_users(self, include_inactive: bool = False) -> list[UserProfile]:
        return self.repo.list_users(include_inactive=include_inactive)

    def login(self, username: str, pin: str) -> UserProfile:
        username_clean = username.strip()
        if not username_clean:
            raise AuthorizationError("Username is required.")

        state = self.repo.get_user_security_state(username_clean)
        if state:
            _attempts, locked_until = state
            if locked_until:
                # sqlite datetime('now') is UTC without an offset
                until = datetime.fromisoformat(locked_until).replace(tzinfo=timezone.utc)
                now = datetime.now(timezone.utc)
                if now < until:
                    remaining = int((until - now).total_seconds())
                    raise AuthorizationError(f"User is temporarily locked. Retry in {remaining}s.")

        user = self.repo.authenticate_user(username_clean, pin.strip())
        if not user:
            attempts, locked_until = self.repo.record_login_failure(
                username_clean,
                self.policy.max_failed_attempts,
                self.policy.lockout_seconds,
            )
            log.warning("login_failed username=%s attempts=%s", username_clean, attempts)
            if locked_until is not None:
                raise AuthorizationError("Too many failed attempts. User is temporarily locked.")
            raise AuthorizationError("Invalid username or PIN.")

        self.repo.clear_login_guard(user.id)
        log.info("login_ok username=%s role=%s", user.username, user.role)
        return user

    def can(self, user: UserProfile, action: str) -> bool:
        return can(user, action)

    def require_action(self, user: UserProfile, action: str) -> None:
        if not can(user, action):
            raise AuthorizationError(f"Role '{user.role}' is not allowed to perform '{action}'.")

    def require_role(self, user: UserProfile, allowed: set[str]) -> None:
        require_role(user, allowed)

    def create_user(self, actor: UserProfile, username: str, pin: str, role: str, company_id: int | None = None) -> int:
        self.require_action(actor, "manage_users")

        user = username.strip()
        secret = pin.strip()
        target_role = role.strip().lower()
        if not user:
            raise AuthorizationError("Username is required.")
        _validate_secret_strength(secret, min_len=self.policy.min_pin_length)
        if target_role not in ROLES:
            raise AuthorizationError(f"Unknown role '{target_role}'.")
        if target_role in ADMIN_ROLES and actor.role != "super_admin":
            raise AuthorizationError("Only a super admin can create admin users.")

        try:
            uid = self.repo.create_user(user, secret, target_role, company_id=company_id, must_change_pin=1)
        except sqlite3.IntegrityError as exc:
            raise AuthorizationError(f"Could not create user '{user}': {exc}") from exc
        log.info("user_created username=%s role=%s by=%s", user, target_role, actor.username)
        return uid

    def deactivate_user(self, actor: UserProfile, user_id: int) -> None:
        self.require_action(actor, "manage_users")
        target = self.repo.get_user(int(user_id))
        if not target:
            raise NotFoundError("User not found.")
        if target.id == actor.id:
            raise AuthorizationError("You cannot deactivate your own account.")
        if target.role in ADMIN_ROLES and actor.role != "super_admin":
            raise AuthorizationError("Only a super admin can deactivate admin users.")
        self.repo.set_user_active(target.id, False)
        log.info("user_deactivated username=%s by=%s", target.username, actor.username)

    def change_my_pin(self, actor: UserProfile, current_pin: str, new_pin: str, confirm_pin: str) -> None:
        current_secret = current_pin.strip()
        new_secret = new_pin.strip()
        confirm_secret = confirm_pin.strip()

        if not current_secret:
            raise AuthorizationError("Current password is required.")
        _validate_secret_strength(new_secret, min_len=self.policy.min_pin_length)
        if new_secret != confirm_secret:
            raise AuthorizationError("Password confirmation does not match.")
        if new_secret == current_secret:
            raise AuthorizationError("New password must be different from the current password.")

        changed = self.repo.change_user_pin(actor.id, current_secret, new_secret)
        if not changed:
            raise AuthorizationError("Current password is incorrect.")
