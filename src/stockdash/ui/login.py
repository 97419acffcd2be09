from __future__ import annotations

import tkinter as tk
from tkinter import messagebox, simpledialog
import logging

from stockdash.domain.errors import AuthorizationError
from stockdash.domain.models import UserProfile

log = logging.getLogger(__name__)

MAX_PROMPTS = 5


def ask_login(auth, pin_hint: str = "") -> UserProfile | None:
    """Prompt for credentials on a throwaway root; None when the user cancels."""
    root = tk.Tk()
    root.withdraw()
    try:
        for _ in range(MAX_PROMPTS):
            username = simpledialog.askstring("Login", "User:", initialvalue="admin", parent=root)
            if not username:
                return None
            pin = simpledialog.askstring("Login", "PIN:", show="*", parent=root)
            if pin is None:
                return None
            try:
                user = auth.login(username, pin)
            except AuthorizationError as e:
                messagebox.showerror("Login", str(e), parent=root)
                continue
            if user.must_change_pin:
                _force_pin_change(auth, user, pin, root, pin_hint)
            return user
        return None
    finally:
        root.destroy()


def _force_pin_change(auth, user: UserProfile, current_pin: str, root: tk.Tk, pin_hint: str) -> None:
    note = "This account uses a provisional PIN and must set a new one."
    if pin_hint:
        note += f"\n\n{pin_hint}"
    messagebox.showinfo("Change PIN", note, parent=root)
    while True:
        new = simpledialog.askstring("Change PIN", "New PIN (8+ chars, letters and numbers):", show="*", parent=root)
        if new is None:
            return
        confirm = simpledialog.askstring("Change PIN", "Confirm new PIN:", show="*", parent=root)
        try:
            auth.change_my_pin(user, current_pin, new, confirm or "")
            return
        except AuthorizationError as e:
            messagebox.showwarning("Change PIN", str(e), parent=root)
