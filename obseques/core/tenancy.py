from __future__ import annotations

from flask import abort, g
from flask_login import current_user


def load_owner_context() -> None:
    g.owner_id = None
    g.owner_email = None
    if not current_user.is_authenticated:
        return
    if not current_user.is_active:
        abort(403)
    g.owner_id = current_user.id
    g.owner_email = current_user.email
