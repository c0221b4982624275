from __future__ import annotations

import hashlib
import secrets
import smtplib
from datetime import datetime, timedelta, timezone

from flask import Blueprint, current_app, flash, redirect, render_template, request, session, url_for
from flask_login import current_user, login_required, login_user, logout_user

from obseques.core.extensions import db
from obseques.core.i18n import SUPPORTED_LANGS
from obseques.core.mailer import send_login_link
from obseques.core.models import LoginLink, User, utcnow
from obseques.core.utils import validate_email

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def issue_login_link(email: str) -> str:
    """Provision the user on first use and return a fresh one-time token."""
    address = validate_email(email).lower()
    if not address:
        raise ValueError("Indiquez une adresse email")
    user = User.query.filter_by(email=address).first()
    if user is None:
        user = User(email=address)
        db.session.add(user)
        db.session.flush()
    if not user.is_active:
        raise ValueError("Compte désactivé")

    token = secrets.token_urlsafe(32)
    max_age = current_app.config["LOGIN_LINK_MAX_AGE"]
    db.session.add(
        LoginLink(
            user_id=user.id,
            token_hash=_hash_token(token),
            expires_at=utcnow() + timedelta(seconds=max_age),
        )
    )
    db.session.commit()
    return token


def consume_login_link(token: str) -> User:
    link = LoginLink.query.filter_by(token_hash=_hash_token(token or "")).first()
    if link is None:
        raise ValueError("Lien de connexion inconnu")
    if link.used_at is not None:
        raise ValueError("Ce lien a déjà été utilisé")
    if _as_utc(link.expires_at) < utcnow():
        raise ValueError("Ce lien a expiré, demandez-en un nouveau")
    if not link.user.is_active:
        raise ValueError("Compte désactivé")
    link.used_at = utcnow()
    db.session.commit()
    return link.user


@auth_bp.get("/login")
def login():
    if current_user.is_authenticated:
        return redirect(url_for("dossiers.index"))
    return render_template("auth/login.html", sent=False, email="")


@auth_bp.post("/login")
def login_post():
    email = request.form.get("email", "").strip().lower()
    try:
        token = issue_login_link(email)
    except ValueError as exc:
        flash(str(exc), "error")
        return redirect(url_for("auth.login"))
    try:
        send_login_link(email, url_for("auth.verify", token=token, _external=True))
    except (smtplib.SMTPException, OSError) as exc:
        current_app.logger.warning("Login link delivery to %s failed: %s", email, exc)
        flash("Envoi du lien impossible, réessayez plus tard", "error")
        return redirect(url_for("auth.login"))
    current_app.logger.info("Login link issued for %s", email)
    return render_template("auth/login.html", sent=True, email=email)


@auth_bp.get("/verify/<token>")
def verify(token: str):
    try:
        user = consume_login_link(token)
    except ValueError as exc:
        current_app.logger.warning("Rejected login link from %s: %s", request.remote_addr, exc)
        flash(str(exc), "error")
        return redirect(url_for("auth.login"))
    login_user(user, remember=True)
    return redirect(url_for("dossiers.index"))


@auth_bp.post("/logout")
@login_required
def logout():
    logout_user()
    session.pop("dashboard", None)
    return redirect(url_for("auth.login"))


@auth_bp.post("/lang")
def set_lang():
    lang = request.form.get("lang", "fr")
    if lang not in SUPPORTED_LANGS:
        lang = "fr"
    session["lang"] = lang
    next_url = request.form.get("next") or request.referrer or url_for("dossiers.index")
    return redirect(next_url)
