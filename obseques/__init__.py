from __future__ import annotations

import os

import click
from flask import Flask, render_template

from obseques.core.auth import auth_bp
from obseques.core.config import Config
from obseques.core.extensions import db, login_manager, migrate
from obseques.core.gateway import PersistenceError
from obseques.core.i18n import get_locale, translate
from obseques.core.models import User, seed_demo_data
from obseques.core.tenancy import load_owner_context
from obseques.dossiers import dossiers_bp


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    app.before_request(load_owner_context)
    app.context_processor(_template_context)

    app.register_blueprint(auth_bp)
    app.register_blueprint(dossiers_bp)

    register_cli(app)
    register_error_handlers(app)
    return app


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(403)
    def forbidden(_error):
        return render_template("errors/403.html"), 403

    @app.errorhandler(404)
    def not_found(_error):
        return render_template("errors/404.html"), 404

    @app.errorhandler(413)
    def too_large(_error):
        return render_template("errors/413.html"), 413

    @app.errorhandler(PersistenceError)
    def persistence_failed(error: PersistenceError):
        return render_template("errors/persistence.html", message=str(error)), 503


def register_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    @click.option("--reset", is_flag=True, help="Delete existing data before seed.")
    @click.option("--email", default="demo@obseques.local", show_default=True, help="Demo account email.")
    def seed_demo(reset: bool, email: str) -> None:
        """Seed a demo account with company profile, tariffs and case files."""
        if reset:
            if not _is_dev_mode(app):
                raise click.ClickException("Reset refused outside DEV (set APP_ENV=development).")
            db.drop_all()
            db.create_all()
        if User.query.filter_by(email=email.lower()).first():
            click.echo(f"Seed skipped: {email} already exists.")
            return
        seed_demo_data(db.session, email.lower())
        click.echo(f"Demo data seeded for {email}.")


def _template_context() -> dict[str, object]:
    return {
        "t": translate,
        "current_lang": get_locale(),
    }


def _is_dev_mode(app: Flask) -> bool:
    if app.config.get("TESTING"):
        return False
    if app.debug:
        return True
    app_env = (app.config.get("APP_ENV") or os.getenv("APP_ENV") or "").strip().lower()
    return app_env in {"dev", "development"}


@login_manager.user_loader
def load_user(user_id: str) -> User | None:
    return db.session.get(User, int(user_id))
