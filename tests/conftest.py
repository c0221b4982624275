from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from obseques import create_app
from obseques.core.auth import issue_login_link
from obseques.core.config import Config
from obseques.core.extensions import db
from obseques.core.models import User, seed_demo_data

DEMO_EMAIL = "demo@obseques.local"


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    MAIL_SERVER = ""
    REFERENCE_PREFIX = "PFV"
    DEFAULT_COMPANY_NAME = "Pompes Funèbres Loubet-Victor"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        seed_demo_data(db.session, DEMO_EMAIL)
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def demo_user(app):
    return User.query.filter_by(email=DEMO_EMAIL).first()


@pytest.fixture
def login(client):
    def _login(email: str = DEMO_EMAIL):
        token = issue_login_link(email)
        return client.get(f"/auth/verify/{token}", follow_redirects=True)

    return _login


@pytest.fixture
def new_user(app):
    user = User(email="nouveau@obseques.local")
    db.session.add(user)
    db.session.commit()
    return user
