from __future__ import annotations

import os


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///obseques.db",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    APP_ENV = os.getenv("APP_ENV", "production")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    REFERENCE_PREFIX = os.getenv("REFERENCE_PREFIX", "PFV")
    DEFAULT_COMPANY_NAME = os.getenv("DEFAULT_COMPANY_NAME", "Pompes Funèbres Loubet-Victor")
    # Signature images are stored inline; keep uploads small.
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_CONTENT_LENGTH", str(2 * 1024 * 1024)))

    LOGIN_LINK_MAX_AGE = int(os.getenv("LOGIN_LINK_MAX_AGE", "3600"))
    MAIL_SERVER = os.getenv("MAIL_SERVER", "")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = os.getenv("MAIL_USE_TLS", "1").strip().lower() in {"1", "true", "yes"}
    MAIL_USERNAME = os.getenv("MAIL_USERNAME", "")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD", "")
    MAIL_SENDER = os.getenv("MAIL_SENDER", "no-reply@obseques.local")
