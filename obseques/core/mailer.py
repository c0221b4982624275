from __future__ import annotations

import smtplib
from email.message import EmailMessage

from flask import current_app


def send_login_link(email: str, link: str) -> None:
    config = current_app.config
    if not config.get("MAIL_SERVER"):
        current_app.logger.info("Lien de connexion pour %s : %s", email, link)
        return

    msg = EmailMessage()
    msg["From"], msg["To"], msg["Subject"] = config["MAIL_SENDER"], email, "Votre lien de connexion"
    msg.set_content(
        "Bonjour,\n\n"
        f"Cliquez sur ce lien pour vous connecter :\n{link}\n\n"
        "Ce lien ne peut être utilisé qu'une seule fois.\n"
    )
    with smtplib.SMTP(config["MAIL_SERVER"], config["MAIL_PORT"]) as server:
        if config.get("MAIL_USE_TLS"):
            server.starttls()
        if config.get("MAIL_USERNAME"):
            server.login(config["MAIL_USERNAME"], config["MAIL_PASSWORD"])
        server.send_message(msg)
    current_app.logger.info("Lien de connexion envoyé à %s", email)
