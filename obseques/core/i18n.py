from __future__ import annotations

from flask import session

SUPPORTED_LANGS = {"fr", "en"}

I18N: dict[str, dict[str, str]] = {
    "menu.dossiers": {"fr": "Dossiers", "en": "Case files"},
    "menu.tarifs": {"fr": "Tarifs", "en": "Tariffs"},
    "menu.parametres": {"fr": "Paramètres", "en": "Settings"},
    "menu.logout": {"fr": "Se déconnecter", "en": "Sign out"},
    "action.new_dossier": {"fr": "Nouveau dossier", "en": "New case file"},
    "action.export": {"fr": "Exporter", "en": "Export"},
    "action.import": {"fr": "Importer", "en": "Import"},
    "action.search": {"fr": "Recherche", "en": "Search"},
    "action.save": {"fr": "Enregistrer", "en": "Save"},
    "action.add": {"fr": "Ajouter", "en": "Add"},
    "action.delete": {"fr": "Supprimer", "en": "Delete"},
    "action.archive": {"fr": "Archiver", "en": "Archive"},
    "action.quote": {"fr": "Devis (PDF)", "en": "Quote (PDF)"},
    "dossier.empty": {"fr": "Sélectionnez un dossier", "en": "Select a case file"},
    "dossier.prestations": {"fr": "Prestations", "en": "Services"},
    "dossier.marbrerie": {"fr": "Marbrerie", "en": "Stonework"},
    "dossier.autres": {"fr": "Autres frais", "en": "Other costs"},
    "dossier.total": {"fr": "Total", "en": "Total"},
    "auth.title": {"fr": "Connexion", "en": "Sign in"},
    "auth.prompt": {
        "fr": "Entrez votre email pour recevoir un lien.",
        "en": "Enter your email to receive a sign-in link.",
    },
    "auth.send": {"fr": "Recevoir le lien", "en": "Send me the link"},
    "auth.sent": {"fr": "Lien envoyé", "en": "Link sent"},
}


def get_locale() -> str:
    lang = session.get("lang", "fr")
    if lang not in SUPPORTED_LANGS:
        return "fr"
    return lang


def translate(key: str) -> str:
    lang = get_locale()
    return I18N.get(key, {}).get(lang, key)
