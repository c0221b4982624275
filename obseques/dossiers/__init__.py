from flask import Blueprint

dossiers_bp = Blueprint("dossiers", __name__)

from obseques.dossiers import routes  # noqa: E402,F401
