from __future__ import annotations

from flask import Response, abort, current_app, flash, g, redirect, render_template, request, session, url_for
from flask_login import login_required
from werkzeug.datastructures import FileStorage

from obseques.core.gateway import PersistenceError
from obseques.core.permissions import require_owner
from obseques.core.utils import format_datetime, money
from obseques.dossiers import dossiers_bp
from obseques.dossiers.dashboard import Dashboard, DashboardState, dossier_patch
from obseques.dossiers.exchange import export_filename
from obseques.dossiers.stores import ENTREPRISE_FIELDS

USER_ERRORS = (ValueError, PersistenceError)


def _is_htmx() -> bool:
    return request.headers.get("HX-Request", "").lower() == "true"


def _remember_state(dashboard: Dashboard) -> None:
    session["dashboard"] = dashboard.state.to_dict()


def _dashboard() -> Dashboard:
    dashboard = Dashboard(
        g.owner_id,
        g.owner_email,
        DashboardState.from_dict(session.get("dashboard")),
        reference_prefix=current_app.config["REFERENCE_PREFIX"],
        default_company_name=current_app.config["DEFAULT_COMPANY_NAME"],
    )
    dashboard.subscribe(_remember_state)
    return dashboard.load()


def _require_upload(file_obj: FileStorage | None, message: str) -> FileStorage:
    if not file_obj or not file_obj.filename:
        raise ValueError(message)
    return file_obj


def _selected(dashboard: Dashboard, dossier_id: int):
    dossier = dashboard.dossiers.get(dossier_id)
    if dossier is None or dossier.archive:
        abort(404)
    dashboard.select(dossier_id)
    return dossier


def _render(dashboard: Dashboard, template: str, **extra):
    return render_template(
        template,
        dash=dashboard,
        entreprise=dashboard.entreprise.profile,
        money=money,
        format_datetime=format_datetime,
        **extra,
    )


@dossiers_bp.get("/")
@login_required
@require_owner
def home():
    return redirect(url_for("dossiers.index"))


@dossiers_bp.get("/dossiers")
@login_required
@require_owner
def index():
    dashboard = _dashboard()
    dashboard.set_tab("dossiers")
    if "q" in request.args:
        dashboard.search(request.args.get("q", ""))
    if _is_htmx():
        return _render(dashboard, "dossiers/_list.html")
    return _render(dashboard, "dossiers/index.html")


@dossiers_bp.post("/dossiers/nouveau")
@login_required
@require_owner
def create():
    dashboard = _dashboard()
    try:
        dossier = dashboard.new_dossier()
        flash(f"Dossier {dossier.reference} créé", "success")
    except USER_ERRORS as exc:
        flash(str(exc), "error")
    return redirect(url_for("dossiers.index"))


@dossiers_bp.get("/dossiers/<int:dossier_id>")
@login_required
@require_owner
def select(dossier_id: int):
    dashboard = _dashboard()
    _selected(dashboard, dossier_id)
    return redirect(url_for("dossiers.index"))


@dossiers_bp.post("/dossiers/<int:dossier_id>/modifier")
@login_required
@require_owner
def update(dossier_id: int):
    dashboard = _dashboard()
    _selected(dashboard, dossier_id)
    try:
        dashboard.update_current(dossier_patch(request.form.to_dict()))
        flash("Dossier enregistré", "success")
    except USER_ERRORS as exc:
        flash(str(exc), "error")
    return redirect(url_for("dossiers.index"))


@dossiers_bp.post("/dossiers/<int:dossier_id>/prestations")
@login_required
@require_owner
def toggle_prestation(dossier_id: int):
    dashboard = _dashboard()
    _selected(dashboard, dossier_id)
    prestation_id = request.form.get("prestation_id", "").strip()
    checked = request.form.get("checked", "") in {"1", "on", "true"}
    try:
        dashboard.toggle_prestation(prestation_id, checked)
    except USER_ERRORS as exc:
        flash(str(exc), "error")
    return redirect(url_for("dossiers.index"))


@dossiers_bp.post("/dossiers/<int:dossier_id>/lignes/<group>/ajouter")
@login_required
@require_owner
def add_ligne(dossier_id: int, group: str):
    dashboard = _dashboard()
    _selected(dashboard, dossier_id)
    try:
        dashboard.add_ligne(group)
    except USER_ERRORS as exc:
        flash(str(exc), "error")
    return redirect(url_for("dossiers.index"))


@dossiers_bp.post("/dossiers/<int:dossier_id>/lignes/<group>/<ligne_id>/modifier")
@login_required
@require_owner
def update_ligne(dossier_id: int, group: str, ligne_id: str):
    dashboard = _dashboard()
    _selected(dashboard, dossier_id)
    patch = {k: request.form[k] for k in ("nom", "qte", "pu") if k in request.form}
    try:
        dashboard.update_ligne(group, ligne_id, patch)
    except USER_ERRORS as exc:
        flash(str(exc), "error")
    return redirect(url_for("dossiers.index"))


@dossiers_bp.post("/dossiers/<int:dossier_id>/lignes/<group>/<ligne_id>/supprimer")
@login_required
@require_owner
def remove_ligne(dossier_id: int, group: str, ligne_id: str):
    dashboard = _dashboard()
    _selected(dashboard, dossier_id)
    try:
        dashboard.remove_ligne(group, ligne_id)
    except USER_ERRORS as exc:
        flash(str(exc), "error")
    return redirect(url_for("dossiers.index"))


@dossiers_bp.get("/dossiers/<int:dossier_id>/archiver")
@login_required
@require_owner
def archive_confirm(dossier_id: int):
    dashboard = _dashboard()
    dossier = dashboard.dossiers.get(dossier_id)
    if dossier is None or dossier.archive:
        abort(404)
    return _render(dashboard, "dossiers/archive_confirm.html", dossier=dossier)


@dossiers_bp.post("/dossiers/<int:dossier_id>/archiver")
@login_required
@require_owner
def archive(dossier_id: int):
    dashboard = _dashboard()
    dossier = dashboard.dossiers.get(dossier_id)
    if dossier is None:
        abort(404)
    confirmed = (request.form.get("confirm") or "").strip().lower() == "oui"
    if not confirmed:
        return redirect(url_for("dossiers.index"))
    dashboard.select(dossier_id)
    try:
        if dashboard.archive_current(confirmed):
            flash(f"Dossier {dossier.reference} archivé", "success")
    except USER_ERRORS as exc:
        flash(str(exc), "error")
    return redirect(url_for("dossiers.index"))


@dossiers_bp.get("/dossiers/<int:dossier_id>/devis")
@login_required
@require_owner
def devis(dossier_id: int):
    dashboard = _dashboard()
    try:
        fragment = dashboard.devis_html(dossier_id)
    except ValueError:
        abort(404)
    return render_template("dossiers/devis.html", fragment=fragment, dossier=dashboard.dossiers.get(dossier_id))


@dossiers_bp.get("/tarifs")
@login_required
@require_owner
def tarifs():
    dashboard = _dashboard()
    dashboard.set_tab("tarifs")
    return _render(dashboard, "dossiers/tarifs.html")


@dossiers_bp.post("/tarifs/ajouter")
@login_required
@require_owner
def tarif_add():
    dashboard = _dashboard()
    try:
        dashboard.prestations.add()
    except USER_ERRORS as exc:
        flash(str(exc), "error")
    return redirect(url_for("dossiers.tarifs"))


@dossiers_bp.post("/tarifs/<int:prestation_id>/modifier")
@login_required
@require_owner
def tarif_update(prestation_id: int):
    dashboard = _dashboard()
    patch = {k: request.form[k].strip() for k in ("nom", "prix") if k in request.form}
    try:
        dashboard.prestations.update(prestation_id, patch)
    except USER_ERRORS as exc:
        flash(str(exc), "error")
    return redirect(url_for("dossiers.tarifs"))


@dossiers_bp.post("/tarifs/<int:prestation_id>/supprimer")
@login_required
@require_owner
def tarif_delete(prestation_id: int):
    dashboard = _dashboard()
    try:
        dashboard.prestations.delete(prestation_id)
    except USER_ERRORS as exc:
        flash(str(exc), "error")
    return redirect(url_for("dossiers.tarifs"))


@dossiers_bp.get("/parametres")
@login_required
@require_owner
def parametres():
    dashboard = _dashboard()
    dashboard.set_tab("param")
    return _render(dashboard, "dossiers/parametres.html", fields=ENTREPRISE_FIELDS)


@dossiers_bp.post("/parametres")
@login_required
@require_owner
def parametres_update():
    dashboard = _dashboard()
    profile = dashboard.entreprise.profile
    try:
        for field in ENTREPRISE_FIELDS:
            if field not in request.form:
                continue
            value = request.form[field].strip()
            if value != (getattr(profile, field) or ""):
                profile = dashboard.entreprise.update_field(field, value)
        flash("Paramètres enregistrés", "success")
    except USER_ERRORS as exc:
        flash(str(exc), "error")
    return redirect(url_for("dossiers.parametres"))


@dossiers_bp.post("/parametres/signature")
@login_required
@require_owner
def signature_upload():
    dashboard = _dashboard()
    try:
        upload = _require_upload(request.files.get("signature"), "Sélectionnez une image")
        dashboard.entreprise.set_signature(upload.read(), upload.mimetype)
        flash("Signature enregistrée", "success")
    except USER_ERRORS as exc:
        flash(str(exc), "error")
    return redirect(url_for("dossiers.parametres"))


@dossiers_bp.post("/parametres/signature/supprimer")
@login_required
@require_owner
def signature_clear():
    dashboard = _dashboard()
    try:
        dashboard.entreprise.clear_signature()
    except USER_ERRORS as exc:
        flash(str(exc), "error")
    return redirect(url_for("dossiers.parametres"))


@dossiers_bp.get("/export")
@login_required
@require_owner
def export():
    dashboard = _dashboard()
    response = Response(dashboard.export_json(), mimetype="application/json")
    response.headers["Content-Disposition"] = f'attachment; filename="{export_filename()}"'
    return response


@dossiers_bp.post("/import")
@login_required
@require_owner
def import_file():
    dashboard = _dashboard()
    try:
        upload = _require_upload(request.files.get("fichier"), "Sélectionnez un fichier JSON")
        result = dashboard.import_document(upload.read())
        flash(
            f"Import terminé : {result.prestations} prestations, {result.dossiers} dossiers",
            "success",
        )
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("dossiers.index"))
