from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Mapping

from markupsafe import Markup, escape

from obseques.core.utils import format_datetime, money
from obseques.dossiers.totals import catalogue_by_id, dossier_total


def _number_label(value) -> str:
    amount = Decimal(str(value or 0))
    if amount == amount.to_integral_value():
        return str(int(amount))
    return str(amount.normalize()).replace(".", ",")


def devis_rows(dossier, catalogue: Mapping[str, object]) -> list[tuple[str, Decimal]]:
    rows: list[tuple[str, Decimal]] = []
    for prestation_id in dossier.prestations or []:
        prestation = catalogue.get(str(prestation_id))
        if prestation is not None:
            rows.append((prestation.nom, Decimal(str(prestation.prix or 0))))
    for line in list(dossier.marbrerie or []) + list(dossier.autres or []):
        qte = Decimal(str(line.get("qte") or 0))
        pu = Decimal(str(line.get("pu") or 0))
        rows.append((f"{line.get('nom') or ''} × {_number_label(qte)}", qte * pu))
    return rows


def _entreprise_header(entreprise) -> Markup:
    parts = [Markup("<strong>{}</strong>").format(entreprise.nom)]
    for value in (entreprise.adresse, entreprise.telephone, entreprise.email):
        if value:
            parts.append(escape(value))
    if entreprise.siret:
        parts.append(Markup("SIRET : {}").format(entreprise.siret))
    return Markup("<div class='devis-entreprise'>{}</div>").format(Markup("<br>").join(parts))


def _signature(entreprise) -> Markup:
    data_url = entreprise.signature_data_url or ""
    if not data_url.startswith("data:image/"):
        return Markup("")
    return Markup(
        "<div class='devis-signature' style='margin-top:24px;text-align:right'>"
        "<img src=\"{}\" alt='Signature' style='max-height:80px'></div>"
    ).format(data_url)


def render_devis(dossier, catalogue: Iterable | Mapping[str, object], entreprise=None) -> Markup:
    """Self-contained HTML fragment of a quote; every user text is escaped."""
    if not isinstance(catalogue, Mapping):
        catalogue = catalogue_by_id(catalogue)

    body = Markup("").join(
        Markup("<tr><td>{}</td><td style='text-align:right'>{}</td></tr>").format(label, money(amount))
        for label, amount in devis_rows(dossier, catalogue)
    )
    ceremonie = []
    if dossier.ceremonie_date:
        ceremonie.append(Markup("<div>Cérémonie : {}</div>").format(format_datetime(dossier.ceremonie_date)))
    if dossier.ceremonie_lieu:
        ceremonie.append(Markup("<div>Lieu : {}</div>").format(dossier.ceremonie_lieu))

    return Markup(
        "{header}<h2>Devis {reference}</h2>"
        "<div>Défunt : {prenom} {nom}</div>{ceremonie}"
        "<table style='width:100%;border-collapse:collapse;margin-top:12px'>"
        "<thead><tr><th style='text-align:left'>Libellé</th><th style='text-align:right'>Prix</th></tr></thead>"
        "<tbody>{body}</tbody></table>"
        "<div style='text-align:right;font-weight:700;margin-top:8px'>Total TTC : {total}</div>{signature}"
    ).format(
        header=_entreprise_header(entreprise) if entreprise is not None else Markup(""),
        reference=dossier.reference,
        prenom=dossier.defunt_prenom or "",
        nom=dossier.defunt_nom or "",
        ceremonie=Markup("").join(ceremonie),
        body=body,
        total=money(dossier_total(dossier, catalogue)),
        signature=_signature(entreprise) if entreprise is not None else Markup(""),
    )
