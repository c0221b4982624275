"""Dashboard controller: one explicit state object over the three stores.

Every successful store mutation is forwarded to the dashboard's own observers
so the caller can redraw or persist the view state.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable

from markupsafe import Markup

from obseques.core.gateway import OwnedTable
from obseques.core.models import LIGNE_GROUPS, Dossier, Entreprise, Prestation, clean_ligne
from obseques.core.utils import new_id
from obseques.dossiers.exchange import ImportResult, export_json, import_document
from obseques.dossiers.quote import render_devis
from obseques.dossiers.stores import DossierStore, EntrepriseStore, PrestationStore
from obseques.dossiers.totals import dossier_total

TABS = ("dossiers", "tarifs", "param")
EDITABLE_DOSSIER_FIELDS = ("defunt_nom", "defunt_prenom", "famille_contact", "ceremonie_date", "ceremonie_lieu")


@dataclass
class DashboardState:
    tab: str = "dossiers"
    q: str = ""
    current_id: int | None = None

    @classmethod
    def from_dict(cls, raw: dict | None) -> "DashboardState":
        raw = raw or {}
        tab = raw.get("tab") if raw.get("tab") in TABS else "dossiers"
        current_id = raw.get("current_id")
        return cls(
            tab=tab,
            q=str(raw.get("q") or ""),
            current_id=int(current_id) if str(current_id or "").isdigit() else None,
        )

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


def parse_ceremonie_date(value: str | datetime | None) -> datetime | None:
    if isinstance(value, datetime) or value is None:
        return value
    raw = value.strip()
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError as exc:
        raise ValueError("Date de cérémonie invalide") from exc


def dossier_patch(payload: dict[str, str]) -> dict[str, object]:
    patch: dict[str, object] = {}
    for field in EDITABLE_DOSSIER_FIELDS:
        if field not in payload:
            continue
        if field == "ceremonie_date":
            patch[field] = parse_ceremonie_date(payload[field])
        elif field == "ceremonie_lieu":
            patch[field] = (payload[field] or "").strip() or None
        else:
            patch[field] = (payload[field] or "").strip()
    return patch


def _check_group(group: str) -> str:
    if group not in LIGNE_GROUPS:
        raise ValueError(f"Groupe de lignes inconnu : {group}")
    return group


class Dashboard:
    def __init__(
        self,
        owner_id: int,
        email: str | None,
        state: DashboardState | None = None,
        reference_prefix: str = "PFV",
        default_company_name: str = "",
    ):
        self.owner_id = owner_id
        self.email = email
        self.state = state or DashboardState()
        self.reference_prefix = reference_prefix
        self.default_company_name = default_company_name
        self.dossier_table = OwnedTable(Dossier, owner_id)
        self.prestation_table = OwnedTable(Prestation, owner_id)
        self.entreprise_table = OwnedTable(Entreprise, owner_id)
        self.dossiers = DossierStore(self.dossier_table)
        self.prestations = PrestationStore(self.prestation_table)
        self.entreprise = EntrepriseStore(self.entreprise_table)
        self._observers: list[Callable[["Dashboard"], None]] = []
        for store in (self.dossiers, self.prestations, self.entreprise):
            store.subscribe(self._on_store_change)

    def subscribe(self, callback: Callable[["Dashboard"], None]) -> None:
        self._observers.append(callback)

    def _on_store_change(self, _store) -> None:
        self._redraw()

    def _redraw(self) -> None:
        for callback in list(self._observers):
            callback(self)

    def load(self) -> "Dashboard":
        self.entreprise.load_or_create(self.email, self.default_company_name)
        self.prestations.load()
        self.dossiers.load()
        return self

    # View state

    @property
    def filtered(self) -> list[Dossier]:
        return self.dossiers.filter(self.state.q)

    @property
    def current(self) -> Dossier | None:
        return self.dossiers.get(self.state.current_id)

    def search(self, query: str) -> list[Dossier]:
        self.state.q = query or ""
        self._redraw()
        return self.filtered

    def select(self, dossier_id: int | None) -> Dossier | None:
        dossier = self.dossiers.get(dossier_id)
        self.state.current_id = dossier.id if dossier else None
        self._redraw()
        return dossier

    def set_tab(self, tab: str) -> None:
        if tab not in TABS:
            raise ValueError(f"Vue inconnue : {tab}")
        self.state.tab = tab
        self._redraw()

    def total(self, dossier: Dossier) -> Decimal:
        return dossier_total(dossier, self.prestations.by_id())

    # Case files

    def new_dossier(self) -> Dossier:
        dossier = self.dossiers.create(self.reference_prefix)
        self.state.current_id = dossier.id
        self._redraw()
        return dossier

    def _require_current(self) -> Dossier:
        current = self.current
        if current is None:
            raise ValueError("Aucun dossier sélectionné")
        return current

    def update_current(self, patch: dict[str, object]) -> Dossier | None:
        current = self.current
        if current is None:
            return None
        return self.dossiers.update(current.id, patch)

    def archive_current(self, confirmed: bool) -> bool:
        if self.current is None or not confirmed:
            return False
        self.update_current({"archive": True})
        self.state.current_id = None
        self._redraw()
        return True

    def toggle_prestation(self, prestation_id: int | str, checked: bool) -> Dossier:
        current = self._require_current()
        selected = [str(item) for item in current.prestations or []]
        key = str(prestation_id)
        if checked and key not in selected:
            selected.append(key)
        elif not checked:
            selected = [item for item in selected if item != key]
        return self.dossiers.update(current.id, {"prestations": selected})

    def add_ligne(self, group: str) -> dict[str, object]:
        current = self._require_current()
        line = {"id": new_id(), "nom": "", "qte": 1, "pu": 0}
        lines = [line] + list(getattr(current, _check_group(group)) or [])
        self.dossiers.update(current.id, {group: lines})
        return line

    def update_ligne(self, group: str, ligne_id: str, patch: dict[str, object]) -> dict[str, object]:
        current = self._require_current()
        lines = list(getattr(current, _check_group(group)) or [])
        for index, line in enumerate(lines):
            if line.get("id") == ligne_id:
                merged = {**line, **{k: v for k, v in patch.items() if k in {"nom", "qte", "pu"}}}
                lines[index] = clean_ligne(merged)
                self.dossiers.update(current.id, {group: lines})
                return lines[index]
        raise ValueError("Ligne introuvable")

    def remove_ligne(self, group: str, ligne_id: str) -> None:
        current = self._require_current()
        lines = list(getattr(current, _check_group(group)) or [])
        remaining = [line for line in lines if line.get("id") != ligne_id]
        if len(remaining) == len(lines):
            raise ValueError("Ligne introuvable")
        self.dossiers.update(current.id, {group: remaining})

    # Quote, export, import

    def devis_html(self, dossier_id: int | None = None) -> Markup:
        dossier = self.dossiers.get(dossier_id) if dossier_id is not None else self.current
        if dossier is None:
            raise ValueError("Dossier introuvable")
        return render_devis(dossier, self.prestations.by_id(), self.entreprise.profile)

    def export_json(self) -> str:
        return export_json(self.dossiers.items, self.prestations.items, self.entreprise.profile)

    def import_document(self, raw: str | bytes) -> ImportResult:
        try:
            return import_document(raw, self.prestation_table, self.dossier_table)
        finally:
            # Whatever was written before a failure is shown, like a reload.
            self.prestations.load()
            self.dossiers.load()
            self._redraw()
