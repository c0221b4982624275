from __future__ import annotations

import base64
from datetime import datetime
from typing import Callable

from obseques.core.gateway import OwnedTable
from obseques.core.models import DEFAULT_PRESTATIONS, Dossier, Entreprise, Prestation, utcnow
from obseques.core.utils import validate_email
from obseques.dossiers.totals import catalogue_by_id

DOSSIER_FIELDS = (
    "reference",
    "defunt_nom",
    "defunt_prenom",
    "famille_contact",
    "ceremonie_date",
    "ceremonie_lieu",
    "prestations",
    "marbrerie",
    "autres",
    "cree_le",
    "modifie_le",
    "archive",
)
ENTREPRISE_FIELDS = ("nom", "adresse", "telephone", "email", "siret")


class Observable:
    def __init__(self) -> None:
        self._listeners: list[Callable[[object], None]] = []

    def subscribe(self, callback: Callable[[object], None]) -> None:
        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in list(self._listeners):
            callback(self)


def _matches(dossier: Dossier, needle: str) -> bool:
    nom = dossier.defunt_nom or ""
    prenom = dossier.defunt_prenom or ""
    haystacks = (
        dossier.reference or "",
        f"{nom} {prenom}",
        f"{prenom} {nom}",
        dossier.famille_contact or "",
        dossier.ceremonie_lieu or "",
    )
    return any(needle in value.lower() for value in haystacks)


def filter_dossiers(dossiers: list[Dossier], query: str = "") -> list[Dossier]:
    needle = (query or "").strip().lower()
    visible = [d for d in dossiers if not d.archive]
    if not needle:
        return visible
    return [d for d in visible if _matches(d, needle)]


class DossierStore(Observable):
    """Case files of one user, newest modification first."""

    def __init__(self, table: OwnedTable):
        super().__init__()
        self.table = table
        self.items: list[Dossier] = []

    def load(self) -> list[Dossier]:
        self.items = self.table.select_all(Dossier.modifie_le.desc(), Dossier.id.desc())
        return self.items

    def get(self, dossier_id: int | str | None) -> Dossier | None:
        if dossier_id in (None, ""):
            return None
        for dossier in self.items:
            if str(dossier.id) == str(dossier_id):
                return dossier
        return None

    def filter(self, query: str = "") -> list[Dossier]:
        return filter_dossiers(self.items, query)

    def next_reference(self, prefix: str, now: datetime) -> str:
        # Counts what is loaded, archived included; not a durable counter.
        return f"{prefix}-{now.year}-{len(self.items) + 1:04d}"

    def create(self, prefix: str, now: datetime | None = None) -> Dossier:
        now = now or utcnow()
        saved = self.table.insert(
            {
                "reference": self.next_reference(prefix, now),
                "defunt_nom": "",
                "defunt_prenom": "",
                "famille_contact": "",
                "prestations": [],
                "marbrerie": [],
                "autres": [],
                "cree_le": now,
                "modifie_le": now,
            }
        )
        self.items.insert(0, saved)
        self._notify()
        return saved

    def update(self, dossier_id: int, patch: dict[str, object], now: datetime | None = None) -> Dossier:
        current = self.get(dossier_id)
        if current is None:
            raise ValueError("Dossier introuvable")
        record = {field: getattr(current, field) for field in DOSSIER_FIELDS}
        record.update({k: v for k, v in patch.items() if k not in {"reference", "cree_le"}})
        record["modifie_le"] = now or utcnow()
        saved = self.table.update(current.id, record)
        self.items = [saved if d.id == current.id else d for d in self.items]
        self._notify()
        return saved


class PrestationStore(Observable):
    """Priced service catalogue of one user."""

    def __init__(self, table: OwnedTable):
        super().__init__()
        self.table = table
        self.items: list[Prestation] = []

    def load(self) -> list[Prestation]:
        rows = self.table.select_all()
        if not rows:
            rows = self.table.insert_many([{"nom": nom, "prix": prix} for nom, prix in DEFAULT_PRESTATIONS])
        self.items = list(rows)
        return self.items

    def by_id(self) -> dict[str, Prestation]:
        return catalogue_by_id(self.items)

    def add(self) -> Prestation:
        saved = self.table.insert({"nom": "", "prix": 0})
        self.items.insert(0, saved)
        self._notify()
        return saved

    def update(self, prestation_id: int, patch: dict[str, object]) -> Prestation:
        values = {k: v for k, v in patch.items() if k in {"nom", "prix"}}
        if not values:
            raise ValueError("Aucune modification")
        saved = self.table.update(prestation_id, values)
        self.items = [saved if p.id == saved.id else p for p in self.items]
        self._notify()
        return saved

    def delete(self, prestation_id: int) -> None:
        # Dossiers keep their reference; totals ignore unknown ids.
        self.table.delete(prestation_id)
        self.items = [p for p in self.items if p.id != prestation_id]
        self._notify()


class EntrepriseStore(Observable):
    """The single company profile of one user."""

    def __init__(self, table: OwnedTable):
        super().__init__()
        self.table = table
        self.profile: Entreprise | None = None

    def load_or_create(self, email: str | None, default_name: str) -> Entreprise:
        profile = self.table.select_one()
        if profile is None:
            profile = self.table.insert(
                {
                    "nom": default_name,
                    "adresse": "",
                    "telephone": "",
                    "email": email or "",
                    "siret": "",
                    "signature_data_url": None,
                }
            )
        self.profile = profile
        return profile

    def _save(self, patch: dict[str, object]) -> Entreprise:
        if self.profile is None:
            raise ValueError("Profil entreprise non chargé")
        record = {field: getattr(self.profile, field) for field in ENTREPRISE_FIELDS}
        record["signature_data_url"] = self.profile.signature_data_url
        record.update(patch)
        self.profile = self.table.update(self.profile.id, record)
        self._notify()
        return self.profile

    def update_field(self, field: str, value: str | None) -> Entreprise:
        if field not in ENTREPRISE_FIELDS:
            raise ValueError(f"Champ inconnu : {field}")
        value = (value or "").strip()
        if field == "email":
            value = validate_email(value)
        return self._save({field: value})

    def set_signature(self, data: bytes, mimetype: str | None) -> Entreprise:
        mimetype = (mimetype or "").lower()
        if not mimetype.startswith("image/"):
            raise ValueError("La signature doit être une image")
        if not data:
            raise ValueError("Fichier de signature vide")
        encoded = base64.b64encode(data).decode("ascii")
        return self._save({"signature_data_url": f"data:{mimetype};base64,{encoded}"})

    def clear_signature(self) -> Entreprise:
        return self._save({"signature_data_url": None})
