from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from flask import current_app

from obseques.core.gateway import OwnedTable, PersistenceError
from obseques.core.models import utcnow


class ImportFormatError(ValueError):
    pass


@dataclass
class ImportResult:
    prestations: int = 0
    dossiers: int = 0


def export_document(dossiers, prestations, entreprise) -> dict[str, object]:
    return {
        "dossiers": [d.to_dict() for d in dossiers],
        "prestations": [p.to_dict() for p in prestations],
        "entreprise": entreprise.to_dict() if entreprise is not None else None,
    }


def export_filename(today: date | None = None) -> str:
    return f"obseques_export_{(today or date.today()).isoformat()}.json"


def export_json(dossiers, prestations, entreprise) -> str:
    return json.dumps(export_document(dossiers, prestations, entreprise), ensure_ascii=False, indent=2)


def _parse_datetime(value) -> datetime | None:
    if value in (None, ""):
        return None
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _dossier_values(raw: dict) -> dict[str, object]:
    now = utcnow()
    return {
        "reference": str(raw["reference"]),
        "defunt_nom": str(raw.get("defunt_nom") or ""),
        "defunt_prenom": str(raw.get("defunt_prenom") or ""),
        "famille_contact": str(raw.get("famille_contact") or ""),
        "ceremonie_date": _parse_datetime(raw.get("ceremonie_date")),
        "ceremonie_lieu": raw.get("ceremonie_lieu"),
        "prestations": [str(item) for item in raw.get("prestations") or []],
        "marbrerie": list(raw.get("marbrerie") or []),
        "autres": list(raw.get("autres") or []),
        "cree_le": _parse_datetime(raw.get("cree_le")) or now,
        "modifie_le": _parse_datetime(raw.get("modifie_le")) or now,
        "archive": bool(raw.get("archive", False)),
    }


def import_document(raw: str | bytes, prestations: OwnedTable, dossiers: OwnedTable) -> ImportResult:
    """Load an export document into the current user's tables.

    Rows are written one by one; a failure part-way leaves the rows already
    written in place.
    """
    result = ImportResult()
    try:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ImportFormatError("Fichier invalide")
        if isinstance(data.get("prestations"), list):
            for item in data["prestations"]:
                # Stored prices are rounded to the cent; match on the same value.
                prix = Decimal(str(item["prix"])).quantize(Decimal("0.01"))
                prestations.upsert(("nom", "prix"), {"nom": str(item["nom"]), "prix": prix})
                result.prestations += 1
        if isinstance(data.get("dossiers"), list):
            for item in data["dossiers"]:
                dossiers.insert(_dossier_values(item))
                result.dossiers += 1
    except ImportFormatError:
        raise
    except (ValueError, KeyError, TypeError, ArithmeticError, PersistenceError) as exc:
        current_app.logger.warning("Import rejected after %s: %s", result, exc)
        raise ImportFormatError("Fichier invalide") from exc
    current_app.logger.info(
        "Import done: %s prestations, %s dossiers", result.prestations, result.dossiers
    )
    return result
