"""Running totals of a case file.

A total is never stored: it is recomputed from the dossier's own selection and
line groups plus the current catalogue every time it is displayed.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Mapping


def _amount(value) -> Decimal:
    return Decimal(str(value or 0))


def catalogue_by_id(catalogue: Iterable) -> dict[str, object]:
    return {str(prestation.id): prestation for prestation in catalogue}


def prestations_total(selected: Iterable[str], catalogue: Mapping[str, object]) -> Decimal:
    # Stale ids (deleted services) contribute nothing.
    total = Decimal("0")
    for prestation_id in selected or []:
        prestation = catalogue.get(str(prestation_id))
        if prestation is not None:
            total += _amount(prestation.prix)
    return total


def lignes_total(lignes: Iterable[Mapping[str, object]]) -> Decimal:
    return sum((_amount(line.get("qte")) * _amount(line.get("pu")) for line in lignes or []), Decimal("0"))


def dossier_total(dossier, catalogue: Iterable | Mapping[str, object]) -> Decimal:
    if not isinstance(catalogue, Mapping):
        catalogue = catalogue_by_id(catalogue)
    return (
        prestations_total(dossier.prestations, catalogue)
        + lignes_total(dossier.marbrerie)
        + lignes_total(dossier.autres)
    )
