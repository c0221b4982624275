from __future__ import annotations

import json
from decimal import Decimal

import pytest

from obseques.core.extensions import db
from obseques.core.gateway import OwnedTable, PersistenceError
from obseques.core.models import DEFAULT_PRESTATIONS, Dossier, Entreprise, Prestation, utcnow
from obseques.dossiers.dashboard import Dashboard, DashboardState
from obseques.dossiers.exchange import ImportFormatError


def _dashboard(user, state: DashboardState | None = None) -> Dashboard:
    return Dashboard(
        user.id,
        user.email,
        state,
        reference_prefix="PFV",
        default_company_name="Pompes Funèbres Loubet-Victor",
    ).load()


def _comparable(dossier: dict) -> dict:
    return {k: v for k, v in dossier.items() if k not in {"id", "user_id", "cree_le", "modifie_le"}}


def test_first_load_seeds_catalogue_and_company_profile(app, new_user):
    dash = _dashboard(new_user)

    assert [(p.nom, p.prix) for p in dash.prestations.items] == DEFAULT_PRESTATIONS
    assert Prestation.query.filter_by(user_id=new_user.id).count() == 8
    profile = dash.entreprise.profile
    assert profile.nom == "Pompes Funèbres Loubet-Victor"
    assert profile.email == "nouveau@obseques.local"
    assert (profile.adresse, profile.telephone, profile.siret) == ("", "", "")

    again = _dashboard(new_user)
    assert Prestation.query.filter_by(user_id=new_user.id).count() == 8
    assert Entreprise.query.filter_by(user_id=new_user.id).count() == 1
    assert again.entreprise.profile.id == profile.id


def test_created_references_are_sequential_for_the_year(app, new_user):
    dash = _dashboard(new_user)
    year = utcnow().year

    created = [dash.new_dossier() for _ in range(3)]

    assert [d.reference for d in created] == [f"PFV-{year}-0001", f"PFV-{year}-0002", f"PFV-{year}-0003"]
    assert [d.id for d in dash.dossiers.items] == [d.id for d in reversed(created)]
    assert dash.state.current_id == created[-1].id
    first = created[0]
    assert first.prestations == [] and first.marbrerie == [] and first.autres == []
    assert first.cree_le == first.modifie_le
    assert first.archive is False


def test_create_failure_leaves_state_untouched(app, new_user, monkeypatch):
    dash = _dashboard(new_user)
    before = list(dash.dossiers.items)

    def _boom(self, rows):
        raise PersistenceError("connexion perdue")

    monkeypatch.setattr(OwnedTable, "insert_many", _boom)
    with pytest.raises(PersistenceError, match="connexion perdue"):
        dash.new_dossier()
    assert dash.dossiers.items == before
    assert dash.state.current_id is None


def test_update_merges_patch_and_touches_modification_time(app, demo_user):
    dash = _dashboard(demo_user)
    target = next(d for d in dash.filtered if d.defunt_nom == "Bernard")
    dash.select(target.id)
    reference = target.reference
    old_modified = target.modifie_le

    saved = dash.update_current({"famille_contact": "Sophie Bernard", "reference": "AUTRE"})

    assert saved.famille_contact == "Sophie Bernard"
    assert saved.defunt_nom == "Bernard"
    assert saved.reference == reference
    assert saved.modifie_le > old_modified
    assert dash.dossiers.get(target.id).famille_contact == "Sophie Bernard"
    assert db.session.get(Dossier, target.id).famille_contact == "Sophie Bernard"


def test_update_failure_keeps_previous_values(app, demo_user, monkeypatch):
    dash = _dashboard(demo_user)
    target = dash.filtered[0]
    dash.select(target.id)

    def _boom(self, row_id, values):
        raise PersistenceError("timeout")

    monkeypatch.setattr(OwnedTable, "update", _boom)
    with pytest.raises(PersistenceError):
        dash.update_current({"defunt_nom": "Autre"})
    assert dash.current.defunt_nom == target.defunt_nom
    assert dash.current is target


def test_invalid_value_rolls_back_the_row(app, demo_user):
    dash = _dashboard(demo_user)
    prestation = dash.prestations.items[0]

    with pytest.raises(ValueError):
        dash.prestations.update(prestation.id, {"nom": "Renommée", "prix": "-10"})

    db.session.expire_all()
    assert db.session.get(Prestation, prestation.id).nom == DEFAULT_PRESTATIONS[0][0]


def test_archive_requires_confirmation(app, demo_user):
    dash = _dashboard(demo_user)
    target = dash.filtered[0]
    dash.select(target.id)

    assert dash.archive_current(confirmed=False) is False
    assert dash.current is not None and dash.current.archive is False

    assert dash.archive_current(confirmed=True) is True
    assert dash.state.current_id is None
    assert db.session.get(Dossier, target.id).archive is True
    assert target.id not in [d.id for d in dash.filtered]
    assert target.id in [d.id for d in dash.dossiers.items]


def test_toggle_prestation_collapses_duplicates(app, demo_user):
    dash = _dashboard(demo_user)
    dash.select(dash.filtered[-1].id)
    extra = dash.prestations.items[2]

    dash.toggle_prestation(extra.id, True)
    dash.toggle_prestation(str(extra.id), True)
    assert dash.current.prestations.count(str(extra.id)) == 1

    dash.toggle_prestation(extra.id, False)
    assert str(extra.id) not in dash.current.prestations


def test_line_items_are_prepended_edited_and_removed(app, demo_user):
    dash = _dashboard(demo_user)
    dash.select(next(d for d in dash.filtered if d.defunt_nom == "Bernard").id)
    assert dash.current.marbrerie == []

    first = dash.add_ligne("marbrerie")
    second = dash.add_ligne("marbrerie")
    assert [line["id"] for line in dash.current.marbrerie] == [second["id"], first["id"]]
    assert dash.current.marbrerie[0]["qte"] == 1 and dash.current.marbrerie[0]["pu"] == 0

    dash.update_ligne("marbrerie", first["id"], {"nom": "Semelle granit", "qte": "2", "pu": "450"})
    assert dash.current.marbrerie[1] == {"id": first["id"], "nom": "Semelle granit", "qte": 2.0, "pu": 450.0}

    dash.remove_ligne("marbrerie", second["id"])
    assert [line["id"] for line in dash.current.marbrerie] == [first["id"]]

    with pytest.raises(ValueError):
        dash.add_ligne("fleurs")
    with pytest.raises(ValueError):
        dash.remove_ligne("autres", "inexistant")


def test_negative_line_amount_is_rejected_and_total_kept(app, demo_user):
    dash = _dashboard(demo_user)
    dash.select(next(d for d in dash.filtered if d.defunt_nom == "Bernard").id)
    line = dash.add_ligne("autres")
    before = dash.total(dash.current)

    with pytest.raises(ValueError):
        dash.update_ligne("autres", line["id"], {"qte": "1", "pu": "-500"})

    assert dash.total(dash.current) == before == Decimal("120.00")
    assert dash.current.autres[0]["pu"] == 0


def test_total_ignores_deleted_services(app, demo_user):
    dash = _dashboard(demo_user)
    dossier = next(d for d in dash.dossiers.items if d.defunt_nom == "Martin")
    # 290 + 780 + 200 selected, 1 x 85 marbrerie, 2 x 60 autres
    assert dash.total(dossier) == Decimal("1475.00")

    cercueil_id = dash.prestations.by_id()[dossier.prestations[1]].id
    dash.prestations.delete(cercueil_id)

    assert dossier.prestations[1] == str(cercueil_id)
    assert dash.total(dossier) == Decimal("695.00")


def test_catalogue_add_update_delete(app, demo_user):
    dash = _dashboard(demo_user)
    added = dash.prestations.add()
    assert dash.prestations.items[0] is added
    assert (added.nom, added.prix) == ("", Decimal("0.00"))

    saved = dash.prestations.update(added.id, {"nom": "Toilette mortuaire", "prix": "150,5"})
    assert saved.prix == Decimal("150.50")
    assert dash.prestations.items[0].nom == "Toilette mortuaire"

    added_id = added.id
    dash.prestations.delete(added_id)
    assert added_id not in [p.id for p in dash.prestations.items]
    assert db.session.get(Prestation, added_id) is None


def test_company_profile_field_update_and_signature(app, demo_user):
    dash = _dashboard(demo_user)
    original_address = dash.entreprise.profile.adresse

    dash.entreprise.update_field("telephone", " 05 61 11 22 33 ")
    assert dash.entreprise.profile.telephone == "05 61 11 22 33"
    assert dash.entreprise.profile.adresse == original_address

    dash.entreprise.set_signature(b"\x89PNG", "image/png")
    assert dash.entreprise.profile.signature_data_url == "data:image/png;base64,iVBORw=="

    with pytest.raises(ValueError):
        dash.entreprise.set_signature(b"%PDF", "application/pdf")
    with pytest.raises(ValueError):
        dash.entreprise.update_field("user_id", "2")
    with pytest.raises(ValueError):
        dash.entreprise.update_field("email", "pas-un-email")

    dash.entreprise.clear_signature()
    assert dash.entreprise.profile.signature_data_url is None


def test_observers_are_notified_after_each_mutation(app, new_user):
    dash = _dashboard(new_user)
    seen: list[int | None] = []
    dash.subscribe(lambda d: seen.append(d.state.current_id))

    dossier = dash.new_dossier()
    dash.update_current({"defunt_nom": "Durand"})

    assert seen and seen[-1] == dossier.id
    assert len(seen) >= 3


def test_gateway_is_scoped_to_owner(app, demo_user, new_user):
    other = _dashboard(new_user)
    demo_dossier = Dossier.query.filter_by(user_id=demo_user.id).first()

    assert other.dossiers.get(demo_dossier.id) is None
    assert all(d.user_id == new_user.id for d in other.dossiers.items)
    with pytest.raises(PersistenceError):
        other.dossier_table.update(demo_dossier.id, {"defunt_nom": "Piraté"})
    with pytest.raises(PersistenceError):
        other.prestation_table.delete(Prestation.query.filter_by(user_id=demo_user.id).first().id)

    created = other.dossier_table.insert({"reference": "X", "user_id": demo_user.id})
    assert created.user_id == new_user.id


def test_import_scenario_d_inserts_unknown_service(app, demo_user):
    dash = _dashboard(demo_user)
    before = len(dash.prestations.items)

    result = dash.import_document(json.dumps({"prestations": [{"nom": "X", "prix": 10}]}))

    assert result.prestations == 1 and result.dossiers == 0
    assert len(dash.prestations.items) == before + 1
    row = Prestation.query.filter_by(user_id=demo_user.id, nom="X").one()
    assert row.prix == Decimal("10.00")

    dash.import_document(json.dumps({"prestations": [{"nom": "X", "prix": 10}]}))
    assert Prestation.query.filter_by(user_id=demo_user.id, nom="X").count() == 1


def test_reimport_matches_prices_rounded_to_the_cent(app, demo_user):
    dash = _dashboard(demo_user)
    document = json.dumps({"prestations": [{"nom": "Y", "prix": 10.005}]})

    dash.import_document(document)
    dash.import_document(document)

    rows = Prestation.query.filter_by(user_id=demo_user.id, nom="Y").all()
    assert len(rows) == 1
    assert rows[0].prix == Decimal("10.00")


def test_export_then_import_round_trips_case_files(app, demo_user, new_user):
    source = _dashboard(demo_user)
    document = source.export_json()
    exported = json.loads(document)
    assert set(exported) == {"dossiers", "prestations", "entreprise"}

    target = _dashboard(new_user)
    result = target.import_document(document)

    assert result.dossiers == len(exported["dossiers"])
    imported = sorted((_comparable(d.to_dict()) for d in target.dossiers.items), key=lambda d: d["reference"])
    expected = sorted((_comparable(d) for d in exported["dossiers"]), key=lambda d: d["reference"])
    assert imported == expected
    assert all(d.user_id == new_user.id for d in target.dossiers.items)
    assert {d.id for d in target.dossiers.items}.isdisjoint({d["id"] for d in exported["dossiers"]})


def test_invalid_import_reports_generic_error(app, demo_user):
    dash = _dashboard(demo_user)
    count = Dossier.query.count()

    with pytest.raises(ImportFormatError, match="Fichier invalide"):
        dash.import_document("{pas du json")
    with pytest.raises(ImportFormatError):
        dash.import_document("[1, 2]")
    assert Dossier.query.count() == count


def test_partial_import_keeps_rows_written_before_failure(app, demo_user):
    dash = _dashboard(demo_user)
    payload = {
        "prestations": [{"nom": "Avant l'erreur", "prix": 5}],
        "dossiers": [{"reference": "IMP-1"}, {"defunt_nom": "sans référence"}],
    }

    with pytest.raises(ImportFormatError):
        dash.import_document(json.dumps(payload))

    assert Prestation.query.filter_by(user_id=demo_user.id, nom="Avant l'erreur").count() == 1
    assert Dossier.query.filter_by(user_id=demo_user.id, reference="IMP-1").count() == 1
    assert "IMP-1" in [d.reference for d in dash.dossiers.items]
