from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from flask_login import UserMixin
from sqlalchemy import CheckConstraint, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates

from obseques.core.extensions import db
from obseques.core.utils import new_id


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


LIGNE_GROUPS = ("marbrerie", "autres")

DEFAULT_PRESTATIONS: list[tuple[str, Decimal]] = [
    ("Mise en bière et fermeture du cercueil", Decimal("290.00")),
    ("Cercueil chêne – gamme classique", Decimal("780.00")),
    ("Capitonnage tissu écru", Decimal("180.00")),
    ("Transport (forfait 50 km)", Decimal("220.00")),
    ("Maître de cérémonie", Decimal("200.00")),
    ("Démarches administratives", Decimal("95.00")),
    ("Ouverture/fermeture de caveau", Decimal("350.00")),
    ("Urne funéraire – standard", Decimal("120.00")),
]


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _number(value, field_name: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"Valeur invalide pour {field_name}")
    try:
        amount = Decimal(str(value if value not in (None, "") else 0).replace(",", "."))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Valeur invalide pour {field_name}") from exc
    if not amount.is_finite():
        raise ValueError(f"Valeur invalide pour {field_name}")
    if amount < 0:
        raise ValueError(f"Valeur négative interdite pour {field_name}")
    return float(amount)


def clean_ligne(raw: dict) -> dict[str, object]:
    """Normalise one line item: ``{id, nom, qte, pu}`` with numeric amounts."""
    if not isinstance(raw, dict):
        raise ValueError("Ligne invalide")
    return {
        "id": str(raw.get("id") or new_id()),
        "nom": str(raw.get("nom") or ""),
        "qte": _number(raw.get("qte", 1), "la quantité"),
        "pu": _number(raw.get("pu", 0), "le prix unitaire"),
    }


class User(UserMixin, db.Model):
    __tablename__ = "user_account"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class LoginLink(db.Model):
    # Lien de connexion à usage unique; seul le hash du jeton est conservé.
    __tablename__ = "login_link"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False, index=True)
    token_hash: Mapped[str] = mapped_column(db.String(64), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    user = db.relationship("User")


class Entreprise(db.Model):
    __tablename__ = "entreprise"
    __table_args__ = (UniqueConstraint("user_id", name="uq_entreprise_user"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False)
    nom: Mapped[str] = mapped_column(db.String(160), nullable=False, default="")
    adresse: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    telephone: Mapped[str] = mapped_column(db.String(40), nullable=False, default="")
    email: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    siret: Mapped[str] = mapped_column(db.String(20), nullable=False, default="")
    signature_data_url: Mapped[str | None] = mapped_column(db.Text, nullable=True)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "nom": self.nom,
            "adresse": self.adresse,
            "telephone": self.telephone,
            "email": self.email,
            "siret": self.siret,
            "signature_data_url": self.signature_data_url,
        }


class Prestation(db.Model):
    __tablename__ = "prestation"
    __table_args__ = (CheckConstraint("prix >= 0", name="ck_prestation_prix"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False, index=True)
    nom: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    prix: Mapped[Decimal] = mapped_column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))

    @validates("prix")
    def _validate_prix(self, _key: str, value) -> Decimal:
        try:
            amount = Decimal(str(value if value not in (None, "") else 0).replace(",", "."))
        except InvalidOperation as exc:
            raise ValueError("Prix invalide") from exc
        if not amount.is_finite():
            raise ValueError("Prix invalide")
        if amount < 0:
            raise ValueError("Le prix d'une prestation ne peut pas être négatif")
        return amount.quantize(Decimal("0.01"))

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "nom": self.nom,
            "prix": float(self.prix or 0),
        }


class Dossier(db.Model):
    __tablename__ = "dossier"
    __table_args__ = (Index("ix_dossier_user_modifie", "user_id", "modifie_le"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False, index=True)
    reference: Mapped[str] = mapped_column(db.String(40), nullable=False)
    defunt_nom: Mapped[str] = mapped_column(db.String(120), nullable=False, default="")
    defunt_prenom: Mapped[str] = mapped_column(db.String(120), nullable=False, default="")
    famille_contact: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    ceremonie_date: Mapped[datetime | None] = mapped_column(nullable=True)
    ceremonie_lieu: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    prestations: Mapped[list] = mapped_column(db.JSON, nullable=False, default=list)
    marbrerie: Mapped[list] = mapped_column(db.JSON, nullable=False, default=list)
    autres: Mapped[list] = mapped_column(db.JSON, nullable=False, default=list)
    cree_le: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    modifie_le: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    archive: Mapped[bool] = mapped_column(default=False, nullable=False)

    @validates("prestations")
    def _validate_prestations(self, _key: str, value) -> list[str]:
        seen: list[str] = []
        for item in value or []:
            key = str(item)
            if key not in seen:
                seen.append(key)
        return seen

    @validates("marbrerie", "autres")
    def _validate_lignes(self, _key: str, value) -> list[dict[str, object]]:
        return [clean_ligne(item) for item in value or []]

    @property
    def defunt_label(self) -> str:
        return f"{self.defunt_prenom or '?'} {self.defunt_nom or '?'}"

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "reference": self.reference,
            "defunt_nom": self.defunt_nom,
            "defunt_prenom": self.defunt_prenom,
            "famille_contact": self.famille_contact,
            "ceremonie_date": _iso(self.ceremonie_date),
            "ceremonie_lieu": self.ceremonie_lieu,
            "prestations": list(self.prestations or []),
            "marbrerie": [dict(line) for line in self.marbrerie or []],
            "autres": [dict(line) for line in self.autres or []],
            "cree_le": _iso(self.cree_le),
            "modifie_le": _iso(self.modifie_le),
            "archive": bool(self.archive),
        }


def seed_demo_data(session, email: str = "demo@obseques.local") -> User:
    user = User(email=email)
    session.add(user)
    session.flush()

    session.add(
        Entreprise(
            user_id=user.id,
            nom="Pompes Funèbres Loubet-Victor",
            adresse="12 avenue des Tilleuls, 31000 Toulouse",
            telephone="05 61 00 00 00",
            email=email,
            siret="12345678900017",
        )
    )
    catalogue = [Prestation(user_id=user.id, nom=nom, prix=prix) for nom, prix in DEFAULT_PRESTATIONS]
    session.add_all(catalogue)
    session.flush()

    year = utcnow().year
    session.add_all(
        [
            Dossier(
                user_id=user.id,
                reference=f"PFV-{year}-0001",
                defunt_nom="Martin",
                defunt_prenom="Jeanne",
                famille_contact="Paul Martin 06 12 34 56 78",
                ceremonie_date=datetime(year, 11, 3, 14, 30),
                ceremonie_lieu="Église Saint-Sernin",
                prestations=[str(catalogue[0].id), str(catalogue[1].id), str(catalogue[4].id)],
                marbrerie=[{"id": new_id(), "nom": "Gravure plaque", "qte": 1, "pu": 85}],
                autres=[{"id": new_id(), "nom": "Gerbe de fleurs", "qte": 2, "pu": 60}],
            ),
            Dossier(
                user_id=user.id,
                reference=f"PFV-{year}-0002",
                defunt_nom="Bernard",
                defunt_prenom="Louis",
                famille_contact="Claire Bernard",
                ceremonie_lieu="Crématorium de Cornebarrieu",
                prestations=[str(catalogue[7].id)],
            ),
        ]
    )
    session.commit()
    return user
