"""initial obseques schema

Revision ID: 4b7e2c9d0a13
Revises:
Create Date: 2026-10-18 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "4b7e2c9d0a13"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "user_account",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "login_link",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("token_hash", sa.String(length=64), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("used_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("token_hash"),
    )
    with op.batch_alter_table("login_link", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_login_link_user_id"), ["user_id"], unique=False)

    op.create_table(
        "entreprise",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("nom", sa.String(length=160), nullable=False, server_default=""),
        sa.Column("adresse", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("telephone", sa.String(length=40), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("siret", sa.String(length=20), nullable=False, server_default=""),
        sa.Column("signature_data_url", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", name="uq_entreprise_user"),
    )

    op.create_table(
        "prestation",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("nom", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("prix", sa.Numeric(precision=10, scale=2), nullable=False, server_default="0"),
        sa.CheckConstraint("prix >= 0", name="ck_prestation_prix"),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("prestation", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_prestation_user_id"), ["user_id"], unique=False)

    op.create_table(
        "dossier",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("reference", sa.String(length=40), nullable=False),
        sa.Column("defunt_nom", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("defunt_prenom", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("famille_contact", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("ceremonie_date", sa.DateTime(), nullable=True),
        sa.Column("ceremonie_lieu", sa.String(length=255), nullable=True),
        sa.Column("prestations", sa.JSON(), nullable=False),
        sa.Column("marbrerie", sa.JSON(), nullable=False),
        sa.Column("autres", sa.JSON(), nullable=False),
        sa.Column("cree_le", sa.DateTime(), nullable=False),
        sa.Column("modifie_le", sa.DateTime(), nullable=False),
        sa.Column("archive", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("dossier", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_dossier_user_id"), ["user_id"], unique=False)
    op.create_index("ix_dossier_user_modifie", "dossier", ["user_id", "modifie_le"], unique=False)


def downgrade():
    op.drop_index("ix_dossier_user_modifie", table_name="dossier")
    with op.batch_alter_table("dossier", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_dossier_user_id"))
    op.drop_table("dossier")

    with op.batch_alter_table("prestation", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_prestation_user_id"))
    op.drop_table("prestation")

    op.drop_table("entreprise")

    with op.batch_alter_table("login_link", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_login_link_user_id"))
    op.drop_table("login_link")

    op.drop_table("user_account")
