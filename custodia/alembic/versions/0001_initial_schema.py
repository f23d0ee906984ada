"""initial schema: cadastros, livro de estoque, romaneios

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MOVEMENT_KIND = sa.Enum("entrada", "saida", "ajuste", name="movement_kind")
MANIFEST_TYPE = sa.Enum("entrada", "retirada", "transferencia", "devolucao", name="manifest_type")
MANIFEST_STATUS = sa.Enum("pendente", "aprovado", "retirado", "devolvido", "cancelado", name="manifest_status")


def _pk() -> sa.Column:
    return sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True)


def upgrade() -> None:
    op.create_table(
        "centros_custo",
        _pk(),
        sa.Column("code", sa.String(32), nullable=False, unique=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        "usuarios",
        _pk(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "colaboradores",
        _pk(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("registration", sa.String(32), unique=True),
        sa.Column("cost_center_id", sa.BigInteger(), sa.ForeignKey("centros_custo.id", ondelete="SET NULL")),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        "fornecedores",
        _pk(),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("document", sa.String(20)),
    )
    op.create_table(
        "materiais_equipamentos",
        _pk(),
        sa.Column("code", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("unit", sa.String(32), nullable=False, server_default="UN"),
        sa.Column("quantity_on_hand", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cost_center_id", sa.BigInteger(), sa.ForeignKey("centros_custo.id", ondelete="SET NULL")),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "romaneios",
        _pk(),
        sa.Column("number", sa.String(64), nullable=False, unique=True),
        sa.Column("type", MANIFEST_TYPE, nullable=False),
        sa.Column("status", MANIFEST_STATUS, nullable=False, server_default="pendente"),
        sa.Column("origin_cost_center_id", sa.BigInteger(), sa.ForeignKey("centros_custo.id", ondelete="RESTRICT")),
        sa.Column("dest_cost_center_id", sa.BigInteger(), sa.ForeignKey("centros_custo.id", ondelete="RESTRICT")),
        sa.Column("employee_id", sa.BigInteger(), sa.ForeignKey("colaboradores.id", ondelete="RESTRICT")),
        sa.Column("supplier_id", sa.BigInteger(), sa.ForeignKey("fornecedores.id", ondelete="RESTRICT")),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("parent_id", sa.BigInteger(), sa.ForeignKey("romaneios.id", ondelete="RESTRICT")),
        sa.Column("responsible", sa.String(200)),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("approved_at", sa.DateTime(timezone=True)),
        sa.Column("approved_by", sa.BigInteger(), sa.ForeignKey("usuarios.id", ondelete="SET NULL")),
        sa.Column("picked_up_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("type <> 'devolucao' OR parent_id IS NOT NULL", name="ck_manifest_return_has_parent"),
    )
    op.create_index("ix_romaneios_status", "romaneios", ["status"])
    op.create_index("ix_romaneios_parent_id", "romaneios", ["parent_id"])
    op.create_index("ix_manifest_parent_type_status", "romaneios", ["parent_id", "type", "status"])

    op.create_table(
        "romaneios_itens",
        _pk(),
        sa.Column("manifest_id", sa.BigInteger(), sa.ForeignKey("romaneios.id", ondelete="CASCADE"), nullable=False),
        sa.Column("item_id", sa.BigInteger(), sa.ForeignKey("materiais_equipamentos.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_value", sa.Numeric(14, 2)),
        sa.Column("total_value", sa.Numeric(14, 2)),
        sa.Column("serial_number", sa.String(64)),
        sa.Column("asset_tag", sa.String(64)),
        sa.Column("notes", sa.Text()),
        sa.Column("origin_line_id", sa.BigInteger(), sa.ForeignKey("romaneios_itens.id", ondelete="SET NULL")),
        sa.Column("returned_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("quantity > 0", name="ck_manifest_line_qty_pos"),
        sa.CheckConstraint("unit_value IS NULL OR unit_value >= 0", name="ck_manifest_line_unit_value_nonneg"),
    )
    op.create_index("ix_romaneios_itens_manifest_id", "romaneios_itens", ["manifest_id"])
    op.create_index("ix_romaneios_itens_origin_line_id", "romaneios_itens", ["origin_line_id"])

    op.create_table(
        "movimentacao_estoque",
        _pk(),
        sa.Column("item_id", sa.BigInteger(), sa.ForeignKey("materiais_equipamentos.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("kind", MOVEMENT_KIND, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("quantity_before", sa.Integer(), nullable=False),
        sa.Column("quantity_after", sa.Integer(), nullable=False),
        sa.Column("manifest_id", sa.BigInteger(), sa.ForeignKey("romaneios.id", ondelete="SET NULL")),
        sa.Column("actor_id", sa.BigInteger(), sa.ForeignKey("usuarios.id", ondelete="SET NULL")),
        sa.Column("reason", sa.String(255), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("happened_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("quantity > 0", name="ck_ledger_qty_pos"),
    )
    op.create_index("ix_movimentacao_estoque_item_id", "movimentacao_estoque", ["item_id"])
    op.create_index("ix_movimentacao_estoque_manifest_id", "movimentacao_estoque", ["manifest_id"])
    op.create_index("ix_ledger_item_id_desc", "movimentacao_estoque", ["item_id", "id"])

    op.create_table(
        "romaneio_sequencias",
        sa.Column("prefix", sa.String(8), primary_key=True),
        sa.Column("cost_center_code", sa.String(32), primary_key=True),
        sa.Column("year", sa.Integer(), primary_key=True),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("last_value >= 0", name="ck_counter_nonneg"),
    )

    op.create_table(
        "audit_log",
        _pk(),
        sa.Column("actor_id", sa.BigInteger(), sa.ForeignKey("usuarios.id", ondelete="SET NULL")),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("meta", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_audit_entity", "audit_log", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("romaneio_sequencias")
    op.drop_table("movimentacao_estoque")
    op.drop_table("romaneios_itens")
    op.drop_table("romaneios")
    op.drop_table("materiais_equipamentos")
    op.drop_table("fornecedores")
    op.drop_table("colaboradores")
    op.drop_table("usuarios")
    op.drop_table("centros_custo")

    bind = op.get_bind()
    for enum_type in (MANIFEST_STATUS, MANIFEST_TYPE, MOVEMENT_KIND):
        enum_type.drop(bind, checkfirst=True)
