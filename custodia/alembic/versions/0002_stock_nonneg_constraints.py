"""saldo e livro nunca negativos

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op

revision: str = "0002"
down_revision: Union[str, Sequence[str], None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CHECKS = [
    ("materiais_equipamentos", "ck_item_qty_nonneg", "quantity_on_hand >= 0"),
    ("movimentacao_estoque", "ck_ledger_qty_before_nonneg", "quantity_before >= 0"),
    ("movimentacao_estoque", "ck_ledger_qty_after_nonneg", "quantity_after >= 0"),
]


def _add_check_if_missing(table: str, constraint_name: str, check_sql: str) -> None:
    # Idempotente no Postgres
    op.execute(
        f"""
        DO $$
        BEGIN
            IF NOT EXISTS (
                SELECT 1
                FROM pg_constraint c
                JOIN pg_class t ON t.oid = c.conrelid
                WHERE t.relname = '{table}'
                  AND c.conname = '{constraint_name}'
            ) THEN
                ALTER TABLE {table}
                ADD CONSTRAINT {constraint_name}
                CHECK ({check_sql});
            END IF;
        END $$;
        """
    )


def upgrade() -> None:
    # Bases migradas de sistemas antigos podem ter saldo negativo: zera antes de travar
    op.execute("UPDATE materiais_equipamentos SET quantity_on_hand = 0 WHERE quantity_on_hand < 0;")
    op.execute("UPDATE movimentacao_estoque SET quantity_before = 0 WHERE quantity_before < 0;")
    op.execute("UPDATE movimentacao_estoque SET quantity_after = 0 WHERE quantity_after < 0;")

    for table, name, check_sql in CHECKS:
        _add_check_if_missing(table, name, check_sql)


def downgrade() -> None:
    for table, name, _ in reversed(CHECKS):
        op.execute(f"ALTER TABLE {table} DROP CONSTRAINT IF EXISTS {name};")
