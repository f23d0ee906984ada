from __future__ import annotations

from datetime import datetime, date, timezone
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Numeric,
    Text,
    Enum,
    UniqueConstraint,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from custodia.app.db.base import Base, BigIntPK
from custodia.app.db.models.core_types import (
    MovementKind,
    ManifestType,
    ManifestStatus,
    Outstanding,
    Returned,
    ReturnState,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------- CADASTROS (catálogo de referência) ----------
class CostCenter(Base):
    __tablename__ = "centros_custo"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Employee(Base):
    __tablename__ = "colaboradores"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    registration: Mapped[str | None] = mapped_column(String(32), unique=True)  # matrícula
    cost_center_id: Mapped[int | None] = mapped_column(ForeignKey("centros_custo.id", ondelete="SET NULL"))
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    cost_center: Mapped[CostCenter | None] = relationship()


class Supplier(Base):
    __tablename__ = "fornecedores"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    document: Mapped[str | None] = mapped_column(String(20))  # CNPJ/CPF só dígitos


class User(Base):
    __tablename__ = "usuarios"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Item(Base):
    __tablename__ = "materiais_equipamentos"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[str] = mapped_column(String(32), default="UN", nullable=False)

    # Escrito SOMENTE por services.ledger
    quantity_on_hand: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Centro de custo que detém o item (aprovação / estorno)
    cost_center_id: Mapped[int | None] = mapped_column(ForeignKey("centros_custo.id", ondelete="SET NULL"))
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    cost_center: Mapped[CostCenter | None] = relationship()

    __table_args__ = (CheckConstraint("quantity_on_hand >= 0", name="ck_item_qty_nonneg"),)


# ---------- ESTOQUE ----------
class StockLedgerEntry(Base):
    __tablename__ = "movimentacao_estoque"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    item_id: Mapped[int] = mapped_column(
        ForeignKey("materiais_equipamentos.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    kind: Mapped[MovementKind] = mapped_column(Enum(MovementKind, name="movement_kind"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_before: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_after: Mapped[int] = mapped_column(Integer, nullable=False)

    manifest_id: Mapped[int | None] = mapped_column(ForeignKey("romaneios.id", ondelete="SET NULL"), index=True)
    actor_id: Mapped[int | None] = mapped_column(ForeignKey("usuarios.id", ondelete="SET NULL"))
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    happened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    item: Mapped[Item] = relationship()

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_ledger_qty_pos"),
        CheckConstraint("quantity_before >= 0", name="ck_ledger_qty_before_nonneg"),
        CheckConstraint("quantity_after >= 0", name="ck_ledger_qty_after_nonneg"),
        Index("ix_ledger_item_id_desc", "item_id", "id"),
    )

    @property
    def signed_quantity(self) -> int:
        return self.quantity_after - self.quantity_before


# ---------- ROMANEIOS ----------
class Manifest(Base):
    __tablename__ = "romaneios"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    number: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    type: Mapped[ManifestType] = mapped_column(Enum(ManifestType, name="manifest_type"), nullable=False)
    status: Mapped[ManifestStatus] = mapped_column(
        Enum(ManifestStatus, name="manifest_status"),
        default=ManifestStatus.pendente,
        nullable=False,
        index=True,
    )

    origin_cost_center_id: Mapped[int | None] = mapped_column(ForeignKey("centros_custo.id", ondelete="RESTRICT"))
    dest_cost_center_id: Mapped[int | None] = mapped_column(ForeignKey("centros_custo.id", ondelete="RESTRICT"))
    employee_id: Mapped[int | None] = mapped_column(ForeignKey("colaboradores.id", ondelete="RESTRICT"))
    supplier_id: Mapped[int | None] = mapped_column(ForeignKey("fornecedores.id", ondelete="RESTRICT"))

    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    # Devolução -> retirada de origem
    parent_id: Mapped[int | None] = mapped_column(ForeignKey("romaneios.id", ondelete="RESTRICT"), index=True)
    responsible: Mapped[str | None] = mapped_column(String(200))
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approved_by: Mapped[int | None] = mapped_column(ForeignKey("usuarios.id", ondelete="SET NULL"))
    picked_up_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    lines: Mapped[list["ManifestLine"]] = relationship(
        back_populates="manifest",
        cascade="all, delete-orphan",
        order_by="ManifestLine.id",
    )
    parent: Mapped["Manifest | None"] = relationship(remote_side=[id])

    __table_args__ = (
        CheckConstraint(
            "type <> 'devolucao' OR parent_id IS NOT NULL",
            name="ck_manifest_return_has_parent",
        ),
        Index("ix_manifest_parent_type_status", "parent_id", "type", "status"),
    )


class ManifestLine(Base):
    __tablename__ = "romaneios_itens"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    manifest_id: Mapped[int] = mapped_column(ForeignKey("romaneios.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id: Mapped[int] = mapped_column(ForeignKey("materiais_equipamentos.id", ondelete="RESTRICT"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_value: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    total_value: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    serial_number: Mapped[str | None] = mapped_column(String(64))
    asset_tag: Mapped[str | None] = mapped_column(String(64))  # código patrimonial
    notes: Mapped[str | None] = mapped_column(Text)

    # Linha de devolução -> linha da retirada que ela devolve
    origin_line_id: Mapped[int | None] = mapped_column(ForeignKey("romaneios_itens.id", ondelete="SET NULL"), index=True)
    # Preferir return_state / mark_returned / clear_return
    returned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    manifest: Mapped[Manifest] = relationship(back_populates="lines")
    item: Mapped[Item] = relationship()

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_manifest_line_qty_pos"),
        CheckConstraint("unit_value IS NULL OR unit_value >= 0", name="ck_manifest_line_unit_value_nonneg"),
    )

    @property
    def return_state(self) -> ReturnState:
        if self.returned_at is None:
            return Outstanding()
        return Returned(at=self.returned_at)

    def mark_returned(self, at: datetime) -> bool:
        """Marca a linha como devolvida. Retorna False se já estava (no-op)."""
        if self.returned_at is not None:
            return False
        self.returned_at = at
        return True

    def clear_return(self) -> None:
        self.returned_at = None


class ManifestCounter(Base):
    """Sequência atômica de numeração por (prefixo, centro de custo, ano)."""

    __tablename__ = "romaneio_sequencias"
    prefix: Mapped[str] = mapped_column(String(8), primary_key=True)
    cost_center_code: Mapped[str] = mapped_column(String(32), primary_key=True)
    year: Mapped[int] = mapped_column(Integer, primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (CheckConstraint("last_value >= 0", name="ck_counter_nonneg"),)


# ---------- AUDITORIA ----------
class AuditLog(Base):
    __tablename__ = "audit_log"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    actor_id: Mapped[int | None] = mapped_column(ForeignKey("usuarios.id", ondelete="SET NULL"))
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    meta: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (Index("ix_audit_entity", "entity_type", "entity_id"),)
