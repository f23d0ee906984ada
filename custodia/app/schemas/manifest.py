from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, model_validator

from custodia.app.db.models.core_types import ManifestStatus, ManifestType


# ---------- Linhas (variantes por tipo de romaneio) ----------
class LineBase(BaseModel):
    item_id: int
    quantity: int = Field(gt=0)
    unit_value: Decimal | None = Field(default=None, ge=0)
    notes: str | None = None


class EntryLine(LineBase):
    kind: Literal["entrada"] = "entrada"
    serial_number: str | None = Field(default=None, max_length=64)
    asset_tag: str | None = Field(default=None, max_length=64)


class WithdrawalLine(LineBase):
    kind: Literal["retirada"] = "retirada"
    serial_number: str | None = Field(default=None, max_length=64)
    asset_tag: str | None = Field(default=None, max_length=64)


class TransferLine(LineBase):
    kind: Literal["transferencia"] = "transferencia"
    asset_tag: str | None = Field(default=None, max_length=64)


class ReturnLine(LineBase):
    kind: Literal["devolucao"] = "devolucao"
    # linha da retirada sendo devolvida
    origin_line_id: int
    serial_number: str | None = Field(default=None, max_length=64)
    asset_tag: str | None = Field(default=None, max_length=64)


ManifestLineIn = Annotated[
    Union[EntryLine, WithdrawalLine, TransferLine, ReturnLine],
    Field(discriminator="kind"),
]


def _tag_lines_with_type(data: Any) -> Any:
    # Linha sem "kind" herda o tipo do cabeçalho
    if isinstance(data, dict) and isinstance(data.get("lines"), list) and data.get("type"):
        kind = getattr(data["type"], "value", data["type"])
        data = dict(data)
        data["lines"] = [
            {**ln, "kind": ln.get("kind", kind)} if isinstance(ln, dict) else ln
            for ln in data["lines"]
        ]
    return data


# ---------- Cabeçalho ----------
class ManifestCreate(BaseModel):
    type: ManifestType
    # "aprovado" = criar e aprovar em seguida (o romaneio nasce sempre pendente)
    status: ManifestStatus = ManifestStatus.pendente
    origin_cost_center_id: int | None = None
    dest_cost_center_id: int | None = None
    employee_id: int | None = None
    supplier_id: int | None = None
    issue_date: date = Field(default_factory=date.today)
    parent_id: int | None = None
    responsible: str | None = Field(default=None, max_length=200)
    notes: str | None = None
    lines: list[ManifestLineIn] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _default_line_kind(cls, data: Any) -> Any:
        return _tag_lines_with_type(data)


class ManifestUpdate(BaseModel):
    """Edição de romaneio pendente. `lines` presente = substitui todas as linhas."""

    issue_date: date | None = None
    origin_cost_center_id: int | None = None
    dest_cost_center_id: int | None = None
    employee_id: int | None = None
    supplier_id: int | None = None
    responsible: str | None = Field(default=None, max_length=200)
    notes: str | None = None
    lines: list[ManifestLineIn] | None = None


# ---------- Leitura ----------
class ManifestLineRead(BaseModel):
    id: int
    item_id: int
    quantity: int
    unit_value: Decimal | None
    total_value: Decimal | None
    serial_number: str | None
    asset_tag: str | None
    notes: str | None
    origin_line_id: int | None
    returned_at: datetime | None

    class Config:
        from_attributes = True


class ManifestRead(BaseModel):
    id: int
    number: str
    type: ManifestType
    status: ManifestStatus
    origin_cost_center_id: int | None
    dest_cost_center_id: int | None
    employee_id: int | None
    supplier_id: int | None
    issue_date: date
    parent_id: int | None
    responsible: str | None
    notes: str | None
    created_at: datetime
    approved_at: datetime | None
    picked_up_at: datetime | None
    lines: list[ManifestLineRead] = Field(default_factory=list)

    class Config:
        from_attributes = True


class ManifestCreated(BaseModel):
    id: int
    number: str
    status: ManifestStatus
    warnings: list[str] = Field(default_factory=list)


class ApprovalOutcome(BaseModel):
    status: ManifestStatus
    errors: list[dict[str, Any]] = Field(default_factory=list)


class RetractOutcome(BaseModel):
    status: str
    warnings: list[str] = Field(default_factory=list)
