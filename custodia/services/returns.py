"""
Conciliação de devoluções contra romaneios de retirada.

Uma linha da retirada é devolvida inteira ou não é devolvida (não há
devolução parcial de quantidade por linha). Regras principais:

- no máximo UMA devolução em andamento (pendente/aprovado) por retirada;
- as linhas só são marcadas como devolvidas quando a devolução é aprovada
  (mark_returned, chamado pela aprovação, idempotente);
- "desfazer" uma devolução só é permitido se o material não voltou a ser
  movimentado depois dela.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import and_, exists, select
from sqlalchemy.orm import Session, aliased

from custodia.app.db.models.models_v1 import Manifest, ManifestLine, StockLedgerEntry, utcnow
from custodia.app.db.models.core_types import (
    IN_FLIGHT_RETURN_STATUSES,
    ManifestStatus,
    ManifestType,
    MovementKind,
    ReconciliationStatus,
    RETURNABLE_STATUSES,
)
from custodia.app.schemas.manifest import ManifestCreate, ReturnLine
from custodia.services import ledger
from custodia.services.audit import record_audit
from custodia.services.errors import (
    DuplicateReturnInFlight,
    StaleManifestState,
    ValidationError,
)
from custodia.services.manifests import build_manifest
from custodia.services.repository import child_returns, get_manifest, lock_line, lock_manifest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReturnCandidate:
    line_id: int
    item_id: int
    quantity: int
    unit_value: Decimal | None
    serial_number: str | None
    asset_tag: str | None
    notes: str | None


@dataclass(frozen=True)
class ReconciliationSummary:
    status: ReconciliationStatus
    total_lines: int
    returned_lines: int
    outstanding_lines: int
    returned_percent: float
    total_quantity: int
    returned_quantity: int
    has_pending_return: bool


def _withdrawal(db: Session, manifest_id: int) -> Manifest:
    manifest = get_manifest(db, manifest_id)
    if manifest.type != ManifestType.retirada:
        raise ValidationError(f"Romaneio {manifest.number} não é uma retirada")
    return manifest


# ---------- Consultas ----------
def outstanding_lines(db: Session, withdrawal_id: int) -> list[ReturnCandidate]:
    manifest = _withdrawal(db, withdrawal_id)
    return [
        ReturnCandidate(
            line_id=ln.id,
            item_id=ln.item_id,
            quantity=int(ln.quantity),
            unit_value=ln.unit_value,
            serial_number=ln.serial_number,
            asset_tag=ln.asset_tag,
            notes=ln.notes,
        )
        for ln in manifest.lines
        if not ln.return_state.is_returned
    ]


def open_return(db: Session, withdrawal_id: int) -> Manifest | None:
    pending = child_returns(db, withdrawal_id, statuses=IN_FLIGHT_RETURN_STATUSES)
    return pending[0] if pending else None


def has_pending_return(db: Session, withdrawal_id: int) -> bool:
    return open_return(db, withdrawal_id) is not None


def reconciliation_status(db: Session, withdrawal_id: int) -> ReconciliationStatus:
    manifest = _withdrawal(db, withdrawal_id)
    total = len(manifest.lines)
    returned = sum(1 for ln in manifest.lines if ln.return_state.is_returned)

    if returned == 0:
        return ReconciliationStatus.pendente
    if returned == total:
        return ReconciliationStatus.totalmente_devolvido
    return ReconciliationStatus.parcial


def reconciliation_summary(db: Session, withdrawal_id: int) -> ReconciliationSummary:
    manifest = _withdrawal(db, withdrawal_id)
    lines = manifest.lines
    returned = [ln for ln in lines if ln.return_state.is_returned]

    total_lines = len(lines)
    percent = round(len(returned) * 100.0 / total_lines, 1) if total_lines else 0.0

    return ReconciliationSummary(
        status=reconciliation_status(db, withdrawal_id),
        total_lines=total_lines,
        returned_lines=len(returned),
        outstanding_lines=total_lines - len(returned),
        returned_percent=percent,
        total_quantity=sum(int(ln.quantity) for ln in lines),
        returned_quantity=sum(int(ln.quantity) for ln in returned),
        has_pending_return=has_pending_return(db, withdrawal_id),
    )


def withdrawals_available_for_return(db: Session) -> list[Manifest]:
    """Retiradas aprovadas/retiradas com itens pendentes e sem devolução em andamento."""
    child = aliased(Manifest)
    stmt = (
        select(Manifest)
        .where(Manifest.type == ManifestType.retirada)
        .where(Manifest.status.in_(RETURNABLE_STATUSES))
        .where(
            exists().where(
                and_(ManifestLine.manifest_id == Manifest.id, ManifestLine.returned_at.is_(None))
            )
        )
        .where(
            ~exists().where(
                and_(
                    child.parent_id == Manifest.id,
                    child.type == ManifestType.devolucao,
                    child.status.in_(IN_FLIGHT_RETURN_STATUSES),
                )
            )
        )
        .order_by(Manifest.issue_date.desc(), Manifest.id.desc())
    )
    return db.execute(stmt).scalars().all()


# ---------- Devolução seletiva ----------
def create_selective_return(
    db: Session,
    withdrawal_id: int,
    line_ids: list[int],
    *,
    notes: str | None = None,
) -> Manifest:
    """Cria (pendente) a devolução das linhas escolhidas de uma retirada."""
    try:
        withdrawal = lock_manifest(db, withdrawal_id)
        if withdrawal.type != ManifestType.retirada:
            raise ValidationError(f"Romaneio {withdrawal.number} não é uma retirada")
        if withdrawal.status not in RETURNABLE_STATUSES:
            raise StaleManifestState(
                f"Retirada {withdrawal.number} não aceita devolução",
                current_status=withdrawal.status.value,
            )

        selected = [int(i) for i in line_ids or []]
        if not selected:
            raise ValidationError("Selecione pelo menos um item para devolver")
        if len(set(selected)) != len(selected):
            raise ValidationError("Item selecionado mais de uma vez")

        outstanding = {ln.id: ln for ln in withdrawal.lines if not ln.return_state.is_returned}
        invalid = [i for i in selected if i not in outstanding]
        if invalid:
            raise ValidationError(
                "Itens não disponíveis para devolução",
                details=[{"line_id": i, "message": "Item não pendente nesta retirada"} for i in invalid],
            )

        pending = open_return(db, withdrawal.id)
        if pending is not None:
            raise DuplicateReturnInFlight(
                f"Já existe a devolução {pending.number} em andamento para a retirada {withdrawal.number}",
                open_return_id=pending.id,
            )

        payload = ManifestCreate(
            type=ManifestType.devolucao,
            # o material volta de onde saiu
            origin_cost_center_id=withdrawal.dest_cost_center_id,
            dest_cost_center_id=withdrawal.origin_cost_center_id,
            employee_id=withdrawal.employee_id,
            parent_id=withdrawal.id,
            responsible=withdrawal.responsible,
            notes=notes or f"Devolução parcial do romaneio {withdrawal.number}",
            lines=[
                ReturnLine(
                    item_id=outstanding[i].item_id,
                    quantity=outstanding[i].quantity,
                    unit_value=outstanding[i].unit_value,
                    serial_number=outstanding[i].serial_number,
                    asset_tag=outstanding[i].asset_tag,
                    notes=outstanding[i].notes,
                    origin_line_id=i,
                )
                for i in selected
            ],
        )
        manifest = build_manifest(db, payload)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Devolução %s criada para %s item(ns) da retirada %s",
        manifest.number,
        len(selected),
        withdrawal.number,
    )
    return manifest


def mark_returned(db: Session, line_ids, at: datetime) -> int:
    """
    Marca linhas de retirada como devolvidas em `at`.

    Idempotente: linha já devolvida fica como está. Não faz commit (roda
    dentro da aprovação da devolução). Retirada com todas as linhas
    devolvidas passa para `devolvido`. Retorna quantas linhas mudaram.
    """
    changed = 0
    parents = set()
    for line_id in sorted({int(i) for i in line_ids}):
        line = lock_line(db, line_id)
        if line.mark_returned(at):
            changed += 1
        parents.add(line.manifest_id)
    db.flush()

    for parent_id in parents:
        parent = db.get(Manifest, parent_id)
        if parent.type != ManifestType.retirada:
            continue
        if all(ln.return_state.is_returned for ln in parent.lines):
            parent.status = ManifestStatus.devolvido

    db.flush()
    return changed


# ---------- Desfazer devolução ----------
def returning_line(db: Session, line_id: int) -> ManifestLine | None:
    """Linha da devolução aprovada mais recente que responde pela linha de retirada `line_id`."""
    return (
        db.execute(
            select(ManifestLine)
            .join(Manifest, Manifest.id == ManifestLine.manifest_id)
            .where(ManifestLine.origin_line_id == line_id)
            .where(Manifest.type == ManifestType.devolucao)
            .where(Manifest.status == ManifestStatus.devolvido)
            .order_by(ManifestLine.id.desc())
            .limit(1)
        )
        .scalars()
        .first()
    )


def _inbound_entry(db: Session, return_id: int, item_id: int) -> StockLedgerEntry | None:
    return (
        db.execute(
            select(StockLedgerEntry)
            .where(StockLedgerEntry.manifest_id == return_id)
            .where(StockLedgerEntry.item_id == item_id)
            .where(StockLedgerEntry.kind == MovementKind.entrada)
            .order_by(StockLedgerEntry.id.desc())
            .limit(1)
        )
        .scalars()
        .first()
    )


def _consumed_downstream(db: Session, entry: StockLedgerEntry) -> bool:
    """Outro romaneio (ou ajuste) movimentou o material depois da devolução."""
    later = db.execute(
        select(StockLedgerEntry.id)
        .where(StockLedgerEntry.item_id == entry.item_id)
        .where(StockLedgerEntry.id > entry.id)
        .where(
            (StockLedgerEntry.manifest_id.is_(None))
            | (StockLedgerEntry.manifest_id != entry.manifest_id)
        )
        .limit(1)
    ).first()
    return later is not None


def _as_utc(value: datetime) -> datetime:
    # SQLite devolve datetime sem fuso
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def undo_return(
    db: Session,
    line_id: int,
    *,
    actor_id: int | None = None,
    window_hours: int = 0,
) -> ManifestLine:
    """
    Desfaz a devolução de uma linha de retirada ("desfazer").

    Lança uma saída compensatória no livro (o material volta para quem
    retirou), devolve a posse ao destino da retirada e limpa returned_at.
    Recusado se o material já foi movimentado depois da devolução ou, com
    `window_hours` > 0, se a devolução é mais antiga que a janela.
    """
    try:
        line = lock_line(db, line_id)
        withdrawal = lock_manifest(db, line.manifest_id)
        if withdrawal.type != ManifestType.retirada:
            raise ValidationError("Só itens de retirada podem ter a devolução desfeita")

        state = line.return_state
        if not state.is_returned:
            raise ValidationError("Item não está devolvido", details=[{"line_id": line.id}])

        if window_hours and utcnow() - _as_utc(state.at) > timedelta(hours=window_hours):
            raise ValidationError(
                f"Devolução com mais de {window_hours}h não pode ser desfeita",
                details=[{"line_id": line.id, "returned_at": state.at.isoformat()}],
            )

        return_line = returning_line(db, line.id)
        if return_line is None:
            raise ValidationError("Devolução aprovada deste item não encontrada", details=[{"line_id": line.id}])
        return_manifest = return_line.manifest

        entry = _inbound_entry(db, return_manifest.id, line.item_id)
        if entry is not None and _consumed_downstream(db, entry):
            raise ValidationError(
                "Material já foi movimentado depois da devolução",
                details=[{"line_id": line.id, "item_id": line.item_id}],
            )

        ledger.record_movement(
            db,
            item_id=line.item_id,
            kind=MovementKind.saida,
            quantity=line.quantity,
            reason=f"Estorno de devolução - Romaneio {return_manifest.number}",
            manifest_id=return_manifest.id,
            actor_id=actor_id,
        )

        if withdrawal.dest_cost_center_id is not None:
            item = ledger.lock_item(db, line.item_id)
            item.cost_center_id = withdrawal.dest_cost_center_id

        line.clear_return()
        if withdrawal.status == ManifestStatus.devolvido:
            withdrawal.status = (
                ManifestStatus.retirado if withdrawal.picked_up_at is not None else ManifestStatus.aprovado
            )

        record_audit(
            db,
            action="undo_return",
            entity_type="romaneio_item",
            entity_id=line.id,
            actor_id=actor_id,
            meta={"romaneio": withdrawal.number, "devolucao": return_manifest.number},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Devolução do item %s da retirada %s desfeita", line.id, withdrawal.number)
    return line
