"""
Aprovação de romaneios: pendente -> aprovado (ou devolvido, para devoluções).

Tudo numa transação só:
    1. trava o cabeçalho (FOR UPDATE) e confere que ainda está pendente
    2. trava os materiais em ordem crescente de id
    3. confere o saldo de TODAS as linhas de saída antes de escrever
    4. grava uma movimentação por linha (entrada ou saida)
    5. transfere a posse dos materiais para o centro de custo de destino
    6. devolução: marca as linhas da retirada de origem como devolvidas

Qualquer falha desfaz tudo; o romaneio continua pendente.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from custodia.app.db.models.models_v1 import Item, Manifest, StockLedgerEntry, utcnow
from custodia.app.db.models.core_types import (
    ManifestStatus,
    ManifestType,
    MovementKind,
    OWNERSHIP_TYPES,
    RETURNABLE_STATUSES,
)
from custodia.services import ledger
from custodia.services.audit import record_audit
from custodia.services.errors import (
    CustodyError,
    InsufficientStock,
    StaleManifestState,
    ValidationError,
)
from custodia.services.repository import lock_manifest
from custodia.services.returns import mark_returned

logger = logging.getLogger(__name__)

MOVEMENT_BY_TYPE = {
    ManifestType.entrada: MovementKind.entrada,
    ManifestType.retirada: MovementKind.saida,
    ManifestType.transferencia: MovementKind.saida,
    ManifestType.devolucao: MovementKind.entrada,
}

REASON_BY_TYPE = {
    ManifestType.entrada: "Entrada - Romaneio {number}",
    ManifestType.retirada: "Retirada - Romaneio {number}",
    ManifestType.transferencia: "Transferência - Romaneio {number}",
    ManifestType.devolucao: "Devolução - Romaneio {number}",
}


@dataclass
class ApprovalResult:
    manifest: Manifest
    status: ManifestStatus
    entries: list[StockLedgerEntry] = field(default_factory=list)


def _approved_status(manifest: Manifest) -> ManifestStatus:
    # devolução aprovada deixa de estar "em andamento"
    if manifest.type == ManifestType.devolucao:
        return ManifestStatus.devolvido
    return ManifestStatus.aprovado


def _target_owner(manifest: Manifest, warehouse_cost_center_id: int | None) -> int | None:
    if manifest.type not in OWNERSHIP_TYPES:
        return None
    if manifest.dest_cost_center_id is not None:
        return manifest.dest_cost_center_id
    if manifest.type == ManifestType.devolucao:
        return warehouse_cost_center_id
    return None


def _check_stock(manifest: Manifest, items: dict[int, Item]) -> None:
    """Saldo suficiente para todas as saídas, somando linhas do mesmo material."""
    if MOVEMENT_BY_TYPE[manifest.type] != MovementKind.saida:
        return

    requested: dict[int, int] = defaultdict(int)
    for ln in manifest.lines:
        requested[ln.item_id] += int(ln.quantity)

    problems = []
    for item_id, qty in requested.items():
        item = items[item_id]
        available = int(item.quantity_on_hand or 0)
        if qty > available:
            problems.append(
                {
                    "item_id": item_id,
                    "item_code": item.code,
                    "requested": qty,
                    "available": available,
                    "message": f"{item.code}: disponível {available}, solicitado {qty}",
                }
            )

    if problems:
        raise InsufficientStock("Quantidade insuficiente em estoque", details=problems)


def _check_return(db: Session, manifest: Manifest) -> list[int]:
    """Linhas da retirada de origem que esta devolução vai marcar."""
    parent = lock_manifest(db, manifest.parent_id) if manifest.parent_id else None
    if parent is None or parent.type != ManifestType.retirada:
        raise ValidationError("Devolução sem romaneio de retirada de origem")
    if parent.status not in RETURNABLE_STATUSES:
        raise StaleManifestState(
            f"Retirada {parent.number} não aceita devolução",
            current_status=parent.status.value,
        )

    originals = {ln.id: ln for ln in parent.lines}
    problems = []
    origin_ids = []
    for ln in manifest.lines:
        original = originals.get(ln.origin_line_id)
        if original is None:
            problems.append({"line_id": ln.id, "message": "Item não pertence à retirada de origem"})
        elif original.returned_at is not None:
            problems.append({"line_id": ln.id, "origin_line_id": original.id, "message": "Item já devolvido"})
        else:
            origin_ids.append(original.id)

    if problems:
        raise ValidationError("Itens da devolução inválidos", details=problems)
    return origin_ids


def approve_manifest(
    db: Session,
    manifest_id: int,
    *,
    actor_id: int | None = None,
    warehouse_cost_center_id: int | None = None,
) -> ApprovalResult:
    try:
        manifest = lock_manifest(db, manifest_id)
        if manifest.status != ManifestStatus.pendente:
            raise StaleManifestState(
                f"Romaneio {manifest.number} não está pendente",
                current_status=manifest.status.value,
            )
        if not manifest.lines:
            raise ValidationError("Romaneio sem itens não pode ser aprovado")

        origin_ids = _check_return(db, manifest) if manifest.type == ManifestType.devolucao else []

        items = ledger.lock_items(db, (ln.item_id for ln in manifest.lines))
        _check_stock(manifest, items)

        kind = MOVEMENT_BY_TYPE[manifest.type]
        reason = REASON_BY_TYPE[manifest.type].format(number=manifest.number)
        entries = [
            ledger.record_movement(
                db,
                item_id=ln.item_id,
                kind=kind,
                quantity=ln.quantity,
                reason=reason,
                manifest_id=manifest.id,
                actor_id=actor_id,
                notes=ln.notes,
            )
            for ln in manifest.lines
        ]

        owner = _target_owner(manifest, warehouse_cost_center_id)
        if owner is not None:
            for item in items.values():
                item.cost_center_id = owner

        now = utcnow()
        if origin_ids:
            mark_returned(db, origin_ids, now)

        manifest.status = _approved_status(manifest)
        manifest.approved_at = now
        manifest.approved_by = actor_id
        record_audit(
            db,
            action="approve",
            entity_type="romaneio",
            entity_id=manifest.id,
            actor_id=actor_id,
            meta={"number": manifest.number, "entries": len(entries)},
        )
        db.commit()
    except (CustodyError, SQLAlchemyError) as e:
        db.rollback()
        logger.warning("Aprovação do romaneio %s recusada: %s", manifest_id, e)
        raise

    logger.info("Romaneio %s aprovado (%s movimentações)", manifest.number, len(entries))
    return ApprovalResult(manifest=manifest, status=manifest.status, entries=entries)
