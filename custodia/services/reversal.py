"""
Exclusão de romaneios com estorno.

Romaneio nunca aprovado: apaga linhas e cabeçalho.
Romaneio aprovado: desfaz cada movimentação do livro (mais recente
primeiro), devolve a posse dos materiais à origem (ou ao almoxarifado
padrão) e só então apaga.

O estorno é por item e "melhor esforço": cada item roda no seu SAVEPOINT,
uma falha vira aviso e o próximo item é tentado. A exclusão em si sempre
acontece.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from custodia.app.db.models.models_v1 import Manifest
from custodia.app.db.models.core_types import ManifestStatus, ManifestType, OWNERSHIP_TYPES
from custodia.services import ledger
from custodia.services.audit import record_audit
from custodia.services.errors import CustodyError, ReversalPartialFailure, ValidationError
from custodia.services.repository import child_returns, lock_line, lock_manifest
from custodia.services.returns import returning_line

logger = logging.getLogger(__name__)

DELETED = "excluido"


@dataclass
class RetractResult:
    status: str
    number: str
    warnings: list[str] = field(default_factory=list)


def _warn(result: RetractResult, failure: ReversalPartialFailure) -> None:
    logger.warning("Romaneio %s: %s", result.number, failure.message)
    result.warnings.append(failure.message)


def _revert_ledger(db: Session, manifest: Manifest, result: RetractResult, actor_id: int | None) -> None:
    for entry in ledger.entries_for_manifest(db, manifest.id):
        item_id, entry_id = entry.item_id, entry.id
        try:
            with db.begin_nested():
                ledger.revert_entry(db, entry, actor_id=actor_id)
        except (CustodyError, SQLAlchemyError) as e:
            reason = e.message if isinstance(e, CustodyError) else str(e)
            _warn(
                result,
                ReversalPartialFailure(
                    f"Estorno da movimentação {entry_id} (material {item_id}) falhou: {reason}",
                    item_id=item_id,
                ),
            )


def _revert_ownership(
    db: Session,
    manifest: Manifest,
    lines,
    result: RetractResult,
    warehouse_cost_center_id: int | None,
) -> None:
    if manifest.type not in OWNERSHIP_TYPES:
        return

    owner = manifest.origin_cost_center_id or warehouse_cost_center_id
    item_ids = sorted({ln.item_id for ln in lines})
    if owner is None:
        for item_id in item_ids:
            _warn(
                result,
                ReversalPartialFailure(
                    f"Material {item_id}: sem centro de custo de origem nem almoxarifado padrão",
                    item_id=item_id,
                ),
            )
        return

    for item_id in item_ids:
        try:
            with db.begin_nested():
                item = ledger.lock_item(db, item_id)
                item.cost_center_id = owner
                db.flush()
        except (CustodyError, SQLAlchemyError) as e:
            _warn(
                result,
                ReversalPartialFailure(f"Posse do material {item_id} não revertida: {e}", item_id=item_id),
            )


def _active_return_lines(db: Session, manifest: Manifest) -> list:
    """
    Linhas desta devolução que ainda respondem pela linha da retirada.

    Ficam de fora as que tiveram a devolução desfeita (e talvez devolvidas
    de novo por outra devolução): excluir esta não pode reabri-las.
    """
    active = []
    for ln in manifest.lines:
        if ln.origin_line_id is None:
            continue
        origin = lock_line(db, ln.origin_line_id)
        current = returning_line(db, origin.id)
        if origin.return_state.is_returned and current is not None and current.manifest_id == manifest.id:
            active.append(ln)
    return active


def _reopen_withdrawal(db: Session, manifest: Manifest, lines) -> None:
    """Devolução excluída: as linhas da retirada voltam a ficar pendentes."""
    if not lines:
        return
    for ln in lines:
        lock_line(db, ln.origin_line_id).clear_return()
    db.flush()

    if manifest.parent_id is None:
        return
    parent = lock_manifest(db, manifest.parent_id)
    if parent.status == ManifestStatus.devolvido:
        parent.status = ManifestStatus.retirado if parent.picked_up_at is not None else ManifestStatus.aprovado


def _drop_cancelled_returns(db: Session, manifest: Manifest) -> None:
    """Retirada com devolução em uso não sai; devoluções canceladas vão junto com ela."""
    returns = child_returns(db, manifest.id)
    blocking = [r for r in returns if r.status != ManifestStatus.cancelado]
    if blocking:
        raise ValidationError(
            f"Retirada {manifest.number} possui devoluções; exclua as devoluções primeiro",
            details=[{"manifest_id": r.id, "number": r.number, "status": r.status.value} for r in blocking],
        )
    for ret in returns:
        ret.lines.clear()
        db.flush()
        db.delete(ret)
    db.flush()


def retract_manifest(
    db: Session,
    manifest_id: int,
    *,
    actor_id: int | None = None,
    warehouse_cost_center_id: int | None = None,
) -> RetractResult:
    try:
        manifest = lock_manifest(db, manifest_id)
        result = RetractResult(status=DELETED, number=manifest.number)

        if manifest.type == ManifestType.retirada:
            _drop_cancelled_returns(db, manifest)

        approved = manifest.approved_at is not None or ledger.has_entries_for_manifest(db, manifest.id)
        if approved:
            lines = list(manifest.lines)
            if manifest.type == ManifestType.devolucao:
                lines = _active_return_lines(db, manifest)

            ledger.lock_items(db, (ln.item_id for ln in manifest.lines))
            _revert_ledger(db, manifest, result, actor_id)
            _revert_ownership(db, manifest, lines, result, warehouse_cost_center_id)
            if manifest.type == ManifestType.devolucao:
                _reopen_withdrawal(db, manifest, lines)

        manifest.lines.clear()
        db.flush()
        db.delete(manifest)

        record_audit(
            db,
            action="retract",
            entity_type="romaneio",
            entity_id=manifest_id,
            actor_id=actor_id,
            meta={"number": result.number, "approved": approved, "warnings": result.warnings},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Romaneio %s excluído (%s aviso(s) de estorno)",
        result.number,
        len(result.warnings),
    )
    return result
