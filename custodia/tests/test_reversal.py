import pytest
from sqlalchemy import select

from custodia.app.db.models.models_v1 import AuditLog, Item, Manifest, ManifestLine, StockLedgerEntry
from custodia.app.db.models.core_types import ManifestStatus
from custodia.app.schemas.manifest import ManifestCreate
from custodia.services import ledger, returns
from custodia.services.approval import approve_manifest
from custodia.services.errors import StaleManifestState, ValidationError
from custodia.services.manifests import cancel_manifest, create_manifest
from custodia.services.reversal import retract_manifest


def _snapshot(db, *items):
    rows = [db.get(Item, it.id) for it in items]
    return {it.code: (it.quantity_on_hand, it.cost_center_id) for it in rows}


def test_deleting_approved_transfer_restores_quantity_and_owner(db_session, catalog, make_manifest):
    """
    DADO
    - transferência aprovada de 5 furadeiras do ALMOX para a OFICINA

    ENTÃO
    - excluir devolve saldo e posse ao que eram antes
    - romaneio e linhas deixam de existir
    """
    before = _snapshot(db_session, catalog.drill)
    manifest = make_manifest("transferencia", [(catalog.drill, 5)], dest=catalog.oficina, approve=True)
    manifest_id = manifest.id
    line_ids = [ln.id for ln in manifest.lines]
    assert _snapshot(db_session, catalog.drill) == {"FUR-001": (45, catalog.oficina.id)}

    result = retract_manifest(db_session, manifest_id, warehouse_cost_center_id=catalog.almox.id)

    assert result.status == "excluido"
    assert result.warnings == []
    assert _snapshot(db_session, catalog.drill) == before
    assert db_session.get(Manifest, manifest_id) is None
    assert all(db_session.get(ManifestLine, i) is None for i in line_ids)
    assert not ledger.has_entries_for_manifest(db_session, manifest_id)
    assert ledger.verify_item_quantity(db_session, catalog.drill.id)


def test_approve_then_retract_round_trip(db_session, catalog, make_manifest):
    items = (catalog.drill, catalog.helmet, catalog.gloves)
    before = _snapshot(db_session, *items)

    manifest = make_manifest(lines=[(catalog.drill, 10), (catalog.helmet, 2), (catalog.gloves, 30)], approve=True)
    retract_manifest(db_session, manifest.id, actor_id=catalog.admin.id)

    assert _snapshot(db_session, *items) == before
    audit = db_session.execute(select(AuditLog).where(AuditLog.action == "retract")).scalars().all()
    assert len(audit) == 1


def test_pending_manifest_is_deleted_without_touching_stock(db_session, catalog, make_manifest):
    manifest = make_manifest(lines=[(catalog.drill, 10)])
    entries_before = db_session.execute(select(StockLedgerEntry)).scalars().all()

    result = retract_manifest(db_session, manifest.id)

    assert result.warnings == []
    assert db_session.execute(select(StockLedgerEntry)).scalars().all() == entries_before
    assert ledger.current_quantity(db_session, catalog.drill.id) == 50


def test_retract_with_later_movements_compensates(db_session, catalog, make_manifest):
    manifest = make_manifest(lines=[(catalog.drill, 10)], approve=True)
    make_manifest("entrada", [(catalog.drill, 5)], dest=catalog.almox, approve=True)

    result = retract_manifest(db_session, manifest.id, warehouse_cost_center_id=catalog.almox.id)

    assert result.warnings == []
    assert ledger.current_quantity(db_session, catalog.drill.id) == 55
    assert ledger.verify_item_quantity(db_session, catalog.drill.id)


def test_reversal_is_best_effort_per_item(db_session, catalog, make_manifest):
    """
    DADO
    - entrada de 10 luvas (30 -> 40)
    - retirada de 35 luvas depois dela (40 -> 5)

    QUANDO
    - a entrada é excluída

    ENTÃO
    - o estorno da luva falha (ficaria -5) e vira aviso
    - o romaneio é excluído mesmo assim, saldo intacto
    """
    entry = make_manifest("entrada", [(catalog.gloves, 10)], dest=catalog.almox, approve=True)
    entry_id = entry.id
    make_manifest(lines=[(catalog.gloves, 35)], approve=True)

    result = retract_manifest(db_session, entry_id)

    assert result.status == "excluido"
    assert len(result.warnings) == 1
    assert "falhou" in result.warnings[0]
    assert db_session.get(Manifest, entry_id) is None
    assert ledger.current_quantity(db_session, catalog.gloves.id) == 5
    assert ledger.verify_item_quantity(db_session, catalog.gloves.id)

    orphan = (
        db_session.execute(
            select(StockLedgerEntry).where(StockLedgerEntry.reason.like("Entrada - Romaneio%"))
        )
        .scalars()
        .one()
    )
    assert orphan.manifest_id is None


def test_owner_falls_back_to_configured_warehouse(db_session, catalog):
    payload = ManifestCreate(
        type="transferencia",
        dest_cost_center_id=catalog.oficina.id,
        lines=[{"item_id": catalog.helmet.id, "quantity": 2}],
    )
    manifest = create_manifest(db_session, payload).manifest
    approve_manifest(db_session, manifest.id)
    helmet = db_session.get(Item, catalog.helmet.id)
    helmet.cost_center_id = None
    db_session.commit()

    retract_manifest(db_session, manifest.id, warehouse_cost_center_id=catalog.almox.id)

    assert _snapshot(db_session, catalog.helmet) == {"CAP-001": (20, catalog.almox.id)}


def test_missing_origin_and_warehouse_becomes_warning(db_session, catalog):
    payload = ManifestCreate(
        type="transferencia",
        dest_cost_center_id=catalog.oficina.id,
        lines=[{"item_id": catalog.helmet.id, "quantity": 2}],
    )
    manifest = create_manifest(db_session, payload).manifest
    approve_manifest(db_session, manifest.id)

    result = retract_manifest(db_session, manifest.id, warehouse_cost_center_id=None)

    assert len(result.warnings) == 1
    assert ledger.current_quantity(db_session, catalog.helmet.id) == 20
    assert db_session.get(Item, catalog.helmet.id).cost_center_id == catalog.oficina.id


def test_withdrawal_with_returns_cannot_be_deleted(db_session, catalog, make_manifest):
    withdrawal = make_manifest(lines=[(catalog.drill, 10)], approve=True)
    returns.create_selective_return(db_session, withdrawal.id, [withdrawal.lines[0].id])

    with pytest.raises(ValidationError):
        retract_manifest(db_session, withdrawal.id)

    assert db_session.get(Manifest, withdrawal.id) is not None
    assert ledger.current_quantity(db_session, catalog.drill.id) == 40


def test_deleting_approved_return_reopens_withdrawal_lines(db_session, catalog, make_manifest):
    withdrawal = make_manifest(lines=[(catalog.drill, 10)], approve=True)
    line_id = withdrawal.lines[0].id
    ret = returns.create_selective_return(db_session, withdrawal.id, [line_id])
    approve_manifest(db_session, ret.id, warehouse_cost_center_id=catalog.almox.id)
    db_session.refresh(withdrawal)
    assert withdrawal.status == ManifestStatus.devolvido

    result = retract_manifest(db_session, ret.id, warehouse_cost_center_id=catalog.almox.id)

    assert result.warnings == []
    assert db_session.get(ManifestLine, line_id).returned_at is None
    db_session.refresh(withdrawal)
    assert withdrawal.status == ManifestStatus.aprovado
    # material volta para quem retirou
    assert _snapshot(db_session, catalog.drill) == {"FUR-001": (40, catalog.obra.id)}
    assert [c.line_id for c in returns.outstanding_lines(db_session, withdrawal.id)] == [line_id]

    # e a retirada volta a poder ser excluída
    retract_manifest(db_session, withdrawal.id, warehouse_cost_center_id=catalog.almox.id)
    assert _snapshot(db_session, catalog.drill) == {"FUR-001": (50, catalog.almox.id)}


def test_deleting_undone_return_keeps_later_return(db_session, catalog, make_manifest):
    """
    DADO
    - retirada de 10 furadeiras (50 -> 40), devolvida pela devolução R1
    - devolução desfeita e o item devolvido de novo pela devolução R2

    QUANDO
    - R1 é excluída

    ENTÃO
    - a linha da retirada continua devolvida (por R2)
    - saldo 50 e posse no almoxarifado
    - a retirada segue fechada: nenhuma terceira devolução é aceita
    """
    withdrawal = make_manifest(lines=[(catalog.drill, 10)], approve=True)
    line_id = withdrawal.lines[0].id
    first = returns.create_selective_return(db_session, withdrawal.id, [line_id])
    approve_manifest(db_session, first.id, warehouse_cost_center_id=catalog.almox.id)
    returns.undo_return(db_session, line_id)
    second = returns.create_selective_return(db_session, withdrawal.id, [line_id])
    approve_manifest(db_session, second.id, warehouse_cost_center_id=catalog.almox.id)

    result = retract_manifest(db_session, first.id, warehouse_cost_center_id=catalog.almox.id)

    assert result.warnings == []
    assert db_session.get(ManifestLine, line_id).returned_at is not None
    assert returns.returning_line(db_session, line_id).manifest_id == second.id
    assert _snapshot(db_session, catalog.drill) == {"FUR-001": (50, catalog.almox.id)}
    assert ledger.verify_item_quantity(db_session, catalog.drill.id)
    db_session.refresh(withdrawal)
    assert withdrawal.status == ManifestStatus.devolvido

    with pytest.raises(StaleManifestState):
        returns.create_selective_return(db_session, withdrawal.id, [line_id])


def test_deleting_undone_return_keeps_item_with_withdrawer(db_session, catalog, make_manifest):
    withdrawal = make_manifest(lines=[(catalog.drill, 10)], approve=True)
    line_id = withdrawal.lines[0].id
    ret = returns.create_selective_return(db_session, withdrawal.id, [line_id])
    approve_manifest(db_session, ret.id, warehouse_cost_center_id=catalog.almox.id)
    returns.undo_return(db_session, line_id)

    retract_manifest(db_session, ret.id, warehouse_cost_center_id=catalog.almox.id)

    assert _snapshot(db_session, catalog.drill) == {"FUR-001": (40, catalog.obra.id)}
    assert db_session.get(ManifestLine, line_id).returned_at is None
    assert ledger.verify_item_quantity(db_session, catalog.drill.id)


def test_withdrawal_with_only_cancelled_returns_can_be_deleted(db_session, catalog, make_manifest):
    withdrawal = make_manifest(lines=[(catalog.drill, 10)], approve=True)
    withdrawal_id = withdrawal.id
    ret = returns.create_selective_return(db_session, withdrawal_id, [withdrawal.lines[0].id])
    ret_id = ret.id
    cancel_manifest(db_session, ret_id)

    result = retract_manifest(db_session, withdrawal_id, warehouse_cost_center_id=catalog.almox.id)

    assert result.warnings == []
    assert db_session.get(Manifest, withdrawal_id) is None
    assert db_session.get(Manifest, ret_id) is None
    assert _snapshot(db_session, catalog.drill) == {"FUR-001": (50, catalog.almox.id)}
