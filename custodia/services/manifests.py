"""
Romaneios: criação, edição, cancelamento e retirada física.

Um romaneio SEMPRE nasce pendente. A aprovação automática pedida na
criação é uma segunda chamada explícita ao processador de aprovação, depois
do commit da criação. Se ela falhar, o romaneio continua válido como
pendente e a falha volta como aviso.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import SimpleNamespace
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from custodia.app.db.models.models_v1 import (
    CostCenter,
    Employee,
    Item,
    Manifest,
    ManifestLine,
    Supplier,
    utcnow,
)
from custodia.app.db.models.core_types import (
    ManifestStatus,
    ManifestType,
    RETURNABLE_STATUSES,
)
from custodia.app.schemas.manifest import ManifestCreate, ManifestUpdate, ReturnLine
from custodia.services.audit import record_audit
from custodia.services.errors import CustodyError, StaleManifestState, ValidationError
from custodia.services.numbering import next_manifest_number
from custodia.services.repository import lock_manifest

logger = logging.getLogger(__name__)

NUMBER_ATTEMPTS = 3


@dataclass
class CreateResult:
    manifest: Manifest
    warnings: list[str] = field(default_factory=list)


# ---------- Validação ----------
def _check_reference(db: Session, model, ref_id: int | None, label: str, problems: list[dict]) -> None:
    if ref_id is not None and not db.get(model, ref_id):
        problems.append({"field": label, "id": ref_id, "message": f"{label} {ref_id} não encontrado"})


def _validate_parties(db: Session, manifest_type: ManifestType, data, problems: list[dict]) -> None:
    _check_reference(db, CostCenter, data.origin_cost_center_id, "centro_custo_origem", problems)
    _check_reference(db, CostCenter, data.dest_cost_center_id, "centro_custo_destino", problems)
    _check_reference(db, Employee, data.employee_id, "colaborador", problems)
    _check_reference(db, Supplier, data.supplier_id, "fornecedor", problems)

    if manifest_type == ManifestType.transferencia:
        if data.dest_cost_center_id is None:
            problems.append({"field": "centro_custo_destino", "message": "Transferência exige centro de custo de destino"})
        elif data.dest_cost_center_id == data.origin_cost_center_id:
            problems.append({"field": "centro_custo_destino", "message": "Origem e destino devem ser diferentes"})


def _validate_lines(db: Session, manifest_type: ManifestType, parent_id: int | None, lines) -> None:
    if not lines:
        raise ValidationError("O romaneio precisa de pelo menos um item")

    problems: list[dict] = []
    for idx, ln in enumerate(lines):
        where = {"line": idx, "item_id": ln.item_id}
        if ln.kind != manifest_type.value:
            problems.append({**where, "message": f"Linha do tipo '{ln.kind}' em romaneio '{manifest_type.value}'"})
            continue
        if ln.quantity is None or int(ln.quantity) <= 0:
            problems.append({**where, "message": "Quantidade deve ser maior que zero"})
        item = db.get(Item, ln.item_id)
        if not item:
            problems.append({**where, "message": f"Material {ln.item_id} não encontrado"})
        elif not item.active and manifest_type != ManifestType.devolucao:
            problems.append({**where, "message": f"Material {item.code} inativo"})

    if manifest_type == ManifestType.devolucao:
        problems.extend(_return_line_problems(db, parent_id, lines))

    if problems:
        raise ValidationError("Itens inválidos no romaneio", details=problems)


def _return_line_problems(db: Session, parent_id: int | None, lines) -> list[dict]:
    if parent_id is None:
        return [{"field": "romaneio_origem", "message": "Devolução exige o romaneio de retirada de origem"}]

    parent = db.get(Manifest, parent_id)
    if not parent or parent.type != ManifestType.retirada:
        return [{"field": "romaneio_origem", "id": parent_id, "message": "Romaneio de origem não é uma retirada"}]
    if parent.status not in RETURNABLE_STATUSES:
        return [{"field": "romaneio_origem", "id": parent_id, "message": f"Retirada em status '{parent.status.value}' não aceita devolução"}]

    problems = []
    originals = {ln.id: ln for ln in parent.lines}
    seen = set()
    for idx, ln in enumerate(lines):
        if not isinstance(ln, ReturnLine):
            continue
        where = {"line": idx, "origin_line_id": ln.origin_line_id}
        original = originals.get(ln.origin_line_id)
        if original is None:
            problems.append({**where, "message": "Item não pertence ao romaneio de origem"})
        elif ln.origin_line_id in seen:
            problems.append({**where, "message": "Item repetido na devolução"})
        elif original.returned_at is not None:
            problems.append({**where, "message": "Item já devolvido"})
        elif original.item_id != ln.item_id or original.quantity != ln.quantity:
            problems.append({**where, "message": "Material/quantidade diferente do item retirado"})
        seen.add(ln.origin_line_id)
    return problems


def _to_line(ln) -> ManifestLine:
    unit_value = Decimal(ln.unit_value) if ln.unit_value is not None else None
    return ManifestLine(
        item_id=ln.item_id,
        quantity=int(ln.quantity),
        unit_value=unit_value,
        total_value=(unit_value * int(ln.quantity)) if unit_value is not None else None,
        serial_number=getattr(ln, "serial_number", None),
        asset_tag=getattr(ln, "asset_tag", None),
        notes=ln.notes,
        origin_line_id=getattr(ln, "origin_line_id", None),
    )


# ---------- Criação ----------
def build_manifest(db: Session, payload: ManifestCreate) -> Manifest:
    """
    Valida e grava cabeçalho + linhas como pendente, SEM commit.

    Usado por create_manifest e pela devolução seletiva (que precisa manter
    a trava da retirada até o commit).
    """
    problems: list[dict] = []
    _validate_parties(db, payload.type, payload, problems)
    if payload.type == ManifestType.devolucao and payload.parent_id is None:
        problems.append({"field": "romaneio_origem", "message": "Devolução exige o romaneio de retirada de origem"})
    if payload.type != ManifestType.devolucao and payload.parent_id is not None:
        problems.append({"field": "romaneio_origem", "message": "Só devoluções referenciam um romaneio de origem"})
    if problems:
        raise ValidationError("Cabeçalho do romaneio inválido", details=problems)

    _validate_lines(db, payload.type, payload.parent_id, payload.lines)

    for attempt in range(1, NUMBER_ATTEMPTS + 1):
        number = next_manifest_number(
            db,
            manifest_type=payload.type,
            origin_cost_center_id=payload.origin_cost_center_id,
            dest_cost_center_id=payload.dest_cost_center_id,
            issue_date=payload.issue_date,
        )
        manifest = Manifest(
            number=number,
            type=payload.type,
            status=ManifestStatus.pendente,
            origin_cost_center_id=payload.origin_cost_center_id,
            dest_cost_center_id=payload.dest_cost_center_id,
            employee_id=payload.employee_id,
            supplier_id=payload.supplier_id,
            issue_date=payload.issue_date,
            parent_id=payload.parent_id,
            responsible=payload.responsible,
            notes=payload.notes,
            created_at=utcnow(),
            lines=[_to_line(ln) for ln in payload.lines],
        )
        try:
            with db.begin_nested():
                db.add(manifest)
                db.flush()
            return manifest
        except IntegrityError:
            # número já usado (legado ou corrida), tenta o próximo
            logger.warning("Número de romaneio %s já existe (tentativa %s)", number, attempt)

    raise ValidationError("Não foi possível gerar um número único para o romaneio")


def create_manifest(
    db: Session,
    payload: ManifestCreate,
    *,
    actor_id: int | None = None,
    warehouse_cost_center_id: int | None = None,
) -> CreateResult:
    try:
        manifest = build_manifest(db, payload)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Romaneio %s (%s) criado como pendente", manifest.number, manifest.type.value)
    result = CreateResult(manifest=manifest)

    if payload.status == ManifestStatus.aprovado:
        from custodia.services.approval import approve_manifest

        try:
            approve_manifest(
                db,
                manifest.id,
                actor_id=actor_id,
                warehouse_cost_center_id=warehouse_cost_center_id,
            )
        except (CustodyError, SQLAlchemyError) as e:
            reason = e.message if isinstance(e, CustodyError) else "erro ao gravar a aprovação"
            logger.warning("Aprovação automática do romaneio %s falhou: %s", manifest.number, e)
            result.warnings.append(f"Romaneio criado como pendente. {reason}")
        db.refresh(manifest)

    return result


# ---------- Edição / estado ----------
def update_manifest(db: Session, manifest_id: int, payload: ManifestUpdate) -> Manifest:
    try:
        manifest = lock_manifest(db, manifest_id)
        if manifest.status != ManifestStatus.pendente:
            raise StaleManifestState(
                "Apenas romaneios pendentes podem ser editados",
                current_status=manifest.status.value,
            )

        changes = payload.model_dump(exclude_unset=True, exclude={"lines"})
        merged = SimpleNamespace(
            origin_cost_center_id=changes.get("origin_cost_center_id", manifest.origin_cost_center_id),
            dest_cost_center_id=changes.get("dest_cost_center_id", manifest.dest_cost_center_id),
            employee_id=changes.get("employee_id", manifest.employee_id),
            supplier_id=changes.get("supplier_id", manifest.supplier_id),
        )
        if changes.get("issue_date", manifest.issue_date) is None:
            changes.pop("issue_date")
        problems: list[dict] = []
        _validate_parties(db, manifest.type, merged, problems)
        if problems:
            raise ValidationError("Cabeçalho do romaneio inválido", details=problems)

        for key, value in changes.items():
            setattr(manifest, key, value)

        if payload.lines is not None:
            _validate_lines(db, manifest.type, manifest.parent_id, payload.lines)
            manifest.lines.clear()
            db.flush()
            manifest.lines.extend(_to_line(ln) for ln in payload.lines)

        db.flush()
        db.commit()
        return manifest
    except Exception:
        db.rollback()
        raise


def cancel_manifest(db: Session, manifest_id: int, *, actor_id: int | None = None) -> Manifest:
    """pendente -> cancelado, sem efeito no estoque."""
    try:
        manifest = lock_manifest(db, manifest_id)
        if manifest.status != ManifestStatus.pendente:
            raise StaleManifestState(
                "Apenas romaneios pendentes podem ser cancelados; romaneios aprovados devem ser excluídos",
                current_status=manifest.status.value,
            )
        manifest.status = ManifestStatus.cancelado
        record_audit(db, action="cancel", entity_type="romaneio", entity_id=manifest.id, actor_id=actor_id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Romaneio %s cancelado", manifest.number)
    return manifest


def confirm_pickup(db: Session, manifest_id: int, *, actor_id: int | None = None) -> Manifest:
    """Retirada aprovada -> retirado (material saiu fisicamente do almoxarifado)."""
    try:
        manifest = lock_manifest(db, manifest_id)
        if manifest.type != ManifestType.retirada:
            raise ValidationError("Só romaneios de retirada podem ser marcados como retirados")
        if manifest.status != ManifestStatus.aprovado:
            raise StaleManifestState(
                "Apenas retiradas aprovadas podem ser marcadas como retiradas",
                current_status=manifest.status.value,
            )
        manifest.status = ManifestStatus.retirado
        manifest.picked_up_at = utcnow()
        record_audit(db, action="pickup", entity_type="romaneio", entity_id=manifest.id, actor_id=actor_id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return manifest


def find_by_number(db: Session, number: str) -> Manifest | None:
    return db.execute(select(Manifest).where(Manifest.number == number)).scalar_one_or_none()
