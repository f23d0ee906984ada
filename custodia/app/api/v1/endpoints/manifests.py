from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from custodia.app.api.deps import get_actor_id, get_app_settings, get_db
from custodia.app.core.config import Settings
from custodia.app.db.models.core_types import ManifestStatus, ManifestType
from custodia.app.schemas.manifest import (
    ApprovalOutcome,
    ManifestCreate,
    ManifestCreated,
    ManifestRead,
    ManifestUpdate,
    RetractOutcome,
)
from custodia.services import manifests as manifest_service
from custodia.services.approval import approve_manifest
from custodia.services.repository import get_manifest, list_manifests
from custodia.services.reversal import retract_manifest

router = APIRouter(prefix="/manifests")


@router.post("", response_model=ManifestCreated, status_code=201)
def create_manifest(
    payload: ManifestCreate,
    db: Session = Depends(get_db),
    actor_id: int | None = Depends(get_actor_id),
    settings: Settings = Depends(get_app_settings),
):
    """
    Cria o romaneio (sempre pendente).

    Com status=aprovado a aprovação é tentada logo em seguida; se falhar, o
    romaneio fica pendente e o motivo volta em `warnings`.
    """
    result = manifest_service.create_manifest(
        db,
        payload,
        actor_id=actor_id,
        warehouse_cost_center_id=settings.warehouse_cost_center_id,
    )
    m = result.manifest
    return {"id": m.id, "number": m.number, "status": m.status, "warnings": result.warnings}


@router.get("", response_model=list[ManifestRead])
def list_all(
    type: ManifestType | None = None,
    status: ManifestStatus | None = None,
    parent_id: int | None = None,
    db: Session = Depends(get_db),
):
    return list_manifests(db, manifest_type=type, status=status, parent_id=parent_id)


@router.get("/{manifest_id}", response_model=ManifestRead)
def read_manifest(manifest_id: int, db: Session = Depends(get_db)):
    return get_manifest(db, manifest_id)


@router.put("/{manifest_id}", response_model=ManifestRead)
def update_manifest(manifest_id: int, payload: ManifestUpdate, db: Session = Depends(get_db)):
    return manifest_service.update_manifest(db, manifest_id, payload)


@router.post("/{manifest_id}/approve", response_model=ApprovalOutcome)
def approve(
    manifest_id: int,
    db: Session = Depends(get_db),
    actor_id: int | None = Depends(get_actor_id),
    settings: Settings = Depends(get_app_settings),
):
    result = approve_manifest(
        db,
        manifest_id,
        actor_id=actor_id,
        warehouse_cost_center_id=settings.warehouse_cost_center_id,
    )
    return {"status": result.status, "errors": []}


@router.post("/{manifest_id}/cancel", response_model=ManifestRead)
def cancel(manifest_id: int, db: Session = Depends(get_db), actor_id: int | None = Depends(get_actor_id)):
    return manifest_service.cancel_manifest(db, manifest_id, actor_id=actor_id)


@router.post("/{manifest_id}/pickup", response_model=ManifestRead)
def pickup(manifest_id: int, db: Session = Depends(get_db), actor_id: int | None = Depends(get_actor_id)):
    return manifest_service.confirm_pickup(db, manifest_id, actor_id=actor_id)


@router.delete("/{manifest_id}", response_model=RetractOutcome)
def retract(
    manifest_id: int,
    db: Session = Depends(get_db),
    actor_id: int | None = Depends(get_actor_id),
    settings: Settings = Depends(get_app_settings),
):
    result = retract_manifest(
        db,
        manifest_id,
        actor_id=actor_id,
        warehouse_cost_center_id=settings.warehouse_cost_center_id,
    )
    return {"status": result.status, "warnings": result.warnings}
