from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from custodia.app.api.deps import get_actor_id, get_app_settings, get_db
from custodia.app.core.config import Settings
from custodia.app.schemas.manifest import ManifestRead
from custodia.app.schemas.returns import (
    ReconciliationRead,
    ReturnCandidateRead,
    SelectiveReturnCreate,
    SelectiveReturnCreated,
    UndoReturnOutcome,
)
from custodia.services import returns as return_service

router = APIRouter()


@router.get("/manifests/{manifest_id}/outstanding-lines", response_model=list[ReturnCandidateRead])
def outstanding_lines(manifest_id: int, db: Session = Depends(get_db)):
    return return_service.outstanding_lines(db, manifest_id)


@router.get("/manifests/{manifest_id}/reconciliation", response_model=ReconciliationRead)
def reconciliation(manifest_id: int, db: Session = Depends(get_db)):
    return return_service.reconciliation_summary(db, manifest_id)


@router.post("/manifests/{manifest_id}/returns", response_model=SelectiveReturnCreated, status_code=201)
def create_selective_return(manifest_id: int, payload: SelectiveReturnCreate, db: Session = Depends(get_db)):
    manifest = return_service.create_selective_return(db, manifest_id, payload.line_ids, notes=payload.notes)
    return {"id": manifest.id, "number": manifest.number}


@router.get("/returns/available", response_model=list[ManifestRead])
def available_for_return(db: Session = Depends(get_db)):
    """Retiradas que ainda aceitam uma nova devolução."""
    return return_service.withdrawals_available_for_return(db)


@router.post("/manifest-lines/{line_id}/undo-return", response_model=UndoReturnOutcome)
def undo_return(
    line_id: int,
    db: Session = Depends(get_db),
    actor_id: int | None = Depends(get_actor_id),
    settings: Settings = Depends(get_app_settings),
):
    line = return_service.undo_return(
        db,
        line_id,
        actor_id=actor_id,
        window_hours=settings.undo_return_window_hours,
    )
    return {"status": "pendente", "line_id": line.id}
