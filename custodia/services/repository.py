from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from custodia.app.db.models.models_v1 import Manifest, ManifestLine
from custodia.app.db.models.core_types import ManifestStatus, ManifestType
from custodia.services.errors import NotFound


def get_manifest(db: Session, manifest_id: int) -> Manifest:
    manifest = db.get(Manifest, manifest_id)
    if not manifest:
        raise NotFound(f"Romaneio {manifest_id} não encontrado")
    return manifest


def lock_manifest(db: Session, manifest_id: int) -> Manifest:
    """SELECT ... FOR UPDATE no cabeçalho; relê o estado mesmo se já carregado."""
    manifest = (
        db.execute(
            select(Manifest)
            .where(Manifest.id == manifest_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalar_one_or_none()
    )
    if not manifest:
        raise NotFound(f"Romaneio {manifest_id} não encontrado")
    return manifest


def get_line(db: Session, line_id: int) -> ManifestLine:
    line = db.get(ManifestLine, line_id)
    if not line:
        raise NotFound(f"Item de romaneio {line_id} não encontrado")
    return line


def lock_line(db: Session, line_id: int) -> ManifestLine:
    line = (
        db.execute(
            select(ManifestLine)
            .where(ManifestLine.id == line_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalar_one_or_none()
    )
    if not line:
        raise NotFound(f"Item de romaneio {line_id} não encontrado")
    return line


def child_returns(db: Session, manifest_id: int, statuses=None) -> list[Manifest]:
    stmt = (
        select(Manifest)
        .where(Manifest.parent_id == manifest_id)
        .where(Manifest.type == ManifestType.devolucao)
        .order_by(Manifest.id.asc())
    )
    if statuses is not None:
        stmt = stmt.where(Manifest.status.in_(set(statuses)))
    return db.execute(stmt).scalars().all()


def list_manifests(
    db: Session,
    *,
    manifest_type: ManifestType | None = None,
    status: ManifestStatus | None = None,
    parent_id: int | None = None,
) -> list[Manifest]:
    stmt = select(Manifest).order_by(Manifest.created_at.desc(), Manifest.id.desc())
    if manifest_type is not None:
        stmt = stmt.where(Manifest.type == manifest_type)
    if status is not None:
        stmt = stmt.where(Manifest.status == status)
    if parent_id is not None:
        stmt = stmt.where(Manifest.parent_id == parent_id)
    return db.execute(stmt).scalars().all()
