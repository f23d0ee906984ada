from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from custodia.app.api.deps import get_db
from custodia.app.db.models.models_v1 import CostCenter

router = APIRouter(prefix="/cost-centers")


class CostCenterCreate(BaseModel):
    code: str = Field(min_length=1, max_length=32)
    name: str = Field(min_length=1, max_length=200)
    active: bool = True


@router.get("")
def list_cost_centers(active: bool | None = None, db: Session = Depends(get_db)):
    stmt = select(CostCenter).order_by(CostCenter.code)
    if active is not None:
        stmt = stmt.where(CostCenter.active == active)

    rows = db.execute(stmt).scalars().all()
    return [{"id": c.id, "code": c.code, "name": c.name, "active": c.active} for c in rows]


@router.post("", status_code=201)
def create_cost_center(payload: CostCenterCreate, db: Session = Depends(get_db)):
    code = payload.code.strip().upper()
    exists = db.execute(select(CostCenter).where(CostCenter.code == code)).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="Código de centro de custo já existe")

    c = CostCenter(code=code, name=payload.name, active=payload.active)
    db.add(c)
    db.commit()
    db.refresh(c)
    return {"id": c.id, "code": c.code, "name": c.name}
