from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from custodia.app.api.deps import get_db
from custodia.app.db.models.models_v1 import CostCenter, Employee

router = APIRouter(prefix="/employees")


class EmployeeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    registration: str | None = Field(default=None, max_length=32)
    cost_center_id: int | None = None
    active: bool = True


@router.get("")
def list_employees(cost_center_id: int | None = None, db: Session = Depends(get_db)):
    stmt = select(Employee).order_by(Employee.name)
    if cost_center_id is not None:
        stmt = stmt.where(Employee.cost_center_id == cost_center_id)

    rows = db.execute(stmt).scalars().all()
    return [
        {
            "id": e.id,
            "name": e.name,
            "registration": e.registration,
            "cost_center_id": e.cost_center_id,
            "active": e.active,
        }
        for e in rows
    ]


@router.post("", status_code=201)
def create_employee(payload: EmployeeCreate, db: Session = Depends(get_db)):
    if payload.registration:
        exists = db.execute(
            select(Employee).where(Employee.registration == payload.registration)
        ).scalar_one_or_none()
        if exists:
            raise HTTPException(status_code=409, detail="Matrícula já cadastrada")
    if payload.cost_center_id is not None and not db.get(CostCenter, payload.cost_center_id):
        raise HTTPException(status_code=404, detail="Centro de custo não encontrado")

    e = Employee(
        name=payload.name,
        registration=payload.registration,
        cost_center_id=payload.cost_center_id,
        active=payload.active,
    )
    db.add(e)
    db.commit()
    db.refresh(e)
    return {"id": e.id, "name": e.name}
