from __future__ import annotations

import re

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from custodia.app.api.deps import get_db
from custodia.app.db.models.models_v1 import Supplier

router = APIRouter(prefix="/suppliers")


class SupplierCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    # CNPJ/CPF, com ou sem pontuação
    document: str | None = Field(default=None, max_length=32)


@router.get("")
def list_suppliers(db: Session = Depends(get_db)):
    rows = db.execute(select(Supplier).order_by(Supplier.name)).scalars().all()
    return [{"id": s.id, "name": s.name, "document": s.document} for s in rows]


@router.post("", status_code=201)
def create_supplier(payload: SupplierCreate, db: Session = Depends(get_db)):
    exists = db.execute(select(Supplier).where(Supplier.name == payload.name)).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="Fornecedor já existe")

    document = re.sub(r"\D", "", payload.document) if payload.document else None
    s = Supplier(name=payload.name, document=document or None)
    db.add(s)
    db.commit()
    db.refresh(s)
    return {"id": s.id, "name": s.name}
