from __future__ import annotations

from itertools import islice

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from custodia.app.api.deps import get_actor_id, get_db
from custodia.app.db.models.models_v1 import CostCenter, Item
from custodia.app.schemas.ledger import ItemStockRead, LedgerEntryRead
from custodia.services import ledger

router = APIRouter(prefix="/items")


class ItemCreate(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    unit: str = Field(default="UN", min_length=1, max_length=32)
    cost_center_id: int | None = None
    # saldo de abertura, lançado como ajuste no livro
    initial_quantity: int = Field(default=0, ge=0)
    active: bool = True


@router.get("")
def list_items(
    cost_center_id: int | None = None,
    active: bool | None = None,
    db: Session = Depends(get_db),
):
    stmt = select(Item).order_by(Item.code)
    if cost_center_id is not None:
        stmt = stmt.where(Item.cost_center_id == cost_center_id)
    if active is not None:
        stmt = stmt.where(Item.active == active)

    rows = db.execute(stmt).scalars().all()
    return [
        {
            "id": it.id,
            "code": it.code,
            "name": it.name,
            "unit": it.unit,
            "quantity_on_hand": it.quantity_on_hand,
            "cost_center_id": it.cost_center_id,
            "active": it.active,
        }
        for it in rows
    ]


@router.post("", status_code=201)
def create_item(
    payload: ItemCreate,
    db: Session = Depends(get_db),
    actor_id: int | None = Depends(get_actor_id),
):
    exists = db.execute(select(Item).where(Item.code == payload.code)).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="Código de material já existe")
    if payload.cost_center_id is not None and not db.get(CostCenter, payload.cost_center_id):
        raise HTTPException(status_code=404, detail="Centro de custo não encontrado")

    it = Item(
        code=payload.code,
        name=payload.name,
        unit=payload.unit,
        cost_center_id=payload.cost_center_id,
        quantity_on_hand=0,
        active=payload.active,
    )
    db.add(it)
    db.flush()

    if payload.initial_quantity:
        ledger.adjust_to(
            db,
            item_id=it.id,
            new_quantity=payload.initial_quantity,
            reason="Saldo inicial",
            actor_id=actor_id,
        )
    db.commit()
    db.refresh(it)

    return {"id": it.id, "code": it.code, "quantity_on_hand": it.quantity_on_hand}


@router.get("/{item_id}/stock", response_model=ItemStockRead)
def item_stock(item_id: int, db: Session = Depends(get_db)):
    """Saldo atual (somente leitura) e conferência com o livro."""
    it = db.get(Item, item_id)
    if not it:
        raise HTTPException(status_code=404, detail="Material não encontrado")
    return {
        "item_id": it.id,
        "code": it.code,
        "quantity_on_hand": it.quantity_on_hand,
        "cost_center_id": it.cost_center_id,
        "consistent": ledger.verify_item_quantity(db, it.id),
    }


@router.get("/{item_id}/ledger", response_model=list[LedgerEntryRead])
def item_ledger(
    item_id: int,
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    if not db.get(Item, item_id):
        raise HTTPException(status_code=404, detail="Material não encontrado")
    return list(islice(ledger.history(db, item_id), limit))
