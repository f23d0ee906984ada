"""
Livro de movimentações de estoque.

Única autoridade sobre Item.quantity_on_hand: toda variação de saldo passa
por aqui, dentro da transação de quem chama (flush, nunca commit).

Regra:
    quantity_after = quantity_before + quantity   (entrada, ajuste positivo)
    quantity_after = quantity_before - quantity   (saida, ajuste negativo)
    saldo atual    = quantity_after da entrada mais recente do item
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from custodia.app.db.models.models_v1 import Item, StockLedgerEntry, utcnow
from custodia.app.db.models.core_types import MovementKind
from custodia.services.errors import InsufficientStock, NotFound, ValidationError

logger = logging.getLogger(__name__)

HISTORY_BATCH_SIZE = 200


def lock_item(db: Session, item_id: int) -> Item:
    item = (
        db.execute(
            select(Item)
            .where(Item.id == item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalar_one_or_none()
    )
    if not item:
        raise NotFound(f"Material {item_id} não encontrado")
    return item


def lock_items(db: Session, item_ids) -> dict[int, Item]:
    """Trava os itens em ordem crescente de id (evita deadlock entre aprovações)."""
    ids = sorted({int(i) for i in item_ids})
    if not ids:
        return {}

    rows = (
        db.execute(
            select(Item)
            .where(Item.id.in_(ids))
            .order_by(Item.id.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalars()
        .all()
    )
    items = {int(it.id): it for it in rows}
    missing = [i for i in ids if i not in items]
    if missing:
        raise NotFound(
            "Material não encontrado",
            details=[{"item_id": i, "message": "Material não encontrado"} for i in missing],
        )
    return items


def record_movement(
    db: Session,
    *,
    item_id: int,
    kind: MovementKind,
    quantity: int,
    reason: str,
    manifest_id: int | None = None,
    actor_id: int | None = None,
    notes: str | None = None,
    decrease: bool = False,
) -> StockLedgerEntry:
    """
    Grava uma movimentação e atualiza o saldo do item, atomicamente.

    `decrease` só é considerado para `ajuste` (entrada sempre soma, saida
    sempre subtrai). Levanta InsufficientStock se o saldo ficaria negativo.
    """
    if quantity is None or int(quantity) <= 0:
        raise ValidationError(
            "Quantidade deve ser maior que zero",
            details=[{"item_id": item_id, "quantity": quantity}],
        )
    quantity = int(quantity)

    item = lock_item(db, item_id)
    before = int(item.quantity_on_hand or 0)

    outbound = kind == MovementKind.saida or (kind == MovementKind.ajuste and decrease)
    after = before - quantity if outbound else before + quantity

    if after < 0:
        raise InsufficientStock(
            f"Quantidade insuficiente em estoque. Disponível: {before}, Solicitado: {quantity}",
            details=[
                {
                    "item_id": item_id,
                    "item_code": item.code,
                    "requested": quantity,
                    "available": before,
                }
            ],
        )

    item.quantity_on_hand = after
    entry = StockLedgerEntry(
        item_id=item_id,
        kind=kind,
        quantity=quantity,
        quantity_before=before,
        quantity_after=after,
        manifest_id=manifest_id,
        actor_id=actor_id,
        reason=reason,
        notes=notes,
        happened_at=utcnow(),
    )
    db.add(entry)
    db.flush()
    return entry


def adjust_to(
    db: Session,
    *,
    item_id: int,
    new_quantity: int,
    reason: str,
    actor_id: int | None = None,
) -> StockLedgerEntry | None:
    """Inventário: leva o saldo a `new_quantity` com uma entrada `ajuste`."""
    if new_quantity < 0:
        raise ValidationError("Saldo de inventário não pode ser negativo")

    item = lock_item(db, item_id)
    diff = int(new_quantity) - int(item.quantity_on_hand or 0)
    if diff == 0:
        return None

    return record_movement(
        db,
        item_id=item_id,
        kind=MovementKind.ajuste,
        quantity=abs(diff),
        reason=reason,
        actor_id=actor_id,
        decrease=diff < 0,
    )


def latest_entry(db: Session, item_id: int) -> StockLedgerEntry | None:
    return (
        db.execute(
            select(StockLedgerEntry)
            .where(StockLedgerEntry.item_id == item_id)
            .order_by(StockLedgerEntry.id.desc())
            .limit(1)
        )
        .scalars()
        .first()
    )


def current_quantity(db: Session, item_id: int) -> int:
    item = db.get(Item, item_id)
    if not item:
        raise NotFound(f"Material {item_id} não encontrado")
    return int(item.quantity_on_hand or 0)


def verify_item_quantity(db: Session, item_id: int) -> bool:
    """Saldo do item == quantity_after da movimentação mais recente (sem movimentação: ok)."""
    entry = latest_entry(db, item_id)
    if entry is None:
        return True
    return current_quantity(db, item_id) == int(entry.quantity_after)


@dataclass(frozen=True)
class LedgerHistory:
    """
    Histórico de um item, do mais recente ao mais antigo.

    Iterável preguiçoso e reiniciável: cada iter() recomeça a leitura do
    início, em páginas (keyset por id), sem carregar tudo.
    """

    db: Session
    item_id: int | None = None
    manifest_id: int | None = None
    batch_size: int = HISTORY_BATCH_SIZE

    def __iter__(self) -> Iterator[StockLedgerEntry]:
        last_id = None
        while True:
            stmt = select(StockLedgerEntry).order_by(StockLedgerEntry.id.desc()).limit(self.batch_size)
            if self.item_id is not None:
                stmt = stmt.where(StockLedgerEntry.item_id == self.item_id)
            if self.manifest_id is not None:
                stmt = stmt.where(StockLedgerEntry.manifest_id == self.manifest_id)
            if last_id is not None:
                stmt = stmt.where(StockLedgerEntry.id < last_id)

            batch = self.db.execute(stmt).scalars().all()
            if not batch:
                return
            yield from batch
            if len(batch) < self.batch_size:
                return
            last_id = batch[-1].id


def history(db: Session, item_id: int, *, batch_size: int = HISTORY_BATCH_SIZE) -> LedgerHistory:
    return LedgerHistory(db=db, item_id=item_id, batch_size=batch_size)


def entries_for_manifest(db: Session, manifest_id: int) -> list[StockLedgerEntry]:
    return (
        db.execute(
            select(StockLedgerEntry)
            .where(StockLedgerEntry.manifest_id == manifest_id)
            .order_by(StockLedgerEntry.id.desc())
        )
        .scalars()
        .all()
    )


def has_entries_for_manifest(db: Session, manifest_id: int) -> bool:
    count = db.execute(
        select(func.count(StockLedgerEntry.id)).where(StockLedgerEntry.manifest_id == manifest_id)
    ).scalar_one()
    return int(count) > 0


def has_later_entries(db: Session, entry: StockLedgerEntry) -> bool:
    count = db.execute(
        select(func.count(StockLedgerEntry.id))
        .where(StockLedgerEntry.item_id == entry.item_id)
        .where(StockLedgerEntry.id > entry.id)
    ).scalar_one()
    return int(count) > 0


def revert_entry(db: Session, entry: StockLedgerEntry, *, actor_id: int | None = None) -> None:
    """
    Desfaz uma movimentação (exclusão de romaneio).

    - Entrada é a mais recente do item: restaura quantity_before e apaga a
      entrada (o histórico fica como se ela nunca tivesse existido).
    - Houve movimentações depois: aplica o delta inverso com um `ajuste`
      compensatório, para que o saldo continue igual ao da última entrada,
      e só então apaga a original.
    """
    item = lock_item(db, entry.item_id)

    if not has_later_entries(db, entry):
        if int(item.quantity_on_hand) != int(entry.quantity_after):
            logger.warning(
                "Saldo do material %s divergente do livro (saldo=%s, livro=%s)",
                item.id,
                item.quantity_on_hand,
                entry.quantity_after,
            )
        item.quantity_on_hand = int(entry.quantity_before)
        db.delete(entry)
        db.flush()
        return

    delta = entry.signed_quantity
    record_movement(
        db,
        item_id=entry.item_id,
        kind=MovementKind.ajuste,
        quantity=abs(delta),
        reason=f"Estorno da movimentação {entry.id}",
        actor_id=actor_id,
        decrease=delta > 0,
    )
    db.delete(entry)
    db.flush()
