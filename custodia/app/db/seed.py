from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from custodia.app.db.session import SessionLocal
from custodia.app.db.models.models_v1 import CostCenter, User, utcnow

logger = logging.getLogger(__name__)

WAREHOUSE_CODE = "ALMOX"
ADMIN_NAME = "ADMIN"


def run_seed(db: Session | None = None) -> dict:
    """
    Dados mínimos: centro de custo do almoxarifado e o usuário ADMIN.

    Idempotente. O id do almoxarifado impresso aqui é o valor a usar em
    CUSTODIA_WAREHOUSE_COST_CENTER_ID.
    """
    own_session = db is None
    db = db or SessionLocal()
    try:
        # 1) Almoxarifado
        warehouse = db.scalar(select(CostCenter).where(CostCenter.code == WAREHOUSE_CODE))
        if not warehouse:
            warehouse = CostCenter(code=WAREHOUSE_CODE, name="Almoxarifado", active=True)
            db.add(warehouse)
            db.commit()

        # 2) Usuário administrador (sem credenciais: autenticação fica fora deste serviço)
        user = db.scalar(select(User).where(User.name == ADMIN_NAME))
        if not user:
            user = User(name=ADMIN_NAME, active=True, created_at=utcnow())
            db.add(user)
            db.commit()

        logger.info("Seed ok: almoxarifado=%s (id=%s), usuario=%s", warehouse.code, warehouse.id, user.name)
        return {"warehouse_cost_center_id": warehouse.id, "admin_user_id": user.id}
    finally:
        if own_session:
            db.close()


if __name__ == "__main__":
    from custodia.app.core.config import get_settings
    from custodia.app.core.logging import setup_logging

    setup_logging(get_settings().log_level)
    print(run_seed())
