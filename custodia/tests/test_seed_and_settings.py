import json
import logging

from sqlalchemy import select

from custodia.app.core.config import get_settings
from custodia.app.core.logging import FIELDS, JsonFormatter
from custodia.app.db.models.models_v1 import CostCenter, User
from custodia.app.db.seed import run_seed


def test_seed_is_idempotent(db_session):
    first = run_seed(db_session)
    second = run_seed(db_session)

    assert first == second
    centers = db_session.execute(select(CostCenter).where(CostCenter.code == "ALMOX")).scalars().all()
    users = db_session.execute(select(User).where(User.name == "ADMIN")).scalars().all()
    assert [c.id for c in centers] == [first["warehouse_cost_center_id"]]
    assert [u.id for u in users] == [first["admin_user_id"]]


def test_settings_are_read_from_environment(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("CUSTODIA_WAREHOUSE_COST_CENTER_ID", "7")
    monkeypatch.setenv("CUSTODIA_LOG_LEVEL", "debug")
    monkeypatch.setenv("CUSTODIA_UNDO_RETURN_WINDOW_HOURS", "24")
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.database_url == "sqlite://"
        assert settings.warehouse_cost_center_id == 7
        assert settings.log_level == "DEBUG"
        assert settings.undo_return_window_hours == 24
    finally:
        get_settings.cache_clear()


def test_json_log_line():
    record = logging.LogRecord(
        name="custodia.services.approval",
        level=logging.WARNING,
        pathname=__file__,
        lineno=10,
        msg="Aprovação do romaneio %s recusada: %s",
        args=(12, "Quantidade insuficiente em estoque"),
        exc_info=None,
    )

    line = json.loads(JsonFormatter(FIELDS).format(record))

    assert line["level"] == "WARNING"
    assert line["logger"] == "custodia.services.approval"
    assert line["message"] == "Aprovação do romaneio 12 recusada: Quantidade insuficiente em estoque"
    assert "time" in line
