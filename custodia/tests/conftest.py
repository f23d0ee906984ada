from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from custodia.app.api.deps import get_app_settings, get_db
from custodia.app.core.config import Settings
from custodia.app.db.base import Base
from custodia.app.db.models import models_v1  # noqa: F401  (registra as tabelas)
from custodia.app.db.models.models_v1 import CostCenter, Employee, Item, Supplier, User
from custodia.app.db.session import make_engine
from custodia.app.main import app
from custodia.app.schemas.manifest import ManifestCreate
from custodia.services import ledger
from custodia.services.approval import approve_manifest
from custodia.services.manifests import create_manifest


@pytest.fixture(scope="function")
def engine():
    """SQLite em memória por teste, pela mesma fábrica de engine da produção."""
    eng = make_engine("sqlite://")
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture(scope="function")
def db_session(engine) -> Session:
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def catalog(db_session):
    """
    Cadastros mínimos:
    - centros de custo ALMOX (almoxarifado), OBRA1 e OFICINA
    - colaboradora lotada na OBRA1, um fornecedor, o usuário ADMIN
    - três materiais no almoxarifado: furadeira 50, capacete 20, luva 30
    """
    almox = CostCenter(code="ALMOX", name="Almoxarifado")
    obra = CostCenter(code="OBRA1", name="Obra Centro")
    oficina = CostCenter(code="OFICINA", name="Oficina")
    admin = User(name="ADMIN")
    supplier = Supplier(name="Ferragens Silva", document="12345678000190")
    db_session.add_all([almox, obra, oficina, admin, supplier])
    db_session.flush()

    employee = Employee(name="Maria Souza", registration="1001", cost_center_id=obra.id)
    drill = Item(code="FUR-001", name="Furadeira de impacto", cost_center_id=almox.id)
    helmet = Item(code="CAP-001", name="Capacete de segurança", cost_center_id=almox.id)
    gloves = Item(code="LUV-001", name="Luva de vaqueta", unit="PAR", cost_center_id=almox.id)
    db_session.add_all([employee, drill, helmet, gloves])
    db_session.flush()

    for item, qty in ((drill, 50), (helmet, 20), (gloves, 30)):
        ledger.adjust_to(db_session, item_id=item.id, new_quantity=qty, reason="Saldo inicial")
    db_session.commit()

    return SimpleNamespace(
        almox=almox,
        obra=obra,
        oficina=oficina,
        admin=admin,
        supplier=supplier,
        employee=employee,
        drill=drill,
        helmet=helmet,
        gloves=gloves,
    )


@pytest.fixture
def make_manifest(db_session, catalog):
    """
    Fábrica de romaneios. `lines` = [(material, quantidade), ...].
    Padrão: retirada do ALMOX para a OBRA1, colaboradora Maria.
    """

    def _make(manifest_type="retirada", lines=None, *, origin=None, dest=None, approve=False, **extra):
        origin = origin if origin is not None else catalog.almox
        dest = dest if dest is not None else catalog.obra
        lines = lines if lines is not None else [(catalog.drill, 10)]

        payload = ManifestCreate(
            type=manifest_type,
            origin_cost_center_id=origin.id,
            dest_cost_center_id=dest.id,
            employee_id=extra.pop("employee_id", catalog.employee.id),
            lines=[{"item_id": item.id, "quantity": qty} for item, qty in lines],
            **extra,
        )
        manifest = create_manifest(db_session, payload).manifest
        if approve:
            approve_manifest(
                db_session,
                manifest.id,
                actor_id=catalog.admin.id,
                warehouse_cost_center_id=catalog.almox.id,
            )
            db_session.refresh(manifest)
        return manifest

    return _make


@pytest.fixture
def client(db_session, catalog):
    """
    TestClient usando a MESMA sessão do teste.

    O SQLite em memória é uma conexão única (StaticPool): duas sessões com
    transação aberta nela colidiriam no BEGIN.
    """

    settings = Settings(database_url="sqlite://", warehouse_cost_center_id=catalog.almox.id)

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_app_settings] = lambda: settings
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
