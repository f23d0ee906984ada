def _withdrawal_body(catalog, lines, **extra):
    body = {
        "type": "retirada",
        "origin_cost_center_id": catalog.almox.id,
        "dest_cost_center_id": catalog.obra.id,
        "employee_id": catalog.employee.id,
        "lines": [{"item_id": item.id, "quantity": qty} for item, qty in lines],
    }
    body.update(extra)
    return body


def test_health(client):
    r = client.get("/v1/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_create_read_and_approve_manifest(client, catalog):
    r = client.post("/v1/manifests", json=_withdrawal_body(catalog, [(catalog.drill, 10)]))
    assert r.status_code == 201
    created = r.json()
    assert created["status"] == "pendente"
    assert created["number"].startswith("ROM-AL-OBRA1-")
    assert created["warnings"] == []

    r = client.get(f"/v1/manifests/{created['id']}")
    assert r.status_code == 200
    assert r.json()["lines"][0]["quantity"] == 10

    r = client.post(f"/v1/manifests/{created['id']}/approve", headers={"X-Actor-Id": str(catalog.admin.id)})
    assert r.status_code == 200
    assert r.json() == {"status": "aprovado", "errors": []}

    r = client.get(f"/v1/items/{catalog.drill.id}/stock")
    assert r.json()["quantity_on_hand"] == 40
    assert r.json()["cost_center_id"] == catalog.obra.id
    assert r.json()["consistent"] is True

    r = client.get("/v1/manifests", params={"type": "retirada", "status": "aprovado"})
    assert [m["id"] for m in r.json()] == [created["id"]]


def test_create_with_auto_approval_failure_returns_warning(client, catalog):
    r = client.post("/v1/manifests", json=_withdrawal_body(catalog, [(catalog.drill, 99)], status="aprovado"))

    assert r.status_code == 201
    assert r.json()["status"] == "pendente"
    assert len(r.json()["warnings"]) == 1


def test_error_mapping(client, catalog):
    r = client.get("/v1/manifests/424242")
    assert r.status_code == 404
    assert r.json()["error"] == "not_found"

    r = client.post("/v1/manifests", json=_withdrawal_body(catalog, []))
    assert r.status_code == 422
    assert r.json()["error"] == "validation_error"

    manifest_id = client.post("/v1/manifests", json=_withdrawal_body(catalog, [(catalog.helmet, 21)])).json()["id"]
    r = client.post(f"/v1/manifests/{manifest_id}/approve")
    assert r.status_code == 409
    body = r.json()
    assert body["error"] == "insufficient_stock"
    assert body["errors"][0]["item_id"] == catalog.helmet.id
    assert body["errors"][0]["available"] == 20

    client.post(f"/v1/manifests/{manifest_id}/cancel")
    r = client.post(f"/v1/manifests/{manifest_id}/approve")
    assert r.status_code == 409
    assert r.json()["error"] == "stale_manifest_state"
    assert r.json()["status"] == "cancelado"


def test_selective_return_flow(client, catalog):
    created = client.post(
        "/v1/manifests",
        json=_withdrawal_body(catalog, [(catalog.drill, 10), (catalog.helmet, 5)], status="aprovado"),
    ).json()
    assert created["status"] == "aprovado"
    wid = created["id"]

    r = client.get(f"/v1/manifests/{wid}/outstanding-lines")
    lines = r.json()
    assert len(lines) == 2

    r = client.post(f"/v1/manifests/{wid}/returns", json={"line_ids": [lines[0]["line_id"]]})
    assert r.status_code == 201
    ret = r.json()
    assert ret["number"].startswith("RDV-AL-OBRA1-")

    r = client.post(f"/v1/manifests/{wid}/returns", json={"line_ids": [lines[1]["line_id"]]})
    assert r.status_code == 409
    assert r.json()["error"] == "duplicate_return_in_flight"

    assert client.get("/v1/returns/available").json() == []

    r = client.post(f"/v1/manifests/{ret['id']}/approve")
    assert r.json()["status"] == "devolvido"

    r = client.get(f"/v1/manifests/{wid}/reconciliation")
    summary = r.json()
    assert summary["status"] == "parcial"
    assert summary["returned_percent"] == 50.0
    assert [m["id"] for m in client.get("/v1/returns/available").json()] == [wid]

    r = client.post(f"/v1/manifest-lines/{lines[0]['line_id']}/undo-return")
    assert r.status_code == 200
    assert r.json() == {"status": "pendente", "line_id": lines[0]["line_id"]}
    assert client.get(f"/v1/manifests/{wid}/reconciliation").json()["status"] == "pendente"


def test_delete_manifest(client, catalog):
    body = {
        "type": "transferencia",
        "status": "aprovado",
        "origin_cost_center_id": catalog.almox.id,
        "dest_cost_center_id": catalog.oficina.id,
        "lines": [{"item_id": catalog.gloves.id, "quantity": 12, "asset_tag": "PAT-77"}],
    }
    mid = client.post("/v1/manifests", json=body).json()["id"]
    assert client.get(f"/v1/items/{catalog.gloves.id}/stock").json()["quantity_on_hand"] == 18

    r = client.delete(f"/v1/manifests/{mid}")
    assert r.status_code == 200
    assert r.json() == {"status": "excluido", "warnings": []}
    assert client.get(f"/v1/manifests/{mid}").status_code == 404

    stock = client.get(f"/v1/items/{catalog.gloves.id}/stock").json()
    assert stock["quantity_on_hand"] == 30
    assert stock["cost_center_id"] == catalog.almox.id


def test_item_ledger_endpoint(client, catalog):
    client.post("/v1/manifests", json=_withdrawal_body(catalog, [(catalog.drill, 3)], status="aprovado"))

    r = client.get(f"/v1/items/{catalog.drill.id}/ledger", params={"limit": 10})
    entries = r.json()
    assert [e["kind"] for e in entries] == ["saida", "ajuste"]
    assert entries[0]["quantity_after"] == 47

    assert client.get("/v1/items/999999/ledger").status_code == 404


def test_catalog_endpoints(client, catalog):
    r = client.post("/v1/cost-centers", json={"code": "obra2", "name": "Obra Norte"})
    assert r.status_code == 201
    cc_id = r.json()["id"]
    assert r.json()["code"] == "OBRA2"
    assert client.post("/v1/cost-centers", json={"code": "OBRA2", "name": "Outra"}).status_code == 409

    r = client.post(
        "/v1/items",
        json={"code": "ESC-010", "name": "Escada 7 degraus", "cost_center_id": cc_id, "initial_quantity": 4},
    )
    assert r.status_code == 201
    assert r.json()["quantity_on_hand"] == 4
    assert client.post("/v1/items", json={"code": "ESC-010", "name": "Dup"}).status_code == 409

    items = client.get("/v1/items", params={"cost_center_id": cc_id}).json()
    assert [i["code"] for i in items] == ["ESC-010"]

    r = client.post("/v1/employees", json={"name": "João Lima", "registration": "2002", "cost_center_id": cc_id})
    assert r.status_code == 201
    assert client.post("/v1/employees", json={"name": "Outro", "registration": "2002"}).status_code == 409
    assert len(client.get("/v1/employees").json()) == 2

    r = client.post("/v1/suppliers", json={"name": "Elétrica Norte", "document": "12.345.678/0001-90"})
    assert r.status_code == 201
    names = {s["name"]: s["document"] for s in client.get("/v1/suppliers").json()}
    assert names["Elétrica Norte"] == "12345678000190"

    assert [c["code"] for c in client.get("/v1/cost-centers").json()] == ["ALMOX", "OBRA1", "OBRA2", "OFICINA"]
