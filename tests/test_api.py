import json

import pytest
from fastapi.testclient import TestClient

from app.core.config import settings
from app.web.routes.api_import import get_vision_client
from main import app

USER = {"X-User-Id": "1"}
STATEMENT = (
    "Data;Descrição;Valor\n"
    "15/01/2024;Mercado;150,50\n"
    "16/01/2024;Padaria;12,00\n"
    "17/01/2024;Farmácia;abc\n"
).encode("utf-8")
FIXED = "Descrição;Valor;Tipo\nAluguel;1.500,00;Despesa\nSalário;5.000,00;Receita\n".encode("utf-8")


@pytest.fixture(scope="module")
def client():
    with TestClient(app) as test_client:
        yield test_client


def _upload(content=STATEMENT, name="extrato.csv", content_type="text/csv"):
    return {"file": (name, content, content_type)}


def test_health_reports_components(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["database"] == "ok"
    assert body["vision"] in {"disabled", "stub", "configured"}
    assert "X-Request-ID" in response.headers


def test_target_fields_endpoint(client):
    response = client.get("/api/smart-import/fields/patrimonio")
    assert response.status_code == 200
    fields = {item["field"]: item["required"] for item in response.json()["fields"]}
    assert fields["nome"] is True
    assert fields["valor_aquisicao"] is False

    assert client.get("/api/smart-import/fields/desconhecido").status_code == 422


def test_analyze_requires_user(client):
    response = client.post("/api/smart-import/analyze", files=_upload())
    assert response.status_code == 401


def test_analyze_csv(client):
    response = client.post("/api/smart-import/analyze", files=_upload(), headers=USER)
    assert response.status_code == 200
    body = response.json()
    assert body["file_type"] == "csv"
    assert body["row_count"] == 3
    assert body["suggested_import_type"] == "transacoes"
    assert [mapping["target_field"] for mapping in body["suggested_mappings"]] == ["data", "descricao", "valor"]


def test_analyze_rejects_unsupported_file(client):
    response = client.post(
        "/api/smart-import/analyze",
        files=_upload(b"hello", name="notas.txt", content_type="text/plain"),
        headers=USER,
    )
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "unsupported_file"


def test_analyze_reports_empty_file(client):
    response = client.post("/api/smart-import/analyze", files=_upload(b""), headers=USER)
    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "empty_file"


def test_prepare_returns_items_and_warnings(client):
    response = client.post("/api/smart-import/prepare", files=_upload(FIXED, name="fixas.csv"), headers=USER)
    assert response.status_code == 200
    body = response.json()
    assert body["import_type"] == "transacoes_fixas"
    assert body["missing_required"] == ["dia_mes"]
    assert body["warnings"] == ["Campo obrigatório não mapeado: Dia do Mês"]
    assert body["prepared"]["valid_items"] == 0
    assert body["prepared"]["items"][0]["validation_errors"] == ["Dia do mes obrigatorio"]


def test_prepare_rejects_bad_config(client):
    response = client.post(
        "/api/smart-import/prepare",
        files=_upload(),
        data={"config": json.dumps({"destination": {"destination_type": "nowhere"}})},
        headers=USER,
    )
    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "invalid_config"


def test_prepare_with_unknown_account_is_rejected(client):
    config = {"destination": {"destination_type": "conta", "account_id": 12345}}
    response = client.post(
        "/api/smart-import/prepare",
        files=_upload(),
        data={"config": json.dumps(config)},
        headers=USER,
    )
    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "invalid_destination"


def _reviewed(client, config, headers, **upload):
    response = client.post(
        "/api/smart-import/prepare",
        files=_upload(**upload),
        data={"config": json.dumps(config)},
        headers=headers,
    )
    assert response.status_code == 200
    return response.json()


def _execute(client, config, headers, **upload):
    return client.post(
        "/api/smart-import/execute",
        files=_upload(**upload),
        data={"config": json.dumps(config)},
        headers=headers,
    )


def test_execute_imports_selected_rows(client):
    headers = {"X-User-Id": "7"}
    config = {"destination": {"transaction_type": "despesa"}}
    reviewed = _reviewed(client, config, headers)

    response = _execute(client, {**config, "selected_ids": [0, 1, 2], "fingerprint": reviewed["fingerprint"]}, headers)
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["imported"] == 2
    assert body["skipped"] == 1
    assert body["summary"]["total_value"] == pytest.approx(162.5)
    assert body["summary"]["by_type"] == {"despesa": 162.5}


def test_execute_with_nothing_selected(client):
    reviewed = _reviewed(client, {}, USER)
    response = _execute(client, {"selected_ids": [], "fingerprint": reviewed["fingerprint"]}, USER)
    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "nothing_selected"


def test_execute_requires_the_reviewed_preview(client):
    missing = _execute(client, {"selected_ids": [0]}, USER)
    assert missing.status_code == 409
    assert missing.json()["detail"]["code"] == "stale_preview"

    other_destination = _reviewed(client, {"destination": {"transaction_type": "receita"}}, USER)
    mismatched = _execute(client, {"selected_ids": [0], "fingerprint": other_destination["fingerprint"]}, USER)
    assert mismatched.status_code == 409
    assert mismatched.json()["detail"]["code"] == "stale_preview"


def _receipt(vision_document, description, amount):
    return vision_document([{"data": "2024-01-15", "descricao": description, "valor": amount, "tipo": "debito"}])


def test_execute_rejects_image_rows_that_changed_after_review(client, fake_vision, vision_document):
    vision = fake_vision(
        documents=[_receipt(vision_document, "Mercado", 10.0), _receipt(vision_document, "Joalheria", 9999.0)]
    )
    app.dependency_overrides[get_vision_client] = lambda: vision
    headers = {"X-User-Id": "8"}
    image = {"content": b"\x89PNG\r\n\x1a\nfake", "name": "cupom.png", "content_type": "image/png"}
    try:
        reviewed = _reviewed(client, {}, headers, **image)
        assert [item["descricao"] for item in reviewed["prepared"]["items"]] == ["Mercado"]

        response = _execute(client, {"selected_ids": [0], "fingerprint": reviewed["fingerprint"]}, headers, **image)
    finally:
        app.dependency_overrides.pop(get_vision_client, None)

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "stale_preview"
    assert len(vision.calls) == 2


def test_execute_imports_image_rows_that_match_review(client, fake_vision, vision_document):
    vision = fake_vision(document=_receipt(vision_document, "Mercado", 10.0))
    app.dependency_overrides[get_vision_client] = lambda: vision
    headers = {"X-User-Id": "9"}
    image = {"content": b"\x89PNG\r\n\x1a\nfake", "name": "cupom.png", "content_type": "image/png"}
    try:
        reviewed = _reviewed(client, {}, headers, **image)
        response = _execute(client, {"selected_ids": [0], "fingerprint": reviewed["fingerprint"]}, headers, **image)
    finally:
        app.dependency_overrides.pop(get_vision_client, None)

    assert response.status_code == 200
    assert response.json()["imported"] == 1
    assert response.json()["summary"]["total_value"] == pytest.approx(10.0)


def test_import_endpoints_are_rate_limited(client, monkeypatch):
    monkeypatch.setattr(settings, "IMPORT_RATE_LIMIT_MAX", 2)
    headers = {"X-User-Id": "42"}
    statuses = [
        client.post("/api/smart-import/analyze", files=_upload(), headers=headers).status_code for _ in range(3)
    ]
    assert statuses == [200, 200, 429]
    other_user = client.post("/api/smart-import/analyze", files=_upload(), headers={"X-User-Id": "43"})
    assert other_user.status_code == 200
