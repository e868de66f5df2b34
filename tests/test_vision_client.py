import asyncio
import json

import httpx
import pytest

from app.services.vision_client import DocumentVisionClient, VisionServiceError, parse_vision_content

REPLY = {
    "tipo_documento": "fatura_cartao",
    "confianca": 0.92,
    "dados_extraidos": {
        "transacoes": [
            {"data": "15/01/2024", "descricao": " Mercado ", "valor": "-150,50", "tipo": "debito", "categoria_sugerida": "alimentacao"},
            {"data": "2024-01-16", "descricao": "Estorno", "valor": 20, "tipo": "credito"},
            "lixo",
        ],
        "banco": "Nubank",
    },
    "observacoes": ["Fatura de janeiro"],
}


def _client(handler):
    return DocumentVisionClient(
        api_key="sk-test",
        model="vision-test",
        base_url="https://vision.example/v1/",
        transport=httpx.MockTransport(handler),
    )


def test_parse_fenced_json_normalizes_transactions():
    content = "Aqui esta o resultado:\n```json\n" + json.dumps(REPLY) + "\n```"
    document = parse_vision_content(content)

    assert document.tipo_documento == "fatura_cartao"
    assert document.confianca == pytest.approx(0.92)
    assert document.dados_extraidos.banco == "Nubank"
    first, second = document.dados_extraidos.transacoes
    assert first.data == "2024-01-15"
    assert first.descricao == "Mercado"
    assert first.valor == pytest.approx(150.5)
    assert first.tipo == "debito"
    assert second.tipo == "credito"
    assert second.categoria_sugerida == "outros"


def test_parse_bare_json_object_and_clamps_confidence():
    document = parse_vision_content('resposta: {"tipo_documento": "outro", "confianca": 3}')
    assert document.confianca == 1.0
    assert document.dados_extraidos.transacoes == []


def test_unparseable_reply_falls_back():
    document = parse_vision_content("nao consegui ler a imagem")
    assert document.tipo_documento == "outro"
    assert document.confianca == pytest.approx(0.3)
    assert document.observacoes == ["Erro ao extrair dados estruturados da imagem"]

    missing_fields = parse_vision_content('{"dados_extraidos": {}}')
    assert missing_fields.confianca == pytest.approx(0.3)


def test_process_image_posts_chat_completion():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": json.dumps(REPLY)}}]})

    document = asyncio.run(_client(handler).process_image(b"\x89PNG", "image/png"))

    assert captured["url"] == "https://vision.example/v1/chat/completions"
    assert captured["auth"] == "Bearer sk-test"
    body = captured["body"]
    assert body["model"] == "vision-test"
    assert body["temperature"] == 0.1
    assert body["max_tokens"] == 4000
    image_part = body["messages"][1]["content"][1]
    assert image_part["image_url"]["url"].startswith("data:image/png;base64,")
    assert len(document.dados_extraidos.transacoes) == 2


def test_http_errors_become_vision_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, text="rate limited")

    with pytest.raises(VisionServiceError) as exc_info:
        asyncio.run(_client(handler).process_image(b"img"))
    assert "429" in str(exc_info.value)


def test_transport_failures_become_vision_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(VisionServiceError):
        asyncio.run(_client(handler).process_image(b"img"))


def test_empty_or_malformed_reply_is_an_error():
    def empty(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"message": {"content": ""}}]})

    def malformed(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"unexpected": True})

    with pytest.raises(VisionServiceError):
        asyncio.run(_client(empty).process_image(b"img"))
    with pytest.raises(VisionServiceError):
        asyncio.run(_client(malformed).process_image(b"img"))


def test_missing_key_and_stub_key():
    with pytest.raises(VisionServiceError):
        asyncio.run(DocumentVisionClient(api_key="").process_image(b"img"))

    document = asyncio.run(DocumentVisionClient(api_key="stub").process_image(b"img"))
    assert document.dados_extraidos.transacoes == []
    assert document.observacoes[0].startswith("[stub]")
