"""HTTP client for the vision-capable LLM that reads financial documents."""
from __future__ import annotations

import base64
import json
import logging
import re
import time
from typing import Any, List, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from app.core.config import STUB_API_KEYS, settings
from app.domain.smart_import.coercion import parse_date, parse_number

logger = logging.getLogger(__name__)

VISION_SYSTEM_PROMPT = (
    "Voce e um especialista em leitura de documentos financeiros brasileiros usando OCR e visao computacional. "
    "Extraia TODOS os dados financeiros visiveis na imagem (faturas de cartao, extratos bancarios, "
    "cupons fiscais e comprovantes PIX) e responda SOMENTE com JSON valido."
)
VISION_USER_PROMPT = (
    "Analise a imagem e responda com um JSON no formato:\n"
    '{"tipo_documento": "extrato_bancario|cupom_fiscal|comprovante_pix|fatura_cartao|outro", '
    '"confianca": 0.0-1.0, '
    '"dados_extraidos": {"transacoes": [{"data": "YYYY-MM-DD", "descricao": "...", "valor": 0.0, '
    '"tipo": "credito|debito", "categoria_sugerida": "..."}]}, '
    '"observacoes": ["..."], "sugestoes_acao": ["..."]}'
)

JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n(.*?)\n```", re.DOTALL)
JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


class VisionServiceError(RuntimeError):
    """The vision provider could not be reached or answered with an error."""


class VisionTransaction(BaseModel):
    data: Optional[str] = None
    descricao: str = ""
    valor: float = 0.0
    tipo: str = "debito"
    categoria_sugerida: str = "outros"


class VisionExtractedData(BaseModel):
    transacoes: List[VisionTransaction] = Field(default_factory=list)
    banco: Optional[str] = None
    estabelecimento: Optional[str] = None


class VisionDocument(BaseModel):
    """Structured result of reading one document image."""

    tipo_documento: str = "outro"
    confianca: float = 0.0
    dados_extraidos: VisionExtractedData = Field(default_factory=VisionExtractedData)
    observacoes: List[str] = Field(default_factory=list)
    sugestoes_acao: List[str] = Field(default_factory=list)


def _fallback_document() -> VisionDocument:
    return VisionDocument(
        tipo_documento="outro",
        confianca=0.3,
        observacoes=["Erro ao extrair dados estruturados da imagem"],
        sugestoes_acao=["Tente uma imagem com melhor qualidade ou iluminacao"],
    )


def _normalize_transaction(raw: Any) -> Optional[VisionTransaction]:
    if not isinstance(raw, dict):
        return None
    amount = parse_number(raw.get("valor"))
    return VisionTransaction(
        data=parse_date(raw.get("data")) or (str(raw.get("data") or "").strip() or None),
        descricao=str(raw.get("descricao") or "").strip(),
        valor=abs(amount) if amount is not None else 0.0,
        tipo="credito" if str(raw.get("tipo") or "").strip().lower() == "credito" else "debito",
        categoria_sugerida=str(raw.get("categoria_sugerida") or "").strip() or "outros",
    )


def parse_vision_content(content: str) -> VisionDocument:
    """Turn the model's reply into a VisionDocument, falling back on bad JSON."""
    match = JSON_FENCE_RE.search(content) or JSON_OBJECT_RE.search(content)
    payload = (match.group(1) if match and match.groups() else match.group(0)) if match else content

    try:
        data = json.loads(payload)
        if not isinstance(data, dict) or not data.get("tipo_documento") or data.get("confianca") is None:
            raise ValueError("Invalid data structure")

        extracted = data.get("dados_extraidos") or {}
        transactions = [
            normalized
            for normalized in (_normalize_transaction(item) for item in extracted.get("transacoes") or [])
            if normalized is not None
        ]
        return VisionDocument(
            tipo_documento=str(data["tipo_documento"]),
            confianca=max(0.0, min(1.0, float(data["confianca"]))),
            dados_extraidos=VisionExtractedData(
                transacoes=transactions,
                banco=extracted.get("banco"),
                estabelecimento=extracted.get("estabelecimento"),
            ),
            observacoes=[str(item) for item in data.get("observacoes") or []],
            sugestoes_acao=[str(item) for item in data.get("sugestoes_acao") or []],
        )
    except (ValueError, TypeError, ValidationError):
        logger.warning("Could not parse vision response; using fallback document", exc_info=True)
        return _fallback_document()


def _build_stub_document() -> VisionDocument:
    """Deterministic offline response for local testing environments."""
    return VisionDocument(
        tipo_documento="outro",
        confianca=0.5,
        observacoes=["[stub] Leitura de imagem desativada neste ambiente"],
    )


class DocumentVisionClient:
    """Read financial documents from images through the configured provider."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = settings.OPENAI_API_KEY if api_key is None else api_key
        self.model = model or settings.VISION_MODEL
        self.base_url = (base_url or settings.OPENAI_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.VISION_TIMEOUT_SECONDS
        self._transport = transport

    async def process_image(self, data: bytes, mime_type: str = "image/png") -> VisionDocument:
        """Send one image to the provider and return the structured document."""
        if not self.api_key:
            raise VisionServiceError("OPENAI_API_KEY não configurada para leitura de imagens.")

        if self.api_key.strip().lower() in STUB_API_KEYS:
            return _build_stub_document()

        started = time.perf_counter()
        content = await self._call_openai(data, mime_type)
        document = parse_vision_content(content)
        logger.info(
            "Vision read %s with %d transactions in %.0fms (model=%s)",
            document.tipo_documento,
            len(document.dados_extraidos.transacoes),
            (time.perf_counter() - started) * 1000,
            self.model,
        )
        return document

    async def _call_openai(self, data: bytes, mime_type: str) -> str:
        encoded = base64.b64encode(data).decode("ascii")
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": VISION_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": VISION_USER_PROMPT},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:{mime_type};base64,{encoded}", "detail": "high"},
                        },
                    ],
                },
            ],
            "max_tokens": 4000,
            "temperature": 0.1,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(f"{self.base_url}/chat/completions", json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise VisionServiceError(
                f"OpenAI API error: {exc.response.status_code} - {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise VisionServiceError(f"Falha ao contactar o serviço de visão: {exc}") from exc

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise VisionServiceError("Resposta inválida recebida do OpenAI.") from exc
        if not content:
            raise VisionServiceError("No response from OpenAI Vision API")
        return str(content)
