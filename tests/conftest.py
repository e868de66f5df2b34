import os
import tempfile

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="smart-import-logs-"))
os.environ.setdefault("OPENAI_API_KEY", "stub")
os.environ.setdefault("ENV", "test")

from contextlib import asynccontextmanager  # noqa: E402
from typing import List, Optional, Sequence  # noqa: E402

import pytest  # noqa: E402

from app.core.database import build_engine, build_session_factory, init_db  # noqa: E402
from app.core.rate_limit import rate_limiter  # noqa: E402
from app.domain.smart_import.context import LookupContext  # noqa: E402
from app.domain.smart_import.schemas import PreparedImportItem  # noqa: E402
from app.services.vision_client import (  # noqa: E402
    VisionDocument,
    VisionExtractedData,
    VisionServiceError,
    VisionTransaction,
)


class FakeStore:
    """In-memory ImportStore; items whose id is in ``fail_ids`` raise."""

    def __init__(self, context: Optional[LookupContext] = None, fail_ids=()) -> None:
        self.context = context or LookupContext.build()
        self.fail_ids = set(fail_ids)
        self.loads = 0
        self.transactions: List[PreparedImportItem] = []
        self.recurring: List[PreparedImportItem] = []
        self.assets: List[PreparedImportItem] = []

    async def load_lookup_context(self) -> LookupContext:
        self.loads += 1
        return self.context

    def _check(self, item: PreparedImportItem) -> None:
        if item.id in self.fail_ids:
            raise RuntimeError(f"insert rejected for row {item.id}")

    async def create_transaction(self, item: PreparedImportItem) -> None:
        self._check(item)
        self.transactions.append(item)

    async def create_recurring_transaction(self, item: PreparedImportItem) -> None:
        self._check(item)
        self.recurring.append(item)

    async def create_asset(self, item: PreparedImportItem) -> None:
        self._check(item)
        self.assets.append(item)


class FakeVisionClient:
    """Returns ``document``, or the next of ``documents`` on each call."""

    def __init__(
        self,
        document: Optional[VisionDocument] = None,
        error: Optional[str] = None,
        documents: Sequence[VisionDocument] = (),
    ) -> None:
        self.document = document
        self.error = error
        self.documents = list(documents)
        self.calls = []

    async def process_image(self, data: bytes, mime_type: str = "image/png") -> VisionDocument:
        self.calls.append(mime_type)
        if self.error:
            raise VisionServiceError(self.error)
        if self.documents:
            return self.documents.pop(0)
        return self.document


def make_vision_document(transactions, confianca=0.88, tipo_documento="fatura_cartao") -> VisionDocument:
    return VisionDocument(
        tipo_documento=tipo_documento,
        confianca=confianca,
        dados_extraidos=VisionExtractedData(transacoes=[VisionTransaction(**item) for item in transactions]),
        observacoes=["Documento legivel"],
    )


@pytest.fixture
def fake_store():
    return FakeStore


@pytest.fixture
def fake_vision():
    return FakeVisionClient


@pytest.fixture
def vision_document():
    return make_vision_document


@pytest.fixture
def sqlite_session():
    """Async context manager yielding a session on a fresh in-memory database."""

    @asynccontextmanager
    async def factory():
        engine = build_engine("sqlite+aiosqlite:///:memory:")
        await init_db(engine)
        sessions = build_session_factory(engine)
        try:
            async with sessions() as session:
                yield session
        finally:
            await engine.dispose()

    return factory


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    rate_limiter.reset()
    yield
    rate_limiter.reset()


def csv_bytes(lines, encoding="utf-8") -> bytes:
    return ("\n".join(lines) + "\n").encode(encoding)


@pytest.fixture
def make_csv():
    return csv_bytes
