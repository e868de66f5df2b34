"""Turn uploaded files into a uniform header + rows table."""
from __future__ import annotations

import csv
import io
import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

import numpy as np
import pandas as pd
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from app.core.config import settings
from app.domain.smart_import.coercion import is_blank, stringify
from app.domain.smart_import.errors import ExtractionError, UnsupportedFileError
from app.domain.smart_import.file_types import SUPPORTED_FORMATS_MESSAGE, image_mime_type
from app.domain.smart_import.schemas import FileType
from app.services.vision_client import DocumentVisionClient, VisionDocument, VisionServiceError

logger = logging.getLogger(__name__)

IMAGE_HEADERS = ["data", "descricao", "valor", "tipo", "categoria"]
PDF_NO_TEXT_OBSERVATION = "O PDF pode ser uma imagem escaneada ou nao conter tabelas"
IMAGE_UNREADABLE_OBSERVATION = "A imagem pode estar ilegivel ou nao conter dados financeiros"
SPREADSHEET_ENGINES = {FileType.XLSX: "openpyxl", FileType.XLS: "xlrd"}


@dataclass
class RawTable:
    """Header row plus data rows recovered from one file."""

    headers: List[str]
    rows: List[List[Any]]
    file_type: FileType
    document_type: Optional[str] = None
    document_confidence: Optional[float] = None
    observations: List[str] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def row_as_dict(self, row: Sequence[Any]) -> dict[str, Any]:
        return {header: (row[index] if index < len(row) else None) for index, header in enumerate(self.headers)}


def _decode_bytes(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def parse_csv(data: bytes) -> List[List[Any]]:
    """Parse CSV bytes into a 2D list, sniffing the delimiter."""
    text = _decode_bytes(data)
    sample = text[:2048]
    delimiter = ","
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=",;\t")
        if dialect.delimiter in {",", ";", "\t"}:
            delimiter = dialect.delimiter
    except csv.Error:
        delimiter = ","

    reader = csv.reader(io.StringIO(text), delimiter=delimiter)
    return [list(row) for row in reader]


def _clean_cell(value: Any) -> Any:
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.to_pydatetime()
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and pd.isna(value):
        return None
    return value


def parse_spreadsheet(data: bytes, file_type: FileType) -> List[List[Any]]:
    """Read every sheet and return the one with the most rows as a 2D list."""
    try:
        sheets = pd.read_excel(
            io.BytesIO(data),
            sheet_name=None,
            header=None,
            engine=SPREADSHEET_ENGINES.get(file_type),
        )
    except Exception as exc:  # openpyxl/xlrd raise their own error types
        logger.exception("Failed to read %s workbook", file_type.value)
        raise ExtractionError(
            "Nao foi possivel ler a planilha. Verifique se o arquivo nao esta corrompido.",
            code="no_usable_data",
        ) from exc

    best: Optional[pd.DataFrame] = None
    for frame in sheets.values():
        if best is None or len(frame.index) > len(best.index):
            best = frame
    if best is None:
        return []

    return [[_clean_cell(value) for value in row] for row in best.astype(object).itertuples(index=False, name=None)]


def split_text_rows(text: str) -> List[List[str]]:
    """Rebuild table rows from extracted text lines.

    The delimiter is chosen from the first line: tab, then pipe, then runs of
    two or more spaces. Returns an empty list when fewer than two lines remain.
    """
    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) < 2:
        return []

    first_line = lines[0]
    if "\t" in first_line:
        splitter = re.compile(r"\t")
    elif "|" in first_line:
        splitter = re.compile(r"\|")
        lines = [line.strip().strip("|") for line in lines]
    elif re.search(r"\s{2,}", first_line.strip()):
        splitter = re.compile(r"\s{2,}")
        lines = [line.strip() for line in lines]
    else:
        splitter = re.compile(r"\t")

    return [[cell.strip() for cell in splitter.split(line)] for line in lines]


def extract_pdf_rows(data: bytes, max_pages: Optional[int] = None) -> List[List[str]]:
    """Extract text from the first pages of a PDF and split it into rows."""
    limit = max_pages or settings.IMPORT_PDF_MAX_PAGES
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = reader.pages[:limit]
        texts = [page.extract_text(extraction_mode="layout") or "" for page in pages]
    except PyPdfError as exc:
        logger.warning("Could not read PDF: %s", exc)
        return []
    return split_text_rows("\n".join(texts))


def table_from_document(document: VisionDocument) -> RawTable:
    """Synthesize the five fixed columns from a vision document."""
    rows = [
        [item.data, item.descricao, item.valor, item.tipo, item.categoria_sugerida or "outros"]
        for item in document.dados_extraidos.transacoes
    ]
    return RawTable(
        headers=list(IMAGE_HEADERS),
        rows=rows,
        file_type=FileType.IMAGE,
        document_type=document.tipo_documento,
        document_confidence=document.confianca,
        observations=list(document.observacoes),
    )


def _non_empty_count(row: Sequence[Any]) -> int:
    return sum(1 for cell in row if not is_blank(cell))


def find_header_row(rows: Sequence[Sequence[Any]], scan_rows: Optional[int] = None) -> int:
    """Index of the first row, among the first ``scan_rows``, with 2+ filled cells."""
    limit = scan_rows or settings.IMPORT_HEADER_SCAN_ROWS
    for index, row in enumerate(rows[:limit]):
        if _non_empty_count(row) >= 2:
            return index
    return 0


def build_headers(row: Sequence[Any], width: int) -> List[str]:
    """Header names for ``width`` columns; blanks become ``Coluna {n}``."""
    headers: List[str] = []
    seen: dict[str, int] = {}
    for index in range(width):
        value = row[index] if index < len(row) else None
        name = stringify(value) or f"Coluna {index + 1}"
        if name in seen:
            seen[name] += 1
            name = f"{name} ({seen[name]})"
        else:
            seen[name] = 1
        headers.append(name)
    return headers


def _tabulate(rows: List[List[Any]], file_type: FileType) -> RawTable:
    if not rows or all(_non_empty_count(row) == 0 for row in rows):
        raise ExtractionError("Arquivo vazio ou sem dados validos.", code="empty_file")

    header_index = find_header_row(rows)
    rows = rows[header_index:]
    width = max(len(row) for row in rows[: settings.IMPORT_HEADER_SCAN_ROWS])
    headers = build_headers(rows[0], width)

    data_rows = [
        [row[index] if index < len(row) else None for index in range(width)]
        for row in rows[1:]
        if _non_empty_count(row) > 0
    ]
    if not data_rows:
        raise ExtractionError(
            "Nenhuma linha de dados encontrada abaixo do cabecalho.",
            code="no_usable_data",
        )
    return RawTable(headers=headers, rows=data_rows, file_type=file_type)


async def _extract_image(
    data: bytes,
    filename: Optional[str],
    content_type: Optional[str],
    vision_client: Optional[DocumentVisionClient],
) -> RawTable:
    if vision_client is None:
        raise ExtractionError(
            "Leitura de imagens indisponivel neste ambiente.",
            code="vision_failed",
            observations=[IMAGE_UNREADABLE_OBSERVATION],
        )

    try:
        document = await vision_client.process_image(data, image_mime_type(filename, content_type))
    except VisionServiceError as exc:
        logger.warning("Vision extraction failed for %s: %s", filename, exc)
        raise ExtractionError(
            str(exc) or "Erro ao processar imagem com Vision API.",
            code="vision_failed",
            observations=[IMAGE_UNREADABLE_OBSERVATION],
        ) from exc

    table = table_from_document(document)
    if not table.rows:
        raise ExtractionError(
            "Nenhuma transacao encontrada na imagem.",
            code="vision_no_transactions",
            observations=document.observacoes,
            extra={"confidence": document.confianca},
        )
    return table


async def extract_table(
    data: bytes,
    file_type: Optional[FileType],
    *,
    filename: Optional[str] = None,
    content_type: Optional[str] = None,
    vision_client: Optional[DocumentVisionClient] = None,
) -> RawTable:
    """Produce the uniform table for a detected file type."""
    if file_type is None:
        raise UnsupportedFileError(SUPPORTED_FORMATS_MESSAGE)
    if not data:
        raise ExtractionError("Arquivo vazio ou sem dados validos.", code="empty_file")

    if file_type == FileType.IMAGE:
        return await _extract_image(data, filename, content_type, vision_client)

    if file_type == FileType.PDF:
        rows = extract_pdf_rows(data)
        if not rows:
            raise ExtractionError(
                "Nao foi possivel extrair dados do PDF. Tente usar uma planilha.",
                code="pdf_no_text",
                observations=[PDF_NO_TEXT_OBSERVATION],
            )
        return _tabulate(rows, file_type)

    if file_type == FileType.CSV:
        return _tabulate(parse_csv(data), file_type)

    return _tabulate(parse_spreadsheet(data, file_type), file_type)
