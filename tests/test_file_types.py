from app.domain.smart_import.file_types import detect_file_type, image_mime_type
from app.domain.smart_import.schemas import FileType


def test_extension_takes_precedence_over_mime():
    assert detect_file_type("extrato.CSV", "application/pdf") == FileType.CSV
    assert detect_file_type("fatura.pdf", "text/csv") == FileType.PDF
    assert detect_file_type("planilha.xlsx", None) == FileType.XLSX
    assert detect_file_type("antiga.xls") == FileType.XLS
    assert detect_file_type("foto.JPeG") == FileType.IMAGE


def test_mime_type_is_used_without_known_extension():
    assert detect_file_type("upload", "application/pdf") == FileType.PDF
    assert (
        detect_file_type("upload", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")
        == FileType.XLSX
    )
    assert detect_file_type("upload", "application/vnd.ms-excel") == FileType.XLS
    assert detect_file_type("upload", "text/csv; charset=utf-8") == FileType.CSV
    assert detect_file_type(None, "image/webp") == FileType.IMAGE


def test_unknown_files_are_rejected():
    assert detect_file_type("notas.txt", "text/plain") is None
    assert detect_file_type(None, None) is None


def test_image_mime_type_prefers_declared_type():
    assert image_mime_type("recibo.png", "image/jpg") == "image/jpeg"
    assert image_mime_type("recibo.jpg", None) == "image/jpeg"
    assert image_mime_type("recibo.webp", "application/octet-stream") == "image/webp"
    assert image_mime_type("recibo", None) == "image/png"
