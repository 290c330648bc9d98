"""
Service « données de référence » : recherche d'élèves, lecture et génération de classeurs Excel.
Lecture et écriture .xlsx via openpyxl (première feuille, ligne 1 = en-têtes).
"""

import datetime as dt
import io
import logging
import zipfile
from typing import Any, List, Optional

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from schoolgate.config import RecordOrigin
from schoolgate.models.student import Student
from schoolgate.schemas.student import ImportRow, StudentResponse
from schoolgate.services.exceptions import ImportFileError
from schoolgate.services.student_import import normalize_row, resolve_header
from schoolgate.services.student_service import to_response

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "Admission No",
    "StudentSeqNo",
    "Class",
    "Section",
    "Student Name",
    "Contact No",
    "RFID No",
    "Status",
    "Created",
    "Created By",
    "Father Name",
    "Father Email",
    "Address",
]


def query_students(
    db: Session,
    q: Optional[str] = None,
    class_name: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[StudentResponse]:
    """
    Recherche paginée : `q` filtre sur nom, numéro d'admission, tag et contact (LIKE),
    `class_name` sur la classe exacte. Du plus récent au plus ancien.
    """
    stmt = select(Student).options(selectinload(Student.parent))

    if q:
        pattern = f"%{q}%"
        stmt = stmt.where(or_(
            Student.full_name.like(pattern),
            Student.admission_no.like(pattern),
            Student.tag_id.like(pattern),
            Student.contact_no.like(pattern),
        ))
    if class_name:
        stmt = stmt.where(Student.class_name == class_name)

    limit = limit if limit > 0 else 100
    offset = offset if offset >= 0 else 0

    students = db.execute(
        stmt.order_by(Student.id.desc()).offset(offset).limit(limit)
    ).scalars().all()
    return [to_response(s) for s in students]


def _cell_to_string(cell) -> str:
    """Valeur d'une cellule en texte : nombres entiers sans « .0 », dates en YYYY-MM-DD, liens mailto déballés."""
    value = cell.value
    if value is None or value == "":
        hyperlink = getattr(cell, "hyperlink", None)
        target = getattr(hyperlink, "target", None) if hyperlink else None
        if target and target.lower().startswith("mailto:"):
            return target[len("mailto:"):].strip()
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dt.datetime, dt.date)):
        return value.strftime("%Y-%m-%d")
    text = str(value).strip()
    if text.lower().startswith("mailto:"):
        return text[len("mailto:"):].strip()
    return text


def parse_uploaded_excel(content: bytes, origin: RecordOrigin) -> List[ImportRow]:
    """
    Lit la première feuille d'un classeur et retourne les lignes normalisées.
    Les lignes sans numéro d'admission sont ignorées.
    Lève ImportFileError si le classeur est illisible.
    """
    try:
        workbook = load_workbook(io.BytesIO(content), data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, OSError, KeyError, ValueError) as exc:
        raise ImportFileError(f"Unreadable Excel file: {exc}") from exc

    try:
        sheet = workbook.worksheets[0] if workbook.worksheets else None
        if sheet is None or sheet.max_row < 1:
            return []

        header_cells = next(sheet.iter_rows(min_row=1, max_row=1))
        headers = {}
        for cell in header_cells:
            header = _cell_to_string(cell)
            if resolve_header(header, keyword_fallback=True):
                headers[cell.column] = header

        rows: List[ImportRow] = []
        for row_cells in sheet.iter_rows(min_row=2):
            raw: dict[str, Any] = {}
            for cell in row_cells:
                header = headers.get(cell.column)
                if header is not None:
                    raw[header] = _cell_to_string(cell)

            row = normalize_row(raw, row_cells[0].row, origin, keyword_fallback=True)
            if not row.admission_no:
                logger.debug("Ligne %d ignorée : numéro d'admission absent", row.row_index)
                continue
            rows.append(row)
    finally:
        workbook.close()

    logger.info("Classeur lu : %d ligne(s) exploitable(s)", len(rows))
    return rows


def export_students_to_excel(students: List[StudentResponse]) -> bytes:
    """Génère un classeur .xlsx (feuille « Students ») et retourne son contenu binaire."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Students"

    sheet.append(EXPORT_COLUMNS)
    for cell in sheet[1]:
        cell.font = Font(bold=True)

    for s in students:
        sheet.append([
            s.admission_no or "",
            s.id,
            s.class_name or "",
            s.section or "",
            s.full_name or "",
            s.contact_no or "",
            s.tag_id or "",
            s.status if s.status is not None else "",
            s.created_at.strftime("%Y-%m-%d %H:%M:%S") if s.created_at else "",
            s.created_by or "",
            s.father_name or "",
            s.father_email or "",
            s.address or "",
        ])

    output = io.BytesIO()
    workbook.save(output)
    return output.getvalue()
