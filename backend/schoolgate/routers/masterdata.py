"""
Router « données de référence » : recherche, import Excel et export Excel des élèves.
"""

import datetime as dt
import io
import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from schoolgate.config import settings
from schoolgate.database import get_db
from schoolgate.routers.students import duplicates_detail
from schoolgate.schemas.student import ExcelImportEnvelope, ExcelImportResult, StudentListEnvelope
from schoolgate.services import masterdata_service, student_import
from schoolgate.services.exceptions import ImportDuplicatesError, ImportFileError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/masterdata", tags=["Données de référence"])

ALLOWED_EXTENSIONS = {".xls", ".xlsx"}
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get("/students", response_model=StudentListEnvelope, summary="Rechercher des élèves")
def search_students(
    q: Optional[str] = Query(None),
    class_name: Optional[str] = Query(None, alias="className"),
    limit: int = Query(100),
    offset: int = Query(0),
    db: Session = Depends(get_db),
):
    students = masterdata_service.query_students(db, q=q, class_name=class_name, limit=limit, offset=offset)
    return StudentListEnvelope(students=students)


@router.post("/import", response_model=ExcelImportEnvelope, summary="Importer des élèves depuis Excel")
async def import_students_excel(
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
):
    """
    Importe un classeur (.xls / .xlsx) : première feuille, ligne 1 = en-têtes.
    Colonnes reconnues par alias (Admission No, Student Name, RFID No, Father Email…).
    Le lot est refusé en entier (400) si un numéro d'admission ou un tag est en double
    dans le fichier ou déjà attribué en base. Sinon une transaction par ligne.
    """
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    extension = os.path.splitext(file.filename)[1].lower()
    if extension not in ALLOWED_EXTENSIONS:
        raise HTTPException(status_code=400, detail="Only Excel files are allowed (.xls, .xlsx)")

    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if len(content) > settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024:
        raise HTTPException(
            status_code=400,
            detail=f"File too large: maximum {settings.MAX_UPLOAD_SIZE_MB} MB",
        )

    try:
        rows = masterdata_service.parse_uploaded_excel(content, settings.excel_import_origin)
    except ImportFileError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not rows:
        raise HTTPException(status_code=400, detail="No valid student rows found in uploaded file")

    try:
        outcome = student_import.reconcile_import(db, rows)
    except ImportDuplicatesError as e:
        raise HTTPException(status_code=400, detail=duplicates_detail(e))

    logger.info("Import Excel « %s » : %d ligne(s) traitée(s)", file.filename, len(rows))
    return ExcelImportEnvelope(
        result=ExcelImportResult(
            inserted=len(outcome.inserted),
            updated=len(outcome.updated),
            errors=outcome.errors,
        )
    )


@router.get("/export/excel", summary="Exporter les élèves en Excel")
def export_students_excel(
    q: Optional[str] = Query(None),
    class_name: Optional[str] = Query(None, alias="className"),
    db: Session = Depends(get_db),
):
    """Télécharge les élèves filtrés (mêmes filtres que la recherche) au format .xlsx."""
    students = masterdata_service.query_students(
        db, q=q, class_name=class_name, limit=settings.EXPORT_LIMIT
    )
    content = masterdata_service.export_students_to_excel(students)
    filename = f"students_{dt.datetime.now().strftime('%Y%m%d_%H%M%S')}.xlsx"
    return StreamingResponse(
        io.BytesIO(content),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
