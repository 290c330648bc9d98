"""
Routers pour les fiches élèves.
POST   /api/students                 : création manuelle (objet) ou import JSON (tableau)
GET    /api/students                 : listage (aussi /api/all-students)
GET    /api/students/check-rfid      : unicité d'un tag RFID (?rfid=)
GET    /api/students/check-admission : unicité d'un numéro d'admission (?admission=)
GET    /api/students/{id}            : détail (aussi /api/all-students/{id})
PUT    /api/students/{id}            : mise à jour partielle (aussi /api/all-students/{id})
DELETE /api/students/{id}            : suppression (aussi /api/all-students/{id})
"""

from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy.orm import Session

from schoolgate.config import settings
from schoolgate.database import get_db
from schoolgate.schemas.common import OkResponse
from schoolgate.schemas.student import (
    BulkImportEnvelope,
    StudentCreate,
    StudentCreatedEnvelope,
    StudentEnvelope,
    StudentListEnvelope,
    StudentResponse,
    StudentUpdate,
    UniquenessCheck,
)
from schoolgate.services import student_import, student_service
from schoolgate.services.exceptions import (
    DuplicateStudentError,
    ImportDuplicatesError,
    StudentNotFoundError,
)

router = APIRouter(prefix="/api/students", tags=["Élèves"])

# Même ressource, chemin historique utilisé par l'écran « All students » du SPA
all_students_router = APIRouter(prefix="/api/all-students", tags=["Élèves"])


def duplicates_detail(exc: ImportDuplicatesError) -> dict:
    return {
        "message": str(exc),
        "duplicateAdmissions": exc.duplicate_admissions,
        "duplicateRfids": exc.duplicate_rfids,
    }


def _import_rows(db: Session, rows: List[Any]) -> BulkImportEnvelope:
    if not all(isinstance(r, dict) for r in rows):
        raise HTTPException(status_code=400, detail="Each row must be a JSON object")

    normalized = student_import.normalize_rows(rows, settings.import_origin)
    try:
        outcome = student_import.reconcile_import(db, normalized)
    except ImportDuplicatesError as e:
        raise HTTPException(status_code=400, detail=duplicates_detail(e))

    # L'import JSON compte les mises à jour comme des insertions
    return BulkImportEnvelope(inserted=outcome.inserted + outcome.updated, errors=outcome.errors)


def _uniqueness(existing: Optional[StudentResponse]) -> UniquenessCheck:
    if existing is None:
        return UniquenessCheck(exists=False, unique=True)
    return UniquenessCheck(exists=True, unique=False, student_id=existing.id)


@router.post(
    "",
    response_model=Union[StudentCreatedEnvelope, BulkImportEnvelope],
    summary="Créer un élève ou importer un tableau d'élèves",
)
def create_or_import_students(
    request: Request,
    response: Response,
    payload: Union[List[Any], Dict[str, Any]] = Body(...),
    db: Session = Depends(get_db),
):
    """
    Corps objet → création d'un élève (201), avec sa fiche parent si un champ parent est fourni.
    Corps tableau (ou `{"rows": [...]}`) → import en masse : doublons refusés en bloc (400),
    puis une transaction par ligne ; les lignes en échec sont listées dans `errors`.
    """
    if isinstance(payload, list):
        return _import_rows(db, payload)
    if isinstance(payload.get("rows"), list):
        return _import_rows(db, payload["rows"])

    try:
        data = StudentCreate.model_validate(payload)
    except ValidationError as e:
        raise RequestValidationError(e.errors())

    ip_address = request.client.host if request.client else None
    try:
        student, parent = student_service.create_student(db, data, settings.web_origin, ip_address)
    except DuplicateStudentError as e:
        raise HTTPException(status_code=400, detail={"message": str(e), "errors": [str(e)]})

    response.status_code = 201
    return StudentCreatedEnvelope(student=student, parent=parent)


@router.get("", response_model=StudentListEnvelope, summary="Lister les élèves")
@all_students_router.get("", response_model=StudentListEnvelope, summary="Lister les élèves")
def list_students(
    limit: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
):
    """Retourne les élèves du plus récent au plus ancien (500 par défaut)."""
    students = student_service.list_students(db, limit or settings.DEFAULT_LIST_LIMIT)
    return StudentListEnvelope(students=students)


@router.get("/check-rfid", response_model=UniquenessCheck, summary="Vérifier qu'un tag RFID est libre")
def check_rfid(rfid: str = Query(""), db: Session = Depends(get_db)):
    """Un tag vide est considéré comme libre. Les espaces autour du tag sont ignorés."""
    return _uniqueness(student_service.find_by_tag_id(db, rfid))


@router.get("/check-admission", response_model=UniquenessCheck, summary="Vérifier qu'un numéro d'admission est libre")
def check_admission(admission: str = Query(""), db: Session = Depends(get_db)):
    return _uniqueness(student_service.find_by_admission_no(db, admission))


@router.get("/{student_id}", response_model=StudentEnvelope, summary="Détail d'un élève")
@all_students_router.get("/{student_id}", response_model=StudentEnvelope, summary="Détail d'un élève")
def get_student(student_id: int, db: Session = Depends(get_db)):
    try:
        return StudentEnvelope(student=student_service.get_student(db, student_id))
    except StudentNotFoundError:
        raise HTTPException(status_code=404, detail="Student not found")


@router.put("/{student_id}", response_model=StudentEnvelope, summary="Modifier un élève")
@all_students_router.put("/{student_id}", response_model=StudentEnvelope, summary="Modifier un élève")
def update_student(student_id: int, data: StudentUpdate, db: Session = Depends(get_db)):
    """
    Met à jour les champs fournis. Les champs absents ne sont pas modifiés ;
    pour les coordonnées parent, une valeur null conserve la valeur existante.
    Retourne 400 si le tag ou le numéro d'admission appartient à un autre élève.
    """
    try:
        student = student_service.update_student(db, student_id, data)
    except StudentNotFoundError:
        raise HTTPException(status_code=404, detail="Student not found")
    except DuplicateStudentError as e:
        raise HTTPException(status_code=400, detail={"message": str(e), "errors": [str(e)]})
    return StudentEnvelope(student=student)


@router.delete("/{student_id}", response_model=OkResponse, summary="Supprimer un élève")
@all_students_router.delete("/{student_id}", response_model=OkResponse, summary="Supprimer un élève")
def delete_student(student_id: int, db: Session = Depends(get_db)):
    """Supprime définitivement un élève et sa fiche parent."""
    try:
        student_service.delete_student(db, student_id)
    except StudentNotFoundError:
        raise HTTPException(status_code=404, detail="Student not found")
    return OkResponse(message="Student deleted successfully")
