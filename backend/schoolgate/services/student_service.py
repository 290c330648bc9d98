"""
Service métier pour les fiches élèves : lecture, création, mise à jour partielle, suppression.

Unicité du numéro d'admission et du tag RFID :
- création : lecture verrouillante (SELECT ... FOR UPDATE) avant l'INSERT ;
- mise à jour : vérification contre les *autres* élèves ;
- dans tous les cas la contrainte UNIQUE de la BDD tranche (IntegrityError → DuplicateStudentError).
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from schoolgate.config import RecordOrigin
from schoolgate.models.student import ParentDetail, Student
from schoolgate.schemas.student import (
    ParentResponse,
    StudentCreate,
    StudentResponse,
    StudentUpdate,
)
from schoolgate.services.exceptions import DuplicateStudentError, StudentNotFoundError

logger = logging.getLogger(__name__)

STUDENT_FIELDS = (
    "full_name", "admission_no", "tag_id", "class_name", "section",
    "contact_no", "status", "created_by",
)
PARENT_FIELDS = ("father_name", "father_email", "address")
# Champs qu'une valeur null ne doit pas effacer
NON_NULLABLE_FIELDS = ("full_name", "status")


def list_students(db: Session, limit: int) -> List[StudentResponse]:
    """Retourne les élèves du plus récent au plus ancien, coordonnées parent incluses."""
    students = db.execute(
        select(Student)
        .options(selectinload(Student.parent))
        .order_by(Student.id.desc())
        .limit(limit)
    ).scalars().all()
    return [to_response(s) for s in students]


def get_student(db: Session, student_id: int) -> StudentResponse:
    """Lève StudentNotFoundError si l'élève n'existe pas."""
    return to_response(_get_or_raise(db, student_id))


def find_by_tag_id(db: Session, tag_id: str) -> Optional[StudentResponse]:
    tag_id = (tag_id or "").strip()
    if not tag_id:
        return None
    student = db.execute(
        select(Student).where(func.trim(Student.tag_id) == tag_id).limit(1)
    ).scalar_one_or_none()
    return to_response(student) if student else None


def find_by_admission_no(db: Session, admission_no: str) -> Optional[StudentResponse]:
    admission_no = (admission_no or "").strip()
    if not admission_no:
        return None
    student = db.execute(
        select(Student).where(Student.admission_no == admission_no).limit(1)
    ).scalar_one_or_none()
    return to_response(student) if student else None


def create_student(
    db: Session,
    data: StudentCreate,
    origin: RecordOrigin,
    ip_address: Optional[str] = None,
) -> Tuple[StudentResponse, Optional[ParentResponse]]:
    """
    Crée un élève et, si au moins un champ parent est renseigné, sa fiche parent.
    Une seule transaction ; lève DuplicateStudentError si le tag ou le numéro
    d'admission est déjà pris.
    """
    try:
        if data.tag_id:
            _check_unique(db, func.trim(Student.tag_id), data.tag_id, "tag_id", lock=True)
        if data.admission_no:
            _check_unique(db, Student.admission_no, data.admission_no, "admission_no", lock=True)

        student = Student(
            school_code=data.school_code or origin.school_code,
            zid=origin.zid,
            class_name=data.class_name,
            section=data.section,
            tag_id=data.tag_id,
            full_name=data.full_name,
            admission_no=data.admission_no,
            contact_no=data.contact_no,
            status=data.status,
            created_by=data.created_by or origin.created_by,
            ip_address=ip_address,
        )
        if any(getattr(data, f) for f in PARENT_FIELDS):
            student.parent = ParentDetail(
                father_name=data.father_name,
                father_email=data.father_email,
                address=data.address,
            )
        db.add(student)
        db.commit()
    except DuplicateStudentError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        raise _duplicate_from_integrity(exc, data.tag_id, data.admission_no) from exc

    db.refresh(student)
    logger.info("Élève créé : %s (id=%s, créé par %s)", student.full_name, student.id, student.created_by)

    parent = None
    if student.parent is not None:
        parent = ParentResponse(
            student_id=student.id,
            father_name=student.parent.father_name,
            father_email=student.parent.father_email,
            address=student.parent.address,
        )
    return to_response(student), parent


def update_student(db: Session, student_id: int, data: StudentUpdate) -> StudentResponse:
    """
    Met à jour les champs fournis. Les champs absents ne sont pas modifiés.
    Champs parent : une valeur null conserve la valeur existante (fusion) ;
    la fiche parent est créée si elle n'existe pas encore.
    """
    student = _get_or_raise(db, student_id)
    update_data = data.model_dump(exclude_unset=True)

    try:
        if update_data.get("tag_id"):
            _check_unique(db, func.trim(Student.tag_id), update_data["tag_id"], "tag_id", exclude_id=student_id)
        if update_data.get("admission_no"):
            _check_unique(db, Student.admission_no, update_data["admission_no"], "admission_no",
                          exclude_id=student_id)

        for field in STUDENT_FIELDS:
            if field not in update_data:
                continue
            value = update_data[field]
            if value is None and field in NON_NULLABLE_FIELDS:
                continue
            setattr(student, field, value)

        parent_data = {f: update_data[f] for f in PARENT_FIELDS if f in update_data}
        if parent_data:
            merge_parent(student, parent_data)

        db.commit()
    except DuplicateStudentError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        raise _duplicate_from_integrity(exc, update_data.get("tag_id"), update_data.get("admission_no")) from exc

    db.refresh(student)
    return to_response(student)


def delete_student(db: Session, student_id: int) -> None:
    """Supprime définitivement un élève ; sa fiche parent est supprimée en cascade."""
    student = _get_or_raise(db, student_id)
    db.delete(student)
    db.commit()
    logger.info("Élève supprimé : id=%s", student_id)


def merge_parent(student: Student, values: dict) -> None:
    """
    Fusionne les coordonnées parent (null = conserver l'existant).
    Ne crée la fiche que si au moins une valeur est renseignée.
    """
    if student.parent is None:
        if not any(values.get(f) for f in PARENT_FIELDS):
            return
        student.parent = ParentDetail()
    for field in PARENT_FIELDS:
        value = values.get(field)
        if value is not None:
            setattr(student.parent, field, value)


def to_response(student: Student) -> StudentResponse:
    """Construit le schéma de réponse à plat (élève + parent)."""
    parent = student.parent
    return StudentResponse(
        id=student.id,
        school_code=student.school_code,
        zid=student.zid,
        class_name=student.class_name,
        section=student.section,
        tag_id=student.tag_id,
        full_name=student.full_name,
        admission_no=student.admission_no,
        contact_no=student.contact_no,
        status=student.status,
        created_by=student.created_by,
        created_at=student.created_at,
        father_name=parent.father_name if parent else None,
        father_email=parent.father_email if parent else None,
        address=parent.address if parent else None,
    )


def _get_or_raise(db: Session, student_id: int) -> Student:
    student = db.get(Student, student_id)
    if student is None:
        raise StudentNotFoundError(student_id)
    return student


def _check_unique(db: Session, column, value: str, field: str, lock: bool = False,
                  exclude_id: Optional[int] = None) -> None:
    stmt = select(Student.id).where(column == value.strip())
    if exclude_id is not None:
        stmt = stmt.where(Student.id != exclude_id)
    if lock:
        stmt = stmt.with_for_update()
    if db.execute(stmt.limit(1)).scalar() is not None:
        raise DuplicateStudentError(field, value)


def _duplicate_from_integrity(exc: IntegrityError, tag_id: Optional[str],
                              admission_no: Optional[str]) -> DuplicateStudentError:
    """Traduit une violation de contrainte UNIQUE (accès concurrent) en doublon métier."""
    detail = str(exc.orig).lower()
    if tag_id and "tag_id" in detail:
        return DuplicateStudentError("tag_id", tag_id)
    if admission_no:
        return DuplicateStudentError("admission_no", admission_no)
    return DuplicateStudentError("tag_id", tag_id or "")
