"""
Service d'import en masse des élèves (tableur Excel ou tableau JSON).

Déroulement :
1. Normalisation : chaque ligne brute (en-têtes variés) devient un ImportRow canonique
2. Doublons intra-lot (numéro d'admission, tag RFID) → refus du lot entier, aucune écriture
3. Doublons en base → refus du lot entier, aucune écriture
4. Upsert ligne par ligne, chacune dans sa propre transaction : une ligne en échec
   est annulée et consignée sans affecter les autres
"""

import logging
import re
from functools import lru_cache
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from schoolgate.config import RecordOrigin
from schoolgate.models.student import ParentDetail, Student
from schoolgate.schemas.student import ImportOutcome, ImportRow, ImportRowError
from schoolgate.services.exceptions import ImportDuplicatesError
from schoolgate.services.student_service import merge_parent
from schoolgate.validators import clean_str, normalize_email, normalize_phone

logger = logging.getLogger(__name__)

INSERTED = "INSERT"
UPDATED = "UPDATE"

# En-têtes acceptés, après nettoyage (minuscules, camelCase et _ découpés en mots)
HEADER_ALIASES = {
    "full_name": ("full name", "fullname", "student name", "studentname", "name"),
    "admission_no": (
        "admission no", "admission number", "admission", "adm no",
        "student registration nbr", "registration no",
    ),
    "tag_id": ("tag id", "tagid", "rfid", "rfid no", "rfid number", "tag"),
    "class_name": ("class", "class name", "classname"),
    "section": ("section", "section name", "csaction"),
    "contact_no": (
        "contact no", "contact", "contact number", "phone", "phone no",
        "mobile", "mobile no", "no of communication", "father primary contact",
    ),
    "status": ("status",),
    "school_code": ("school code", "schoolcode"),
    "zid": ("zid",),
    "created_by": ("created by", "createdby"),
    "father_name": (
        "father name", "fathername", "father", "parent name", "parent",
        "guardian name", "guardian",
    ),
    "father_email": (
        "father email", "father email id", "fatheremail", "email",
        "parent email", "guardian email",
    ),
    "address": ("address", "full address", "addr"),
}

# Repli par mots-clés, dans l'ordre : « father email » doit tomber sur l'email avant le nom
HEADER_KEYWORDS = (
    (("admission",), "admission_no"),
    (("student", "name"), "full_name"),
    (("section",), "section"),
    (("email",), "father_email"),
    (("father",), "father_name"),
    (("parent",), "father_name"),
    (("guardian",), "father_name"),
    (("contact",), "contact_no"),
    (("phone",), "contact_no"),
    (("mobile",), "contact_no"),
    (("address",), "address"),
    (("rfid",), "tag_id"),
    (("tag",), "tag_id"),
    (("status",), "status"),
    (("school",), "school_code"),
)

_ALIAS_INDEX = {alias: field for field, aliases in HEADER_ALIASES.items() for alias in aliases}


def clean_header(raw: Any) -> str:
    """« fatherName », « Father Name », « FATHER_NAME » → « father name »."""
    text = str(raw or "").replace("\u00a0", " ")
    text = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", text)
    text = re.sub(r"[_\-.]+", " ", text.lower())
    text = re.sub(r"[^a-z0-9\s]", "", text)
    return re.sub(r"\s+", " ", text).strip()


@lru_cache(maxsize=512)
def resolve_header(raw: str, keyword_fallback: bool = False) -> Optional[str]:
    """
    Retourne le champ canonique correspondant à un en-tête, ou None s'il est inconnu.
    Le repli par mots-clés est réservé aux en-têtes de tableur ; les clés JSON
    doivent figurer dans la table des alias.
    """
    cleaned = clean_header(raw)
    if not cleaned:
        return None
    if cleaned in _ALIAS_INDEX:
        return _ALIAS_INDEX[cleaned]
    if not keyword_fallback:
        return None
    words = set(cleaned.split())
    for keywords, field in HEADER_KEYWORDS:
        if all(k in words or k in cleaned for k in keywords):
            return field
    return None


def swap_father_email(father_name: Optional[str], father_email: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """
    Une adresse email saisie dans la colonne « nom du père » (sans email séparé)
    est déplacée vers l'email ; le nom est alors vidé.
    """
    if father_name and not father_email and "@" in father_name:
        return None, normalize_email(father_name)
    return father_name, father_email


def _parse_status(value: Optional[str], row_index: int) -> int:
    if value is None:
        return 1
    try:
        return int(float(value))
    except (ValueError, OverflowError):
        logger.warning("Ligne %d : statut « %s » illisible, valeur 1 appliquée", row_index, value)
        return 1


def normalize_row(
    raw: Mapping[str, Any],
    row_index: int,
    origin: RecordOrigin,
    keyword_fallback: bool = False,
) -> ImportRow:
    """
    Construit un ImportRow à partir d'une ligne brute (clés = en-têtes du fichier ou du JSON).
    `keyword_fallback` active la reconnaissance approximative des en-têtes de tableur.
    """
    values: dict = {}
    for key, value in raw.items():
        field = resolve_header(str(key), keyword_fallback)
        if field is not None and values.get(field) is None:
            values[field] = clean_str(value)

    father_name, father_email = swap_father_email(
        values.get("father_name"), normalize_email(values.get("father_email"))
    )

    return ImportRow(
        row_index=row_index,
        full_name=values.get("full_name"),
        admission_no=values.get("admission_no"),
        tag_id=values.get("tag_id"),
        class_name=values.get("class_name"),
        section=values.get("section"),
        contact_no=normalize_phone(values.get("contact_no")),
        status=_parse_status(values.get("status"), row_index),
        school_code=values.get("school_code") or origin.school_code,
        zid=values.get("zid") or origin.zid,
        created_by=values.get("created_by") or origin.created_by,
        father_name=father_name,
        father_email=father_email,
        address=values.get("address"),
    )


def normalize_rows(raw_rows: Iterable[Mapping[str, Any]], origin: RecordOrigin) -> List[ImportRow]:
    """Normalise un tableau JSON ; les lignes sont numérotées à partir de 1."""
    return [normalize_row(raw, i, origin) for i, raw in enumerate(raw_rows, start=1)]


def find_batch_duplicates(rows: Sequence[ImportRow]) -> Tuple[Set[str], Set[str]]:
    """Numéros d'admission et tags répétés dans le lot (valeurs vides ignorées)."""
    seen_admissions: Set[str] = set()
    seen_rfids: Set[str] = set()
    dup_admissions: Set[str] = set()
    dup_rfids: Set[str] = set()

    for row in rows:
        admission = (row.admission_no or "").strip()
        rfid = (row.tag_id or "").strip()
        if admission:
            if admission in seen_admissions:
                dup_admissions.add(admission)
            seen_admissions.add(admission)
        if rfid:
            if rfid in seen_rfids:
                dup_rfids.add(rfid)
            seen_rfids.add(rfid)

    return dup_admissions, dup_rfids


def find_store_duplicates(db: Session, rows: Sequence[ImportRow]) -> Tuple[Set[str], Set[str]]:
    """Valeurs du lot déjà attribuées à un élève en base (une seule requête)."""
    admissions = {r.admission_no.strip() for r in rows if r.admission_no and r.admission_no.strip()}
    rfids = {r.tag_id.strip() for r in rows if r.tag_id and r.tag_id.strip()}
    if not admissions and not rfids:
        return set(), set()

    student_tag = func.trim(Student.tag_id)
    conditions = []
    if admissions:
        conditions.append(Student.admission_no.in_(admissions))
    if rfids:
        conditions.append(student_tag.in_(rfids))

    existing = db.execute(
        select(Student.admission_no, student_tag).where(or_(*conditions))
    ).fetchall()

    found_admissions = {row[0] for row in existing if row[0] in admissions}
    found_rfids = {row[1] for row in existing if row[1] in rfids}
    return found_admissions, found_rfids


def _upsert_row(db: Session, row: ImportRow) -> Tuple[int, str]:
    """
    Upsert d'une ligne, clé = numéro d'admission.
    Sans numéro d'admission, la ligne est toujours insérée.
    """
    if not row.full_name:
        raise ValueError("Full name is required")

    student = None
    if row.admission_no:
        student = db.execute(
            select(Student).where(Student.admission_no == row.admission_no.strip())
        ).scalar_one_or_none()

    parent_values = {
        "father_name": row.father_name,
        "father_email": row.father_email,
        "address": row.address,
    }

    if student is not None:
        student.class_name = row.class_name
        student.section = row.section
        student.full_name = row.full_name
        student.contact_no = row.contact_no
        student.tag_id = row.tag_id
        student.status = row.status
        student.created_by = row.created_by
        student.ip_address = None
        merge_parent(student, parent_values)
        action = UPDATED
    else:
        student = Student(
            school_code=row.school_code,
            zid=row.zid,
            class_name=row.class_name,
            section=row.section,
            tag_id=row.tag_id,
            full_name=row.full_name,
            admission_no=row.admission_no,
            contact_no=row.contact_no,
            status=row.status,
            created_by=row.created_by,
        )
        if row.has_parent_details:
            student.parent = ParentDetail(**parent_values)
        db.add(student)
        action = INSERTED

    db.flush()  # obtenir l'ID avant le commit
    return student.id, action


def _error_text(exc: Exception) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


def reconcile_import(db: Session, rows: Sequence[ImportRow]) -> ImportOutcome:
    """
    Importe un lot d'élèves normalisés.

    Lève ImportDuplicatesError (aucune écriture) si un numéro d'admission ou un tag
    apparaît deux fois dans le lot, ou s'il existe déjà en base.
    Sinon chaque ligne est commitée séparément ; les lignes en échec sont listées
    dans `errors` avec leur numéro.
    """
    dup_admissions, dup_rfids = find_batch_duplicates(rows)
    if dup_admissions or dup_rfids:
        logger.info("Import refusé : doublons dans le lot (%s / %s)", dup_admissions, dup_rfids)
        raise ImportDuplicatesError(dup_admissions, dup_rfids, in_file=True)

    dup_admissions, dup_rfids = find_store_duplicates(db, rows)
    if dup_admissions or dup_rfids:
        logger.info("Import refusé : valeurs déjà en base (%s / %s)", dup_admissions, dup_rfids)
        raise ImportDuplicatesError(dup_admissions, dup_rfids, in_file=False)

    outcome = ImportOutcome()
    for row in rows:
        try:
            student_id, action = _upsert_row(db, row)
            db.commit()
        except (SQLAlchemyError, ValueError) as exc:
            db.rollback()
            logger.warning("Import ligne %d en échec : %s", row.row_index, exc)
            outcome.errors.append(ImportRowError(row=row.row_index, error=_error_text(exc)))
            continue

        if action == INSERTED:
            outcome.inserted.append(student_id)
        else:
            outcome.updated.append(student_id)

    logger.info(
        "Import terminé : %d reçus, %d insérés, %d mis à jour, %d erreurs",
        len(rows), len(outcome.inserted), len(outcome.updated), len(outcome.errors),
    )
    return outcome
