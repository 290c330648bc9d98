"""
Schémas Pydantic pour les élèves.

Les formulaires du SPA et les anciens clients envoient les mêmes champs sous
plusieurs noms (admissionNo / studentRegistrationNbr, rfidNo / tagId…) :
chaque champ déclare ses alias d'entrée une seule fois ici.
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import AliasChoices, Field, field_validator

from schoolgate.schemas.common import CamelModel
from schoolgate.validators import MIN_TAG_LENGTH, clean_str, is_valid_email, is_valid_phone

_ALIASES = {
    "full_name": AliasChoices("fullName", "studentName", "full_name"),
    "admission_no": AliasChoices("admissionNo", "studentRegistrationNbr", "admission_no"),
    "tag_id": AliasChoices("tagId", "rfidNo", "tag_id"),
    "class_name": AliasChoices("className", "class_name"),
    "section": AliasChoices("section", "sectionName", "csaction"),
    "contact_no": AliasChoices("contactNo", "noOfCommunication", "fatherPrimaryContact", "contact_no"),
    "school_code": AliasChoices("schoolCode", "school_code"),
    "created_by": AliasChoices("createdBy", "created_by"),
    "father_name": AliasChoices("fatherName", "father_name"),
    "father_email": AliasChoices("fatherEmail", "fatherEmailId", "father_email"),
}

_OPTIONAL_TEXT_FIELDS = (
    "admission_no", "tag_id", "class_name", "section", "contact_no",
    "school_code", "created_by", "father_name", "father_email", "address",
)


def _parse_status(v: Any) -> Any:
    if v is None or isinstance(v, bool):
        return v
    try:
        return int(str(v).strip())
    except ValueError:
        raise ValueError("Status must be a number")


class _StudentFields(CamelModel):
    """Règles de validation communes à la création et à la mise à jour."""

    @field_validator(*_OPTIONAL_TEXT_FIELDS, mode="before", check_fields=False)
    @classmethod
    def empty_to_none(cls, v: Any) -> Optional[str]:
        return clean_str(v)

    @field_validator("status", mode="before", check_fields=False)
    @classmethod
    def status_numeric(cls, v: Any) -> Any:
        return _parse_status(v)

    @field_validator("tag_id", check_fields=False)
    @classmethod
    def tag_long_enough(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and len(v) < MIN_TAG_LENGTH:
            raise ValueError(f"RFID/Tag ID must contain at least {MIN_TAG_LENGTH} characters")
        return v

    @field_validator("contact_no", check_fields=False)
    @classmethod
    def phone_ten_digits(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not is_valid_phone(v):
            raise ValueError("Phone must be 10 digits")
        return v

    @field_validator("father_email", check_fields=False)
    @classmethod
    def email_shape(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not is_valid_email(v):
            raise ValueError("Father email is invalid")
        return v


class StudentCreate(_StudentFields):
    """Schéma de création manuelle d'un élève (POST /api/students)."""
    full_name: str = Field(validation_alias=_ALIASES["full_name"])
    admission_no: Optional[str] = Field(None, validation_alias=_ALIASES["admission_no"])
    tag_id: Optional[str] = Field(None, validation_alias=_ALIASES["tag_id"])
    class_name: Optional[str] = Field(None, validation_alias=_ALIASES["class_name"])
    section: Optional[str] = Field(None, validation_alias=_ALIASES["section"])
    contact_no: Optional[str] = Field(None, validation_alias=_ALIASES["contact_no"])
    status: int = 1
    school_code: Optional[str] = Field(None, validation_alias=_ALIASES["school_code"])
    created_by: Optional[str] = Field(None, validation_alias=_ALIASES["created_by"])
    father_name: Optional[str] = Field(None, validation_alias=_ALIASES["father_name"])
    father_email: Optional[str] = Field(None, validation_alias=_ALIASES["father_email"])
    address: Optional[str] = None

    @field_validator("full_name", mode="before")
    @classmethod
    def name_required(cls, v: Any) -> str:
        name = clean_str(v)
        if name is None:
            raise ValueError("Full name is required")
        return name


class StudentUpdate(_StudentFields):
    """
    Schéma de mise à jour partielle (PUT /api/students/{id}).
    Seuls les champs présents dans le corps sont modifiés (model_dump(exclude_unset=True)).
    """
    full_name: Optional[str] = Field(None, validation_alias=_ALIASES["full_name"])
    admission_no: Optional[str] = Field(None, validation_alias=_ALIASES["admission_no"])
    tag_id: Optional[str] = Field(None, validation_alias=_ALIASES["tag_id"])
    class_name: Optional[str] = Field(None, validation_alias=_ALIASES["class_name"])
    section: Optional[str] = Field(None, validation_alias=_ALIASES["section"])
    contact_no: Optional[str] = Field(None, validation_alias=_ALIASES["contact_no"])
    status: Optional[int] = None
    created_by: Optional[str] = Field(None, validation_alias=_ALIASES["created_by"])
    father_name: Optional[str] = Field(None, validation_alias=_ALIASES["father_name"])
    father_email: Optional[str] = Field(None, validation_alias=_ALIASES["father_email"])
    address: Optional[str] = None

    @field_validator("full_name", mode="before")
    @classmethod
    def name_not_empty(cls, v: Any) -> Optional[str]:
        if v is None:
            return v
        name = clean_str(v)
        if name is None:
            raise ValueError("Full name is required")
        return name


class StudentResponse(CamelModel):
    """Élève tel que renvoyé au SPA, coordonnées du parent incluses."""
    id: int
    school_code: Optional[str] = None
    zid: Optional[str] = None
    class_name: Optional[str] = None
    section: Optional[str] = None
    tag_id: Optional[str] = None
    full_name: str
    admission_no: Optional[str] = None
    contact_no: Optional[str] = None
    status: Optional[int] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    father_name: Optional[str] = None
    father_email: Optional[str] = None
    address: Optional[str] = None


class ParentResponse(CamelModel):
    student_id: int
    father_name: Optional[str] = None
    father_email: Optional[str] = None
    address: Optional[str] = None


class StudentEnvelope(CamelModel):
    ok: bool = True
    student: StudentResponse


class StudentCreatedEnvelope(CamelModel):
    ok: bool = True
    student: StudentResponse
    parent: Optional[ParentResponse] = None


class StudentListEnvelope(CamelModel):
    ok: bool = True
    students: List[StudentResponse]


# --- Import en masse ---

class ImportRow(CamelModel):
    """Ligne candidate normalisée (tableur ou tableau JSON), quelle que soit sa source."""
    row_index: int
    full_name: Optional[str] = None
    admission_no: Optional[str] = None
    tag_id: Optional[str] = None
    class_name: Optional[str] = None
    section: Optional[str] = None
    contact_no: Optional[str] = None
    status: int = 1
    school_code: Optional[str] = None
    zid: Optional[str] = None
    created_by: Optional[str] = None
    father_name: Optional[str] = None
    father_email: Optional[str] = None
    address: Optional[str] = None

    @property
    def has_parent_details(self) -> bool:
        return any((self.father_name, self.father_email, self.address))


class ImportRowError(CamelModel):
    """Ligne dont la transaction a échoué pendant l'upsert."""
    row: int
    error: str


class ImportOutcome(CamelModel):
    """Bilan interne d'un import : IDs insérés, IDs mis à jour, erreurs par ligne."""
    inserted: List[int] = Field(default_factory=list)
    updated: List[int] = Field(default_factory=list)
    errors: List[ImportRowError] = Field(default_factory=list)


class BulkImportEnvelope(CamelModel):
    """Réponse de l'import JSON : les mises à jour sont comptées comme insertions."""
    ok: bool = True
    inserted: List[int]
    errors: List[ImportRowError]


class ExcelImportResult(CamelModel):
    inserted: int
    updated: int
    errors: List[ImportRowError]


class ExcelImportEnvelope(CamelModel):
    ok: bool = True
    message: str = "Import finished"
    result: ExcelImportResult


class UniquenessCheck(CamelModel):
    """Réponse des vérifications d'unicité du formulaire (tag RFID, numéro d'admission)."""
    ok: bool = True
    exists: bool
    unique: bool
    student_id: Optional[int] = None
