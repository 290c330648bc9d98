"""
Exceptions métier levées par les services et traduites en réponses HTTP par les routers.
Les violations de règles métier dérivent de ValueError.
"""

from typing import Iterable, List


class StudentNotFoundError(LookupError):
    def __init__(self, student_id: int):
        self.student_id = student_id
        super().__init__(f"Student {student_id} not found")


class DuplicateStudentError(ValueError):
    """Numéro d'admission ou tag RFID déjà utilisé par un autre élève."""

    MESSAGES = {
        "tag_id": "RFID / Tag ID is already in use by another student",
        "admission_no": "Admission number is already in use by another student",
    }

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(self.MESSAGES.get(field, f"{field} already exists"))


class ImportDuplicatesError(ValueError):
    """Import refusé en bloc : doublons dans le lot ou déjà présents en base."""

    def __init__(self, duplicate_admissions: Iterable[str], duplicate_rfids: Iterable[str], in_file: bool):
        self.duplicate_admissions: List[str] = sorted(set(duplicate_admissions))
        self.duplicate_rfids: List[str] = sorted(set(duplicate_rfids))
        self.in_file = in_file
        if in_file:
            message = "Duplicate RFID or Admission No found in uploaded file"
        else:
            message = "Duplicate RFID or Admission No already exists in database"
        super().__init__(message)


class ImportFileError(ValueError):
    """Fichier d'import illisible, vide ou d'un format refusé."""
