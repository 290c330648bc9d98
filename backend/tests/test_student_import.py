"""
Tests du service d'import en masse des élèves (tableau JSON ou lignes de tableur).
Normalisation en mémoire ; réconciliation contre une base SQLite en mémoire.
"""

from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from schoolgate.config import RecordOrigin
from schoolgate.models.student import ParentDetail, Student
from schoolgate.services import student_import
from schoolgate.services.exceptions import ImportDuplicatesError
from schoolgate.services.student_import import (
    clean_header,
    normalize_row,
    normalize_rows,
    reconcile_import,
    resolve_header,
)

ORIGIN = RecordOrigin(school_code="shalom", zid="1", created_by="import")


def count(db_session, model) -> int:
    return db_session.execute(select(func.count()).select_from(model)).scalar()


# --- En-têtes ---

def test_clean_header():
    assert clean_header("fatherName") == "father name"
    assert clean_header("FATHER_NAME") == "father name"
    assert clean_header(" Admission No. ") == "admission no"


@pytest.mark.parametrize("header, field", [
    ("Admission No", "admission_no"),
    ("studentRegistrationNbr", "admission_no"),
    ("Student Name", "full_name"),
    ("fullName", "full_name"),
    ("RFID No", "tag_id"),
    ("tagId", "tag_id"),
    ("Class", "class_name"),
    ("csaction", "section"),
    ("noOfCommunication", "contact_no"),
    ("Father Email", "father_email"),
    ("fatherEmailId", "father_email"),
    ("Father Name", "father_name"),
    ("Guardian", "father_name"),
    ("Full Address", "address"),
])
def test_resolve_header_alias(header, field):
    assert resolve_header(header) == field


def test_resolve_header_inconnu():
    assert resolve_header("Blood Group") is None
    assert resolve_header("") is None


def test_resolve_header_mots_cles_reserves_aux_tableurs():
    assert resolve_header("Student Admission Code") is None
    assert resolve_header("Student Admission Code", keyword_fallback=True) == "admission_no"
    assert resolve_header("ipAddress") is None


# --- Normalisation ---

def test_normalize_row_complete():
    row = normalize_row({
        "Student Name": " Riya Sharma ",
        "Admission No": "ADM-01",
        "RFID No": "TAG100",
        "Contact No": "+91 98765 43210",
        "Father Email": "Parent@Mail.COM",
        "Status": "0",
        "Blood Group": "O+",
    }, 3, ORIGIN)

    assert row.row_index == 3
    assert row.full_name == "Riya Sharma"
    assert row.admission_no == "ADM-01"
    assert row.tag_id == "TAG100"
    assert row.contact_no == "919876543210"
    assert row.father_email == "parent@mail.com"
    assert row.status == 0
    assert row.school_code == "shalom"
    assert row.created_by == "import"


def test_normalize_row_email_dans_colonne_nom_pere():
    row = normalize_row({"fullName": "Riya", "fatherName": "dad@mail.com"}, 1, ORIGIN)
    assert row.father_name is None
    assert row.father_email == "dad@mail.com"


def test_normalize_row_email_invalide_ignore():
    row = normalize_row({"fullName": "Riya", "fatherEmail": "pas un email"}, 1, ORIGIN)
    assert row.father_email is None
    assert not row.has_parent_details


def test_normalize_row_cle_json_inconnue_ignoree():
    """Une clé JSON hors alias (ipAddress) ne doit pas alimenter l'adresse du parent."""
    row = normalize_row(
        {"fullName": "Riya", "admissionNo": "A1", "ipAddress": "10.0.0.5", "address": "12 Main St"},
        1, ORIGIN,
    )
    assert row.address == "12 Main St"

    row = normalize_row({"fullName": "Riya", "ipAddress": "10.0.0.5"}, 1, ORIGIN)
    assert row.address is None
    assert not row.has_parent_details


def test_normalize_row_statut_illisible_defaut_1():
    assert normalize_row({"fullName": "Riya", "status": "actif"}, 1, ORIGIN).status == 1
    assert normalize_row({"fullName": "Riya"}, 1, ORIGIN).status == 1


def test_normalize_rows_numerotees_a_partir_de_1():
    rows = normalize_rows([{"fullName": "A"}, {"fullName": "B"}], ORIGIN)
    assert [r.row_index for r in rows] == [1, 2]


# --- Doublons ---

def test_doublon_admission_dans_le_lot_aucune_ecriture(db_session):
    rows = normalize_rows([
        {"fullName": "A", "admissionNo": "ADM1", "tagId": "T001"},
        {"fullName": "B", "admissionNo": "ADM1", "tagId": "T002"},
    ], ORIGIN)

    with pytest.raises(ImportDuplicatesError) as exc_info:
        reconcile_import(db_session, rows)

    assert exc_info.value.in_file is True
    assert exc_info.value.duplicate_admissions == ["ADM1"]
    assert exc_info.value.duplicate_rfids == []
    assert count(db_session, Student) == 0


def test_doublon_tag_dans_le_lot_apres_trim(db_session):
    rows = normalize_rows([
        {"fullName": "A", "admissionNo": "ADM1", "tagId": "T001"},
        {"fullName": "B", "admissionNo": "ADM2", "tagId": " T001 "},
    ], ORIGIN)

    with pytest.raises(ImportDuplicatesError) as exc_info:
        reconcile_import(db_session, rows)

    assert exc_info.value.duplicate_rfids == ["T001"]
    assert count(db_session, Student) == 0


def test_doublon_deja_en_base_aucune_ecriture(db_session):
    db_session.add(Student(full_name="Existant", admission_no="ADM9", tag_id="T900"))
    db_session.commit()

    rows = normalize_rows([
        {"fullName": "Nouveau", "admissionNo": "ADM10", "tagId": "T900"},
        {"fullName": "Autre", "admissionNo": "ADM11"},
    ], ORIGIN)

    with pytest.raises(ImportDuplicatesError) as exc_info:
        reconcile_import(db_session, rows)

    assert exc_info.value.in_file is False
    assert exc_info.value.duplicate_rfids == ["T900"]
    assert "already exists in database" in str(exc_info.value)
    assert count(db_session, Student) == 1


# --- Upsert ---

def test_import_insere_toutes_les_lignes(db_session):
    rows = normalize_rows([
        {"fullName": "A", "admissionNo": "ADM1", "tagId": "T001", "fatherName": "Papa A"},
        {"fullName": "B", "admissionNo": "ADM2", "tagId": "T002"},
        {"fullName": "C"},
    ], ORIGIN)

    outcome = reconcile_import(db_session, rows)

    assert len(outcome.inserted) == 3
    assert outcome.updated == []
    assert outcome.errors == []
    assert count(db_session, Student) == 3
    # Fiche parent créée uniquement quand un champ parent est renseigné
    assert count(db_session, ParentDetail) == 1


def test_ligne_en_echec_nempeche_pas_les_autres(db_session):
    rows = normalize_rows([
        {"fullName": "A", "admissionNo": "ADM1"},
        {"admissionNo": "ADM2"},
        {"fullName": "C", "admissionNo": "ADM3"},
    ], ORIGIN)

    outcome = reconcile_import(db_session, rows)

    assert len(outcome.inserted) == 2
    assert len(outcome.errors) == 1
    assert outcome.errors[0].row == 2
    assert outcome.errors[0].error == "Full name is required"
    assert count(db_session, Student) == 2


def test_upsert_met_a_jour_et_fusionne_le_parent(db_session):
    student = Student(full_name="Ancien", admission_no="ADM1", tag_id="T001", ip_address="10.0.0.1")
    student.parent = ParentDetail(father_name="Papa", address="1 rue Haute")
    db_session.add(student)
    db_session.commit()

    row = normalize_row(
        {"fullName": "Nouveau", "admissionNo": "ADM1", "tagId": "T001", "fatherEmail": "papa@mail.com"},
        1, ORIGIN,
    )
    student_id, action = student_import._upsert_row(db_session, row)
    db_session.commit()

    assert action == student_import.UPDATED
    assert student_id == student.id
    db_session.refresh(student)
    assert student.full_name == "Nouveau"
    assert student.ip_address is None
    # Valeurs null du lot : l'existant est conservé
    assert student.parent.father_name == "Papa"
    assert student.parent.address == "1 rue Haute"
    assert student.parent.father_email == "papa@mail.com"


def test_ligne_en_conflit_en_base_annulee_seule(db_session):
    """
    Tag pris entre la pré-vérification et l'écriture : la contrainte UNIQUE
    fait échouer la ligne, les lignes déjà commitées restent et la suivante passe.
    """
    db_session.add(Student(full_name="Arrivé entre-temps", admission_no="ADM99", tag_id="T002"))
    db_session.commit()

    rows = normalize_rows([
        {"fullName": "A", "admissionNo": "ADM1", "tagId": "T001"},
        {"fullName": "B", "admissionNo": "ADM2", "tagId": "T002"},
        {"fullName": "C", "admissionNo": "ADM3", "tagId": "T003"},
    ], ORIGIN)

    with patch("schoolgate.services.student_import.find_store_duplicates") as mock_store:
        mock_store.return_value = (set(), set())
        outcome = reconcile_import(db_session, rows)

    assert len(outcome.inserted) == 2
    assert [e.row for e in outcome.errors] == [2]
    assert "tag_id" in outcome.errors[0].error
    assert count(db_session, Student) == 3
    admissions = set(db_session.execute(select(Student.admission_no)).scalars())
    assert admissions == {"ADM99", "ADM1", "ADM3"}
