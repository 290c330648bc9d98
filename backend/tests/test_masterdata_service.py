"""
Tests du service « données de référence » : recherche, lecture et génération de classeurs Excel.
Les classeurs sont construits en mémoire avec openpyxl.
"""

import io

import pytest
from openpyxl import Workbook, load_workbook

from schoolgate.config import RecordOrigin
from schoolgate.models.student import ParentDetail, Student
from schoolgate.services import masterdata_service
from schoolgate.services.exceptions import ImportFileError

EXCEL = RecordOrigin(school_code="shalom", zid="1", created_by="excel-import")


def make_workbook(rows) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    output = io.BytesIO()
    wb.save(output)
    return output.getvalue()


def test_parse_uploaded_excel_normalise_les_cellules():
    content = make_workbook([
        ["Admission No", "Student Name", "RFID No", "Contact No", "Father Email", "Blood Group"],
        [1001.0, "Riya Sharma", "TAG100", 9876543210, "Parent@Mail.com", "O+"],
        [None, "Sans admission", "TAG101", None, None, None],
        ["1002", "Kabir", None, None, None, None],
    ])

    rows = masterdata_service.parse_uploaded_excel(content, EXCEL)

    assert [r.admission_no for r in rows] == ["1001", "1002"]
    first = rows[0]
    assert first.row_index == 2
    assert first.full_name == "Riya Sharma"
    assert first.contact_no == "9876543210"
    assert first.father_email == "parent@mail.com"
    assert first.created_by == "excel-import"
    assert rows[1].row_index == 4


def test_parse_uploaded_excel_lien_mailto():
    wb = Workbook()
    ws = wb.active
    ws.append(["Admission No", "Student Name", "Father Email"])
    ws.append(["A1", "Riya", "mailto:Dad@Mail.com"])
    output = io.BytesIO()
    wb.save(output)

    rows = masterdata_service.parse_uploaded_excel(output.getvalue(), EXCEL)

    assert rows[0].father_email == "dad@mail.com"


def test_parse_uploaded_excel_fichier_illisible():
    with pytest.raises(ImportFileError):
        masterdata_service.parse_uploaded_excel(b"ceci n'est pas un classeur", EXCEL)


def test_parse_uploaded_excel_entetes_seuls():
    content = make_workbook([["Admission No", "Student Name"]])
    assert masterdata_service.parse_uploaded_excel(content, EXCEL) == []


def test_export_students_to_excel_colonnes(db_session):
    student = Student(full_name="Riya", admission_no="A1", tag_id="TAG100", class_name="5", status=1)
    student.parent = ParentDetail(father_name="Raj", father_email="raj@mail.com")
    db_session.add(student)
    db_session.commit()

    students = masterdata_service.query_students(db_session)
    content = masterdata_service.export_students_to_excel(students)

    ws = load_workbook(io.BytesIO(content)).active
    assert ws.title == "Students"
    header = [c.value for c in ws[1]]
    assert header == masterdata_service.EXPORT_COLUMNS
    assert ws[1][0].font.bold
    values = dict(zip(header, [c.value for c in ws[2]]))
    assert values["Admission No"] == "A1"
    assert values["StudentSeqNo"] == student.id
    assert values["RFID No"] == "TAG100"
    assert values["Father Email"] == "raj@mail.com"


def test_query_students_filtres(db_session):
    db_session.add_all([
        Student(full_name="Riya Sharma", admission_no="A1", class_name="5"),
        Student(full_name="Kabir Singh", admission_no="A2", class_name="6"),
        Student(full_name="Riya Patel", admission_no="A3", class_name="6"),
    ])
    db_session.commit()

    assert [s.admission_no for s in masterdata_service.query_students(db_session, q="Riya")] == ["A3", "A1"]
    assert [s.admission_no for s in masterdata_service.query_students(db_session, class_name="6")] == ["A3", "A2"]
    assert len(masterdata_service.query_students(db_session, limit=1, offset=1)) == 1


def test_parse_uploaded_excel_entete_approchant():
    """Les en-têtes de tableur hors alias sont reconnus par mot-clé."""
    content = make_workbook([
        ["Student Admission Code", "Student Name", "Pupil RFID Code"],
        ["A1", "Riya", "TAG100"],
    ])

    rows = masterdata_service.parse_uploaded_excel(content, EXCEL)

    assert rows[0].admission_no == "A1"
    assert rows[0].tag_id == "TAG100"
