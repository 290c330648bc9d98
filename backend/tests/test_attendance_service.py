"""
Tests du calcul des présences : règles de dérivation (fonctions pures)
et agrégation des lectures sur une base SQLite en mémoire.
"""

import datetime as dt

import pytest

from schoolgate.models.scan_log import ScanEvent
from schoolgate.models.student import Student
from schoolgate.services import attendance_service
from schoolgate.services.attendance_service import (
    ABSENT,
    PENDING,
    PRESENT,
    compute_stats,
    derive_status,
    format_clock,
    is_after_cutoff,
    iter_days,
    status_from_scans,
)

DAY = dt.date(2024, 3, 4)


def at(hour: int, minute: int, day: dt.date = DAY) -> dt.datetime:
    return dt.datetime.combine(day, dt.time(hour, minute))


# --- Heure limite ---

def test_jour_passe_toujours_apres_limite():
    assert is_after_cutoff(DAY - dt.timedelta(days=1), at(7, 0))


def test_jour_futur_jamais_apres_limite():
    assert not is_after_cutoff(DAY + dt.timedelta(days=1), at(23, 59))


def test_aujourdhui_limite_incluse():
    assert not is_after_cutoff(DAY, at(10, 59))
    assert is_after_cutoff(DAY, at(11, 0))


# --- Dérivation du statut ---

def test_sans_lecture_avant_11h_pending():
    state = status_from_scans([], DAY, at(10, 59))
    assert state.status == PENDING
    assert state.in_time is None and state.out_time is None
    assert state.message == "Awaiting scan"


def test_sans_lecture_a_11h_absent():
    state = status_from_scans([], DAY, at(11, 0))
    assert state.status == ABSENT
    assert state.message == "No scan today"


def test_sans_lecture_jour_passe_absent():
    state = status_from_scans([], DAY - dt.timedelta(days=3), at(8, 0))
    assert state.status == ABSENT


def test_une_lecture_present_sans_sortie():
    state = status_from_scans([at(8, 2)], DAY, at(9, 0))
    assert state.status == PRESENT
    assert state.in_time == at(8, 2)
    assert state.out_time is None
    assert state.message == "Student inside (cooldown active)"


def test_deux_lectures_rapprochees_rebond():
    """08:02 puis 08:05 : la seconde lecture est un rebond, pas de sortie."""
    state = status_from_scans([at(8, 5), at(8, 2)], DAY, at(12, 0))
    assert state.status == PRESENT
    assert state.in_time == at(8, 2)
    assert state.out_time is None


def test_deux_lectures_espacees_sortie():
    state = status_from_scans([at(8, 0), at(16, 10)], DAY, at(17, 0))
    assert state.in_time == at(8, 0)
    assert state.out_time == at(16, 10)
    assert state.message == "Student exited"


def test_ecart_exact_30_minutes_compte_comme_sortie():
    state = derive_status(2, at(8, 0), at(8, 30), DAY, at(9, 0))
    assert state.out_time == at(8, 30)


def test_ecart_29_minutes_pas_de_sortie():
    state = derive_status(3, at(8, 0), at(8, 29), DAY, at(9, 0))
    assert state.out_time is None


def test_limite_et_cooldown_parametrables():
    assert derive_status(0, None, None, DAY, at(9, 0), cutoff=dt.time(9, 0)).status == ABSENT
    assert derive_status(2, at(8, 0), at(8, 10), DAY, at(9, 0), cooldown_minutes=5).out_time == at(8, 10)


def test_compute_stats_somme_egale_total():
    stats = compute_stats([PRESENT, PRESENT, PENDING, ABSENT, ABSENT, ABSENT])
    assert stats.total == 6
    assert (stats.present, stats.pending, stats.absent) == (2, 1, 3)
    assert stats.present + stats.pending + stats.absent == stats.total


def test_format_clock():
    assert format_clock(at(8, 2)) == "08:02 AM"
    assert format_clock(at(16, 10)) == "04:10 PM"
    assert format_clock(None) is None


# --- Intervalles ---

def test_iter_days_bornes_incluses():
    days = iter_days(DAY, DAY + dt.timedelta(days=2))
    assert days == [DAY, DAY + dt.timedelta(days=1), DAY + dt.timedelta(days=2)]


def test_iter_days_intervalle_inverse():
    with pytest.raises(ValueError):
        iter_days(DAY, DAY - dt.timedelta(days=1))


def test_iter_days_intervalle_trop_long():
    with pytest.raises(ValueError, match="too large"):
        iter_days(DAY, DAY + dt.timedelta(days=400))


# --- Agrégation en base ---

def seed(db_session):
    alice = Student(full_name="Alice", admission_no="A1", tag_id="TAG001")
    bob = Student(full_name="Bob", admission_no="A2", tag_id=" TAG002 ")
    chloe = Student(full_name="Chloe", admission_no="A3", tag_id="TAG003")
    db_session.add_all([alice, bob, chloe])
    db_session.add_all([
        ScanEvent(tag_id="TAG002", scanned_at=at(7, 45)),
        ScanEvent(tag_id="TAG001 ", scanned_at=at(8, 2)),
        ScanEvent(tag_id="TAG001", scanned_at=at(8, 5)),
        ScanEvent(tag_id="TAG002", scanned_at=at(16, 10)),
        # Veille : ne doit pas compter pour DAY
        ScanEvent(tag_id="TAG003", scanned_at=at(9, 0, DAY - dt.timedelta(days=1))),
    ])
    db_session.commit()
    return alice, bob, chloe


def test_fetch_student_scans_tri_et_agregat(db_session):
    alice, bob, chloe = seed(db_session)

    scans = attendance_service.fetch_student_scans(db_session, DAY)

    # Badgés d'abord par heure d'entrée, puis les autres par ID
    assert [s.student_id for s in scans] == [bob.id, alice.id, chloe.id]
    assert scans[0].tag_id == "TAG002"
    assert scans[0].scan_count == 2
    assert scans[1].first_scan == at(8, 2)
    assert scans[1].last_scan == at(8, 5)
    assert scans[2].scan_count == 0


def test_get_attendance_history_jour(db_session):
    seed(db_session)

    report = attendance_service.get_attendance_history(db_session, day=DAY, now=at(12, 0))

    by_name = {r.name: r for r in report.rows}
    assert by_name["Bob"].in_time == "07:45 AM"
    assert by_name["Bob"].out_time == "04:10 PM"
    assert by_name["Alice"].out_time is None
    assert by_name["Chloe"].status == ABSENT
    assert report.stats.total == 3
    assert report.stats.present == 2
    assert report.stats.absent == 1


def test_get_attendance_history_intervalle(db_session):
    seed(db_session)
    veille = DAY - dt.timedelta(days=1)

    report = attendance_service.get_attendance_history(
        db_session, date_from=veille, date_to=DAY, now=at(12, 0)
    )

    assert len(report.rows) == 6
    assert [r.date for r in report.rows[:3]] == [veille] * 3
    assert report.rows[0].name == "Chloe"
    assert report.stats.present == 3
    assert report.stats.total == 6


def test_get_attendance_history_intervalle_incomplet(db_session):
    with pytest.raises(ValueError):
        attendance_service.get_attendance_history(db_session, date_from=DAY, now=at(12, 0))


def test_get_today_attendance_code_admission_est_le_tag(db_session):
    seed(db_session)

    dashboard = attendance_service.get_today_attendance(db_session, now=at(10, 0))

    assert dashboard.rows[0].admission_code == "TAG002"
    chloe = next(r for r in dashboard.rows if r.name == "Chloe")
    assert chloe.status == PENDING
    assert chloe.message_error == "Awaiting scan"
    assert dashboard.stats.pending == 1
