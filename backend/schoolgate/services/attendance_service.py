"""
Calcul des présences à partir des lectures de badges RFID.

Pour chaque élève et chaque jour :
- aucune lecture → Pending avant l'heure limite (11:00), Absent après
  (toujours Absent pour un jour passé, jamais pour un jour futur) ;
- au moins une lecture → Present, heure d'entrée = première lecture ;
- heure de sortie = dernière lecture, seulement s'il y a plusieurs lectures
  espacées d'au moins 30 minutes (en deçà, la 2e lecture est un rebond du badge).

Les fonctions de dérivation reçoivent `now` en paramètre : aucune ne lit l'horloge.
"""

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from schoolgate.config import settings
from schoolgate.models.scan_log import ScanEvent
from schoolgate.models.student import Student
from schoolgate.schemas.attendance import (
    AttendanceStats,
    DashboardResponse,
    DashboardRow,
    ReportResponse,
    ReportRow,
)

logger = logging.getLogger(__name__)

PRESENT = "Present"
PENDING = "Pending"
ABSENT = "Absent"

MSG_EXITED = "Student exited"
MSG_INSIDE = "Student inside (cooldown active)"
MSG_AWAITING = "Awaiting scan"
MSG_NO_SCAN = "No scan today"


@dataclass(frozen=True)
class AttendanceStatus:
    """État dérivé (non stocké) d'un élève pour un jour donné."""
    status: str
    in_time: Optional[dt.datetime]
    out_time: Optional[dt.datetime]
    scan_count: int

    @property
    def message(self) -> str:
        return status_message(self.status, self.out_time)


@dataclass(frozen=True)
class StudentScans:
    """Agrégat des lectures d'un élève sur une journée, tel que renvoyé par la BDD."""
    student_id: int
    admission_no: Optional[str]
    tag_id: Optional[str]
    name: Optional[str]
    first_scan: Optional[dt.datetime]
    last_scan: Optional[dt.datetime]
    scan_count: int


def is_after_cutoff(target_date: dt.date, now: dt.datetime, cutoff: Optional[dt.time] = None) -> bool:
    """Vrai si un élève sans lecture ce jour-là doit être considéré absent."""
    cutoff = cutoff or settings.ATTENDANCE_CUTOFF
    today = now.date()
    if target_date < today:
        return True
    if target_date > today:
        return False
    return now.time() >= cutoff


def derive_status(
    scan_count: int,
    first_scan: Optional[dt.datetime],
    last_scan: Optional[dt.datetime],
    target_date: dt.date,
    now: dt.datetime,
    cutoff: Optional[dt.time] = None,
    cooldown_minutes: Optional[int] = None,
) -> AttendanceStatus:
    """Dérive le statut d'un élève à partir de l'agrégat min / max / nombre de lectures."""
    if scan_count <= 0:
        status = ABSENT if is_after_cutoff(target_date, now, cutoff) else PENDING
        return AttendanceStatus(status=status, in_time=None, out_time=None, scan_count=0)

    if cooldown_minutes is None:
        cooldown_minutes = settings.SCAN_COOLDOWN_MINUTES

    out_time = None
    if scan_count > 1 and (last_scan - first_scan) >= dt.timedelta(minutes=cooldown_minutes):
        out_time = last_scan

    return AttendanceStatus(status=PRESENT, in_time=first_scan, out_time=out_time, scan_count=scan_count)


def status_from_scans(
    scans: Sequence[dt.datetime],
    target_date: dt.date,
    now: dt.datetime,
    cutoff: Optional[dt.time] = None,
    cooldown_minutes: Optional[int] = None,
) -> AttendanceStatus:
    """Variante de derive_status à partir de la liste brute des horodatages."""
    if not scans:
        return derive_status(0, None, None, target_date, now, cutoff, cooldown_minutes)
    return derive_status(len(scans), min(scans), max(scans), target_date, now, cutoff, cooldown_minutes)


def status_message(status: str, out_time: Optional[dt.datetime]) -> str:
    if status == PRESENT:
        return MSG_EXITED if out_time else MSG_INSIDE
    if status == PENDING:
        return MSG_AWAITING
    return MSG_NO_SCAN


def compute_stats(statuses: Iterable[str]) -> AttendanceStats:
    """Compte les statuts ligne par ligne : present + pending + absent == total."""
    statuses = list(statuses)
    return AttendanceStats(
        total=len(statuses),
        present=statuses.count(PRESENT),
        pending=statuses.count(PENDING),
        absent=statuses.count(ABSENT),
    )


def format_clock(value: Optional[dt.datetime]) -> Optional[str]:
    """Heure affichée par le SPA, ex. « 08:02 AM »."""
    return value.strftime("%I:%M %p") if value else None


def _day_bounds(day: dt.date) -> tuple[dt.datetime, dt.datetime]:
    start = dt.datetime.combine(day, dt.time.min)
    return start, start + dt.timedelta(days=1)


def fetch_student_scans(db: Session, day: dt.date) -> List[StudentScans]:
    """
    Agrège les lectures du jour par élève (LEFT JOIN : les élèves sans lecture sont inclus).
    Tri : élèves badgés d'abord par heure d'entrée croissante, puis les autres par ID.
    """
    start, end = _day_bounds(day)
    student_tag = func.trim(Student.tag_id)

    rows = db.execute(
        select(
            Student.id,
            Student.admission_no,
            student_tag.label("tag_id"),
            Student.full_name,
            func.min(ScanEvent.scanned_at).label("first_scan"),
            func.max(ScanEvent.scanned_at).label("last_scan"),
            func.count(ScanEvent.id).label("scan_count"),
        )
        .select_from(Student)
        .outerjoin(
            ScanEvent,
            and_(
                func.trim(ScanEvent.tag_id) == student_tag,
                ScanEvent.scanned_at >= start,
                ScanEvent.scanned_at < end,
            ),
        )
        .group_by(Student.id, Student.admission_no, Student.tag_id, Student.full_name)
        .order_by(Student.id)
    ).all()

    scans = [
        StudentScans(
            student_id=row.id,
            admission_no=row.admission_no,
            tag_id=row.tag_id,
            name=row.full_name,
            first_scan=row.first_scan,
            last_scan=row.last_scan,
            scan_count=row.scan_count or 0,
        )
        for row in rows
    ]
    scans.sort(key=lambda s: (s.scan_count == 0, s.first_scan or dt.datetime.max, s.student_id))
    return scans


def get_today_attendance(db: Session, now: Optional[dt.datetime] = None) -> DashboardResponse:
    """Tableau de bord du jour : statut de chaque élève + compteurs."""
    now = now or dt.datetime.now()
    today = now.date()

    rows: List[DashboardRow] = []
    for scans in fetch_student_scans(db, today):
        state = derive_status(scans.scan_count, scans.first_scan, scans.last_scan, today, now)
        rows.append(DashboardRow(
            id=scans.student_id,
            admission_code=scans.tag_id,
            name=scans.name,
            in_time=format_clock(state.in_time),
            out_time=format_clock(state.out_time),
            message_error=state.message,
            status=state.status,
        ))

    return DashboardResponse(rows=rows, stats=compute_stats(r.status for r in rows))


def get_attendance_for_day(db: Session, day: dt.date, now: dt.datetime) -> List[ReportRow]:
    rows: List[ReportRow] = []
    for scans in fetch_student_scans(db, day):
        state = derive_status(scans.scan_count, scans.first_scan, scans.last_scan, day, now)
        rows.append(ReportRow(
            id=scans.student_id,
            tag_id=scans.tag_id,
            name=scans.name,
            in_time=format_clock(state.in_time),
            out_time=format_clock(state.out_time),
            date=day,
            message=state.message,
            status=state.status,
        ))
    return rows


def iter_days(date_from: dt.date, date_to: dt.date) -> List[dt.date]:
    """Jours de l'intervalle [date_from, date_to], bornes incluses."""
    if date_from > date_to:
        raise ValueError("'from' must be on or before 'to'")
    span = (date_to - date_from).days + 1
    if span > settings.REPORT_MAX_RANGE_DAYS:
        raise ValueError(f"Date range too large: maximum {settings.REPORT_MAX_RANGE_DAYS} days")
    return [date_from + dt.timedelta(days=i) for i in range(span)]


def get_attendance_history(
    db: Session,
    day: Optional[dt.date] = None,
    date_from: Optional[dt.date] = None,
    date_to: Optional[dt.date] = None,
    now: Optional[dt.datetime] = None,
) -> ReportResponse:
    """
    Historique des présences pour un jour (par défaut aujourd'hui) ou un intervalle.
    Chaque jour est calculé indépendamment ; les lignes sont concaténées sans cumul.
    Lève ValueError si l'intervalle est incomplet, inversé ou trop long.
    """
    now = now or dt.datetime.now()

    if date_from is not None or date_to is not None:
        if date_from is None or date_to is None:
            raise ValueError("Both 'from' and 'to' are required for a date range")
        days = iter_days(date_from, date_to)
    else:
        days = [day or now.date()]

    rows: List[ReportRow] = []
    for d in days:
        rows.extend(get_attendance_for_day(db, d, now))

    logger.debug("Historique présences : %d jour(s), %d ligne(s)", len(days), len(rows))
    return ReportResponse(rows=rows, stats=compute_stats(r.status for r in rows))
