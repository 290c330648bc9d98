"""
Schémas Pydantic pour le tableau de bord du jour et l'historique des présences.

Note : on importe datetime en tant que module (dt) pour éviter le conflit de nommage
entre le champ `date` et le type `datetime.date` dans Pydantic v2.
"""

import datetime as dt
from typing import List, Literal, Optional

from schoolgate.schemas.common import CamelModel

AttendanceStatusName = Literal["Present", "Pending", "Absent"]


class AttendanceStats(CamelModel):
    total: int
    present: int
    pending: int
    absent: int


class DashboardRow(CamelModel):
    """Ligne du tableau de bord (GET /api/dashboard/today)."""
    id: int
    admission_code: Optional[str]
    name: Optional[str]
    in_time: Optional[str]
    out_time: Optional[str]
    message_error: str
    status: AttendanceStatusName


class ReportRow(CamelModel):
    """Ligne de l'historique (GET /api/report/attendance) : une par élève et par jour."""
    id: int
    tag_id: Optional[str]
    name: Optional[str]
    in_time: Optional[str]
    out_time: Optional[str]
    date: dt.date
    message: str
    status: AttendanceStatusName


class DashboardResponse(CamelModel):
    ok: bool = True
    rows: List[DashboardRow]
    stats: AttendanceStats


class ReportResponse(CamelModel):
    ok: bool = True
    rows: List[ReportRow]
    stats: AttendanceStats
