"""
Router de l'historique des présences.
GET /api/report/attendance?date=YYYY-MM-DD
GET /api/report/attendance?from=YYYY-MM-DD&to=YYYY-MM-DD
/api/report/history est un alias conservé pour les anciens écrans.
"""

import datetime as dt
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from schoolgate.database import get_db
from schoolgate.schemas.attendance import ReportResponse
from schoolgate.services import attendance_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/report", tags=["Historique"])


@router.get("/attendance", response_model=ReportResponse, summary="Historique des présences")
@router.get("/history", response_model=ReportResponse, summary="Historique des présences (alias)")
def attendance_report(
    date: Optional[dt.date] = Query(None),
    date_from: Optional[dt.date] = Query(None, alias="from"),
    date_to: Optional[dt.date] = Query(None, alias="to"),
    db: Session = Depends(get_db),
):
    """
    Sans paramètre : aujourd'hui. Avec `date` : ce jour. Avec `from` et `to` :
    chaque jour de l'intervalle (bornes incluses), lignes concaténées jour par jour.
    """
    try:
        return attendance_service.get_attendance_history(
            db, day=date, date_from=date_from, date_to=date_to
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SQLAlchemyError as e:
        logger.error("Historique indisponible : %s", e)
        raise HTTPException(status_code=500, detail="History report failed")
