"""
Router du tableau de bord : présences du jour calculées à partir des scans RFID.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from schoolgate.database import get_db
from schoolgate.schemas.attendance import DashboardResponse
from schoolgate.services import attendance_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["Tableau de bord"])


@router.get("/today", response_model=DashboardResponse, summary="Présences du jour")
def dashboard_today(db: Session = Depends(get_db)):
    """
    Une ligne par élève : heure d'entrée, heure de sortie, statut (Present / Pending / Absent)
    et message, plus les compteurs du jour.
    """
    try:
        return attendance_service.get_today_attendance(db)
    except SQLAlchemyError as e:
        logger.error("Tableau de bord indisponible : %s", e)
        raise HTTPException(status_code=500, detail="Dashboard failed")
