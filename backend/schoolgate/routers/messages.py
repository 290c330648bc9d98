"""
Router du journal des SMS envoyés aux parents.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from schoolgate.database import get_db
from schoolgate.schemas.message import MessagesResponse
from schoolgate.services import message_service

router = APIRouter(prefix="/api/messages", tags=["Messages"])


@router.get("", response_model=MessagesResponse, summary="Lister les SMS envoyés")
def list_messages(
    search: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    failure_type: Optional[str] = Query(None, alias="failureType"),
    db: Session = Depends(get_db),
):
    """
    Filtres optionnels : `search` (résidence, numéro, texte), `status` (entier),
    `failureType=user_not_found` (envois sans numéro rejetés par la passerelle).
    """
    status_value = None
    if status is not None and status.strip() != "":
        try:
            status_value = int(status)
        except ValueError:
            raise HTTPException(status_code=400, detail="Status must be a number")

    rows = message_service.list_messages(
        db,
        search=search.strip() if search else None,
        status=status_value,
        failure_type=failure_type,
    )
    return MessagesResponse(rows=rows)
