"""
Service de consultation du journal des SMS envoyés aux parents.
"""

from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from schoolgate.models.sms_log import USER_NOT_FOUND_RESPONSE, SmsLog
from schoolgate.schemas.message import SmsLogRow

FAILURE_USER_NOT_FOUND = "user_not_found"


def list_messages(
    db: Session,
    search: Optional[str] = None,
    status: Optional[int] = None,
    failure_type: Optional[str] = None,
) -> List[SmsLogRow]:
    """
    Retourne les SMS du plus récent au plus ancien.
    - search : LIKE sur l'identifiant de résidence, le numéro et le texte
    - status : égalité stricte
    - failure_type="user_not_found" : envois sans numéro rejetés par la passerelle
    """
    stmt = select(SmsLog)

    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(
            SmsLog.residence_id.like(pattern),
            SmsLog.mobile_no.like(pattern),
            SmsLog.sms_text.like(pattern),
        ))
    if status is not None:
        stmt = stmt.where(SmsLog.status == status)
    if failure_type == FAILURE_USER_NOT_FOUND:
        stmt = stmt.where(
            SmsLog.mobile_no.is_(None),
            SmsLog.api_response == USER_NOT_FOUND_RESPONSE,
        )

    logs = db.execute(stmt.order_by(SmsLog.created_at.desc(), SmsLog.id.desc())).scalars().all()
    return [
        SmsLogRow(
            sms_seq_nbr=log.id,
            residence_id=log.residence_id,
            mobile_no=log.mobile_no,
            sms_text=log.sms_text,
            api_response=log.api_response,
            status=log.status,
            create_date=log.created_at.strftime("%Y-%m-%d %H:%M:%S") if log.created_at else None,
        )
        for log in logs
    ]
