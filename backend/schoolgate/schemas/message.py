"""
Schémas Pydantic pour le journal des SMS (écran Messages).
"""

from typing import List, Optional

from schoolgate.schemas.common import CamelModel


class SmsLogRow(CamelModel):
    sms_seq_nbr: int
    residence_id: Optional[str] = None
    mobile_no: Optional[str] = None
    sms_text: Optional[str] = None
    api_response: Optional[str] = None
    status: Optional[int] = None
    create_date: Optional[str] = None   # yyyy-MM-dd HH:mm:ss


class MessagesResponse(CamelModel):
    ok: bool = True
    rows: List[SmsLogRow]
