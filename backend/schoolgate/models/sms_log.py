"""
Modèle SQLAlchemy pour le journal des SMS envoyés aux parents.
Écrit par la passerelle SMS, consulté en lecture seule par l'écran Messages.
"""

from sqlalchemy import Column, DateTime, Integer, SmallInteger, String, Text, func

from schoolgate.database import Base

USER_NOT_FOUND_RESPONSE = "USER NOT FOUND"


class SmsLog(Base):
    __tablename__ = "sms_log_master"

    id = Column(Integer, primary_key=True, autoincrement=True)
    residence_id = Column(String(120), nullable=True)
    mobile_no = Column(String(50), nullable=True)
    sms_text = Column(Text, nullable=True)
    api_response = Column(String(500), nullable=True)
    status = Column(SmallInteger, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
