"""
Modèle SQLAlchemy pour le journal des lectures de badges RFID.

Table append-only alimentée par les lecteurs : l'application ne fait que la lire.
Le lien avec l'élève se fait par égalité du tag (espaces retirés), pas par clé étrangère.
"""

from sqlalchemy import Column, DateTime, Index, Integer, String

from schoolgate.database import Base


class ScanEvent(Base):
    __tablename__ = "tag_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tag_id = Column(String(120), nullable=False)
    scanned_at = Column(DateTime, nullable=False)   # Heure locale du lecteur

    __table_args__ = (
        Index("ix_tag_logs_scanned_at", "scanned_at"),
    )
