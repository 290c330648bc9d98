"""
Modèles SQLAlchemy pour les tables student_master et student_parent_details.

Le numéro d'admission et le tag RFID sont uniques lorsqu'ils sont renseignés :
la contrainte en base est l'arbitre final, les pré-vérifications du service
ne servent qu'à produire un message clair.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, SmallInteger, String, func
from sqlalchemy.orm import relationship

from schoolgate.database import Base


class Student(Base):
    __tablename__ = "student_master"

    id = Column(Integer, primary_key=True, autoincrement=True)
    school_code = Column(String(80), nullable=True)
    zid = Column(String(80), nullable=True)
    class_name = Column(String(80), nullable=True)
    section = Column(String(60), nullable=True)
    tag_id = Column(String(120), unique=True, nullable=True)        # Badge RFID
    full_name = Column(String(220), nullable=False)
    admission_no = Column(String(220), unique=True, nullable=True)  # Numéro d'inscription
    contact_no = Column(String(50), nullable=True)
    status = Column(SmallInteger, nullable=False, default=1)       # 1 = actif, 0 = inactif
    created_by = Column(String(120), nullable=True)
    ip_address = Column(String(64), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    parent = relationship(
        "ParentDetail",
        uselist=False,
        back_populates="student",
        cascade="all, delete-orphan",
    )


class ParentDetail(Base):
    """Coordonnées du parent/tuteur (0 ou 1 par élève, créées à la demande)."""
    __tablename__ = "student_parent_details"

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_id = Column(
        Integer,
        ForeignKey("student_master.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    father_name = Column(String(250), nullable=True)
    father_email = Column(String(250), nullable=True)
    address = Column(String(1000), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    student = relationship("Student", back_populates="parent")
