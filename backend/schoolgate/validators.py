"""
Règles de validation et de normalisation partagées entre les formulaires
(schémas Pydantic) et l'import en masse.
"""

import re
from typing import Any, Optional

PHONE_REGEX = re.compile(r"^\d{10}$")
# Volontairement permissif : local@domaine.tld
EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_TAG_LENGTH = 3


def clean_str(value: Any) -> Optional[str]:
    """Retourne la chaîne sans espaces autour, ou None si vide."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def is_valid_phone(value: Optional[str]) -> bool:
    """Un numéro de contact saisi dans un formulaire compte exactement 10 chiffres."""
    if not isinstance(value, str):
        return False
    return PHONE_REGEX.match(value.strip()) is not None


def is_valid_email(value: Optional[str]) -> bool:
    if not value:
        return False
    return EMAIL_REGEX.match(str(value).strip()) is not None


def normalize_phone(value: Any) -> Optional[str]:
    """Ne garde que les chiffres. Aucune contrainte de longueur (import)."""
    if value is None:
        return None
    digits = re.sub(r"\D+", "", str(value))
    return digits or None


def normalize_email(value: Any) -> Optional[str]:
    """Email en minuscules, ou None s'il ne ressemble pas à une adresse."""
    text = clean_str(value)
    if text is None:
        return None
    text = text.lower()
    return text if EMAIL_REGEX.match(text) else None
