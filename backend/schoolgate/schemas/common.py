"""
Base commune des schémas exposés au frontend.
Le SPA consomme des clés camelCase : les champs Python restent en snake_case.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class OkResponse(CamelModel):
    """Réponse minimale `{ok, message}` (suppression, etc.)."""
    ok: bool = True
    message: str
