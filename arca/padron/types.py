"""Type definitions for Padron A13 lookups."""

from pydantic import BaseModel, ConfigDict

from arca.wsaa.types import to_camel


class PersonaRecord(BaseModel):
    """Shaped taxpayer record returned to API callers."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    razon_social: str
    domicilio: str
    estado: str
