from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator


def _clean_name(value: str) -> str:
    text = value.strip()
    if not text:
        raise ValueError("location name must not be blank")
    return text


class Location(BaseModel):
    """
    Base schema for audit location (shared fields).
    """
    name: str
    description: Optional[str] = None
    active: bool = True
    company_id: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        return _clean_name(value)


class LocationCreate(Location):
    """
    Input model for creating a new location.
    """
    pass

class LocationUpdate(BaseModel):
    """
    Input model for updating a location. Unset fields keep their value.
    """
    name: Optional[str] = None
    description: Optional[str] = None
    active: Optional[bool] = None
    company_id: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("name")
    @classmethod
    def check_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return _clean_name(value)


class LocationRead(Location):
    """
    Output model for reading location details from Cosmos DB.
    Includes Cosmos DB system properties.
    """
    id: str  # primary key and partition key
    etag: Optional[str] = Field(default=None, alias="_etag")
    ts: Optional[int] = Field(default=None, alias="_ts")

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore"
    )
