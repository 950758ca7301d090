from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field

from stockwatch.schemas.common import JsonDecimal

class UserPreferences(BaseModel):
    owner_id: str = Field(alias="user_id")
    default_high_percentage: JsonDecimal = Decimal("10.00")
    default_low_percentage: JsonDecimal = Decimal("-10.00")
    updated_at: datetime | None = None

    class Config:
        populate_by_name = True

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

class PreferencesUpdate(BaseModel):
    """PUT /preferences"""
    default_high_percentage: JsonDecimal
    default_low_percentage: JsonDecimal
