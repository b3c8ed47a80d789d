from pydantic import BaseModel, Field
from typing import List


class ProvinceRate(BaseModel):
    province: str
    rate_cents: int

    class Config:
        from_attributes = True


class DeliverySettingsIn(BaseModel):
    mode: str
    flat_rate_cents: int = Field(ge=0)
    provinces: List[ProvinceRate] = []


class DeliverySettingsOut(BaseModel):
    mode: str
    flat_rate_cents: int
    provinces: List[ProvinceRate] = []
    known_provinces: List[str] = []
