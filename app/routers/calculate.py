from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, model_validator

from app.dependencies import Services, get_services
from calculator.service import CalculationRequest
from models.domain import Sig

router = APIRouter()


class DrugIn(BaseModel):
    name: Optional[str] = Field(default=None, max_length=200)
    id: Optional[str] = Field(default=None, max_length=32)

    @model_validator(mode="after")
    def exactly_one(self):
        has_name = bool((self.name or "").strip())
        has_id = bool((self.id or "").strip())
        if has_name == has_id:
            raise ValueError("exactly one of drug.name or drug.id is required")
        return self


class SigIn(BaseModel):
    dose: float = Field(..., gt=0)
    frequency: float = Field(..., gt=0)
    unit: str = Field(..., min_length=1, max_length=32)


class CalculateBody(BaseModel):
    drug: DrugIn
    sig: SigIn
    daysSupply: int = Field(..., ge=1, le=365)


@router.post("/calculate")
async def calculate(body: CalculateBody, services: Services = Depends(get_services)):
    result = await services.calculator.calculate(
        CalculationRequest(
            sig=Sig(dose=body.sig.dose, frequency=body.sig.frequency, unit=body.sig.unit),
            days_supply=body.daysSupply,
            drug_name=body.drug.name,
            drug_id=body.drug.id,
        )
    )
    return result.to_dict()
