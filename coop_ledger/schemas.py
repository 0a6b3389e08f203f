"""Pydantic schemas for validating workflow input and the settings snapshot"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping, Optional, Type, TypeVar, Union
import pydantic
from pydantic import BaseModel, ConfigDict, Field, model_validator

from coop_ledger.domain.exceptions import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class SettingsSnapshot(BaseModel):
    """Immutable society settings version consumed by the engines"""

    model_config = ConfigDict(frozen=True)

    version: Optional[int] = None
    loan_interest_rate: Decimal = Field(..., gt=0, description="Base monthly interest rate in percent")
    standard_loan_term_months: int = Field(..., gt=0)
    new_member_loan_eligibility_months: int = Field(..., ge=0)
    loan_to_shares_savings_ratio: Decimal = Field(..., gt=0)
    last_updated: Optional[datetime] = None
    updated_by: Optional[str] = None


class SettingsUpdate(BaseModel):
    """Partial settings change; omitted fields keep their current value"""

    loan_interest_rate: Optional[Decimal] = Field(None, gt=0)
    standard_loan_term_months: Optional[int] = Field(None, gt=0)
    new_member_loan_eligibility_months: Optional[int] = Field(None, ge=0)
    loan_to_shares_savings_ratio: Optional[Decimal] = Field(None, gt=0)


class LoanApplicationRequest(BaseModel):
    """Loan application draft submitted by (or on behalf of) a member"""

    member_id: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0, description="Requested principal in minor units")
    purpose: str = Field(..., min_length=1, max_length=500)
    duration_months: int = Field(..., gt=0, le=120)


class MembershipApplicationRequest(BaseModel):
    """Membership application with two guarantors from the target society"""

    society_id: str = Field(..., min_length=1)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: str = Field(..., min_length=5)
    address: str = Field(..., min_length=1)
    occupation: str = Field(..., min_length=1)
    monthly_income: int = Field(..., ge=0)
    guarantor1_member_id: str = Field(..., min_length=1)
    guarantor2_member_id: str = Field(..., min_length=1)
    user_id: Optional[str] = None

    @model_validator(mode="after")
    def guarantors_differ(self) -> "MembershipApplicationRequest":
        if self.guarantor1_member_id == self.guarantor2_member_id:
            raise ValueError("Guarantors must be two different members")
        return self


def parse_input(model: Type[ModelT], data: Union[ModelT, Mapping[str, Any]]) -> ModelT:
    """
    Coerce caller input into a schema instance.

    Raises:
        ValidationError: input fails schema validation
    """
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'request'}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(f"Invalid {model.__name__}: {details}") from e
