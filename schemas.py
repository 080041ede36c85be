import datetime as dt
from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from models import TransactionType
from security import MAX_PASSWORD_BYTES


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


# Decimals travel as JSON numbers; money is always kept at two fraction digits.
Money = Annotated[
    Decimal,
    AfterValidator(quantize_money),
    PlainSerializer(float, return_type=float, when_used="json"),
]
Ratio = Annotated[
    Decimal, PlainSerializer(float, return_type=float, when_used="json")
]


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class MessageOut(ApiModel):
    message: str


class SignupIn(ApiModel):
    username: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("password")
    @classmethod
    def _fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


class SigninIn(ApiModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class SigninOut(ApiModel):
    id: int
    username: str
    email: str
    access_token: str
    monthly_limit: Optional[Money] = None


class SpendingLimitIn(ApiModel):
    limit: Money = Field(..., ge=0)


class SpendingLimitOut(ApiModel):
    message: str
    new_limit: Money


class CategoryIn(ApiModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    icon: Optional[str] = Field(default=None, max_length=64)


class CategoryUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[TransactionType] = None
    icon: Optional[str] = Field(default=None, max_length=64)


class CategoryOut(ApiModel):
    id: int
    name: str
    type: TransactionType
    icon: Optional[str] = None


class TransactionIn(ApiModel):
    description: Optional[str] = Field(default=None, max_length=255)
    amount: Money = Field(..., gt=0)
    date: dt.date
    type: TransactionType
    category_id: Optional[int] = None


class TransactionUpdate(ApiModel):
    description: Optional[str] = Field(default=None, max_length=255)
    amount: Optional[Money] = Field(default=None, gt=0)
    date: Optional[dt.date] = None
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None


class TransactionOut(ApiModel):
    id: int
    description: Optional[str] = None
    amount: Money
    date: dt.date
    type: TransactionType
    category_id: Optional[int] = None
    category: Optional[CategoryOut] = None


class TransactionPage(ApiModel):
    total_items: int
    total_pages: int
    current_page: int
    transactions: list[TransactionOut]


class BudgetIn(ApiModel):
    amount: Money = Field(..., gt=0)
    start_date: dt.date
    end_date: dt.date
    category_id: int

    @model_validator(mode="after")
    def _window_ordered(self) -> "BudgetIn":
        if self.start_date > self.end_date:
            raise ValueError("Start date must be before end date")
        return self


class BudgetOut(ApiModel):
    id: int
    amount: Money
    start_date: dt.date
    end_date: dt.date
    category_id: int
    category: Optional[CategoryOut] = None


class SummaryOut(ApiModel):
    total_income: Money
    total_expense: Money
    net_balance: Money
    monthly_limit: Money
    last_month_expense: Money


class CategoryReportRow(ApiModel):
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    icon: Optional[str] = None
    total_amount: Money


class BudgetProgressOut(ApiModel):
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    icon: Optional[str] = None
    budget_amount: Money
    total_spent: Money
    remaining: Money
    progress: Optional[Ratio] = None
