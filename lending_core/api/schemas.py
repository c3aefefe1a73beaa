"""
Pydantic schemas for API requests
"""

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field


# User schemas
class RegisterUserRequest(BaseModel):
    email: str
    name: str
    role: str = Field(..., description="borrower, lender, analyst or admin")
    company: Optional[str] = None


class UpdateUserStatusRequest(BaseModel):
    admin_id: str
    status: str = Field(..., description="active or suspended")


# Offer schemas
class CreateOfferRequest(BaseModel):
    lender_id: str
    title: str
    description: str = ""
    min_amount: Decimal
    max_amount: Decimal
    interest_rate: Decimal = Field(..., description="Annual interest rate in percent")
    term: int = Field(..., description="Term in months")


class WithdrawOfferRequest(BaseModel):
    lender_id: str


# Application schemas
class SubmitApplicationRequest(BaseModel):
    borrower_id: str
    offer_id: str
    amount: Decimal
    purpose: str
    credit_score: Optional[int] = None
    income: Optional[Decimal] = None


class ApproveApplicationRequest(BaseModel):
    approver_id: str


class RejectApplicationRequest(BaseModel):
    approver_id: Optional[str] = None


# Payment schemas
class SettlePaymentRequest(BaseModel):
    payer_id: Optional[str] = None
