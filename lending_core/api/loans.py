"""
Loan and payment endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends

from .deps import get_lending_system
from .schemas import SettlePaymentRequest
from ..filters import LoanFilter
from ..system import LendingSystem


router = APIRouter()
payments_router = APIRouter()


@router.get("")
async def list_loans(
    borrower_id: Optional[str] = None,
    lender_id: Optional[str] = None,
    status: Optional[str] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """List approved loans"""
    loans = system.engine.list_loans(
        LoanFilter(borrower_id=borrower_id, lender_id=lender_id, status=status)
    )
    return {"loans": [loan.to_dict() for loan in loans]}


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get loan details"""
    return system.engine.get_loan(loan_id).to_dict()


@router.get("/{loan_id}/schedule")
async def get_loan_schedule(
    loan_id: str,
    status: Optional[str] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get the installment schedule of a loan"""
    payments = system.engine.list_payments(loan_id, status=status)
    return {"schedule": [payment.to_dict() for payment in payments]}


@router.get("/{loan_id}/transactions")
async def get_loan_transactions(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get disbursement and payment records of a loan"""
    system.engine.get_loan(loan_id)
    transactions = system.engine.list_transactions(loan_id)
    return {"transactions": [transaction.to_dict() for transaction in transactions]}


@payments_router.get("")
async def list_payments(
    loan_id: Optional[str] = None,
    status: Optional[str] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """List payments, optionally of one loan"""
    payments = system.engine.list_payments(loan_id, status=status)
    return {"payments": [payment.to_dict() for payment in payments]}


@payments_router.post("/{payment_id}/settle")
async def settle_payment(
    payment_id: str,
    request: SettlePaymentRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Settle a scheduled installment"""
    payment = system.engine.settle_payment(payment_id, payer_id=request.payer_id)
    loan = system.engine.get_loan(payment.loan_id)
    return {
        "payment": payment.to_dict(),
        "loan_status": loan.status.value,
        "remaining_balance": str(loan.remaining_balance),
        "message": "Payment successful"
    }
