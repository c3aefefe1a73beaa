"""
Loan application endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from .deps import get_lending_system
from .schemas import ApproveApplicationRequest, RejectApplicationRequest, SubmitApplicationRequest
from ..filters import ApplicationFilter
from ..system import LendingSystem


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def submit_application(
    request: SubmitApplicationRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Apply for a loan against an offer"""
    application = system.engine.submit_application(
        borrower_id=request.borrower_id,
        offer_id=request.offer_id,
        amount=request.amount,
        purpose=request.purpose,
        credit_score=request.credit_score,
        income=request.income
    )
    return application.to_dict()


@router.get("")
async def list_applications(
    borrower_id: Optional[str] = None,
    lender_id: Optional[str] = None,
    offer_id: Optional[str] = None,
    status: Optional[str] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """List applications; lender_id selects applications on that lender's offers"""
    query = ApplicationFilter(
        borrower_id=borrower_id, lender_id=lender_id, offer_id=offer_id, status=status
    )
    applications = system.engine.list_applications(query)
    return {"applications": [application.to_dict() for application in applications]}


@router.get("/{application_id}")
async def get_application(
    application_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get application details"""
    return system.engine.get_application(application_id).to_dict()


@router.post("/{application_id}/approve", status_code=status.HTTP_201_CREATED)
async def approve_application(
    application_id: str,
    request: ApproveApplicationRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Approve an application and disburse the loan"""
    loan = system.engine.approve_application(application_id, approver_id=request.approver_id)
    return {
        "loan": loan.to_dict(),
        "message": "Loan approved and disbursed"
    }


@router.post("/{application_id}/reject")
async def reject_application(
    application_id: str,
    request: RejectApplicationRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Reject an application"""
    application = system.engine.reject_application(application_id, approver_id=request.approver_id)
    return application.to_dict()
