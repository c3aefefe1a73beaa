"""
Loan offer endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from .deps import get_lending_system
from .schemas import CreateOfferRequest, WithdrawOfferRequest
from ..filters import OfferFilter
from ..system import LendingSystem


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_offer(
    request: CreateOfferRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Publish a loan offer"""
    offer = system.engine.create_loan_offer(
        lender_id=request.lender_id,
        title=request.title,
        description=request.description,
        min_amount=request.min_amount,
        max_amount=request.max_amount,
        interest_rate=request.interest_rate,
        term=request.term
    )
    return offer.to_dict()


@router.get("")
async def list_offers(
    lender_id: Optional[str] = None,
    status: Optional[str] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """List loan offers"""
    offers = system.engine.list_offers(OfferFilter(lender_id=lender_id, status=status))
    return {"offers": [offer.to_dict() for offer in offers]}


@router.get("/{offer_id}")
async def get_offer(
    offer_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get offer details"""
    return system.engine.get_offer(offer_id).to_dict()


@router.post("/{offer_id}/withdraw")
async def withdraw_offer(
    offer_id: str,
    request: WithdrawOfferRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Withdraw an offer and reject its pending applications"""
    offer = system.engine.withdraw_offer(offer_id, lender_id=request.lender_id)
    return offer.to_dict()
