"""
Analytics endpoints
"""

from fastapi import APIRouter, Depends

from .deps import get_lending_system
from ..system import LendingSystem


router = APIRouter()


@router.get("")
async def get_platform_analytics(system: LendingSystem = Depends(get_lending_system)):
    """Portfolio metrics"""
    return system.analytics.get_analytics().to_dict()


@router.get("/admin")
async def get_admin_analytics(system: LendingSystem = Depends(get_lending_system)):
    """User distribution and platform growth"""
    return system.analytics.get_admin_analytics().to_dict()


@router.get("/lenders/{lender_id}")
async def get_lender_summary(lender_id: str, system: LendingSystem = Depends(get_lending_system)):
    """Dashboard numbers for a lender"""
    return system.analytics.get_lender_summary(lender_id).to_dict()


@router.get("/borrowers/{borrower_id}")
async def get_borrower_summary(borrower_id: str, system: LendingSystem = Depends(get_lending_system)):
    """Dashboard numbers for a borrower"""
    return system.analytics.get_borrower_summary(borrower_id).to_dict()
