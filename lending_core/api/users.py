"""
User endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from .deps import get_lending_system
from .schemas import RegisterUserRequest, UpdateUserStatusRequest
from ..system import LendingSystem


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def register_user(
    request: RegisterUserRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Register a new user"""
    user = system.users.register_user(
        email=request.email,
        name=request.name,
        role=request.role,
        company=request.company
    )
    return user.to_dict()


@router.get("")
async def list_users(
    role: Optional[str] = None,
    status: Optional[str] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """List users, optionally by role and status"""
    users = system.users.list_users(role=role, status=status)
    return {"users": [user.to_dict() for user in users]}


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get user details"""
    return system.users.get_user(user_id).to_dict()


@router.patch("/{user_id}/status")
async def update_user_status(
    user_id: str,
    request: UpdateUserStatusRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Suspend or reactivate a user"""
    user = system.users.update_user_status(user_id, request.status, admin_id=request.admin_id)
    return user.to_dict()


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    admin_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Delete a user that has no active dependent records"""
    system.users.delete_user(user_id, admin_id=admin_id)
    return {"user_id": user_id, "message": "User deleted successfully"}
