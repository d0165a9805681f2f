"""
Users Router - registration and lookup
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from crud.user import UserRepository
from database import get_db
from models.user import UserCreateRequest
from services.errors import ConflictError
from utils.responses import message_response, error_response

logger = logging.getLogger(__name__)

users_router = APIRouter(prefix="/users", tags=["users"])


@users_router.post("")
async def create_user(request: UserCreateRequest, db: AsyncSession = Depends(get_db)):
    """
    Register a user. Registering an existing userId returns the stored user
    unchanged with 200 instead of creating a duplicate.
    """
    if request.missing_required():
        return error_response("Missing required fields: userId, name, email", 400)

    user_repo = UserRepository(db)

    existing_user = await user_repo.get_user_by_user_id(request.user_id)
    if existing_user:
        return message_response("User already exists", 200, user=existing_user.to_dict())

    try:
        user = await user_repo.create_user(request.model_dump())
    except ConflictError:
        # Lost an insert race against a concurrent registration
        existing_user = await user_repo.get_user_by_user_id(request.user_id)
        return message_response("User already exists", 200, user=existing_user.to_dict())

    await db.commit()
    logger.info(f"Created user {user.user_id} ({user.email})")
    return message_response(
        "User created successfully",
        201,
        user=user.to_dict(),
        insertedId=user.id,
    )


@users_router.get("")
async def list_users(
    email: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
):
    """List all users, or those with a given email. An empty result is a 404."""
    users = await UserRepository(db).list_users(email=email)

    if not users:
        return error_response("No users found", 404)

    return message_response(
        "Users retrieved successfully",
        200,
        count=len(users),
        users=[user.to_dict() for user in users],
    )
