"""
UserRepository for database operations on User model
"""

from typing import List, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from database_models import User, utc_now_iso
from services.errors import ConflictError


class UserRepository:
    """
    Repository class for User database operations.
    Encapsulates all database logic for the User model.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            db: AsyncSession instance for database operations
        """
        self.db = db

    async def get_user_by_user_id(self, user_id: str) -> Optional[User]:
        """
        Retrieve a user by its external userId.

        Returns:
            User object if found, None otherwise
        """
        result = await self.db.execute(
            select(User).where(User.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def list_users(self, email: Optional[str] = None) -> List[User]:
        """
        List users, optionally filtered by exact email.
        """
        stmt = select(User).order_by(User.id)
        if email:
            stmt = stmt.where(User.email == email)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create_user(self, user_data: dict) -> User:
        """
        Create a new user in the database.

        Args:
            user_data: Dictionary containing user data. Must include:
                - user_id: str
                - name: str
                - email: str
                Optional:
                - role: str (defaults to "user")
                - is_subscribed: bool (defaults to False)
                - created_at / updated_at: ISO-8601 str (default now)

        Returns:
            Created User object

        Raises:
            ConflictError: if another request inserted the same userId first
        """
        now = utc_now_iso()
        user = User(
            user_id=user_data["user_id"],
            name=user_data["name"],
            email=user_data["email"],
            role=user_data.get("role") or "user",
            is_subscribed=bool(user_data.get("is_subscribed") or False),
            created_at=user_data.get("created_at") or now,
            updated_at=user_data.get("updated_at") or now,
        )
        self.db.add(user)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(f"User {user_data['user_id']} already exists")
        await self.db.refresh(user)
        return user
