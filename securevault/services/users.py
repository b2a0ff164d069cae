"""
User Service
Identity-provider user synchronisation
"""

from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from securevault.core.logging import get_logger
from securevault.core.security import user_fields_from_claims
from securevault.db.models import User

logger = get_logger(__name__)


class UserService:
    """User data access"""

    @staticmethod
    async def get(db: AsyncSession, user_id: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def upsert_from_claims(db: AsyncSession, claims: Dict[str, Any]) -> User:
        """Create or refresh the user row for the token's subject"""
        fields = user_fields_from_claims(claims)
        user = await UserService.get(db, fields["id"])

        if user is None:
            user = User(**fields)
            db.add(user)
            logger.info(f"User created from identity provider: {user.id}")
        else:
            for field, value in fields.items():
                if value is not None:
                    setattr(user, field, value)

        try:
            await db.commit()
        except IntegrityError:
            # Another account already holds this email
            await db.rollback()
            logger.warning(f"Email conflict while syncing user {fields['id']}; keeping stored email")
            user = await UserService.get(db, fields["id"])
            fields.pop("email")
            if user is None:
                user = User(**fields)
                db.add(user)
            else:
                for field, value in fields.items():
                    if value is not None:
                        setattr(user, field, value)
            await db.commit()

        return user
