"""
Placeholder substitution for related records that could not be resolved.
"""

from typing import Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hopelink.app.models.user import User

UNKNOWN_NAME = "Unknown"
NOT_PROVIDED = "Not provided"


def display_name(user: Optional[User]) -> str:
    if user is None:
        return UNKNOWN_NAME
    return user.full_name or user.username or UNKNOWN_NAME


def or_placeholder(value: Optional[str]) -> str:
    if value is None or not str(value).strip():
        return NOT_PROVIDED
    return str(value)


def display_fields(entity, fields: Iterable[str]) -> Dict[str, str]:
    """Optional text fields of an entity with blanks replaced by the placeholder."""
    return {name: or_placeholder(getattr(entity, name, None)) for name in fields}


async def user_names(db: AsyncSession, user_ids: Iterable[Optional[int]]) -> Dict[Optional[int], str]:
    """
    Resolve display names for a set of user ids in one query.

    Ids that do not resolve (deleted profiles, None) map to "Unknown".
    """
    ids = {uid for uid in user_ids if uid is not None}
    users = {}
    if ids:
        result = await db.execute(select(User).where(User.id.in_(ids)))
        users = {u.id: u for u in result.scalars().all()}
    names = {uid: display_name(users.get(uid)) for uid in ids}
    names[None] = UNKNOWN_NAME
    return names
