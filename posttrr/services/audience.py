"""Audience resolution for broadcast notifications."""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from posttrr.models.user import USER_TYPES, User

logger = logging.getLogger(__name__)

# Audience tag -> user types it targets. Unknown tags fall back to "all".
AUDIENCE_USER_TYPES: dict[str, tuple[str, ...]] = {
    "buyers": ("buyer",),
    "sellers": ("seller",),
    "agents": ("agent",),
    "all": USER_TYPES,
}


class NoRecipientsError(Exception):
    """The audience resolved to an empty recipient set."""


class InvalidRecipientIdError(ValueError):
    """A specific-audience id is not a valid identifier."""


def parse_user_ids(raw_ids: list[str]) -> list[UUID]:
    ids = []
    for raw in raw_ids:
        try:
            ids.append(UUID(str(raw)))
        except ValueError:
            raise InvalidRecipientIdError(f"Invalid user ID: {raw}") from None
    return ids


def user_types_for(audience: str) -> tuple[str, ...]:
    return AUDIENCE_USER_TYPES.get(audience, USER_TYPES)


async def resolve_audience(
    db: AsyncSession,
    audience: str,
    specific_users: list[str] | None = None,
) -> list[User]:
    """
    Resolve an audience tag into the list of recipient users.

    ``specific`` with a non-empty id list targets exactly those users;
    every other tag maps to a user-type filter.

    Raises:
        InvalidRecipientIdError: a specific id does not parse
        NoRecipientsError: nobody matched
    """
    if audience == "specific" and specific_users:
        query = select(User).where(
            User.id.in_(parse_user_ids(specific_users)),
            User.user_type.isnot(None),
        )
    else:
        query = select(User).where(User.user_type.in_(user_types_for(audience)))

    result = await db.execute(query.order_by(User.created_at))
    recipients = list(result.scalars().all())

    logger.info("Found %d recipients for audience: %s", len(recipients), audience)

    if not recipients:
        raise NoRecipientsError("No recipients found for the selected audience")
    return recipients
