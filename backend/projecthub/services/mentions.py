"""Mention parsing for comment bodies.

Comments reference users with the markup ``@[Display Name](user-id)``.
"""

import re
from typing import Iterable, Sequence
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.models.organization import OrganizationMember
from projecthub.models.user import User

logger = structlog.get_logger()

MENTION_PATTERN = re.compile(r"@\[([^\]]*)\]\(([A-Za-z0-9-]+)\)")


def parse_mentions(content: str | None) -> set[str]:
    """Extract the distinct user ids referenced by mention markup.

    The ids are not validated here; see resolve_mentions.
    """
    if not content:
        return set()
    return {match.group(2) for match in MENTION_PATTERN.finditer(content)}


def _to_uuid(candidate: str) -> UUID | None:
    try:
        return UUID(candidate)
    except ValueError:
        return None


async def resolve_mentions(
    db: AsyncSession,
    candidate_ids: Iterable[str],
    organization_id: UUID,
) -> Sequence[User]:
    """Look up mentioned users in one query, dropping unresolvable ids.

    Only active members of ``organization_id`` resolve; anyone else is
    dropped exactly like an unknown id.
    """
    user_ids = {uid for uid in (_to_uuid(c) for c in candidate_ids) if uid is not None}
    if not user_ids:
        return []

    result = await db.execute(
        select(User)
        .join(OrganizationMember, OrganizationMember.user_id == User.id)
        .where(
            User.id.in_(user_ids),
            User.is_active.is_(True),
            OrganizationMember.organization_id == organization_id,
        )
    )
    users = result.scalars().all()

    if len(users) != len(user_ids):
        logger.debug(
            "unresolved_mentions_dropped",
            organization_id=str(organization_id),
            requested=len(user_ids),
            resolved=len(users),
        )

    return users
