"""Read-only contact queries."""

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session, aliased

from app.models.contact import Contact, LinkPrecedence
from app.schemas.contact import ContactStats


def list_contacts(db: Session, *, limit: int = 100, offset: int = 0) -> list[Contact]:
    """List live contacts in creation order."""

    stmt = (
        select(Contact)
        .where(Contact.deleted_at.is_(None))
        .order_by(Contact.created_at.asc(), Contact.id.asc())
        .limit(limit)
        .offset(offset)
    )
    return list(db.scalars(stmt).all())


def contact_stats(db: Session) -> ContactStats:
    """Count live primaries and the live secondaries attached to each of them."""

    secondary = aliased(Contact)
    stmt = (
        select(Contact.id, func.count(secondary.id))
        .outerjoin(
            secondary,
            and_(
                secondary.linked_id == Contact.id,
                secondary.link_precedence == LinkPrecedence.SECONDARY,
                secondary.deleted_at.is_(None),
            ),
        )
        .where(
            Contact.link_precedence == LinkPrecedence.PRIMARY,
            Contact.deleted_at.is_(None),
        )
        .group_by(Contact.id)
    )
    counts = [int(count) for _, count in db.execute(stmt).all()]
    total_secondaries = sum(counts)
    return ContactStats(
        total_primary_contacts=len(counts),
        total_secondary_contacts=total_secondaries,
        average_secondaries_per_primary=total_secondaries / len(counts) if counts else 0.0,
        max_secondaries_per_primary=max(counts, default=0),
    )
