"""Persistence operations used by the scan pipeline.

Every method runs in its own session and commits before returning, so
each listing insert and each bulk alert-flag update is its own atomic
write. Rows are converted to plain dataclasses before the session closes.
"""

from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from ..models.evaluation import DealEvaluation
from ..models.listing import CandidateListing, Listing
from ..models.search import Search, User
from ..utils.logging import get_logger
from .database import create_db_engine, create_session_factory, init_db
from .tables import ListingRow, SearchRow, UserRow

logger = get_logger("repository")


class DuplicateListingError(Exception):
    """A listing with the same (search_id, external_id) is already stored."""


def _to_user(row: UserRow) -> User:
    return User(id=row.id, email=row.email, name=row.name)


def _to_search(row: SearchRow) -> Search:
    return Search(
        id=row.id,
        owner=_to_user(row.user),
        query=row.query,
        zipcode=row.zipcode,
        min_price=row.min_price,
        max_price=row.max_price,
        radius=row.radius,
        preferences=row.preferences,
        is_active=row.is_active,
        last_checked=row.last_checked,
    )


def _to_listing(row: ListingRow) -> Listing:
    return Listing(
        id=row.id,
        search_id=row.search_id,
        external_id=row.external_id,
        title=row.title,
        price=row.price,
        url=row.url,
        description=row.description,
        image_url=row.image_url,
        location=row.location,
        posted_at=row.posted_at,
        deal_score=row.deal_score,
        deal_reason=row.deal_reason,
        is_good_deal=row.is_good_deal,
        alert_sent=row.alert_sent,
        identified_product=row.identified_product,
        retail_price_low=row.retail_price_low,
        retail_price_high=row.retail_price_high,
        condition=row.condition,
        created_at=row.created_at,
    )


class ScanRepository:
    """Reads saved searches and writes evaluated listings."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, url: str, echo: bool = False, create_schema: bool = True) -> "ScanRepository":
        """Build a repository for a database URL, creating tables if asked."""
        engine = create_db_engine(url, echo=echo)
        if create_schema:
            init_db(engine)
        return cls(create_session_factory(engine))

    # Scan pipeline operations

    def get_search(self, search_id: str) -> Optional[Search]:
        """Load a search together with its owner."""
        with self._session_factory() as session:
            row = session.get(SearchRow, search_id)
            return _to_search(row) if row is not None else None

    def list_active_searches(self) -> List[Search]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(SearchRow)
                .where(SearchRow.is_active.is_(True))
                .order_by(SearchRow.created_at, SearchRow.id)
            ).all()
            return [_to_search(row) for row in rows]

    def listing_exists(self, search_id: str, external_id: str) -> bool:
        with self._session_factory() as session:
            found = session.scalar(
                select(ListingRow.id).where(
                    ListingRow.search_id == search_id,
                    ListingRow.external_id == external_id,
                )
            )
            return found is not None

    def create_listing(
        self,
        search_id: str,
        candidate: CandidateListing,
        evaluation: DealEvaluation,
    ) -> Listing:
        """
        Store a scraped listing with its evaluation.

        Raises:
            DuplicateListingError: If the (search_id, external_id) pair exists.
        """
        price_range = evaluation.retail_price_range
        row = ListingRow(
            search_id=search_id,
            external_id=candidate.external_id,
            title=candidate.title,
            price=candidate.price,
            url=candidate.url,
            description=candidate.description,
            image_url=candidate.image_url,
            location=candidate.location,
            posted_at=candidate.posted_at,
            deal_score=evaluation.score,
            deal_reason=evaluation.deal_reason,
            is_good_deal=evaluation.is_good_deal,
            alert_sent=False,
            identified_product=evaluation.identified_product,
            retail_price_low=price_range.low if price_range else None,
            retail_price_high=price_range.high if price_range else None,
            condition=evaluation.condition,
        )

        with self._session_factory() as session:
            session.add(row)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise DuplicateListingError(
                    f"Listing {candidate.external_id} already stored for search {search_id}"
                ) from e
            return _to_listing(row)

    def update_last_checked(self, search_id: str, checked_at: Optional[datetime] = None) -> None:
        checked_at = checked_at or datetime.now(timezone.utc)
        with self._session_factory.begin() as session:
            session.execute(
                update(SearchRow)
                .where(SearchRow.id == search_id)
                .values(last_checked=checked_at)
            )

    def mark_alerts_sent(self, search_id: str, listing_ids: Optional[Iterable[str]] = None) -> int:
        """
        Flip alert_sent on good deals of a search in one UPDATE.

        Only rows with is_good_deal true and alert_sent still false are
        touched. When listing_ids is given the update is further limited
        to those rows.

        Returns:
            Number of rows updated.
        """
        conditions = [
            ListingRow.search_id == search_id,
            ListingRow.is_good_deal.is_(True),
            ListingRow.alert_sent.is_(False),
        ]
        if listing_ids is not None:
            ids = list(listing_ids)
            if not ids:
                return 0
            conditions.append(ListingRow.id.in_(ids))

        with self._session_factory.begin() as session:
            result = session.execute(
                update(ListingRow)
                .where(*conditions)
                .values(alert_sent=True)
                .execution_options(synchronize_session=False)
            )
            updated = result.rowcount

        logger.info(
            "Marked listings as alerted",
            extra={"search_id": search_id, "updated": updated},
        )
        return updated

    def get_listings(self, search_id: str) -> List[Listing]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(ListingRow)
                .where(ListingRow.search_id == search_id)
                .order_by(ListingRow.created_at, ListingRow.id)
            ).all()
            return [_to_listing(row) for row in rows]

    # Intake helpers

    def create_user(self, email: str, name: Optional[str] = None) -> User:
        with self._session_factory() as session:
            row = UserRow(email=email.strip().lower(), name=name)
            session.add(row)
            session.commit()
            return _to_user(row)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._session_factory() as session:
            row = session.scalar(
                select(UserRow).where(UserRow.email == email.strip().lower())
            )
            return _to_user(row) if row is not None else None

    def create_search(
        self,
        user_id: str,
        query: str,
        zipcode: str,
        min_price: Optional[int] = None,
        max_price: Optional[int] = None,
        radius: Optional[int] = None,
        preferences: Optional[Any] = None,
        is_active: bool = True,
    ) -> Search:
        with self._session_factory() as session:
            row = SearchRow(
                user_id=user_id,
                query=query,
                zipcode=zipcode,
                min_price=min_price,
                max_price=max_price,
                radius=radius,
                preferences=preferences,
                is_active=is_active,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_search(row)

    def set_search_active(self, search_id: str, active: bool) -> bool:
        """Activate or deactivate a search. Returns False if it does not exist."""
        with self._session_factory.begin() as session:
            result = session.execute(
                update(SearchRow).where(SearchRow.id == search_id).values(is_active=active)
            )
            return result.rowcount > 0

    def delete_search(self, search_id: str) -> bool:
        """Delete a search and, by cascade, its listings."""
        with self._session_factory.begin() as session:
            row = session.get(SearchRow, search_id)
            if row is None:
                return False
            session.delete(row)
            return True
