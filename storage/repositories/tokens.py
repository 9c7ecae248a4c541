"""
Token Registry Repository.

Read access to known tradable tokens plus an upsert used by
seeding scripts and tests.
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from storage.models.tokens import TokenRecord
from storage.repositories.base import BaseRepository


class TokenRegistryRepository(BaseRepository[TokenRecord]):
    """Token registry access."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, TokenRecord, "TokenRegistry")

    def list_tokens(self, limit: Optional[int] = None) -> List[TokenRecord]:
        """All registered tokens, highest reported volume first."""
        stmt = select(TokenRecord).order_by(
            TokenRecord.volume_24h_usd.desc().nulls_last(),
            TokenRecord.token_id.asc(),
        )
        if limit:
            stmt = stmt.limit(limit)
        return self._execute_query(stmt)

    def get(self, token_id: str) -> Optional[TokenRecord]:
        return self._execute_scalar(select(TokenRecord).where(TokenRecord.token_id == token_id))

    def upsert(self, record: TokenRecord) -> TokenRecord:
        """Insert or replace metadata for one token."""
        merged = self._session.merge(record)
        self._session.flush()
        return merged
