from typing import Iterable

from sqlalchemy import select, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from tokenwatch.core.enums import IsolationLevel
from tokenwatch.core.exceptions import RepositoryError
from tokenwatch.core.models import TokenRecord, TransferEvent
from tokenwatch.database.connection import DatabaseConnection
from tokenwatch.database.models import Token
from tokenwatch.utils.logger import LoggerSetup


class TokenRepository:
    """
    Repository for the token ownership projection.

    Writes are plain upserts that overwrite by arrival order: callers must
    apply transfers in ascending ``(height, log_index)`` order. Applying the
    same transfer twice leaves the row unchanged, which makes re-processing
    an already applied range after a crash harmless.
    """

    def __init__(self, db: DatabaseConnection):
        self.db = db
        self.logger = LoggerSetup.setup(__class__.__name__)

    def _upsert_statement(self, token_id: str, owner: str, height: int):
        insert = pg_insert if self.db.dialect == "postgresql" else sqlite_insert
        stmt = insert(Token.__table__).values(tokenId=token_id, owner=owner, lastUpdate=height)
        return stmt.on_conflict_do_update(
            index_elements=["tokenId"],
            set_={
                "owner": stmt.excluded.owner,
                "lastUpdate": stmt.excluded.lastUpdate
            }
        )

    async def _upsert(self, session: AsyncSession, token_id: str, owner: str, height: int) -> None:
        await session.execute(self._upsert_statement(token_id, owner, height))

    async def apply(self, token_id: str, owner: str, height: int) -> None:
        """
        Create or overwrite the record for a token.

        Args:
            token_id: Token id in decimal form
            owner: New owner address
            height: Block height of the transfer

        Raises:
            RepositoryError: If the write fails
        """
        try:
            async with self.db.session() as session:
                await self._upsert(session, token_id, owner, height)

        except Exception as e:
            self.logger.error(f"Error applying transfer of token {token_id}: {e}")
            raise RepositoryError(f"Failed to apply transfer of token {token_id}: {str(e)}")

    async def apply_batch(self, events: Iterable[TransferEvent]) -> int:
        """
        Apply a range of transfers in one transaction, in the given order.
        Either every event is committed or none is.

        Args:
            events: Transfers ordered by (height, log_index)

        Returns:
            int: Number of applied events

        Raises:
            RepositoryError: If any write fails; the transaction is rolled back
        """
        events = list(events)
        if not events:
            return 0

        try:
            async with self.db.session() as session:
                for event in events:
                    await self._upsert(session, event.token_id, event.to_address, event.height)

            self.logger.debug(
                f"Applied {len(events)} transfers "
                f"({events[0].height} -> {events[-1].height})"
            )
            return len(events)

        except Exception as e:
            self.logger.error(f"Error applying batch of {len(events)} transfers: {e}")
            raise RepositoryError(f"Failed to apply transfer batch: {str(e)}")

    async def max_height(self) -> int | None:
        """
        Highest height recorded in the projection, i.e. the indexing checkpoint.

        Returns:
            Optional[int]: The height, or None when no token has been indexed yet
        """
        try:
            async with self.db.session(isolation_level=IsolationLevel.REPEATABLE_READ) as session:
                result = await session.execute(select(func.max(Token.last_update)))
                return result.scalar_one_or_none()

        except Exception as e:
            self.logger.error(f"Error reading checkpoint: {e}")
            raise RepositoryError(f"Failed to read max height: {str(e)}")

    async def get(self, token_id: str) -> TokenRecord | None:
        """Get the current record of a single token"""
        try:
            async with self.db.session() as session:
                token = await session.get(Token, token_id)
                if token is None:
                    return None
                return TokenRecord(token_id=token.token_id, owner=token.owner, last_height=token.last_update)

        except Exception as e:
            self.logger.error(f"Error getting token {token_id}: {e}")
            raise RepositoryError(f"Failed to get token {token_id}: {str(e)}")

    async def list_recent(self, limit: int = 100) -> list[TokenRecord]:
        """
        Most recently updated tokens first.

        Args:
            limit: Maximum number of records to return

        Returns:
            List[TokenRecord]: Records ordered by last update height, descending
        """
        try:
            async with self.db.session() as session:
                stmt = (
                    select(Token)
                    .order_by(Token.last_update.desc())
                    .limit(limit)
                )
                result = await session.execute(stmt)
                return [
                    TokenRecord(token_id=t.token_id, owner=t.owner, last_height=t.last_update)
                    for t in result.scalars().all()
                ]

        except Exception as e:
            self.logger.error(f"Error listing recent tokens: {e}")
            raise RepositoryError(f"Failed to list recent tokens: {str(e)}")
