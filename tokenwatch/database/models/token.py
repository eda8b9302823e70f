from sqlalchemy import BigInteger, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import TokenwatchBase


class Token(TokenwatchBase):
    """
    Ownership projection: one row per token id, overwritten on every transfer.

    The highest ``last_update`` across the table doubles as the indexing
    checkpoint, so no separate progress row exists.
    """
    __tablename__ = 'tokens'

    token_id: Mapped[str] = mapped_column(
        'tokenId',
        Text,
        primary_key=True,
        comment='uint256 token id in decimal form'
    )
    owner: Mapped[str] = mapped_column(Text, nullable=False)
    last_update: Mapped[int] = mapped_column(
        'lastUpdate',
        BigInteger,
        nullable=False,
        comment='Block height of the last applied transfer'
    )

    __table_args__ = (
        Index('idx_tokens_last_update', 'lastUpdate'),
    )

    def __repr__(self) -> str:
        return f"Token(token_id='{self.token_id}', owner='{self.owner}', last_update={self.last_update})"
