from pydantic import BaseModel, Field, ConfigDict, field_validator


class TransferEvent(BaseModel):
    """
    Domain model for a single ownership transfer observed on the ledger.

    Instances are produced by the ledger client in ascending
    ``(height, log_index)`` order and applied to the projection in that order.
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "from_address": "0x0000000000000000000000000000000000000000",
                "to_address": "0x5b38da6a701c568545dcfcb03fcb875f56beddc4",
                "token_id": "42",
                "height": 1834512,
                "log_index": 3,
                "transaction_hash": "0x9f1c...",
            }
        }
    )

    from_address: str = Field(..., min_length=1)
    to_address: str = Field(..., min_length=1)
    token_id: str = Field(
        ...,
        description="Decimal string form of the uint256 token id",
        pattern="^[0-9]+$",
        max_length=78
    )
    height: int = Field(..., ge=0, description="Block height of the event")
    log_index: int = Field(0, ge=0, description="Position of the log inside its block")
    transaction_hash: str | None = None

    @property
    def ordering_key(self) -> tuple[int, int]:
        return self.height, self.log_index

    def __str__(self) -> str:
        return f"Transfer(token={self.token_id}, to={self.to_address}, height={self.height})"


class TokenRecord(BaseModel):
    """
    Projection row: current owner of a token and the height it was last seen at.

    Serializes with the public field names used by the HTTP surface
    (``tokenId``, ``owner``, ``lastUpdate``) when dumped ``by_alias``.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    token_id: str = Field(..., serialization_alias="tokenId")
    owner: str
    last_height: int = Field(..., ge=0, serialization_alias="lastUpdate")

    def to_api(self) -> dict:
        return self.model_dump(by_alias=True)

    @field_validator("token_id")
    @classmethod
    def validate_token_id(cls, v: str) -> str:
        if not v:
            raise ValueError("token_id cannot be empty")
        return v
