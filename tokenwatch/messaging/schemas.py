from pydantic import BaseModel, ConfigDict, Field

from tokenwatch.core.models import TransferEvent


class TransferMessage(BaseModel):
    """Push message sent to feed subscribers for every applied transfer"""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    token_id: str = Field(..., alias="tokenId")
    owner: str
    height: int

    @classmethod
    def from_event(cls, event: TransferEvent) -> "TransferMessage":
        return cls(token_id=event.token_id, owner=event.to_address, height=event.height)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)
