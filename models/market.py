"""Market statistics supplied by the market-data collaborator."""

from pydantic import BaseModel, ConfigDict, Field


class MarketStats(BaseModel):
    """24h market statistics for one symbol.

    A ticker without an entry cannot enter consensus.
    """

    model_config = ConfigDict(populate_by_name=True)

    symbol: str
    volume_24h: float = Field(alias="volume24h")
    spread: float | None = None
    tick_size: float | None = Field(None, alias="tickSize")
    step_size: float | None = Field(None, alias="stepSize")
    min_qty: float | None = Field(None, alias="minQty")
    max_qty: float | None = Field(None, alias="maxQty")
