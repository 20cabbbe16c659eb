"""Decision models: the terminal artifacts handed to the execution collaborator."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Action = Literal["BUY", "SELL", "HOLD"]


class TradingDecision(BaseModel):
    """Bounded, risk-profiled action for one ticker. HOLD carries no size or bands."""

    model_config = ConfigDict(populate_by_name=True)

    ticker: str
    action: Action
    confidence: float
    score: float
    rationale: str
    position_size: float = Field(0.0, ge=0.0, le=0.20, alias="positionSize")
    stop_loss: float | None = Field(None, alias="stopLoss")
    take_profit: float | None = Field(None, alias="takeProfit")


class DecisionBatch(BaseModel):
    """Output of ``DecisionGenerator.generate_trading_decisions``.

    ``portfolio_allocation`` is the uncapped sum of position sizes; bounding
    total exposure is the execution side's concern.
    """

    decisions: list[TradingDecision] = Field(default_factory=list)
    portfolio_allocation: float = 0.0

    def by_action(self, action: Action) -> list[TradingDecision]:
        return [d for d in self.decisions if d.action == action]
