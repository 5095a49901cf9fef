from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field, model_validator

NANO_FACTOR = 1_000_000_000


class WeightingMode(str, Enum):
    """How target weights are derived from the desired wallet"""
    MANUAL = "manual"
    DEFAULT = "default"
    MARKETCAP = "marketcap"
    AUM = "aum"
    MARKETCAP_AUM = "marketcap_aum"
    DECORRELATION = "decorrelation"

    @property
    def uses_metrics(self) -> bool:
        return self not in (WeightingMode.MANUAL, WeightingMode.DEFAULT)


class BalancingStrategy(str, Enum):
    """What to do with margin-funded exposure above the credit limit"""
    KEEP = "keep"
    KEEP_IF_SMALL = "keep_if_small"
    REMOVE = "remove"


class OrderAction(str, Enum):
    BUY = "buy"
    SELL = "sell"


# Price primitives
class Quotation(BaseModel):
    """Decimal value split into integer units and a nano (1e-9) fraction"""
    units: int = 0
    nano: int = 0
    currency: Optional[str] = None

    def to_float(self) -> float:
        return self.units + self.nano / NANO_FACTOR

    @classmethod
    def from_float(cls, value: float, currency: Optional[str] = None) -> "Quotation":
        units = int(value)
        nano = int(round((value - units) * NANO_FACTOR))
        if abs(nano) >= NANO_FACTOR:
            units += nano // abs(nano)
            nano = 0
        return cls(units=units, nano=nano, currency=currency)


def _number(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, Quotation):
        return value.to_float()
    if isinstance(value, dict):
        return Quotation(**value).to_float()
    return float(value)


# Wallet models
class Position(BaseModel):
    """One line item of a wallet: a held instrument or a cash balance.

    Quotation fields and their ``*_number`` float twins are kept in sync on
    construction; whichever side is supplied fills in the other, and lot and
    total prices are derived from price, lot size and amount when absent.
    """
    pair: Optional[str] = None
    base: str
    quote: str = "RUB"
    figi: Optional[str] = None
    amount: float = 0
    lot_size: int = 1
    price: Optional[Quotation] = None
    price_number: float = 0.0
    lot_price: Optional[Quotation] = None
    lot_price_number: float = 0.0
    total_price: Optional[Quotation] = None
    total_price_number: float = 0.0

    @model_validator(mode="before")
    @classmethod
    def fill_derived_prices(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)

        price_number = _number(data.get("price_number"))
        if price_number is None:
            price_number = _number(data.get("price")) or 0.0
        data["price_number"] = price_number
        if data.get("price") is None:
            data["price"] = Quotation.from_float(price_number)

        lot_size = data.get("lot_size", 1)
        lot_price_number = _number(data.get("lot_price_number"))
        if lot_price_number is None:
            lot_price_number = _number(data.get("lot_price"))
        if lot_price_number is None:
            lot_price_number = price_number * (lot_size or 0)
        data["lot_price_number"] = lot_price_number
        if data.get("lot_price") is None:
            data["lot_price"] = Quotation.from_float(lot_price_number)

        total_price_number = _number(data.get("total_price_number"))
        if total_price_number is None:
            total_price_number = _number(data.get("total_price"))
        if total_price_number is None:
            total_price_number = price_number * float(data.get("amount", 0) or 0)
        data["total_price_number"] = total_price_number
        if data.get("total_price") is None:
            data["total_price"] = Quotation.from_float(total_price_number)

        if data.get("pair") is None and data.get("base"):
            data["pair"] = f"{data['base']}/{data.get('quote', 'RUB')}"
        return data

    @property
    def is_cash(self) -> bool:
        return self.base == self.quote

    @property
    def lots(self) -> float:
        return self.amount / self.lot_size if self.lot_size else 0.0

    @classmethod
    def cash(cls, currency: str, amount: float) -> "Position":
        return cls(base=currency, quote=currency, amount=amount, lot_size=1, price_number=1.0)


class DesiredWeight(BaseModel):
    """One (ticker, weight) pair of the desired wallet"""
    ticker: str
    weight: float = Field(ge=0.0)


class InstrumentInfo(BaseModel):
    """Lot metadata and last price of a tradable instrument"""
    ticker: str
    figi: Optional[str] = None
    lot_size: int = 1
    price: Quotation

    @property
    def price_number(self) -> float:
        return self.price.to_float()

    @property
    def lot_price_number(self) -> float:
        return self.price_number * self.lot_size


class InstrumentMetrics(BaseModel):
    """Market-cap / AUM snapshot for a single ticker"""
    market_cap_value: Optional[float] = None
    aum_value: Optional[float] = None
    decorrelation_pct: Optional[float] = None


class MarginConfig(BaseModel):
    """Margin trading settings of an account"""
    enabled: bool = False
    multiplier: float = Field(default=1.0, ge=1.0)
    free_threshold: float = Field(default=0.0, ge=0.0)
    max_margin_size: float = Field(default=0.0, ge=0.0)
    balancing_strategy: BalancingStrategy = BalancingStrategy.KEEP


# Result models
class Order(BaseModel):
    """Planned order, always an integer number of lots"""
    ticker: str
    action: OrderAction
    lots: int = Field(ge=1)
    figi: Optional[str] = None
    lot_price: float = 0.0
    estimated_value: float = 0.0
    reason: Literal["rebalance", "margin"] = "rebalance"

    @property
    def signed_lots(self) -> int:
        return self.lots if self.action == OrderAction.BUY else -self.lots


class MarginInfo(BaseModel):
    """Margin exposure of a wallet measured against its margin policy"""
    total_margin_used: float = 0.0
    margin_positions: List[str] = Field(default_factory=list)
    within_limits: bool = True
    credit_capacity: float = 0.0
    available_margin: float = 0.0
    position_margin: Dict[str, float] = Field(default_factory=dict)
    forced_reductions: Dict[str, float] = Field(default_factory=dict)
    transfer_cost: float = 0.0
    risk_level: Literal["low", "medium", "high"] = "low"
    balancing_strategy: BalancingStrategy = BalancingStrategy.KEEP


class BalancerResult(BaseModel):
    """Outcome of one rebalancing calculation"""
    final_percents: Dict[str, float] = Field(default_factory=dict)
    mode_used: str
    total_portfolio_value: float = 0.0
    current_shares: Dict[str, float] = Field(default_factory=dict)
    target_weights: Dict[str, float] = Field(default_factory=dict)
    margin_info: Optional[MarginInfo] = None
    orders: List[Order] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    dry_run: bool = True


# Runner result models
class OrderResult(BaseModel):
    """Broker acknowledgement of a submitted order"""
    order_id: str
    ticker: str
    action: OrderAction
    lots: int
    status: str


class RebalanceResult(BaseModel):
    """Result of one account rebalancing cycle"""
    account_id: str
    success: bool
    submitted: bool = False
    plan: Optional[BalancerResult] = None
    executed_orders: List[OrderResult] = Field(default_factory=list)
    skipped_reason: Optional[str] = None
    error: Optional[str] = None
