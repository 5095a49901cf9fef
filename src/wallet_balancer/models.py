from typing import Dict, List
from pydantic import BaseModel, Field
from portfolio_base import Order, WeightingMode

class WeightResolution(BaseModel):
    """Target weights with the mode that actually produced them"""
    weights: Dict[str, float]
    mode_used: WeightingMode
    warnings: List[str] = Field(default_factory=list)

class OrderPlan(BaseModel):
    """Orders and projected post-trade shares"""
    final_percents: Dict[str, float] = Field(default_factory=dict)
    orders: List[Order] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    forced_reductions: Dict[str, float] = Field(default_factory=dict)
