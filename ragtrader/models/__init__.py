from .decision import Action, Decision
from .portfolio import PortfolioSnapshot, MarketSnapshot, Ticker
from .order import Order, OrderResult
from .strategy_record import StrategyRecord
from .cycle import CycleRecord

__all__ = [
    'Action',
    'Decision',
    'PortfolioSnapshot',
    'MarketSnapshot',
    'Ticker',
    'Order',
    'OrderResult',
    'StrategyRecord',
    'CycleRecord',
]
