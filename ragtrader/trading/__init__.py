from .decision_normalizer import normalize_decision, parse_decision_reply
from .risk_manager import (
    OrderValidation,
    PositionSize,
    RiskParams,
    StopLossCheck,
    validate_order,
    check_position_size,
    calculate_portfolio_value,
    calculate_position_size,
    calculate_stop_loss,
    calculate_take_profit,
    check_stop_loss,
)
from .engine import TradingEngine, EngineState, ExecutionResult, CycleReport

__all__ = [
    'normalize_decision',
    'parse_decision_reply',
    'OrderValidation',
    'PositionSize',
    'RiskParams',
    'StopLossCheck',
    'validate_order',
    'check_position_size',
    'calculate_portfolio_value',
    'calculate_position_size',
    'calculate_stop_loss',
    'calculate_take_profit',
    'check_stop_loss',
    'TradingEngine',
    'EngineState',
    'ExecutionResult',
    'CycleReport',
]
