from .errors import (
    ConfigurationError,
    CollaboratorError,
    ValidationError,
    DecisionFormatError,
    PersistenceError,
)
from .response_parser import ResponseParser
from .logging_utils import TRADE, setup_logging, log_trade
from .lock import LockManager

__all__ = [
    'ConfigurationError',
    'CollaboratorError',
    'ValidationError',
    'DecisionFormatError',
    'PersistenceError',
    'ResponseParser',
    'TRADE',
    'setup_logging',
    'log_trade',
    'LockManager',
]
