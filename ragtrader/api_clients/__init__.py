from .base_client import (
    BaseAPIClient,
    RateLimitError,
    AuthenticationError,
    ServerError,
    ClientError,
    CostTracker,
)
from .roostoo_client import RoostooClient

__all__ = [
    'BaseAPIClient',
    'RateLimitError',
    'AuthenticationError',
    'ServerError',
    'ClientError',
    'CostTracker',
    'RoostooClient',
]
