from .base import TokenwatchBase, tokenwatch_metadata
from .token import Token

__all__ = [
    'TokenwatchBase',
    'tokenwatch_metadata',
    'Token'
]
