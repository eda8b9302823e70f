# tokenwatch/database/repositories/__init__.py

from .token import TokenRepository

__all__ = [
    'TokenRepository'
]
