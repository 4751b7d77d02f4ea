"""Repository package: exposes the interface and every adapter from one import."""
from .base import GameRepository
from .json_repository import JsonGameRepository
from .sql_repository import SqlGameRepository
from .rest_repository import RestGameRepository

__all__ = [
    'GameRepository',
    'JsonGameRepository',
    'SqlGameRepository',
    'RestGameRepository',
]
