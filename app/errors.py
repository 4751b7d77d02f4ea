"""Exception hierarchy shared by the repositories, services and front ends."""
from typing import Iterable, Optional


class CatalogError(Exception):
    """Base class for every recoverable rePINGO failure."""


class ValidationError(CatalogError):
    """A required field was missing or empty; nothing was written."""

    def __init__(self, missing_fields: Iterable[str]) -> None:
        self.missing_fields = list(missing_fields)
        super().__init__(
            "Missing required fields: " + ", ".join(self.missing_fields)
        )


class RepositoryError(CatalogError):
    """The durable-storage call failed (connectivity, constraint, timeout)."""


# Name used by the catalog store for a failed write.
PersistenceError = RepositoryError


class NotFoundError(RepositoryError):
    """A mutation targeted a game id that is no longer in storage."""

    def __init__(self, game_id: Optional[str], message: str = '') -> None:
        self.game_id = game_id
        super().__init__(message or f"Game not found: {game_id}")


class ImportParseError(CatalogError):
    """The import snapshot is not well-formed; nothing was imported."""


class DrawError(CatalogError):
    """A draw could not be started."""
