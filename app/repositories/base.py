"""Repository interface shared by all storage adapters."""
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional


class GameRepository(ABC):
    """Durable storage for games and for the "last selected" singleton.

    Adapters translate their own failures into
    :class:`~app.errors.RepositoryError` (or its subclass
    :class:`~app.errors.NotFoundError`) so callers never see driver or
    transport exceptions.  Game dicts use the snake_case keys produced by
    :func:`app.games.normalise_game`.
    """

    name = 'base'

    def __init__(self) -> None:
        self._log = logging.getLogger(f'repingo.repository.{type(self).__name__}')

    @abstractmethod
    def list_games(self) -> List[Dict]:
        """Return every stored game."""

    @abstractmethod
    def get_game(self, game_id: str) -> Dict:
        """Return one game; raises ``NotFoundError`` when absent."""

    @abstractmethod
    def create_game(self, game: Dict) -> Dict:
        """Persist a validated game (with ``id`` and ``created_at`` set)."""

    @abstractmethod
    def update_game(self, game: Dict) -> Dict:
        """Rewrite every field of an existing game; ``NotFoundError`` if absent."""

    @abstractmethod
    def delete_game(self, game_id: str) -> None:
        """Delete a game and clear the selection if it referenced it."""

    @abstractmethod
    def set_played(self, game_id: str, played: bool) -> None:
        """Partial update of the ``played`` flag only."""

    @abstractmethod
    def get_selected(self) -> Optional[Dict]:
        """Return the most recently selected game, or ``None``."""

    @abstractmethod
    def set_selected(self, game_id: str) -> None:
        """Record *game_id* as the selection, replacing any previous record."""

    def initialise(self) -> bool:
        """Prepare the backing store (tables, files).  Returns success."""
        return True

    def health_check(self) -> Dict:
        """Probe the backend and return a diagnostics dict.

        The default implementation lists the games; adapters add their own
        configuration details.
        """
        try:
            sample = self.list_games()[:1]
        except Exception as exc:
            self._log.error("Health check failed: %s", exc)
            return {'status': 'error', 'repository': self.name,
                    'message': f'Could not reach the {self.name} repository',
                    'error': str(exc)}
        return {'status': 'success', 'repository': self.name,
                'message': f'Connected to the {self.name} repository',
                'sample': [g.get('id') for g in sample]}
