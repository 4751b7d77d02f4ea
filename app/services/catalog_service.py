"""In-memory catalog kept consistent with the game repository."""
import logging
from typing import Dict, List, Optional, Set

from ..errors import NotFoundError, RepositoryError
from ..games import new_game_id, normalise_game, now_ms, validate_game
from ..repositories.base import GameRepository
from ..state import AppState

LOAD_ERROR_MESSAGE = ("Could not load the games. "
                      "Check the connection to the database and try again.")


class CatalogStore:
    """Applies create / update / remove / toggle mutations to the catalog.

    Every mutation is two-phase: the repository write happens first and the
    local :class:`~app.state.AppState` is only touched once the write has
    succeeded.  A failed write raises and leaves local state untouched.

    Local updates are applied under ``state.lock``; when two requests for
    the same game overlap, whichever completes last wins.
    """

    def __init__(self, repository: GameRepository, state: AppState) -> None:
        self._repo = repository
        self.state = state
        self._log = logging.getLogger('repingo.catalog')
        # ids handed out to creates whose repository write is still in flight
        self._pending_ids: Set[str] = set()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def games(self) -> List[Dict]:
        return self.state.games

    def get(self, game_id: str) -> Optional[Dict]:
        return self.state.find(game_id)

    def eligible(self) -> List[Dict]:
        """Games that can be drawn (not yet played)."""
        with self.state.lock:
            return [g for g in self.state.games if not g.get('played')]

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> bool:
        """Replace the catalog with the repository contents.

        On failure the catalog is emptied and ``state.load_error`` is set;
        the error is not raised so the caller can offer a retry.

        Returns:
            ``True`` when the games were loaded.
        """
        try:
            games = [normalise_game(g) for g in self._repo.list_games()]
        except RepositoryError as exc:
            self._log.error("Could not load games: %s", exc)
            with self.state.lock:
                self.state.games = []
                self.state.load_error = LOAD_ERROR_MESSAGE
            return False

        selection_known = True
        try:
            selected = self._repo.get_selected()
        except RepositoryError as exc:
            self._log.warning("Could not load the selected game: %s", exc)
            selected = None
            selection_known = False

        with self.state.lock:
            self.state.games = games
            self.state.load_error = None
            if selected is not None and self.state.find(str(selected.get('id'))) is not None:
                self.state.selected = normalise_game(selected)
            elif selection_known or (self.state.selected and
                                     self.state.find(self.state.selected.get('id')) is None):
                # storage has no pick, or the picked game is gone
                self.state.selected = None
            if self.state.viewing and self.state.find(self.state.viewing['id']) is None:
                self.state.viewing = None
        self._log.info("Loaded %d games", len(games))
        return True

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, draft: Dict) -> Dict:
        """Validate and persist a new game, then prepend it to the catalog.

        Raises:
            ValidationError: a required field is empty (nothing is written).
            RepositoryError: the repository rejected the write.
        """
        game = normalise_game(draft)
        validate_game(game)
        with self.state.lock:
            taken = set(self.state.ids()) | self._pending_ids
            if not game['id'] or game['id'] in taken:
                game['id'] = new_game_id(taken)
            self._pending_ids.add(game['id'])
        if game['created_at'] is None:
            game['created_at'] = now_ms()

        try:
            created = normalise_game(self._repo.create_game(game))
        finally:
            with self.state.lock:
                self._pending_ids.discard(game['id'])
        with self.state.lock:
            self.state.games.insert(0, created)
        self._log.info("Added game %s (%s)", created['id'], created['name'])
        return dict(created)

    def update(self, game: Dict) -> Dict:
        """Persist every field of *game* and refresh local references to it.

        Raises:
            ValidationError: a required field is empty (nothing is written).
            NotFoundError:   the game no longer exists; it is dropped locally.
            RepositoryError: the repository rejected the write.
        """
        data = normalise_game(game)
        validate_game(data)
        if not data['id']:
            raise NotFoundError(None, "Cannot update a game without an id")

        try:
            updated = normalise_game(self._repo.update_game(data))
        except NotFoundError:
            self._forget(data['id'])
            raise

        with self.state.lock:
            self.state.games = [updated if g.get('id') == updated['id'] else g
                                for g in self.state.games]
            if self.state.selected and self.state.selected.get('id') == updated['id']:
                self.state.selected = dict(updated)
            if self.state.viewing and self.state.viewing.get('id') == updated['id']:
                self.state.viewing = dict(updated)
        self._log.info("Updated game %s", updated['id'])
        return dict(updated)

    def remove(self, game_id: str) -> None:
        """Delete a game, clearing the selection and detail view if needed.

        Raises:
            NotFoundError:   the game no longer exists; it is dropped locally.
            RepositoryError: the repository rejected the delete.
        """
        try:
            self._repo.delete_game(game_id)
        except NotFoundError:
            self._forget(game_id)
            raise
        self._forget(game_id)
        self._log.info("Deleted game %s", game_id)

    def toggle_played(self, game_id: str) -> Dict:
        """Flip the ``played`` flag through a partial repository update.

        Returns:
            The updated local game dict.

        Raises:
            NotFoundError:   the id is unknown locally or in storage.
            RepositoryError: the repository rejected the write.
        """
        game = self.get(game_id)
        if game is None:
            raise NotFoundError(game_id)
        return self.set_played(game_id, not game.get('played', False))

    def set_played(self, game_id: str, played: bool) -> Dict:
        """Set the ``played`` flag through a partial repository update."""
        game = self.get(game_id)
        if game is None:
            raise NotFoundError(game_id)
        played = bool(played)

        try:
            self._repo.set_played(game_id, played)
        except NotFoundError:
            self._forget(game_id)
            raise

        with self.state.lock:
            current = self.state.find(game_id)
            if current is None:
                # removed while the write was in flight
                current = dict(game)
            current['played'] = played
            for ref in (self.state.selected, self.state.viewing):
                if ref and ref.get('id') == game_id:
                    ref['played'] = played
        self._log.info("Marked game %s as %s", game_id, 'played' if played else 'unplayed')
        return dict(current)

    # ------------------------------------------------------------------
    # Detail view
    # ------------------------------------------------------------------

    def open_details(self, game_id: str) -> Optional[Dict]:
        with self.state.lock:
            game = self.state.find(game_id)
            self.state.viewing = dict(game) if game else None
            return self.state.viewing

    def close_details(self) -> None:
        with self.state.lock:
            self.state.viewing = None

    def _forget(self, game_id: str) -> None:
        with self.state.lock:
            self.state.games = [g for g in self.state.games if g.get('id') != game_id]
            if self.state.selected and self.state.selected.get('id') == game_id:
                self.state.selected = None
            if self.state.viewing and self.state.viewing.get('id') == game_id:
                self.state.viewing = None
