"""JSON-file adapter for the game repository."""
import json
import os
import tempfile
from typing import Any, Dict, List, Optional

from ..errors import NotFoundError, RepositoryError
from ..games import normalise_game, now_ms
from .base import GameRepository


class JsonGameRepository(GameRepository):
    """Persists the catalog and the current selection to one JSON file.

    Schema::

        {
            "games": [{...game...}, ...],
            "selected": {"game_id": "<id>", "selected_at": <ms>} | null
        }

    The whole document is kept in memory in ``self.data`` and rewritten on
    every mutation with a write-then-rename so the file is never left in a
    partially-written state.
    """

    name = 'json'

    def __init__(self, file_path: str = '.repingo_games.json') -> None:
        super().__init__()
        self._path = file_path
        self.data: Dict[str, Any] = self._load({'games': [], 'selected': None})
        self.data.setdefault('games', [])
        self.data.setdefault('selected', None)

    # ------------------------------------------------------------------
    # File I/O
    # ------------------------------------------------------------------

    def _load(self, default: Any) -> Any:
        """Load JSON from *self._path*, returning *default* on missing/corrupt file."""
        if os.path.exists(self._path):
            try:
                with open(self._path, 'r') as fh:
                    raw = json.load(fh)
                if isinstance(raw, dict):
                    raw['games'] = [normalise_game(g) for g in raw.get('games', [])
                                    if isinstance(g, dict)]
                    return raw
                self._log.warning("Ignoring unexpected document in %s", self._path)
            except (json.JSONDecodeError, IOError) as exc:
                self._log.warning("Could not load %s: %s", self._path, exc)
        return default

    def _save(self) -> None:
        """Atomically write ``self.data`` to *self._path*."""
        dir_name = os.path.dirname(os.path.abspath(self._path))
        try:
            fd, tmp_path = tempfile.mkstemp(dir=dir_name, suffix='.tmp')
        except OSError as exc:
            raise RepositoryError(f"Could not write {self._path}: {exc}") from exc
        try:
            with os.fdopen(fd, 'w') as fh:
                json.dump(self.data, fh, indent=2)
            os.replace(tmp_path, self._path)
        except (OSError, TypeError, ValueError) as exc:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise RepositoryError(f"Could not write {self._path}: {exc}") from exc

    def _index(self, game_id: str) -> int:
        for idx, game in enumerate(self.data['games']):
            if game.get('id') == game_id:
                return idx
        raise NotFoundError(game_id)

    # ------------------------------------------------------------------
    # GameRepository API
    # ------------------------------------------------------------------

    def list_games(self) -> List[Dict]:
        return [dict(g) for g in self.data['games']]

    def get_game(self, game_id: str) -> Dict:
        return dict(self.data['games'][self._index(game_id)])

    def create_game(self, game: Dict) -> Dict:
        stored = normalise_game(game)
        if any(g.get('id') == stored['id'] for g in self.data['games']):
            raise RepositoryError(f"Duplicate game id: {stored['id']}")
        self.data['games'].append(stored)
        try:
            self._save()
        except RepositoryError:
            self.data['games'].pop()
            raise
        return dict(stored)

    def update_game(self, game: Dict) -> Dict:
        idx = self._index(game.get('id'))
        previous = self.data['games'][idx]
        stored = normalise_game(game)
        # created_at is fixed at creation time
        stored['created_at'] = previous.get('created_at')
        self.data['games'][idx] = stored
        try:
            self._save()
        except RepositoryError:
            self.data['games'][idx] = previous
            raise
        return dict(stored)

    def delete_game(self, game_id: str) -> None:
        idx = self._index(game_id)
        previous_games = list(self.data['games'])
        previous_selected = self.data['selected']
        del self.data['games'][idx]
        if previous_selected and previous_selected.get('game_id') == game_id:
            self.data['selected'] = None
        try:
            self._save()
        except RepositoryError:
            self.data['games'] = previous_games
            self.data['selected'] = previous_selected
            raise

    def set_played(self, game_id: str, played: bool) -> None:
        game = self.data['games'][self._index(game_id)]
        previous = game.get('played', False)
        game['played'] = bool(played)
        try:
            self._save()
        except RepositoryError:
            game['played'] = previous
            raise

    def get_selected(self) -> Optional[Dict]:
        selected = self.data.get('selected')
        if not selected:
            return None
        try:
            return self.get_game(selected.get('game_id'))
        except NotFoundError:
            return None

    def set_selected(self, game_id: str) -> None:
        self._index(game_id)
        previous = self.data['selected']
        self.data['selected'] = {'game_id': game_id, 'selected_at': now_ms()}
        try:
            self._save()
        except RepositoryError:
            self.data['selected'] = previous
            raise

    def initialise(self) -> bool:
        if os.path.exists(self._path):
            return True
        try:
            self._save()
        except RepositoryError as exc:
            self._log.error("Could not initialise %s: %s", self._path, exc)
            return False
        return True

    def health_check(self) -> Dict:
        result = super().health_check()
        result['data_file'] = os.path.abspath(self._path)
        return result
