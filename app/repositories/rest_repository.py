"""REST adapter for a hosted PostgREST backend (e.g. Supabase)."""
from typing import Dict, List, Optional

import requests

from ..errors import NotFoundError, RepositoryError
from ..games import normalise_game, now_ms
from .base import GameRepository

# Columns written to the ``games`` table
_COLUMNS = ('id', 'name', 'description', 'max_players', 'available_on_hydra',
            'image_url', 'added_by', 'played', 'created_at')


class RestGameRepository(GameRepository):
    """Talks to the ``games`` and ``selected_game`` tables through the
    PostgREST HTTP interface exposed at ``<base_url>/rest/v1``.

    Column names are snake_case, the same keys the rest of the application
    uses, so rows map straight onto game dicts.
    """

    name = 'rest'

    def __init__(self, base_url: str, api_key: str, timeout: int = 10,
                 session: Optional[requests.Session] = None) -> None:
        super().__init__()
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'apikey': api_key,
            'Authorization': f'Bearer {api_key}',
            'Content-Type': 'application/json',
            'Prefer': 'return=representation',
        })

    def _url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    def _request(self, method: str, table: str, **kwargs):
        """Send a request and return the decoded JSON body (or ``None``)."""
        try:
            response = self.session.request(method, self._url(table),
                                            timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.RequestException as exc:
            self._log.error("%s %s failed: %s", method, table, exc)
            raise RepositoryError(f"{method} {table} failed: {exc}") from exc
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RepositoryError(f"{method} {table} returned invalid JSON") from exc

    @staticmethod
    def _row_to_game(row: Dict) -> Dict:
        game = normalise_game(row)
        game['image_url'] = game['image_url'] or ''
        return game

    # ------------------------------------------------------------------
    # GameRepository API
    # ------------------------------------------------------------------

    def list_games(self) -> List[Dict]:
        rows = self._request('GET', 'games',
                             params={'select': '*', 'order': 'created_at.desc'}) or []
        return [self._row_to_game(r) for r in rows]

    def get_game(self, game_id: str) -> Dict:
        rows = self._request('GET', 'games',
                             params={'select': '*', 'id': f'eq.{game_id}'}) or []
        if not rows:
            raise NotFoundError(game_id)
        return self._row_to_game(rows[0])

    def create_game(self, game: Dict) -> Dict:
        data = normalise_game(game)
        if data['created_at'] is None:
            data['created_at'] = now_ms()
        payload = {k: data[k] for k in _COLUMNS}
        rows = self._request('POST', 'games', json=payload) or []
        if not rows:
            raise RepositoryError("The backend did not return the created game")
        return self._row_to_game(rows[0])

    def update_game(self, game: Dict) -> Dict:
        data = normalise_game(game)
        payload = {k: data[k] for k in _COLUMNS if k not in ('id', 'created_at')}
        rows = self._request('PATCH', 'games', params={'id': f"eq.{data['id']}"},
                             json=payload) or []
        if not rows:
            raise NotFoundError(data['id'])
        return self._row_to_game(rows[0])

    def delete_game(self, game_id: str) -> None:
        self._request('DELETE', 'selected_game', params={'game_id': f'eq.{game_id}'})
        rows = self._request('DELETE', 'games', params={'id': f'eq.{game_id}'}) or []
        if not rows:
            raise NotFoundError(game_id)

    def set_played(self, game_id: str, played: bool) -> None:
        rows = self._request('PATCH', 'games', params={'id': f'eq.{game_id}'},
                             json={'played': bool(played)}) or []
        if not rows:
            raise NotFoundError(game_id)

    def get_selected(self) -> Optional[Dict]:
        rows = self._request('GET', 'selected_game', params={
            'select': 'game_id,selected_at',
            'order': 'selected_at.desc',
            'limit': 1,
        }) or []
        if not rows:
            return None
        try:
            return self.get_game(rows[0]['game_id'])
        except NotFoundError:
            return None

    def set_selected(self, game_id: str) -> None:
        self.get_game(game_id)
        # PostgREST refuses an unfiltered DELETE
        self._request('DELETE', 'selected_game', params={'id': 'gt.0'})
        self._request('POST', 'selected_game',
                      json={'game_id': game_id, 'selected_at': now_ms()})

    def health_check(self) -> Dict:
        result = super().health_check()
        result['rest_url'] = self.base_url
        return result
