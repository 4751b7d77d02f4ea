"""SQLAlchemy adapter for the game repository."""
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..errors import NotFoundError, RepositoryError
from ..games import normalise_game, now_ms
from .base import GameRepository


class SqlGameRepository(GameRepository):
    """Stores games in the ``games`` table and the selection in the
    single-row ``selected_game`` table, using the models from the
    ``database`` module.
    """

    name = 'sql'

    def __init__(self, db_module, database_url: Optional[str] = None) -> None:
        """
        Args:
            db_module:    The imported ``database`` module (or any object
                exposing ``Game``, ``SelectedGame``, ``create_session_factory``,
                ``session_scope`` and ``init_db``).
            database_url: SQLAlchemy URL; defaults to ``db_module.DATABASE_URL``.
        """
        super().__init__()
        self._db = db_module
        self.database_url = database_url or db_module.DATABASE_URL
        self.engine, self._SessionLocal = db_module.create_session_factory(self.database_url)

    def _session(self):
        return self._db.session_scope(self._SessionLocal)

    def _row(self, db, game_id: str):
        row = db.get(self._db.Game, game_id)
        if row is None:
            raise NotFoundError(game_id)
        return row

    # ------------------------------------------------------------------
    # GameRepository API
    # ------------------------------------------------------------------

    def list_games(self) -> List[Dict]:
        try:
            with self._session() as db:
                rows = db.query(self._db.Game).order_by(self._db.Game.created_at.desc()).all()
                return [row.to_dict() for row in rows]
        except SQLAlchemyError as exc:
            raise RepositoryError(f"Could not list games: {exc}") from exc

    def get_game(self, game_id: str) -> Dict:
        try:
            with self._session() as db:
                return self._row(db, game_id).to_dict()
        except SQLAlchemyError as exc:
            raise RepositoryError(f"Could not fetch game {game_id}: {exc}") from exc

    def create_game(self, game: Dict) -> Dict:
        data = normalise_game(game)
        if data['created_at'] is None:
            data['created_at'] = now_ms()
        try:
            with self._session() as db:
                row = self._db.Game(**data)
                db.add(row)
                db.flush()
                return row.to_dict()
        except SQLAlchemyError as exc:
            raise RepositoryError(f"Could not add game: {exc}") from exc

    def update_game(self, game: Dict) -> Dict:
        data = normalise_game(game)
        try:
            with self._session() as db:
                row = self._row(db, data['id'])
                for field in ('name', 'description', 'max_players', 'available_on_hydra',
                              'image_url', 'added_by', 'played'):
                    setattr(row, field, data[field])
                db.flush()
                return row.to_dict()
        except SQLAlchemyError as exc:
            raise RepositoryError(f"Could not update game {data['id']}: {exc}") from exc

    def delete_game(self, game_id: str) -> None:
        try:
            with self._session() as db:
                row = self._row(db, game_id)
                # SQLite does not enforce ON DELETE CASCADE unless asked to
                db.query(self._db.SelectedGame).filter(
                    self._db.SelectedGame.game_id == game_id
                ).delete(synchronize_session=False)
                db.delete(row)
        except SQLAlchemyError as exc:
            raise RepositoryError(f"Could not delete game {game_id}: {exc}") from exc

    def set_played(self, game_id: str, played: bool) -> None:
        try:
            with self._session() as db:
                self._row(db, game_id).played = bool(played)
        except SQLAlchemyError as exc:
            raise RepositoryError(f"Could not update game {game_id}: {exc}") from exc

    def get_selected(self) -> Optional[Dict]:
        Game, SelectedGame = self._db.Game, self._db.SelectedGame
        try:
            with self._session() as db:
                row = (db.query(Game)
                       .join(SelectedGame, SelectedGame.game_id == Game.id)
                       .order_by(SelectedGame.selected_at.desc())
                       .first())
                return row.to_dict() if row else None
        except SQLAlchemyError as exc:
            raise RepositoryError(f"Could not fetch the selected game: {exc}") from exc

    def set_selected(self, game_id: str) -> None:
        try:
            with self._session() as db:
                self._row(db, game_id)
                db.query(self._db.SelectedGame).delete(synchronize_session=False)
                db.add(self._db.SelectedGame(game_id=game_id, selected_at=now_ms()))
        except SQLAlchemyError as exc:
            raise RepositoryError(f"Could not save the selected game: {exc}") from exc

    def initialise(self) -> bool:
        return self._db.init_db(self.engine)

    def health_check(self) -> Dict:
        result = super().health_check()
        result['database'] = self.engine.url.render_as_string(hide_password=True)
        return result
