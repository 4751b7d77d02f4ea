"""Application state shared by the catalog store and the draw engine."""
import threading
from typing import Dict, List, Optional


class AppState:
    """In-memory state for one running rePINGO session.

    Attributes:
        games:      Catalog in store order (newest created first).
        selected:   The current pick (last drawn game), or ``None``.
        viewing:    The game open in a detail view, or ``None``.
        load_error: Banner text when the last :meth:`CatalogStore.load`
                    failed, otherwise ``None``.
        lock:       Serialises local-state updates between request threads.
    """

    def __init__(self) -> None:
        self.games: List[Dict] = []
        self.selected: Optional[Dict] = None
        self.viewing: Optional[Dict] = None
        self.load_error: Optional[str] = None
        self.lock = threading.RLock()

    def find(self, game_id: str) -> Optional[Dict]:
        for game in self.games:
            if game.get('id') == game_id:
                return game
        return None

    def ids(self) -> List[str]:
        return [g.get('id') for g in self.games]
