"""Filtering, ordering and pagination of the catalog for display.

The module-level functions are pure: they never mutate their input and do
no I/O.  :class:`CatalogView` keeps the criteria and current page chosen by
the user between requests.
"""
import math
from typing import Dict, List, Optional

PAGE_SIZE = 12


def sort_games(games: List[Dict]) -> List[Dict]:
    """Return *games* in display order.

    Unplayed games come first, newest to oldest; played games follow,
    oldest to newest.  A missing ``created_at`` counts as 0.
    """
    def _key(game: Dict):
        created = game.get('created_at') or 0
        if game.get('played'):
            return (1, created)
        return (0, -created)

    return sorted(games, key=_key)


def matches_query(game: Dict, query: str) -> bool:
    """Case-insensitive substring match against name or description."""
    needle = (query or '').strip().lower()
    if not needle:
        return True
    return (needle in str(game.get('name') or '').lower()
            or needle in str(game.get('description') or '').lower())


def filter_games(games: List[Dict], query: str = '',
                 max_players: Optional[int] = None,
                 unplayed_only: bool = False,
                 hydra_only: bool = False) -> List[Dict]:
    """Filter games based on the catalog criteria (all combined with AND).

    Args:
        games:         Catalog to filter (left untouched).
        query:         Substring searched in name and description.
        max_players:   Keep games whose ``max_players`` is at most this value.
        unplayed_only: Keep only games not yet played.
        hydra_only:    Keep only games available on Hydra.

    Returns:
        The matching games in their input order.
    """
    filtered = list(games)

    if query and query.strip():
        filtered = [g for g in filtered if matches_query(g, query)]

    if max_players is not None:
        filtered = [g for g in filtered if (g.get('max_players') or 0) <= max_players]

    if unplayed_only:
        filtered = [g for g in filtered if not g.get('played')]

    if hydra_only:
        filtered = [g for g in filtered if g.get('available_on_hydra')]

    return filtered


def total_pages(count: int, page_size: int = PAGE_SIZE) -> int:
    """Number of pages needed for *count* items; never less than 1."""
    return max(1, math.ceil(count / page_size))


def clamp_page(page: int, pages: int) -> int:
    return max(1, min(int(page), pages))


def paginate(games: List[Dict], page: int = 1, page_size: int = PAGE_SIZE) -> Dict:
    """Slice *games* into one page.

    Returns:
        ``{'games': [...], 'total': n, 'page': p, 'total_pages': t,
        'page_size': s}`` with *page* clamped to ``[1, total_pages]``.
    """
    pages = total_pages(len(games), page_size)
    page = clamp_page(page, pages)
    start = (page - 1) * page_size
    return {
        'games': games[start:start + page_size],
        'total': len(games),
        'page': page,
        'total_pages': pages,
        'page_size': page_size,
    }


class CatalogView:
    """Filter criteria and current page for the catalog listing.

    Changing any criterion sends the view back to page 1.
    """

    def __init__(self, page_size: int = PAGE_SIZE) -> None:
        self.page_size = max(1, int(page_size))
        self.query = ''
        self.max_players: Optional[int] = None
        self.unplayed_only = False
        self.hydra_only = False
        self.page = 1

    def criteria(self) -> Dict:
        return {
            'query': self.query,
            'max_players': self.max_players,
            'unplayed_only': self.unplayed_only,
            'hydra_only': self.hydra_only,
        }

    def set_filters(self, **criteria) -> None:
        """Update one or more criteria; resets to page 1 if anything changed.

        Accepted keywords: ``query``, ``max_players``, ``unplayed_only``,
        ``hydra_only``.
        """
        changed = False
        for name, value in criteria.items():
            if name not in ('query', 'max_players', 'unplayed_only', 'hydra_only'):
                raise TypeError(f"Unknown filter: {name}")
            if name == 'query':
                value = value or ''
            elif name == 'max_players':
                value = int(value) if value not in (None, '') else None
            else:
                value = bool(value)
            if getattr(self, name) != value:
                setattr(self, name, value)
                changed = True
        if changed:
            self.page = 1

    def clear_filters(self) -> None:
        self.set_filters(query='', max_players=None, unplayed_only=False, hydra_only=False)

    def go_to(self, page: int, count: int) -> int:
        """Move to *page*, clamped to the pages available for *count* games."""
        self.page = clamp_page(page, total_pages(count, self.page_size))
        return self.page

    def next_page(self, count: int) -> int:
        return self.go_to(self.page + 1, count)

    def previous_page(self, count: int) -> int:
        return self.go_to(self.page - 1, count)

    def apply(self, games: List[Dict]) -> List[Dict]:
        """Filter then sort *games* with the current criteria."""
        return sort_games(filter_games(games, **self.criteria()))

    def render(self, games: List[Dict]) -> Dict:
        """Return the page view-model for *games* and keep the page in range."""
        result = paginate(self.apply(games), self.page, self.page_size)
        self.page = result['page']
        result['filters'] = self.criteria()
        return result
