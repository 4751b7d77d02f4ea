"""Helpers for the game record: normalisation, validation and wire format.

Games travel through the application as plain dicts with snake_case keys::

    {
        "id": "1712345678901",
        "name": "Portal 2",
        "description": "Co-op puzzles",
        "max_players": 2,
        "available_on_hydra": False,
        "image_url": "",
        "added_by": "ana",
        "played": False,
        "created_at": 1712345678901,
    }

The JSON API and the export snapshot use camelCase keys (``maxPlayers``,
``availableOnHydra`` ...).  :func:`normalise_game` accepts either spelling.
"""
import time
import uuid
from typing import Any, Dict, Iterable, List, Optional

from .errors import ValidationError

DEFAULT_MAX_PLAYERS = 4
# Value used when a form submits an unparsable player count.
FALLBACK_MAX_PLAYERS = 1
PLACEHOLDER_IMAGE = '/placeholder.svg?height=96&width=96'

REQUIRED_FIELDS = ('name', 'description', 'added_by')

# snake_case key -> camelCase wire name
WIRE_NAMES = {
    'id': 'id',
    'name': 'name',
    'description': 'description',
    'max_players': 'maxPlayers',
    'available_on_hydra': 'availableOnHydra',
    'image_url': 'imageUrl',
    'added_by': 'addedBy',
    'played': 'played',
    'created_at': 'createdAt',
}

_TRUE_STRINGS = {'1', 'true', 'yes', 'on', 'y'}


def now_ms() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)


def parse_max_players(value: Any, fallback: int = FALLBACK_MAX_PLAYERS) -> int:
    """Parse a player count from form or JSON input.

    ``None`` and the empty string mean "not given" and yield
    :data:`DEFAULT_MAX_PLAYERS`; anything else that does not parse yields
    *fallback*.  The result is never below 1.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return DEFAULT_MAX_PLAYERS
    if isinstance(value, bool):
        return fallback
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        try:
            parsed = int(float(str(value).strip()))
        except (TypeError, ValueError, OverflowError):
            return fallback
    return max(1, parsed)


def parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def _parse_timestamp(value: Any) -> Optional[int]:
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _pick(raw: Dict, key: str, default: Any = None) -> Any:
    """Return *raw[key]* or its camelCase spelling."""
    if key in raw:
        return raw[key]
    return raw.get(WIRE_NAMES.get(key, key), default)


def normalise_game(raw: Dict) -> Dict:
    """Return a clean snake_case game dict built from *raw*.

    Missing optional fields get their defaults; ``id`` and ``created_at`` are
    left as ``None`` when absent so the catalog store can assign them.
    """
    game_id = _pick(raw, 'id')
    return {
        'id': str(game_id) if game_id not in (None, '') else None,
        'name': str(_pick(raw, 'name') or '').strip(),
        'description': str(_pick(raw, 'description') or '').strip(),
        'max_players': parse_max_players(_pick(raw, 'max_players')),
        'available_on_hydra': parse_bool(_pick(raw, 'available_on_hydra', False)),
        'image_url': str(_pick(raw, 'image_url') or '').strip(),
        'added_by': str(_pick(raw, 'added_by') or '').strip(),
        'played': parse_bool(_pick(raw, 'played', False)),
        'created_at': _parse_timestamp(_pick(raw, 'created_at')),
    }


def missing_fields(game: Dict) -> List[str]:
    """Return the required fields that are empty in *game*."""
    return [f for f in REQUIRED_FIELDS if not str(game.get(f) or '').strip()]


def validate_game(game: Dict) -> None:
    """Raise :class:`~app.errors.ValidationError` if a required field is empty."""
    missing = missing_fields(game)
    if missing:
        raise ValidationError(missing)


def new_game_id(existing_ids: Iterable[str] = ()) -> str:
    """Return a fresh id that does not clash with *existing_ids*.

    Ids are millisecond timestamps, falling back to a uuid hex string when
    two games are created within the same millisecond.
    """
    candidate = str(now_ms())
    if candidate in set(existing_ids):
        return uuid.uuid4().hex
    return candidate


def game_to_json(game: Dict) -> Dict:
    """Convert a snake_case game dict to its camelCase wire form."""
    data = {wire: game.get(key) for key, wire in WIRE_NAMES.items()}
    data['imageUrl'] = game.get('image_url') or ''
    return data


def image_or_placeholder(game: Dict) -> str:
    return game.get('image_url') or PLACEHOLDER_IMAGE
