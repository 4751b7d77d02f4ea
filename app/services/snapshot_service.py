"""Export the catalog to a JSON snapshot and import one back."""
import datetime
import json
import logging
from typing import Dict, List, Optional

from ..errors import CatalogError, ImportParseError
from ..games import game_to_json
from .catalog_service import CatalogStore


class ImportResult:
    """Outcome of :meth:`SnapshotService.import_snapshot`."""

    def __init__(self, imported: int, total: int) -> None:
        self.imported = imported
        self.total = total

    @property
    def failed(self) -> int:
        return self.total - self.imported

    @property
    def message(self) -> str:
        return f"{self.imported} of {self.total} imported"

    def to_dict(self) -> Dict:
        return {'imported': self.imported, 'total': self.total,
                'failed': self.failed, 'message': self.message}

    def __repr__(self) -> str:
        return f"ImportResult({self.imported!r}, {self.total!r})"


def export_filename(today: Optional[datetime.date] = None) -> str:
    """Download name for a snapshot, e.g. ``repingo-games-2024-05-01.json``."""
    today = today or datetime.date.today()
    return f"repingo-games-{today.isoformat()}.json"


def parse_snapshot(text: str) -> List:
    """Return the list of entries contained in snapshot *text*.

    Accepts a bare JSON list of games or the dict written by
    :meth:`SnapshotService.export_snapshot`.

    Raises:
        ImportParseError: *text* is not JSON or has neither shape.
    """
    try:
        raw = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise ImportParseError(f"The snapshot is not valid JSON: {exc}") from exc

    if isinstance(raw, list):
        return raw
    if isinstance(raw, dict) and isinstance(raw.get('games'), list):
        return raw['games']
    raise ImportParseError("The snapshot must be a list of games "
                           "or an object with a 'games' list")


class SnapshotService:
    """Serialises the catalog and replays snapshots through the catalog
    store so imported games get the same validation as hand-entered ones.
    """

    def __init__(self, store: CatalogStore) -> None:
        self._store = store
        self._log = logging.getLogger('repingo.snapshot')

    def export_snapshot(self) -> str:
        """Return the full catalog as indented JSON text (no mutation)."""
        export_data: Dict = {
            'games': [game_to_json(g) for g in self._store.games],
            'exported_at': datetime.datetime.now().isoformat(),
        }
        return json.dumps(export_data, indent=2)

    def import_snapshot(self, text: str) -> ImportResult:
        """Create every game in snapshot *text*, best-effort.

        Entries that fail validation or are rejected by the repository are
        counted and skipped.  The catalog is reloaded afterwards so local
        state matches storage.

        Raises:
            ImportParseError: the snapshot is malformed; nothing is created.
        """
        entries = parse_snapshot(text)
        imported = 0
        for entry in entries:
            if not isinstance(entry, dict):
                self._log.warning("Skipping non-object snapshot entry: %r", entry)
                continue
            draft = {k: v for k, v in entry.items()
                     if k not in ('id', 'createdAt', 'created_at')}
            try:
                self._store.create(draft)
                imported += 1
            except CatalogError as exc:
                self._log.warning("Could not import %r: %s", entry.get('name'), exc)

        self._store.load()
        result = ImportResult(imported, len(entries))
        self._log.info("Import finished: %s", result.message)
        return result
