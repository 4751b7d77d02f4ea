"""
rePINGO application package.

Layered architecture:

  app/repositories/  - pure I/O: the ``GameRepository`` interface and its
                       SQL, JSON-file and REST adapters.
  app/services/      - business logic: the catalog store, the listing
                       pipeline, the draw engine and import/export.

``GameLibrary`` (in ``repingo.py``) is the integration point: it builds the
repository chosen in the config, the shared ``AppState`` and every service,
and exposes them as public attributes (e.g. ``library.store``).  Route
handlers in ``repingo_web.py`` and the CLI call these services instead of
touching storage directly.
"""
