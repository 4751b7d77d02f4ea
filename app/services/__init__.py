"""Services package: exposes all concrete services from one import."""
from .catalog_service import CatalogStore
from .catalog_view import CatalogView
from .draw_service import DrawEngine, DrawRunner
from .snapshot_service import ImportResult, SnapshotService
from .confirmation import ConfirmationGate

__all__ = [
    'CatalogStore',
    'CatalogView',
    'DrawEngine',
    'DrawRunner',
    'ImportResult',
    'SnapshotService',
    'ConfirmationGate',
]
