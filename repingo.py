#!/usr/bin/env python3
"""
rePINGO - Game catalog with a random draw
Keep a shared list of games, mark them as played, and draw the next one to
play at random from the games nobody has played yet.
"""

import json
import logging
import os
import sys
import argparse
import tempfile
from typing import Callable, Dict, List, Optional, Tuple
from colorama import init, Fore, Style
from dotenv import load_dotenv

from app.errors import CatalogError, DrawError, ImportParseError, NotFoundError, ValidationError
from app.games import image_or_placeholder, parse_max_players
from app.repositories import GameRepository, JsonGameRepository, RestGameRepository, SqlGameRepository
from app.services import (
    CatalogStore, CatalogView, ConfirmationGate, DrawEngine, DrawRunner, SnapshotService,
)
from app.services.draw_service import PROGRESS_MAX
from app.services.snapshot_service import export_filename
from app.state import AppState

load_dotenv()

# Initialize colorama for cross-platform colored terminal output
init(autoreset=True)

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_logging(level: str = 'WARNING') -> logging.Logger:
    """Configure the root rePINGO logger.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to WARNING so normal use is quiet.

    Returns:
        Configured logger instance.
    """
    numeric = getattr(logging, str(level).upper(), logging.WARNING)
    logger = logging.getLogger('repingo')
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
        logger.addHandler(handler)
    logger.setLevel(numeric)
    return logger


# Module-level logger used throughout repingo.py
logger = setup_logging()


def _atomic_write_text(path: str, text: str) -> None:
    """Write *text* to *path* atomically (write-then-rename).

    Raises:
        IOError: If the write or rename fails.
    """
    dir_name = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(dir=dir_name, suffix='.tmp')
    try:
        with os.fdopen(fd, 'w') as f:
            f.write(text)
        os.replace(tmp_path, path)
    except Exception:
        # Clean up the temp file if anything goes wrong
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def is_placeholder_value(value: str) -> bool:
    """Check if a config value is empty or a ``YOUR_...`` placeholder."""
    if not value or not isinstance(value, str):
        return True
    return value.startswith('YOUR_')


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

REPOSITORY_TYPES = ('sql', 'json', 'rest')

DEFAULT_CONFIG: Dict = {
    'repository': 'sql',
    'database_url': None,
    'data_file': '.repingo_games.json',
    'rest_url': '',
    'rest_api_key': '',
    'api_timeout_seconds': 10,
    'page_size': 12,
    'draw_tick_ms': 30,
    'draw_password': '404',
    'diagnostics_password': '4041',
    'log_level': 'WARNING',
}

# environment variable -> config key
ENV_OVERRIDES = {
    'REPINGO_REPOSITORY': 'repository',
    'DATABASE_URL': 'database_url',
    'REPINGO_DATA_FILE': 'data_file',
    'SUPABASE_URL': 'rest_url',
    'SUPABASE_ANON_KEY': 'rest_api_key',
    'REPINGO_LOG_LEVEL': 'log_level',
    'REPINGO_DRAW_PASSWORD': 'draw_password',
    'REPINGO_DIAGNOSTICS_PASSWORD': 'diagnostics_password',
}


def load_config(config_path: str = 'config.json') -> Dict:
    """Load configuration from JSON file with environment variable support.

    A missing file is not an error: the defaults are used.  Environment
    variables (see :data:`ENV_OVERRIDES`) take precedence over file values.
    """
    config = dict(DEFAULT_CONFIG)

    if os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                file_config = json.load(f)
        except json.JSONDecodeError as e:
            print(f"{Fore.RED}Error parsing config file: {e}")
            sys.exit(1)
        if not isinstance(file_config, dict):
            print(f"{Fore.RED}Error: '{config_path}' must contain a JSON object")
            sys.exit(1)
        config.update(file_config)
    else:
        logger.info("Config file '%s' not found, using defaults", config_path)

    for env_name, key in ENV_OVERRIDES.items():
        if os.getenv(env_name):
            config[key] = os.getenv(env_name)

    config['repository'] = str(config.get('repository') or 'sql').lower()
    if config['repository'] not in REPOSITORY_TYPES:
        print(f"{Fore.RED}Error: unknown repository '{config['repository']}'")
        print(f"{Fore.YELLOW}Choose one of: {', '.join(REPOSITORY_TYPES)}")
        sys.exit(1)

    if config['repository'] == 'rest':
        if is_placeholder_value(config.get('rest_url', '')) or \
                is_placeholder_value(config.get('rest_api_key', '')):
            print(f"{Fore.RED}Error: the rest repository needs rest_url and rest_api_key")
            print(f"{Fore.YELLOW}Set them in config.json or via SUPABASE_URL / SUPABASE_ANON_KEY")
            sys.exit(1)

    return config


def create_repository(config: Dict) -> GameRepository:
    """Build the storage adapter named by ``config['repository']``."""
    kind = config.get('repository', 'sql')
    if kind == 'json':
        return JsonGameRepository(config.get('data_file') or DEFAULT_CONFIG['data_file'])
    if kind == 'rest':
        return RestGameRepository(config['rest_url'], config['rest_api_key'],
                                  timeout=int(config.get('api_timeout_seconds', 10)))
    import database
    return SqlGameRepository(database, config.get('database_url') or None)


# ---------------------------------------------------------------------------
# Composition root
# ---------------------------------------------------------------------------

class GameLibrary:
    """Main rePINGO application object.

    Owns the :class:`~app.state.AppState` and wires the repository, the
    catalog store, the listing view, the draw engine and import/export
    together.  The ``create`` / ``update`` / ... methods are the entry points
    used by front ends; each returns ``(success, message)``.
    """

    def __init__(self, config: Optional[Dict] = None, config_path: str = 'config.json',
                 repository: Optional[GameRepository] = None, rng=None):
        self._log = logging.getLogger('repingo.library')
        self.config = dict(DEFAULT_CONFIG)
        self.config.update(config if config is not None else load_config(config_path))

        # Re-apply log level from config (allows "log_level": "DEBUG" in config.json)
        setup_logging(self.config.get('log_level', 'WARNING'))

        self.repository = repository or create_repository(self.config)
        self.state = AppState()
        self.store = CatalogStore(self.repository, self.state)
        self.view = CatalogView(page_size=int(self.config.get('page_size', 12)))
        self.draw_engine = DrawEngine(self.repository, on_complete=self._on_draw_complete, rng=rng)
        self.draw_runner = DrawRunner(self.draw_engine,
                                      tick_seconds=float(self.config.get('draw_tick_ms', 30)) / 1000)
        self.snapshots = SnapshotService(self.store)
        self.draw_gate = ConfirmationGate(self.config.get('draw_password', '404'), 'draw')
        self.diagnostics_gate = ConfirmationGate(
            self.config.get('diagnostics_password', '4041'), 'diagnostics')

    def _on_draw_complete(self, game: Dict) -> None:
        with self.state.lock:
            self.state.selected = dict(self.state.find(game['id']) or game)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def initialise(self) -> bool:
        """Prepare storage, then load the catalog and the current pick."""
        if not self.repository.initialise():
            self._log.warning("Repository initialisation reported failure")
        return self.store.load()

    def refresh(self) -> bool:
        return self.store.load()

    # ------------------------------------------------------------------
    # Presentation entry points
    # ------------------------------------------------------------------

    def listing(self, page: Optional[int] = None) -> Dict:
        """Current filtered / sorted / paginated view of the catalog."""
        with self.state.lock:
            games = list(self.state.games)
        if page is not None:
            self.view.go_to(page, len(self.view.apply(games)))
        return self.view.render(games)

    def selection(self) -> Optional[Dict]:
        return self.state.selected

    def draw_status(self) -> Dict:
        return self.draw_engine.status()

    def create(self, draft: Dict) -> Tuple[bool, str]:
        try:
            game = self.store.create(draft)
        except ValidationError as e:
            return False, f"Please fill in every required field ({', '.join(e.missing_fields)})"
        except CatalogError as e:
            return False, f"Could not add the game: {e}"
        return True, f'"{game["name"]}" was added'

    def update(self, game: Dict) -> Tuple[bool, str]:
        try:
            updated = self.store.update(game)
        except ValidationError as e:
            return False, f"Please fill in every required field ({', '.join(e.missing_fields)})"
        except NotFoundError:
            return False, "That game no longer exists"
        except CatalogError as e:
            return False, f"Could not update the game: {e}"
        return True, f'"{updated["name"]}" was updated'

    def remove(self, game_id: str) -> Tuple[bool, str]:
        game = self.store.get(game_id)
        try:
            self.store.remove(game_id)
        except NotFoundError:
            return False, "That game no longer exists"
        except CatalogError as e:
            return False, f"Could not delete the game: {e}"
        name = game['name'] if game else game_id
        return True, f'"{name}" was deleted'

    def toggle_played(self, game_id: str) -> Tuple[bool, str]:
        try:
            game = self.store.toggle_played(game_id)
        except NotFoundError:
            return False, "That game no longer exists"
        except CatalogError as e:
            return False, f"Could not update the game status: {e}"
        return True, "Marked as played" if game['played'] else "Marked as not played"

    def start_draw(self, answer: Optional[str] = None, background: bool = True,
                   on_progress: Optional[Callable[[int], None]] = None) -> Tuple[bool, str]:
        """Start a draw among the unplayed games.

        Args:
            answer:      Code typed in the confirmation prompt.
            background:  Tick on the runner thread (``True``) or run the whole
                         draw on the calling thread at the configured pace.
            on_progress: Foreground draws only; called after every tick.
        """
        if not self.draw_gate.confirm(answer):
            return False, "Incorrect code"
        eligible = self.store.eligible()
        try:
            if background:
                self.draw_runner.start(eligible)
                return True, f"Drawing among {len(eligible)} games"
            winner = self.draw_engine.run_to_completion(
                eligible, tick_seconds=self.draw_runner.tick_seconds, on_progress=on_progress)
        except DrawError as e:
            return False, str(e)
        return True, f'"{winner["name"]}" was drawn'

    def import_snapshot(self, text: str) -> Tuple[bool, str]:
        try:
            result = self.snapshots.import_snapshot(text)
        except ImportParseError as e:
            return False, f"Could not import the games: {e}"
        return True, result.message

    def export_snapshot(self) -> Tuple[bool, str]:
        """Returns ``(True, snapshot_text)``."""
        return True, self.snapshots.export_snapshot()


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------

def display_game_info(game: Dict, selected: bool = False) -> None:
    """Display information about a game"""
    print(f"\n{Fore.GREEN}{'='*60}")
    print(f"{Fore.CYAN}{Style.BRIGHT}🎮 {game.get('name', 'Unknown Game')}")
    if selected:
        print(f"{Fore.YELLOW}⭐ CURRENT PICK")
    print(f"{Fore.GREEN}{'='*60}")
    print(f"{Fore.YELLOW}Game ID: {Fore.WHITE}{game.get('id')}")
    print(f"{Fore.YELLOW}Description: {Fore.WHITE}{game.get('description')}")
    print(f"{Fore.YELLOW}Players: {Fore.WHITE}up to {game.get('max_players')}")
    print(f"{Fore.YELLOW}Available on Hydra: {Fore.WHITE}{'yes' if game.get('available_on_hydra') else 'no'}")
    print(f"{Fore.YELLOW}Added by: {Fore.WHITE}{game.get('added_by')}")
    print(f"{Fore.YELLOW}Status: {Fore.WHITE}{'played' if game.get('played') else 'not played'}")
    print(f"{Fore.YELLOW}Image: {Fore.WHITE}{image_or_placeholder(game)}")
    print(f"{Fore.GREEN}{'='*60}\n")


def print_listing(view: Dict) -> None:
    if not view['games']:
        print(f"{Fore.YELLOW}No games found.")
    for game in view['games']:
        status = f"{Fore.GREEN}played    " if game.get('played') else f"{Fore.YELLOW}not played"
        hydra = f" {Fore.MAGENTA}[Hydra]" if game.get('available_on_hydra') else ''
        print(f"{status} {Fore.WHITE}{game['name']} {Fore.CYAN}({game.get('max_players')} players)"
              f"{hydra} {Style.DIM}{game['id']}")
    print(f"\n{Fore.CYAN}Page {view['page']} of {view['total_pages']} "
          f"- {view['total']} games")


def print_draw_progress(progress: int, width: int = 20) -> None:
    """Redraw a one-line progress bar; ends the line at 100%."""
    filled = progress * width // PROGRESS_MAX
    bar = '#' * filled + '.' * (width - filled)
    end = '\n' if progress >= PROGRESS_MAX else ''
    print(f"\r{Fore.CYAN}[{bar}] {progress:3d}%", end=end, flush=True)


def _report(ok: bool, message: str) -> int:
    print(f"{Fore.GREEN if ok else Fore.RED}{message}")
    return 0 if ok else 1


def _draft_from_args(args, base: Optional[Dict] = None) -> Dict:
    draft = dict(base or {})
    for field in ('name', 'description', 'image_url', 'added_by'):
        value = getattr(args, field, None)
        if value is not None:
            draft[field] = value
    if getattr(args, 'max_players', None) is not None:
        draft['max_players'] = parse_max_players(args.max_players)
    if getattr(args, 'hydra', None) is not None:
        draft['available_on_hydra'] = args.hydra
    return draft


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='rePINGO - game catalog with a random draw',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python3 repingo.py list --unplayed        # Unplayed games, newest first
  python3 repingo.py add --name "Portal 2" --description "Co-op puzzles" --added-by ana
  python3 repingo.py draw                   # Draw the next game to play
  python3 repingo.py export games.json      # Save a snapshot
        """
    )
    parser.add_argument('--config', '-c', default='config.json',
                        help='Path to config file (default: config.json)')
    parser.add_argument('--log-level', help='Override the configured log level')
    sub = parser.add_subparsers(dest='command')

    p_list = sub.add_parser('list', help='List games')
    p_list.add_argument('--query', '-q', default='', help='Search name and description')
    p_list.add_argument('--max-players', type=int, help='Only games for at most N players')
    p_list.add_argument('--unplayed', '-u', action='store_true', help='Only unplayed games')
    p_list.add_argument('--hydra', action='store_true', help='Only games available on Hydra')
    p_list.add_argument('--page', '-p', type=int, default=1, help='Page number')

    p_show = sub.add_parser('show', help='Show one game')
    p_show.add_argument('game_id')

    for name, help_text in (('add', 'Add a game'), ('edit', 'Edit a game')):
        p = sub.add_parser(name, help=help_text)
        if name == 'edit':
            p.add_argument('game_id')
        p.add_argument('--name')
        p.add_argument('--description')
        p.add_argument('--max-players')
        p.add_argument('--image-url')
        p.add_argument('--added-by')
        hydra = p.add_mutually_exclusive_group()
        hydra.add_argument('--hydra', dest='hydra', action='store_true', default=None)
        hydra.add_argument('--no-hydra', dest='hydra', action='store_false')

    p_toggle = sub.add_parser('toggle', help='Toggle played / not played')
    p_toggle.add_argument('game_id')

    p_delete = sub.add_parser('delete', help='Delete a game')
    p_delete.add_argument('game_id')
    p_delete.add_argument('--yes', '-y', action='store_true', help='Do not ask for confirmation')

    p_draw = sub.add_parser('draw', help='Draw a random unplayed game')
    p_draw.add_argument('--code', help='Draw confirmation code (prompted when omitted)')

    sub.add_parser('selected', help='Show the current pick')

    p_export = sub.add_parser('export', help='Export the catalog to a JSON file')
    p_export.add_argument('path', nargs='?', help='Output file (default: dated file name)')

    p_import = sub.add_parser('import', help='Import games from a JSON file')
    p_import.add_argument('path')

    sub.add_parser('init', help='Create the tables / data file')
    return parser


def run_command(library: GameLibrary, args) -> int:
    """Execute one parsed CLI command; returns the process exit code."""
    command = args.command or 'list'

    if command == 'init':
        ok = library.repository.initialise()
        return _report(ok, "Storage initialised" if ok else "Could not initialise storage")

    if not library.store.load():
        print(f"{Fore.RED}{library.state.load_error}")
        return 1

    if command == 'list':
        library.view.set_filters(query=getattr(args, 'query', ''),
                                 max_players=getattr(args, 'max_players', None),
                                 unplayed_only=getattr(args, 'unplayed', False),
                                 hydra_only=getattr(args, 'hydra', False))
        print_listing(library.listing(page=getattr(args, 'page', 1)))
        return 0

    if command == 'show':
        game = library.store.get(args.game_id)
        if not game:
            return _report(False, f"Game not found: {args.game_id}")
        selected = library.selection()
        display_game_info(game, selected=bool(selected and selected['id'] == game['id']))
        return 0

    if command == 'add':
        return _report(*library.create(_draft_from_args(args)))

    if command == 'edit':
        game = library.store.get(args.game_id)
        if not game:
            return _report(False, f"Game not found: {args.game_id}")
        return _report(*library.update(_draft_from_args(args, base=game)))

    if command == 'toggle':
        return _report(*library.toggle_played(args.game_id))

    if command == 'delete':
        game = library.store.get(args.game_id)
        if game and not args.yes:
            choice = input(f"{Fore.YELLOW}Delete \"{game['name']}\"? (y/n): {Fore.WHITE}").strip().lower()
            if choice != 'y':
                print(f"{Fore.CYAN}Cancelled.")
                return 0
        return _report(*library.remove(args.game_id))

    if command == 'draw':
        code = args.code
        if code is None:
            code = input(f"{Fore.YELLOW}Draw code: {Fore.WHITE}")
        print(f"{Fore.CYAN}Drawing...")
        ok, message = library.start_draw(code, background=False, on_progress=print_draw_progress)
        if not ok:
            return _report(ok, message)
        display_game_info(library.selection(), selected=True)
        status = library.draw_status()
        if status['persist_error']:
            print(f"{Fore.YELLOW}The pick could not be saved: {status['persist_error']}")
        return 0

    if command == 'selected':
        selected = library.selection()
        if not selected:
            print(f"{Fore.YELLOW}No game has been drawn yet.")
            return 0
        display_game_info(selected, selected=True)
        return 0

    if command == 'export':
        path = args.path or export_filename()
        _, text = library.export_snapshot()
        try:
            _atomic_write_text(path, text)
        except OSError as e:
            return _report(False, f"Could not write {path}: {e}")
        return _report(True, f"{len(library.store.games)} games exported to {path}")

    if command == 'import':
        try:
            with open(args.path, 'r') as f:
                text = f.read()
        except OSError as e:
            return _report(False, f"Could not read {args.path}: {e}")
        return _report(*library.import_snapshot(text))

    return _report(False, f"Unknown command: {command}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    config = load_config(args.config)
    if args.log_level:
        config['log_level'] = args.log_level
    library = GameLibrary(config=config)
    return run_command(library, args)


if __name__ == "__main__":
    sys.exit(main())
