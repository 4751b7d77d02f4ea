#!/usr/bin/env python3
"""
rePINGO Web - JSON API and page for the game catalog and draw.
"""

import logging
import argparse
import os
import threading
from typing import Dict, Optional
from flask import Flask, render_template, jsonify, request, Response

import repingo
from app.errors import DrawError, ImportParseError, NotFoundError, RepositoryError, ValidationError
from app.games import WIRE_NAMES, game_to_json, parse_bool
from app.services.catalog_view import sort_games
from app.services.snapshot_service import export_filename
from openapi_spec import build_spec

app = Flask(__name__)

web_logger = logging.getLogger('repingo.web')

CONFIG_PATH = os.getenv('REPINGO_CONFIG', 'config.json')

# Global library instance, created on first use
library: Optional[repingo.GameLibrary] = None
library_lock = threading.Lock()


def configure_logging(level: str) -> None:
    """Set the log level and add a file handler under ``logs/``."""
    repingo.setup_logging(level)
    web_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    try:
        os.makedirs('logs', exist_ok=True)
        fh = logging.FileHandler('logs/repingo_web.log')
        fh.setFormatter(logging.Formatter('[%(asctime)s] %(levelname)s %(name)s: %(message)s'))
        fh.setLevel(getattr(logging, level.upper(), logging.INFO))
        logging.getLogger('repingo').addHandler(fh)
    except OSError as e:
        web_logger.warning('Could not create log file handler: %s', e)


def get_library() -> repingo.GameLibrary:
    """Return the shared library, building and loading it on first use."""
    global library
    with library_lock:
        if library is None:
            library = repingo.GameLibrary(config_path=CONFIG_PATH)
            library.initialise()
        return library


def _game_response(game: Dict, status: int = 200):
    return jsonify(game_to_json(game)), status


def _error_response(exc: Exception, action: str):
    """Map a catalog exception to a JSON error response."""
    if isinstance(exc, ValidationError):
        return jsonify({
            'error': 'Incomplete data. Name, description and added by are required.',
            'missingFields': [WIRE_NAMES.get(f, f) for f in exc.missing_fields],
        }), 400
    if isinstance(exc, NotFoundError):
        return jsonify({'error': 'Game not found'}), 404
    web_logger.error('Error %s: %s', action, exc)
    return jsonify({'error': f'Error {action}', 'details': str(exc)}), 500


@app.route('/')
def index():
    """Main page"""
    return render_template('index.html')


@app.route('/api/status')
def api_status():
    """Get application status"""
    lib = get_library()
    with lib.state.lock:
        games = list(lib.state.games)
        selected = lib.state.selected
        load_error = lib.state.load_error
    return jsonify({
        'ready': load_error is None,
        'loadError': load_error,
        'totalGames': len(games),
        'unplayedGames': len([g for g in games if not g.get('played')]),
        'selectedGame': game_to_json(selected) if selected else None,
        'draw': _draw_status_json(lib),
    })


@app.route('/api/init')
def api_init():
    """Create the storage tables / file and reload the catalog"""
    lib = get_library()
    if not lib.repository.initialise():
        return jsonify({'error': 'Error initialising the database'}), 500
    lib.refresh()
    return jsonify({'message': 'Database initialised successfully'})


# ===========================================================================================
# Games
# ===========================================================================================

@app.route('/api/games', methods=['GET'])
def api_list_games():
    """Return every game, unplayed first"""
    lib = get_library()
    if lib.state.load_error:
        # retry so a recovered backend is picked up
        lib.refresh()
    if lib.state.load_error:
        return jsonify({'error': 'Error fetching games', 'details': lib.state.load_error}), 500
    with lib.state.lock:
        games = sort_games(lib.state.games)
    return jsonify([game_to_json(g) for g in games])


@app.route('/api/games', methods=['POST'])
def api_add_game():
    """Add a new game.

    Body JSON: {"name", "description", "addedBy", "maxPlayers"?,
    "availableOnHydra"?, "imageUrl"?, "played"?, "id"?, "createdAt"?}
    """
    data = request.get_json(silent=True) or {}
    try:
        game = get_library().store.create(data)
    except (ValidationError, RepositoryError) as e:
        return _error_response(e, 'adding game')
    return _game_response(game, 201)


@app.route('/api/games/<game_id>', methods=['GET'])
def api_get_game(game_id: str):
    """Return one game straight from storage"""
    try:
        game = get_library().repository.get_game(game_id)
    except RepositoryError as e:
        return _error_response(e, 'fetching game')
    return _game_response(game)


@app.route('/api/games/<game_id>', methods=['PUT'])
def api_update_game(game_id: str):
    """Replace every editable field of a game"""
    data = request.get_json(silent=True) or {}
    data['id'] = game_id
    try:
        game = get_library().store.update(data)
    except (ValidationError, RepositoryError) as e:
        return _error_response(e, 'updating game')
    return _game_response(game)


@app.route('/api/games/<game_id>', methods=['DELETE'])
def api_delete_game(game_id: str):
    """Delete a game"""
    try:
        get_library().store.remove(game_id)
    except RepositoryError as e:
        return _error_response(e, 'deleting game')
    return jsonify({'success': True})


@app.route('/api/games/<game_id>', methods=['PATCH'])
def api_patch_game(game_id: str):
    """Set the played flag from {"played": bool}, or toggle it without a body"""
    data = request.get_json(silent=True) or {}
    store = get_library().store
    try:
        if 'played' in data:
            game = store.set_played(game_id, parse_bool(data['played']))
        else:
            game = store.toggle_played(game_id)
    except RepositoryError as e:
        return _error_response(e, 'updating game status')
    return jsonify({'success': True, 'played': game['played']})


@app.route('/api/catalog')
def api_catalog():
    """Filtered, sorted and paginated listing.

    Query: q, maxPlayers, unplayed, hydra, page
    """
    lib = get_library()
    max_players = request.args.get('maxPlayers', type=int)
    with lib.state.lock:
        lib.view.set_filters(
            query=request.args.get('q', ''),
            max_players=max_players,
            unplayed_only=request.args.get('unplayed', '').lower() in ('1', 'true', 'yes'),
            hydra_only=request.args.get('hydra', '').lower() in ('1', 'true', 'yes'),
        )
        page = lib.listing(page=request.args.get('page', type=int))
    return jsonify({
        'games': [game_to_json(g) for g in page['games']],
        'total': page['total'],
        'page': page['page'],
        'totalPages': page['total_pages'],
        'pageSize': page['page_size'],
        'loadError': lib.state.load_error,
    })


# ===========================================================================================
# Draw
# ===========================================================================================

def _draw_status_json(lib: repingo.GameLibrary) -> Dict:
    status = lib.draw_status()
    return {
        'phase': status['phase'],
        'progress': status['progress'],
        'winner': game_to_json(status['winner']) if status['winner'] else None,
        'persistError': status['persist_error'],
    }


@app.route('/api/draw', methods=['GET'])
def api_draw_status():
    """Current draw phase and progress"""
    return jsonify(_draw_status_json(get_library()))


@app.route('/api/draw', methods=['POST'])
def api_start_draw():
    """Start a draw among the unplayed games.

    Body JSON: {"password": "<draw code>"}
    """
    lib = get_library()
    data = request.get_json(silent=True) or {}
    if not lib.draw_gate.confirm(data.get('password')):
        return jsonify({'error': 'Incorrect code'}), 403
    try:
        lib.draw_runner.start(lib.store.eligible())
    except DrawError as e:
        return jsonify({'error': str(e)}), 409
    web_logger.info('Draw started')
    return jsonify(_draw_status_json(lib)), 202


@app.route('/api/selected-game', methods=['GET'])
def api_get_selected_game():
    """Return the most recently drawn game"""
    try:
        game = get_library().repository.get_selected()
    except RepositoryError as e:
        return _error_response(e, 'fetching selected game')
    if game is None:
        return jsonify({'message': 'No game has been drawn yet'}), 404
    return _game_response(game)


@app.route('/api/selected-game', methods=['POST'])
def api_save_selected_game():
    """Record a game as the current pick.

    Body JSON: {"gameId": "<id>"}
    """
    data = request.get_json(silent=True) or {}
    game_id = data.get('gameId')
    if not game_id:
        return jsonify({'error': 'gameId is required'}), 400
    lib = get_library()
    try:
        lib.repository.set_selected(str(game_id))
    except RepositoryError as e:
        return _error_response(e, 'saving selected game')
    with lib.state.lock:
        game = lib.state.find(str(game_id))
        if game:
            lib.state.selected = dict(game)
    return jsonify({'success': True, 'gameId': game_id})


# ===========================================================================================
# Import / export
# ===========================================================================================

@app.route('/api/export')
def api_export():
    """Download the catalog as a JSON snapshot"""
    _, text = get_library().export_snapshot()
    return Response(
        text,
        mimetype='application/json',
        headers={'Content-Disposition': f'attachment; filename={export_filename()}'},
    )


@app.route('/api/import', methods=['POST'])
def api_import():
    """Import games from an uploaded file (field "file") or the raw body"""
    upload = request.files.get('file')
    if upload is not None:
        text = upload.read().decode('utf-8', errors='replace')
    else:
        text = request.get_data(as_text=True)
    lib = get_library()
    try:
        result = lib.snapshots.import_snapshot(text)
    except ImportParseError as e:
        return jsonify({'error': 'Error importing games. Check that the file is in the right format.',
                        'details': str(e)}), 400
    return jsonify(result.to_dict())


# ===========================================================================================
# Diagnostics
# ===========================================================================================

@app.route('/api/debug')
def api_debug():
    """Storage diagnostics behind the diagnostics code"""
    lib = get_library()
    if not lib.diagnostics_gate.confirm(request.args.get('password')):
        return jsonify({'error': 'Incorrect code'}), 403
    result = lib.repository.health_check()
    result['config'] = {
        'repository': lib.config.get('repository'),
        'DATABASE_URL': 'configured' if os.getenv('DATABASE_URL') else 'not configured',
        'SUPABASE_URL': 'configured' if lib.config.get('rest_url') else 'not configured',
        'SUPABASE_ANON_KEY': 'configured' if lib.config.get('rest_api_key') else 'not configured',
    }
    return jsonify(result), 200 if result.get('status') == 'success' else 500


@app.route('/api/openapi.json')
def api_openapi():
    """OpenAPI 3.0 document for this API"""
    return jsonify(build_spec(server_url=request.host_url.rstrip('/')))


def main():
    """Main entry point for the web server"""
    global CONFIG_PATH
    parser = argparse.ArgumentParser(description='rePINGO Web')
    parser.add_argument('--config', default='config.json', help='Path to config file')
    parser.add_argument('--host', default='127.0.0.1', help='Interface to listen on')
    parser.add_argument('--port', type=int, default=5000, help='Port to listen on')
    args = parser.parse_args()

    CONFIG_PATH = args.config
    lib = get_library()
    configure_logging(lib.config.get('log_level') or 'INFO')

    print("\n" + "="*60)
    print("🎮 rePINGO Web is starting...")
    print("="*60)
    print("\nOpen your browser and go to:")
    print(f"  http://{args.host}:{args.port}")
    print("\nPress Ctrl+C to stop the server")
    print("="*60 + "\n")

    try:
        app.run(host=args.host, port=args.port, debug=False, threaded=True)
    except KeyboardInterrupt:
        print("\n🛑 rePINGO Web stopped\n")


if __name__ == "__main__":
    main()
