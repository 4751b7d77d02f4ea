#!/usr/bin/env python3
"""
Unit tests for the storage adapters in app/repositories.

Run with:
    python -m pytest tests/test_repositories.py
"""
import json
import os
import shutil
import sys
import tempfile
import unittest
from unittest.mock import MagicMock

import requests

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database
from app.errors import NotFoundError, RepositoryError
from app.repositories import JsonGameRepository, RestGameRepository, SqlGameRepository


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_game(game_id, name='Portal 2', created_at=1000, played=False):
    return {
        'id': game_id,
        'name': name,
        'description': 'Co-op puzzles',
        'max_players': 2,
        'available_on_hydra': False,
        'image_url': '',
        'added_by': 'ana',
        'played': played,
        'created_at': created_at,
    }


class TmpDirMixin(unittest.TestCase):
    """Creates a fresh temp directory for each test and cd's into it."""

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self._orig = os.getcwd()
        os.chdir(self.tmp)

    def tearDown(self):
        os.chdir(self._orig)
        shutil.rmtree(self.tmp, ignore_errors=True)

    def _path(self, name: str) -> str:
        return os.path.join(self.tmp, name)


class RepositoryContract:
    """Behaviour every adapter must share; mixed into the concrete suites."""

    def make_repo(self):
        raise NotImplementedError

    def test_starts_empty(self):
        self.assertEqual(self.repo.list_games(), [])
        self.assertIsNone(self.repo.get_selected())

    def test_create_and_get(self):
        self.repo.create_game(make_game('1'))
        game = self.repo.get_game('1')
        self.assertEqual(game['name'], 'Portal 2')
        self.assertEqual(game['max_players'], 2)
        self.assertFalse(game['played'])

    def test_get_missing_raises(self):
        with self.assertRaises(NotFoundError):
            self.repo.get_game('nope')

    def test_update_rewrites_fields(self):
        self.repo.create_game(make_game('1'))
        self.repo.update_game(make_game('1', name='Portal', created_at=1000))
        self.assertEqual(self.repo.get_game('1')['name'], 'Portal')

    def test_update_missing_raises(self):
        with self.assertRaises(NotFoundError):
            self.repo.update_game(make_game('nope'))

    def test_set_played(self):
        self.repo.create_game(make_game('1'))
        self.repo.set_played('1', True)
        self.assertTrue(self.repo.get_game('1')['played'])
        self.assertEqual(self.repo.get_game('1')['name'], 'Portal 2')

    def test_set_played_missing_raises(self):
        with self.assertRaises(NotFoundError):
            self.repo.set_played('nope', True)

    def test_delete(self):
        self.repo.create_game(make_game('1'))
        self.repo.delete_game('1')
        self.assertEqual(self.repo.list_games(), [])

    def test_delete_missing_raises(self):
        with self.assertRaises(NotFoundError):
            self.repo.delete_game('nope')

    def test_selection_replaces_previous(self):
        self.repo.create_game(make_game('1'))
        self.repo.create_game(make_game('2', name='Dota 2'))
        self.repo.set_selected('1')
        self.repo.set_selected('2')
        self.assertEqual(self.repo.get_selected()['id'], '2')

    def test_delete_clears_selection(self):
        self.repo.create_game(make_game('1'))
        self.repo.set_selected('1')
        self.repo.delete_game('1')
        self.assertIsNone(self.repo.get_selected())

    def test_select_missing_raises(self):
        with self.assertRaises(NotFoundError):
            self.repo.set_selected('nope')

    def test_health_check(self):
        self.repo.create_game(make_game('1'))
        result = self.repo.health_check()
        self.assertEqual(result['status'], 'success')
        self.assertEqual(result['sample'], ['1'])


# ===========================================================================
# JSON file adapter
# ===========================================================================

class TestJsonGameRepository(RepositoryContract, TmpDirMixin):

    def setUp(self):
        super().setUp()
        self.repo = self.make_repo()

    def make_repo(self):
        return JsonGameRepository(self._path('games.json'))

    def test_persists_across_instances(self):
        self.repo.create_game(make_game('1'))
        self.repo.set_selected('1')
        reopened = self.make_repo()
        self.assertEqual(reopened.get_game('1')['name'], 'Portal 2')
        self.assertEqual(reopened.get_selected()['id'], '1')

    def test_corrupt_file_starts_empty(self):
        with open(self._path('games.json'), 'w') as f:
            f.write('{not json')
        self.assertEqual(self.make_repo().list_games(), [])

    def test_duplicate_id_rejected(self):
        self.repo.create_game(make_game('1'))
        with self.assertRaises(RepositoryError):
            self.repo.create_game(make_game('1'))

    def test_update_keeps_created_at(self):
        self.repo.create_game(make_game('1', created_at=1000))
        self.repo.update_game(make_game('1', created_at=9999))
        self.assertEqual(self.repo.get_game('1')['created_at'], 1000)

    def test_write_failure_rolls_back(self):
        repo = JsonGameRepository(os.path.join(self.tmp, 'missing', 'games.json'))
        with self.assertRaises(RepositoryError):
            repo.create_game(make_game('1'))
        self.assertEqual(repo.list_games(), [])

    def test_initialise_creates_file(self):
        self.assertTrue(self.repo.initialise())
        with open(self._path('games.json')) as f:
            self.assertEqual(json.load(f), {'games': [], 'selected': None})

    def test_health_check_reports_file(self):
        self.assertEqual(self.repo.health_check()['data_file'], self._path('games.json'))


# ===========================================================================
# SQLAlchemy adapter
# ===========================================================================

class TestSqlGameRepository(RepositoryContract, unittest.TestCase):

    def setUp(self):
        self.repo = self.make_repo()

    def tearDown(self):
        self.repo.engine.dispose()

    def make_repo(self):
        repo = SqlGameRepository(database, 'sqlite://')
        self.assertTrue(repo.initialise())
        return repo

    def test_list_is_newest_first(self):
        self.repo.create_game(make_game('old', created_at=1))
        self.repo.create_game(make_game('new', created_at=2))
        self.assertEqual([g['id'] for g in self.repo.list_games()], ['new', 'old'])

    def test_duplicate_id_rejected(self):
        self.repo.create_game(make_game('1'))
        with self.assertRaises(RepositoryError):
            self.repo.create_game(make_game('1'))

    def test_create_fills_timestamp(self):
        game = make_game('1')
        game['created_at'] = None
        self.assertIsNotNone(self.repo.create_game(game)['created_at'])

    def test_single_selection_row(self):
        self.repo.create_game(make_game('1'))
        self.repo.set_selected('1')
        self.repo.set_selected('1')
        SessionLocal = self.repo._SessionLocal
        with database.session_scope(SessionLocal) as db:
            self.assertEqual(db.query(database.SelectedGame).count(), 1)

    def test_health_check_reports_database(self):
        self.assertEqual(self.repo.health_check()['database'], 'sqlite://')


# ===========================================================================
# REST adapter
# ===========================================================================

def make_response(payload=None, status_error=None):
    resp = MagicMock()
    resp.content = json.dumps(payload).encode() if payload is not None else b''
    resp.json.return_value = payload
    if status_error:
        resp.raise_for_status.side_effect = status_error
    return resp


class TestRestGameRepository(unittest.TestCase):

    def setUp(self):
        self.session = MagicMock()
        self.session.headers = {}
        self.repo = RestGameRepository('https://demo.supabase.co/', 'anon-key',
                                       timeout=5, session=self.session)

    def _calls(self):
        return [(c.args[0], c.args[1]) for c in self.session.request.call_args_list]

    def test_sets_auth_headers(self):
        self.assertEqual(self.session.headers['apikey'], 'anon-key')
        self.assertEqual(self.session.headers['Authorization'], 'Bearer anon-key')

    def test_list_games(self):
        self.session.request.return_value = make_response([make_game('1')])
        games = self.repo.list_games()
        self.assertEqual(games[0]['id'], '1')
        self.session.request.assert_called_once_with(
            'GET', 'https://demo.supabase.co/rest/v1/games', timeout=5,
            params={'select': '*', 'order': 'created_at.desc'})

    def test_get_missing_raises(self):
        self.session.request.return_value = make_response([])
        with self.assertRaises(NotFoundError):
            self.repo.get_game('nope')

    def test_connection_error_becomes_repository_error(self):
        self.session.request.side_effect = requests.ConnectionError('refused')
        with self.assertRaises(RepositoryError):
            self.repo.list_games()

    def test_http_error_becomes_repository_error(self):
        self.session.request.return_value = make_response(
            {'message': 'boom'}, status_error=requests.HTTPError('500 Server Error'))
        with self.assertRaises(RepositoryError):
            self.repo.create_game(make_game('1'))

    def test_create_sends_snake_case_row(self):
        self.session.request.return_value = make_response([make_game('1')])
        self.repo.create_game(make_game('1'))
        payload = self.session.request.call_args.kwargs['json']
        self.assertEqual(payload['max_players'], 2)
        self.assertEqual(payload['added_by'], 'ana')

    def test_update_with_no_rows_raises_not_found(self):
        self.session.request.return_value = make_response([])
        with self.assertRaises(NotFoundError):
            self.repo.update_game(make_game('1'))

    def test_set_played_sends_only_flag(self):
        self.session.request.return_value = make_response([make_game('1', played=True)])
        self.repo.set_played('1', True)
        call = self.session.request.call_args
        self.assertEqual(call.args[0], 'PATCH')
        self.assertEqual(call.kwargs['json'], {'played': True})
        self.assertEqual(call.kwargs['params'], {'id': 'eq.1'})

    def test_set_selected_replaces_row(self):
        self.session.request.side_effect = [
            make_response([make_game('1')]),
            make_response(),
            make_response([{'id': 1, 'game_id': '1', 'selected_at': 5}]),
        ]
        self.repo.set_selected('1')
        self.assertEqual(self._calls(), [
            ('GET', 'https://demo.supabase.co/rest/v1/games'),
            ('DELETE', 'https://demo.supabase.co/rest/v1/selected_game'),
            ('POST', 'https://demo.supabase.co/rest/v1/selected_game'),
        ])

    def test_get_selected_none(self):
        self.session.request.return_value = make_response([])
        self.assertIsNone(self.repo.get_selected())

    def test_get_selected_resolves_game(self):
        self.session.request.side_effect = [
            make_response([{'game_id': '1', 'selected_at': 5}]),
            make_response([make_game('1')]),
        ]
        self.assertEqual(self.repo.get_selected()['name'], 'Portal 2')

    def test_delete_removes_selection_first(self):
        self.session.request.side_effect = [make_response([]), make_response([make_game('1')])]
        self.repo.delete_game('1')
        self.assertEqual([c[1].rsplit('/', 1)[1] for c in self._calls()],
                         ['selected_game', 'games'])

    def test_health_check_failure(self):
        self.session.request.side_effect = requests.Timeout('slow')
        result = self.repo.health_check()
        self.assertEqual(result['status'], 'error')
        self.assertEqual(result['rest_url'], 'https://demo.supabase.co')


if __name__ == '__main__':
    unittest.main()
