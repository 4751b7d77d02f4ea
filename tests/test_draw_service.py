#!/usr/bin/env python3
"""
Unit tests for the draw engine and its background runner.

Run with:
    python -m pytest tests/test_draw_service.py
"""
import os
import random
import sys
import unittest
from unittest.mock import MagicMock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.errors import DrawError, RepositoryError
from app.repositories import GameRepository
from app.services import DrawEngine, DrawRunner
from app.services.draw_service import COMPLETING, IDLE, PROGRESS_MAX, RUNNING


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ELIGIBLE = [
    {'id': '1', 'name': 'Portal 2', 'played': False},
    {'id': '2', 'name': 'Stardew Valley', 'played': False},
    {'id': '3', 'name': 'Among Us', 'played': False},
]


def make_engine(seed=42):
    repo = MagicMock(spec=GameRepository)
    winners = []
    engine = DrawEngine(repo, on_complete=winners.append, rng=random.Random(seed))
    return engine, repo, winners


# ===========================================================================
# DrawEngine
# ===========================================================================

class TestDrawEngine(unittest.TestCase):

    def test_starts_idle(self):
        engine, _, _ = make_engine()
        self.assertEqual(engine.phase, IDLE)
        self.assertEqual(engine.progress, 0)
        self.assertFalse(engine.running)

    def test_completion_fires_exactly_once_with_eligible_game(self):
        engine, repo, winners = make_engine()
        winner = engine.run_to_completion(ELIGIBLE)
        self.assertEqual(len(winners), 1)
        self.assertIn(winner['id'], {g['id'] for g in ELIGIBLE})
        self.assertEqual(winners[0]['id'], winner['id'])
        repo.set_selected.assert_called_once_with(winner['id'])
        self.assertEqual(engine.phase, IDLE)

    def test_progress_runs_one_to_hundred(self):
        engine, _, winners = make_engine()
        engine.start(ELIGIBLE)
        seen = [engine.tick() for _ in range(PROGRESS_MAX)]
        self.assertEqual(seen, list(range(1, PROGRESS_MAX + 1)))
        self.assertEqual(len(winners), 1)

    def test_no_winner_before_hundred(self):
        engine, _, winners = make_engine()
        engine.start(ELIGIBLE)
        for _ in range(PROGRESS_MAX - 1):
            engine.tick()
        self.assertEqual(engine.phase, RUNNING)
        self.assertEqual(winners, [])

    def test_extra_ticks_after_completion_are_ignored(self):
        engine, repo, winners = make_engine()
        engine.run_to_completion(ELIGIBLE)
        for _ in range(10):
            self.assertEqual(engine.tick(), PROGRESS_MAX)
        self.assertEqual(len(winners), 1)
        self.assertEqual(repo.set_selected.call_count, 1)

    def test_ticks_while_idle_do_nothing(self):
        engine, _, winners = make_engine()
        self.assertEqual(engine.tick(), 0)
        self.assertEqual(winners, [])

    def test_empty_eligible_set_is_rejected(self):
        engine, repo, winners = make_engine()
        with self.assertRaises(DrawError):
            engine.start([])
        self.assertEqual(engine.phase, IDLE)
        self.assertEqual(engine.progress, 0)
        self.assertEqual(winners, [])
        repo.set_selected.assert_not_called()

    def test_start_while_running_is_rejected(self):
        engine, _, _ = make_engine()
        engine.start(ELIGIBLE)
        engine.tick()
        with self.assertRaises(DrawError):
            engine.start(ELIGIBLE)
        self.assertEqual(engine.progress, 1)

    def test_candidates_frozen_at_start(self):
        engine, _, _ = make_engine()
        eligible = [dict(ELIGIBLE[0])]
        engine.start(eligible)
        eligible.clear()
        eligible.append({'id': 'late', 'name': 'Late arrival'})
        while engine.phase == RUNNING:
            engine.tick()
        self.assertEqual(engine.winner['id'], '1')

    def test_persist_failure_keeps_winner(self):
        engine, repo, winners = make_engine()
        repo.set_selected.side_effect = RepositoryError('write timeout')
        winner = engine.run_to_completion(ELIGIBLE)
        self.assertEqual(winners[0]['id'], winner['id'])
        self.assertEqual(engine.winner['id'], winner['id'])
        self.assertEqual(engine.persist_error, 'write timeout')
        self.assertEqual(engine.phase, IDLE)

    def test_failing_completion_handler_still_saves_winner(self):
        repo = MagicMock(spec=GameRepository)

        def explode(game):
            raise RuntimeError('display closed')

        engine = DrawEngine(repo, on_complete=explode, rng=random.Random(3))
        engine.start(ELIGIBLE)
        for _ in range(PROGRESS_MAX):
            engine.tick()
        self.assertEqual(engine.phase, IDLE)
        self.assertIsNotNone(engine.winner)
        repo.set_selected.assert_called_once_with(engine.winner['id'])

    def test_run_to_completion_reports_progress(self):
        engine, _, _ = make_engine()
        seen = []
        engine.run_to_completion(ELIGIBLE, on_progress=seen.append)
        self.assertEqual(seen, list(range(1, PROGRESS_MAX + 1)))

    def test_next_draw_clears_persist_error(self):
        engine, repo, _ = make_engine()
        repo.set_selected.side_effect = RepositoryError('write timeout')
        engine.run_to_completion(ELIGIBLE)
        repo.set_selected.side_effect = None
        engine.run_to_completion(ELIGIBLE)
        self.assertIsNone(engine.persist_error)

    def test_every_candidate_can_win(self):
        engine, _, winners = make_engine(seed=7)
        for _ in range(60):
            engine.run_to_completion(ELIGIBLE)
        self.assertEqual({w['id'] for w in winners}, {'1', '2', '3'})

    def test_same_seed_same_winner(self):
        first, _, _ = make_engine(seed=99)
        second, _, _ = make_engine(seed=99)
        self.assertEqual(first.run_to_completion(ELIGIBLE)['id'],
                         second.run_to_completion(ELIGIBLE)['id'])

    def test_status(self):
        engine, _, _ = make_engine()
        engine.start(ELIGIBLE)
        engine.tick()
        status = engine.status()
        self.assertEqual(status['phase'], RUNNING)
        self.assertEqual(status['progress'], 1)
        self.assertEqual(status['candidates'], 3)
        self.assertIsNone(status['winner'])

    def test_completing_phase_is_not_running_anymore(self):
        phases = []
        repo = MagicMock(spec=GameRepository)
        engine = DrawEngine(repo, rng=random.Random(1))
        engine._on_complete = lambda game: phases.append(engine.phase)
        engine.run_to_completion(ELIGIBLE)
        self.assertEqual(phases, [COMPLETING])


# ===========================================================================
# DrawRunner
# ===========================================================================

class TestDrawRunner(unittest.TestCase):

    def test_runs_draw_in_background(self):
        engine, repo, winners = make_engine()
        runner = DrawRunner(engine, tick_seconds=0)
        runner.start(ELIGIBLE)
        runner.join(timeout=5)
        self.assertFalse(runner.thread.is_alive())
        self.assertEqual(engine.phase, IDLE)
        self.assertEqual(engine.progress, PROGRESS_MAX)
        self.assertEqual(len(winners), 1)
        repo.set_selected.assert_called_once()

    def test_runner_survives_failing_completion_handler(self):
        repo = MagicMock(spec=GameRepository)

        def explode(game):
            raise RuntimeError('display closed')

        engine = DrawEngine(repo, on_complete=explode, rng=random.Random(3))
        runner = DrawRunner(engine, tick_seconds=0)
        runner.start(ELIGIBLE)
        runner.join(timeout=5)
        self.assertEqual(engine.phase, IDLE)
        repo.set_selected.assert_called_once()
        runner.start(ELIGIBLE)
        runner.join(timeout=5)
        self.assertEqual(repo.set_selected.call_count, 2)

    def test_start_rejects_empty_set_without_thread(self):
        engine, _, _ = make_engine()
        runner = DrawRunner(engine, tick_seconds=0)
        with self.assertRaises(DrawError):
            runner.start([])
        self.assertIsNone(runner.thread)


if __name__ == '__main__':
    unittest.main()
