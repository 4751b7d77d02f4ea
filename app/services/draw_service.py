"""Timed random draw among the games that have not been played yet."""
import logging
import random
import threading
from typing import Callable, Dict, List, Optional

from ..errors import DrawError, RepositoryError
from ..repositories.base import GameRepository

IDLE = 'idle'
RUNNING = 'running'
COMPLETING = 'completing'

PROGRESS_MAX = 100
# 30 ms per tick, 100 ticks ~ 3 seconds
DEFAULT_TICK_SECONDS = 0.03


class DrawEngine:
    """Runs one draw at a time: ``idle`` -> ``running`` -> ``completing`` -> ``idle``.

    :meth:`start` freezes the candidate list; each :meth:`tick` advances the
    progress counter by one.  The tick that reaches 100 completes the draw:
    one candidate is chosen uniformly at random, reported once through
    *on_complete*, and recorded as the selected game in the repository.
    The repository write is fire-and-forget; its failure is logged and the
    winner stands.

    Args:
        repository:  Where the winner is recorded.
        on_complete: Called with the winning game dict, exactly once per draw.
        rng:         ``random.Random`` instance (pass a seeded one in tests).
    """

    def __init__(self, repository: GameRepository,
                 on_complete: Optional[Callable[[Dict], None]] = None,
                 rng: Optional[random.Random] = None) -> None:
        self._repo = repository
        self._on_complete = on_complete
        self._rng = rng or random.Random()
        self._lock = threading.RLock()
        self._log = logging.getLogger('repingo.draw')
        self.phase = IDLE
        self.progress = 0
        self.candidates: List[Dict] = []
        self.winner: Optional[Dict] = None
        self.persist_error: Optional[str] = None

    @property
    def running(self) -> bool:
        return self.phase != IDLE

    def start(self, eligible: List[Dict]) -> None:
        """Begin a draw over *eligible*.

        Raises:
            DrawError: nothing is eligible, or a draw is already running.
                       The engine stays as it was.
        """
        with self._lock:
            if self.phase != IDLE:
                raise DrawError("A draw is already in progress")
            if not eligible:
                raise DrawError("There are no unplayed games to draw from")
            self.candidates = [dict(g) for g in eligible]
            self.progress = 0
            self.persist_error = None
            self.phase = RUNNING
        self._log.info("Draw started with %d candidates", len(self.candidates))

    def tick(self) -> int:
        """Advance progress by one step; completes the draw at 100.

        Ticks outside the ``running`` phase are ignored.

        Returns:
            The progress value after the tick.
        """
        with self._lock:
            if self.phase != RUNNING:
                return self.progress
            self.progress = min(self.progress + 1, PROGRESS_MAX)
            if self.progress < PROGRESS_MAX:
                return self.progress
            # leave RUNNING before choosing so completion cannot fire twice
            self.phase = COMPLETING
        self._complete()
        return self.progress

    def _complete(self) -> None:
        with self._lock:
            winner = self.candidates[self._rng.randrange(len(self.candidates))]
            self.winner = winner
        self._log.info("Draw finished: %s (%s)", winner.get('id'), winner.get('name'))

        try:
            if self._on_complete:
                try:
                    self._on_complete(dict(winner))
                except Exception as exc:
                    self._log.error("Draw completion handler failed: %s", exc)
            try:
                self._repo.set_selected(winner['id'])
            except RepositoryError as exc:
                self.persist_error = str(exc)
                self._log.error("Could not save the drawn game %s: %s", winner.get('id'), exc)
        finally:
            with self._lock:
                self.phase = IDLE

    def run_to_completion(self, eligible: List[Dict],
                          tick_seconds: float = 0.0,
                          on_progress: Optional[Callable[[int], None]] = None) -> Dict:
        """Start a draw and tick it to the end on the calling thread.

        Args:
            eligible:     Games to draw from.
            tick_seconds: Pause before each tick.
            on_progress:  Called with the progress value after every tick.

        Returns:
            The winning game dict.
        """
        self.start(eligible)
        waiter = threading.Event()
        while self.phase == RUNNING:
            if tick_seconds:
                waiter.wait(tick_seconds)
            progress = self.tick()
            if on_progress:
                on_progress(progress)
        return dict(self.winner)

    def status(self) -> Dict:
        """Phase, progress and last winner for the presentation layer."""
        with self._lock:
            return {
                'phase': self.phase,
                'progress': self.progress,
                'winner': dict(self.winner) if self.winner else None,
                'candidates': len(self.candidates) if self.phase != IDLE else 0,
                'persist_error': self.persist_error,
            }


class DrawRunner:
    """Background thread that ticks a :class:`DrawEngine` on a fixed cadence."""

    def __init__(self, engine: DrawEngine,
                 tick_seconds: float = DEFAULT_TICK_SECONDS) -> None:
        self.engine = engine
        self.tick_seconds = tick_seconds
        self.thread: Optional[threading.Thread] = None
        self._log = logging.getLogger('repingo.draw')

    def start(self, eligible: List[Dict]) -> None:
        """Start a draw and return immediately; raises ``DrawError`` like
        :meth:`DrawEngine.start`."""
        self.engine.start(eligible)
        self.thread = threading.Thread(target=self.run, daemon=True,
                                       name='repingo_draw')
        self.thread.start()

    def run(self) -> None:
        waiter = threading.Event()
        while self.engine.phase == RUNNING:
            waiter.wait(self.tick_seconds)
            self.engine.tick()
        self._log.debug("Draw runner finished at %d%%", self.engine.progress)

    def join(self, timeout: Optional[float] = None) -> None:
        if self.thread:
            self.thread.join(timeout=timeout)
