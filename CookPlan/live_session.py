"""
Caller-side live cooking session.

Every mutation follows the same three steps:

1. build a command against the current tasks and apply it immediately,
   before any network call starts (the method itself is synchronous);
2. return an awaitable that persists the change through the gateway;
3. if persisting fails, put back exactly the task values the command
   captured in step 1.

Mutations are not serialized against each other. The last server response
to land becomes the local timeline, and `is_busy(task_id)` tells a UI which
controls to disable while their mutation is in flight. Undo deadlines are
checked lazily whenever undo is asked for; nothing runs in the background.
Offline shifts wait in `replay_queue` and go out after the next successful
server response, or when `flush_offline()` is called.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional

from CookPlan import commands, config
from CookPlan.commands import TaskCommand
from CookPlan.exceptions import (
    ConnectivityError, NotFoundError, PlannerError, UndoExpired, ValidationError,
)
from CookPlan.gateway import TimelineGateway
from CookPlan.models import (
    RecalculationSuggestion, Task, TaskStatus, Timeline, UndoableAction, current_task,
)
from CookPlan.utils_time import utc_now

logger = logging.getLogger(__name__)


@dataclass
class UndoEntry:
    action: UndoableAction
    command: TaskCommand
    # "checkoff" goes back through the status endpoint, "batch" rewrites start times
    kind: str = "checkoff"


class LiveSession:
    def __init__(self, timeline: Timeline, gateway: TimelineGateway,
                 clock: Callable[[], datetime] = utc_now,
                 undo_window_seconds: int = config.UNDO_WINDOW_SECONDS,
                 max_suggestion_attempts: int = config.MAX_SUGGESTION_ATTEMPTS,
                 offline_shift_minutes: int = config.OFFLINE_SHIFT_MINUTES):
        self.timeline = timeline
        self.gateway = gateway
        self.clock = clock
        self.undo_window_seconds = undo_window_seconds
        self.max_suggestion_attempts = max_suggestion_attempts
        self.offline_shift_minutes = offline_shift_minutes

        self.online = True
        # task id -> absolute start time still to be written, last write wins
        self.replay_queue: Dict[str, int] = {}
        self.suggestion_attempts = 0
        self.episode_open = False
        self.last_suggestion: Optional[RecalculationSuggestion] = None

        self._undo: List[UndoEntry] = []
        self._in_flight: Dict[str, int] = {}
        self._flushing = False

    # --- state -----------------------------------------------------------

    @property
    def meal_id(self) -> str:
        return self.timeline.meal_id

    @property
    def tasks(self) -> List[Task]:
        return self.timeline.tasks

    @property
    def current_task(self) -> Optional[Task]:
        return current_task(self.timeline.tasks)

    def is_busy(self, task_id: str) -> bool:
        return self._in_flight.get(task_id, 0) > 0

    def undo_actions(self) -> List[UndoableAction]:
        """Undo actions still inside their window; expired ones are dropped here."""
        now = self.clock()
        self._undo = [e for e in self._undo if e.action.is_valid(now)]
        return [e.action for e in self._undo]

    # --- plumbing --------------------------------------------------------

    def _begin(self, command: TaskCommand) -> None:
        self.timeline.tasks = command.apply(self.timeline.tasks)
        for task_id in command.task_ids:
            self._in_flight[task_id] = self._in_flight.get(task_id, 0) + 1

    def _release(self, command: TaskCommand) -> None:
        for task_id in command.task_ids:
            left = self._in_flight.get(task_id, 0) - 1
            if left > 0:
                self._in_flight[task_id] = left
            else:
                self._in_flight.pop(task_id, None)

    def _adopt(self, timeline: Timeline) -> None:
        """Take the server's timeline, keeping offline shifts that are not written yet."""
        if self.replay_queue:
            timeline.tasks = [
                t.moved_to(self.replay_queue[t.id]) if t.id in self.replay_queue else t
                for t in timeline.tasks
            ]
        self.timeline = timeline

    async def _persist(self, command: TaskCommand, send: Callable[[], Awaitable[Timeline]],
                       on_failure: Optional[Callable[[], None]] = None) -> Timeline:
        try:
            result = await send()
        except Exception as e:
            self.timeline.tasks = command.revert(self.timeline.tasks)
            if on_failure is not None:
                on_failure()
            if isinstance(e, ConnectivityError):
                self.online = False
            logger.warning("[live] %s rolled back: %s", command.name, e)
            raise
        finally:
            self._release(command)
        self.online = True
        self._adopt(result)
        if self.replay_queue and not self._flushing:
            # The server answered, so queued offline shifts can go out now
            await self.flush_offline()
        return self.timeline

    async def _send_status(self, task_id: str, status: TaskStatus,
                           previous_status: Optional[TaskStatus] = None) -> Timeline:
        result = await self.gateway.update_task_status(
            self.meal_id, task_id, status, previous_status=previous_status
        )
        return result["timeline"]

    async def _write_starts(self, command: TaskCommand) -> Timeline:
        """Persist moved start times one task at a time."""
        timeline = self.timeline
        written = []
        try:
            for task in command.changed_tasks():
                timeline = await self.gateway.update_task(
                    self.timeline.id, task.id, {"start_time_minutes": task.start_time_minutes}
                )
                written.append(task.id)
        except Exception:
            await self._restore_starts(command, written)
            raise
        return timeline

    async def _restore_starts(self, command: TaskCommand, task_ids: List[str]) -> None:
        """Best effort: put back start times already written before a batch failed."""
        for task_id in task_ids:
            before = command.before[task_id]
            try:
                await self.gateway.update_task(
                    self.timeline.id, task_id, {"start_time_minutes": before.start_time_minutes}
                )
            except PlannerError as e:
                logger.warning("[live] could not restore start of task %s: %s", task_id, e)

    # --- mutations -------------------------------------------------------

    def check_off(self, task_id: str) -> Awaitable[Timeline]:
        now = self.clock()
        command = commands.check_off(self.timeline.tasks, task_id, now)
        self._begin(command)
        entry = UndoEntry(
            UndoableAction.for_checkoff(task_id, command.undo_status, now, self.undo_window_seconds),
            command,
        )
        self._undo.append(entry)
        return self._persist(
            command,
            lambda: self._send_status(task_id, TaskStatus.completed),
            on_failure=lambda: self._discard_undo(entry),
        )

    def skip(self, task_id: str) -> Awaitable[Timeline]:
        command = commands.skip(self.timeline.tasks, task_id)
        self._begin(command)
        return self._persist(command, lambda: self._send_status(task_id, TaskStatus.skipped))

    def undo(self, task_id: Optional[str] = None) -> Awaitable[Timeline]:
        """
        Take back the latest still-valid checkoff of `task_id`, or the latest
        undoable action of any kind when no task is named.
        """
        now = self.clock()
        self._undo = [e for e in self._undo if e.action.is_valid(now)]
        candidates = [e for e in self._undo if task_id is None or e.action.task_id == task_id]
        if not candidates:
            raise UndoExpired(f"Nothing to undo within the last {self.undo_window_seconds} seconds")

        entry = candidates[-1]
        self._undo.remove(entry)
        inverse = entry.command.inverse(f"undo {entry.command.name}")
        self._begin(inverse)

        if entry.kind == "batch":
            send = lambda: self._write_starts(inverse)
        else:
            send = lambda: self._send_status(
                entry.action.task_id, TaskStatus.pending, previous_status=entry.action.previous_status
            )
        return self._persist(inverse, send, on_failure=lambda: self._undo.append(entry))

    def _discard_undo(self, entry: UndoEntry) -> None:
        if entry in self._undo:
            self._undo.remove(entry)

    # --- running behind --------------------------------------------------

    def begin_behind_episode(self) -> None:
        self.episode_open = True
        self.suggestion_attempts = 0
        self.last_suggestion = None

    def end_behind_episode(self) -> None:
        self.episode_open = False
        self.last_suggestion = None

    @property
    def suggestions_remaining(self) -> int:
        return max(0, self.max_suggestion_attempts - self.suggestion_attempts)

    async def request_suggestion(self, context: Optional[str] = None) -> RecalculationSuggestion:
        """
        One fresh suggestion against the stored timeline. Rejected suggestions
        are never applied, so every attempt sees the same snapshot.
        """
        if not self.episode_open:
            self.begin_behind_episode()
        if not self.online:
            raise ConnectivityError("Offline: push the remaining tasks back instead")
        if self.suggestion_attempts >= self.max_suggestion_attempts:
            raise ValidationError(
                "No more suggestions for this delay. Edit the timeline or push everything back."
            )
        self.suggestion_attempts += 1
        try:
            suggestion = await self.gateway.request_suggestion(self.meal_id, self.clock(), context)
        except ConnectivityError:
            self.online = False
            raise
        self.last_suggestion = suggestion
        return suggestion

    def accept_suggestion(self, suggestion: RecalculationSuggestion) -> Awaitable[Timeline]:
        now = self.clock()
        moved = self.timeline.task(suggestion.task_id)
        if moved is None:
            raise NotFoundError(f"Task not found: {suggestion.task_id}")
        command = commands.accept_suggestion(self.timeline.tasks, suggestion)
        self._begin(command)
        entry = UndoEntry(
            UndoableAction(
                task_id=suggestion.task_id,
                previous_status=moved.status,
                expires_at=now + timedelta(seconds=self.undo_window_seconds),
            ),
            command,
            kind="batch",
        )
        self._undo.append(entry)
        self.end_behind_episode()
        logger.info("[live] accepting suggestion for %s (%d tasks)", suggestion.task_id, len(command.task_ids))
        return self._persist(
            command, lambda: self._write_starts(command), on_failure=lambda: self._discard_undo(entry)
        )

    # --- offline ---------------------------------------------------------

    def shift_offline(self, minutes: Optional[int] = None) -> TaskCommand:
        """Push every pending task back without the network and queue the new starts."""
        if minutes is None:
            minutes = self.offline_shift_minutes
        command = commands.shift_pending(self.timeline.tasks, minutes)
        self.timeline.tasks = command.apply(self.timeline.tasks)
        for task in command.changed_tasks():
            self.replay_queue[task.id] = task.start_time_minutes
        logger.info("[live] offline shift of %d tasks queued", len(command.task_ids))
        return command

    async def flush_offline(self) -> int:
        """
        Replay queued start times once the server is reachable again.
        Stops at the first connectivity error; other failures stay queued,
        except tasks that no longer exist.
        """
        logger.info("[live] replaying %d queued shifts", len(self.replay_queue))
        flushed = 0
        self._flushing = True
        try:
            for task_id, start in list(self.replay_queue.items()):
                try:
                    timeline = await self.gateway.update_task(
                        self.timeline.id, task_id, {"start_time_minutes": start}
                    )
                except ConnectivityError:
                    self.online = False
                    break
                except NotFoundError:
                    logger.info("[live] dropping queued shift for deleted task %s", task_id)
                    self.replay_queue.pop(task_id, None)
                    continue
                except PlannerError as e:
                    logger.warning("[live] queued shift for %s kept: %s", task_id, e)
                    continue
                # A newer offline shift may have replaced the value while awaiting
                if self.replay_queue.get(task_id) == start:
                    del self.replay_queue[task_id]
                self.online = True
                self._adopt(timeline)
                flushed += 1
        finally:
            self._flushing = False
        return flushed
