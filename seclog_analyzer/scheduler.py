"""
Bounded-concurrency scheduler: one worker process per input file.

Each file runs in its own process behind a FileTask handle so that a task
exceeding its deadline can be terminated unconditionally; a pool executor
cannot reclaim a worker stuck in a blocking read. Results come back through a
one-way pipe and are merged into the Aggregator on the scheduler's thread
only.
"""

import multiprocessing
import os
import pickle
import time
from collections import deque
from multiprocessing.connection import wait
from typing import Deque, Dict, List, Mapping, Optional, Sequence, Tuple

from .aggregator import Aggregator
from .config import AnalysisConfig
from .events import (
    REASON_LOST,
    REASON_TIMEOUT,
    REASON_WORKER_ERROR,
    REASON_WORKER_EXITED,
    FileResult,
    PartialResult,
)
from .exceptions import TaskTimeoutError
from .exporter import remove_output
from .logging_config import LoggingSettings, configure_worker_logging, get_logger, logging_settings
from .processor import FileOutcome, process_file

logger = get_logger(__name__)

# Seconds to wait for a worker to exit after terminate() before kill()
TERMINATE_GRACE = 2.0


def task_id_for(path: str) -> str:
    """Unique per-file key used for exactly-once result registration."""
    return os.path.normcase(os.path.abspath(str(path)))


def _run_task(
    conn,
    path: str,
    config: AnalysisConfig,
    output_path: Optional[str],
    log_settings: LoggingSettings,
) -> None:
    """
    Worker process entry point.
    Must be at module level for multiprocessing pickle.
    """
    configure_worker_logging(log_settings)
    try:
        outcome = process_file(path, config, output_path)
    except Exception as e:
        outcome = (FileResult.failed(path, REASON_WORKER_ERROR, f"{type(e).__name__}: {e}"), None)
    try:
        conn.send(outcome)
    finally:
        conn.close()


class FileTask:
    """Handle for one file being processed in its own worker process.

    Exposes completion (ready/result) and forced cancellation (cancel) so the
    scheduler never has to enumerate processes globally.
    """

    def __init__(
        self,
        task_id: str,
        path: str,
        config: AnalysisConfig,
        context,
        output_path: Optional[str] = None,
    ):
        self.task_id = task_id
        self.path = str(path)
        self.output_path = output_path
        self.started_at: Optional[float] = None
        self.exited_at: Optional[float] = None
        self.exit_code: Optional[int] = None
        self._receiver, self._sender = context.Pipe(duplex=False)
        self._process = context.Process(
            target=_run_task,
            args=(self._sender, self.path, config, output_path, logging_settings()),
            name=f"seclog-worker-{os.path.basename(self.path)}",
            daemon=True,
        )
        self._finished = False

    def start(self) -> None:
        self._process.start()
        self.started_at = time.monotonic()
        # Only the child writes; without our copy, recv() sees EOF if it dies
        self._sender.close()

    @property
    def waitables(self) -> list:
        return [self._receiver, self._process.sentinel]

    @property
    def receiver(self):
        return self._receiver

    def elapsed(self) -> float:
        if self.started_at is None:
            return 0.0
        return time.monotonic() - self.started_at

    def ready(self) -> bool:
        """True when the worker has sent its outcome (or closed the pipe)."""
        if self._finished:
            return False
        try:
            return self._receiver.poll()
        except (OSError, EOFError):
            return True

    def exited(self) -> bool:
        if self._finished or not self._process.is_alive():
            if self.exited_at is None:
                self.exited_at = time.monotonic()
            return True
        return False

    def result(self) -> Optional[FileOutcome]:
        """Receive the outcome. None if the worker closed the pipe without sending."""
        try:
            outcome = self._receiver.recv()
        except (EOFError, OSError, pickle.UnpicklingError) as e:
            logger.debug("  No result from worker for %s: %s", self.path, e)
            outcome = None
        self._finish()
        return outcome

    def cancel(self) -> None:
        """Forcibly stop the worker. Anything it produced is dropped."""
        if not self._finished and self._process.is_alive():
            self._process.terminate()
        self._finish()

    def _finish(self) -> None:
        if self._finished:
            return
        self._process.join(TERMINATE_GRACE)
        if self._process.is_alive():
            self._process.kill()
            self._process.join()
        self.exit_code = self._process.exitcode
        self._receiver.close()
        self._process.close()
        self._finished = True


class WorkScheduler:
    """
    Dispatch one FileTask per input file, at most max_concurrency at a time.

    The final results depend only on the input files: partials are merged
    through the order-independent Aggregator and FileResults are returned
    sorted by path.
    """

    def __init__(self, config: AnalysisConfig):
        self.config = config
        self.max_concurrency = config.max_concurrency
        self.task_timeout = config.task_timeout
        self._context = multiprocessing.get_context(config.start_method)
        self._results: Dict[str, FileResult] = {}
        self._aggregator: Optional[Aggregator] = None
        self._lines_seen = 0
        self._total = 0

    # ------------------------------------------------------------------
    # Registration (exactly once per task id)
    # ------------------------------------------------------------------

    def register(
        self,
        task_id: str,
        result: FileResult,
        partial: Optional[PartialResult] = None,
    ) -> bool:
        """
        Record a task's outcome. Returns False, and changes nothing, when the
        task id already has a result.
        """
        if task_id in self._results:
            logger.debug("  Duplicate completion ignored for %s", result.path)
            return False

        self._results[task_id] = result
        if result.success:
            self._lines_seen += result.lines_read
            if partial is not None and self._aggregator is not None:
                self._aggregator.merge(partial)
        else:
            logger.warning(
                "    Failed: %s: %s (%s)",
                os.path.basename(result.path),
                result.error,
                result.failure_reason,
            )

        done = len(self._results)
        if done % self.config.progress_every == 0:
            logger.info(
                "    %d/%d files done... (%s lines)", done, self._total, f"{self._lines_seen:,}"
            )
        return True

    # ------------------------------------------------------------------
    # Task lifecycle
    # ------------------------------------------------------------------

    def _start(self, task_id: str, path: str, output_path: Optional[str]) -> FileTask:
        task = FileTask(task_id, path, self.config, self._context, output_path)
        task.start()
        logger.debug("  Started %s", path)
        return task

    def _discard_output(self, task: FileTask) -> None:
        """A failed task keeps no per-file CSV, finished or partial."""
        if task.output_path:
            remove_output(task.output_path)

    def _collect(self, task: FileTask) -> None:
        outcome = task.result()
        if outcome is None:
            self._discard_output(task)
            result = FileResult.failed(
                task.path,
                REASON_WORKER_EXITED,
                f"Worker exited without a result (exit code {task.exit_code})",
                duration=task.elapsed(),
            )
            self.register(task.task_id, result)
            return
        result, partial = outcome
        if not result.success:
            self._discard_output(task)
        self.register(task.task_id, result, partial)

    def _time_out(self, task: FileTask) -> None:
        elapsed = task.elapsed()
        task.cancel()
        self._discard_output(task)
        error = TaskTimeoutError(
            "Task exceeded its deadline and was terminated",
            file_path=task.path,
            timeout=self.task_timeout,
        )
        self.register(
            task.task_id,
            FileResult.failed(task.path, REASON_TIMEOUT, str(error), duration=elapsed),
        )

    def _poll(self, running: Dict[str, FileTask], settling: Dict[str, FileTask]) -> None:
        for task_id, task in list(running.items()):
            if task.ready():
                del running[task_id]
                self._collect(task)
            elif task.exited():
                # Dead without a readable result yet; settle it later
                del running[task_id]
                settling[task_id] = task
            elif task.elapsed() > self.task_timeout:
                del running[task_id]
                self._time_out(task)

        for task_id, task in list(settling.items()):
            if task.ready():
                del settling[task_id]
                self._collect(task)

    def _reconcile(self, settling: Dict[str, FileTask]) -> None:
        """Bounded wait for results from workers that exited before we read them."""
        deadline = time.monotonic() + self.config.reconcile_timeout
        while settling:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            wait([t.receiver for t in settling.values()], timeout=min(remaining, self.config.poll_interval))
            for task_id, task in list(settling.items()):
                if task.ready():
                    del settling[task_id]
                    self._collect(task)

        for task_id, task in list(settling.items()):
            del settling[task_id]
            task.cancel()
            self._discard_output(task)
            self.register(
                task_id,
                FileResult.failed(
                    task.path,
                    REASON_WORKER_EXITED,
                    f"Worker exited without a result (exit code {task.exit_code})",
                    duration=task.elapsed(),
                ),
            )

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def plan(
        self,
        files: Sequence[str],
        output_paths: Optional[Mapping[str, str]] = None,
    ) -> List[Tuple[str, str, Optional[str]]]:
        """(task_id, path, output_path) per distinct input file, in input order."""
        planned: Dict[str, Tuple[str, str, Optional[str]]] = {}
        for path in files:
            path = str(path)
            task_id = task_id_for(path)
            if task_id in planned:
                logger.debug("  Skipping duplicate input %s", path)
                continue
            output_path = output_paths.get(path) if output_paths else None
            planned[task_id] = (task_id, path, output_path)
        return list(planned.values())

    def run(
        self,
        files: Sequence[str],
        aggregator: Aggregator,
        output_paths: Optional[Mapping[str, str]] = None,
    ) -> List[FileResult]:
        """
        Process every file and merge completed partials into aggregator.

        Args:
            files: Input file paths.
            aggregator: Receives each completed task's partial result.
            output_paths: Parse mode only; input path -> per-file CSV path.

        Returns:
            Exactly one FileResult per distinct input file, sorted by path.
        """
        self._results = {}
        self._aggregator = aggregator
        self._lines_seen = 0

        planned = self.plan(files, output_paths)
        self._total = len(planned)
        pending: Deque[Tuple[str, str, Optional[str]]] = deque(planned)
        running: Dict[str, FileTask] = {}
        settling: Dict[str, FileTask] = {}

        logger.info(
            "  Processing %d files (%d workers, %gs timeout)",
            len(planned),
            self.max_concurrency,
            self.task_timeout,
        )

        try:
            while pending or running:
                while pending and len(running) < self.max_concurrency:
                    task_id, path, output_path = pending.popleft()
                    running[task_id] = self._start(task_id, path, output_path)

                # Blocks until a task finishes or exits, or poll_interval passes
                wait(
                    [w for task in running.values() for w in task.waitables],
                    timeout=self.config.poll_interval,
                )
                self._poll(running, settling)

            self._reconcile(settling)
        finally:
            for task in list(running.values()) + list(settling.values()):
                task.cancel()
                self._discard_output(task)

        # Every planned file gets exactly one result
        for task_id, path, output_path in planned:
            if task_id not in self._results:
                logger.error("  No result recorded for %s", path)
                if output_path:
                    remove_output(output_path)
                self.register(
                    task_id,
                    FileResult.failed(path, REASON_LOST, "Task result was lost"),
                )

        self._aggregator = None
        return sorted(
            (self._results[task_id] for task_id, _, _ in planned),
            key=lambda r: r.path,
        )
