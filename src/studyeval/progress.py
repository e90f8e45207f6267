"""Progress reporting for eval runs: a rich progress bar over the case loop."""

from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn

from studyeval.models import CaseEvaluationResult, DatasetCase


class ProgressReporter:
    """Shows one bar step per evaluated case and prints case failures."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self._console = console or Console(stderr=True)
        self._total = 0
        self._completed = 0
        self._progress: Optional[Progress] = None
        self._task: Optional[int] = None

    def start(self, total: int) -> None:
        self.finish()
        self._total = total
        self._completed = 0
        self._progress = Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self._console,
        )
        self._task = self._progress.add_task("Evaluating", total=total)
        self._progress.start()

    def case_started(self, index: int, total: int, case: DatasetCase) -> None:
        if self._progress is not None and self._task is not None:
            self._progress.update(
                self._task, description=f"{case.case_id} ({case.agent_name})"
            )

    def case_finished(self, index: int, total: int, result: CaseEvaluationResult) -> None:
        self._completed += 1
        if self._progress is None or self._task is None:
            return
        self._progress.update(self._task, advance=1)
        if not result.passed:
            self._progress.console.print(
                f"[red]FAIL[/red] {self._completed}/{self._total} "
                + escape(f"{result.case_id} ({result.agent_name}): {result.failure_reason}")
            )

    def finish(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None
            self._task = None
