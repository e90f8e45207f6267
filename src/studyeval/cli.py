"""CLI entry point for StudyEval."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from typing import Any, Optional

import click

from studyeval import __version__
from studyeval.adapters import AgentFactory, import_object
from studyeval.config import RunnerOptions, load_config
from studyeval.errors import ConfigError, LoadError
from studyeval.judges import METRICS, MetricJudge, get_judge
from studyeval.loader import default_dataset_paths, load_cases
from studyeval.models import DatasetCase, EvalRunReport
from studyeval.progress import ProgressReporter
from studyeval.ratelimit import RateLimiter
from studyeval.report import default_report_path, format_summary, load_report, write_report
from studyeval.runner import run_dataset


@click.group()
@click.version_option(version=__version__, prog_name="studyeval")
def cli() -> None:
    """StudyEval: dataset evaluation harness for the study-preparation agents."""


def _resolve_ref(ref: str) -> Any:
    """Import an object from 'module:attr', instantiating classes and factories."""
    # Ensure CWD is in sys.path so local modules can be imported
    cwd = os.getcwd()
    if cwd not in sys.path:
        sys.path.insert(0, cwd)

    try:
        obj = import_object(ref)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e
    except ImportError as e:
        raise click.BadParameter(f"Cannot import '{ref}': {e}") from e
    except AttributeError as e:
        raise click.BadParameter(f"'{ref}' not found: {e}") from e

    if isinstance(obj, type) or (callable(obj) and not hasattr(obj, "evaluate")
                                 and not hasattr(obj, "create_agent")):
        obj = obj()
    return obj


def _build_judge(options: RunnerOptions) -> MetricJudge:
    if ":" in options.judge_ref:
        judge = _resolve_ref(options.judge_ref)
        if not hasattr(judge, "evaluate"):
            raise click.BadParameter(f"'{options.judge_ref}' is not a judge (no evaluate method)")
        return judge

    settings = options.judge
    limiter = RateLimiter(settings.min_interval) if settings.min_interval > 0 else None
    try:
        return get_judge(options.judge_ref, {
            "model": settings.model,
            "api_url": settings.api_url,
            "api_key_env": settings.api_key_env,
            "timeout": settings.timeout,
            "logprobs": settings.logprobs,
            "rate_limiter": limiter,
        })
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


async def _run_with_signals(coro_fn, cancel_event: asyncio.Event):
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel_event.set)
            installed.append(sig)
        except (NotImplementedError, RuntimeError, ValueError):
            pass  # Not supported on this platform / thread
    try:
        return await coro_fn()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


@cli.command()
@click.option("--config", "config_path", default=None, type=click.Path(exists=True), help="YAML config file.")
@click.option("--dataset-root", default=None, help="Root folder of the per-agent dataset files.")
@click.option("--dataset-file", "dataset_files", multiple=True, help="Dataset file to load instead of the defaults (repeatable).")
@click.option("--output", default=None, help="Report path. Default: <dataset-root>/reports/eval-report-<timestamp>.json")
@click.option("--max-cases-per-agent", type=click.IntRange(min=1), default=None, help="Cap on cases per agent. [default: 10]")
@click.option("--max-concurrency", type=click.IntRange(min=1), default=None, help="Max concurrent judge calls per case. [default: CPU count - 1]")
@click.option("--agent", "agents", multiple=True, help="Only evaluate these agents (repeatable).")
@click.option("--factory", default=None, help="Agent factory as 'module:attr'.")
@click.option("--judge", "judge_ref", default=None, help="Judge as 'module:attr', or 'llm' for the built-in LLM judge.")
@click.option("--progress/--no-progress", default=True, show_default=True, help="Show a progress bar.")
@click.option("--verbose", "-v", is_flag=True, help="Log per-case details.")
def run(
    config_path: Optional[str],
    dataset_root: Optional[str],
    dataset_files: tuple,
    output: Optional[str],
    max_cases_per_agent: Optional[int],
    max_concurrency: Optional[int],
    agents: tuple,
    factory: Optional[str],
    judge_ref: Optional[str],
    progress: bool,
    verbose: bool,
) -> None:
    """Run the dataset evaluation against the preparation agents."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        options = load_config(config_path) if config_path else RunnerOptions()
    except ConfigError as e:
        click.echo(f"Error loading config: {e}", err=True)
        sys.exit(1)

    # CLI flags override the config file
    if dataset_root:
        options.dataset_root = dataset_root
    if dataset_files:
        options.dataset_files = list(dataset_files)
    if output:
        options.output = output
    if max_cases_per_agent is not None:
        options.max_cases_per_agent = max_cases_per_agent
    if max_concurrency is not None:
        options.max_concurrency = max_concurrency
    if agents:
        options.agents = list(agents)
    if factory:
        options.factory = factory
    if judge_ref:
        options.judge_ref = judge_ref

    if not options.factory:
        click.echo("Error: No agent factory specified. Use --factory or set 'factory' in the config.", err=True)
        sys.exit(1)

    if options.judge_ref == "llm" and not os.environ.get(options.judge.api_key_env):
        click.echo(f"Error: Missing judge configuration. Set {options.judge.api_key_env}.", err=True)
        sys.exit(2)

    # Load cases
    paths = options.dataset_files or default_dataset_paths(options.dataset_root)
    try:
        cases = load_cases(
            paths,
            max_cases_per_agent=options.max_cases_per_agent,
            agent_filter=options.agents,
        )
    except LoadError as e:
        click.echo(f"Error loading dataset: {e}", err=True)
        sys.exit(1)

    try:
        agent_factory = _resolve_ref(options.factory)
        if not isinstance(agent_factory, AgentFactory):
            raise click.BadParameter(f"'{options.factory}' did not produce an AgentFactory")
        judge = _build_judge(options)
    except click.BadParameter as e:
        click.echo(f"Error: {e.format_message()}", err=True)
        sys.exit(1)

    click.echo(f"Loaded {len(cases)} dataset cases.")
    click.echo(f"Metric max concurrency: {options.max_concurrency}")

    reporter = ProgressReporter() if progress else None
    cancel_event = asyncio.Event()

    def _on_start(index: int, total: int, case: DatasetCase) -> None:
        if reporter is not None:
            reporter.case_started(index, total, case)
        else:
            click.echo(f"[{index}/{total}] Evaluating {case.case_id} ({case.agent_name})...")

    async def _go() -> EvalRunReport:
        return await run_dataset(
            cases, agent_factory, judge,
            max_concurrency=options.max_concurrency,
            policy=options.policy,
            cancel_event=cancel_event,
            on_case_start=_on_start,
            on_result=reporter.case_finished if reporter is not None else None,
        )

    if reporter is not None:
        reporter.start(len(cases))
    try:
        report = asyncio.run(_run_with_signals(_go, cancel_event))
    except Exception as e:
        click.echo(f"Error during run: {e}", err=True)
        sys.exit(1)
    finally:
        if reporter is not None:
            reporter.finish()

    if cancel_event.is_set():
        click.echo(
            f"Run cancelled: {report.total_cases} of {len(cases)} cases evaluated.", err=True
        )

    out_path = options.output or default_report_path(options.dataset_root)
    written = write_report(report, out_path)

    click.echo()
    click.echo(format_summary(report))
    click.echo(f"Report written: {written.resolve()}")

    if report.total_passed < report.total_cases:
        sys.exit(1)


@cli.command()
@click.argument("report_path", type=click.Path(exists=True))
@click.option("--failures", is_flag=True, help="List failed cases with their reasons.")
def show(report_path: str, failures: bool) -> None:
    """Print the summary of a saved evaluation report."""
    try:
        data = load_report(report_path)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Generated: {data.get('generated_at', '?')}")
    click.echo(format_summary(data))

    if failures:
        failed = [c for c in data.get("cases", []) if not c.get("passed")]
        click.echo(f"\nFailed cases: {len(failed)}")
        for c in failed:
            status = click.style("FAIL", fg="red")
            click.echo(f"  {status}  {c['case_id']} ({c['agent_name']}, composite={c['composite_score']:.2f})")
            click.echo(f"         {c.get('failure_reason') or ''}")


@cli.command("metrics")
def list_metrics() -> None:
    """List the supported metrics and the explain inputs each needs."""
    for spec in sorted(METRICS.values(), key=lambda m: m.name):
        click.echo(f"{spec.name:<30} {', '.join(spec.required_keys)}")