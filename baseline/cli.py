"""baseline CLI: validate profiles, probe targets, and run compliance checks."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from baseline import __version__
from baseline._config import parse_input_overrides, resolve_parameters
from baseline._loading import load_profile
from baseline._types import EXIT_LOAD_ERROR, ExitClassification, RuleStatus
from baseline.engine import describe_target, run_profile
from baseline.errors import LoadError, TargetConnectionError
from baseline.output import parse_output_spec, write_output
from baseline.report import UNDEFINED, Report
from baseline.settings import EngineSettings
from baseline.transport import connect
from baseline.waivers import dangling_waivers, load_waivers

console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger(__name__)

STATUS_STYLE = {
    RuleStatus.PASSED: "green",
    RuleStatus.FAILED: "red",
    RuleStatus.ERRORED: "bold red",
    RuleStatus.NOT_APPLICABLE: "dim",
    RuleStatus.WAIVED: "magenta",
}

# Worst last.
SEVERITY_ORDER = (
    ExitClassification.ALL_PASSED,
    ExitClassification.SOME_FAILED,
    ExitClassification.EXECUTION_ERROR,
)


def _setup_logging(verbose: bool, level: str) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _settings(**overrides) -> EngineSettings:
    try:
        return EngineSettings().with_overrides(**overrides)
    except ValidationError as exc:
        err_console.print(f"[red]Error:[/red] invalid settings: {exc}")
        sys.exit(2)


def _load(profile: str):
    try:
        return load_profile(profile)
    except LoadError as exc:
        _print_problems(exc)
        sys.exit(EXIT_LOAD_ERROR)


def _print_problems(exc: LoadError) -> None:
    err_console.print(f"[red]Error:[/red] {len(exc.problems)} problem(s) found while loading")
    table = Table(show_header=True, header_style="bold")
    table.add_column("Source")
    table.add_column("Rule")
    table.add_column("Problem")
    for problem in exc.problems:
        table.add_row(problem.source or "-", problem.rule_id or "-", problem.reason)
    err_console.print(table)


def worst_classification(classifications) -> ExitClassification:
    """Highest-ranked classification; ``AllPassed`` when there are none."""
    return max(classifications, key=SEVERITY_ORDER.index, default=ExitClassification.ALL_PASSED)


# ── Shared options ──────────────────────────────────────────────────────────


def connection_options(f):
    """Connection options for commands that reach a target."""
    f = click.option("--user", "-u", default=None, help="SSH username (when the target names none)")(f)
    f = click.option("--key", "-k", default=None, help="SSH private key path")(f)
    f = click.option("--password", "-p", default=None, help="SSH password")(f)
    f = click.option("--sudo", is_flag=True, default=None, help="Run all commands via sudo -n")(f)
    f = click.option(
        "--command-timeout",
        type=click.FloatRange(min=0, min_open=True),
        default=None,
        help="Per-command timeout in seconds (default: 30)",
    )(f)
    f = click.option("--verbose", "-v", is_flag=True, help="Debug logging on stderr")(f)
    return f


def selection_options(f):
    """Rule selection and parameter options for check."""
    f = click.option("--tag", multiple=True, help="Only run rules with this tag (repeatable)")(f)
    f = click.option("--rule", "rule_ids", multiple=True, help="Only run this rule id (repeatable)")(f)
    f = click.option(
        "--input",
        "-i",
        "inputs",
        multiple=True,
        metavar="NAME=VALUE",
        help="Override a profile parameter (e.g., -i max_password_age=60)",
    )(f)
    f = click.option(
        "--input-file",
        "input_files",
        multiple=True,
        type=click.Path(exists=True, dir_okay=False),
        help="YAML file of parameter overrides (repeatable)",
    )(f)
    f = click.option(
        "--waivers",
        "-w",
        "waiver_file",
        type=click.Path(exists=True, dir_okay=False),
        default=None,
        help="YAML waiver file",
    )(f)
    return f


def output_options(f):
    """Output format options for check/show."""
    f = click.option(
        "--output",
        "-o",
        "outputs",
        multiple=True,
        help="Output format (json, csv). Add :path to write to file (e.g., -o json:report.json)",
    )(f)
    f = click.option("--quiet", "-q", is_flag=True, help="Suppress terminal output (useful with -o)")(f)
    f = click.option("--no-fail", is_flag=True, default=None, help="Exit 0 even when rules fail or error")(f)
    return f


# ── CLI group ───────────────────────────────────────────────────────────────

MAIN_HELP_EPILOG = """
\b
Targets:
  local                      This machine (default)
  ssh://[user@]host[:port]   A host over SSH (bare host also accepted)
  docker://container         A running local container

\b
Exit codes (check/show):
  0    every evaluated rule passed (or --no-fail)
  100  at least one rule failed
  1    a rule errored, a target was unreachable, or the profile is invalid
  2    usage error

\b
Examples:
  baseline validate profiles/linux-baseline
  baseline detect -t ssh://admin@10.0.0.5 --sudo
  baseline check profiles/linux-baseline -t local
  baseline check profiles/linux-baseline -t web01 -t web02 --sudo -o json:report.json -q
  baseline check profiles/linux-baseline -i max_password_age=60 -w waivers.yml
  baseline show report.json
"""


@click.group(epilog=MAIN_HELP_EPILOG, context_settings={"max_content_width": 120})
@click.version_option(version=__version__, prog_name="baseline")
def main():
    """baseline - declarative compliance checks for Linux targets."""
    pass


# ── validate ────────────────────────────────────────────────────────────────


@main.command()
@click.argument("profile", type=click.Path())
@click.option(
    "--waivers",
    "-w",
    "waiver_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Also validate a waiver file against the profile",
)
def validate(profile, waiver_file):
    """Load a profile and report every structural problem."""
    ruleset = _load(profile)

    if waiver_file:
        try:
            waivers = load_waivers(waiver_file)
        except LoadError as exc:
            _print_problems(exc)
            sys.exit(EXIT_LOAD_ERROR)
        for warning in dangling_waivers(waivers, ruleset.ids):
            console.print(f"[yellow]Warning:[/yellow] {warning}")

    info = ruleset.info
    title = f"{info.name} {info.version}".strip()
    console.print(
        f"[green]OK[/green] {title}: {len(ruleset)} rule(s), {len(ruleset.parameters)} parameter(s)"
    )


# ── detect ──────────────────────────────────────────────────────────────────


@main.command()
@click.option("--target", "-t", "targets", multiple=True, default=("local",), help="Target (repeatable)")
@connection_options
def detect(targets, user, key, password, sudo, command_timeout, verbose):
    """Probe environment facts (OS, container, cloud) on targets."""
    settings = _settings(user=user, key_path=key, sudo=sudo, command_timeout=command_timeout)
    _setup_logging(verbose, settings.log_level)
    failed = False

    for target in targets:
        console.rule(f"[bold]Target: {target}[/bold]")
        try:
            with connect(
                target,
                user=settings.user,
                key_path=settings.key_path,
                password=password,
                sudo=settings.sudo,
                timeout=settings.command_timeout,
            ) as session:
                facts = describe_target(session, command_timeout=settings.command_timeout)
        except TargetConnectionError as exc:
            logger.error("Cannot reach %s: %s", exc.target, exc.reason)
            console.print(f"  [red]Connection failed:[/red] {exc.reason}")
            failed = True
            continue

        table = Table(show_header=True, header_style="bold")
        table.add_column("Fact", min_width=20)
        table.add_column("Value")
        os_info = facts.pop("os", None)
        for name, value in facts.items():
            if value is True:
                mark = "[green]yes[/green]"
            elif value is False or value is None:
                mark = "[dim]no[/dim]"
            else:
                mark = str(value)
            table.add_row(name, mark)
        if isinstance(os_info, dict):
            table.add_row("os", f"{os_info.get('name', '')} {os_info.get('version', '')}".strip())
        elif os_info:
            table.add_row("os", str(os_info))
        console.print(table)
        console.print()

    if failed:
        sys.exit(1)


# ── check ───────────────────────────────────────────────────────────────────


@main.command()
@click.argument("profile", type=click.Path())
@click.option("--target", "-t", "targets", multiple=True, default=("local",), help="Target (repeatable)")
@connection_options
@selection_options
@output_options
@click.option("--concurrency", "-j", type=click.IntRange(1, 64), default=None, help="Rules evaluated in parallel")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Run deadline per target in seconds",
)
@click.option("--stop-on-first-failure", is_flag=True, default=None, help="Stop a rule at its first failed assertion")
def check(
    profile,
    targets,
    user,
    key,
    password,
    sudo,
    command_timeout,
    verbose,
    tag,
    rule_ids,
    inputs,
    input_files,
    waiver_file,
    outputs,
    quiet,
    no_fail,
    concurrency,
    timeout,
    stop_on_first_failure,
):
    """Evaluate a profile against one or more targets."""
    settings = _settings(
        user=user,
        key_path=key,
        sudo=sudo,
        command_timeout=command_timeout,
        concurrency=concurrency,
        timeout=timeout,
        stop_on_first_failure=stop_on_first_failure,
        no_fail=no_fail,
    )
    _setup_logging(verbose, settings.log_level)

    try:
        cli_overrides = parse_input_overrides(inputs)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--input") from exc

    ruleset = _load(profile)
    try:
        parameters = resolve_parameters(ruleset.parameters, input_files=input_files, cli_overrides=cli_overrides)
        waivers = load_waivers(waiver_file) if waiver_file else {}
    except LoadError as exc:
        _print_problems(exc)
        sys.exit(EXIT_LOAD_ERROR)

    warnings = dangling_waivers(waivers, ruleset.ids)
    selected = ruleset.select(tags=list(tag), rule_ids=list(rule_ids))
    if not quiet:
        for warning in warnings:
            console.print(f"[yellow]Warning:[/yellow] {warning}")
        if len(selected) != len(ruleset):
            console.print(f"[dim]Selected {len(selected)} of {len(ruleset)} rule(s)[/dim]")

    reports: list[Report] = []
    unreachable = 0
    for target in targets:
        try:
            with connect(
                target,
                user=settings.user,
                key_path=settings.key_path,
                password=password,
                sudo=settings.sudo,
                timeout=settings.command_timeout,
            ) as session:
                report = run_profile(
                    selected,
                    session,
                    parameters,
                    waivers=waivers,
                    settings=settings,
                    warnings=warnings,
                )
        except TargetConnectionError as exc:
            logger.error("Cannot reach %s: %s", exc.target, exc.reason)
            unreachable += 1
            if not quiet:
                console.print()
                console.rule(f"[bold]Target: {target}[/bold]")
                console.print(f"  [red]Connection failed:[/red] {exc.reason}")
            continue
        reports.append(report)
        if not quiet:
            _print_report(report)

    if not quiet and len(targets) > 1:
        _print_totals(reports, unreachable)

    _write_outputs(reports, outputs)

    classifications = [r.summary.exit_classification for r in reports]
    if unreachable:
        classifications.append(ExitClassification.EXECUTION_ERROR)
    _exit(worst_classification(classifications), settings.no_fail)


# ── show ────────────────────────────────────────────────────────────────────


@main.command()
@click.argument("report_files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@output_options
def show(report_files, outputs, quiet, no_fail):
    """Re-render saved JSON reports and exit with their classification."""
    reports: list[Report] = []
    for path in report_files:
        try:
            reports.extend(_read_reports(Path(path)))
        except (ValueError, ValidationError) as exc:
            err_console.print(f"[red]Error:[/red] {path}: not a report: {exc}")
            sys.exit(1)

    if not quiet:
        for report in reports:
            _print_report(report)
    _write_outputs(reports, outputs)
    settings = _settings(no_fail=no_fail)
    _exit(worst_classification(r.summary.exit_classification for r in reports), settings.no_fail)


def _read_reports(path: Path) -> list[Report]:
    """Accept a single report document or a JSON array of them."""
    data = json.loads(path.read_text())
    if isinstance(data, list):
        return [Report.model_validate(item) for item in data]
    return [Report.model_validate(data)]


# ── Rendering ───────────────────────────────────────────────────────────────


def _print_report(report: Report) -> None:
    console.print()
    console.rule(f"[bold]Target: {report.target}[/bold]")
    meta = report.profile
    console.print(f"  Profile: {meta.title or meta.name} {meta.version}".rstrip())

    table = Table(show_header=True, header_style="bold")
    table.add_column("Rule", min_width=24)
    table.add_column("Severity")
    table.add_column("Status", justify="center")
    table.add_column("Detail")
    for result in report.results:
        style = STATUS_STYLE.get(result.status, "")
        detail = result.reason
        if not detail and result.status == RuleStatus.PASSED:
            detail = result.title
        table.add_row(
            result.rule_id,
            result.severity_label,
            f"[{style}]{result.status.value}[/{style}]",
            detail,
        )
    console.print(table)

    summary = report.summary
    counts = summary.counts
    score = summary.compliance_score
    score_text = "undefined" if score == UNDEFINED else f"{score:.2f}%"
    tier = f" ({summary.tier.value})" if summary.tier else ""
    console.print(
        f"  [bold]{counts.total} rules[/bold] | "
        f"[green]{counts.passed} pass[/green] | "
        f"[red]{counts.failed} fail[/red] | "
        f"[bold red]{counts.errored} error[/bold red]"
        + (f" | [dim]{counts.not_applicable} n/a[/dim]" if counts.not_applicable else "")
        + (f" | [magenta]{counts.waived} waived[/magenta]" if counts.waived else "")
    )
    console.print(f"  Score: [bold]{score_text}[/bold]{tier} | {summary.exit_classification.value}")


def _print_totals(reports: list[Report], unreachable: int) -> None:
    console.print()
    console.rule("[bold]Summary[/bold]")
    passed = sum(r.summary.counts.passed for r in reports)
    failed = sum(r.summary.counts.failed for r in reports)
    errored = sum(r.summary.counts.errored for r in reports)
    console.print(
        f"  {len(reports)} target(s) | "
        f"[green]{passed} pass[/green] | "
        f"[red]{failed} fail[/red] | "
        f"[bold red]{errored} error[/bold red]"
        + (f" | [red]{unreachable} unreachable[/red]" if unreachable else "")
    )
    console.print()


def _write_outputs(reports: list[Report], outputs: tuple[str, ...]) -> None:
    """Write formatted outputs based on --output flags."""
    for spec in outputs:
        try:
            fmt, filepath = parse_output_spec(spec)
            output = write_output(reports, fmt, filepath)
        except ValueError as exc:
            raise click.BadParameter(str(exc), param_hint="--output") from exc
        except OSError as exc:
            err_console.print(f"[red]Error:[/red] cannot write {spec}: {exc.strerror}")
            sys.exit(1)
        if filepath:
            err_console.print(f"[dim]Wrote {fmt} output to {filepath}[/dim]")
        else:
            click.echo(output)


def _exit(classification: ExitClassification, no_fail: bool) -> None:
    sys.exit(0 if no_fail else classification.exit_code)


if __name__ == "__main__":
    main()
