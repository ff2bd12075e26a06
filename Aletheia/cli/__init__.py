"""
Command-line interface for Aletheia.
"""
from __future__ import annotations

import json
import logging
import random
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from Aletheia.config import Settings
from Aletheia.core.detector import ClassificationPipeline
from Aletheia.core.errors import AletheiaError, ConfigurationError
from Aletheia.core.recorder import KeyRecorder
from Aletheia.core.result import ConfidenceTier, Origin, Verdict
from Aletheia.core.runner import HarvestRunner, load_checkpoints, save_checkpoints
from Aletheia.core.scanner import scan_directory, scan_file
from Aletheia.detectors.context import ContextValidator
from Aletheia.detectors.regex_patterns import PatternLibrary
from Aletheia.detectors.samples import context_sentence, synthesize
from Aletheia.harvest.base import SearchSource
from Aletheia.harvest.github import GitHubCodeSearch
from Aletheia.harvest.gitlab import GitLabBlobSearch
from Aletheia.harvest.harvester import Harvester
from Aletheia.lifecycle.status import KeyStatus, StatusLifecycle
from Aletheia.store.base import KeyStore
from Aletheia.store.json_file import JsonFileKeyStore
from Aletheia.verify.coordinator import VerificationCoordinator
from Aletheia.verify.dispatcher import VerificationDispatcher

app = typer.Typer(
    name="aletheia",
    help="Aletheia - discover and verify leaked AI-provider API keys",
    add_completion=False,
)
console = Console()
error_console = Console(stderr=True)

CHECKPOINTS_FILE = "checkpoints.json"
SELF_TEST_ORIGIN = Origin(source_identifier="self-test", location="rules")

TIER_STYLES = {
    ConfidenceTier.HIGH: "red",
    ConfidenceTier.MEDIUM: "yellow",
    ConfidenceTier.LOW: "blue",
}
STATUS_STYLES = {
    KeyStatus.UNKNOWN: "white",
    KeyStatus.VALID: "red bold",
    KeyStatus.INVALID: "green",
    KeyStatus.REVOKED: "dim",
}
VERDICT_STYLES = {
    Verdict.VALID: "red bold",
    Verdict.INVALID: "green",
    Verdict.UNVERIFIABLE: "yellow",
}


def _styled(text: str, style: str) -> str:
    return f"[{style}]{text}[/{style}]"


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=error_console, show_path=False)],
        force=True,
    )


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Aletheia - discover and verify leaked AI-provider API keys."""
    _configure_logging(verbose)


def _fail(message: str) -> typer.Exit:
    error_console.print(f"[red]✗[/red] {message}")
    return typer.Exit(code=2)


def _load_library(rules_file: Optional[Path]) -> PatternLibrary:
    if rules_file is None:
        return PatternLibrary()
    if not rules_file.exists():
        raise _fail(f"Rules file not found: {rules_file}")
    try:
        return PatternLibrary.from_yaml(rules_file)
    except ConfigurationError as e:
        raise _fail(f"Invalid rules file: {e}")


def _load_settings(config: Optional[Path]) -> Settings:
    try:
        return Settings.load(config)
    except ConfigurationError as e:
        raise _fail(str(e))


def _open_store(settings: Settings, store: Optional[Path]) -> JsonFileKeyStore:
    directory = store if store is not None else settings.store_path
    try:
        return JsonFileKeyStore(directory)
    except AletheiaError as e:
        raise _fail(str(e))


def _resolve_key(store: KeyStore, key: str) -> str:
    """Accept a full key_id or a unique prefix of one."""
    if store.get(key) is not None:
        return key
    matches = [r.key_id for r in store.list_records() if r.key_id.startswith(key)]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise _fail(f"No stored key matches {key}")
    raise _fail(f"Key prefix {key} is ambiguous ({len(matches)} matches)")


def _build_source(name: str, settings: Settings) -> SearchSource:
    if name == "github":
        if not settings.github_token:
            raise _fail("GitHub code search requires GITHUB_TOKEN")
        return GitHubCodeSearch(settings.github_token, timeout=settings.request_timeout)
    if name == "gitlab":
        if not settings.gitlab_token:
            raise _fail("GitLab search requires GITLAB_TOKEN")
        return GitLabBlobSearch(settings.gitlab_token, base_url=settings.gitlab_url, timeout=settings.request_timeout)
    raise _fail(f"Unknown source: {name} (expected github or gitlab)")


def _coordinator(settings: Settings, store: KeyStore) -> VerificationCoordinator:
    dispatcher = VerificationDispatcher(timeout=settings.request_timeout)
    return VerificationCoordinator(dispatcher, StatusLifecycle(store), store, max_workers=settings.verify_workers)


@app.command()
def scan(
    path: Path = typer.Argument(..., help="File or directory to scan"),
    recursive: bool = typer.Option(
        True, "--recursive/--no-recursive", "-r",
        help="Scan directories recursively"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output results as JSON"),
    max_file_size: int = typer.Option(10, "--max-size", help="Max file size in MB"),
    ignore: Optional[str] = typer.Option(
        None, "--ignore",
        help="Comma-separated patterns to ignore"
    ),
    rules_file: Optional[Path] = typer.Option(None, "--rules", help="YAML file with extra rules"),
) -> None:
    """
    Scan a local file or directory for leaked provider keys.

    Examples:

        # Scan a single file
        aletheia scan config.env

        # Scan a directory, ignoring fixtures
        aletheia scan ./my_project --ignore "fixtures/,*.lock"

        # Output as JSON (raw keys are never included)
        aletheia scan ./my_project --json
    """
    if not path.exists():
        error_console.print(f"[red]✗[/red] Path not found: {path}")
        raise typer.Exit(code=2)

    pipeline = ClassificationPipeline(_load_library(rules_file))
    max_bytes = max_file_size * 1024 * 1024

    if path.is_file():
        result = scan_file(path, pipeline=pipeline, max_file_size=max_bytes)
    else:
        patterns = [p.strip() for p in ignore.split(",") if p.strip()] if ignore else []
        result = scan_directory(
            path,
            pipeline=pipeline,
            recursive=recursive,
            max_file_size=max_bytes,
            ignore_patterns=patterns,
        )

    for error in result.errors:
        error_console.print(f"[yellow]⚠[/yellow]  {error}")

    if json_output:
        print(json.dumps(result.to_dict(), indent=2))
        raise typer.Exit(code=1 if result.found_secrets else 0)

    if not result.found_secrets:
        console.print("[green]✓[/green] No keys detected")
        console.print(
            f"Scanned {result.scanned_files} files ({result.total_lines} lines) "
            f"in {result.duration_ms:.0f}ms"
        )
        raise typer.Exit(code=0)

    table = Table(title=f"Found {len(result.candidates)} potential keys", show_header=True)
    table.add_column("Confidence", style="bold")
    table.add_column("Provider", style="cyan")
    table.add_column("Location")
    table.add_column("Key")

    for candidate in sorted(
        result.candidates,
        key=lambda c: (c.confidence_tier.rank, c.origin.location, c.line or 0),
    ):
        tier = candidate.confidence_tier
        location = f"{candidate.origin.location}:{candidate.line}" if candidate.line else candidate.origin.location
        table.add_row(
            _styled(tier.value.upper(), TIER_STYLES[tier]),
            candidate.provider_id,
            location,
            candidate.redacted_text,
        )

    console.print(table)
    console.print(
        f"\nScanned {result.scanned_files} files ({result.total_lines} lines) "
        f"in {result.duration_ms:.0f}ms"
    )
    console.print(f"[yellow]⚠[/yellow]  Found {result.high_count} high confidence keys")
    raise typer.Exit(code=1)


@app.command()
def harvest(
    query: Optional[List[str]] = typer.Option(
        None, "--query", "-q",
        help="Search query (repeatable; defaults to the configured queries)"
    ),
    source: str = typer.Option("github", "--source", "-s", help="Search source: github or gitlab"),
    max_pages: Optional[int] = typer.Option(None, "--max-pages", help="Pages per query"),
    per_page: Optional[int] = typer.Option(None, "--per-page", help="Results per page (1-100)"),
    store: Optional[Path] = typer.Option(None, "--store", help="Key store directory"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML settings file"),
    rules_file: Optional[Path] = typer.Option(None, "--rules", help="YAML file with extra rules"),
    verify_keys: bool = typer.Option(False, "--verify", help="Live-verify newly found keys"),
    resume: bool = typer.Option(False, "--resume", help="Resume queries abandoned by the last run"),
    json_output: bool = typer.Option(False, "--json", help="Output results as JSON"),
) -> None:
    """
    Search public code for leaked keys and record them.

    Examples:

        # Run the default GitHub queries
        aletheia harvest

        # One query, one page, then verify what was found
        aletheia harvest -q '"sk-ant-" language:python' --max-pages 1 --verify
    """
    settings = _load_settings(config)
    try:
        settings = settings.merged(
            max_pages=max_pages,
            per_page=per_page,
            store_dir=str(store) if store is not None else None,
            rules_file=str(rules_file) if rules_file is not None else None,
        )
    except ConfigurationError as e:
        raise _fail(str(e))

    library = _load_library(Path(settings.rules_file) if settings.rules_file else None)
    pipeline = ClassificationPipeline(library, validator=ContextValidator(settings.context_radius, library))
    search_source = _build_source(source, settings)
    key_store = _open_store(settings, None)
    checkpoints_path = settings.store_path / CHECKPOINTS_FILE

    harvester = Harvester(
        search_source,
        page_delay=settings.page_delay,
        rate_limit_fallback=settings.rate_limit_fallback,
        max_cooldown=settings.max_cooldown,
    )
    coordinator = _coordinator(settings, key_store) if verify_keys else None
    runner = HarvestRunner(harvester, pipeline, KeyRecorder(key_store), coordinator, workers=settings.workers)

    try:
        resume_from = load_checkpoints(checkpoints_path) if resume else {}
        queries = list(query) if query else (list(resume_from) if resume and resume_from else settings.queries)
        result = runner.run(queries, settings.effective_max_pages, settings.per_page, resume=resume_from)
        save_checkpoints(checkpoints_path, result.abandoned)
    except AletheiaError as e:
        raise _fail(str(e))
    finally:
        if coordinator is not None:
            coordinator.shutdown()

    for error in result.errors:
        error_console.print(f"[yellow]⚠[/yellow]  {error}")
    if result.unpersisted:
        error_console.print(f"[red]✗[/red] {len(result.unpersisted)} keys could not be written to the store")

    if json_output:
        print(json.dumps(result.to_dict(), indent=2))
        raise typer.Exit(code=1 if result.new_keys else 0)

    console.print(
        f"Fetched {result.pages_fetched} pages, {result.scanned_files} files: "
        f"{len(result.candidates)} candidates, {len(result.new_keys)} new keys "
        f"[{result.duration_ms / 1000:.1f}s]"
    )
    for checkpoint in result.abandoned:
        console.print(
            f"[yellow]⚠[/yellow]  Abandoned {checkpoint.query!r} at page {checkpoint.resume_page} "
            f"({checkpoint.reason}); rerun with --resume"
        )
    if result.outcomes:
        _print_outcomes(result.outcomes, key_store)
    raise typer.Exit(code=1 if result.new_keys else 0)


def _print_outcomes(outcomes, store: KeyStore) -> None:
    table = Table(title="Verification", show_header=True)
    table.add_column("Key")
    table.add_column("Provider", style="cyan")
    table.add_column("Verdict", style="bold")
    table.add_column("HTTP")
    table.add_column("Status")
    for outcome in outcomes:
        record = store.get(outcome.candidate_ref)
        status = record.status if record else KeyStatus.UNKNOWN
        table.add_row(
            record.key_preview if record else outcome.candidate_ref[:12],
            outcome.provider_id,
            _styled(outcome.verdict.value, VERDICT_STYLES[outcome.verdict]),
            str(outcome.http_status) if outcome.http_status else (outcome.transport_error or "-"),
            _styled(status.value, STATUS_STYLES[status]),
        )
    console.print(table)


@app.command()
def verify(
    key_ids: Optional[List[str]] = typer.Argument(None, help="key_ids (or unique prefixes) to verify"),
    all_keys: bool = typer.Option(False, "--all", help="Verify every key that is not revoked"),
    store: Optional[Path] = typer.Option(None, "--store", help="Key store directory"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML settings file"),
) -> None:
    """Live-verify stored keys against their providers."""
    settings = _load_settings(config)
    key_store = _open_store(settings, store)

    if all_keys:
        targets = [r.key_id for r in key_store.list_records() if r.status != KeyStatus.REVOKED]
    elif key_ids:
        targets = [_resolve_key(key_store, k) for k in key_ids]
    else:
        raise _fail("Give one or more key ids, or --all")

    if not targets:
        console.print("No keys to verify")
        raise typer.Exit(code=0)

    errors: List[str] = []
    with _coordinator(settings, key_store) as coordinator:
        outcomes = coordinator.verify_keys(targets, errors=errors)

    for error in errors:
        error_console.print(f"[yellow]⚠[/yellow]  {error}")
    if outcomes:
        _print_outcomes(outcomes, key_store)
    raise typer.Exit(code=2 if errors and not outcomes else 0)


@app.command()
def status(
    key_id: str = typer.Argument(..., help="key_id (or unique prefix)"),
    reset: bool = typer.Option(False, "--reset", help="Return the key to unknown"),
    revoke: bool = typer.Option(False, "--revoke", help="Mark the key revoked (terminal)"),
    store: Optional[Path] = typer.Option(None, "--store", help="Key store directory"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML settings file"),
) -> None:
    """Show a key's status and history, or reset/revoke it."""
    if reset and revoke:
        raise _fail("--reset and --revoke are mutually exclusive")

    key_store = _open_store(_load_settings(config), store)
    resolved = _resolve_key(key_store, key_id)
    lifecycle = StatusLifecycle(key_store)

    try:
        if reset:
            lifecycle.reset(resolved)
        elif revoke:
            lifecycle.revoke(resolved)
    except AletheiaError as e:
        raise _fail(str(e))

    record = key_store.get(resolved)
    console.print(f"[bold]{record.key_id}[/bold]")
    console.print(f"  Provider:      {record.provider_id} ({record.confidence_tier.value} confidence)")
    console.print(f"  Key:           {record.key_preview}")
    console.print(f"  Status:        {_styled(record.status.value, STATUS_STYLES[record.status])}")
    console.print(f"  Severity:      {record.severity.value}")
    console.print(f"  First seen:    {record.first_seen.isoformat()} at {record.origin}")
    last = record.last_verified.isoformat() if record.last_verified else "never"
    console.print(f"  Last verified: {last}")

    history = key_store.history(resolved)
    if history:
        table = Table(title="History", show_header=True)
        table.add_column("At")
        table.add_column("From")
        table.add_column("To")
        table.add_column("Reason")
        for entry in history:
            table.add_row(entry.at.isoformat(), entry.from_status.value, entry.to_status.value, entry.reason)
        console.print(table)


@app.command("reset-all")
def reset_all(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    store: Optional[Path] = typer.Option(None, "--store", help="Key store directory"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML settings file"),
) -> None:
    """Return every valid or invalid key to unknown."""
    key_store = _open_store(_load_settings(config), store)
    if not yes and not typer.confirm("Reset the status of every verified key?"):
        raise typer.Exit(code=0)
    try:
        count = StatusLifecycle(key_store).reset_all()
    except AletheiaError as e:
        raise _fail(str(e))
    console.print(f"[green]✓[/green] Reset {count} keys")


@app.command()
def keys(
    status_filter: Optional[str] = typer.Option(None, "--status", help="unknown, valid, invalid or revoked"),
    store: Optional[Path] = typer.Option(None, "--store", help="Key store directory"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML settings file"),
    json_output: bool = typer.Option(False, "--json", help="Output records as JSON"),
) -> None:
    """List stored keys (never shows raw values)."""
    try:
        wanted = KeyStatus(status_filter) if status_filter else None
    except ValueError:
        raise _fail(f"Unknown status: {status_filter}")

    records = _open_store(_load_settings(config), store).list_records(wanted)
    if json_output:
        print(json.dumps([r.to_dict() for r in records], indent=2))
        return

    table = Table(title=f"{len(records)} keys", show_header=True)
    table.add_column("Key id")
    table.add_column("Provider", style="cyan")
    table.add_column("Key")
    table.add_column("Status")
    table.add_column("Severity")
    table.add_column("Origin")
    for record in records:
        table.add_row(
            record.key_id[:12],
            record.provider_id,
            record.key_preview,
            _styled(record.status.value, STATUS_STYLES[record.status]),
            record.severity.value,
            str(record.origin),
        )
    console.print(table)


@app.command()
def rules(
    check: bool = typer.Option(False, "--check", help="Self-test every rule against a synthetic key"),
    rules_file: Optional[Path] = typer.Option(None, "--rules", help="YAML file with extra rules"),
    seed: int = typer.Option(0, "--seed", help="Random seed for --check"),
) -> None:
    """List detection rules in matching order."""
    library = _load_library(rules_file)

    table = Table(title=f"{len(library)} rules", show_header=True)
    table.add_column("Rule", style="cyan")
    table.add_column("Provider")
    table.add_column("Tier")
    table.add_column("Prefixes")
    table.add_column("Length")
    table.add_column("Context")
    if check:
        table.add_column("Self-test")

    rng = random.Random(seed)
    pipeline = ClassificationPipeline(library)
    failures = 0
    for rule in library.rules:
        length = str(rule.min_length) if rule.fixed_length else f"{rule.min_length}-{rule.max_length}"
        context = ", ".join(sorted(rule.required_context_keywords))
        if rule.min_context_matches > 1:
            context += f" (x{rule.min_context_matches})"
        row = [
            rule.name,
            rule.provider_id,
            _styled(rule.tier.value, TIER_STYLES[rule.tier]),
            " ".join(p for p in rule.prefixes if p) or "-",
            length,
            context or "-",
        ]
        if check:
            secret = synthesize(rule, rng)
            found = pipeline.classify(context_sentence(rule, secret), SELF_TEST_ORIGIN)
            ok = any(c.rule_name == rule.name and c.raw_text == secret for c in found)
            failures += 0 if ok else 1
            row.append("[green]ok[/green]" if ok else "[red]FAIL[/red]")
        table.add_row(*row)

    console.print(table)
    if check and failures:
        error_console.print(f"[red]✗[/red] {failures} rules failed the self-test")
        raise typer.Exit(code=1)


@app.command()
def version() -> None:
    """Display version information."""
    from Aletheia import __version__
    console.print(f"Aletheia version {__version__}")


def main() -> None:
    """Main entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
