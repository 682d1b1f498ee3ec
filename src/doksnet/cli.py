from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

import click
import typer

from doksnet.config import (
    change_preview_chars,
    display_defaults,
    merge_payload,
    preview_chars,
    store_defaults,
    store_file_name,
    verify_defaults,
    verify_format,
)
from doksnet.digest import short
from doksnet.discovery import find_documentation_files
from doksnet.exceptions import DoksnetError, StoreExists
from doksnet.extract import extract
from doksnet.partition import PartitionRef, parse_partition
from doksnet.reconcile import (
    DECISION_LABELS,
    Decision,
    Outcome,
    ReconciliationSession,
)
from doksnet.runtime import env_policy, json_io
from doksnet.schema import RemovalReportDTO, verification_report
from doksnet.store import EditRequest, LinkRecord, LinkStore, initialize_store, open_store
from doksnet.verify import SideResult, VerificationResult, failing, summarize, verify_store

app = typer.Typer(
    add_completion=False,
    help="Keep documentation and code in sync with verifiable links.",
)

EXIT_OK = 0
EXIT_VERIFICATION_FAILED = 1
EXIT_ERROR = 2

_EDIT_CHOICES: tuple[str, ...] = (
    "Documentation partition",
    "Code partition",
    "Description",
    "Both documentation and code partitions",
    "Cancel",
)


@dataclass(frozen=True)
class CliSettings:
    config: Path | None = None


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None, "--config", help="Path to doksnet.toml (default: ./doksnet.toml)."
    ),
    store: Optional[Path] = typer.Option(
        None,
        "--store",
        help=f"Explicit store file (overrides ${env_policy.STORE_PATH_ENV} and discovery).",
    ),
) -> None:
    ctx.obj = CliSettings(config=config)
    if store is not None:
        ctx.with_resource(env_policy.store_path_override_scope(store))


def _settings(ctx: typer.Context) -> CliSettings:
    settings = ctx.obj
    return settings if isinstance(settings, CliSettings) else CliSettings()


@contextmanager
def _cli_errors() -> Iterator[None]:
    try:
        yield
    except DoksnetError as exc:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=EXIT_ERROR) from exc


def _store_file_name(settings: CliSettings) -> str:
    return store_file_name(store_defaults(root=Path.cwd(), config_path=settings.config))


def _preview_limits(settings: CliSettings) -> tuple[int, int]:
    section = display_defaults(root=Path.cwd(), config_path=settings.config)
    return preview_chars(section), change_preview_chars(section)


def _load_store(settings: CliSettings) -> LinkStore:
    return open_store(
        Path.cwd(),
        file_name=_store_file_name(settings),
        override=env_policy.store_path_override(),
    )


def _choose(prompt: str, options: Sequence[str], *, default: int = 0) -> int:
    for number, option in enumerate(options, start=1):
        typer.echo(f"  {number}) {option}")
    selected = typer.prompt(
        prompt,
        type=click.IntRange(1, len(options)),
        default=default + 1,
    )
    return int(selected) - 1


def _emit_preview(title: str, text: str, limit: int) -> None:
    typer.echo(f"\n{title}:")
    typer.echo("---")
    typer.echo(text[:limit])
    if len(text) > limit:
        typer.echo("... (truncated)")
    typer.echo("---")


def _preview_partition(
    store: LinkStore, raw: str, *, label: str, limit: int
) -> PartitionRef:
    ref = parse_partition(raw)
    _emit_preview(f"{label} content preview", extract(ref, store.root), limit)
    return ref


def _emit_record_header(
    record: LinkRecord, *, indent: str = "   ", err: bool = False
) -> None:
    if record.description:
        typer.echo(f"{indent}Description: {record.description}", err=err)
    typer.echo(f"{indent}Doc: {record.doc_partition}", err=err)
    typer.echo(f"{indent}Code: {record.code_partition}", err=err)


def _emit_side_change(side: SideResult, limit: int) -> None:
    status, current_text, stored_digest, current_digest = side.render_tuple()
    typer.echo(f"\n{side.side.value.capitalize()} side: {status.value}")
    typer.echo(f"   stored digest:  {short(stored_digest)}...")
    if current_digest is not None:
        typer.echo(f"   current digest: {short(current_digest)}...")
    if current_text is None:
        typer.secho(
            f"   Could not extract current {side.side.value} content: {side.reason}",
            fg=typer.colors.YELLOW,
        )
        return
    typer.echo("--- Current content ---")
    typer.echo(current_text[:limit])
    if len(current_text) > limit:
        typer.echo("... (truncated)")


def _emit_verification_text(results: Sequence[VerificationResult]) -> None:
    total = len(results)
    for number, result in enumerate(results, start=1):
        typer.echo(f"Testing mapping {number}/{total}: {result.record_id}")
        _emit_record_header(result.record)
        if result.passed:
            typer.secho("   PASS", fg=typer.colors.GREEN)
        else:
            typer.secho("   FAIL", fg=typer.colors.RED)
        typer.echo()
    summary = summarize(results)
    typer.echo("Test Results Summary:")
    typer.echo(f"   Passed: {summary.passed}/{summary.total}")
    typer.echo(f"   Failed: {summary.failed}/{summary.total}")


def _emit_failure_details(results: Sequence[VerificationResult]) -> None:
    typer.echo("\nFailed Mappings Details:")
    for number, result in enumerate(results, start=1):
        if result.passed:
            continue
        typer.echo(f"   {number}. {result.record_id} (ID: {result.record.short_id})")
        for reason in result.failure_reasons():
            typer.echo(f"      - {reason}")


def _prompt_partition_change(
    store: LinkStore,
    *,
    label: str,
    current: str,
    limit: int,
) -> str | None:
    typer.echo(f"\nEditing {label} partition")
    typer.echo(f"Current value: {current}")
    raw = typer.prompt(f"New {label} partition", default=current)
    ref = parse_partition(raw)
    try:
        unchanged = parse_partition(current) == ref
    except DoksnetError:
        unchanged = False
    if unchanged:
        typer.echo(f"No changes made to {label} partition")
        return None
    _emit_preview(f"New {label} content preview", extract(ref, store.root), limit)
    if typer.confirm("Apply this change?", default=True):
        return raw
    typer.echo(f"{label.capitalize()} partition change cancelled")
    return None


def _prompt_edit_request(
    store: LinkStore,
    record: LinkRecord,
    *,
    limit: int,
) -> EditRequest | None:
    typer.echo(f"Editing mapping: {record.id}")
    typer.echo("Current values:")
    _emit_record_header(record, indent="")
    if not record.description:
        typer.echo("Description: (none)")
    selection = _choose("What would you like to edit?", _EDIT_CHOICES)
    if _EDIT_CHOICES[selection] == "Cancel":
        return None
    doc_partition = None
    code_partition = None
    description = None
    if selection in (0, 3):
        doc_partition = _prompt_partition_change(
            store,
            label="documentation",
            current=record.doc_partition,
            limit=limit,
        )
    if selection in (1, 3):
        code_partition = _prompt_partition_change(
            store,
            label="code",
            current=record.code_partition,
            limit=limit,
        )
    if selection == 2:
        description = typer.prompt(
            "New description (leave empty to remove)",
            default=record.description,
            show_default=bool(record.description),
        )
    request = EditRequest(
        doc_partition=doc_partition,
        code_partition=code_partition,
        description=description,
    )
    return None if request.is_empty else request


class TerminalReconciliationIO:
    def __init__(self, store: LinkStore, *, preview_limit: int, change_limit: int) -> None:
        self.store = store
        self.preview_limit = preview_limit
        self.change_limit = change_limit

    def present(self, result: VerificationResult, position: int, total: int) -> None:
        record = result.record
        typer.secho(
            f"\nFailed mapping {position}/{total}: {record.id} ({record.short_id}...)",
            fg=typer.colors.RED,
        )
        _emit_record_header(record, indent="")
        typer.echo("\nChanges detected:")
        for side in result.failed_sides():
            _emit_side_change(side, self.change_limit)

    def decide(self, result: VerificationResult) -> Decision:
        options = list(DECISION_LABELS)
        index = _choose(
            "What would you like to do?",
            [DECISION_LABELS[decision] for decision in options],
        )
        return options[index]

    def request_edit(self, result: VerificationResult) -> EditRequest | None:
        return _prompt_edit_request(self.store, result.record, limit=self.preview_limit)

    def confirm_remove(self, result: VerificationResult) -> bool:
        return typer.confirm("Are you sure you want to remove this mapping?", default=False)

    def report(self, outcome: Outcome) -> None:
        if outcome.error is not None:
            typer.secho(f"Action failed: {outcome.error}", err=True, fg=typer.colors.RED)
            return
        if not outcome.applied:
            typer.echo("Cancelled; choose another action.")
            return
        if outcome.decision is Decision.ACCEPT:
            typer.secho("Updated stored hashes", fg=typer.colors.GREEN)
        elif outcome.decision is Decision.REMOVE:
            typer.secho("Mapping removed", fg=typer.colors.GREEN)
        elif outcome.decision is Decision.SKIP:
            typer.echo("Skipped")
        elif outcome.reverified is not None:
            status = "PASS" if outcome.reverified.passed else "FAIL"
            typer.echo(f"Mapping updated; re-verification: {status}")
            for reason in outcome.reverified.failure_reasons():
                typer.echo(f"   - {reason}")


@app.command("new")
def new(
    ctx: typer.Context,
    path: Optional[Path] = typer.Argument(
        None, help="Directory for the store file (default: current directory)."
    ),
    default_doc: Optional[str] = typer.Option(
        None, "--default-doc", help="Default documentation file; skips discovery."
    ),
) -> None:
    """Create a new store file."""
    settings = _settings(ctx)
    with _cli_errors():
        target = path if path is not None else Path.cwd()
        if not target.is_dir():
            raise typer.BadParameter(f"Not a directory: {target}")
        file_name = _store_file_name(settings)
        if (target / file_name).exists():
            raise StoreExists(str(target / file_name))
        typer.echo(f"Initializing new doksnet project in: {target}")
        doc = default_doc if default_doc else _select_default_doc(target)
        store = initialize_store(target, doc, file_name=file_name)
        typer.secho(
            f"Created {file_name} file with default documentation: {store.default_doc}",
            fg=typer.colors.GREEN,
        )
        typer.echo(
            "You can now use 'doksnet add' to create mappings between documentation and code"
        )


def _select_default_doc(target: Path) -> str:
    candidates = find_documentation_files(target)
    if not candidates:
        return typer.prompt(
            "No documentation files found. Please specify a documentation file",
            default="README.md",
        )
    if len(candidates) == 1:
        typer.echo(f"Found documentation file: {candidates[0]}")
        return candidates[0]
    typer.echo("Found multiple documentation files:")
    return candidates[_choose("Select the default documentation file", candidates)]


@app.command("add")
def add(
    ctx: typer.Context,
    doc: Optional[str] = typer.Option(None, "--doc", help="Documentation partition."),
    code: Optional[str] = typer.Option(None, "--code", help="Code partition."),
    description: Optional[str] = typer.Option(None, "--description"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip preview confirmations."),
) -> None:
    """Add a mapping between documentation and code."""
    settings = _settings(ctx)
    with _cli_errors():
        store = _load_store(settings)
        limit, _ = _preview_limits(settings)
        typer.echo("Adding new documentation-code mapping")
        typer.echo(f"Current default documentation file: {store.default_doc}")
        doc_raw = doc if doc is not None else typer.prompt(
            "Documentation partition (e.g., README.md:10-20 or README.md:10-20@5-15)",
            default=f"{store.default_doc}:",
        )
        doc_ref = _preview_partition(store, doc_raw, label="Documentation", limit=limit)
        if not yes and not typer.confirm(
            "Is this the correct documentation content?", default=True
        ):
            typer.echo("Documentation selection cancelled")
            raise typer.Exit(code=EXIT_OK)
        code_raw = code if code is not None else typer.prompt(
            "Code partition (e.g., src/main.rs:15-30 or src/lib.rs:5-25@10-50)"
        )
        code_ref = _preview_partition(store, code_raw, label="Code", limit=limit)
        if not yes and not typer.confirm("Is this the correct code content?", default=True):
            typer.echo("Code selection cancelled")
            raise typer.Exit(code=EXIT_OK)
        if description is None:
            description = "" if yes else typer.prompt(
                "Optional description for this mapping",
                default="",
                show_default=False,
            )
        record = store.add(doc_ref, code_ref, description)
        typer.secho(f"Successfully added mapping {record.id}", fg=typer.colors.GREEN)
        typer.echo(f"Total mappings: {len(store)}")


@app.command("edit")
def edit(
    ctx: typer.Context,
    id_prefix: str = typer.Argument(
        ..., metavar="ID", help="Mapping ID (a unique prefix is sufficient)."
    ),
    doc: Optional[str] = typer.Option(None, "--doc", help="New documentation partition."),
    code: Optional[str] = typer.Option(None, "--code", help="New code partition."),
    description: Optional[str] = typer.Option(None, "--description"),
) -> None:
    """Edit an existing mapping by ID."""
    settings = _settings(ctx)
    with _cli_errors():
        store = _load_store(settings)
        if not store.records:
            typer.echo("No mappings found. Use 'doksnet add' to create some first.")
            raise typer.Exit(code=EXIT_OK)
        record = store.find(id_prefix)
        request = EditRequest(doc_partition=doc, code_partition=code, description=description)
        if request.is_empty:
            limit, _ = _preview_limits(settings)
            prompted = _prompt_edit_request(store, record, limit=limit)
            if prompted is None:
                typer.echo("Edit cancelled")
                raise typer.Exit(code=EXIT_OK)
            request = prompted
        updated = store.edit(record.id, request)
        if updated == record:
            typer.echo("No changes made")
        else:
            typer.secho(f"Successfully updated mapping {updated.id}", fg=typer.colors.GREEN)


@app.command("remove")
def remove(
    ctx: typer.Context,
    id_prefix: str = typer.Argument(
        ..., metavar="ID", help="Mapping ID (a unique prefix is sufficient)."
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Remove a single mapping."""
    settings = _settings(ctx)
    with _cli_errors():
        store = _load_store(settings)
        record = store.find(id_prefix)
        typer.echo(f"Mapping {record.id}")
        _emit_record_header(record)
        if not yes and not typer.confirm("Remove this mapping?", default=False):
            typer.echo("Removal cancelled")
            raise typer.Exit(code=EXIT_OK)
        store.remove(record.id)
        typer.secho(f"Removed mapping {record.id}", fg=typer.colors.GREEN)
        typer.echo(f"Remaining mappings: {len(store)}")


@app.command("remove-failed")
def remove_failed(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
    json_output: bool = typer.Option(
        False, "--json", help="Emit a JSON removal report; progress goes to stderr."
    ),
) -> None:
    """Remove all mappings that fail verification."""
    settings = _settings(ctx)
    # With --json, stdout carries only the report.
    to_stderr = json_output
    with _cli_errors():
        store = _load_store(settings)
        if not store.records:
            typer.echo(
                "No mappings found. Use 'doksnet add' to create some first.",
                err=to_stderr,
            )
            _finish_removal(store, [], json_output=json_output)
            return
        typer.echo(f"Checking {len(store)} mappings for failures...", err=to_stderr)
        failed = failing(verify_store(store))
        if not failed:
            typer.secho(
                "No failed mappings found! All mappings are up to date.",
                fg=typer.colors.GREEN,
                err=to_stderr,
            )
            _finish_removal(store, [], json_output=json_output)
            return
        typer.secho(
            f"\nFound {len(failed)} failed mapping(s):",
            fg=typer.colors.RED,
            err=to_stderr,
        )
        for result in failed:
            record = result.record
            typer.echo(f"   ID: {record.short_id} ({record.id})", err=to_stderr)
            _emit_record_header(record, indent="      ", err=to_stderr)
            reasons = ", ".join(side.side.value for side in result.failed_sides())
            typer.echo(f"      Failed: {reasons}", err=to_stderr)
            for reason in result.failure_reasons():
                typer.echo(f"         - {reason}", err=to_stderr)
            typer.echo(err=to_stderr)
        if not yes and not typer.confirm(
            f"Remove all {len(failed)} failed mapping(s)?",
            default=False,
            err=to_stderr,
        ):
            typer.echo("Removal cancelled. Failed mappings remain.", err=to_stderr)
            typer.echo(
                "Tip: Use 'doksnet edit <id>' to fix individual mappings", err=to_stderr
            )
            typer.echo(
                "Tip: Use 'doksnet test-interactive' for guided fixing", err=to_stderr
            )
            _finish_removal(store, [], json_output=json_output)
            return
        removed = store.remove_many(result.record_id for result in failed)
        _finish_removal(store, removed, json_output=json_output)


def _finish_removal(
    store: LinkStore, removed: Sequence[LinkRecord], *, json_output: bool
) -> None:
    if json_output:
        report = RemovalReportDTO(
            removed=len(removed),
            remaining=len(store),
            removed_ids=[record.id for record in removed],
        )
        typer.echo(json_io.dump_json_pretty(report.model_dump()))
        return
    if not removed:
        return
    typer.secho(
        f"Successfully removed {len(removed)} failed mapping(s)",
        fg=typer.colors.GREEN,
    )
    typer.echo(f"Remaining mappings: {len(store)}")


@app.command("test")
def test(
    ctx: typer.Context,
    output_format: Optional[str] = typer.Option(
        None, "--format", help="Report format: text or json (default from doksnet.toml)."
    ),
) -> None:
    """Verify every mapping (non-interactive, suitable for CI)."""
    settings = _settings(ctx)
    with _cli_errors():
        fmt = verify_format(
            merge_payload(
                {"format": output_format},
                verify_defaults(root=Path.cwd(), config_path=settings.config),
            )
        )
        if output_format is not None and output_format.strip().lower() != fmt:
            raise typer.BadParameter("--format must be 'text' or 'json'.")
        store = _load_store(settings)
        results = verify_store(store)
        if fmt == "json":
            report = verification_report(
                results, store=str(store.path), default_doc=store.default_doc
            )
            typer.echo(json_io.dump_json_pretty(report.model_dump()))
            raise typer.Exit(code=report.exit_code)
        if not results:
            typer.echo("No mappings found. Use 'doksnet add' to create some first.")
            raise typer.Exit(code=EXIT_OK)
        typer.echo(f"Testing {len(results)} documentation-code mappings")
        typer.echo(f"Default documentation file: {store.default_doc}")
        typer.echo()
        _emit_verification_text(results)
        if summarize(results).all_passed:
            typer.secho("\nAll mappings are up to date!", fg=typer.colors.GREEN)
            raise typer.Exit(code=EXIT_OK)
        _emit_failure_details(results)
        typer.echo("\nTip: Use 'doksnet edit <id>' to fix broken mappings")
        raise typer.Exit(code=EXIT_VERIFICATION_FAILED)


@app.command("test-interactive")
def test_interactive(ctx: typer.Context) -> None:
    """Verify mappings and fix failures one by one."""
    settings = _settings(ctx)
    with _cli_errors():
        store = _load_store(settings)
        if not store.records:
            typer.echo("No mappings found. Use 'doksnet add' to create some first.")
            raise typer.Exit(code=EXIT_OK)
        preview_limit, change_limit = _preview_limits(settings)
        typer.echo(f"Interactive testing mode - {len(store)} mappings")
        typer.echo(f"Default documentation file: {store.default_doc}")
        typer.echo()
        results = verify_store(store)
        _emit_verification_text(results)
        if summarize(results).all_passed:
            typer.secho("\nAll mappings are up to date!", fg=typer.colors.GREEN)
            raise typer.Exit(code=EXIT_OK)
        typer.echo("\nLet's fix the failed mappings...")
        session = ReconciliationSession(
            store,
            results,
            TerminalReconciliationIO(
                store, preview_limit=preview_limit, change_limit=change_limit
            ),
        )
        report = session.run()
        if report.modified:
            typer.echo(f"\nChanges saved to {store.path.name}")
        typer.echo(
            "Interactive testing complete: "
            f"{report.count(Decision.ACCEPT)} accepted, "
            f"{report.count(Decision.EDIT)} edited, "
            f"{report.count(Decision.REMOVE)} removed, "
            f"{report.count(Decision.SKIP)} skipped."
        )


def run(argv: List[str] | None = None) -> None:
    app(args=argv, prog_name="doksnet")
