"""
Typer CLI for qbank-sync.

Commands:
    qbank-sync db init                  - Create tables and the system context
    qbank-sync site category NAME       - Add a course category
    qbank-sync site course NAME         - Add a course to a category
    qbank-sync token create --user N    - Issue a webservice token
    qbank-sync grant CAP --user N       - Grant a capability in a context
    qbank-sync serve                    - Run the webservice
    qbank-sync ws list                  - List questions in a remote category
    qbank-sync ws export ID             - Export one question as XML
    qbank-sync ws import FILE           - Import a question file
    qbank-sync ws delete ID             - Delete a question and all its versions
    qbank-sync ws export-quiz           - Export a quiz structure as JSON
    qbank-sync ws import-quiz FILE      - Import a quiz structure from JSON
    qbank-sync repo create DIR          - Export a category into a new repository
    qbank-sync repo export MANIFEST     - Refresh repository files from the site
    qbank-sync repo import MANIFEST     - Push changed and new files to the site
    qbank-sync repo tidy MANIFEST       - Drop entries deleted on the site
    qbank-sync repo export-quiz DIR     - Write a quiz structure naming question files
    qbank-sync repo import-quiz FILE    - Import such a quiz structure

Usage:
    qbank-sync --help
    qbank-sync ws list --level course --course "Course 1" --category top/Algebra
    qbank-sync ws import question.xml --entry 42 --imported-version 3
    qbank-sync repo create ./bank --course "Course 1" --whole-course
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import get_settings
from qbank_sync.client import WebserviceClient, WebserviceError
from qbank_sync.core.access import ALL_CAPABILITIES
from qbank_sync.core.errors import QbankSyncError
from qbank_sync.core.ports import ContextLevel, ScopeLocator
from qbank_sync.logging_setup import configure_logging
from qbank_sync.repo import sync as repo_sync
from qbank_sync.repo.manifest import backup_manifest, load_manifest, save_manifest

app = typer.Typer(
    help="qbank-sync CLI: keep question banks and quizzes in sync with files",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show info-level logging"),
) -> None:
    """Question bank synchronisation service and client."""
    configure_logging("INFO" if verbose else "WARNING")


# ========================================
# Client Builder
# ========================================


def _build_client(url: str | None = None, token: str | None = None) -> WebserviceClient:
    """Build a webservice client from settings, with command-line overrides."""
    settings = get_settings()
    config = settings.get_client_config()
    token = token or settings.ws_token
    if not token:
        rprint("[red]Error:[/red] No webservice token. Set WS_TOKEN or pass --token.")
        raise typer.Exit(code=1)
    return WebserviceClient(url or config["base_url"], token, timeout=config["timeout"])


def _run(url: str | None, token: str | None, wsfunction: str, **params: Any) -> dict[str, Any]:
    """Call ``wsfunction`` and turn failures into a clean exit."""
    with _build_client(url, token) as client:
        try:
            return client.call(wsfunction, **{k: v for k, v in params.items() if v is not None})
        except WebserviceError as e:
            rprint(f"[red]Error ({e.errorcode}):[/red] {e.message}")
            raise typer.Exit(code=1)
        except httpx.HTTPError as e:
            rprint(f"[red]Error:[/red] Could not reach {client.base_url}: {e}")
            raise typer.Exit(code=1)


URL_OPTION = typer.Option(None, "--url", help="Service URL (default: WS_BASE_URL)")
TOKEN_OPTION = typer.Option(None, "--token", help="Webservice token (default: WS_TOKEN)")


# ========================================
# DATABASE COMMANDS
# ========================================

db_app = typer.Typer(help="Database management")
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """
    Initialize database tables from SQLAlchemy models.

    Safe to run multiple times (idempotent).
    """
    from qbank_sync.db.database import init_db

    init_db()
    rprint("[green]✓[/green] Database initialized!")


# ========================================
# SITE COMMANDS
# ========================================

site_app = typer.Typer(help="Course categories and courses")
app.add_typer(site_app, name="site")


@site_app.command("category")
def site_category(
    name: str = typer.Argument(..., help="Course category name"),
    parent: str | None = typer.Option(None, "--parent", help="Parent course category name"),
) -> None:
    """Add a course category."""
    from qbank_sync.core.access import AccessGuard
    from qbank_sync.db.database import session_scope
    from qbank_sync.store import SqlAuthorization, SqlContentStore

    with session_scope() as session:
        store = SqlContentStore(session)
        parent_scope = None
        if parent:
            guard = AccessGuard(store, SqlAuthorization(session, 0))
            parent_scope = _resolve(guard, ScopeLocator(ContextLevel.COURSECATEGORY, coursecategory=parent))
        scope = store.create_course_category(name, parent_scope)
        rprint(f"[green]✓[/green] Course category '{name}' (id {scope.instanceid}, context {scope.contextid})")


@site_app.command("course")
def site_course(
    fullname: str = typer.Argument(..., help="Course full name"),
    category: str = typer.Option(..., "--category", "-c", help="Course category name"),
    shortname: str | None = typer.Option(None, "--shortname", help="Course short name"),
) -> None:
    """Add a course to a course category."""
    from qbank_sync.core.access import AccessGuard
    from qbank_sync.db.database import session_scope
    from qbank_sync.store import SqlAuthorization, SqlContentStore

    with session_scope() as session:
        store = SqlContentStore(session)
        guard = AccessGuard(store, SqlAuthorization(session, 0))
        category_scope = _resolve(guard, ScopeLocator(ContextLevel.COURSECATEGORY, coursecategory=category))
        scope = store.create_course(fullname, shortname or fullname, category_scope)
        rprint(f"[green]✓[/green] Course '{fullname}' (id {scope.instanceid}, context {scope.contextid})")


def _resolve(guard, locator: ScopeLocator):
    try:
        return guard.resolve_scope(locator)
    except QbankSyncError as e:
        rprint(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(code=1)


# ========================================
# ACCESS COMMANDS
# ========================================

token_app = typer.Typer(help="Webservice tokens")
app.add_typer(token_app, name="token")


@token_app.command("create")
def token_create(
    user: int = typer.Option(..., "--user", "-u", help="User id the token acts as"),
) -> None:
    """Issue a webservice token for a user."""
    from qbank_sync.db.database import session_scope
    from qbank_sync.store import create_token

    with session_scope() as session:
        token = create_token(session, user)
    rprint(f"[green]✓[/green] Token for user {user}: [bold]{token}[/bold]")


@app.command("grant")
def grant(
    capability: str = typer.Argument(..., help="Capability (listquestions, ..., or 'all')"),
    user: int = typer.Option(..., "--user", "-u", help="User id"),
    level: str = typer.Option("system", "--level", "-l", help="Context level name or number"),
    course: str | None = typer.Option(None, "--course", help="Course name"),
    module: str | None = typer.Option(None, "--module", help="Quiz name"),
    coursecategory: str | None = typer.Option(None, "--coursecategory", help="Course category name"),
    instanceid: int | None = typer.Option(None, "--instanceid", help="Course, module or category id"),
) -> None:
    """Grant a capability to a user in a context and everything below it."""
    from qbank_sync.core.access import AccessGuard
    from qbank_sync.db.database import session_scope
    from qbank_sync.store import SqlAuthorization, SqlContentStore, grant_capability

    capabilities = ALL_CAPABILITIES if capability == "all" else (capability,)
    unknown = [c for c in capabilities if c.split(":")[-1] not in ALL_CAPABILITIES]
    if unknown:
        rprint(f"[red]Error:[/red] Unknown capability {unknown[0]}. Choose from: {', '.join(ALL_CAPABILITIES)}")
        raise typer.Exit(code=1)
    try:
        context_level = ContextLevel.parse(level)
    except ValueError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    with session_scope() as session:
        store = SqlContentStore(session)
        guard = AccessGuard(store, SqlAuthorization(session, user))
        scope = _resolve(
            guard,
            ScopeLocator(context_level, coursecategory, course, module, instanceid),
        )
        for name in capabilities:
            grant_capability(session, user, scope.contextid, name)
        rprint(f"[green]✓[/green] Granted {', '.join(capabilities)} to user {user} in {scope.label}")


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address (default: API_HOST)"),
    port: int | None = typer.Option(None, "--port", help="Port (default: API_PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the webservice with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "qbank_sync.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
    )


# ========================================
# WEBSERVICE CLIENT COMMANDS
# ========================================

ws_app = typer.Typer(help="Call a remote qbank-sync webservice")
app.add_typer(ws_app, name="ws")


@ws_app.command("list")
def ws_list(
    level: str = typer.Option("course", "--level", "-l", help="Context level name or number"),
    category: str = typer.Option("top", "--category", "-c", help="Question category path"),
    course: str | None = typer.Option(None, "--course", help="Course name"),
    module: str | None = typer.Option(None, "--module", help="Quiz name"),
    coursecategory: str | None = typer.Option(None, "--coursecategory", help="Course category name"),
    instanceid: str | None = typer.Option(None, "--instanceid", help="Course, module or category id"),
    ignorecat: str | None = typer.Option(None, "--ignorecat", help="Regex of categories to skip"),
    contextonly: bool = typer.Option(False, "--context-only", help="Only show context information"),
    url: str | None = URL_OPTION,
    token: str | None = TOKEN_OPTION,
) -> None:
    """List questions in a category and its subcategories."""
    result = _run(
        url,
        token,
        "qbank_sync_get_question_list",
        contextlevel=level,
        qcategoryname=category,
        coursename=course,
        modulename=module,
        coursecategory=coursecategory,
        instanceid=instanceid,
        ignorecat=ignorecat,
        contextonly=contextonly,
    )

    info = result["contextinfo"]
    rprint(f"[cyan]{info['contextlevel']}[/cyan] {info.get('coursename') or info.get('categoryname') or ''}"
           f" [dim]category[/dim] {info['qcategoryname']} [dim](id {info['qcategoryid']})[/dim]")

    if result["questions"]:
        table = Table(title=f"{len(result['questions'])} questions")
        table.add_column("Entry", style="cyan", justify="right")
        table.add_column("Name", style="white", max_width=50)
        table.add_column("Category", style="dim")
        table.add_column("Version", justify="right")
        for item in result["questions"]:
            table.add_row(item["questionbankentryid"], item["name"] or "", item["questioncategory"] or "", item["version"])
        console.print(table)
    elif not contextonly:
        rprint("[yellow]No questions found[/yellow]")

    for quiz in result.get("quizzes", []):
        rprint(f"  [dim]quiz[/dim] {quiz['name']} [dim](cmid {quiz['instanceid']})[/dim]")


@ws_app.command("export")
def ws_export(
    entry: str = typer.Argument(..., help="Question bank entry id"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write XML to this file"),
    include_category: bool = typer.Option(False, "--include-category", help="Prefix the category"),
    url: str | None = URL_OPTION,
    token: str | None = TOKEN_OPTION,
) -> None:
    """Export the current version of a question as XML."""
    result = _run(
        url, token, "qbank_sync_export_question", questionbankentryid=entry, includecategory=include_category
    )
    if output:
        output.write_text(result["question"], encoding="utf-8")
        rprint(f"[green]✓[/green] Exported entry {entry} version {result['version']} to {output}")
    else:
        typer.echo(result["question"])


@ws_app.command("import")
def ws_import(
    path: Path = typer.Argument(..., help="Question XML file"),
    entry: str | None = typer.Option(None, "--entry", help="Existing question bank entry id"),
    imported_version: str | None = typer.Option(None, "--imported-version"),
    exported_version: str | None = typer.Option(None, "--exported-version"),
    level: str | None = typer.Option(None, "--level", "-l", help="Context level for new questions"),
    category: str | None = typer.Option(None, "--category", "-c", help="Target question category path"),
    course: str | None = typer.Option(None, "--course", help="Course name"),
    module: str | None = typer.Option(None, "--module", help="Quiz name"),
    coursecategory: str | None = typer.Option(None, "--coursecategory", help="Course category name"),
    instanceid: str | None = typer.Option(None, "--instanceid"),
    url: str | None = URL_OPTION,
    token: str | None = TOKEN_OPTION,
) -> None:
    """Upload and import a question file."""
    if not path.is_file():
        rprint(f"[red]Error:[/red] File not found: {path}")
        raise typer.Exit(code=1)

    with _build_client(url, token) as client:
        try:
            filepath = client.upload(path)
        except (WebserviceError, httpx.HTTPError) as e:
            rprint(f"[red]Error:[/red] Upload failed: {e}")
            raise typer.Exit(code=1)

    result = _run(
        url,
        token,
        "qbank_sync_import_question",
        filepath=filepath,
        questionbankentryid=entry,
        importedversion=imported_version,
        exportedversion=exported_version,
        contextlevel=level,
        qcategoryname=category,
        coursename=course,
        modulename=module,
        coursecategory=coursecategory,
        instanceid=instanceid,
    )
    if result["questionbankentryid"]:
        rprint(f"[green]✓[/green] Imported entry {result['questionbankentryid']} version {result['version']}")
    else:
        rprint("[green]✓[/green] Imported categories")


@ws_app.command("delete")
def ws_delete(
    entry: str = typer.Argument(..., help="Question bank entry id"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    url: str | None = URL_OPTION,
    token: str | None = TOKEN_OPTION,
) -> None:
    """Delete a question and all of its versions."""
    if not yes and not typer.confirm(f"Delete question {entry} and all its versions?"):
        raise typer.Abort()
    _run(url, token, "qbank_sync_delete_question", questionbankentryid=entry)
    rprint(f"[green]✓[/green] Deleted question {entry}")


@ws_app.command("export-quiz")
def ws_export_quiz(
    moduleid: str | None = typer.Option(None, "--moduleid", "-m", help="Quiz course module id"),
    quizname: str | None = typer.Option(None, "--quiz", help="Quiz name"),
    course: str | None = typer.Option(None, "--course", help="Course name (with --quiz)"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write JSON to this file"),
    url: str | None = URL_OPTION,
    token: str | None = TOKEN_OPTION,
) -> None:
    """Export a quiz structure as JSON."""
    result = _run(
        url, token, "qbank_sync_export_quiz_data", moduleid=moduleid, quizname=quizname, coursename=course
    )
    text = json.dumps(result, indent=2)
    if output:
        output.write_text(text, encoding="utf-8")
        rprint(f"[green]✓[/green] Exported quiz '{result['quiz']['name']}' to {output}")
    else:
        typer.echo(text)


@ws_app.command("import-quiz")
def ws_import_quiz(
    path: Path = typer.Argument(..., help="Quiz structure JSON file"),
    cmid: str | None = typer.Option(None, "--cmid", help="Existing quiz course module id"),
    course: str | None = typer.Option(None, "--course", help="Course name (overrides the file)"),
    url: str | None = URL_OPTION,
    token: str | None = TOKEN_OPTION,
) -> None:
    """Create a quiz, or fill an existing one, from a JSON structure."""
    try:
        structure = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        rprint(f"[red]Error:[/red] Could not read {path}: {e}")
        raise typer.Exit(code=1)

    quiz = dict(structure.get("quiz", {}))
    if cmid:
        quiz["cmid"] = cmid
    if course:
        quiz["coursename"] = course
    structure["quiz"] = quiz

    result = _run(url, token, "qbank_sync_import_quiz_data", **structure)
    rprint(f"[green]✓[/green] Quiz cmid {result['cmid']}")
    if result.get("skippedslots"):
        logger.warning(f"Skipped slots: {', '.join(result['skippedslots'])}")
        rprint(f"[yellow]Skipped slots:[/yellow] {', '.join(result['skippedslots'])}")


# ========================================
# REPOSITORY COMMANDS
# ========================================

repo_app = typer.Typer(help="Question repositories kept in step with a site")
app.add_typer(repo_app, name="repo")


def _sync(url: str | None, token: str | None, operation, *args: Any, **kwargs: Any) -> Any:
    """Run a repository operation with a client, turning failures into a clean exit."""
    with _build_client(url, token) as client:
        try:
            return operation(client, *args, **kwargs)
        except QbankSyncError as e:
            rprint(f"[red]Error ({e.errorcode}):[/red] {e.message}")
            if e.debuginfo:
                rprint(f"[dim]{e.debuginfo}[/dim]")
            raise typer.Exit(code=1)
        except httpx.HTTPError as e:
            rprint(f"[red]Error:[/red] Could not reach {client.base_url}: {e}")
            raise typer.Exit(code=1)


def _report_errors(errors: list[dict[str, str]]) -> None:
    for error in errors:
        rprint(f"  [red]✗[/red] {error['file']}: {error['message']}")


@repo_app.command("create")
def repo_create(
    directory: Path = typer.Argument(..., help="Repository directory"),
    level: str = typer.Option("course", "--level", "-l", help="Context level name or number"),
    category: str = typer.Option("top", "--category", "-c", help="Question category path to export"),
    course: str | None = typer.Option(None, "--course", help="Course name"),
    module: str | None = typer.Option(None, "--module", help="Quiz name"),
    coursecategory: str | None = typer.Option(None, "--coursecategory", help="Course category name"),
    instanceid: str | None = typer.Option(None, "--instanceid", help="Course, module or category id"),
    ignorecat: str | None = typer.Option(None, "--ignorecat", help="Regex of categories to skip"),
    whole_course: bool = typer.Option(False, "--whole-course", help="Also create a repository per quiz"),
    url: str | None = URL_OPTION,
    token: str | None = TOKEN_OPTION,
) -> None:
    """Export a question category into a new repository."""
    directory.mkdir(parents=True, exist_ok=True)
    if whole_course:
        stats = _sync(url, token, repo_sync.create_course_repo, directory, course, instanceid, ignorecat)
    else:
        stats = _sync(
            url, token, repo_sync.create_repo, directory, level,
            coursecategory=coursecategory, coursename=course, modulename=module,
            instanceid=instanceid, qcategoryname=category, ignorecat=ignorecat,
        )
    rprint(f"[green]✓[/green] Exported {stats['exported']} questions to {stats['manifest']}")
    if stats["failed"]:
        rprint(f"[yellow]{stats['failed']} questions failed to export[/yellow]")
    for manifest in stats.get("quizrepos", []):
        rprint(f"  [dim]quiz repository[/dim] {manifest}")


@repo_app.command("export")
def repo_export(
    manifest: Path = typer.Argument(..., help="Repository manifest file"),
    url: str | None = URL_OPTION,
    token: str | None = TOKEN_OPTION,
) -> None:
    """Refresh repository files from the site."""
    stats = _sync(url, token, repo_sync.export_repo, manifest)
    rprint(
        f"[green]✓[/green] Updated {stats['updated']}, added {stats['added']}, "
        f"removed {stats['removed']} from manifest"
    )
    if stats["failed"]:
        rprint(f"[yellow]{stats['failed']} questions failed to export[/yellow]")
        raise typer.Exit(code=1)


@repo_app.command("import")
def repo_import(
    manifest: Path = typer.Argument(..., help="Repository manifest file"),
    url: str | None = URL_OPTION,
    token: str | None = TOKEN_OPTION,
) -> None:
    """Push changed and new repository files to the site."""
    stats = _sync(url, token, repo_sync.import_repo, manifest)
    rprint(
        f"[green]✓[/green] Updated {stats['updated']}, created {stats['created']}, "
        f"unchanged {stats['unchanged']}"
    )
    for filepath in stats["missing"]:
        rprint(f"  [yellow]missing[/yellow] {filepath}")
    if stats["errors"]:
        _report_errors(stats["errors"])
        raise typer.Exit(code=1)


@repo_app.command("tidy")
def repo_tidy(
    manifest: Path = typer.Argument(..., help="Repository manifest file"),
    url: str | None = URL_OPTION,
    token: str | None = TOKEN_OPTION,
) -> None:
    """Drop manifest entries whose questions were deleted on the site."""

    def tidy(client: WebserviceClient, path: Path) -> list[str]:
        loaded = load_manifest(path)
        backup_manifest(path)
        removed = repo_sync.tidy_manifest(client, loaded)
        save_manifest(loaded, path)
        return [entry.filepath for entry in removed]

    removed = _sync(url, token, tidy, manifest)
    for filepath in removed:
        rprint(f"  [dim]removed[/dim] {filepath}")
    rprint(f"[green]✓[/green] Removed {len(removed)} entries")


@repo_app.command("export-quiz")
def repo_export_quiz(
    directory: Path = typer.Argument(..., help="Directory for the structure file"),
    manifests: list[Path] = typer.Option(..., "--manifest", "-m", help="Manifest(s) holding the quiz questions"),
    moduleid: str | None = typer.Option(None, "--moduleid", help="Quiz course module id"),
    quizname: str | None = typer.Option(None, "--quiz", help="Quiz name"),
    course: str | None = typer.Option(None, "--course", help="Course name (with --quiz)"),
    url: str | None = URL_OPTION,
    token: str | None = TOKEN_OPTION,
) -> None:
    """Write a quiz structure whose slots name question files."""
    target = _sync(url, token, repo_sync.export_quiz, directory, manifests, moduleid, quizname, course)
    rprint(f"[green]✓[/green] Exported quiz structure to {target}")


@repo_app.command("import-quiz")
def repo_import_quiz(
    path: Path = typer.Argument(..., help="Quiz structure file"),
    manifests: list[Path] = typer.Option(..., "--manifest", "-m", help="Manifest(s) holding the quiz questions"),
    cmid: str | None = typer.Option(None, "--cmid", help="Existing quiz course module id"),
    course: str | None = typer.Option(None, "--course", help="Course name"),
    url: str | None = URL_OPTION,
    token: str | None = TOKEN_OPTION,
) -> None:
    """Import a quiz structure written by export-quiz."""
    result = _sync(url, token, repo_sync.import_quiz, path, manifests, cmid, course)
    rprint(f"[green]✓[/green] Quiz cmid {result['cmid']}")
    if result.get("skippedslots"):
        rprint(f"[yellow]Skipped slots:[/yellow] {', '.join(result['skippedslots'])}")



def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
