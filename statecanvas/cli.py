"""
StateCanvas CLI entry point.

Commands:
- statecanvas validate: Validate a workflow configuration or document file
- statecanvas info: Show workflow information
- statecanvas import: Build a document from a configuration (optionally saved to the store)
- statecanvas list: List entities or stored workflows in the configured store
- statecanvas layout: Re-run auto-layout on a document
- statecanvas migrate-ids: Rewrite legacy transition layout ids
- statecanvas version: Show version information
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click

from statecanvas import __version__
from statecanvas.cli_ui import (
    banner,
    caution,
    confirm_overwrite,
    console,
    fail,
    field,
    is_interactive,
    layout_preview,
    muted,
    ok,
    result_panel,
    states_table,
    summaries_table,
    transitions_table,
    workflow_panel,
)
from statecanvas.workflow.errors import WorkflowEngineError
from rich.text import Text


def setup_logging(debug: bool = False, level: str = "WARNING") -> None:
    """Configure logging. ``debug`` overrides ``level``."""
    logging.basicConfig(
        level=logging.DEBUG if debug else getattr(logging, level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def _can_write(output: Path, force: bool) -> bool:
    """True when ``output`` may be (over)written."""
    if force or not output.exists():
        return True
    if is_interactive():
        return confirm_overwrite(output)
    fail(f"{output} already exists", hint="Pass --force to overwrite")
    return False


def _load_settings(config: Optional[Path], debug: bool = False):
    """Load settings and configure logging from them."""
    from statecanvas.config.settings import StateCanvasSettings

    overrides = {"debug": True} if debug else {}
    settings = StateCanvasSettings(_config_path=str(config) if config else None, **overrides)
    setup_logging(settings.debug, settings.log_level)
    return settings


config_option = click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to statecanvas.yaml config file",
)
debug_option = click.option(
    "--debug/--no-debug",
    default=False,
    help="Enable debug logging",
)


@click.group()
@click.version_option(version=__version__, prog_name="statecanvas")
def main() -> None:
    """StateCanvas - Workflow consistency engine.

    Validate, inspect, import and lay out entity workflows.
    """
    pass


@main.command()
@click.argument(
    "path",
    type=click.Path(exists=True, path_type=Path),
)
def validate(path: Path) -> None:
    """Validate a workflow configuration or document file.

    Checks that every transition targets a defined state, that the initial
    state exists and, for documents, that the layout matches the configuration.

    Example:
        statecanvas validate registration.json
    """
    from statecanvas.workflow.parser import WorkflowParser
    from statecanvas.workflow.schema import WorkflowDocument

    try:
        parsed = WorkflowParser.parse_file(path)
    except FileNotFoundError:
        fail(f"File not found: {path}")
        raise SystemExit(1)
    except (WorkflowEngineError, ValueError) as e:
        fail(f"Validation error: {e}")
        raise SystemExit(1)

    if isinstance(parsed, WorkflowDocument):
        workflow_panel("✓ Valid Workflow", parsed.configuration, parsed)
    else:
        workflow_panel("✓ Valid Workflow", parsed)


@main.command()
@click.argument(
    "path",
    type=click.Path(exists=True, path_type=Path),
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Show detailed information",
)
def info(path: Path, verbose: bool) -> None:
    """Show detailed workflow information.

    Displays states and transitions, with canonical transition ids.

    Example:
        statecanvas info registration.json --verbose
    """
    from statecanvas.workflow.parser import WorkflowParser
    from statecanvas.workflow.schema import WorkflowDocument

    try:
        parsed = WorkflowParser.parse_file(path)
    except (WorkflowEngineError, ValueError) as e:
        fail(str(e))
        raise SystemExit(1)

    document = parsed if isinstance(parsed, WorkflowDocument) else None
    config = document.configuration if document else parsed

    banner(config.name, config.version)
    if config.desc:
        muted(config.desc)

    states_table(config, document, verbose=verbose)
    if config.transition_count:
        transitions_table(config, verbose=verbose)
    console.print()


@main.command(name="import")
@click.argument(
    "config_path",
    type=click.Path(exists=True, path_type=Path),
)
@click.option(
    "--model",
    "-m",
    "model_name",
    type=str,
    required=True,
    help="Entity model name the workflow belongs to",
)
@click.option(
    "--model-version",
    type=int,
    default=1,
    help="Entity model version (default: 1)",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    default=None,
    help="Output file path (default: derived from workflow name and entity)",
)
@click.option("--force", "-f", is_flag=True, help="Overwrite an existing output file")
@click.option(
    "--save",
    is_flag=True,
    help="Also save the workflow into the configured store instead of only writing a file",
)
@config_option
@debug_option
def import_(
    config_path: Path,
    model_name: str,
    model_version: int,
    output: Optional[Path],
    force: bool,
    save: bool,
    config: Optional[Path],
    debug: bool,
) -> None:
    """Import a workflow configuration as a laid-out document.

    Example:
        statecanvas import registration.json --model user
        statecanvas import registration.json --model user --save
    """
    from statecanvas.engine.layout import LayoutOptions
    from statecanvas.workflow.parser import (
        WorkflowParser,
        export_filename,
        import_configuration,
        write_document,
    )
    from statecanvas.workflow.schema import EntityModel

    try:
        settings = _load_settings(config, debug)
        configuration = WorkflowParser.parse_configuration_file(config_path)
        entity_model = EntityModel(model_name=model_name, model_version=model_version)
        document = import_configuration(
            configuration,
            entity_model,
            layout_options=LayoutOptions.from_config(settings.layout),
        )
    except (WorkflowEngineError, ValueError) as e:
        fail(f"Import failed: {e}")
        raise SystemExit(1)

    output = output or Path(export_filename(document))
    if not _can_write(output, force):
        raise SystemExit(1)
    write_document(document, output)

    rows = {
        "Output": str(output),
        "States": str(len(document.states)),
        "Transitions": str(document.transition_count),
        "Direction": settings.layout.direction,
    }
    if save:
        failures = asyncio.run(_save_to_store(settings, configuration, entity_model))
        if failures:
            fail(f"Saving to {settings.persistence.store_root} failed: {failures[-1]}")
            raise SystemExit(1)
        rows["Store"] = settings.persistence.store_root

    ok(f"Imported '{configuration.name}' as {document.id}")
    result_panel("Import Result", rows)
    console.print()
    muted(f"Inspect: statecanvas info {output} --verbose")
    muted(f"Re-arrange: statecanvas layout {output} --direction LR")


async def _save_to_store(settings, configuration, entity_model) -> list:
    """Import through an editor session backed by the configured store."""
    from statecanvas.session import EditorSession
    from statecanvas.store import open_store

    failures: list = []
    session = EditorSession(
        open_store(settings), settings=settings, on_persist_failure=failures.append
    )
    await session.import_workflow(configuration, entity_model)
    await session.close()
    return failures


@main.command(name="list")
@click.option(
    "--model",
    "-m",
    "model_name",
    type=str,
    default=None,
    help="Entity model whose workflows to list (default: list entity models)",
)
@config_option
@debug_option
def list_(model_name: Optional[str], config: Optional[Path], debug: bool) -> None:
    """List entity models or their stored workflows.

    Reads the store at persistence.store_root.

    Example:
        statecanvas list
        statecanvas list --model user
    """
    from statecanvas.store import open_store

    settings = _load_settings(config, debug)
    store = open_store(settings)

    try:
        if model_name is None:
            entities = asyncio.run(store.list_entities())
        else:
            summaries = asyncio.run(store.list_workflows(model_name))
    except WorkflowEngineError as e:
        fail(str(e))
        raise SystemExit(1)

    field("Store", settings.persistence.store_root)
    if model_name is None:
        if not entities:
            caution("No entity models stored yet")
            return
        for entity in entities:
            muted(entity)
        return

    if not summaries:
        caution(f"No workflows stored for '{model_name}'")
        return
    summaries_table(model_name, summaries)


@main.command()
@click.argument(
    "document_path",
    type=click.Path(exists=True, path_type=Path),
)
@click.option(
    "--direction",
    "-d",
    type=click.Choice(["TB", "BT", "LR", "RL"]),
    default=None,
    help="Layout direction (default: from settings, TB)",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    default=None,
    help="Output file path (default: overwrite the input)",
)
@click.option("--force", "-f", is_flag=True, help="Overwrite without asking")
@config_option
@click.option("--preview", is_flag=True, help="Print the resulting layout")
@debug_option
def layout(
    document_path: Path,
    direction: Optional[str],
    output: Optional[Path],
    force: bool,
    config: Optional[Path],
    preview: bool,
    debug: bool,
) -> None:
    """Re-run auto-layout on a workflow document.

    Example:
        statecanvas layout registration.document.json --direction LR -o out.json
    """
    from statecanvas.engine.layout import AutoLayoutEngine, LayoutOptions
    from statecanvas.workflow.parser import WorkflowParser, write_document

    try:
        settings = _load_settings(config, debug)
        document = WorkflowParser.parse_document_file(document_path)
    except (WorkflowEngineError, ValueError) as e:
        fail(str(e))
        raise SystemExit(1)

    options = LayoutOptions.from_config(settings.layout)
    if direction:
        options.direction = direction

    engine = AutoLayoutEngine(options)
    result = engine.run(document)
    if result.is_empty:
        caution("Workflow has no states; nothing to lay out")
        return

    output = output or document_path
    if not _can_write(output, force):
        raise SystemExit(1)

    document = engine.apply_layout(document, result)
    write_document(document, output)

    ok(f"Laid out {len(result.states)} states in {max(result.ranks.values()) + 1} ranks")
    field("Direction", options.direction)
    field("Output", str(output))
    if result.loopbacks:
        field("Loop-backs", ", ".join(result.loopbacks))
    if preview:
        layout_preview(document)


@main.command(name="migrate-ids")
@click.argument(
    "document_path",
    type=click.Path(exists=True, path_type=Path),
)
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    default=None,
    help="Output file path (default: overwrite the input)",
)
@click.option("--force", "-f", is_flag=True, help="Overwrite without asking")
def migrate_ids(document_path: Path, output: Optional[Path], force: bool) -> None:
    """Rewrite legacy '<source>-to-<target>' transition ids in a document.

    Records that cannot be matched to a transition make the document invalid
    and nothing is written.

    Example:
        statecanvas migrate-ids old.document.json -o new.document.json
    """
    from statecanvas.workflow import identity
    from statecanvas.workflow.parser import WorkflowParser, write_document

    try:
        data = WorkflowParser.load_data(document_path)
        document = WorkflowParser.parse_document_dict(data)
    except (WorkflowEngineError, ValueError) as e:
        fail(f"Migration failed: {e}")
        raise SystemExit(1)

    records = data.get("layout", {}).get("transitions", [])
    migrated = [
        r.get("id")
        for r in records
        if not identity.validate_exists(r.get("id", ""), document.states)
    ]
    if not migrated:
        ok("No legacy transition ids found")
        return

    output = output or document_path
    if not _can_write(output, force):
        raise SystemExit(1)
    write_document(document, output)

    ok(f"Migrated {len(migrated)} transition id(s)")
    for old_id in migrated:
        muted(old_id)
    field("Output", str(output))


@main.command()
def version() -> None:
    """Show version information."""
    console.print(
        Text.assemble(
            ("StateCanvas", "bold"),
            (f" v{__version__}", "dim"),
        )
    )


if __name__ == "__main__":
    main()
