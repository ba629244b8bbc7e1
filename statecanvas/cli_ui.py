"""Terminal rendering for the statecanvas CLI.

Commands print through these helpers so status lines, workflow summaries and
tables look the same everywhere. Rich does the drawing; questionary asks
before a file is overwritten.
"""

from __future__ import annotations

import json
import sys
from typing import Dict, List, Optional, Sequence

import questionary
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from statecanvas.workflow.schema import (
    WorkflowConfiguration,
    WorkflowDocument,
    WorkflowSummary,
)

console = Console(
    theme=Theme(
        {
            "ok": "green",
            "fail": "bold red",
            "caution": "yellow",
            "muted": "dim",
            "label": "bold",
            "state.initial": "green",
            "state.terminal": "blue",
            "transition.off": "dim",
        }
    ),
    highlight=False,
)

_WIDTH = 88
# Layout records shown by layout_preview before it cuts off
_PREVIEW_RECORDS = 8


def _width() -> int:
    return min(console.width, _WIDTH)


def _panel(heading: str, body) -> None:
    console.print()
    console.print(
        Panel(body, title=heading, title_align="left", border_style="muted", width=_width())
    )


def _table(heading: str, columns: Sequence[str]) -> Table:
    table = Table(
        title=heading,
        title_style="label",
        title_justify="left",
        header_style="muted",
        border_style="muted",
        width=_width(),
    )
    for column in columns:
        table.add_column(column)
    return table


# -- status lines ------------------------------------------------------------


def ok(msg: str) -> None:
    console.print(Text.assemble(("  ✓ ", "ok"), msg))


def fail(msg: str, hint: Optional[str] = None) -> None:
    console.print(Text.assemble(("  ✗ ", "fail"), (msg, "fail")))
    if hint:
        console.print(f"    {hint}", style="muted")


def caution(msg: str) -> None:
    console.print(Text.assemble(("  ! ", "caution"), msg))


def muted(msg: str) -> None:
    console.print(f"    {msg}", style="muted")


def field(key: str, value: str) -> None:
    console.print(Text.assemble(("  " + key + ": ", "label"), value))


def banner(name: str, version: str) -> None:
    """Workflow name with its configuration version."""
    console.print()
    console.print(Text.assemble((name, "label"), (f"  v{version}", "muted")))


# -- workflow rendering ------------------------------------------------------


def workflow_panel(
    heading: str,
    configuration: WorkflowConfiguration,
    document: Optional[WorkflowDocument] = None,
) -> None:
    """Key facts of a configuration, plus identity and entity for documents."""
    rows: Dict[str, str] = {
        "Name": configuration.name,
        "Version": configuration.version,
        "Kind": "document" if document else "configuration",
        "Active": "yes" if configuration.is_active else "no",
        "Initial State": configuration.initial_state or "-",
        "States": str(len(configuration.states)),
        "Transitions": str(configuration.transition_count),
        "Terminal States": ", ".join(configuration.get_terminal_states()) or "-",
    }
    if document is not None:
        rows["Workflow Id"] = document.id
        entity = document.entity_model
        rows["Entity"] = f"{entity.model_name} v{entity.model_version}"

    body = Text()
    for key, value in rows.items():
        body.append(f"{key}: ", style="label")
        body.append(f"{value}\n")
    body.rstrip()
    _panel(heading, body)


def result_panel(heading: str, rows: Dict[str, str]) -> None:
    body = Text("\n").join(
        Text.assemble((f"{k}: ", "label"), v) for k, v in rows.items()
    )
    _panel(heading, body)


def states_table(
    configuration: WorkflowConfiguration,
    document: Optional[WorkflowDocument] = None,
    verbose: bool = False,
) -> None:
    """States with their role; verbose adds display names and canvas positions."""
    columns = ["Id", "Role"]
    if verbose:
        columns.append("Name")
        if document is not None:
            columns.append("Position")
    table = _table("States", columns)

    positions = document.layout.state_positions() if document is not None else {}
    for state_id, state in configuration.states.items():
        role = Text()
        if state_id == configuration.initial_state:
            role.append("initial", style="state.initial")
        if state.is_terminal:
            if role.plain:
                role.append(", ")
            role.append("terminal", style="state.terminal")
        row: List = [state_id, role if role.plain else "-"]
        if verbose:
            row.append(state.name or "")
            if document is not None:
                pos = positions[state_id]
                row.append(f"({pos.x:g}, {pos.y:g})")
        table.add_row(*row)

    console.print()
    console.print(table)


def transitions_table(configuration: WorkflowConfiguration, verbose: bool = False) -> None:
    """Transitions keyed by canonical id, in configuration order."""
    columns = ["Id", "From", "To"]
    if verbose:
        columns.append("Details")
    table = _table("Transitions", columns)

    for transition_id, source, transition in configuration.iter_transitions():
        style = "transition.off" if transition.disabled else None
        row = [transition_id, source, f"→ {transition.next}"]
        if verbose:
            details = []
            if transition.manual:
                details.append("manual")
            if transition.disabled:
                details.append("disabled")
            if transition.criterion is not None:
                details.append(f"{transition.criterion.type} criterion")
            if transition.processors:
                details.append(f"{len(transition.processors)} processor(s)")
            row.append(", ".join(details) or "-")
        table.add_row(*row, style=style)

    console.print()
    console.print(table)


def summaries_table(model_name: str, summaries: Sequence[WorkflowSummary]) -> None:
    table = _table(f"Workflows of '{model_name}'", ["Id", "Name", "States", "Transitions"])
    for summary in summaries:
        table.add_row(
            summary.id,
            summary.name,
            str(summary.state_count),
            str(summary.transition_count),
        )
    console.print()
    console.print(table)


def layout_preview(document: WorkflowDocument) -> None:
    """State layout records as JSON, cut after a few records."""
    records = document.layout.to_json_dict()["states"]
    shown = json.dumps(records[:_PREVIEW_RECORDS], indent=2)
    if len(records) > _PREVIEW_RECORDS:
        shown += f"\n// {len(records) - _PREVIEW_RECORDS} more state(s)"
    _panel("Layout", Syntax(shown, "json", theme="ansi_dark"))


# -- prompts -----------------------------------------------------------------


def is_interactive() -> bool:
    return hasattr(sys.stdin, "isatty") and sys.stdin.isatty()


def confirm_overwrite(path) -> bool:
    """Ask before replacing ``path``. Ctrl-C at the prompt aborts the command."""
    answer = questionary.confirm(f"{path} exists. Overwrite?", default=False).ask()
    if answer is None:
        raise SystemExit(0)
    return answer
