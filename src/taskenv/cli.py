"""taskenv CLI: task files, parent folders and per-task worktree environments.

Installed as the ``taskenv`` console_script. Every command calls one core
operation and renders its ``OperationResult``.
"""

from __future__ import annotations

import json
import shlex
import sys
from pathlib import Path
from typing import Any, NoReturn

import click
from rich.table import Table

from taskenv import __version__
from taskenv import log as tlog
from taskenv.config import Config
from taskenv.environment.naming import MODE_DESCRIPTIONS, ContainerConfig
from taskenv.environment.resolver import Environment, EnvironmentResolver
from taskenv.environment.worktrees import WorktreeManager
from taskenv.errors import OperationResult
from taskenv.tasks.document import serialize_document
from taskenv.tasks.hierarchy import ParentTasks
from taskenv.tasks.model import Task, TaskCreateOptions, TaskListOptions, TaskUpdateOptions
from taskenv.tasks.store import TaskStore

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])

STATE_CHOICE = click.Choice(["backlog", "current", "archive"], case_sensitive=False)


# ── rendering helpers ────────────────────────────────────────────────

def _fail(result: OperationResult[Any]) -> NoReturn:
    tlog.error(result.error or "Operation failed")
    for problem in result.validation_errors:
        tlog.console.print(f"[dim]  - {problem}[/dim]")
    sys.exit(1)


def _unwrap(result: OperationResult[Any]) -> Any:
    if not result.success:
        _fail(result)
    for warning in result.warnings:
        tlog.warn(warning)
    return result.data


def _task_dict(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "type": task.type,
        "status": task.status,
        "priority": task.document.priority,
        "area": task.document.area,
        "assignee": task.document.assignee,
        "tags": task.tags,
        "workflow_state": task.location.workflow_state.value,
        "archive_date": task.location.archive_date,
        "is_parent_task": task.is_parent_task,
        "parent_task": task.parent_task,
        "sequence_number": task.sequence_number,
        "path": str(task.path),
    }


def _env_dict(env: Environment) -> dict[str, Any]:
    return {
        "task_id": env.task_id,
        "original_task_id": env.original_task_id,
        "resolved_from_subtask": env.resolved_from_subtask,
        "is_parent_environment": env.is_parent_environment,
        "path": str(env.path),
        "branch": env.branch,
        "created": env.created,
        "switched": env.switched,
        "mode": env.mode.value if env.mode else None,
    }


def _print_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _task_table(tasks: list[Task]) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("State")
    for task in tasks:
        table.add_row(
            task.id,
            task.title,
            task.type,
            task.status,
            task.location.workflow_state.value,
        )
    return table


def _parse_pairs(values: tuple[str, ...], option: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for raw in values:
        key, sep, value = raw.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"Expected KEY=VALUE, got '{raw}'", param_hint=option)
        pairs[key.strip()] = value
    return pairs


def _config(ctx: click.Context) -> Config:
    return ctx.find_object(Config)  # type: ignore[return-value]


def _store(ctx: click.Context) -> TaskStore:
    return TaskStore(_config(ctx))


def _parents(ctx: click.Context) -> ParentTasks:
    return ParentTasks(_store(ctx))


def _manager(ctx: click.Context) -> WorktreeManager:
    cfg = _config(ctx)
    return WorktreeManager(cfg, EnvironmentResolver(_store(ctx), cfg))


# ── root group ───────────────────────────────────────────────────────

@click.group(context_settings=CONTEXT_SETTINGS)
@click.option("--root", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Project root (default: $TASKENV_ROOT or the enclosing git repository)")
@click.option("-v", "--verbose", is_flag=True, help="Show debug output")
@click.version_option(__version__, prog_name="taskenv")
@click.pass_context
def main(ctx: click.Context, root: Path | None, verbose: bool) -> None:
    """Manage tasks stored under .tasks/ and their git worktree environments."""
    tlog.set_verbose(verbose)
    cfg = Config.from_env(root)
    tlog.debug(f"Project root: {cfg.project_root}")
    ctx.obj = cfg


# ── tasks ────────────────────────────────────────────────────────────

@main.group()
def task() -> None:
    """Create, inspect, update and move task files."""


def _create_options(
    title: str,
    type_: str | None,
    status: str | None,
    priority: str | None,
    area: str,
    assignee: str | None,
    tags: tuple[str, ...],
    state: str | None,
    instruction: str,
    items: tuple[str, ...],
    deliverable: str,
) -> TaskCreateOptions:
    return TaskCreateOptions(
        title=title,
        type=type_,
        status=status,
        priority=priority,
        area=area,
        assignee=assignee,
        tags=list(tags),
        workflow_state=state,
        instruction=instruction,
        tasks=list(items),
        deliverable=deliverable,
    )


def _create_flags(func: Any) -> Any:
    options = [
        click.option("--type", "type_", default=None, help="feature, bug, chore, documentation, test, spike, idea"),
        click.option("--status", default=None, help="Initial status (default: todo)"),
        click.option("--priority", default=None, help="highest, high, medium, low"),
        click.option("--area", default="general", show_default=True),
        click.option("--assignee", default=None),
        click.option("--tag", "tags", multiple=True, help="Tag (repeatable); mode:<mode> selects the work mode"),
        click.option("--instruction", default="", help="Instruction section text"),
        click.option("--item", "items", multiple=True, help="Checklist item (repeatable)"),
        click.option("--deliverable", default="", help="Deliverable section text"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@task.command("create")
@click.argument("title")
@_create_flags
@click.option("--state", type=STATE_CHOICE, default=None, help="Workflow state (default: backlog)")
@click.option("--json", "as_json", is_flag=True, help="Print the created task as JSON")
@click.pass_context
def task_create(ctx: click.Context, title: str, type_: str | None, status: str | None, priority: str | None,
                area: str, assignee: str | None, tags: tuple[str, ...], instruction: str,
                items: tuple[str, ...], deliverable: str, state: str | None, as_json: bool) -> None:
    """Create a simple task."""
    options = _create_options(title, type_, status, priority, area, assignee, tags, state,
                              instruction, items, deliverable)
    created: Task = _unwrap(_store(ctx).create(options))
    if as_json:
        _print_json(_task_dict(created))
        return
    tlog.success(f"Created {created.id} in {created.location.workflow_state.value}")


@task.command("get")
@click.argument("task_id")
@click.option("--parent", "parent_id", default=None, help="Parent folder to look in")
@click.option("--json", "as_json", is_flag=True)
@click.pass_context
def task_get(ctx: click.Context, task_id: str, parent_id: str | None, as_json: bool) -> None:
    """Show a task."""
    found: Task = _unwrap(_store(ctx).get(task_id, parent_id))
    if as_json:
        data = _task_dict(found)
        data["sections"] = found.document.sections
        _print_json(data)
        return
    click.echo(serialize_document(found.document), nl=False)


@task.command("list")
@click.option("--state", "states", type=STATE_CHOICE, multiple=True, help="Only these states (repeatable)")
@click.option("--archived", is_flag=True, help="Include archived tasks")
@click.option("--type", "type_", default=None)
@click.option("--status", default=None)
@click.option("--area", default=None)
@click.option("--assignee", default=None)
@click.option("--tag", "tags", multiple=True, help="Match any of these tags")
@click.option("--parent", "parent_id", default=None, help="Only subtasks of this parent")
@click.option("--include-parents", is_flag=True, help="Include parent overviews")
@click.option("--open", "open_only", is_flag=True, help="Hide done and archived tasks")
@click.option("--by-priority", is_flag=True, help="Highest priority first")
@click.option("--json", "as_json", is_flag=True)
@click.pass_context
def task_list(ctx: click.Context, states: tuple[str, ...], archived: bool, type_: str | None,
              status: str | None, area: str | None, assignee: str | None, tags: tuple[str, ...],
              parent_id: str | None, include_parents: bool, open_only: bool, by_priority: bool,
              as_json: bool) -> None:
    """List tasks (current, then backlog, then archive)."""
    options = TaskListOptions(
        workflow_states=list(states),  # type: ignore[arg-type]
        include_archived=archived,
        include_parent_tasks=include_parents,
        type=type_,
        status=status,
        area=area,
        assignee=assignee,
        tags=list(tags),
        parent_id=parent_id,
        exclude_completed=open_only,
        by_priority=by_priority,
    )
    tasks: list[Task] = _unwrap(_store(ctx).list(options))
    if as_json:
        _print_json([_task_dict(t) for t in tasks])
        return
    if not tasks:
        tlog.info("No tasks found")
        return
    tlog.console.print(_task_table(tasks))


@task.command("update")
@click.argument("task_id")
@click.option("--parent", "parent_id", default=None)
@click.option("--title", default=None)
@click.option("--status", default=None)
@click.option("--type", "type_", default=None)
@click.option("--priority", default=None)
@click.option("--area", default=None)
@click.option("--assignee", default=None)
@click.option("--set", "set_values", multiple=True, help="Frontmatter KEY=VALUE (repeatable)")
@click.option("--unset", "unset_keys", multiple=True, help="Remove a frontmatter key (repeatable)")
@click.option("--section", "sections", multiple=True, help="Replace a section: NAME=CONTENT (repeatable)")
@click.option("--log", "log_entry", default=None, help="Append a log entry")
@click.pass_context
def task_update(ctx: click.Context, task_id: str, parent_id: str | None, title: str | None,
                status: str | None, type_: str | None, priority: str | None, area: str | None,
                assignee: str | None, set_values: tuple[str, ...], unset_keys: tuple[str, ...],
                sections: tuple[str, ...], log_entry: str | None) -> None:
    """Update a task; a status change may move it between states."""
    frontmatter: dict[str, Any] = dict(_parse_pairs(set_values, "--set"))
    for key, value in (("status", status), ("type", type_), ("priority", priority),
                       ("area", area), ("assignee", assignee)):
        if value is not None:
            frontmatter[key] = value
    for key in unset_keys:
        frontmatter[key] = None
    patch = TaskUpdateOptions(
        title=title,
        frontmatter=frontmatter,
        sections=_parse_pairs(sections, "--section"),
        log_entry=log_entry,
    )
    before = _unwrap(_store(ctx).get(task_id, parent_id))
    updated: Task = _unwrap(_store(ctx).update(task_id, patch, parent_id))
    tlog.success(f"Updated {updated.id}")
    if updated.location.workflow_state is not before.location.workflow_state:
        tlog.info(f"Moved to {updated.location.workflow_state.value}")


@task.command("log")
@click.argument("task_id")
@click.argument("entry")
@click.pass_context
def task_log(ctx: click.Context, task_id: str, entry: str) -> None:
    """Append a timestamped entry to a task's log."""
    updated: Task = _unwrap(_store(ctx).append_log(task_id, entry))
    tlog.success(f"Logged to {updated.id}")


@task.command("move")
@click.argument("task_id")
@click.argument("state", type=STATE_CHOICE)
@click.option("--archive-date", default=None, help="Archive bucket YYYY-MM (default: this month)")
@click.option("--update-status", is_flag=True, help="Set the status that matches the new state")
@click.pass_context
def task_move(ctx: click.Context, task_id: str, state: str, archive_date: str | None, update_status: bool) -> None:
    """Move a task (or a whole parent folder) to another workflow state."""
    moved: Task = _unwrap(_store(ctx).move(task_id, state, archive_date, update_status))
    tlog.success(f"Moved {moved.id} to {moved.location.workflow_state.value}")


@task.command("delete")
@click.argument("task_id")
@click.option("--parent", "parent_id", default=None)
@click.pass_context
def task_delete(ctx: click.Context, task_id: str, parent_id: str | None) -> None:
    """Delete a simple task or a subtask."""
    _unwrap(_store(ctx).delete(task_id, parent_id))
    tlog.success(f"Deleted {task_id}")


# ── parents ──────────────────────────────────────────────────────────

@main.group()
def parent() -> None:
    """Parent tasks and subtask ordering."""


@parent.command("create")
@click.argument("title")
@_create_flags
@click.option("--state", type=STATE_CHOICE, default=None, help="Workflow state (default: backlog)")
@click.option("--subtask", "subtasks", multiple=True, help="Initial subtask title (repeatable, in order)")
@click.pass_context
def parent_create(ctx: click.Context, title: str, type_: str | None, status: str | None, priority: str | None,
                  area: str, assignee: str | None, tags: tuple[str, ...], instruction: str,
                  items: tuple[str, ...], deliverable: str, state: str | None,
                  subtasks: tuple[str, ...]) -> None:
    """Create a parent task folder with an overview and optional subtasks."""
    options = _create_options(title, type_, status, priority, area, assignee, tags, state,
                              instruction, items, deliverable)
    created = _unwrap(_parents(ctx).create_parent(options, [TaskCreateOptions(title=t) for t in subtasks]))
    tlog.success(f"Created parent {created.id} with {len(created.subtasks)} subtasks")


@parent.command("show")
@click.argument("parent_id")
@click.option("--json", "as_json", is_flag=True)
@click.pass_context
def parent_show(ctx: click.Context, parent_id: str, as_json: bool) -> None:
    """Show a parent task and its ordered subtasks."""
    info = _unwrap(_parents(ctx).list_subtasks(parent_id))
    if as_json:
        _print_json([{"sequence": s.sequence, "id": s.id, "can_run_parallel": s.can_run_parallel} for s in info])
        return
    table = Table(show_header=True, header_style="bold", title=parent_id)
    table.add_column("Seq")
    table.add_column("Subtask")
    table.add_column("Parallel")
    for sub in info:
        table.add_row(sub.sequence, sub.id, "yes" if sub.can_run_parallel else "")
    tlog.console.print(table)


@parent.command("add")
@click.argument("parent_id")
@click.argument("title")
@_create_flags
@click.option("--sequence", default=None, help="Explicit two-digit sequence")
@click.option("--parallel-with", default=None, help="Share the sequence of this sibling")
@click.option("--after", default=None, help="Insert after this sibling")
@click.option("--before", default=None, help="Insert before this sibling")
@click.option("--force", is_flag=True, help="Allow reusing an occupied sequence")
@click.pass_context
def parent_add(ctx: click.Context, parent_id: str, title: str, type_: str | None, status: str | None,
               priority: str | None, area: str, assignee: str | None, tags: tuple[str, ...],
               instruction: str, items: tuple[str, ...], deliverable: str, sequence: str | None,
               parallel_with: str | None, after: str | None, before: str | None, force: bool) -> None:
    """Add a subtask to a parent task."""
    options = _create_options(title, type_, status, priority, area, assignee, tags, None,
                              instruction, items, deliverable)
    created: Task = _unwrap(_parents(ctx).add_subtask(
        parent_id, options,
        sequence=sequence, parallel_with=parallel_with, after=after, before=before, force=force,
    ))
    tlog.success(f"Added {created.id} to {parent_id}")


def _report_renames(result: Any) -> None:
    for old, new in result.renamed:
        tlog.info(f"{old} -> {new}")
    if not result.renamed:
        tlog.info("Order unchanged")


@parent.command("reorder")
@click.argument("parent_id")
@click.argument("moves", nargs=-1, required=True)
@click.option("--force", is_flag=True, help="Allow sequence collisions")
@click.pass_context
def parent_reorder(ctx: click.Context, parent_id: str, moves: tuple[str, ...], force: bool) -> None:
    """Rename subtasks to new sequences, given as SUBTASK=SEQ."""
    order = list(_parse_pairs(moves, "MOVES").items())
    _report_renames(_unwrap(_parents(ctx).reorder_subtasks(parent_id, order, force=force)))


@parent.command("parallel")
@click.argument("parent_id")
@click.argument("subtask_ids", nargs=-1, required=True)
@click.option("--sequence", default=None, help="Sequence for the group (default: first member's)")
@click.pass_context
def parent_parallel(ctx: click.Context, parent_id: str, subtask_ids: tuple[str, ...], sequence: str | None) -> None:
    """Give several subtasks the same sequence."""
    _report_renames(_unwrap(_parents(ctx).make_parallel(parent_id, list(subtask_ids), sequence)))


@parent.command("sequence")
@click.argument("parent_id")
@click.argument("subtask_id")
@click.argument("sequence")
@click.option("--force", is_flag=True, help="Allow sharing an occupied sequence")
@click.pass_context
def parent_sequence(ctx: click.Context, parent_id: str, subtask_id: str, sequence: str, force: bool) -> None:
    """Set one subtask's sequence."""
    _report_renames(_unwrap(_parents(ctx).update_sequence(parent_id, subtask_id, sequence, force=force)))


@parent.command("resequence")
@click.argument("parent_id")
@click.option("--from", "from_positions", type=int, multiple=True, required=True, help="1-based position")
@click.option("--to", "to_positions", type=int, multiple=True, required=True, help="1-based position")
@click.pass_context
def parent_resequence(ctx: click.Context, parent_id: str, from_positions: tuple[int, ...],
                      to_positions: tuple[int, ...]) -> None:
    """Move subtasks by position and renumber the folder sequentially."""
    _report_renames(_unwrap(_parents(ctx).resequence(parent_id, list(from_positions), list(to_positions))))


@parent.command("delete")
@click.argument("parent_id")
@click.option("--no-cascade", is_flag=True, help="Refuse when subtasks remain")
@click.pass_context
def parent_delete(ctx: click.Context, parent_id: str, no_cascade: bool) -> None:
    """Delete a parent folder and its subtasks."""
    _unwrap(_parents(ctx).delete_parent(parent_id, cascade=not no_cascade))
    tlog.success(f"Deleted parent {parent_id}")


@parent.command("promote")
@click.argument("task_id")
@click.option("--subtask", "subtasks", multiple=True, help="Subtask title (repeatable)")
@click.option("--keep-original", is_flag=True, help="Keep the task's content as subtask 01")
@click.pass_context
def parent_promote(ctx: click.Context, task_id: str, subtasks: tuple[str, ...], keep_original: bool) -> None:
    """Turn a simple task into a parent task."""
    promoted = _unwrap(_parents(ctx).promote_to_parent(
        task_id, [TaskCreateOptions(title=t) for t in subtasks], keep_original=keep_original,
    ))
    tlog.success(f"Promoted {promoted.id} ({len(promoted.subtasks)} subtasks)")


@parent.command("adopt")
@click.argument("parent_id")
@click.argument("task_id")
@click.option("--sequence", default=None)
@click.option("--force", is_flag=True)
@click.pass_context
def parent_adopt(ctx: click.Context, parent_id: str, task_id: str, sequence: str | None, force: bool) -> None:
    """Move a simple task into a parent folder."""
    adopted: Task = _unwrap(_parents(ctx).adopt_task(parent_id, task_id, sequence, force=force))
    tlog.success(f"Adopted {task_id} as {adopted.id}")


@parent.command("extract")
@click.argument("parent_id")
@click.argument("subtask_id")
@click.pass_context
def parent_extract(ctx: click.Context, parent_id: str, subtask_id: str) -> None:
    """Turn a subtask back into a simple task."""
    extracted: Task = _unwrap(_parents(ctx).extract_subtask(parent_id, subtask_id))
    tlog.success(f"Extracted {subtask_id} as {extracted.id}")


# ── environments ─────────────────────────────────────────────────────

@main.group()
def env() -> None:
    """Per-task git worktree environments."""


def _print_env(environment: Environment) -> None:
    if environment.created:
        tlog.success(f"Created environment {environment.task_id}")
    elif environment.switched:
        tlog.info(f"Switched to environment {environment.task_id}")
    if environment.resolved_from_subtask:
        tlog.info(f"{environment.original_task_id} is a subtask of {environment.task_id}")
    tlog.console.print(f"  path:   {environment.path}")
    tlog.console.print(f"  branch: {environment.branch}")
    if environment.mode:
        tlog.console.print(f"  mode:   {environment.mode.value} ({MODE_DESCRIPTIONS[environment.mode]})")


@env.command("resolve")
@click.argument("task_id")
@click.option("--json", "as_json", is_flag=True)
@click.pass_context
def env_resolve(ctx: click.Context, task_id: str, as_json: bool) -> None:
    """Show which environment a task belongs to (no changes made)."""
    environment: Environment = _unwrap(_manager(ctx).resolver.resolve(task_id))
    if as_json:
        _print_json(_env_dict(environment))
        return
    _print_env(environment)


@env.command("open")
@click.argument("task_id")
@click.option("--dry-run", is_flag=True, help="Resolve only; do not create anything")
@click.option("--json", "as_json", is_flag=True)
@click.pass_context
def env_open(ctx: click.Context, task_id: str, dry_run: bool, as_json: bool) -> None:
    """Create the task's environment, or switch to it if it exists."""
    environment: Environment = _unwrap(_manager(ctx).create_or_switch(task_id, dry_run=dry_run))
    if as_json:
        _print_json(_env_dict(environment))
        return
    _print_env(environment)


@env.command("info")
@click.argument("task_id")
@click.option("--json", "as_json", is_flag=True)
@click.pass_context
def env_info(ctx: click.Context, task_id: str, as_json: bool) -> None:
    """Show an existing environment."""
    environment: Environment = _unwrap(_manager(ctx).environment_info(task_id))
    if as_json:
        _print_json(_env_dict(environment))
        return
    _print_env(environment)


@env.command("list")
@click.option("--json", "as_json", is_flag=True)
@click.pass_context
def env_list(ctx: click.Context, as_json: bool) -> None:
    """List materialized environments."""
    envs: list[Environment] = _unwrap(_manager(ctx).list_environments())
    if as_json:
        _print_json([_env_dict(e) for e in envs])
        return
    if not envs:
        tlog.info("No environments")
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("Task")
    table.add_column("Branch")
    table.add_column("Path")
    for e in envs:
        table.add_row(e.task_id, e.branch, str(e.path))
    tlog.console.print(table)


@env.command("close")
@click.argument("task_id")
@click.option("--delete-branch", is_flag=True, help="Also delete the task branch")
@click.option("--force", is_flag=True, help="Discard uncommitted changes")
@click.pass_context
def env_close(ctx: click.Context, task_id: str, delete_branch: bool, force: bool) -> None:
    """Remove a task's environment (the branch is kept by default)."""
    closed: Environment = _unwrap(_manager(ctx).close_environment(task_id, keep_branch=not delete_branch, force=force))
    tlog.success(f"Closed environment {closed.task_id}")


@env.command("container")
@click.argument("task_id")
@click.pass_context
def env_container(ctx: click.Context, task_id: str) -> None:
    """Print the container command for a task's environment."""
    environment: Environment = _unwrap(_manager(ctx).resolver.resolve(task_id))
    click.echo(shlex.join(ContainerConfig().run_command(environment.path)))


if __name__ == "__main__":
    main()
