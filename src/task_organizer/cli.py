from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any, Optional

from .config import OrganizerSettings
from .constants import LOG_LEVEL_ENV_VAR
from .logging_utils import configure_logging
from .server import create_app
from .task_engine.engine import TaskEngine
from .task_engine.errors import EngineError
from .task_engine.filters import TaskFilter
from .task_engine.ordering import Placement, SortMode
from .task_engine.repository import FileTaskRepository
from .task_engine.requests import Outcome, ReorderScope


def _resolve_project_dir(project_dir: Optional[str]) -> Path:
    return Path(project_dir).expanduser().resolve() if project_dir else Path.cwd().resolve()


def _ctx(args: argparse.Namespace) -> TaskEngine:
    root = _resolve_project_dir(args.project_dir)
    settings = OrganizerSettings.load(root)
    repository = FileTaskRepository(root, step=settings.order_step)
    return TaskEngine(repository, repository, settings, project_id=args.project_id)


def _filter(args: argparse.Namespace) -> TaskFilter:
    return TaskFilter.build(
        search=args.search,
        status=args.status,
        priority=args.priority,
        assignee_id=args.assignee,
        tag_ids=args.tag or (),
    )


def _emit(payload: dict[str, Any]) -> int:
    sys.stdout.write(json.dumps(payload, indent=2) + '\n')
    return 0


def _emit_outcome(outcome: Outcome) -> int:
    if outcome.failure is not None:
        sys.stderr.write(f"{outcome.failure.kind.value}: {outcome.failure.message}\n")
        return 1
    return _emit(outcome.to_dict())


def _list(args: argparse.Namespace) -> int:
    engine = _ctx(args)
    tasks = engine.list_view(_filter(args), args.sort)
    return _emit({'tasks': [t.to_dict() for t in tasks], 'total': len(tasks)})


def _tree(args: argparse.Namespace) -> int:
    engine = _ctx(args)
    rows = engine.tree(_filter(args), args.expand or (), args.sort)
    return _emit({'rows': [r.to_dict() for r in rows]})


def _board(args: argparse.Namespace) -> int:
    engine = _ctx(args)
    return _emit(engine.board(_filter(args), args.sort).to_dict())


def _gantt(args: argparse.Namespace) -> int:
    engine = _ctx(args)
    return _emit(engine.gantt(_filter(args), args.expand or ()).to_dict())


def _calendar(args: argparse.Namespace) -> int:
    engine = _ctx(args)
    return _emit({'months': [m.to_dict() for m in engine.calendar(_filter(args))]})


def _summary(args: argparse.Namespace) -> int:
    engine = _ctx(args)
    return _emit({'summary': engine.summary().to_dict()})


def _reorder(args: argparse.Namespace) -> int:
    engine = _ctx(args)
    placement = Placement(args.placement) if args.placement else None
    return _emit_outcome(engine.reorder(args.task_id, args.target_id, args.scope, placement))


def _move(args: argparse.Namespace) -> int:
    engine = _ctx(args)
    return _emit_outcome(engine.move_to_column(args.task_id, args.status_key))


def _delete_column(args: argparse.Namespace) -> int:
    engine = _ctx(args)
    return _emit_outcome(engine.delete_column(args.column_key, args.fallback))


def _depend(args: argparse.Namespace) -> int:
    engine = _ctx(args)
    if args.remove:
        return _emit_outcome(engine.remove_dependency(args.task_id, args.depends_on))
    return _emit_outcome(engine.add_dependency(args.task_id, args.depends_on))


def _deps(args: argparse.Namespace) -> int:
    engine = _ctx(args)
    return _emit({'graph': engine.dependency_graph(args.task_id)})


def _server(args: argparse.Namespace) -> int:
    import uvicorn

    app = create_app(project_dir=_resolve_project_dir(args.project_dir))
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def _add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--search', default=None)
    parser.add_argument('--status', default=None)
    parser.add_argument('--priority', default=None)
    parser.add_argument('--assignee', default=None)
    parser.add_argument('--tag', action='append', default=None, help='Tag id; repeat for AND')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Task organizer: hierarchical task views and gestures')
    parser.add_argument('--project-dir', default=None, help='Target project directory (default: current working directory)')
    parser.add_argument('--project-id', default=None, help='Project id (default: from config, else "default")')
    parser.add_argument(
        '--log-level',
        default=os.environ.get(LOG_LEVEL_ENV_VAR, 'WARNING'),
        help=f'Log level (default: ${LOG_LEVEL_ENV_VAR} or WARNING)',
    )
    subparsers = parser.add_subparsers(dest='command', required=True)
    sort_modes = [m.value for m in SortMode]

    tlist = subparsers.add_parser('list', help='List filtered tasks')
    _add_filter_arguments(tlist)
    tlist.add_argument('--sort', default=SortMode.MANUAL.value, choices=sort_modes)
    tlist.set_defaults(func=_list)

    tree = subparsers.add_parser('tree', help='Show the filtered task tree')
    _add_filter_arguments(tree)
    tree.add_argument('--expand', action='append', default=None, help='Expanded task id; repeatable')
    tree.add_argument('--sort', default=SortMode.MANUAL.value, choices=sort_modes)
    tree.set_defaults(func=_tree)

    board = subparsers.add_parser('board', help='Show the Kanban board')
    _add_filter_arguments(board)
    board.add_argument('--sort', default=SortMode.MANUAL.value, choices=sort_modes)
    board.set_defaults(func=_board)

    gantt = subparsers.add_parser('gantt', help='Show the Gantt layout')
    _add_filter_arguments(gantt)
    gantt.add_argument('--expand', action='append', default=None, help='Expanded task id; repeatable')
    gantt.set_defaults(func=_gantt)

    cal = subparsers.add_parser('calendar', help='Group dated tasks by month')
    _add_filter_arguments(cal)
    cal.set_defaults(func=_calendar)

    summary = subparsers.add_parser('summary', help='Show project statistics')
    summary.set_defaults(func=_summary)

    reorder = subparsers.add_parser('reorder', help='Place a task next to another')
    reorder.add_argument('task_id')
    reorder.add_argument('target_id')
    reorder.add_argument('--scope', default=ReorderScope.ANY.value, choices=[s.value for s in ReorderScope])
    reorder.add_argument('--placement', default=None, choices=[p.value for p in Placement])
    reorder.set_defaults(func=_reorder)

    move = subparsers.add_parser('move', help='Move a task to another column')
    move.add_argument('task_id')
    move.add_argument('status_key')
    move.set_defaults(func=_move)

    delete_column = subparsers.add_parser('delete-column', help='Delete a column, moving its tasks')
    delete_column.add_argument('column_key')
    delete_column.add_argument('--fallback', default=None, help='Status key receiving the moved tasks')
    delete_column.set_defaults(func=_delete_column)

    depend = subparsers.add_parser('depend', help='Make a task wait on another')
    depend.add_argument('task_id')
    depend.add_argument('depends_on')
    depend.add_argument('--remove', action='store_true', help='Drop the dependency instead')
    depend.set_defaults(func=_depend)

    deps = subparsers.add_parser('deps', help='Show the dependency graph')
    deps.add_argument('task_id', nargs='?', default=None, help='Limit to the subgraph around this task')
    deps.set_defaults(func=_deps)

    server = subparsers.add_parser('server', help='Start the web server')
    server.add_argument('--host', default='127.0.0.1')
    server.add_argument('--port', default=8000, type=int)
    server.set_defaults(func=_server)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    handler = getattr(args, 'func', None)
    if handler is None:
        parser.print_help()
        return 1
    try:
        return int(handler(args) or 0)
    except EngineError as exc:
        sys.stderr.write(f"{exc.failure.kind.value}: {exc}\n")
        return 1


if __name__ == '__main__':
    raise SystemExit(main())
