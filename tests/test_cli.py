from __future__ import annotations

import json
from pathlib import Path

import pytest

from task_organizer.cli import main
from task_organizer.task_engine.model import Task
from task_organizer.task_engine.repository import FileTaskRepository


@pytest.fixture
def project(tmp_path: Path) -> Path:
    FileTaskRepository(tmp_path).save_tasks([
        Task(id='a', title='Plan release', status='todo', order=0),
        Task(id='a1', title='Draft notes', parent_id='a', status='done', order=0),
        Task(id='b', title='Fix build', status='in_progress', priority='urgent', order=1),
    ])
    return tmp_path


def _run(project: Path, capsys: pytest.CaptureFixture[str], *argv: str) -> dict:
    rc = main(['--project-dir', str(project), *argv])
    assert rc == 0
    return json.loads(capsys.readouterr().out)


def test_list_and_filters(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    data = _run(project, capsys, 'list')
    assert data['total'] == 3

    data = _run(project, capsys, 'list', '--status', 'done')
    assert [t['id'] for t in data['tasks']] == ['a', 'a1']

    data = _run(project, capsys, 'list', '--sort', 'priority')
    assert [t['id'] for t in data['tasks']][0] == 'b'


def test_tree_and_board(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    data = _run(project, capsys, 'tree', '--expand', 'a')
    assert [r['task']['id'] for r in data['rows']] == ['a', 'a1', 'b']

    data = _run(project, capsys, 'board')
    todo = next(c for c in data['columns'] if c['status_key'] == 'todo')
    assert [t['id'] for t in todo['tasks']] == ['a']


def test_gantt_calendar_summary(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(project, capsys, 'gantt')['rows'] == []
    assert _run(project, capsys, 'calendar')['months'] == []
    assert _run(project, capsys, 'summary')['summary']['total'] == 3


def test_move_and_reorder(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    data = _run(project, capsys, 'move', 'a', 'in_progress')
    assert data['requests'][0]['status_key'] == 'in_progress'

    data = _run(project, capsys, 'reorder', 'b', 'a', '--scope', 'sameStatusOnly')
    assert data['ok'] is True

    data = _run(project, capsys, 'list', '--status', 'in_progress')
    assert [t['id'] for t in data['tasks']] == ['b', 'a']


def test_stale_reference_fails(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = main(['--project-dir', str(project), 'reorder', 'b', 'ghost'])
    assert rc == 1
    assert 'StaleReference' in capsys.readouterr().err


def test_delete_column_requires_fallback(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = main(['--project-dir', str(project), 'delete-column', 'done'])
    assert rc == 1
    assert 'InvalidArgument' in capsys.readouterr().err


def test_delete_built_in_column_rejected(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = main(['--project-dir', str(project), 'delete-column', 'done', '--fallback', 'todo'])
    assert rc == 1
    assert 'MutationRejected' in capsys.readouterr().err


def test_project_id_scopes_tasks(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    FileTaskRepository(tmp_path).save_tasks([
        Task(id='x', project_id='p1'),
        Task(id='y', project_id='p2'),
    ])
    data = _run(tmp_path, capsys, '--project-id', 'p2', 'list')
    assert [t['id'] for t in data['tasks']] == ['y']


def test_depend_and_graph(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    data = _run(project, capsys, 'depend', 'b', 'a')
    assert data['requests'][0]['fields'] == {'blocked_by': ['a']}

    assert _run(project, capsys, 'deps', 'a')['graph'] == {'a': [], 'b': ['a']}
    rows = _run(project, capsys, 'tree')['rows']
    assert [r['task']['id'] for r in rows if r['is_blocked']] == ['b']

    rc = main(['--project-dir', str(project), 'depend', 'a', 'b'])
    assert rc == 1
    assert 'InvalidArgument' in capsys.readouterr().err

    _run(project, capsys, 'depend', 'b', 'a', '--remove')
    assert _run(project, capsys, 'deps')['graph']['b'] == []


def test_server_runs_app(project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[object, dict]] = []
    monkeypatch.setattr('uvicorn.run', lambda app, **kwargs: calls.append((app, kwargs)))

    rc = main(['--project-dir', str(project), 'server', '--port', '8123'])

    assert rc == 0
    app, kwargs = calls[0]
    assert kwargs == {'host': '127.0.0.1', 'port': 8123}
    assert app.state.project_dir == project.resolve()


def test_server_has_no_reload_flag(project: Path) -> None:
    with pytest.raises(SystemExit):
        main(['--project-dir', str(project), 'server', '--reload'])
