import io
from argparse import Namespace

import pytest
from rich.console import Console

from gcptool.cache import CacheStore
from gcptool.core import ToolConfig
from gcptool.errors import ConfirmationRequired, InvalidSelection, WrongRole
from gcptool.main import main
from gcptool.modes import commands
from gcptool.modes.commands import Context
from gcptool.schemas.compute import InstanceRecord
from gcptool.schemas.operations import PlannedAction

PROJ_A_ROWS = [
    "author-1,us-central1-a,RUNNING,34.1.1.1,10.0.0.1,e2-small",
    "web-1,us-central1-a,RUNNING,34.1.1.9,10.0.0.9,e2-small",
]
PROJ_B_ROWS = [
    "author-2,europe-west1-b,RUNNING,35.2.2.2,10.1.0.2,n2-standard-4",
    "prod-dispatcher-1,europe-west1-b,RUNNING,35.2.2.3,10.1.0.3,e2-small",
]


@pytest.fixture
def cache_dir(tmp_path, monkeypatch):
    path = tmp_path / "cache"
    store = CacheStore(path)
    store.put("projects", ["proj-a,ACTIVE,", "proj-b,ACTIVE,"])
    store.put("instances_proj-a", PROJ_A_ROWS)
    store.put("instances_proj-b", PROJ_B_ROWS)
    monkeypatch.setenv("GCPTOOL_CACHE_DIR", str(path))
    monkeypatch.setenv("GCPTOOL_SETTLE_DELAY", "0")
    return path


@pytest.fixture
def ctx(cache_dir):
    return Context(
        config=ToolConfig(cache_dir=cache_dir, settle_delay=0),
        log_console=Console(file=io.StringIO(), width=200),
        out_console=Console(file=io.StringIO(), width=200),
        interactive=True,
    )


def out(ctx):
    return ctx.out_console.file.getvalue()


def log(ctx):
    return ctx.log_console.file.getvalue()


def test_choose_prompts_between_candidates(mocker, ctx):
    mock_prompt = mocker.patch("rich.prompt.Prompt.ask", return_value="2")

    commands.cmd_ip(ctx, Namespace(target="author", rest=[]))

    mock_prompt.assert_called_once()
    assert "author-1" in log(ctx)
    assert "35.2.2.2" in out(ctx)


def test_choose_out_of_range(mocker, ctx):
    mocker.patch("rich.prompt.Prompt.ask", return_value="7")

    with pytest.raises(InvalidSelection):
        commands.cmd_ip(ctx, Namespace(target="author", rest=[]))


def test_choose_with_closed_stdin(mocker, ctx):
    mocker.patch("rich.prompt.Prompt.ask", side_effect=EOFError)

    with pytest.raises(InvalidSelection):
        commands.cmd_ip(ctx, Namespace(target="author", rest=[]))


def test_non_interactive_takes_first_candidate(mocker, ctx):
    mock_prompt = mocker.patch("rich.prompt.Prompt.ask")
    ctx.interactive = False

    commands.cmd_ip(ctx, Namespace(target="author", rest=[]))

    mock_prompt.assert_not_called()
    assert "34.1.1.1" in out(ctx)


def test_ip_argument_forms(ctx):
    commands.cmd_ip(ctx, Namespace(target="proj-a", rest=["web-1", "internal"]))
    commands.cmd_ip(ctx, Namespace(target="web-1", rest=["internal"]))
    commands.cmd_ip(ctx, Namespace(target="proj-b", rest=["author-2"]))

    assert out(ctx).split() == ["10.0.0.9", "10.0.0.9", "35.2.2.2"]


def test_url_argument_forms(mocker, ctx):
    mock_open = mocker.patch("gcptool.modes.remote.open_url", return_value=True)

    commands.cmd_url(ctx, Namespace(target="web-1", rest=["/crx/de"]))
    commands.cmd_url(ctx, Namespace(target="proj-b", rest=["author-2"]))

    assert [c.args[0] for c in mock_open.call_args_list] == [
        "https://34.1.1.9/crx/de",
        "https://35.2.2.2/",
    ]


def test_aem_paths(mocker, ctx):
    mock_open = mocker.patch("gcptool.modes.remote.open_url", return_value=True)

    commands.cmd_aem(ctx, Namespace(target="author-2", command="crx"))

    mock_open.assert_called_once_with("https://35.2.2.2/crx/de")


def test_aem_rejects_dispatcher(mocker, ctx):
    mock_open = mocker.patch("gcptool.modes.remote.open_url")

    with pytest.raises(WrongRole):
        commands.cmd_aem(ctx, Namespace(target="prod-dispatcher-1", command="aem"))

    mock_open.assert_not_called()


def test_aem_dispatcher_exit_code(cache_dir, capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["aem", "prod-dispatcher-1"])

    assert excinfo.value.code == 1
    assert "dispatcher" in capsys.readouterr().err


def test_confirm_batch_lists_stop_targets(mocker, ctx):
    mocker.patch("rich.prompt.Confirm.ask", return_value=True)
    plan = [
        PlannedAction(instance="web-1", zone="us-central1-a", external_ip="34.1.1.9"),
        PlannedAction(instance="ghost"),
    ]

    assert ctx.confirm_batch("stop", "proj-a", plan) is True

    text = out(ctx)
    assert "web-1" in text
    assert "34.1.1.9" in text
    assert "zone unknown" in text
    assert "WARNING" in text


def test_confirm_batch_closed_stdin_declines(mocker, ctx):
    mocker.patch("rich.prompt.Confirm.ask", side_effect=EOFError)

    assert ctx.confirm_batch("start", "proj-a", []) is False


def test_confirm_batch_without_terminal(mocker, ctx):
    mock_confirm = mocker.patch("rich.prompt.Confirm.ask")
    ctx.interactive = False

    with pytest.raises(ConfirmationRequired):
        ctx.confirm_batch("stop", "proj-a", [])

    mock_confirm.assert_not_called()


def test_stop_reports_each_failure(mocker, ctx):
    mocker.patch("gcptool.walkers.compute.stop_instance", return_value="op")
    mocker.patch(
        "gcptool.walkers.compute.list_instances",
        return_value=[InstanceRecord.from_row("proj-a", r) for r in PROJ_A_ROWS],
    )

    result = commands.cmd_stop(
        ctx, Namespace(project="proj-a", instances=["web-1", "ghost"], force=True)
    )

    assert result is None
    assert "stop sent to web-1" in out(ctx)
    assert "ghost" in log(ctx)


def test_start_reports_addresses(mocker, ctx):
    mocker.patch("gcptool.walkers.compute.start_instance", return_value="op")
    mocker.patch(
        "gcptool.walkers.compute.describe_instance",
        return_value=InstanceRecord(
            project_id="proj-a",
            name="web-1",
            zone="us-central1-a",
            status="RUNNING",
            external_ip="34.9.9.9",
        ),
    )

    commands.cmd_start(
        ctx, Namespace(project="proj-a", instances=["web-1"], force=True)
    )

    assert "34.9.9.9" in out(ctx)


def test_partial_stop_batch_exits_zero(mocker, cache_dir):
    mock_stop = mocker.patch("gcptool.walkers.compute.stop_instance", return_value="op")
    mocker.patch(
        "gcptool.walkers.compute.list_instances",
        return_value=[InstanceRecord.from_row("proj-a", r) for r in PROJ_A_ROWS],
    )

    main(["stop", "proj-a", "web-1", "ghost", "--force"])

    mock_stop.assert_called_once_with("proj-a", "us-central1-a", "web-1")
