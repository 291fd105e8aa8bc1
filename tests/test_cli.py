"""Tests for the prac command line."""

import os

import pytest

from prac import cli, db
from prac.formatting import NANOS_PER_DAY, NANOS_PER_HOUR, NANOS_PER_MINUTE, NANOS_PER_SECOND


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "prac.db"


def run(db_path, *args):
    cli.main(["--db", str(db_path), *args])


def test_add_then_list(db_path, capsys, monkeypatch):
    monkeypatch.setattr(cli.shutil, "get_terminal_size", lambda: os.terminal_size((60, 20)))
    run(db_path, "add", "piano", "1d 12h")
    run(db_path, "list", "-p")
    out = capsys.readouterr().out
    assert "Added piano, every 1d 12h" in out
    assert "piano" in out
    assert "1d 12h" in out


def test_list_without_practices(db_path, capsys):
    run(db_path, "list")
    assert "You don't have any practices yet" in capsys.readouterr().out


def test_invalid_span_is_rejected_by_argparse(db_path, capsys):
    with pytest.raises(SystemExit) as info:
        run(db_path, "add", "piano", "watermelon")
    assert info.value.code == 2
    assert "watermelon" in capsys.readouterr().err


def test_partial_span_error_shows_nested_diagnostic(db_path, capsys):
    with pytest.raises(SystemExit):
        run(db_path, "add", "piano", "2hx 30min")
    err = capsys.readouterr().err
    assert "'2h'" in err
    assert "expected a quantity" in err


def test_log_by_name(db_path, capsys):
    run(db_path, "add", "piano", "1d")
    run(db_path, "log", "piano", "45m")
    run(db_path, "log", "piano", "30m")
    (row,) = db.list_practices(db_path)
    assert row["cumulative"] == 75 * NANOS_PER_MINUTE
    assert "(1h 15m total)" in capsys.readouterr().out


def test_log_without_name_prompts(db_path, monkeypatch):
    run(db_path, "add", "guitar", "2d")
    run(db_path, "add", "piano", "1d")
    monkeypatch.setattr("builtins.input", lambda _prompt: "2")
    run(db_path, "log", "20m")
    rows = {r["name"]: r for r in db.list_practices(db_path)}
    assert rows["piano"]["cumulative"] == 20 * NANOS_PER_MINUTE
    assert rows["guitar"]["cumulative"] == 0


def test_select_practice_by_fragment(db_path, monkeypatch):
    db.add_practice(db_path, "guitar", NANOS_PER_DAY)
    db.add_practice(db_path, "piano", NANOS_PER_DAY)
    answers = iter(["zzz", "i", "pia"])
    monkeypatch.setattr("builtins.input", lambda _prompt: next(answers))
    assert cli.select_practice(db_path) == "piano"


def test_select_practice_blank_cancels(db_path, monkeypatch):
    db.add_practice(db_path, "piano", NANOS_PER_DAY)
    monkeypatch.setattr("builtins.input", lambda _prompt: "")
    with pytest.raises(SystemExit, match="No item selected"):
        cli.select_practice(db_path)


def test_state_errors_exit_with_message(db_path):
    run(db_path, "add", "piano", "1d")
    with pytest.raises(SystemExit, match="already exists"):
        run(db_path, "add", "piano", "2d")
    with pytest.raises(SystemExit, match="not found"):
        run(db_path, "remove", "drums")


def test_edit_period_alias(db_path):
    run(db_path, "add", "piano", "1d")
    run(db_path, "ep", "piano", "1w")
    (row,) = db.list_practices(db_path)
    assert row["period"] == 7 * NANOS_PER_DAY


def test_rename_prompts_for_new_name(db_path, monkeypatch):
    run(db_path, "add", "piano", "1d")
    monkeypatch.setattr("builtins.input", lambda _prompt: "keys")
    run(db_path, "rename", "piano")
    assert db.practice_names(db_path) == ["keys"]


def test_notes_uses_editor(db_path, monkeypatch):
    run(db_path, "add", "piano", "1d")
    monkeypatch.setattr(cli, "long_edit", lambda initial="": initial + "scales\n")
    run(db_path, "notes", "piano")
    assert db.get_notes(db_path, "piano") == "scales\n"


def test_long_edit_returns_saved_file(monkeypatch):
    monkeypatch.setenv("EDITOR", "true")
    assert cli.long_edit("unchanged") == "unchanged"


def test_long_edit_requires_editor(monkeypatch):
    monkeypatch.delenv("EDITOR", raising=False)
    monkeypatch.delenv("VISUAL", raising=False)
    with pytest.raises(SystemExit, match="EDITOR"):
        cli.long_edit()


def test_config_grace_period(db_path, capsys):
    run(db_path, "config", "--grace-period", "2h")
    assert db.get_config(db_path)["grace_period"] == 2 * NANOS_PER_HOUR
    assert "Grace period: 2h" in capsys.readouterr().out


def test_state_location_honours_env(tmp_path, monkeypatch, capsys):
    target = tmp_path / "elsewhere.db"
    monkeypatch.setenv("PRAC_DB", str(target))
    cli.main(["state-location"])
    assert capsys.readouterr().out.strip() == str(target)


def test_default_db_path_uses_xdg(tmp_path, monkeypatch):
    monkeypatch.delenv("PRAC_DB", raising=False)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))
    assert cli.default_db_path() == tmp_path / "prac" / "prac.db"


def _practice(name, period, elapsed, cumulative=0):
    return {"name": name, "period": period, "elapsed": elapsed, "cumulative": cumulative}


def test_render_list_bar_width_and_fill():
    lines = cli.render_list([_practice("a", 10 * NANOS_PER_SECOND, 5 * NANOS_PER_SECOND)], 0, 40)
    assert lines == ["  a " + "▬" * 17 + " " * 17 + "  "]


def test_render_list_aligns_names_and_applies_grace():
    practices = [
        _practice("a", 3 * NANOS_PER_HOUR, 4 * NANOS_PER_HOUR),
        _practice("long", NANOS_PER_HOUR, 0),
    ]
    lines = cli.render_list(practices, NANOS_PER_HOUR, 28)
    assert all(len(line) == 28 for line in lines)
    assert lines[0].startswith("     a ")
    # 4h elapsed of 3h + 1h grace is a full bar
    assert lines[0] == "     a " + "▬" * 19 + "  "


def test_render_list_both_columns_abbreviated():
    practices = [_practice("a", 8 * NANOS_PER_DAY, 0, cumulative=90 * NANOS_PER_MINUTE)]
    lines = cli.render_list(practices, 0, 40, cumulative=True, period=True)
    assert lines[0].endswith(" 1h c / 1w p  ")


def test_render_list_danger_bar():
    practices = [
        _practice("a", 2 * NANOS_PER_HOUR, 2 * NANOS_PER_HOUR),
        _practice("b", 2 * NANOS_PER_HOUR, 0),
    ]
    lines = cli.render_list(practices, 0, 30, danger=True)
    assert len(lines) == 3
    assert "danger" in lines[2]
    assert "▬" * 11 in lines[2]


def test_render_list_too_narrow():
    with pytest.raises(SystemExit, match="too small"):
        cli.render_list([_practice("piano", NANOS_PER_HOUR, 0)], 0, 3)


def test_read_only_commands_do_not_create_state(tmp_path, capsys):
    target = tmp_path / "missing" / "prac.db"
    cli.main(["--db", str(target), "state-location"])
    cli.main(["--db", str(target), "list"])
    assert "You don't have any practices yet" in capsys.readouterr().out
    assert not target.parent.exists()
