import argparse
import os
import shlex
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional

from . import db
from . import formatting
from colorama import Fore, Style, init as colorama_init

DB_ENV_VAR = "PRAC_DB"


def default_db_path() -> Path:
    """$PRAC_DB, then $XDG_DATA_HOME/prac/prac.db, then ~/.local/share/prac/prac.db."""
    raw = os.environ.get(DB_ENV_VAR)
    if raw:
        return Path(raw).expanduser()
    data_home = os.environ.get("XDG_DATA_HOME")
    base = Path(data_home).expanduser() if data_home else Path.home() / ".local" / "share"
    return base / "prac" / "prac.db"


def span_arg(text: str) -> int:
    """argparse type for time spans such as '1d 2h'."""
    try:
        return formatting.parse_time_span(text)
    except formatting.TimeSpanError as e:
        raise argparse.ArgumentTypeError(formatting.describe_span_error(e))


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="prac",
        description="Track practices you want to repeat every so often.",
    )
    p.add_argument("--db", help=f"SQLite state file (default ${DB_ENV_VAR} or the user data dir)")
    p.add_argument("--version", action="version", version=f"%(prog)s {db.VERSION}")

    sub = p.add_subparsers(dest="cmd", required=True)

    p_list = sub.add_parser("list", help="List practices with bars showing time elapsed through their period")
    p_list.add_argument("-c", "--cumulative", action="store_true", help="Show cumulative time tracked")
    p_list.add_argument("-p", "--period", action="store_true", help="Show the period of each practice")
    p_list.add_argument("-d", "--danger", action="store_true", help="Add a bar summing all practices")

    p_add = sub.add_parser("add", help="Add a new practice")
    p_add.add_argument("name", help="A unique name for the practice")
    p_add.add_argument("period", type=span_arg, help="Time between sessions, e.g. '3d' or '1w 2d'")
    p_add.add_argument("-n", "--notes", action="store_true", help="Edit notes right away")

    p_log = sub.add_parser("log", help="Log a session: resets the bar and adds to cumulative time")
    p_log.add_argument("name", nargs="?", help="Practice name; leave out to pick from a list")
    p_log.add_argument("time", type=span_arg, help="How long you practiced, e.g. '45m'")
    p_log.add_argument("-n", "--notes", action="store_true", help="Edit notes when done")

    p_notes = sub.add_parser("notes", help="Edit practice notes in $EDITOR")
    p_notes.add_argument("name", nargs="?", help="Practice name; leave out to pick from a list")

    sub.add_parser("reset", help="Reset all progress bars, as if every practice was logged now")

    sub.add_parser("state-location", help="Show the state file location")

    p_period = sub.add_parser("edit-period", aliases=["ep"], help="Change the period of a practice")
    p_period.add_argument("name")
    p_period.add_argument("period", type=span_arg, help="New time between sessions")

    p_remove = sub.add_parser("remove", help="Remove a practice")
    p_remove.add_argument("name", nargs="?", help="Practice name; leave out to pick from a list")

    p_rename = sub.add_parser("rename", help="Rename a practice")
    p_rename.add_argument("current_name", nargs="?", help="Current name; leave out to pick from a list")
    p_rename.add_argument("new_name", nargs="?", help="New name; prompted for when left out")

    p_config = sub.add_parser(
        "config",
        help="Show or edit configuration",
        description="Grace period pads the end of the bars of `prac list` with some extra time, "
        "which keeps practices from creeping earlier on each iteration.",
    )
    p_config.add_argument("--grace-period", type=span_arg, help="Extra time added to every period in `prac list`")

    return p.parse_args(argv)


def select_practice(db_path: Path, prompt: str = "Select practice") -> str:
    """Pick a practice by number or by a case-insensitive name fragment."""
    names = db.practice_names(db_path)
    if not names:
        raise SystemExit("You don't have any practices yet. Add some with `prac add`.")
    print(Fore.CYAN + Style.BRIGHT + f"== {prompt} ==")
    for i, name in enumerate(names, start=1):
        print(f"{Fore.YELLOW}{i}){Style.RESET_ALL} {name}")
    while True:
        choice = input("Choose: ").strip()
        if not choice:
            raise SystemExit("No item selected")
        if choice.isdigit() and 1 <= int(choice) <= len(names):
            return names[int(choice) - 1]
        if choice in names:
            return choice
        matches = [n for n in names if choice.lower() in n.lower()]
        if len(matches) == 1:
            return matches[0]
        if matches:
            print(Fore.YELLOW + f"Ambiguous, matches: {', '.join(matches)}")
        else:
            print(Fore.RED + "No match")


def long_edit(initial: str = "") -> str:
    """Open $EDITOR on a temporary file and return what was saved."""
    editor = os.environ.get("EDITOR") or os.environ.get("VISUAL")
    if not editor:
        raise SystemExit("EDITOR environment variable not set")
    fd, tmp = tempfile.mkstemp(prefix="prac-", suffix=".md")
    path = Path(tmp)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(initial)
        res = subprocess.run([*shlex.split(editor), str(path)])
        if res.returncode != 0:
            raise SystemExit(f"Editor exited with status {res.returncode}")
        return path.read_text(encoding="utf-8")
    finally:
        path.unlink(missing_ok=True)


def _fraction(elapsed: int, period: int) -> float:
    if period <= 0:
        return 1.0
    return elapsed / period


def _describe(practice: dict, cumulative: bool, period: bool) -> str:
    c = formatting.FlatTime.from_duration(practice["cumulative"])
    p = formatting.FlatTime.from_duration(practice["period"])
    if cumulative and period:
        return f" {c.format_abbreviated()} c / {p.format_abbreviated()} p  "
    if cumulative:
        return f" {c.format()}  "
    if period:
        return f" {p.format()}  "
    return "  "


def render_list(practices: List[dict], grace_period: int, width: int,
                cumulative: bool = False, period: bool = False, danger: bool = False) -> List[str]:
    """Lay out one line per practice: right-aligned name, bar, details column."""
    starts = [f"  {p['name']} " for p in practices]
    ends = [_describe(p, cumulative, period) for p in practices]
    start_w = max(len(s) for s in starts)
    end_w = max(len(e) for e in ends)
    bar_w = width - start_w - end_w
    if bar_w < 0:
        raise SystemExit(f"term width {width} too small, must be at least {start_w + end_w}")

    lines = []
    for p, start, end in zip(practices, starts, ends):
        frac = _fraction(p["elapsed"], p["period"] + grace_period)
        lines.append(f"{start:>{start_w}}{formatting.bar(bar_w, frac)}{end:<{end_w}}")
    if danger:
        total_elapsed = sum(p["elapsed"] for p in practices)
        total_period = sum(p["period"] + grace_period for p in practices)
        start = "  danger "
        sum_bar = Fore.RED + formatting.bar(bar_w, _fraction(total_elapsed, total_period)) + Style.RESET_ALL
        lines.append(f"{start:>{start_w}}{sum_bar}{'':<{end_w}}")
    return lines


def cmd_list(db_path: Path, cumulative: bool, period: bool, danger: bool) -> None:
    practices = db.list_practices(db_path) if db_path.exists() else []
    if not practices:
        print("You don't have any practices yet. Add some with `prac add`.")
        return
    grace = db.get_config(db_path)["grace_period"]
    width = shutil.get_terminal_size().columns
    print("")
    for line in render_list(practices, grace, width, cumulative, period, danger):
        print(line)
    print("")


def cmd_notes(db_path: Path, name: Optional[str]) -> None:
    name = name or select_practice(db_path)
    notes = long_edit(db.get_notes(db_path, name))
    db.set_notes(db_path, name, notes)
    print(Fore.GREEN + f"Saved notes for {name}")


def cmd_add(db_path: Path, name: str, period: int, notes: bool) -> None:
    db.add_practice(db_path, name, period)
    print(Fore.GREEN + f"Added {name}, every {formatting.format_duration(period)}")
    if notes:
        cmd_notes(db_path, name)


def cmd_log(db_path: Path, name: Optional[str], spent: int, notes: bool) -> None:
    name = name or select_practice(db_path)
    total = db.log_practice(db_path, name, spent)
    print(Fore.GREEN + f"Logged {formatting.format_duration(spent)} of {name} "
          f"({formatting.format_duration(total)} total)")
    if notes:
        cmd_notes(db_path, name)


def cmd_reset(db_path: Path) -> None:
    n = db.reset_all(db_path)
    print(Fore.GREEN + f"Reset {n} practices")


def cmd_edit_period(db_path: Path, name: str, period: int) -> None:
    db.edit_period(db_path, name, period)
    print(Fore.GREEN + f"{name} is now every {formatting.format_duration(period)}")


def cmd_remove(db_path: Path, name: Optional[str]) -> None:
    name = name or select_practice(db_path, "Select practice to remove")
    db.remove_practice(db_path, name)
    print(Fore.GREEN + f"Removed {name}")


def cmd_rename(db_path: Path, current_name: Optional[str], new_name: Optional[str]) -> None:
    current_name = current_name or select_practice(db_path, "Select practice to rename")
    new_name = new_name or input(f"New name for {current_name}: ").strip()
    db.rename_practice(db_path, current_name, new_name)
    print(Fore.GREEN + f"Renamed {current_name} to {new_name}")


def cmd_config(db_path: Path, grace_period: Optional[int]) -> None:
    if grace_period is not None:
        db.set_grace_period(db_path, grace_period)
    cfg = db.get_config(db_path)
    print(Fore.CYAN + Style.BRIGHT + "== Config ==")
    print(f"Version: {cfg['version']}")
    print(f"Grace period: {formatting.format_duration(cfg['grace_period'])}")


def main(argv: Optional[list] = None) -> None:
    colorama_init(autoreset=True)
    ns = parse_args(argv)
    db_path = Path(ns.db).expanduser() if ns.db else default_db_path()
    if ns.cmd not in ("state-location", "list"):
        db.init_db(db_path)

    try:
        if ns.cmd == "list":
            cmd_list(db_path, ns.cumulative, ns.period, ns.danger)
        elif ns.cmd == "add":
            cmd_add(db_path, ns.name, ns.period, ns.notes)
        elif ns.cmd == "log":
            cmd_log(db_path, ns.name, ns.time, ns.notes)
        elif ns.cmd == "notes":
            cmd_notes(db_path, ns.name)
        elif ns.cmd == "reset":
            cmd_reset(db_path)
        elif ns.cmd == "state-location":
            print(db_path)
        elif ns.cmd in ("edit-period", "ep"):
            cmd_edit_period(db_path, ns.name, ns.period)
        elif ns.cmd == "remove":
            cmd_remove(db_path, ns.name)
        elif ns.cmd == "rename":
            cmd_rename(db_path, ns.current_name, ns.new_name)
        elif ns.cmd == "config":
            cmd_config(db_path, ns.grace_period)
        else:
            raise SystemExit("Unknown command")
    except db.StateError as e:
        raise SystemExit(str(e))
    except formatting.TimeSpanError as e:
        raise SystemExit(formatting.describe_span_error(e))


if __name__ == "__main__":
    main()
