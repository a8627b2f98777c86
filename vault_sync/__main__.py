"""Entry point for Vault Sync.

Usage:
    python -m vault_sync [--config PATH] <command> [args]

Commands:
    run                         Run the scheduler in the foreground (default)
    sync [TASK_ID]              Sync all enabled tasks, or one task
    test-exclude PATH [TASK_ID] Report whether PATH would be excluded
    list                        List configured tasks
    add NAME SOURCE TARGET      Add a task
    remove TASK_ID              Remove a task
    enable TASK_ID              Enable a task
    disable TASK_ID             Disable a task
    export                      Print the settings as JSON
    import FILE                 Replace the settings with FILE's JSON
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from vault_sync.config import Config, SettingsImportError
from vault_sync.exclusion import is_excluded, resolve_test_path
from vault_sync.runner import run_configured

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def _cmd_run(cfg: Config, args: list[str]) -> int:
    from vault_sync.service import run_foreground

    run_foreground(cfg)
    return EXIT_OK


def _cmd_sync(cfg: Config, args: list[str]) -> int:
    task_id = args[0] if args else None
    try:
        summary = run_configured(cfg.snapshot(), task_id)
    except RuntimeError as exc:
        print(f"ERROR: {exc}")
        return EXIT_FAILED
    except KeyError:
        print(f"ERROR: no task with id {task_id}")
        return EXIT_FAILED

    print(summary.message)
    if summary.failure_messages:
        print(summary.failure_report())
        return EXIT_FAILED
    return EXIT_OK


def _cmd_test_exclude(cfg: Config, args: list[str]) -> int:
    if not args or not args[0].strip():
        print("Enter a path to test.")
        return EXIT_USAGE
    task = cfg.get_task(args[1]) if len(args) > 1 else None
    rel = resolve_test_path(args[0], task)
    if is_excluded(rel, cfg.exclude_patterns):
        print(f"{rel}: excluded")
    else:
        print(f"{rel}: not excluded")
    return EXIT_OK


def _cmd_list(cfg: Config, args: list[str]) -> int:
    tasks = cfg.tasks
    if not tasks:
        print("No tasks configured.")
    for task in tasks:
        flag = "on " if task.enabled else "off"
        print(f"[{flag}] {task.id}  {task.label}: {task.source_path} -> {task.target_path}")
    return EXIT_OK


def _cmd_add(cfg: Config, args: list[str]) -> int:
    if len(args) != 3:
        print("Usage: add NAME SOURCE TARGET")
        return EXIT_USAGE
    task = cfg.add_task(*args)
    cfg.save()
    print(f"Added task {task.id}")
    return EXIT_OK


def _task_change(action: str):
    def _cmd(cfg: Config, args: list[str]) -> int:
        if len(args) != 1:
            print(f"Usage: {action} TASK_ID")
            return EXIT_USAGE
        if action == "remove":
            found = cfg.remove_task(args[0])
        else:
            found = cfg.set_task_enabled(args[0], action == "enable")
        if not found:
            print(f"ERROR: no task with id {args[0]}")
            return EXIT_FAILED
        cfg.save()
        return EXIT_OK

    return _cmd


def _cmd_export(cfg: Config, args: list[str]) -> int:
    print(cfg.export_json())
    return EXIT_OK


def _cmd_import(cfg: Config, args: list[str]) -> int:
    if len(args) != 1:
        print("Usage: import FILE")
        return EXIT_USAGE
    try:
        text = Path(args[0]).read_text(encoding="utf-8")
        cfg.import_json(text)
    except (OSError, SettingsImportError) as exc:
        print(f"Import failed: {exc}")
        return EXIT_FAILED
    print("Settings imported.")
    return EXIT_OK


COMMANDS = {
    "run": _cmd_run,
    "sync": _cmd_sync,
    "test-exclude": _cmd_test_exclude,
    "list": _cmd_list,
    "add": _cmd_add,
    "remove": _task_change("remove"),
    "enable": _task_change("enable"),
    "disable": _task_change("disable"),
    "export": _cmd_export,
    "import": _cmd_import,
}


def main(argv: list[str] | None = None) -> int:
    """Parse *argv* (default ``sys.argv[1:]``) and dispatch the command."""
    args = list(sys.argv[1:] if argv is None else argv)
    config_path = None
    if args[:1] == ["--config"]:
        if len(args) < 2:
            print(__doc__)
            return EXIT_USAGE
        config_path = Path(args[1])
        args = args[2:]

    cmd = args[0] if args else "run"
    if cmd not in COMMANDS:
        print(__doc__)
        return EXIT_USAGE

    if cmd != "run":
        logging.basicConfig(
            level=logging.WARNING,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
    return COMMANDS[cmd](Config(config_path), args[1:])


if __name__ == "__main__":
    sys.exit(main())
