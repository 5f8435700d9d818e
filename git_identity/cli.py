from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from .app import GidApp
from .commands import audit_run as cmd_audit_run
from .commands import check as cmd_check
from .commands import current as cmd_current
from .commands import doctor as cmd_doctor
from .commands import events as cmd_events
from .commands import hook as cmd_hook
from .commands import identities as cmd_identities
from .commands import rule as cmd_rule
from .commands import switch as cmd_switch
from .commands import transfer as cmd_transfer
from .config import find_config
from .errors import EXIT_BLOCKED, EXIT_FAILURE, EXIT_OK, GidError
from .repository import Scope

LOG_FORMAT = "%(levelname).1s | %(name)s | %(message)s"

C_RESET = "\033[0m"
LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",  # Cyan
    logging.INFO: "\033[37m",  # Light gray
    logging.WARNING: "\033[33m",  # Yellow
    logging.ERROR: "\033[31m",  # Red
    logging.CRITICAL: "\033[35m",  # Magenta
}


class HomePathFormatter(logging.Formatter):
    """Shows paths under the home directory as ``~/...``."""

    def __init__(self, fmt: str, home: Optional[Path] = None) -> None:
        super().__init__(fmt)
        self.home = str(home if home is not None else Path.home())

    def _shorten(self, message: str) -> str:
        if not self.home or self.home == "/":
            return message
        return message.replace(f"{self.home}/", "~/")

    def format(self, record: logging.LogRecord) -> str:
        return self._shorten(super().format(record))


class ColorFormatter(HomePathFormatter):
    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        if not color:
            return message
        return f"{color}{message}{C_RESET}"


class WarningBufferHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__(level=logging.WARNING)
        self.records: list[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
        except Exception:  # pragma: no cover
            msg = record.getMessage()
        self.records.append(msg)


def configure_logging(
    level: int,
    *,
    color: bool,
    warn_buffer: Optional[WarningBufferHandler] = None,
) -> WarningBufferHandler:
    """(Re)install the stderr handler. A passed ``warn_buffer`` keeps what it already collected."""
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)

    stream_handler = logging.StreamHandler(sys.stderr)
    use_color = color and sys.stderr.isatty()
    stream_handler.setFormatter(ColorFormatter(LOG_FORMAT) if use_color else HomePathFormatter(LOG_FORMAT))
    root_logger.addHandler(stream_handler)

    if warn_buffer is None:
        warn_buffer = WarningBufferHandler()
        warn_buffer.setFormatter(HomePathFormatter(LOG_FORMAT))
    root_logger.addHandler(warn_buffer)

    logging.getLogger("git").setLevel(logging.WARNING)
    return warn_buffer


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gid", description="Git identity manager")
    parser.add_argument("--config", type=Path, help="Path to config.yaml")
    parser.add_argument("--log-level", default=None, help="Python logging level")
    parser.add_argument("--no-color", action="store_true", help="Disable coloured output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="List configured identities")
    list_parser.add_argument("-v", "--verbose", action="store_true", help="Show keys and descriptions")

    current_parser = subparsers.add_parser("current", help="Show configured and resolved identity")
    current_parser.add_argument("--path", type=Path, default=None)

    add_parser = subparsers.add_parser("add", help="Add an identity")
    add_parser.add_argument("--id", dest="identity_id", required=True)
    add_parser.add_argument("--name", required=True)
    add_parser.add_argument("--email", required=True)
    add_parser.add_argument("--description", default=None)
    add_parser.add_argument("--ssh-key", type=Path, default=None)
    add_parser.add_argument("--gpg-key", default=None)
    add_parser.add_argument("--gpg-sign", action="store_true")

    edit_parser = subparsers.add_parser("edit", help="Edit an identity (the id cannot change)")
    edit_parser.add_argument("identity_id")
    edit_parser.add_argument("--name", default=None)
    edit_parser.add_argument("--email", default=None)
    edit_parser.add_argument("--description", default=None)
    edit_parser.add_argument("--ssh-key", type=Path, default=None)
    edit_parser.add_argument("--gpg-key", default=None)
    edit_parser.add_argument(
        "--gpg-sign",
        default=None,
        action=argparse.BooleanOptionalAction,
        help="Sign commits with the GPG key",
    )

    remove_parser = subparsers.add_parser("remove", help="Remove an identity")
    remove_parser.add_argument("identity_id")
    remove_parser.add_argument(
        "--cascade",
        action="store_true",
        help="Also remove rules and the default setting that reference it",
    )

    switch_parser = subparsers.add_parser("switch", help="Apply an identity to git config")
    switch_parser.add_argument("identity_id", nargs="?", default=None)
    switch_parser.add_argument("--global", dest="global_scope", action="store_true")

    auto_parser = subparsers.add_parser("auto", help="Apply the resolved identity to this repository")
    auto_parser.add_argument(
        "--if-enabled",
        action="store_true",
        help="Do nothing unless settings.auto_switch is on (for shell prompts)",
    )

    pin_parser = subparsers.add_parser("pin", help="Pin an identity with a .gid marker")
    pin_parser.add_argument("identity_id")
    subparsers.add_parser("unpin", help="Remove the .gid marker")

    rule_parser = subparsers.add_parser("rule", help="Manage matching rules")
    rule_sub = rule_parser.add_subparsers(dest="rule_command", required=True)
    rule_add = rule_sub.add_parser("add", help="Add a rule")
    rule_add.add_argument("kind", choices=["path", "remote"])
    rule_add.add_argument("pattern")
    rule_add.add_argument("identity_id")
    rule_add.add_argument("--priority", type=int, default=100)
    rule_add.add_argument("--description", default=None)
    rule_add.add_argument("--disabled", action="store_true")
    rule_sub.add_parser("list", help="List rules in evaluation order")
    rule_remove = rule_sub.add_parser("remove", help="Remove a rule by index")
    rule_remove.add_argument("index", type=int)
    rule_test = rule_sub.add_parser("test", help="Show rules matching a path or remote")
    rule_test.add_argument("--path", type=Path, default=None)
    rule_test.add_argument("--remote", default=None)

    default_parser = subparsers.add_parser("default", help="Show or set the default identity")
    default_parser.add_argument("identity_id", nargs="?", default=None)
    default_parser.add_argument("--clear", action="store_true")

    check_parser = subparsers.add_parser("check", help="Verify the commit identity")
    check_parser.add_argument("--hook", action="store_true", help="Quiet output for the pre-commit hook")
    check_parser.add_argument("--skip", action="store_true", help="Bypass a mismatch")

    hook_parser = subparsers.add_parser("hook", help="Manage the pre-commit hook")
    hook_sub = hook_parser.add_subparsers(dest="hook_command", required=True)
    hook_install = hook_sub.add_parser("install")
    hook_install.add_argument("--global", dest="global_scope", action="store_true")
    hook_install.add_argument("--force", action="store_true", help="Replace a foreign hook")
    hook_uninstall = hook_sub.add_parser("uninstall")
    hook_uninstall.add_argument("--global", dest="global_scope", action="store_true")
    hook_sub.add_parser("status")

    audit_parser = subparsers.add_parser("audit", help="Classify commit authors")
    audit_parser.add_argument("--path", type=Path, default=None)
    audit_parser.add_argument("--limit", type=positive_int, default=None, help="Newest N commits only")
    audit_parser.add_argument("--json", action="store_true", help="Emit JSON Lines")
    audit_parser.add_argument(
        "--recursive",
        action="store_true",
        help="Audit every repository found below --path",
    )
    audit_parser.add_argument("--all", dest="show_all", action="store_true", help="Also list matched commits")

    doctor_parser = subparsers.add_parser("doctor", help="Check configuration and repository")
    doctor_parser.add_argument("--fix", action="store_true", help="Apply the resolved identity")

    export_parser = subparsers.add_parser("export", help="Write the configuration to a file")
    export_parser.add_argument("file", type=Path)
    import_parser = subparsers.add_parser("import", help="Merge or replace the configuration")
    import_parser.add_argument("file", type=Path)
    import_parser.add_argument("--replace", action="store_true")

    events_parser = subparsers.add_parser("events", help="Show recorded events")
    events_parser.add_argument("--limit", type=positive_int, default=50, help="Number of events to show (max 1000)")
    events_parser.add_argument("--event", default=None, help="Filter by event type (e.g. hook_blocked)")
    events_parser.add_argument("--since", type=int, default=None, help="Only events after this id")
    events_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")
    return parser


def dispatch(app: GidApp, args: argparse.Namespace) -> int:
    match args.command:
        case "list":
            cmd_identities.list_identities(app, verbose=args.verbose)
        case "current":
            cmd_current.run(app, args.path)
        case "add":
            cmd_identities.add(
                app,
                identity_id=args.identity_id,
                name=args.name,
                email=args.email,
                description=args.description,
                ssh_key=args.ssh_key,
                gpg_key=args.gpg_key,
                gpg_sign=args.gpg_sign,
            )
        case "edit":
            cmd_identities.edit(
                app,
                args.identity_id,
                name=args.name,
                email=args.email,
                description=args.description,
                ssh_key_path=args.ssh_key,
                gpg_key_id=args.gpg_key,
                gpg_sign=args.gpg_sign,
            )
        case "remove":
            cmd_identities.remove(app, args.identity_id, cascade=args.cascade)
        case "switch":
            scope = Scope.GLOBAL if args.global_scope else Scope.LOCAL
            cmd_switch.switch(app, args.identity_id, scope=scope)
        case "auto":
            cmd_switch.auto(app, if_enabled=args.if_enabled)
        case "pin":
            cmd_switch.pin(app, args.identity_id)
        case "unpin":
            cmd_switch.unpin(app)
        case "rule":
            match args.rule_command:
                case "add":
                    cmd_rule.add(
                        app,
                        kind=args.kind,
                        pattern=args.pattern,
                        identity_id=args.identity_id,
                        priority=args.priority,
                        description=args.description,
                        enabled=not args.disabled,
                    )
                case "list":
                    cmd_rule.list_rules(app)
                case "remove":
                    cmd_rule.remove(app, args.index)
                case "test":
                    cmd_rule.test(app, path=args.path, remote=args.remote)
        case "default":
            cmd_identities.set_default(app, args.identity_id, clear=args.clear)
        case "check":
            decision = cmd_check.run(app, hook=args.hook, skip=args.skip)
            return EXIT_OK if decision.allowed else EXIT_BLOCKED
        case "hook":
            match args.hook_command:
                case "install":
                    cmd_hook.install(app, global_scope=args.global_scope, force=args.force)
                case "uninstall":
                    cmd_hook.uninstall(app, global_scope=args.global_scope)
                case "status":
                    cmd_hook.status(app)
        case "audit":
            return cmd_audit_run.run(
                app,
                path=args.path,
                limit=args.limit,
                json_output=args.json,
                recursive=args.recursive,
                show_all=args.show_all,
            )
        case "doctor":
            report = cmd_doctor.run(app, fix=args.fix)
            for line in report.checks:
                print(line)
            if not report.ok:
                return EXIT_FAILURE
        case "export":
            cmd_transfer.export_config(app, args.file)
        case "import":
            cmd_transfer.import_config(app, args.file, replace=args.replace)
        case "events":
            cmd_events.run(
                app.journal,
                limit=args.limit,
                event=args.event,
                since=args.since,
                json_output=args.json,
            )
        case _:
            raise GidError(f"Unknown command {args.command}")
    return EXIT_OK


def run(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    explicit_level = getattr(logging, args.log_level.upper(), None) if args.log_level else None
    warn_buffer = configure_logging(explicit_level or logging.INFO, color=not args.no_color)
    logger = logging.getLogger("git_identity")

    app: GidApp | None = None
    try:
        app = GidApp.create(find_config(args.config))
        settings = app.settings
        level = explicit_level or (logging.INFO if settings.verbose else logging.WARNING)
        configure_logging(level, color=settings.color and not args.no_color, warn_buffer=warn_buffer)
        return dispatch(app, args)
    except GidError as exc:
        logger.error("%s", exc)
        return exc.exit_code
    finally:
        if app:
            app.close()
        if len(warn_buffer.records) > 1:
            print("\nWarnings/Errors summary:", file=sys.stderr)
            for line in warn_buffer.records:
                print(f" - {line}", file=sys.stderr)


def main() -> None:
    raise SystemExit(run())


if __name__ == "__main__":
    main()
