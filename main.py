import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from config import Settings, get_settings, load_settings
from csv_utils import write_expenses_csv
from errors import ExpenseTraceError, NotFoundError
from filters import parse_expense_filters
from import_sessions import ImportSessionStore
from importer import ImportService
from logging_config import configure_logging
from matcher import MatcherCache
from services import CategoryService
from storage import Storage

EXPORT_FILTER_KEYS = (
    "description",
    "source",
    "amount_min",
    "amount_max",
    "date_from",
    "date_to",
    "sort",
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="expensetrace", description="Import, categorize and export expenses"
    )
    parser.add_argument("--config", help="Path to the YAML config file")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("migrate", help="Apply pending schema migrations")
    sub.add_parser("delete", help="Drop every table")

    import_cmd = sub.add_parser("import", help="Import a CSV or JSON statement")
    import_cmd.add_argument("file", type=Path)
    import_cmd.add_argument("--user", required=True)

    export_cmd = sub.add_parser("export", help="Export expenses as CSV")
    export_cmd.add_argument("file", help="Output path, or - for stdout")
    export_cmd.add_argument("--user", required=True)
    for key in EXPORT_FILTER_KEYS:
        export_cmd.add_argument(f"--{key.replace('_', '-')}", dest=key)

    category_cmd = sub.add_parser("category", help="Manage categories")
    category_sub = category_cmd.add_subparsers(dest="action", required=True)
    list_cmd = category_sub.add_parser("list")
    list_cmd.add_argument("--user", required=True)
    add_cmd = category_sub.add_parser("add")
    add_cmd.add_argument("name")
    add_cmd.add_argument("pattern")
    add_cmd.add_argument("--user", required=True)

    user_cmd = sub.add_parser("user", help="Manage users")
    user_sub = user_cmd.add_subparsers(dest="action", required=True)
    user_add = user_sub.add_parser("add")
    user_add.add_argument("username")
    user_add.add_argument("--password-hash", required=True)

    return parser


def _user_id(storage: Storage, username: str) -> int:
    try:
        return storage.get_user_by_username(username).id
    except NotFoundError:
        raise NotFoundError(f"user {username!r} not found") from None


def cmd_import(args: argparse.Namespace, storage: Storage, settings: Settings, log: logging.Logger) -> int:
    user_id = _user_id(storage, args.user)
    service = ImportService(
        storage,
        ImportSessionStore(ttl=settings.import_session_ttl),
        MatcherCache(storage),
        log=log,
        max_upload_bytes=settings.max_upload_bytes,
    )
    with args.file.open("rb") as fh:
        info = service.import_file(user_id, args.file.name, fh)
    if info.error:
        log.error(f"import_failed: file={args.file} error={info.error}")
        return 1
    for row_error in info.row_errors:
        log.warning(f"import_row_skipped: {row_error.message}")
    print(
        f"{info.total_imports} expenses imported. "
        f"{info.without_category} expenses without category"
    )
    return 0


def cmd_export(args: argparse.Namespace, storage: Storage, settings: Settings, log: logging.Logger) -> int:
    user_id = _user_id(storage, args.user)
    params = {key: getattr(args, key) for key in EXPORT_FILTER_KEYS if getattr(args, key)}
    expense_filter, sort = parse_expense_filters(params)
    expenses = storage.get_expenses_filtered(user_id, expense_filter, sort)
    categories = storage.get_categories(user_id)
    if args.file == "-":
        count = write_expenses_csv(sys.stdout, expenses, categories)
    else:
        with open(args.file, "w", newline="", encoding="utf-8") as fh:
            count = write_expenses_csv(fh, expenses, categories)
    log.info(f"export_completed: user_id={user_id} rows={count} file={args.file}")
    return 0


def cmd_category(args: argparse.Namespace, storage: Storage, settings: Settings, log: logging.Logger) -> int:
    user_id = _user_id(storage, args.user)
    service = CategoryService(storage, user_id, MatcherCache(storage), log=log)
    if args.action == "list":
        for category in service.list_all():
            print(f"{category.id}\t{category.name}\t{category.pattern}")
        return 0
    change = service.create(args.name, args.pattern)
    print(
        f"Category {change.category.name} was created successfully and "
        f"{change.updated_expenses} transactions were categorized!"
    )
    return 0


def cmd_user(args: argparse.Namespace, storage: Storage, settings: Settings, log: logging.Logger) -> int:
    user = storage.create_user(args.username, args.password_hash)
    print(f"user {user.username} created with id {user.id}")
    return 0


COMMANDS = {
    "import": cmd_import,
    "export": cmd_export,
    "category": cmd_category,
    "user": cmd_user,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(args.config) if args.config else get_settings()
    except (OSError, ValueError) as exc:
        print(f"Unable to parse the configuration. {exc}", file=sys.stderr)
        return 1

    log = configure_logging(settings.logger)
    log.info(f"Using database: path={settings.db.source}")
    storage = Storage.open(settings.db, log)
    try:
        if args.command == "delete":
            storage.drop_tables()
            print("All tables dropped")
            return 0
        storage.apply_migrations()
        if args.command == "migrate":
            print(f"schema at version {storage.current_schema_version()}")
            return 0
        return COMMANDS[args.command](args, storage, settings, log)
    except ExpenseTraceError as exc:
        log.error(f"command_failed: command={args.command} error={exc}")
        return 1
    finally:
        storage.close()


if __name__ == "__main__":
    sys.exit(main())
