from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

from .commands import analyze as cmd_analyze
from .commands import mappings as cmd_mappings
from .commands import names as cmd_names
from .config import Settings, find_config
from .fields import FieldKind, field_namespace
from .learning import LearningEngine
from .storage import SQLiteStore

LOG_FORMAT = "%(levelname).1s | %(name)s | %(message)s"

C_RESET = "\033[0m"
LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",  # Cyan
    logging.INFO: "\033[37m",  # Light gray
    logging.WARNING: "\033[33m",  # Yellow
    logging.ERROR: "\033[31m",  # Red
    logging.CRITICAL: "\033[35m",  # Magenta
}


class ColorFormatter(logging.Formatter):
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


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Name parsing, variant clustering and learned normalization")
    parser.add_argument("--config", type=Path, help="Path to config.yaml")
    parser.add_argument("--log-level", default="WARNING", help="Python logging level")

    subparsers = parser.add_subparsers(dest="command", required=True)
    parse_parser = subparsers.add_parser("parse", help="Split a name into its parts")
    parse_parser.add_argument("name")
    parse_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")

    variants_parser = subparsers.add_parser("variants", help="List alternate renderings of a value")
    variants_parser.add_argument("name")
    variants_parser.add_argument(
        "--field",
        default="name",
        help="Field kind: name, publisher, location or journal",
    )
    variants_parser.add_argument("--collection", default=None, help="Prefer mappings learned for this collection id")

    learn_parser = subparsers.add_parser("learn", help="Remember that RAW should be written as NORMALIZED")
    learn_parser.add_argument("raw")
    learn_parser.add_argument("normalized")
    learn_parser.add_argument("--confidence", type=float, default=1.0)
    learn_parser.add_argument("--collection", default=None, help="Only apply this mapping within a collection id")

    lookup_parser = subparsers.add_parser("lookup", help="Show the learned mapping for a name")
    lookup_parser.add_argument("raw")
    lookup_parser.add_argument("--collection", default=None, help="Prefer mappings learned for this collection id")

    similar_parser = subparsers.add_parser("similar", help="Find learned mappings resembling a name")
    similar_parser.add_argument("raw")
    similar_parser.add_argument("--top", type=int, default=None, help="Maximum number of results")
    similar_parser.add_argument("--collection", default=None, help="Also search this collection's mappings")

    forget_parser = subparsers.add_parser("forget", help="Remove learned mappings")
    forget_parser.add_argument("raw", nargs="?")
    forget_parser.add_argument("--all", action="store_true", help="Remove every mapping")
    forget_parser.add_argument("--collection", default=None, help="Remove from this collection's mappings only")

    skip_parser = subparsers.add_parser("skip", help="Stop suggesting a surname (and first name)")
    skip_parser.add_argument("surname", nargs="?")
    skip_parser.add_argument("first_name", nargs="?")
    skip_parser.add_argument("--remove", action="store_true", help="Forget this skip decision")
    skip_parser.add_argument("--clear", action="store_true", help="Forget all skip decisions")

    stats_parser = subparsers.add_parser("stats", help="Show learning statistics")
    stats_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")

    export_parser = subparsers.add_parser("export", help="Export learned mappings as JSON")
    export_parser.add_argument("--out", type=Path, default=None)

    import_parser = subparsers.add_parser("import", help="Import learned mappings from an export")
    import_parser.add_argument("path", type=Path)
    import_parser.add_argument("--merge", action="store_true", help="Keep existing mappings")

    analyze_parser = subparsers.add_parser("analyze", help="Cluster the creators of a JSON record file")
    analyze_parser.add_argument("records", type=Path)
    analyze_parser.add_argument("--collection", default=None, help="Only analyze this collection id")
    analyze_parser.add_argument("--apply", action="store_true", help="Confirm and apply suggestions")
    analyze_parser.add_argument("--yes", action="store_true", help="Apply every suggestion without asking")
    analyze_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")
    return parser


def configure_logging(level_name: str) -> WarningBufferHandler:
    log_level = getattr(logging, level_name.upper(), logging.WARNING)
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(log_level)

    color_handler = logging.StreamHandler()
    color_handler.setFormatter(ColorFormatter(LOG_FORMAT))
    root_logger.addHandler(color_handler)

    warn_buffer = WarningBufferHandler()
    warn_buffer.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(warn_buffer)
    return warn_buffer


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = Settings.load(find_config(args.config))
    warn_buffer = configure_logging(args.log_level)

    if args.command == "parse":
        cmd_names.run_parse(args.name, json_output=args.json)
        return

    try:
        kind = FieldKind.from_label(getattr(args, "field", "name"))
    except ValueError as exc:
        parser.error(str(exc))
    store = SQLiteStore(settings.storage.path, namespace=settings.storage.namespace)
    engine = LearningEngine.from_settings(settings, store, namespace=field_namespace(kind, settings.storage.namespace))
    ok = True
    try:
        match args.command:
            case "variants":
                cmd_names.run_variants(args.name, kind=kind, engine=engine, collection_id=args.collection)
            case "learn":
                ok = cmd_mappings.run_learn(
                    engine,
                    args.raw,
                    args.normalized,
                    confidence=args.confidence,
                    collection_id=args.collection,
                )
            case "lookup":
                ok = cmd_mappings.run_lookup(engine, args.raw, collection_id=args.collection)
            case "similar":
                cmd_mappings.run_similar(engine, args.raw, top_n=args.top, collection_id=args.collection)
            case "forget":
                ok = cmd_mappings.run_forget(engine, args.raw, forget_all=args.all, collection_id=args.collection)
            case "skip":
                cmd_mappings.run_skip(engine, args.surname, args.first_name, remove=args.remove, clear=args.clear)
            case "stats":
                cmd_mappings.run_stats(engine, json_output=args.json)
            case "export":
                cmd_mappings.run_export(engine, args.out)
            case "import":
                ok = cmd_mappings.run_import(engine, args.path, merge=args.merge)
            case "analyze":
                cmd_analyze.run(
                    settings,
                    engine,
                    args.records,
                    collection_id=args.collection,
                    apply=args.apply or args.yes,
                    auto_confirm=args.yes,
                    json_output=args.json,
                )
            case _:
                parser.error("Unknown command")
    finally:
        store.close()
        if warn_buffer.records:
            print("\n\033[33mWarnings/Errors summary:\033[0m")
            for line in warn_buffer.records:
                print(f" - {line}")
    if not ok:
        raise SystemExit(1)


if __name__ == "__main__":  # pragma: no cover
    main()
