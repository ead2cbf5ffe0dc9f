import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import colorlog
import yaml

from pivot_host import __version__ as _PACKAGE_VERSION
from pivot_host.core.config import load_view_config
from pivot_host.core.errors import PivotHostError
from pivot_host.model.config import FILTER_OPERATORS

FORMAT_CHOICES = ["csv", "json", "columns"]
BINARY_SUFFIXES = {".arrow", ".feather", ".ipc"}


def setup_logging(
    verbose: bool = False, warnings_only: bool = False, errors_only: bool = False
) -> None:
    logger = logging.getLogger()
    for h in list(logger.handlers):
        logger.removeHandler(h)
    log_format = (
        "%(asctime)s:%(levelname)s:%(name)s in %(filename)s:%(funcName)s:%(lineno)d: %(message)s"
    )
    log_colors = {
        "DEBUG": "cyan",
        "INFO": "green",
        "WARNING": "yellow",
        "ERROR": "red",
        "CRITICAL": "bold_red",
    }
    stream_handler = colorlog.StreamHandler(sys.stderr)
    formatter = colorlog.ColoredFormatter(f"%(log_color)s{log_format}", log_colors=log_colors)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)
    if errors_only:
        logger.setLevel(logging.ERROR)
    elif warnings_only:
        logger.setLevel(logging.WARNING)
    else:
        logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def _load_input(path: Path) -> Any:
    """Read a CSV, JSON or Arrow IPC file into table input."""
    suffix = path.suffix.lower()
    if suffix in BINARY_SUFFIXES:
        return path.read_bytes()
    if suffix == ".json":
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    return path.read_text(encoding="utf-8")


def _parse_value(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def _parse_filter(text: str) -> List[Any]:
    """Parse ``"COLUMN OP VALUE"``; operators may contain spaces (``begins with``)."""
    column, _, rest = text.strip().partition(" ")
    rest = rest.strip()
    for op in sorted(FILTER_OPERATORS, key=len, reverse=True):
        if rest == op:
            return [column, op, None]
        if rest.startswith(op + " "):
            return [column, op, _parse_value(rest[len(op) + 1 :].strip())]
    raise ValueError(f"Cannot parse filter {text!r}; expected 'COLUMN OP VALUE'")


def _parse_sort(text: str) -> Tuple[str, str]:
    column, _, order = text.partition(":")
    return column, order or "asc"


def _build_view_config(args: argparse.Namespace) -> Dict[str, Any]:
    view_config: Dict[str, Any] = {}
    if getattr(args, "config", None):
        view_config.update(load_view_config(args.config))
    if args.row_pivot:
        view_config["row_pivot"] = list(args.row_pivot)
    if args.column_pivot:
        view_config["column_pivot"] = list(args.column_pivot)
    if args.sort:
        view_config["sort"] = [list(_parse_sort(s)) for s in args.sort]
    if args.filter:
        view_config["filter"] = [_parse_filter(f) for f in args.filter]
    return view_config


def cmd_schema(args: argparse.Namespace) -> int:
    """Infer and print the schema of an input file."""
    from pivot_host import table

    path = Path(args.input)
    if not path.exists():
        logging.error("Input file not found: %s", path)
        return 2
    try:
        t = table(_load_input(path))
    except PivotHostError as e:
        logging.error("Cannot load %s: %s", path, e)
        return 1
    try:
        print(json.dumps(t.schema(), indent=2))
    finally:
        t.delete()
    return 0


def cmd_view(args: argparse.Namespace) -> int:
    """Load an input file, build a view and write it out.

    Returns:
        0 on success
        1 if the input or view configuration is invalid
        2 if the input file does not exist
    """
    from pivot_host import table

    path = Path(args.input)
    if not path.exists():
        logging.error("Input file not found: %s", path)
        return 2

    try:
        view_config = _build_view_config(args)
        t = table(_load_input(path))
    except (PivotHostError, ValueError, yaml.YAMLError) as e:
        logging.error("Cannot load %s: %s", path, e)
        return 1

    try:
        v = t.view(view_config)
    except PivotHostError as e:
        logging.error("Invalid view configuration: %s", e)
        t.delete()
        return 1

    try:
        if args.format == "csv":
            text = v.to_csv()
        elif args.format == "columns":
            text = json.dumps(v.to_columns(), indent=2, default=str)
        else:
            text = json.dumps(v.to_json(), indent=2, default=str)
    finally:
        v.delete()
        t.delete()

    if args.output:
        out_path = Path(args.output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text, encoding="utf-8")
        logging.info("Wrote %s view of %s to %s", args.format, path.name, out_path)
    else:
        sys.stdout.write(text if text.endswith("\n") else text + "\n")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Serve the host protocol as line-delimited JSON on stdin/stdout."""
    from pivot_host.interfaces.host.stdio import serve_stdio

    try:
        asyncio.run(serve_stdio())
    except KeyboardInterrupt:
        logging.info("Interrupted")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="pivot-host",
        description=f"Pivot host (v{_PACKAGE_VERSION})",
    )
    p.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    p.add_argument(
        "--warnings-only",
        action="store_true",
        help="Show only warnings and errors (overrides --verbose)",
    )
    p.add_argument(
        "--errors-only",
        action="store_true",
        help="Show only errors (overrides --warnings-only and --verbose)",
    )

    sub = p.add_subparsers(dest="command", required=True)

    p_schema = sub.add_parser("schema", help="Infer the schema of a CSV/JSON/Arrow file")
    p_schema.add_argument("input", help="Input file (.csv, .json, .arrow/.feather/.ipc)")
    p_schema.set_defaults(func=cmd_schema)

    p_view = sub.add_parser("view", help="Pivot a CSV/JSON/Arrow file and write the result")
    p_view.add_argument("input", help="Input file (.csv, .json, .arrow/.feather/.ipc)")
    p_view.add_argument("--config", default=None, help="YAML view configuration file")
    p_view.add_argument(
        "--row-pivot", nargs="+", default=None, help="Columns to group rows by"
    )
    p_view.add_argument(
        "--column-pivot", nargs="+", default=None, help="Columns to split columns by"
    )
    p_view.add_argument(
        "--sort",
        action="append",
        default=None,
        help="Sort as COLUMN[:ORDER], e.g. sales:desc (repeatable)",
    )
    p_view.add_argument(
        "--filter",
        action="append",
        default=None,
        help="Filter as 'COLUMN OP VALUE', e.g. 'sales > 10' (repeatable)",
    )
    p_view.add_argument(
        "--format", choices=FORMAT_CHOICES, default="csv", help="Output format (default csv)"
    )
    p_view.add_argument("--output", default=None, help="Write to this file instead of stdout")
    p_view.set_defaults(func=cmd_view)

    p_serve = sub.add_parser("serve", help="Run the host protocol on stdin/stdout")
    p_serve.set_defaults(func=cmd_serve)

    return p


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(
        verbose=bool(args.verbose),
        warnings_only=bool(getattr(args, "warnings_only", False)),
        errors_only=bool(getattr(args, "errors_only", False)),
    )
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
