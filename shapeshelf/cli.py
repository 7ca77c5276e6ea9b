"""Command-line entry point: ``shapeshelf <command> ...``."""

import argparse
import json
import logging
import sys

from shapeshelf.config import configure_logging, get_settings
from shapeshelf.errors import ShapeshelfError
from shapeshelf.library.service import ShapeLibrary

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="shapeshelf", description="Personal PowerPoint shape library")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Override SHAPESHELF_LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("capture", help="Capture the shape selected in PowerPoint")
    p.add_argument("--name", help="Name to save the shape under")
    p.add_argument("--yes", action="store_true", help="Save without asking for a name")
    p.add_argument("--dry-run", action="store_true", help="Print the record without saving it")

    p = sub.add_parser("list", help="List shapes")
    p.add_argument("--category", help="Category key or 'all' (default: configured default)")
    p.add_argument("--query", help="Search name, description and tags")
    p.add_argument("--tag", action="append", dest="tags", help="Filter by tag (repeatable)")

    sub.add_parser("counts", help="Show the number of shapes per category")

    for name, help_text in (
        ("show", "Print a shape record as JSON"),
        ("remove", "Delete a shape and its files"),
        ("insert", "Insert a shape into PowerPoint"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("shape_id")
        p.add_argument("category")

    p = sub.add_parser("update", help="Edit a shape")
    p.add_argument("shape_id")
    p.add_argument("category")
    p.add_argument("--name")
    p.add_argument("--description")
    p.add_argument("--tags", help="Comma-separated tags")
    p.add_argument("--move-to", dest="new_category", help="Move to another category")

    sub.add_parser("repair", help="Move orphaned previews back under their shape's category")

    p = sub.add_parser("preview", help="Generate preview images")
    p.add_argument("shape_id", nargs="?")
    p.add_argument("category", nargs="?")
    p.add_argument("--all", action="store_true", help="Regenerate every preview")

    p = sub.add_parser("export", help="Export a shape definition (JSON) or document (.pptx)")
    p.add_argument("shape_id")
    p.add_argument("category")
    p.add_argument("output")
    p.add_argument("--document", action="store_true", help="Write a .pptx instead of JSON")

    sub.add_parser("cache-stats", help="Show shape cache statistics")

    p = sub.add_parser("serve", help="Run the HTTP API")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)

    return parser


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _capture(library: ShapeLibrary, args: argparse.Namespace) -> int:
    record = library.capture(custom_name=args.name, save=False)
    if args.dry_run:
        _print_json(record.to_json_dict())
        return 0

    name = None
    if not (args.name or args.yes or library.settings.auto_save_after_capture):
        name = input(f"Name [{record.name}]: ")
    record = library.save(record, name=name)
    print(f"Saved '{record.name}' to {record.category} ({record.id})")
    return 0


def _list(library: ShapeLibrary, args: argparse.Namespace) -> int:
    category = args.category or library.settings.default_category
    if args.query or args.tags:
        records = library.search(args.query, category=category, tags=args.tags)
    else:
        records = library.list(category)
    for record in records:
        marker = " [native]" if record.has_native else ""
        print(f"{record.id}\t{record.category}\t{record.name}{marker}")
    print(f"{len(records)} shapes")
    return 0


def _update(library: ShapeLibrary, args: argparse.Namespace) -> int:
    changes = {}
    if args.name is not None:
        changes["name"] = args.name
    if args.description is not None:
        changes["description"] = args.description
    if args.tags is not None:
        changes["tags"] = [t.strip() for t in args.tags.split(",") if t.strip()]
    if args.new_category is not None:
        changes["category"] = args.new_category
    if not changes:
        print("Nothing to update", file=sys.stderr)
        return 2
    record = library.update(args.shape_id, args.category, changes)
    print(f"Updated '{record.name}' in {record.category}")
    return 0


def _preview(library: ShapeLibrary, args: argparse.Namespace) -> int:
    if args.all:
        generated, failed = library.generate_all_previews()
        print(f"Generated {generated} previews, {failed} failed")
        return 1 if failed else 0
    if not (args.shape_id and args.category):
        print("Give a shape id and category, or --all", file=sys.stderr)
        return 2
    record = library.generate_preview(args.shape_id, args.category)
    print(f"Preview written to {library.paths.resolve_preview(record.preview)}")
    return 0


def _export(library: ShapeLibrary, args: argparse.Namespace) -> int:
    if args.document:
        path = library.export_document(args.shape_id, args.category, args.output)
    else:
        path = library.export_definition(args.shape_id, args.category, args.output)
    print(f"Exported to {path}")
    return 0


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("shapeshelf.api.main:app", host=args.host, port=args.port)
    return 0


def run(args: argparse.Namespace, library: ShapeLibrary) -> int:
    """Dispatch a parsed command."""
    command = args.command
    if command == "capture":
        return _capture(library, args)
    if command == "list":
        return _list(library, args)
    if command == "counts":
        for category, count in library.counts().items():
            print(f"{category}: {count}")
        print(f"total: {library.total()}")
        return 0
    if command == "show":
        _print_json(library.get(args.shape_id, args.category).to_json_dict())
        return 0
    if command == "update":
        return _update(library, args)
    if command == "remove":
        removed = library.remove(args.shape_id, args.category)
        print(f"Removed '{removed.name}'")
        return 0
    if command == "repair":
        report = library.repair()
        print(f"Repaired {report.repaired} shapes ({report.scanned} previews scanned)")
        return 0
    if command == "preview":
        return _preview(library, args)
    if command == "insert":
        result = library.insert(args.shape_id, args.category)
        print(result.message)
        return 0
    if command == "export":
        return _export(library, args)
    if command == "cache-stats":
        _print_json(library.cache_stats())
        return 0
    raise ValueError(f"Unknown command: {command}")


def main(argv: list[str] | None = None, library: ShapeLibrary | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    if args.command == "serve":
        return _serve(args)

    library = library or ShapeLibrary(get_settings())
    try:
        return run(args, library)
    except ShapeshelfError as e:
        if e.detail:
            logger.debug(e.detail)
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    finally:
        # Documents handed to PowerPoint must outlive this process.
        if args.command != "insert":
            library.close()


if __name__ == "__main__":
    sys.exit(main())
