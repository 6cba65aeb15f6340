"""Main module for the image ingestion CLI."""

import argparse
import sys

from . import __version__
from .core.exceptions import ImageIngestError
from .core.factories import CatalogFactory, IngestionPipelineFactory, LoggerFactory
from .core.models import IngestionRequest, IngestionSettings
from .triggers import outcome_response


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    from .api import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port, log_level=args.log_level)
    return 0


def _process(args: argparse.Namespace) -> int:
    pipeline = IngestionPipelineFactory.create_pipeline()
    request = IngestionRequest.create(args.bucket, args.name)
    outcome = pipeline.run(request)
    status_code, message = outcome_response(outcome)
    print(message)
    return 0 if status_code < 400 else 1


def _init_db(args: argparse.Namespace) -> int:
    settings = IngestionSettings.from_env()
    catalog = CatalogFactory.create_catalog(
        settings, LoggerFactory.create_logger("image_ingest.catalog")
    )
    try:
        catalog.ensure_schema()
    finally:
        catalog.close()
    print("Catalog schema is up to date")
    return 0


def main() -> None:
    """
    Entry point for the ``image-ingest`` command-line interface.

    Commands:
        serve    run the HTTP callback service
        process  ingest one object synchronously
        init-db  create the catalog table and commit procedure
        version  print version information
    """
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="image-ingest",
        description="Image Ingest - moderation, metadata and renditions for uploaded images",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the HTTP service
  image-ingest serve --port 8080

  # Ingest one uploaded object
  image-ingest process --bucket uploads --name photos/cat.jpg
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP callback service")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8080, help="Listen port")
    serve_parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="uvicorn log level",
    )

    process_parser = subparsers.add_parser("process", help="Ingest one uploaded object")
    process_parser.add_argument("--bucket", required=True, help="Source bucket")
    process_parser.add_argument("--name", required=True, help="Object path in the source bucket")

    subparsers.add_parser("init-db", help="Create the catalog schema")
    subparsers.add_parser("version", help="Show version information")

    args: argparse.Namespace = parser.parse_args()

    handlers = {"serve": _serve, "process": _process, "init-db": _init_db}

    if args.command in handlers:
        try:
            sys.exit(handlers[args.command](args))
        except ImageIngestError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(2)

    elif args.command == "version":
        print("Image Ingest CLI")
        print(f"Version {__version__}")
        sys.exit(0)

    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
