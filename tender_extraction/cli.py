import argparse
import json
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

from .config import ServiceConfig
from .exceptions import ExtractionError, format_error_chain
from .logging_config import get_logger, setup_logging
from .tasks import TASKS


def run_extract(
    config: ServiceConfig,
    pdf_path: str,
    task_name: str,
    output_path: str | None = None,
) -> int:
    from .service import ExtractionService

    logger = get_logger("cli")
    service = ExtractionService(config)
    try:
        result = service.extract_file(pdf_path, task_name)
    except ExtractionError as exc:
        logger.error(format_error_chain(exc))
        return 1

    print(f"task: {result.task}")
    print(f"mode: {result.mode.value}")
    if result.processed_chunks is not None:
        print(f"processed_chunks: {result.processed_chunks}")
    print(f"backend_calls: {result.backend_calls}")
    print(f"seconds: {result.processing_time_seconds:.1f}")
    if output_path:
        result.save(output_path)
        print(f"output_path: {output_path}")
    else:
        print(json.dumps(result.final, ensure_ascii=False, indent=2))
    return 0 if not result.mode.is_failed else 2


def run_server(config: ServiceConfig, host: str, port: int) -> None:
    import uvicorn

    from .app import create_app

    app = create_app(config)
    uvicorn.run(app, host=host, port=port)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tender-extract",
        description="Tender document extraction (CLI extraction or API server).",
    )
    parser.add_argument("--serve", action="store_true", help="Run FastAPI server")
    parser.add_argument("--host", default="0.0.0.0", help="Server host")
    parser.add_argument("--port", type=int, default=8002, help="Server port")
    parser.add_argument("--pdf", help="Path to a PDF to extract")
    parser.add_argument(
        "--task",
        default="tender_summary",
        choices=sorted(TASKS),
        help="Extraction task",
    )
    parser.add_argument("--output", help="Optional output path for the result JSON")
    parser.add_argument("--log-level", help="Override EXTRACTION_LOG_LEVEL")
    parser.add_argument("--log-file", type=Path, help="Also write logs to this file")
    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv(find_dotenv(usecwd=True))
    parser = build_parser()
    args = parser.parse_args(argv)

    config = ServiceConfig.from_env()
    setup_logging(args.log_level or config.log_level, log_file=args.log_file)

    if args.serve:
        run_server(config, args.host, args.port)
        return 0

    if not args.pdf:
        parser.error("Provide --pdf or use --serve to run the API.")
    return run_extract(config, args.pdf, args.task, args.output)


if __name__ == "__main__":
    raise SystemExit(main())
