"""Command-line interface for subtrans."""

from __future__ import annotations

import asyncio
import argparse
import logging
import sys
from pathlib import Path

from tqdm import tqdm

from .config import AppConfig
from .errors import SubtransError
from .parser import decode_upload, parse_srt, save_srt, validate_upload
from .llm_client import TranslationGateway, create_client
from .pipeline import TranslationPipeline
from .progress import ProgressChannel, ProgressEvent
from .store import SubtitleStore, MEMORY


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S"
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with ``translate`` and ``serve`` commands."""
    parser = argparse.ArgumentParser(
        prog="subtrans",
        description="Batch subtitle translator with a web upload/download service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s translate video.srt                  # Translate to the default language
  %(prog)s translate video.srt out.srt -t fr    # Specify output and language
  %(prog)s serve --port 8080                    # Run the web service
        """
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    # API options shared by both commands
    api = argparse.ArgumentParser(add_help=False)
    api.add_argument("--api-key", help="API key (or set SUBTRANS_API_KEY)")
    api.add_argument("--base-url", default=None)
    api.add_argument("--model", dest="model_name", default=None)
    api.add_argument("--batch-size", type=int, default=None, help="Entries translated concurrently")

    sub = parser.add_subparsers(dest="command", required=True)

    tr = sub.add_parser("translate", parents=[api], help="Translate one SRT file")
    tr.add_argument("input_path", help="Input SRT file path")
    tr.add_argument("output_path", nargs='?', default=None, help="Output SRT file path")
    tr.add_argument("-t", "--target", dest="target_language", default=None,
                    help="Target language code (default: SUBTRANS_TARGET_LANG or 'es')")

    sv = sub.add_parser("serve", parents=[api], help="Run the web service")
    sv.add_argument("--host", default=None)
    sv.add_argument("--port", type=int, default=None)
    sv.add_argument("--db", dest="db_path", default=None, help="SQLite database path")

    return parser


async def translate_file(
    in_path: Path,
    out_path: Path,
    config: AppConfig,
    translator=None,
) -> int:
    """
    Translate one SRT file through the batch pipeline.

    Entries are held in an in-memory store for the duration of the run.

    Returns:
        Number of translated entries
    """
    logger = logging.getLogger(__name__)

    content = decode_upload(in_path.read_bytes())
    entries = parse_srt(content)
    if not entries:
        raise SubtransError(f"No valid subtitle entries found in {in_path}")
    logger.info(f"Parsed {len(entries)} subtitle entries")

    if translator is None:
        client = create_client(config.api_key, config.base_url, config.request_timeout)
        translator = TranslationGateway(client, config.model_name)

    store = SubtitleStore(MEMORY)
    channel = ProgressChannel()
    try:
        subtitle_set = store.create_set(in_path.name, entries)

        bar = tqdm(total=len(entries), desc="Translating", unit="line")

        def on_progress(event: ProgressEvent) -> None:
            bar.update(event.current - bar.n)

        listener = channel.listen(on_progress, job_id=subtitle_set.id)
        try:
            pipeline = TranslationPipeline(store, translator, channel, config.batch_size)
            translated = await pipeline.run(subtitle_set.id, config.target_language)
        finally:
            listener.close()
            bar.close()

        results = store.load_entries(subtitle_set.id)
        save_srt([e.copy(text=e.display_text) for e in results], out_path)
    finally:
        store.close()

    return translated


def run_translate(args: argparse.Namespace, config: AppConfig) -> int:
    logger = logging.getLogger(__name__)

    error = config.validate()
    if error:
        logger.error(error)
        return 1

    in_path = Path(args.input_path).expanduser().resolve()
    if not in_path.is_file():
        logger.error(f"File not found: {in_path}")
        return 1
    error = validate_upload(in_path.name, in_path.stat().st_size, config.max_upload_bytes)
    if error:
        logger.error(error)
        return 1

    if args.output_path:
        out_path = Path(args.output_path)
    else:
        out_path = in_path.with_name(f"{in_path.stem}.{config.target_language}{in_path.suffix}")

    count = asyncio.run(translate_file(in_path, out_path, config))
    logger.info(f"Done! {count} entries translated. Saved to {out_path}")
    return 0


def run_serve(args: argparse.Namespace, config: AppConfig) -> int:
    from .web import main as serve

    error = config.validate(require_api_key=False)
    if error:
        logging.getLogger(__name__).error(error)
        return 1
    serve(config)
    return 0


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    config = AppConfig.from_args(args)

    try:
        if args.command == "translate":
            exit_code = run_translate(args, config)
        else:
            exit_code = run_serve(args, config)
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\nInterrupted by user.")
        sys.exit(130)
    except SubtransError as e:
        logging.error(f"Failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
