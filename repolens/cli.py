"""CLI entrypoints for repolens commands."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from .config import load_config
from .errors import ConfigError, InvalidRepositoryError
from .logging import configure_logging, get_logger
from .orchestrator import AnalysisOrchestrator
from .snapshot import load_repository


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    kwargs["default"] = argparse.SUPPRESS if suppress_default else False
    parser.add_argument("-v", "--verbose", **kwargs)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repolens",
        description="Derive dependency, quality and coupling signals from a repository.",
    )
    _add_verbose_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze_parser = subparsers.add_parser(
        "analyze",
        help="Analyze a local checkout and emit the result as JSON.",
    )
    _add_verbose_option(analyze_parser, suppress_default=True)
    analyze_parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Path to the repository root (defaults to current directory).",
    )
    analyze_parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration file to use instead of <path>/.repolens.yml.",
    )
    analyze_parser.add_argument(
        "--output",
        "-o",
        type=Path,
        default=None,
        help="Write the JSON result to this file instead of stdout.",
    )
    analyze_parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write log output to this file.",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for repolens commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=getattr(args, "log_file", None))
    logger = get_logger("cli")

    if args.command == "analyze":
        root = Path(args.path)
        try:
            config = load_config(args.config or root)
            repository = load_repository(root, config=config)
            orchestrator = AnalysisOrchestrator(config)
            result = orchestrator.analyze(
                repository,
                on_progress=lambda label, percent: logger.info("[%3d%%] %s", percent, label),
            )
        except (FileNotFoundError, NotADirectoryError) as exc:
            parser.exit(1, f"{exc}\n")
        except ConfigError as exc:
            parser.exit(1, f"Invalid configuration: {exc}\n")
        except InvalidRepositoryError as exc:
            parser.exit(1, f"repolens analyze failed: {exc}\n")
        except Exception as exc:  # pragma: no cover - defensive guard
            parser.exit(1, f"repolens analyze failed: {exc}\nRun with --verbose for more details.\n")

        payload = json.dumps(result.to_dict(), indent=2)
        if args.output is not None:
            args.output.write_text(payload + "\n", encoding="utf-8")
            print(f"Analysis written to {_relativize(args.output)}")
        else:
            print(payload)
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _relativize(path: Path) -> str:
    try:
        return str(path.resolve().relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
