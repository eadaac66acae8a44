# AGPL-3.0 License

"""
Command-line entry points: `prove` and `prove-config`.

Both exit with status 0 or 1 only.
"""

import argparse
import asyncio
import sys
from typing import Optional

from prove import __version__
from prove.log import get_logger, setup_logger_from_env
from prove.tools.prove_config import ProveConfigTool
from prove.tools.prove_run import ProveRun

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


class ProveArgumentParser(argparse.ArgumentParser):
    """Argument parser that reports usage errors with exit status 1."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(EXIT_FAILURE, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    p = ProveArgumentParser(
        prog="prove",
        description="Run the quality gates for the current change and exit 0 (pass) or 1 (fail).",
    )
    p.add_argument("--quick", action="store_true", help="Skip pre-conflict, build and the optional slow checks.")
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose output (full diagnostics, debug logs).")
    p.add_argument("--json", dest="json_output", action="store_true", help="Print the report JSON to stdout.")
    p.add_argument("--config", dest="settings_file", default=None, help="Project settings file (default: prove.toml).")
    p.add_argument("--cwd", dest="working_directory", default=None, help="Repository root (default: .)")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


def build_config_parser() -> argparse.ArgumentParser:
    p = ProveArgumentParser(prog="prove-config", description="Validate, export or document the prove configuration.")
    p.add_argument("--config", dest="settings_file", default=None, help="Project settings file (default: prove.toml).")
    p.add_argument("--cwd", dest="working_directory", default=None, help="Repository root (default: .)")

    sub = p.add_subparsers(dest="cmd", required=True, parser_class=ProveArgumentParser)
    sub.add_parser("validate", help="Validate the effective configuration.")
    export_p = sub.add_parser("export", help="Print the effective configuration.")
    export_p.add_argument("--format", choices=["json", "yaml", "env"], default="json", help="Output format.")
    sub.add_parser("docs", help="Print markdown documentation of the effective configuration.")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logger_from_env(verbose=args.verbose)

    tool = ProveRun(
        working_directory=args.working_directory,
        quick=args.quick,
        verbose=args.verbose,
        json_output=args.json_output,
        settings_file=args.settings_file,
    )
    try:
        return asyncio.run(tool.run())
    except Exception as e:
        get_logger().exception("prove failed unexpectedly")
        print(f"prove: error: {e}", file=sys.stderr)
        return EXIT_FAILURE


def config_main(argv: Optional[list[str]] = None) -> int:
    args = build_config_parser().parse_args(argv)
    setup_logger_from_env()

    tool = ProveConfigTool(working_directory=args.working_directory, settings_file=args.settings_file)
    try:
        if args.cmd == "validate":
            return tool.validate()
        if args.cmd == "export":
            return tool.export(args.format)
        if args.cmd == "docs":
            return tool.docs()
    except Exception as e:
        get_logger().exception("prove-config failed unexpectedly")
        print(f"prove-config: error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    print("Unknown command.", file=sys.stderr)
    return EXIT_FAILURE


def run(argv: Optional[list[str]] = None):
    sys.exit(main(argv))


def run_config(argv: Optional[list[str]] = None):
    sys.exit(config_main(argv))


if __name__ == "__main__":
    run()
