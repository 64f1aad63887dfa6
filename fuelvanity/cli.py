"""
Command-line interface for fuelvanity.

Usage:
    python -m fuelvanity prefix dead
    python -m fuelvanity suffix cafe --workers 8
    python -m fuelvanity contains beef --case-sensitive
    python -m fuelvanity            # interactive prompt
"""

import argparse
import logging
import sys
from typing import Optional

from fuelvanity import __version__
from fuelvanity.errors import SearchError
from fuelvanity.export import prepare_export
from fuelvanity.generator import SearchProgress, VanitySearch
from fuelvanity.matcher import MatchPosition, MatchSpec
from fuelvanity.verify import verify_key_address_pair

logger = logging.getLogger(__name__)

PROMPT = "fuelvanity> "

INTERACTIVE_HELP = """\
Commands:
  prefix <hex>     Find an address starting with <hex>
  suffix <hex>     Find an address ending with <hex>
  contains <hex>   Find an address containing <hex> anywhere
  help             Show this help
  exit             Leave the prompt

Press Ctrl+C to stop a running search.
"""


def add_search_options(parser: argparse.ArgumentParser, defaults: bool = True) -> None:
    """Add the options shared by the top-level parser and every subcommand.

    Subcommands use SUPPRESS defaults so they never override values given
    before the subcommand name.
    """
    def default(value):
        return value if defaults else argparse.SUPPRESS

    parser.add_argument(
        "--workers", "-w", type=int, default=default(0),
        help="Number of worker processes (default: all available cores)",
    )
    parser.add_argument(
        "--case-sensitive", "-c", action="store_true", default=default(False),
        help="Case sensitive pattern matching",
    )
    parser.add_argument(
        "--dry-run", action="store_true", default=default(False),
        help="Show difficulty estimate without searching",
    )
    parser.add_argument(
        "--quiet", "-q", action="store_true", default=default(False),
        help="Minimal output (just the address and private key)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", default=default(False),
        help="Enable debug logging",
    )


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fuelvanity",
        description="Fuel Vanity Address Generator",
        epilog=(
            "Examples:\n"
            "  fuelvanity prefix dead\n"
            "  fuelvanity suffix cafe --workers 8\n"
            "  fuelvanity contains beef\n"
            "  fuelvanity                (interactive prompt)\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version", action="version", version=f"fuelvanity {__version__}"
    )
    add_search_options(parser)

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    for position in MatchPosition:
        sub = commands.add_parser(
            position.value,
            help=f"Look for addresses with this hex pattern ({position.value})",
        )
        sub.add_argument("pattern", metavar="HEX")
        add_search_options(sub, defaults=False)
    interactive_parser = commands.add_parser("interactive", help="Run the interactive prompt (default)")
    add_search_options(interactive_parser, defaults=False)

    return parser


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def format_time(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    elif seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        return f"{seconds / 60:.1f}m"
    elif seconds < 86400:
        return f"{seconds / 3600:.1f}h"
    else:
        return f"{seconds / 86400:.1f}d"


def format_rate(rate: float) -> str:
    if rate < 1000:
        return f"{rate:.0f}"
    elif rate < 1_000_000:
        return f"{rate / 1000:.1f}K"
    else:
        return f"{rate / 1_000_000:.2f}M"


def progress_callback(stats: SearchProgress, quiet: bool = False) -> None:
    if quiet:
        return
    sys.stderr.write(
        f"\r  Searched: {stats.attempts:,}  |  "
        f"Rate: {format_rate(stats.rate)}/sec  |  "
        f"Elapsed: {format_time(stats.elapsed)}  "
    )
    sys.stderr.flush()


def run_search(position: MatchPosition, pattern: str, args: argparse.Namespace) -> int:
    """Run one search and print its result. Returns a process exit code."""
    spec = MatchSpec(pattern=pattern, position=position, case_sensitive=args.case_sensitive)
    try:
        vanity_search = VanitySearch(spec, num_workers=args.workers, allow_empty=False)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    difficulty = vanity_search.get_difficulty()

    if not args.quiet:
        print(f"fuelvanity v{__version__}")
        print(f"  Pattern:        {position.value}='{vanity_search.spec.pattern}'")
        print(f"  Case sensitive: {'yes' if args.case_sensitive else 'no'}")
        print(f"  Workers:        {vanity_search.num_workers}")
        if difficulty["expected_attempts"]:
            print(f"  Expected:       ~{difficulty['expected_attempts']:,} attempts")
        print(f"  Difficulty:     {difficulty['difficulty_description']}")
        print()

    if args.dry_run:
        return 0

    vanity_search.on_progress = lambda stats: progress_callback(stats, args.quiet)

    if not args.quiet:
        print("Searching... (press Ctrl+C to stop)")

    try:
        outcome = vanity_search.run_blocking(progress_interval=0.5)
    except SearchError as e:
        print(f"\nError: {e}", file=sys.stderr)
        return 1

    if not args.quiet:
        sys.stderr.write("\n")

    if not outcome.succeeded:
        print("No result (search was cancelled).", file=sys.stderr)
        return 1

    result = outcome.result
    try:
        export = prepare_export(result)
        verified = verify_key_address_pair(export.private_key_hex, result.address)

        if args.quiet:
            print(export.address)
            print(export.private_key_hex)
        else:
            print(f"\n{'=' * 72}")
            print("  MATCH FOUND")
            print(f"  Address:      {export.address}")
            print(f"  Private Key:  {export.private_key_hex}")
            print(f"  Public Key:   {export.public_key_hex}")
            print(f"  Time:         {format_time(result.elapsed)}")
            print(f"  Keys Checked: {result.attempts:,}")
            print(f"  Rate:         {format_rate(result.rate)}/sec")
            print(f"  Verified:     {'PASS' if verified else 'FAIL'}")
            print(f"{'=' * 72}")
            print("  Keep the private key secret. It is not saved anywhere.")
        if not verified:
            logger.error("Winning key does not derive address %s", export.address)
    finally:
        result.secret_key.zero()

    return 0 if verified else 1


def parse_command(line: str) -> Optional[tuple[str, Optional[str]]]:
    """Parse one line of interactive input into (command, pattern)."""
    parts = line.split()
    if not parts:
        return None

    command = parts[0].lower()
    if command in ("prefix", "suffix", "contains"):
        if len(parts) < 2:
            return None
        return command, parts[1]
    if command in ("help", "info"):
        return "help", None
    if command in ("exit", "quit"):
        return "exit", None
    return None


def interactive(args: argparse.Namespace) -> int:
    print(f"fuelvanity v{__version__} interactive mode. Type 'help' for commands.")
    while True:
        try:
            line = input(PROMPT)
        except (EOFError, KeyboardInterrupt):
            print()
            return 0

        parsed = parse_command(line)
        if parsed is None:
            if line.strip():
                print("Unknown command. Type 'help' for commands.")
            continue

        command, pattern = parsed
        if command == "exit":
            return 0
        if command == "help":
            print(INTERACTIVE_HELP)
            continue
        run_search(MatchPosition(command), pattern, args)


def main(argv: list[str] = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if args.command in (None, "interactive"):
        return interactive(args)
    return run_search(MatchPosition(args.command), args.pattern, args)
