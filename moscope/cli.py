#!/usr/bin/env python3
"""
moscope - Mach-O inspector

Command-line interface for decoding Mach-O and Universal binaries.

Usage:
    moscope <binary> [--arch N | --all-archs] [--json] [-o FILE] [options]
    moscope -h | --help
    moscope --version

Arguments:
    binary             Path to a Mach-O image or Universal (fat) binary

Options:
    -h --help          Show this help message
    --version          Show version
"""

import sys
import argparse
import logging
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .config import Config
from .errors import InvalidArchitectureIndex, MachOError
from .formats.fat import select_architecture
from .formats.macho import MachOBinary, load
from .output.report import build_report
from .output.text_report import TextReport
from .utils.string_utils import split_section_list

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='moscope',
        description="moscope - Decode Mach-O and Universal binaries",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('binary', help='Mach-O or Universal binary to inspect')
    parser.add_argument('--version', action='version', version=f'moscope {__version__}')
    parser.add_argument('--config', type=str, help='Path to config.json')
    parser.add_argument('-v', '--verbose', action='count', default=0, help='More logging (-vv for debug)')

    selection = parser.add_mutually_exclusive_group()
    selection.add_argument('--arch', type=int, metavar='N', help='Architecture index of a Universal binary')
    selection.add_argument('--all-archs', action='store_true', help='Report every architecture')

    output = parser.add_argument_group('output')
    output.add_argument('--json', action='store_true', help='Write a JSON report')
    output.add_argument('-o', '--output', type=str, metavar='FILE', help='Write the report to FILE')
    output.add_argument('--no-color', action='store_true', help='Disable colored output')
    output.add_argument('--no-header', action='store_true', help='Omit the Mach-O header')
    output.add_argument('--no-load-commands', action='store_true', help='Omit the load command list')
    output.add_argument('--no-segments', action='store_true', help='Omit segments and sections')
    output.add_argument('--no-dylibs', action='store_true', help='Omit dynamic libraries')
    output.add_argument('--no-rpaths', action='store_true', help='Omit runtime search paths')
    output.add_argument('--no-symbols', action='store_true', help='Omit the symbol table')
    output.add_argument('--sort-symbols', action='store_true', help='Sort symbols by address, then name')
    output.add_argument('--max-symbols', type=int, metavar='N', help='Show at most N symbols')

    strings = parser.add_argument_group('strings')
    strings.add_argument('--strings', action='store_true', help='Extract printable strings')
    strings.add_argument('--min-string-length', type=int, metavar='N', help='Minimum string length')
    strings.add_argument('--max-strings', type=int, metavar='N', help='Stop after N strings')
    strings.add_argument('--string-sections', type=str, metavar='A,B',
                         help='Only scan these sections (sectname or segname,sectname)')
    strings.add_argument('--exclude-sections', type=str, metavar='A,B', help='Never scan these sections')
    strings.add_argument('--string-pattern', type=str, metavar='RE', help='Keep strings matching RE')

    return parser


def setup_logging(verbosity: int) -> None:
    """Route library logging through rich on stderr."""
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True))],
        force=True,
    )


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Command line flags win over the configuration file."""
    if args.no_header:
        config.show_header = False
    if args.no_load_commands:
        config.show_load_commands = False
    if args.no_segments:
        config.show_segments = False
    if args.no_dylibs:
        config.show_dylibs = False
    if args.no_rpaths:
        config.show_rpaths = False
    if args.no_symbols:
        config.show_symbols = False
    if args.strings:
        config.show_strings = True
    if args.no_color:
        config.color = False
    if args.sort_symbols:
        config.sort_symbols = True
    if args.max_symbols is not None:
        config.max_symbols = args.max_symbols
    if args.min_string_length is not None:
        config.min_string_length = args.min_string_length
    if args.max_strings is not None:
        config.max_strings = args.max_strings
    if args.string_sections:
        config.string_sections = split_section_list(args.string_sections)
    if args.exclude_sections:
        config.exclude_sections = split_section_list(args.exclude_sections)
    if args.string_pattern:
        config.string_pattern = args.string_pattern
    return config


def prompt_architecture(binary: MachOBinary) -> int:
    """
    Ask which slice of a Universal binary to decode.

    Raises:
        InvalidArchitectureIndex: If the answer is not a valid index
    """
    print(f"Found {len(binary.architectures)} architectures:")
    for entry in binary.architectures:
        print(f"  {entry.index}: {entry.cpu.family} ({entry.cpu.name})")
    answer = input("Select architecture: ").strip()
    try:
        index = int(answer)
    except ValueError:
        raise InvalidArchitectureIndex(f"Not an architecture index: {answer!r}") from None
    select_architecture(index, binary.architectures)
    return index


def choose_architectures(binary: MachOBinary, args: argparse.Namespace) -> List[int]:
    """Indices of the slices to decode, validated before any slice is touched."""
    if args.arch is not None:
        select_architecture(args.arch, binary.architectures)
        return [args.arch]
    if not binary.is_fat:
        return [0]
    if args.all_archs or args.json:
        return [entry.index for entry in binary.architectures]
    if not sys.stdin.isatty():
        raise InvalidArchitectureIndex(
            f"Universal binary has {len(binary.architectures)} architectures; "
            f"choose one with --arch or use --all-archs"
        )
    return [prompt_architecture(binary)]


def run(args: argparse.Namespace) -> None:
    config_path = Path(args.config) if args.config else None
    config = apply_overrides(Config.load(config_path), args)

    # Validate options before touching the input
    string_filter = config.string_filter()
    options = config.report_options(string_filter)

    data = Path(args.binary).read_bytes()
    binary = load(data)
    logger.info("%s: %s, %d architecture(s)", args.binary, binary.format.value, len(binary.architectures))

    indices = choose_architectures(binary, args)
    slices = [binary.slice(index) for index in indices]

    if args.json:
        report = build_report(binary, slices, options)
        if args.output:
            report.save(Path(args.output))
        else:
            print(report.to_json())
        return

    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            TextReport(Console(file=f, no_color=True, width=160), options).render(binary, slices)
    else:
        console = Console(no_color=not config.color, highlight=False)
        TextReport(console, options).render(binary, slices)


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        run(args)
    except MachOError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
    except (OSError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
    except (EOFError, KeyboardInterrupt):
        print("ERROR: No architecture selected", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
