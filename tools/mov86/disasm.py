"""
disasm.py - Command-line driver for the 8086 MOV disassembler

Usage: disasm.py <binary>

Reads the whole file into memory, writes a NASM-compatible listing to
stdout and stops at the first instruction it cannot decode, with a
diagnostic on stderr and a non-zero exit status. Lines already written
before the failure are kept.

Set MOV86_LOG_LEVEL=DEBUG to trace every decoded instruction.

Part of the mov86 project
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional, TextIO

from decode16 import Decoder
from decode_errors import DecodeError
from render import Listing, render_annotated

LOG_LEVEL_ENV = 'MOV86_LOG_LEVEL'

log = logging.getLogger('mov86')


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='mov86',
        description='Disassemble 8086 MOV instructions from a raw binary file',
    )
    parser.add_argument(
        'input',
        help='File containing raw 8086 machine code (no header)',
    )
    return parser


def setup_logging(level_name: Optional[str] = None):
    """Log to stderr; level from the argument or MOV86_LOG_LEVEL."""
    level_name = (level_name or os.environ.get(LOG_LEVEL_ENV) or 'WARNING').upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format='%(levelname)s: %(message)s',
        stream=sys.stderr,
        force=True,
    )


def disassemble(data: bytes, source_name: str, out: TextIO) -> int:
    """Write the listing for `data` to `out` and return the instruction count.

    Each line is written as soon as its instruction is decoded, so a
    DecodeError leaves every earlier line in `out`.
    """
    listing = Listing(out, source_name)
    listing.header()
    for inst in Decoder(data).instructions():
        if log.isEnabledFor(logging.DEBUG):
            log.debug(render_annotated(inst))
        listing.instruction(inst)
    return listing.count


def main(argv: Optional[list] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    setup_logging()

    try:
        data = Path(args.input).read_bytes()
    except OSError as e:
        log.error('cannot read %s: %s', args.input, e.strerror or e)
        return 1

    try:
        count = disassemble(data, args.input, sys.stdout)
    except DecodeError as e:
        sys.stdout.flush()
        log.error('%s: %s', args.input, e)
        return 1

    log.info('%s: %d instructions decoded', args.input, count)
    return 0


if __name__ == '__main__':
    sys.exit(main())
