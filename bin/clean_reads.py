#!/usr/bin/env python3
# /// script
# requires-python = ">=3.10"
# dependencies = [
#     "loguru",
# ]
# ///
"""
Clean single-end FASTQ reads: optional 5' barcode removal, N and low-quality
end trimming, length and N-count filtering, and quality re-encoding.
"""

from __future__ import annotations

import argparse
import gzip
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from fastq_record import FormatError, QualityEncoding, read_fastq
from read_policy import UserConfig

if TYPE_CHECKING:
    from collections.abc import Sequence
    from typing import TextIO

# Emit a progress debug line after processing this many reads
DEBUG_EVERY: int = 100_000

# Non-ASCII bytes pass through text I/O as lone surrogates
TEXT_ERRORS: str = "surrogateescape"


# ----------------------------- LOGGING SETUP ------------------------------- #


def configure_logging(verbose: int, quiet: int) -> None:
    """
    Base at SUCCESS (0). Positive → louder (more verbose), negative → quieter.
    Map:
      +3.. = TRACE
      +2   = DEBUG
      +1   = INFO
       0   = SUCCESS
      -1   = WARNING
      -2   = ERROR
      <=-3 = CRITICAL
    """
    logger.remove()
    delta = verbose - quiet
    match delta:
        case d if d >= 3:  # noqa: PLR2004
            level_str = "TRACE"
        case 2:
            level_str = "DEBUG"
        case 1:
            level_str = "INFO"
        case 0:
            level_str = "SUCCESS"
        case -1:
            level_str = "WARNING"
        case -2:
            level_str = "ERROR"
        case d if d <= -3:  # noqa: PLR2004
            level_str = "CRITICAL"
    logger.add(sys.stderr, level=level_str)
    logger.debug(f"Logger configured at level: {level_str}")


# ----------------------------- I/O UTILITIES ------------------------------- #


def open_fastq(path: str, write: bool) -> TextIO:  # noqa: FBT001
    """
    Open a (optionally gzipped) FASTQ file; '-' means stdin/stdout.

    Files are read as ASCII with undecodable bytes kept as surrogates; a
    stray non-ASCII byte then fails record validation as a FormatError.
    """
    if path == "-":
        return sys.stdout if write else sys.stdin

    if not write and not Path(path).is_file():
        msg = f"Input FASTQ does not exist: {path}"
        logger.error(msg)
        raise FileNotFoundError(msg)

    mode = "wt" if write else "rt"
    action = "write" if write else "read"
    logger.debug(f"Opening for {action}: {path}")
    if path.lower().endswith(".gz"):
        return gzip.open(path, mode, encoding="ascii", errors=TEXT_ERRORS)
    return open(path, mode, encoding="ascii", errors=TEXT_ERRORS)  # noqa: SIM115


# ------------------------------ CORE LOGIC --------------------------------- #


def process_stream(
    inp: TextIO,
    outp: TextIO,
    config: UserConfig,
) -> tuple[int, int]:
    """
    Clean every read in `inp` and write the acceptable ones to `outp`.

    Per read: strip the 5' barcode (if configured), trim Ns and low-quality
    bases (if configured), then keep the read only if it passes the length
    and N-count filters.

    Returns:
        Tuple of (kept_reads, discarded_reads)
    """
    kept = 0
    discarded = 0

    for n_seen, record in enumerate(read_fastq(inp, config.quality_input_fmt), 1):
        if n_seen % DEBUG_EVERY == 0:
            logger.debug(f"Progress: processed={n_seen}, kept={kept}, discarded={discarded}")

        config.trim_barcode_if_enabled(record)
        config.trim_sequence_by_quality_if_enabled(record)

        if not config.is_acceptable_read(record):
            discarded += 1
            logger.debug(
                f"Discarding read '{record.header}': length={record.length()}, "
                f"Ns={record.count_ns()}",
            )
            continue

        record.write(outp, config.quality_output_fmt)
        kept += 1

    logger.info(f"Process totals — processed={kept + discarded}, kept={kept}, discarded={discarded}")
    return kept, discarded


# --------------------------------- CLI ------------------------------------- #


def build_parser() -> argparse.ArgumentParser:
    """
    CLI:
      -v / -vv / -vvv : increase verbosity (SUCCESS -> INFO -> DEBUG -> TRACE)
      -q / -qq / -qqq : decrease verbosity (SUCCESS -> WARNING -> ERROR -> CRITICAL)
    (Mutually exclusive.)
    """
    p = argparse.ArgumentParser(
        description=(
            "Clean single-end FASTQ reads: remove a 5' barcode, trim Ns and\n"
            "low-quality bases from both termini, and discard reads that are\n"
            "too short or contain too many Ns. Accepts .gz input/output."
        ),
    )

    # I/O
    p.add_argument(
        "-i",
        "--in",
        dest="in_path",
        required=True,
        help="Input FASTQ ('-' for stdin)",
    )
    p.add_argument(
        "-o",
        "--out",
        dest="out_path",
        default="-",
        help="Output FASTQ ('-' for stdout, the default)",
    )
    p.add_argument(
        "--qualitybase",
        choices=["33", "64", "solexa"],
        default="33",
        help="Quality encoding of the input (default: 33)",
    )
    p.add_argument(
        "--qualitybase-output",
        choices=["33", "64"],
        default="33",
        help="Quality encoding of the output (default: 33)",
    )

    # Trimming
    trim_group = p.add_argument_group("Trimming")
    trim_group.add_argument(
        "--5prime",
        dest="barcode",
        default="",
        help="Barcode to detect (max 1 mismatch) and trim from the 5' end of reads",
    )
    trim_group.add_argument(
        "--shift",
        type=int,
        default=2,
        help="Allow up to N barcode bases to be missing from the 5' end (default: 2)",
    )
    trim_group.add_argument(
        "--trimns",
        action="store_true",
        help="Trim ambiguous bases (N) at the 5'/3' termini",
    )
    trim_group.add_argument(
        "--trimqualities",
        action="store_true",
        help="Trim bases at the 5'/3' termini with quality scores <= --minquality",
    )
    trim_group.add_argument(
        "--minquality",
        type=int,
        default=2,
        help="Inclusive quality cutoff used by --trimqualities (default: 2)",
    )

    # Filtering
    filter_group = p.add_argument_group("Filtering")
    filter_group.add_argument(
        "--minlength",
        type=int,
        default=15,
        help="Discard reads shorter than this after trimming (default: 15)",
    )
    filter_group.add_argument(
        "--maxns",
        type=int,
        default=1000,
        help="Discard reads with more Ns than this after trimming (default: 1000)",
    )

    # Verbosity: -v/-vv/-vvv or -q/-qq/-qqq (mutually exclusive)
    g = p.add_mutually_exclusive_group()
    g.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (use up to -vvv).",
    )
    g.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="Decrease verbosity (use up to -qqq).",
    )

    return p


def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose, args.quiet)
    logger.info("Starting read cleaning run.")

    try:
        config = UserConfig(
            min_genomic_length=max(0, args.minlength),
            max_ambiguous_bases=max(0, args.maxns),
            low_quality_score=args.minquality,
            trim_ambiguous_bases=bool(args.trimns),
            trim_by_quality=bool(args.trimqualities),
            shift=max(0, args.shift),
            barcode=args.barcode,
            quality_input_fmt=QualityEncoding.from_name(args.qualitybase),
            quality_output_fmt=QualityEncoding.from_name(args.qualitybase_output),
        )
    except ValueError:
        sys.exit(1)
    logger.debug(f"UserConfig: {config}")

    inp = open_fastq(args.in_path, write=False)
    try:
        outp = open_fastq(args.out_path, write=True)
    except OSError:
        if inp is not sys.stdin:
            inp.close()
        raise

    try:
        kept, discarded = process_stream(inp, outp, config)
    except (FormatError, UnicodeDecodeError) as err:
        logger.error(str(err))
        sys.exit(1)
    finally:
        if outp is not sys.stdout:
            outp.close()
        if inp is not sys.stdin:
            inp.close()

    logger.success(f"Kept: {kept} | Discarded: {discarded}")
    logger.info("Read cleaning run complete.")


if __name__ == "__main__":
    main()
