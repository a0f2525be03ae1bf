#!/usr/bin/env python3
# /// script
# requires-python = ">=3.10"
# dependencies = [
#     "loguru",
# ]
# ///
"""
Read cleaning policy: alignment classification, read acceptance and the
optional barcode and quality trimming steps, all driven by a UserConfig.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING, NamedTuple

from loguru import logger

from fastq_record import (
    MAX_PHRED_SCORE,
    FormatError,
    NTrimmed,
    QualityEncoding,
    clean_sequence,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastq_record import FastqRecord

# ------------------------------- CONSTANTS -------------------------------- #

# Overlaps shorter than this may not contain any mismatches
MIN_OVERLAP_WITH_MISMATCHES: int = 6
# Overlaps shorter than this may contain at most one mismatch
MIN_OVERLAP_WITH_RATE: int = 10

DEFAULT_MISMATCH_RATE_SE: float = 1.0 / 3.0
DEFAULT_MISMATCH_RATE_PE: float = 1.0 / 10.0

BARCODE_MAX_MISMATCHES: int = 1


# ------------------------------- DATA TYPES -------------------------------- #


class AlignmentInfo(NamedTuple):
    """Summary of a candidate alignment produced by an aligner."""

    score: int = 0
    length: int = 0  # aligned span, including gaps
    n_mismatches: int = 0
    n_ambiguous: int = 0  # positions where either base is N
    offset: int = 0  # start of the query relative to the read


class AlignmentType(Enum):
    """Outcome of classifying a candidate alignment."""

    NOT_ALIGNED = auto()
    POOR_ALIGNMENT = auto()
    VALID_ALIGNMENT = auto()


@dataclass(frozen=True)
class UserConfig:
    """
    Read cleaning settings.

    `mismatch_threshold` follows the command-line convention: a value above 1
    is read as 1/value, and a negative value selects the default rate for the
    sequencing mode (1/10 for paired-end, 1/3 for single-end reads).
    """

    min_genomic_length: int = 15
    max_ambiguous_bases: int = 1000
    min_alignment_length: int = 11
    mismatch_threshold: float = -1.0
    collapse: bool = False
    identify_adapters: bool = False
    paired_ended_mode: bool = False
    low_quality_score: int = 2
    trim_ambiguous_bases: bool = False
    trim_by_quality: bool = False
    shift: int = 2
    barcode: str = ""
    quality_input_fmt: QualityEncoding = QualityEncoding.PHRED_33
    quality_output_fmt: QualityEncoding = QualityEncoding.PHRED_33

    def __post_init__(self) -> None:
        if self.low_quality_score > MAX_PHRED_SCORE:
            msg = (
                f"Invalid minimum quality {self.low_quality_score}; "
                f"must be in the range 0 .. {MAX_PHRED_SCORE}"
            )
            logger.error(msg)
            raise ValueError(msg)

        if self.quality_output_fmt is QualityEncoding.SOLEXA:
            msg = "Output qualities must be Phred+33 or Phred+64 encoded"
            logger.error(msg)
            raise ValueError(msg)

        if self.shift < 0:
            msg = f"Barcode shift must be non-negative, got {self.shift}"
            logger.error(msg)
            raise ValueError(msg)

        try:
            barcode = clean_sequence(self.barcode)
        except FormatError as err:
            msg = f"Invalid barcode sequence {self.barcode!r}: {err}"
            logger.error(msg)
            raise ValueError(msg) from err
        # frozen dataclass: store the normalized barcode
        object.__setattr__(self, "barcode", barcode)

    @property
    def trim_barcode(self) -> bool:
        """True if a 5' barcode was configured."""
        return bool(self.barcode)

    @property
    def overlap_mode(self) -> bool:
        """Collapsing and adapter identification both judge alignments by overlap length."""
        return self.collapse or self.identify_adapters

    def mismatch_rate(self) -> float:
        """Resolve `mismatch_threshold` into a rate in (0, 1]."""
        if self.mismatch_threshold > 1:
            return 1.0 / self.mismatch_threshold
        if self.mismatch_threshold < 0:
            if self.paired_ended_mode:
                return DEFAULT_MISMATCH_RATE_PE
            return DEFAULT_MISMATCH_RATE_SE
        return self.mismatch_threshold

    def evaluate_alignment(self, alignment: AlignmentInfo) -> AlignmentType:
        """
        Classify a candidate adapter, barcode, or mate overlap alignment.

        Mismatches are budgeted against the bases actually compared (ambiguous
        positions excluded). Overlaps under 6 bases allow no mismatches, and
        overlaps under 10 bases at most one. In overlap mode (collapse or
        adapter identification) short overlaps are rejected outright;
        otherwise alignments scoring <= 0 are reported as poor.
        """
        if not alignment.length:
            return AlignmentType.NOT_ALIGNED

        n_aligned = alignment.length - alignment.n_ambiguous

        mm_threshold = math.floor(self.mismatch_rate() * n_aligned)
        if n_aligned < MIN_OVERLAP_WITH_MISMATCHES:
            mm_threshold = 0
        elif n_aligned < MIN_OVERLAP_WITH_RATE:
            mm_threshold = min(1, mm_threshold)

        if alignment.n_mismatches > mm_threshold:
            return AlignmentType.NOT_ALIGNED

        if self.overlap_mode:
            if n_aligned < self.min_alignment_length:
                return AlignmentType.NOT_ALIGNED
            return AlignmentType.VALID_ALIGNMENT

        if alignment.score <= 0:
            return AlignmentType.POOR_ALIGNMENT
        return AlignmentType.VALID_ALIGNMENT

    def is_acceptable_read(self, record: FastqRecord) -> bool:
        """True if a trimmed read is long enough and has few enough Ns."""
        return (
            record.length() >= self.min_genomic_length
            and record.count_ns() <= self.max_ambiguous_bases
        )

    def trim_barcode_if_enabled(
        self,
        record: FastqRecord,
        locator: Callable[[FastqRecord, str, int], bool] | None = None,
    ) -> bool:
        """Remove the configured 5' barcode from `record`, if any."""
        return maybe_trim_barcode(
            record,
            self.barcode,
            self.shift,
            enabled=self.trim_barcode,
            locator=locator,
        )

    def trim_sequence_by_quality_if_enabled(self, record: FastqRecord) -> NTrimmed:
        """Apply N and low-quality trimming as configured."""
        if not (self.trim_ambiguous_bases or self.trim_by_quality):
            return NTrimmed(0, 0)

        threshold = self.low_quality_score if self.trim_by_quality else -1
        return record.trim_low_quality_bases(self.trim_ambiguous_bases, threshold)


# ---------------------------- BARCODE TRIMMING ----------------------------- #


def _align_ungapped(query: str, read: str, offset: int) -> AlignmentInfo:
    """
    Score `query` against the start of `read` without gaps: +1 per match,
    -1 per mismatch, 0 where either base is N.
    """
    score = n_mismatches = n_ambiguous = 0
    for query_nt, read_nt in zip(query, read):
        if query_nt == "N" or read_nt == "N":
            n_ambiguous += 1
        elif query_nt == read_nt:
            score += 1
        else:
            score -= 1
            n_mismatches += 1

    return AlignmentInfo(
        score=score,
        length=min(len(query), len(read)),
        n_mismatches=n_mismatches,
        n_ambiguous=n_ambiguous,
        offset=offset,
    )


def locate_barcode(
    record: FastqRecord,
    barcode: str,
    shift: int,
    max_mismatches: int = BARCODE_MAX_MISMATCHES,
) -> AlignmentInfo | None:
    """
    Find `barcode` at the 5' end of `record`.

    Up to `shift` leading barcode bases may be missing from the read; a
    placement with `k` missing bases has offset `-k`. The best placement
    (highest score, then fewest mismatches) is returned if it scores above
    zero with at most `max_mismatches` mismatches, otherwise None.
    """
    best: AlignmentInfo | None = None
    max_overhang = min(shift, len(barcode) - 1)
    for overhang in range(max_overhang + 1):
        candidate = _align_ungapped(barcode[overhang:], record.sequence, -overhang)
        if candidate.score <= 0 or candidate.n_mismatches > max_mismatches:
            continue
        if best is None or (candidate.score, -candidate.n_mismatches) > (
            best.score,
            -best.n_mismatches,
        ):
            best = candidate

    return best


def truncate_barcode(
    record: FastqRecord,
    barcode: str,
    shift: int,
    max_mismatches: int = BARCODE_MAX_MISMATCHES,
) -> bool:
    """Remove `barcode` from the 5' end of `record`; returns True if it was found."""
    alignment = locate_barcode(record, barcode, shift, max_mismatches)
    if alignment is None:
        logger.trace(f"No barcode found in '{record.header}'")
        return False

    # alignment.length already accounts for the 5' overhang
    record.truncate(alignment.length)
    logger.trace(
        f"Trimmed barcode from '{record.header}': offset={alignment.offset}, "
        f"mismatches={alignment.n_mismatches}, kept={record.length()}",
    )
    return True


def maybe_trim_barcode(
    record: FastqRecord,
    barcode: str,
    shift: int,
    enabled: bool,  # noqa: FBT001
    locator: Callable[[FastqRecord, str, int], bool] | None = None,
) -> bool:
    """
    Trim a 5' barcode if barcode trimming is enabled.

    The search itself is delegated to `locator` (default: `truncate_barcode`),
    which must return whether a barcode was found and, if so, truncate the
    read past it.
    """
    if not enabled:
        return False

    locator = locator or truncate_barcode
    return locator(record, barcode, shift)
