#!/usr/bin/env python3
# /// script
# requires-python = ">=3.10"
# dependencies = [
#     "loguru",
# ]
# ///
"""
FASTQ record model: quality encodings, validation, trimming and (de)serialization.

Every record keeps its qualities in the canonical Phred+33 form, whatever
encoding it was read in, and is re-encoded on the way out.
"""

from __future__ import annotations

import math
from enum import Enum, auto
from typing import TYPE_CHECKING, NamedTuple

from loguru import logger

if TYPE_CHECKING:
    from collections.abc import Iterator
    from typing import TextIO

# ------------------------------- CONSTANTS -------------------------------- #

MIN_PHRED_SCORE: int = 0
MAX_PHRED_SCORE: int = 41
# Phred+64 output stops at 'h'; 'i' is accepted on input only
MAX_PHRED_64_OUTPUT_SCORE: int = 40
MIN_SOLEXA_SCORE: int = -5

PHRED_OFFSET_33: int = 33
PHRED_OFFSET_64: int = 64

NUCLEOTIDES = frozenset("ACGTN")

# Normalization applied to raw sequences before alphabet validation
_CLEANUP_TABLE = str.maketrans("acgtn.", "ACGTNN")
_COMPLEMENT_TABLE = str.maketrans("ACGTN", "TGCAN")


# ------------------------------- ERRORS ------------------------------------ #


class FastqError(Exception):
    """Base class for errors raised while handling FASTQ records."""


class FormatError(FastqError, ValueError):
    """Raised for malformed records, bad nucleotides or illegal quality scores."""


class RangeError(FastqError, IndexError):
    """Raised when a position lies outside of a record."""


# --------------------------- QUALITY ENCODINGS ----------------------------- #


def _solexa_to_phred(score: int) -> int:
    """Convert a log-odds (Solexa) score to the nearest Phred score."""
    return int(10.0 * math.log10(10.0 ** (score / 10.0) + 1.0) + 0.5)


# Solexa characters ';' (-5) through 'i' (41), keyed by character
_SOLEXA_TO_PHRED: dict[str, int] = {
    chr(PHRED_OFFSET_64 + score): _solexa_to_phred(score)
    for score in range(MIN_SOLEXA_SCORE, MAX_PHRED_SCORE + 1)
}

# Lowest Solexa character for each reachable Phred score; Phred 0 has no
# Solexa equivalent and falls back to the lowest character.
_PHRED_TO_SOLEXA: dict[int, str] = {}
for _char, _phred in _SOLEXA_TO_PHRED.items():
    _PHRED_TO_SOLEXA.setdefault(_phred, _char)
for _phred in range(MIN_PHRED_SCORE, MAX_PHRED_SCORE + 1):
    _PHRED_TO_SOLEXA.setdefault(
        _phred, _PHRED_TO_SOLEXA.get(_phred + 1, chr(PHRED_OFFSET_64 + MIN_SOLEXA_SCORE))
    )
del _char, _phred


class QualityEncoding(Enum):
    """Supported encodings of per-base quality scores."""

    PHRED_33 = auto()  # '!' .. 'J'
    PHRED_64 = auto()  # '@' .. 'i'
    SOLEXA = auto()  # ';' .. 'i', log-odds scores

    @staticmethod
    def from_name(name: str) -> QualityEncoding:
        """Parse a command-line style encoding name ('33', '64' or 'solexa')."""
        match name.strip().lower():
            case "33":
                return QualityEncoding.PHRED_33
            case "64":
                return QualityEncoding.PHRED_64
            case "solexa":
                return QualityEncoding.SOLEXA
        msg = f"Invalid quality encoding {name!r}; expected '33', '64', or 'solexa'"
        raise ValueError(msg)

    @property
    def offset(self) -> int:
        """ASCII offset of the encoding; Solexa shares the Phred+64 offset."""
        if self is QualityEncoding.PHRED_33:
            return PHRED_OFFSET_33
        return PHRED_OFFSET_64

    def is_legal(self, char: str) -> bool:
        """True if `char` is a valid quality character in this encoding."""
        if self is QualityEncoding.SOLEXA:
            return char in _SOLEXA_TO_PHRED
        return MIN_PHRED_SCORE <= ord(char) - self.offset <= MAX_PHRED_SCORE

    def decode(self, char: str) -> int:
        """Return the Phred score encoded by `char`."""
        if not self.is_legal(char):
            msg = f"Quality character {char!r} is out of range for {self.name} encoding"
            raise FormatError(msg)
        if self is QualityEncoding.SOLEXA:
            return _SOLEXA_TO_PHRED[char]
        return ord(char) - self.offset

    def encode(self, score: int) -> str:
        """Return the character encoding the Phred score `score`."""
        score = min(max(score, MIN_PHRED_SCORE), MAX_PHRED_SCORE)
        if self is QualityEncoding.PHRED_64:
            score = min(score, MAX_PHRED_64_OUTPUT_SCORE)
        if self is QualityEncoding.SOLEXA:
            return _PHRED_TO_SOLEXA[score]
        return chr(score + self.offset)

    def to_phred33(self, qualities: str) -> str:
        """Validate a quality string and convert it to Phred+33."""
        for char in qualities:
            if not self.is_legal(char):
                msg = (
                    f"Quality score {char!r} is out of range for {self.name} "
                    f"encoding in {qualities!r}"
                )
                raise FormatError(msg)

        match self:
            case QualityEncoding.PHRED_33:
                return qualities
            case QualityEncoding.PHRED_64:
                return qualities.translate(_PHRED_64_TO_33)
            case QualityEncoding.SOLEXA:
                return qualities.translate(_SOLEXA_TO_33)

    def from_phred33(self, qualities: str) -> str:
        """Re-encode a canonical Phred+33 quality string in this encoding."""
        match self:
            case QualityEncoding.PHRED_33:
                return qualities
            case QualityEncoding.PHRED_64:
                return qualities.translate(_PHRED_33_TO_64)
            case QualityEncoding.SOLEXA:
                return qualities.translate(_PHRED_33_TO_SOLEXA)


# Whole-string translation tables, so that the encoding is chosen once per record
_PHRED_64_TO_33 = str.maketrans(
    {
        chr(PHRED_OFFSET_64 + q): chr(PHRED_OFFSET_33 + q)
        for q in range(MIN_PHRED_SCORE, MAX_PHRED_SCORE + 1)
    }
)
_PHRED_33_TO_64 = str.maketrans(
    {
        chr(PHRED_OFFSET_33 + q): chr(
            PHRED_OFFSET_64 + min(q, MAX_PHRED_64_OUTPUT_SCORE)
        )
        for q in range(MIN_PHRED_SCORE, MAX_PHRED_SCORE + 1)
    }
)
_SOLEXA_TO_33 = str.maketrans(
    {char: chr(PHRED_OFFSET_33 + q) for char, q in _SOLEXA_TO_PHRED.items()}
)
_PHRED_33_TO_SOLEXA = str.maketrans(
    {chr(PHRED_OFFSET_33 + q): char for q, char in _PHRED_TO_SOLEXA.items()}
)


# ------------------------------ SEQUENCES ---------------------------------- #


def clean_sequence(sequence: str) -> str:
    """
    Uppercase a nucleotide sequence and replace '.' with 'N'.

    Raises FormatError if the result contains anything but A, C, G, T and N.
    An empty sequence is returned unchanged.
    """
    cleaned = sequence.translate(_CLEANUP_TABLE)
    invalid = set(cleaned) - NUCLEOTIDES
    if invalid:
        msg = (
            f"Invalid character(s) {''.join(sorted(invalid))!r} in nucleotide "
            f"sequence {sequence!r}"
        )
        raise FormatError(msg)
    return cleaned


class NTrimmed(NamedTuple):
    """Number of bases removed from each end of a read."""

    five_prime: int
    three_prime: int


class FastqRecord:
    """
    A single FASTQ record with validated sequence and Phred+33 qualities.

    Records are validated as a whole on construction; mutating methods keep
    the sequence and quality strings the same length.
    """

    __slots__ = ("header", "qualities", "sequence")

    def __init__(
        self,
        header: str,
        sequence: str,
        qualities: str,
        encoding: QualityEncoding = QualityEncoding.PHRED_33,
    ) -> None:
        if not sequence:
            msg = f"Record {header!r} has an empty sequence"
            raise FormatError(msg)
        if not qualities:
            msg = f"Record {header!r} has an empty quality string"
            raise FormatError(msg)
        if len(sequence) != len(qualities):
            msg = (
                f"Record {header!r} has sequence/quality length mismatch: "
                f"seq={len(sequence)}, qual={len(qualities)}"
            )
            raise FormatError(msg)

        cleaned = clean_sequence(sequence)
        canonical = encoding.to_phred33(qualities)

        self.header: str = header
        self.sequence: str = cleaned
        self.qualities: str = canonical

    def __repr__(self) -> str:
        return (
            f"FastqRecord(header={self.header!r}, sequence={self.sequence!r}, "
            f"qualities={self.qualities!r})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FastqRecord):
            return NotImplemented
        return (self.header, self.sequence, self.qualities) == (
            other.header,
            other.sequence,
            other.qualities,
        )

    __hash__ = None  # mutable

    def __len__(self) -> int:
        return len(self.sequence)

    def length(self) -> int:
        """Number of bases in the read."""
        return len(self.sequence)

    def count_ns(self) -> int:
        """Number of ambiguous (N) bases in the read."""
        return self.sequence.count("N")

    # ---------------------------- mutation ---------------------------- #

    def trim_low_quality_bases(
        self,
        trim_ambiguous: bool,  # noqa: FBT001
        low_quality_threshold: int,
    ) -> NTrimmed:
        """
        Trim Ns (if `trim_ambiguous`) and bases with Phred scores at or below
        `low_quality_threshold` from both termini, stopping at the first base
        that qualifies for neither. A negative threshold disables quality
        trimming. If every base is trimmed, all of them are counted at the 5'.
        """
        seq = self.sequence
        qual = self.qualities

        def trimmable(i: int) -> bool:
            if trim_ambiguous and seq[i] == "N":
                return True
            return ord(qual[i]) - PHRED_OFFSET_33 <= low_quality_threshold

        seq_len = len(seq)
        left = 0
        while left < seq_len and trimmable(left):
            left += 1

        right = seq_len
        while right > left and trimmable(right - 1):
            right -= 1

        trimmed = NTrimmed(left, seq_len - right)
        if trimmed.five_prime or trimmed.three_prime:
            self.sequence = seq[left:right]
            self.qualities = qual[left:right]
            logger.trace(
                f"Quality trimmed '{self.header}': 5p={trimmed.five_prime}, "
                f"3p={trimmed.three_prime}, kept={len(self.sequence)}",
            )

        # Positive invariant: trimming removes exactly the counted bases
        assert len(self.sequence) == seq_len - sum(trimmed), (
            f"Trim arithmetic error for '{self.header}': {seq_len} - {trimmed} != {len(self.sequence)}"
        )
        return trimmed

    def truncate(self, start: int = 0, length: int | None = None) -> None:
        """
        Keep `length` bases starting at `start` (to the end if `length` is None).

        Like slicing a string by position and count: a `start` past the end of
        the read raises RangeError, while an oversized `length` is clamped.
        """
        seq_len = len(self.sequence)
        if start < 0 or start > seq_len:
            msg = f"Truncation start {start} is outside record '{self.header}' of length {seq_len}"
            raise RangeError(msg)
        if length is not None and length < 0:
            msg = f"Truncation length must be non-negative, got {length}"
            raise RangeError(msg)

        end = seq_len if length is None else min(seq_len, start + length)
        self.sequence = self.sequence[start:end]
        self.qualities = self.qualities[start:end]

        # Negative invariant: sequence and qualities never drift apart
        assert len(self.sequence) == len(self.qualities), (
            f"Sequence/quality length mismatch after truncating '{self.header}'"
        )

    def reverse_complement(self) -> None:
        """Reverse complement the sequence and reverse the qualities."""
        self.sequence = self.sequence.translate(_COMPLEMENT_TABLE)[::-1]
        self.qualities = self.qualities[::-1]

    def add_prefix_to_header(self, prefix: str) -> None:
        self.header = prefix + self.header

    # ------------------------------ I/O -------------------------------- #

    @classmethod
    def read(
        cls,
        stream: TextIO,
        encoding: QualityEncoding = QualityEncoding.PHRED_33,
    ) -> FastqRecord | None:
        """
        Read the next record from a text stream.

        Returns None if the stream is exhausted before a new record begins;
        end-of-input at any later point raises FormatError.
        """
        header = stream.readline()
        if not header:
            return None
        header = header.rstrip("\r\n")
        if not header.startswith("@"):
            msg = f"Malformed FASTQ header {header!r}; expected line starting with '@'"
            raise FormatError(msg)

        sequence = stream.readline()
        if not sequence:
            msg = f"Partial FASTQ record {header!r}; missing sequence"
            raise FormatError(msg)

        separator = stream.readline()
        if not separator:
            msg = f"Partial FASTQ record {header!r}; missing separator"
            raise FormatError(msg)
        if not separator.startswith("+"):
            msg = f"Malformed FASTQ separator {separator.rstrip()!r} for {header!r}"
            raise FormatError(msg)

        qualities = stream.readline()
        if not qualities:
            msg = f"Partial FASTQ record {header!r}; missing qualities"
            raise FormatError(msg)

        return cls(
            header[1:],
            sequence.rstrip("\r\n"),
            qualities.rstrip("\r\n"),
            encoding,
        )

    def to_string(self, encoding: QualityEncoding = QualityEncoding.PHRED_33) -> str:
        """Render the record as FASTQ text with qualities in `encoding`."""
        return (
            f"@{self.header}\n{self.sequence}\n+\n"
            f"{encoding.from_phred33(self.qualities)}\n"
        )

    def write(
        self,
        stream: TextIO,
        encoding: QualityEncoding = QualityEncoding.PHRED_33,
    ) -> None:
        stream.write(self.to_string(encoding))


def read_fastq(
    stream: TextIO,
    encoding: QualityEncoding = QualityEncoding.PHRED_33,
) -> Iterator[FastqRecord]:
    """Yield records from `stream` until it is exhausted."""
    n_records = 0
    while True:
        try:
            record = FastqRecord.read(stream, encoding)
        except FormatError as err:
            msg = f"Error in FASTQ record {n_records + 1}: {err}"
            raise FormatError(msg) from err
        if record is None:
            logger.debug(f"Read {n_records} FASTQ records")
            return
        n_records += 1
        yield record
