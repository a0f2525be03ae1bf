# /// script
# requires-python = ">=3.10"
# dependencies = [
#     "loguru",
#     "pytest",
# ]
# ///
"""
Pytest fixtures and configuration for the FASTQ cleaning tools.

Provides shared records, configurations, and FASTQ files for testing
fastq_record.py, read_policy.py and clean_reads.py.
"""

import sys
import tempfile
from collections.abc import Iterator
from pathlib import Path

import pytest

# Add bin directory to Python path so we can import the modules under test
BIN_DIR = Path(__file__).parent.parent / "bin"
sys.path.insert(0, str(BIN_DIR))

# Now we can import the modules we're testing
from fastq_record import FastqRecord
from read_policy import UserConfig


@pytest.fixture
def temp_dir() -> Iterator[Path]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def simple_record() -> FastqRecord:
    """A small Phred+33 record with a spread of quality scores."""
    return FastqRecord("Rec", "ACTTAG", "12I$12")


@pytest.fixture
def default_config() -> UserConfig:
    """Configuration with every setting at its default."""
    return UserConfig()


@pytest.fixture
def trimming_config() -> UserConfig:
    """Configuration with N and quality trimming enabled."""
    return UserConfig(
        trim_ambiguous_bases=True,
        trim_by_quality=True,
        low_quality_score=2,
        min_genomic_length=5,
        max_ambiguous_bases=2,
    )


@pytest.fixture
def sample_fastq_text() -> str:
    """Three single-end reads, the last too short to survive trimming."""
    return (
        "@read_1\n"
        "ACGTACGTACGTACGTACGT\n"
        "+\n"
        "IIIIIIIIIIIIIIIIIIII\n"
        "@read_2\n"
        "NNACGTACGTACGTACGTAC\n"
        "+\n"
        "!!IIIIIIIIIIIIIIII##\n"
        "@read_3\n"
        "NNNNACGT\n"
        "+ ignored text\n"
        "IIIIIIII\n"
    )


@pytest.fixture
def sample_fastq_file(temp_dir: Path, sample_fastq_text: str) -> Path:
    """Write the sample reads to a FASTQ file."""
    fastq_path = temp_dir / "sample.fastq"
    fastq_path.write_text(sample_fastq_text)
    return fastq_path


@pytest.fixture(autouse=True)
def configure_logging_for_tests() -> None:
    """Configure logging for tests to reduce noise."""
    # Remove existing handlers and set to WARNING level for tests
    from loguru import logger

    logger.remove()
    logger.add(sys.stderr, level="WARNING")
