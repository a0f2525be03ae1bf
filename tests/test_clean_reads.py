# /// script
# requires-python = ">=3.10"
# dependencies = [
#     "loguru",
#     "pytest",
# ]
# ///
"""
Integration tests for clean_reads.py

Runs the read cleaning workflow end to end on small FASTQ files and
in-memory streams.
"""

import gzip
import io
import sys
from unittest.mock import patch

import pytest
from clean_reads import (
    build_parser,
    configure_logging,
    main,
    open_fastq,
    process_stream,
)
from fastq_record import FormatError, QualityEncoding
from loguru import logger
from read_policy import UserConfig


class TestProcessStream:
    """Test the per-read cleaning loop."""

    def test_no_trimming(self, sample_fastq_text):
        outp = io.StringIO()
        config = UserConfig(min_genomic_length=10)
        kept, discarded = process_stream(io.StringIO(sample_fastq_text), outp, config)
        assert (kept, discarded) == (2, 1)
        assert outp.getvalue().count("@read_") == 2

    def test_trimming_and_filtering(self, sample_fastq_text):
        outp = io.StringIO()
        config = UserConfig(
            trim_ambiguous_bases=True, trim_by_quality=True, min_genomic_length=10
        )
        kept, discarded = process_stream(io.StringIO(sample_fastq_text), outp, config)
        assert (kept, discarded) == (2, 1)
        assert outp.getvalue() == (
            "@read_1\nACGTACGTACGTACGTACGT\n+\nIIIIIIIIIIIIIIIIIIII\n"
            "@read_2\nACGTACGTACGTACGT\n+\nIIIIIIIIIIIIIIII\n"
        )

    def test_max_ns_filter(self, sample_fastq_text):
        outp = io.StringIO()
        config = UserConfig(min_genomic_length=0, max_ambiguous_bases=1)
        kept, discarded = process_stream(io.StringIO(sample_fastq_text), outp, config)
        assert (kept, discarded) == (1, 2)

    def test_phred_64_output(self):
        outp = io.StringIO()
        config = UserConfig(
            min_genomic_length=1, quality_output_fmt=QualityEncoding.PHRED_64
        )
        process_stream(io.StringIO("@r\nACGT\n+\n!+5I\n"), outp, config)
        assert outp.getvalue() == "@r\nACGT\n+\n@JTh\n"

    def test_phred_64_input(self):
        outp = io.StringIO()
        config = UserConfig(
            min_genomic_length=1, quality_input_fmt=QualityEncoding.PHRED_64
        )
        process_stream(io.StringIO("@r\nACGT\n+\n@JTh\n"), outp, config)
        assert outp.getvalue() == "@r\nACGT\n+\n!+5I\n"

    def test_barcode_trimming(self):
        outp = io.StringIO()
        config = UserConfig(min_genomic_length=1, barcode="ACGT")
        process_stream(io.StringIO("@r\nACGTGGCC\n+\nIIIIJJJJ\n"), outp, config)
        assert outp.getvalue() == "@r\nGGCC\n+\nJJJJ\n"

    def test_malformed_input(self):
        config = UserConfig(min_genomic_length=1)
        with pytest.raises(FormatError, match="record 1"):
            process_stream(io.StringIO("@r\nACGT\n+\nIII\n"), io.StringIO(), config)

    def test_empty_input(self, default_config):
        assert process_stream(io.StringIO(""), io.StringIO(), default_config) == (0, 0)


class TestFileIO:
    """Test opening plain and gzipped FASTQ files."""

    def test_open_plain(self, sample_fastq_file):
        with open_fastq(str(sample_fastq_file), write=False) as handle:
            assert handle.readline() == "@read_1\n"

    def test_open_gzip_round_trip(self, temp_dir):
        path = temp_dir / "reads.fastq.gz"
        with open_fastq(str(path), write=True) as handle:
            handle.write("@r\nACGT\n+\nIIII\n")
        with gzip.open(path, "rt") as handle:
            assert handle.read() == "@r\nACGT\n+\nIIII\n"

    def test_dash_means_standard_streams(self):
        assert open_fastq("-", write=False) is sys.stdin
        assert open_fastq("-", write=True) is sys.stdout

    def test_missing_input_is_logged(self, temp_dir):
        """A missing input file is reported through the logger before raising."""
        messages = []
        logger.add(messages.append, level="ERROR", format="{message}")
        missing = temp_dir / "missing.fastq"

        with pytest.raises(FileNotFoundError, match="does not exist"):
            open_fastq(str(missing), write=False)

        assert any(f"Input FASTQ does not exist: {missing}" in m for m in messages)

    def test_non_ascii_bytes_survive_decoding(self, temp_dir):
        """Undecodable bytes are read as surrogates rather than raising."""
        path = temp_dir / "latin1.fastq"
        path.write_bytes(b"@r\xe9\nACGT\n+\nIIII\n")
        with open_fastq(str(path), write=False) as handle:
            assert handle.readline() == "@r\udce9\n"


class TestMainFunction:
    """Test the main CLI entry point."""

    def test_main_basic_run(self, sample_fastq_file, temp_dir):
        output_path = temp_dir / "cleaned.fastq"
        test_args = [
            "clean_reads.py",
            "--in",
            str(sample_fastq_file),
            "--out",
            str(output_path),
            "--trimns",
            "--trimqualities",
            "--minlength",
            "10",
        ]

        with patch("sys.argv", test_args):
            main()

        assert output_path.read_text() == (
            "@read_1\nACGTACGTACGTACGTACGT\n+\nIIIIIIIIIIIIIIIIIIII\n"
            "@read_2\nACGTACGTACGTACGT\n+\nIIIIIIIIIIIIIIII\n"
        )

    def test_main_gzip_output(self, sample_fastq_file, temp_dir):
        output_path = temp_dir / "cleaned.fastq.gz"
        main(["-i", str(sample_fastq_file), "-o", str(output_path), "--minlength", "1", "-q"])

        with gzip.open(output_path, "rt") as handle:
            assert handle.read().count("@read_") == 3

    def test_main_with_verbose_logging(self, sample_fastq_file, temp_dir):
        output_path = temp_dir / "cleaned.fastq"
        main(["-i", str(sample_fastq_file), "-o", str(output_path), "-vv"])
        assert output_path.exists()

    def test_main_invalid_config(self, sample_fastq_file, temp_dir):
        output_path = temp_dir / "cleaned.fastq"
        args = ["-i", str(sample_fastq_file), "-o", str(output_path), "--minquality", "50"]
        with pytest.raises(SystemExit) as excinfo:
            main(args)
        assert excinfo.value.code == 1

    def test_main_malformed_input(self, temp_dir):
        input_path = temp_dir / "bad.fastq"
        input_path.write_text("@r\nACGT\n+\nIII\n")
        with pytest.raises(SystemExit) as excinfo:
            main(["-i", str(input_path), "-o", str(temp_dir / "out.fastq")])
        assert excinfo.value.code == 1

    def test_main_non_ascii_input(self, temp_dir):
        """A non-ASCII quality byte is a malformed record, not a decode crash."""
        input_path = temp_dir / "bad.fastq"
        input_path.write_bytes(b"@r\nACGT\n+\nII\xffI\n")
        with pytest.raises(SystemExit) as excinfo:
            main(["-i", str(input_path), "-o", str(temp_dir / "out.fastq")])
        assert excinfo.value.code == 1

    def test_main_non_ascii_gzip_input(self, temp_dir):
        input_path = temp_dir / "bad.fastq.gz"
        with gzip.open(input_path, "wb") as handle:
            handle.write(b"@r\nAC\xc3\xa7T\n+\nIIII\n")
        with pytest.raises(SystemExit) as excinfo:
            main(["-i", str(input_path), "-o", str(temp_dir / "out.fastq")])
        assert excinfo.value.code == 1

    def test_main_missing_input(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            main(["-i", str(temp_dir / "missing.fastq"), "-o", str(temp_dir / "out.fastq")])
        assert not (temp_dir / "out.fastq").exists()


class TestLogging:
    """Test logging configuration."""

    def test_configure_logging_default(self):
        configure_logging(0, 0)

    def test_configure_logging_verbose(self):
        configure_logging(3, 0)  # TRACE level

    def test_configure_logging_quiet(self):
        configure_logging(0, 3)  # CRITICAL level

    def test_default_level_is_success(self, capsys):
        configure_logging(0, 0)
        logger.info("hidden info")
        logger.success("shown success")
        err = capsys.readouterr().err
        assert "hidden info" not in err
        assert "shown success" in err

    def test_single_quiet_drops_success_keeps_warning(self, capsys):
        """-q steps down from SUCCESS to WARNING."""
        configure_logging(0, 1)
        logger.success("hidden success")
        logger.warning("shown warning")
        err = capsys.readouterr().err
        assert "hidden success" not in err
        assert "shown warning" in err

    def test_single_verbose_shows_info(self, capsys):
        """-v steps up from SUCCESS to INFO."""
        configure_logging(1, 0)
        logger.debug("hidden debug")
        logger.info("shown info")
        err = capsys.readouterr().err
        assert "hidden debug" not in err
        assert "shown info" in err


class TestBuildParser:
    """Test the argument parser."""

    def test_verbosity_counts(self):
        args = build_parser().parse_args(["-i", "in.fastq", "-vv"])
        assert (args.verbose, args.quiet) == (2, 0)
        args = build_parser().parse_args(["-i", "in.fastq", "-qqq"])
        assert (args.verbose, args.quiet) == (0, 3)

    def test_verbose_and_quiet_are_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["-i", "in.fastq", "-v", "-q"])

    def test_help_describes_success_base_level(self):
        assert "SUCCESS -> WARNING" in build_parser.__doc__
        assert "SUCCESS -> INFO" in build_parser.__doc__
