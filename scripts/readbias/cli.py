#!/usr/bin/env python3
"""
Command line entry points.

readbias -- count read mapping per window
    readbias -r hisat2_index [-t io_threads] [-h hisat_threads] [-b bin_size] r1.fastq [r2.fastq]

    Example:
        readbias -r ref_index/basename -h 11 -b 5000 r1.fastq r2.fastq

append-cb -- append a suffix to the CB tag of every alignment
    append-cb in.bam out.bam NNATG 24

readbias-report -- mapping rates per window from a readbias table
    readbias-report readbias.tsv -o readbias.rates.tsv
"""

import argparse
import logging
import sys
from typing import List, Optional

import yaml

from .annotate import append_tag_suffix
from .config_parser import (
    DEFAULT_CONFIG,
    apply_env_overrides,
    build_settings,
    load_config,
    merge_config,
    set_nested,
)
from .errors import ConfigError, ReadbiasError
from .pipeline import run_readbias
from .report import add_rates, load_summary_table, print_summary, summarize

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

EXIT_FAILURE = 1
EXIT_USAGE = 2


def positive_int(value: str) -> int:
    """argparse type: integer >= 1 (0 and non-numeric are usage errors)."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid positive integer: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {number}")
    return number


def non_negative_int(value: str) -> int:
    """argparse type: integer >= 0 (0 and 1 both mean no worker pool)."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid non-negative integer: {value!r}")
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {number}")
    return number


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


# ============================================================================
# readbias
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    # -h is the aligner thread count, so help is --help only
    parser = argparse.ArgumentParser(
        prog="readbias",
        description="Assess mapping rate over read position",
        epilog="e.g. readbias -r ref_index/basename -h 11 -b 5000 r1.fastq r2.fastq",
        add_help=False,
    )
    parser.add_argument("-r", dest="index", metavar="hisat2_index",
                        help="HISAT2 index basename (required unless set in --config)")
    parser.add_argument("-t", dest="io_threads", type=positive_int, metavar="count_threads",
                        help="Decoder worker threads (default: 1)")
    parser.add_argument("-h", dest="aligner_threads", type=positive_int, metavar="hisat_threads",
                        help="HISAT2 threads (default: 4)")
    parser.add_argument("-b", dest="bin_size", type=positive_int, metavar="bin_size",
                        help="Records per window (default: 1)")
    parser.add_argument("--channel", choices=["pipe", "fifo"],
                        help="Aligner output channel (default: pipe)")
    parser.add_argument("--fifo-path", help="Named pipe path for --channel fifo")
    parser.add_argument("--layout", choices=["fixed", "compact"],
                        help="Output columns (default: fixed)")
    parser.add_argument("--aligner", dest="executable", help="Aligner executable (default: hisat2)")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging level (default: INFO)")
    parser.add_argument("--help", action="help", help="Show this help message and exit")
    parser.add_argument("reads", nargs="+", metavar="reads.fastq",
                        help="One FASTQ for single-end, two for paired-end input")
    return parser


# CLI destination -> config key
CLI_OVERRIDES = {
    "index": "aligner.index",
    "aligner_threads": "aligner.threads",
    "executable": "aligner.executable",
    "io_threads": "decoder.io_threads",
    "bin_size": "binning.bin_size",
    "channel": "channel.kind",
    "fifo_path": "channel.fifo_path",
    "layout": "output.layout",
}


def resolve_config(args: argparse.Namespace) -> dict:
    """Defaults, then config file, then environment, then command line."""
    file_config = load_config(args.config) if args.config else {}
    config = apply_env_overrides(merge_config(DEFAULT_CONFIG, file_config))
    for dest, key_path in CLI_OVERRIDES.items():
        value = getattr(args, dest)
        if value is not None:
            set_nested(config, key_path, value)
    return config


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if len(args.reads) > 2:
        parser.error("expected one or two reads files")

    setup_logging(args.log_level)

    try:
        config = resolve_config(args)
        settings = build_settings(config, args.reads[0], args.reads[1] if len(args.reads) > 1 else None)
    except (FileNotFoundError, yaml.YAMLError, ConfigError) as e:
        parser.print_usage(sys.stderr)
        print(f"readbias: error: {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        summary = run_readbias(settings, sys.stdout)
    except BrokenPipeError:
        logger.warning("Output closed before the run finished")
        return EXIT_FAILURE
    except (ReadbiasError, OSError) as e:
        print(f"readbias: {e}", file=sys.stderr)
        return EXIT_FAILURE

    logger.info(f"Done: {summary.records} records, {summary.windows} windows")
    return 0


# ============================================================================
# append-cb
# ============================================================================

def append_cb_main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="append-cb",
        description="Append 'val' to the 'CB' tag for all alignments",
        epilog="e.g. append-cb in.bam out.bam NNATG 24",
    )
    parser.add_argument("infile", help="Input SAM/BAM")
    parser.add_argument("outfile", help="Output BAM")
    parser.add_argument("val", help="Suffix appended to each CB tag")
    parser.add_argument("num_threads", type=non_negative_int,
                        help="htslib worker threads (0 or 1: no pool)")
    args = parser.parse_args(argv)

    setup_logging()

    try:
        stats = append_tag_suffix(args.infile, args.outfile, args.val, args.num_threads)
    except (OSError, ValueError) as e:
        print(f"append-cb: {e}", file=sys.stderr)
        return EXIT_FAILURE

    print(f"entries missing CB tag: {stats.missing_tag}", file=sys.stderr)
    return 0


# ============================================================================
# readbias-report
# ============================================================================

def report_main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="readbias-report",
        description="Per-window mapping rates from a readbias summary table",
    )
    parser.add_argument("table", help="Table written by readbias")
    parser.add_argument("-o", "--output", help="Write the table with rate columns to this TSV")
    args = parser.parse_args(argv)

    try:
        df = load_summary_table(args.table)
    except (OSError, ValueError) as e:
        print(f"readbias-report: {e}", file=sys.stderr)
        return EXIT_FAILURE

    if args.output:
        add_rates(df).to_csv(args.output, sep="\t", index=False)
        print(f"Rates saved to {args.output}")

    print_summary(summarize(df))
    return 0


if __name__ == "__main__":
    sys.exit(main())
