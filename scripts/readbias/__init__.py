"""
readbias - Core Library

Streaming mapping-rate QC for sequencing reads:
- SAM flag decoding into mapping categories
- Windowed aggregation of categories into summary rows
- HISAT2 subprocess launch and streaming SAM decoding
- CB tag rewriting and window reports
"""

from .flags import (
    ReadMode,
    MappingCategory,
    classify,
)

from .binning import (
    BinCounter,
    BinRow,
    OutputLayout,
    format_header,
    format_row,
)

from .aligner import (
    ChannelKind,
    build_hisat2_command,
    launch_aligner,
)

from .errors import (
    ReadbiasError,
    ConfigError,
    ChannelError,
    AlignerError,
    HeaderError,
    StreamDecodeError,
)

from .pipeline import (
    RunSummary,
    run_readbias,
    write_bins,
)

__version__ = "1.0.0"

__all__ = [
    # Flags
    "ReadMode",
    "MappingCategory",
    "classify",
    # Binning
    "BinCounter",
    "BinRow",
    "OutputLayout",
    "format_header",
    "format_row",
    # Aligner
    "ChannelKind",
    "build_hisat2_command",
    "launch_aligner",
    # Errors
    "ReadbiasError",
    "ConfigError",
    "ChannelError",
    "AlignerError",
    "HeaderError",
    "StreamDecodeError",
    # Pipeline
    "RunSummary",
    "run_readbias",
    "write_bins",
]
