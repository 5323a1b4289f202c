"""
Windowed Aggregation of Mapping Categories

Classified records are counted in fixed-size, non-overlapping windows of
``bin_size`` records. When a window fills, one BinRow is emitted and the
per-category counters are reset. A trailing window that never fills is not
emitted.

Output layouts:
    FIXED    read, map, bad_map, unmap, r1_only, r2_only for both read modes;
             categories a mode never produces are written as 0
    COMPACT  read followed by the mode's own categories only
             single-end: map, unmap
             paired-end: map, bad_map, unmap, r1_only, r2_only, unclass
"""

import logging
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Iterator, Optional, Tuple

from .flags import MappingCategory, ReadMode, classify

logger = logging.getLogger(__name__)


class OutputLayout(Enum):
    FIXED = "fixed"
    COMPACT = "compact"


RECORDS_COLUMN = "read"

FIXED_COLUMNS: Tuple[MappingCategory, ...] = (
    MappingCategory.MAPPED,
    MappingCategory.BAD_MAPPED,
    MappingCategory.UNMAPPED,
    MappingCategory.R1_ONLY,
    MappingCategory.R2_ONLY,
)

MODE_CATEGORIES: Dict[ReadMode, Tuple[MappingCategory, ...]] = {
    ReadMode.SINGLE_END: (
        MappingCategory.MAPPED,
        MappingCategory.UNMAPPED,
    ),
    ReadMode.PAIRED_END: (
        MappingCategory.MAPPED,
        MappingCategory.BAD_MAPPED,
        MappingCategory.UNMAPPED,
        MappingCategory.R1_ONLY,
        MappingCategory.R2_ONLY,
        MappingCategory.UNCLASSIFIED,
    ),
}


@dataclass(frozen=True)
class BinRow:
    """One completed window."""
    records: int  # cumulative records observed when the window closed
    counts: Dict[MappingCategory, int]

    @property
    def total(self) -> int:
        """Number of records counted in this window."""
        return sum(self.counts.values())

    def get(self, category: MappingCategory) -> int:
        return self.counts.get(category, 0)


def output_columns(mode: ReadMode, layout: OutputLayout) -> Tuple[MappingCategory, ...]:
    """Category columns written after the record count, in order."""
    if layout is OutputLayout.FIXED:
        return FIXED_COLUMNS
    return MODE_CATEGORIES[mode]


def format_header(mode: ReadMode, layout: OutputLayout = OutputLayout.FIXED) -> str:
    """
    Header line of the summary table (without trailing newline).

    Examples:
        >>> format_header(ReadMode.PAIRED_END)
        'read\\tmap\\tbad_map\\tunmap\\tr1_only\\tr2_only'
        >>> format_header(ReadMode.SINGLE_END, OutputLayout.COMPACT)
        'read\\tmap\\tunmap'
    """
    names = [RECORDS_COLUMN] + [c.value for c in output_columns(mode, layout)]
    return "\t".join(names)


def format_row(
    row: BinRow,
    mode: ReadMode,
    layout: OutputLayout = OutputLayout.FIXED
) -> str:
    """
    Data line for one window, matching format_header column order.

    Examples:
        >>> row = BinRow(2, {MappingCategory.MAPPED: 1, MappingCategory.UNMAPPED: 1})
        >>> format_row(row, ReadMode.SINGLE_END)
        '2\\t1\\t0\\t1\\t0\\t0'
        >>> format_row(row, ReadMode.SINGLE_END, OutputLayout.COMPACT)
        '2\\t1\\t1'
    """
    values = [row.records] + [row.get(c) for c in output_columns(mode, layout)]
    return "\t".join(str(v) for v in values)


class BinCounter:
    """
    Per-window category counter.

    The running count stays in [0, bin_size). observe() returns a BinRow
    exactly when the running count reaches bin_size, after which every
    counter is back at zero.
    """

    def __init__(self, bin_size: int, mode: ReadMode):
        if bin_size <= 0:
            raise ValueError(f"bin_size must be positive, got {bin_size}")
        self.bin_size = bin_size
        self.mode = mode
        self.records = 0
        self.running = 0
        self.counts: Counter = Counter()
        self._categories = MODE_CATEGORIES[mode]

    @property
    def pending(self) -> int:
        """Records in the current, not yet emitted, window."""
        return self.running

    def observe(self, category: MappingCategory) -> Optional[BinRow]:
        """Count one classified record; return a BinRow if the window is full."""
        if category not in self._categories:
            raise ValueError(
                f"Category {category.name} is not valid for {self.mode.value}-end reads"
            )
        self.counts[category] += 1
        self.running += 1
        self.records += 1
        if self.running == self.bin_size:
            return self.emit()
        return None

    def emit(self) -> BinRow:
        """Close the current window and reset the counters."""
        if self.running != self.bin_size:
            raise ValueError(
                f"Window holds {self.running} records, expected {self.bin_size}"
            )
        row = BinRow(
            records=self.records,
            counts={c: self.counts[c] for c in self._categories},
        )
        self.counts.clear()
        self.running = 0
        logger.debug(f"Window closed at record {row.records}")
        return row

    def feed(self, records: Iterable) -> Iterator[BinRow]:
        """
        Classify and count records, yielding rows as windows complete.

        Args:
            records: Iterable of objects with an integer ``flag`` attribute
                (pysam.AlignedSegment or equivalent)

        Yields:
            BinRow for every completed window, in stream order
        """
        for record in records:
            category = classify(record.flag, self.mode)
            if category is None:
                continue
            row = self.observe(category)
            if row is not None:
                yield row
