"""
SAM Flag Decoding and Mapping Classification

Each alignment record carries a bitmask of status flags (SAM column 2). This
module turns that bitmask into one mapping category per record.

SAM flag bits used here:
    0x2   PROPER_PAIR  each segment properly aligned according to the aligner
    0x4   UNMAP        segment unmapped
    0x8   MUNMAP       next segment in the template unmapped
    0x40  READ1        first segment in the template

Single-end rules:
    MAPPED    unmapped bit clear
    UNMAPPED  unmapped bit set

Paired-end rules (evaluated for READ1 records only, second mates are skipped):
    MAPPED        properly paired
    BAD_MAPPED    not properly paired, both segments aligned
    UNMAPPED      not properly paired, both segments unmapped
    R1_ONLY       UNMAP set, PROPER_PAIR clear, MUNMAP clear
    R2_ONLY       MUNMAP set, PROPER_PAIR clear, UNMAP clear
    UNCLASSIFIED  none of the above

The paired predicates are checked in the order listed and the first match
wins. UNCLASSIFIED keeps records that fall through every rule in the window
totals instead of dropping them.
"""

from enum import Enum
from typing import Optional

# SAM flag bits (htslib BAM_F* values)
FLAG_PAIRED: int = 0x1
FLAG_PROPER_PAIR: int = 0x2
FLAG_UNMAP: int = 0x4
FLAG_MUNMAP: int = 0x8
FLAG_REVERSE: int = 0x10
FLAG_MREVERSE: int = 0x20
FLAG_READ1: int = 0x40
FLAG_READ2: int = 0x80
FLAG_SECONDARY: int = 0x100
FLAG_QCFAIL: int = 0x200
FLAG_DUP: int = 0x400
FLAG_SUPPLEMENTARY: int = 0x800


class ReadMode(Enum):
    """Whether reads were aligned as single-end or paired-end input."""
    SINGLE_END = "single"
    PAIRED_END = "paired"

    @classmethod
    def from_inputs(cls, reads_2: Optional[str]) -> "ReadMode":
        """Paired-end exactly when a second reads file was supplied."""
        return cls.PAIRED_END if reads_2 else cls.SINGLE_END


class MappingCategory(Enum):
    """Mutually exclusive mapping outcome of one record."""
    MAPPED = "map"
    BAD_MAPPED = "bad_map"
    UNMAPPED = "unmap"
    R1_ONLY = "r1_only"
    R2_ONLY = "r2_only"
    UNCLASSIFIED = "unclass"


# ============================================================================
# Bit predicates
# ============================================================================

def is_unmapped(flags: int) -> bool:
    return bool(flags & FLAG_UNMAP)


def is_mate_unmapped(flags: int) -> bool:
    return bool(flags & FLAG_MUNMAP)


def is_read1(flags: int) -> bool:
    return bool(flags & FLAG_READ1)


def is_proper_pair(flags: int) -> bool:
    return bool(flags & FLAG_PROPER_PAIR)


# ============================================================================
# Category predicates
# ============================================================================

def single_mapped(flags: int) -> bool:
    return not is_unmapped(flags)


def single_unmapped(flags: int) -> bool:
    return is_unmapped(flags)


def paired_mapped(flags: int) -> bool:
    return is_read1(flags) and is_proper_pair(flags)


def paired_bad_mapped(flags: int) -> bool:
    return (
        is_read1(flags)
        and not is_proper_pair(flags)
        and not (is_unmapped(flags) or is_mate_unmapped(flags))
    )


def paired_unmapped(flags: int) -> bool:
    return (
        is_read1(flags)
        and not is_proper_pair(flags)
        and is_unmapped(flags)
        and is_mate_unmapped(flags)
    )


def paired_r1_only(flags: int) -> bool:
    return (
        is_read1(flags)
        and is_unmapped(flags)
        and not (is_proper_pair(flags) or is_mate_unmapped(flags))
    )


def paired_r2_only(flags: int) -> bool:
    return (
        is_read1(flags)
        and is_mate_unmapped(flags)
        and not (is_proper_pair(flags) or is_unmapped(flags))
    )


_PAIRED_RULES = (
    (paired_mapped, MappingCategory.MAPPED),
    (paired_bad_mapped, MappingCategory.BAD_MAPPED),
    (paired_unmapped, MappingCategory.UNMAPPED),
    (paired_r1_only, MappingCategory.R1_ONLY),
    (paired_r2_only, MappingCategory.R2_ONLY),
)


def classify(flags: int, mode: ReadMode) -> Optional[MappingCategory]:
    """
    Classify one record by its SAM flags.

    Args:
        flags: SAM flag bitmask of the record
        mode: Read mode of the run

    Returns:
        The record's MappingCategory, or None when the record is a
        paired-end mate that is not READ1 and must not be counted

    Examples:
        >>> classify(0x4, ReadMode.SINGLE_END)
        <MappingCategory.UNMAPPED: 'unmap'>
        >>> classify(0x40 | 0x2, ReadMode.PAIRED_END)
        <MappingCategory.MAPPED: 'map'>
        >>> classify(0x80 | 0x2, ReadMode.PAIRED_END) is None
        True
    """
    if mode is ReadMode.SINGLE_END:
        if single_mapped(flags):
            return MappingCategory.MAPPED
        return MappingCategory.UNMAPPED

    if not is_read1(flags):
        return None

    for predicate, category in _PAIRED_RULES:
        if predicate(flags):
            return category
    return MappingCategory.UNCLASSIFIED
