"""
Code Allocator - Collision-free canonical account codes within typed ranges

Each canonical type owns a block of one million 7-digit codes:
- ASSET:          1000000-1999999
- LIABILITY:      2000000-2999999
- ...
- EXTRAORDINARY:  9000000-9999999

Allocation probes base + sequence×increment + i for increments
1000, 100, 10, 1 (100 probes each). If all 400 probes collide, a bounded
random retry is used, then a linear scan. The returned code is reserved in
`used_codes` before returning.
"""
import random
from typing import Iterator, MutableSet, Optional, Tuple

import structlog

from packages.common.metrics import code_allocation_exhausted_total
from packages.domain.coa_migration.errors import CodeRangeExhaustedError
from packages.domain.coa_migration.schemas import CanonicalAccountType

logger = structlog.get_logger()

CODE_LENGTH = 7
RANGE_SIZE = 1_000_000

RANGE_STARTS = {
    CanonicalAccountType.ASSET: 1_000_000,
    CanonicalAccountType.LIABILITY: 2_000_000,
    CanonicalAccountType.EQUITY: 3_000_000,
    CanonicalAccountType.REVENUE: 4_000_000,
    CanonicalAccountType.COST_OF_SALES: 5_000_000,
    CanonicalAccountType.DIRECT_EXPENSE: 6_000_000,
    CanonicalAccountType.INDIRECT_EXPENSE: 7_000_000,
    CanonicalAccountType.TAX_EXPENSE: 8_000_000,
    CanonicalAccountType.EXTRAORDINARY_EXPENSE: 9_000_000,
}


def code_range(account_type: CanonicalAccountType) -> Tuple[int, int]:
    """Inclusive numeric range for an account type"""
    start = RANGE_STARTS[account_type]
    return start, start + RANGE_SIZE - 1


def format_code(value: int) -> str:
    return str(value).zfill(CODE_LENGTH)


class CodeAllocator:
    """
    Allocates canonical codes, avoiding a caller-owned set of used codes.

    The used-code set belongs to one migration batch. The allocator's only
    side effect is adding the returned code to it.
    """

    PROBE_INCREMENTS = (1000, 100, 10, 1)
    PROBES_PER_INCREMENT = 100
    RANDOM_RETRY_LIMIT = 1000

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def allocate(
        self,
        account_type: CanonicalAccountType,
        sequence_hint: int,
        used_codes: MutableSet[str],
    ) -> str:
        """
        Allocate and reserve a code for an account type.

        Args:
            account_type: Canonical type, selects the code range
            sequence_hint: 1-based position of this account among its type in the batch
            used_codes: Codes already taken; the returned code is added to it

        Returns:
            Zero-padded 7-digit code inside the type's range

        Raises:
            CodeRangeExhaustedError: If every code in the range is taken
        """
        for candidate in self._probe_candidates(account_type, sequence_hint):
            if candidate not in used_codes:
                used_codes.add(candidate)
                return candidate

        logger.warning("code_allocation_exhausted",
                       account_type=account_type.value,
                       sequence_hint=sequence_hint,
                       probes=len(self.PROBE_INCREMENTS) * self.PROBES_PER_INCREMENT)
        code_allocation_exhausted_total.labels(account_type=account_type.value).inc()

        start, end = code_range(account_type)

        for _ in range(self.RANDOM_RETRY_LIMIT):
            candidate = format_code(start + self._rng.randint(0, RANGE_SIZE - 1))
            if candidate not in used_codes:
                used_codes.add(candidate)
                return candidate

        for value in range(start, end + 1):
            candidate = format_code(value)
            if candidate not in used_codes:
                used_codes.add(candidate)
                return candidate

        raise CodeRangeExhaustedError(f"No free codes left for {account_type.value}")

    def _probe_candidates(self, account_type: CanonicalAccountType, sequence_hint: int) -> Iterator[str]:
        start, end = code_range(account_type)

        for increment in self.PROBE_INCREMENTS:
            for i in range(self.PROBES_PER_INCREMENT):
                value = start + sequence_hint * increment + i
                # Large sequence hints can run past the type's block
                if start <= value <= end:
                    yield format_code(value)


# Singleton instance
code_allocator = CodeAllocator()
