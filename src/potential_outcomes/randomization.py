"""
Randomization Module

Draws one random re-assignment of treatment labels over the complete rows.

Without blocking every assignment is exchangeable: the labels of all rows are
shuffled together, so each of the n! orderings is equally likely. With
blocking, labels are shuffled independently within each block and never
cross a block boundary, which restricts the null distribution to the
assignments the blocked design could have produced.
"""

from dataclasses import replace
from typing import Dict, List, Optional, Sequence

import numpy as np

from .results import SimulationResult


def shuffle_row_assignments(
    rows: Sequence,
    blocking_enabled: bool,
    rng: Optional[np.random.Generator] = None,
) -> List:
    """
    Permute the ``assignment`` labels of ``rows``.

    Parameters
    ----------
    rows : sequence of Row
        Complete rows; the trailing entry row and incomplete rows are
        excluded by the caller.
    blocking_enabled : bool
        Shuffle within blocks only. Rows without a block label form one
        implicit block.
    rng : np.random.Generator, optional
        Source of randomness. A fresh ``default_rng()`` if omitted.

    Returns
    -------
    list of Row
        New rows in the original order, each carrying a drawn assignment.
        The input rows are not modified.

    Notes
    -----
    Blocked draws write each block's shuffled labels back to that block's
    own positions rather than concatenating the blocks one after another.
    The per-block multisets of (outcome, assignment) pairs, and therefore
    every statistic, are the same either way, and each result stays
    row-aligned with the snapshot it was drawn from.
    """
    if rng is None:
        rng = np.random.default_rng()
    rows = list(rows)
    n = len(rows)
    if n == 0:
        return []

    assignments = [row.assignment for row in rows]

    if not blocking_enabled:
        perm_idx = rng.permutation(n)
        drawn = [assignments[i] for i in perm_idx]
    else:
        # Positions of each block, in first-seen order
        blocks: Dict[Optional[str], List[int]] = {}
        for i, row in enumerate(rows):
            blocks.setdefault(row.block, []).append(i)

        drawn = list(assignments)
        for positions in blocks.values():
            perm_idx = rng.permutation(len(positions))
            for target, source in zip(positions, perm_idx):
                drawn[target] = assignments[positions[source]]

    return [replace(row, assignment=a) for row, a in zip(rows, drawn)]


def simulate(
    rows: Sequence,
    blocking_enabled: bool,
    rng: Optional[np.random.Generator] = None,
) -> SimulationResult:
    """Draw one permutation and wrap it in a memoizing result."""
    return SimulationResult(shuffle_row_assignments(rows, blocking_enabled, rng))
