"""
Warning category hierarchy for the potential_outcomes package.

All warning classes inherit from :class:`PotentialOutcomesWarning`, which
itself inherits from :class:`UserWarning`, so they can be filtered with
Python's standard ``warnings.filterwarnings()`` mechanism.

Warnings are advisory: the operation that raised one has still been applied.
The session object collects them and reports them through
``ActionResult.warning``.

Examples
--------
Silence the large-dataset advisory only:

>>> import warnings
>>> from potential_outcomes import LargeDatasetWarning
>>> warnings.filterwarnings('ignore', category=LargeDatasetWarning)
"""


class PotentialOutcomesWarning(UserWarning):
    """
    Base warning class for all potential_outcomes package warnings.
    """
    pass


class LargeDatasetWarning(PotentialOutcomesWarning):
    """
    Warning raised when the number of complete rows passes the performance
    threshold (``constants.LARGE_DATASET_ROW_THRESHOLD``).

    Each permutation copies every complete row, so very large tables make
    every simulation step slower.
    """
    pass


class StatisticSwitchWarning(PotentialOutcomesWarning):
    """
    Warning raised when the selected test statistic was replaced.

    Triggered when a third column is added while a two-arm statistic is
    selected; the statistic is switched to one that supports multiple
    treatments.
    """
    pass


class StaleSnapshotWarning(PotentialOutcomesWarning):
    """
    Warning raised when a paused run is resumed after the data changed.

    The run keeps permuting the snapshot taken when it started, so its
    null distribution no longer describes the live data.
    """
    pass
