"""Package-wide constants.

Defaults for the data model and every runtime-adjustable limit live here so
that the data model, the validators and the simulation controller import a
single source of truth.
"""

# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

# Color tokens handed out to columns in order. The first two go to the
# default columns; the rest seed the color stack used by ``add_column``.
# Because every column needs a color, this also caps the number of columns.
DEFAULT_COLUMN_COLORS = (
    "text-purple-500",
    "text-blue-500",
    "text-yellow-500",
    "text-green-500",
)

DEFAULT_COLUMN_NAMES = ("Control", "Treatment")

# A data model never has fewer columns than this.
MIN_COLUMNS = 2

MAX_COLUMN_NAME_LENGTH = 20

# Complete rows above which mutations report a LargeDatasetWarning.
LARGE_DATASET_ROW_THRESHOLD = 1000

# ---------------------------------------------------------------------------
# Simulation settings
# ---------------------------------------------------------------------------

MIN_SIMULATION_SPEED = 1
MAX_SIMULATION_SPEED = 100
DEFAULT_SIMULATION_SPEED = 40

MIN_TOTAL_SIMULATIONS = 1
MAX_TOTAL_SIMULATIONS = 10_000
DEFAULT_TOTAL_SIMULATIONS = 1000

# Fewer complete rows than this cannot be permuted meaningfully.
MIN_COMPLETE_ROWS = 2

# ---------------------------------------------------------------------------
# Pacing of the simulation loop
# ---------------------------------------------------------------------------

# Delay between iterations at the slowest end of the sigmoid, in ms.
BASE_DELAY_MS = 1500

# Floor on the delay so the loop always yields to the event loop.
MIN_DELAY_MS = 2

# Speed at which the sigmoid is centered and its horizontal scale.
SPEED_MIDPOINT = 50
SPEED_SCALE = 10
