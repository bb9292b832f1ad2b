"""Shared constants for blips.

Surfacing weights and cleanup scoring live here so tests can reference
them instead of repeating magic numbers.
"""

# Time
SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400
SECONDS_PER_WEEK = 7 * SECONDS_PER_DAY
SECONDS_PER_MONTH = 30 * SECONDS_PER_DAY
SECONDS_PER_YEAR = 365 * SECONDS_PER_DAY

# Storage layout
BLIP_FILE_SUFFIX = ".md"
NOTES_HEADING = "## Notes"
CAPTURE_HEADING = "## Capture"
INDEX_SUMMARY_CHARS = 80
CONTEXT_SUMMARY_CHARS = 50

# Surfacing
DEFAULT_SURFACE_LIMIT = 5
DEFAULT_RECENT_LIMIT = 10
SURFACEABLE_STATES = ("captured", "incubating", "active")
SCORE_NEVER_SURFACED = 100
SCORE_PER_DAY_UNSEEN = 10
SCORE_RECENTLY_CAPTURED = 50
RECENT_CAPTURE_HOURS = 24
SCORE_ACTIVE = 30
SCORE_HAS_NOTES = 20
SCORE_LOW_SURFACE_COUNT = 15
LOW_SURFACE_COUNT = 3
PROMOTE_AFTER_SURFACES = 3
CONNECT_AFTER_NOTES = 2
MAX_SUGGESTED_MOVES = 4

# Cleanup
SUBSTANTIVE_BODY_CHARS = 500
DUPLICATE_KEEP_COUNT = 2
TEST_HARNESS_TITLE = "example domain"
TEST_HARNESS_MARKER = "Captured from test harness."
TEST_HARNESS_PENALTY = 50
BODY_LENGTH_DIVISOR = 40
BODY_LENGTH_BONUS_CAP = 120
TRASH_SUBDIR = ("_Trash", "test-harness")
DUPLICATES_SUBDIR = ("_Duplicates", "by-source")
SOURCE_SLUG_MAX = 80
