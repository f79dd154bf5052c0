"""
Retrieval and generation constants.

These are fixed tuning values, not per-call parameters.
"""

# Confidence tiers on best similarity (strict lower bounds)
HIGH_CONFIDENCE_THRESHOLD = 0.5
MEDIUM_CONFIDENCE_THRESHOLD = 0.35
LOW_CONFIDENCE_THRESHOLD = 0.25

# Participant-branch evaluator
EVALUATOR_HIGH_THRESHOLD = 0.5
EVALUATOR_MEDIUM_THRESHOLD = 0.4
EVALUATOR_STANDOUT_THRESHOLD = 0.35
EVALUATOR_MIN_THRESHOLD = 0.25
SIGNIFICANT_GAP = 0.05
SMALL_GAP = 0.03
GAP_RANK = 5

# Per-source discount factors
GENERAL_WINDOW_FACTOR = 1.0
GENERAL_MESSAGE_FACTOR = 0.85
PERSONAL_WINDOW_FACTOR = 0.9
INFERRED_WINDOW_SIMILARITY = 0.75
INFERRED_WINDOW_DISTANCE = 0.25

BULK_CONTENT_PENALTY = 0.05

# Lookup sizes
SEARCH_LIMIT = 10
PERSONAL_SEARCH_LIMIT = 20
PERSONAL_EXPANSION_COUNT = 5
DEFAULT_LOOKBACK_DAYS = 7

# Context assembly
CHARS_PER_TOKEN = 4
CONTEXT_TOKEN_BUDGET = 4000
CONTEXT_CHAR_BUDGET = CONTEXT_TOKEN_BUDGET * CHARS_PER_TOKEN
CONTEXT_TOP_K = 10
CONTEXT_WINDOW_RADIUS = 1
FRAGMENT_SEPARATOR_OVERHEAD = 50

# Answer synthesis
FAST_PATH_MAX_CONTEXT_CHARS = 2000
SIMPLE_TEMPERATURE = 0.5
FACT_EXTRACTION_TEMPERATURE = 0.1
GROUNDED_TEMPERATURE = 0.5
MAX_EXTRACTED_FACTS = 5
