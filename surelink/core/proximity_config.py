from surelink.core.config import _get_float, _get_int

# --------------------------------------------------
# ENCOUNTERS
# --------------------------------------------------

# Two users closer than this (strictly) trigger an encounter
ENCOUNTER_THRESHOLD_METERS = _get_float("ENCOUNTER_THRESHOLD_METERS", 50.0)

# Minimum gap between repeated encounters for the same pair
ENCOUNTER_COOLDOWN_MS = _get_int("ENCOUNTER_COOLDOWN_MS", 300_000)

LEDGER_SWEEP_INTERVAL_MS = _get_int("LEDGER_SWEEP_INTERVAL_MS", 60_000)

# --------------------------------------------------
# PRESENCE
# --------------------------------------------------

# Entries without an update for this long are treated as missed disconnects
PRESENCE_STALE_MS = _get_int("PRESENCE_STALE_MS", 300_000)

PRESENCE_SWEEP_INTERVAL_MS = _get_int("PRESENCE_SWEEP_INTERVAL_MS", 300_000)

NEARBY_DEFAULT_RADIUS_METERS = _get_float("NEARBY_DEFAULT_RADIUS_METERS", 1000.0)

# --------------------------------------------------
# RATE LIMITS (max requests per window)
# --------------------------------------------------

RATE_LIMIT_CHAT_MAX = _get_int("RATE_LIMIT_CHAT_MAX", 10)
RATE_LIMIT_CHAT_WINDOW_MS = _get_int("RATE_LIMIT_CHAT_WINDOW_MS", 60_000)

RATE_LIMIT_POSITION_MAX = _get_int("RATE_LIMIT_POSITION_MAX", 60)
RATE_LIMIT_POSITION_WINDOW_MS = _get_int("RATE_LIMIT_POSITION_WINDOW_MS", 60_000)

RATE_LIMIT_GENERAL_MAX = _get_int("RATE_LIMIT_GENERAL_MAX", 30)
RATE_LIMIT_GENERAL_WINDOW_MS = _get_int("RATE_LIMIT_GENERAL_WINDOW_MS", 60_000)

# --------------------------------------------------
# CHAT
# --------------------------------------------------

CHAT_HISTORY_LIMIT = _get_int("CHAT_HISTORY_LIMIT", 50)
MAX_NICKNAME_LENGTH = 50
MAX_MESSAGE_LENGTH = 500
BANNED_WORDS = ("spam", "abuse", "hack")
