import random

# Number of times to retry a decision source that fails to answer
RETRIES = 3

# Base delay (seconds) for exponential backoff between retries
BACKOFF_SECONDS = 0.4

# Upper bound of random jitter added to each backoff (seconds)
BACKOFF_JITTER = 0.2

# HTTP timeout for a single request to the model endpoint (seconds)
REQUEST_TIMEOUT = 60

# Pool of display names for AI seats
NAMES = ["Derek", "Scott", "Jacob", "Isaac", "Hayley", "David", "Tyler",
        "Ginger", "Jackson", "Mason", "Dan", "Bert", "Will", "Sam",
        "Paul", "Leah", "Harold"]

# Fixed role multiset per seat count
ROLE_TABLE = {
    8: ["Werewolf"] * 3 + ["Seer", "Witch", "Hunter"] + ["Villager"] * 2,
    9: ["Werewolf"] * 3 + ["Seer", "Witch", "Hunter"] + ["Villager"] * 3,
    10: ["Werewolf"] * 3 + ["Seer", "Witch", "Hunter", "Guard"] + ["Villager"] * 3,
    11: ["Werewolf"] * 4 + ["Seer", "Witch", "Hunter", "Guard"] + ["Villager"] * 3,
    12: ["Werewolf"] * 4 + ["Seer", "Witch", "Hunter", "Guard"] + ["Villager"] * 4,
}

DEFAULT_NUM_PLAYERS = 10

# The sheriff's vote counts this much in execution votes (never in badge votes)
SHERIFF_VOTE_WEIGHT = 1.5

# Rounds of wolf voting before the deterministic tie-break is applied
WOLF_REVOTE_ROUNDS = 3

# PK runoffs allowed after a tied badge election before the badge is lost
BADGE_RUNOFFS = 1

# Replacement text for seat references outside [1, num_players]
INVALID_SEAT_MARKER = "[invalid seat]"

# Daily summary limits
MIN_SUMMARY_BULLETS = 5
MAX_SUMMARY_BULLETS = 10
TRANSCRIPT_LIMIT = 15000

# Number of recent messages shown to an agent when it decides
RECENT_MESSAGES = 30

# Lower temperature for constrained choices, higher for creative responses
ACTION_TEMPERATURE = 0.5
SPEECH_TEMPERATURE = 1.0
SUMMARY_TEMPERATURE = 0.3

# Model used to compress the day's transcript
SUMMARY_MODEL = "llama3:8b"


# Returns a random sample of display names
def get_player_names(count, rng=random):
    return rng.sample(NAMES, count)
