"""
Constants shared across the match day system.
"""

import os

# Roles
ROLE_STANDARD = "standard"
ROLE_PRIVILEGED = "privileged"
ROLES = (ROLE_STANDARD, ROLE_PRIVILEGED)

# Match status (absence of a current-match record means idle)
STATUS_COUNTDOWN = "countdown"
STATUS_ACTIVE = "active"
STATUS_FINISHED = "finished"

# Ledger event types
EVENT_GOAL = "goal"
EVENT_YELLOW = "yellow"
EVENT_RED = "red"
EVENT_TYPES = (EVENT_GOAL, EVENT_YELLOW, EVENT_RED)

TEAM_NUMBERS = (1, 2)
ALLOWED_HALVES = (1, 2)

# Preferred positions a player can pick on their profile
POSITIONS = ("goalkeeper", "defender", "midfielder", "forward")

# Fields a user may change on their own profile
SELF_SERVICE_FIELDS = ("name", "position", "photo_ref")

# Replicated store paths
USERS_PATH = "users"
CREDENTIALS_PATH = "credentials"
EMAIL_INDEX_PATH = "email-index"
TEAM_ASSIGNMENT_PATH = "team-assignment"
CURRENT_MATCH_PATH = "current-match"
HISTORY_PATH = "history"

# Roots holding one document per child; every other root is a single document
COLLECTION_ROOTS = frozenset({USERS_PATH, HISTORY_PATH, CREDENTIALS_PATH, EMAIL_INDEX_PATH})

# Roots clients may subscribe to over the live socket
SUBSCRIBABLE_ROOTS = frozenset({USERS_PATH, TEAM_ASSIGNMENT_PATH, CURRENT_MATCH_PATH, HISTORY_PATH})

MS_PER_MINUTE = 60_000

# Countdown before a created match goes live: COUNTDOWN_TICKS ticks of COUNTDOWN_TICK_SECONDS
COUNTDOWN_TICKS = int(os.getenv("COUNTDOWN_TICKS", "3"))
COUNTDOWN_TICK_SECONDS = float(os.getenv("COUNTDOWN_TICK_SECONDS", "1.0"))
