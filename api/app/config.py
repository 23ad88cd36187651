import os

DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+psycopg2://postgres:postgres@db:5432/bubble_match")

GROUP_SIZES = tuple(int(v) for v in os.getenv("GROUP_SIZES", "2,3,4").split(",") if v.strip())
GENDER_VALUES = {"man", "woman", "nonbinary", "everyone"}

CANDIDATE_PAGE_SIZE = int(os.getenv("CANDIDATE_PAGE_SIZE", "5"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "50"))
INCOMING_LIKES_PAGE_SIZE = int(os.getenv("INCOMING_LIKES_PAGE_SIZE", "5"))
PREFETCH_THRESHOLD = int(os.getenv("PREFETCH_THRESHOLD", "3"))
SESSION_IDLE_TTL_SECONDS = int(os.getenv("SESSION_IDLE_TTL_SECONDS", "1800"))

DAILY_SWIPE_LIMIT = int(os.getenv("DAILY_SWIPE_LIMIT", "50"))
SWIPE_TIMEZONE = os.getenv("SWIPE_TIMEZONE", "America/New_York")

DB_WAIT_ATTEMPTS = int(os.getenv("DB_WAIT_ATTEMPTS", "20"))
DB_WAIT_DELAY_SECONDS = float(os.getenv("DB_WAIT_DELAY_SECONDS", "1.5"))

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:8081,http://127.0.0.1:8081").split(",")
    if origin.strip()
]

RL_LIKE_LIMIT = int(os.getenv("RL_LIKE_LIMIT", "120"))
RL_PASS_LIMIT = int(os.getenv("RL_PASS_LIMIT", "120"))
RL_WINDOW_SECONDS = int(os.getenv("RL_WINDOW_SECONDS", "60"))
