"""Shared environment configuration constants for the speechwriter backend."""
import os

# --- API Keys ---
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")

# --- Database ---
DATABASE_URL = os.getenv("DATABASE_URL")

# --- Cliché analysis ---
CLICHE_DENSITY_THRESHOLD = float(os.getenv("CLICHE_DENSITY_THRESHOLD", "0.8"))
CLICHE_SCORE_THRESHOLD = float(os.getenv("CLICHE_SCORE_THRESHOLD", "7.0"))
CONTEXT_WINDOW_CHARS = int(os.getenv("CONTEXT_WINDOW_CHARS", "30"))
MAX_REWRITE_SUGGESTIONS = int(os.getenv("MAX_REWRITE_SUGGESTIONS", "5"))

# --- Plagiarism-style analysis ---
PLAGIARISM_REVISION_THRESHOLD = float(os.getenv("PLAGIARISM_REVISION_THRESHOLD", "0.7"))

# --- Humanization pipeline ---
DEFAULT_TIME_BUDGET_SECONDS = int(os.getenv("DEFAULT_TIME_BUDGET_SECONDS", "120"))
PROMPT_VERSION = os.getenv("PROMPT_VERSION", "1.0")

# --- Logging ---
API_LOG_PREVIEW_CHARS = int(os.getenv("API_LOG_PREVIEW_CHARS", "280"))
