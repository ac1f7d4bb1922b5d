# zotprof/settings.py
from typing import Dict
from pathlib import Path
import os
import yaml

PROJECT_ROOT = Path(__file__).resolve().parent

CONFIG_PATH = Path(os.getenv("ZOTPROF_CONFIG") or PROJECT_ROOT / "config" / "app.yaml")
RATINGS_TABLE_PATH = PROJECT_ROOT / "data" / "ratings_fallback.yaml"


def _load_config() -> Dict:
    if CONFIG_PATH.exists():
        with open(CONFIG_PATH, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    return {}


CFG = _load_config()

ANTEATER_BASE_URL = str(CFG.get("anteater_base_url", "https://anteaterapi.com/v2/rest")).rstrip("/")
RATINGS_GRAPHQL_URL = str(CFG.get("ratings_graphql_url", "https://www.ratemyprofessors.com/graphql"))
RATINGS_SCHOOL_ID = str(CFG.get("ratings_school_id", "U2Nob29sLTEwNzQ="))
RATINGS_SOURCE = os.getenv("ZOTPROF_RATINGS_SOURCE") or str(CFG.get("ratings_source", "static"))

DEFAULT_TERM = str(CFG.get("default_term", "Winter 2026"))
ALMOST_FULL_THRESHOLD = int(CFG.get("almost_full_threshold", 80))
GENERATE_INSIGHTS = bool(CFG.get("generate_insights", True))
HTTP_TIMEOUT = float(CFG.get("http_timeout", 30))

OPENAI_MODEL = os.getenv("OPENAI_MODEL") or str(CFG.get("openai_model", "gpt-4.1-mini"))
USE_LLM_INTENT = os.getenv("USE_LLM_INTENT") == "1"

LOG_LEVEL = str(CFG.get("log_level", "INFO")).upper()
CORS_ORIGINS = list(CFG.get("cors_origins") or ["http://localhost:5173"])
MAX_SESSIONS = int(CFG.get("max_sessions", 1000))
