import copy
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, Optional, Union

from transmem.core import database as db
from transmem.core.schema import initialize_database
from transmem.logger import get_logger, set_log_mode

logger = get_logger(__name__)

# Translation configuration constants
DEFAULT_CHUNK_SIZE_WORDS = 300  # Maximum words per provider request
DEFAULT_SYSTEM_MESSAGE = "You are a professional translator. Return only valid JSON."

PROVIDER_DEFAULTS = {
    "max_retries": 3,
    "timeout": 120,
    "max_workers": 4,
}

PROVIDER_TYPES = ["http", "bridge", "repetition", "grandfather", "variant"]

PROVIDER_NAME_PATTERN = r"^[a-zA-Z0-9_-]+$"

# Timestamps used when running in regression mode so outputs can be diffed
REGRESSION_UPDATED_AT = "2022-05-29T00:00:00+00:00"

# Get base directory (project root)
BASE_DIR = Path(__file__).parent.parent
DB_FILE_NAME = "transmem.db"

DEFAULT_PROMPTS = {
    "array_translation_prompt": {
        "version": "1.0",
        "description": "Array translation prompt for HttpTranslationProvider",
        "prompt": """You are a professional translator specializing in software localization.

Translate each string from {source_language_name} ({source_language_code}) to {target_language_name} ({target_language_code}). Return ONLY a JSON array with the translated strings in the same order.
{instructions_section}

CRITICAL REQUIREMENTS:
- Preserve ALL placeholders of the form {{{{a_x_name}}}} EXACTLY as they appear (DO NOT translate or modify these)
- Keep paired placeholders (_bx_ / _ex_) around the same words
- Maintain the original tone and style
- Return exactly {text_count} translated strings

Array to translate:
{texts_json}

Return format: ["translated1", "translated2", ...]
Do not include explanations, markdown code blocks, or any text outside the JSON array."""
    }
}

# Default configuration template
DEFAULT_CONFIG = {
    "source_lang": "en",
    "target_langs": [],
    "minimum_quality": 50,
    "parallelism": 1,
    "channel": {
        "source_dir": "resources/en",
        "source_glob": "**/*.json",
        "target_dir": "resources/{target_lang}",
    },
    "snap": {
        "enabled": True,
    },
    "providers": [
        {
            "id": "Repetition",
            "type": "repetition",
            "qualified_penalty": 1,
            "unqualified_penalty": 9,
        },
        {
            "id": "Grandfather",
            "type": "grandfather",
            "quality": 70,
        },
        {
            "id": "OpenAI",
            "type": "http",
            "api_key": "YOUR_API_KEY_HERE",
            "api_url": "https://api.openai.com/v1/chat/completions",
            "model": "gpt-4o-mini",
            "quality": 40,
            "quota": None,
            "minimum_job_size": 0,
            "chunk_size_words": DEFAULT_CHUNK_SIZE_WORDS,
            "cost_per_word": None,
            "max_retries": 3,
            "timeout": 120,
            "max_workers": 4,
        },
    ],
    "tm_stores": {},
    "log_mode": "off",
}


def _merge_defaults(defaults: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Deep-merge ``overrides`` on top of ``defaults`` (lists are replaced, not merged)."""
    merged = copy.deepcopy(defaults)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_defaults(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


@dataclass
class EngineContext:
    """
    Everything a component needs to know about the run it belongs to.

    Passed explicitly to every component at construction time.
    """
    base_dir: Path
    db_file: Path
    regression: bool = False
    config: Dict[str, Any] = field(default_factory=lambda: copy.deepcopy(DEFAULT_CONFIG))

    @classmethod
    def create(cls, base_dir: Union[str, Path], config: Optional[Dict[str, Any]] = None,
               regression: bool = False, db_file: Optional[Union[str, Path]] = None) -> "EngineContext":
        """Build a context rooted at ``base_dir`` and initialize its database."""
        base_dir = Path(base_dir)
        base_dir.mkdir(parents=True, exist_ok=True)
        context = cls(
            base_dir=base_dir,
            db_file=Path(db_file) if db_file else base_dir / DB_FILE_NAME,
            regression=regression,
        )
        initialize_app(context)
        if config is None:
            context.config = load_config(context.db_file)
        else:
            context.config = _merge_defaults(DEFAULT_CONFIG, config)
        set_log_mode(context.config.get("log_mode", "off"))
        return context

    @property
    def source_lang(self) -> str:
        return self.config["source_lang"]

    @property
    def target_langs(self):
        return list(self.config.get("target_langs") or [])

    def resolve_path(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        return path if path.is_absolute() else self.base_dir / path

    def updated_at(self) -> str:
        """ISO timestamp stamped on job records."""
        if self.regression:
            return REGRESSION_UPDATED_AT
        return datetime.now(timezone.utc).isoformat()

    def now_ms(self) -> int:
        return int(datetime.now(timezone.utc).timestamp() * 1000)


def initialize_app(context: EngineContext):
    """
    Initialize the local cache.
    Creates the database and stores the default configuration if none exists.
    """
    logger.info(f"Initializing local cache at {context.db_file}...")
    initialize_database(context.db_file)

    existing_config = db.get_app_config(context.db_file, 'config')
    if not existing_config:
        logger.info("No config in database, initializing default config")
        save_config(context.db_file, DEFAULT_CONFIG)
    else:
        logger.debug("Config already exists in database")


def load_config(db_file: Path) -> Dict[str, Any]:
    """Load the configuration from database, falling back to defaults."""
    try:
        config_json = db.get_app_config(db_file, 'config')
    except Exception as e:
        logger.error(f"Failed to load config from database: {e}")
        logger.warning("Using default configuration")
        return copy.deepcopy(DEFAULT_CONFIG)

    if not config_json:
        logger.info("No config in database, using defaults")
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        config = json.loads(config_json)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse config from database: {e}")
        logger.warning("Using default configuration")
        return copy.deepcopy(DEFAULT_CONFIG)

    logger.debug("Configuration loaded from database")
    return _merge_defaults(DEFAULT_CONFIG, config)


def save_config(db_file: Path, config: Dict[str, Any]):
    """Save the configuration to database."""
    try:
        config_json = json.dumps(config, ensure_ascii=False)
        db.set_app_config(db_file, 'config', config_json)
        logger.info("Configuration saved to database")
    except Exception as e:
        logger.error(f"Failed to save config to database: {e}")
        raise


def get_prompt(name: str) -> Dict[str, Any]:
    """Get a prompt template by name."""
    return DEFAULT_PROMPTS[name]
