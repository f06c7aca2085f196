import os
from dataclasses import asdict, dataclass

# Debug logging (SMOL_DEBUG=1 or `smol -v`)
DEBUG = os.getenv("SMOL_DEBUG", "").lower() in ("1", "true", "yes")
DEBUG_LOG_PATH = os.getenv("SMOL_DEBUG_LOG", "").strip() or None
# SMOL_DEBUG_DUMP_VERBOSE=1: write full model output to debug log (no truncation).
DEBUG_DUMP_VERBOSE = os.getenv("SMOL_DEBUG_DUMP_VERBOSE", "false").lower() in ("1", "true", "yes")
DEBUG_DUMP_MAX_LINES = int(os.getenv("SMOL_DEBUG_DUMP_MAX_LINES", "20"))
DEBUG_DUMP_MAX_CHARS = int(os.getenv("SMOL_DEBUG_DUMP_MAX_CHARS", "2000"))

# Model request knobs
GEN_TIMEOUT = int(os.getenv("SMOL_GEN_TIMEOUT", "120"))
MODELS_TIMEOUT = int(os.getenv("SMOL_MODELS_TIMEOUT", "20"))
# Send tool schemas with plan/edit requests and read structured tool_calls back.
# Off by default: plain JSON replies work with every provider.
USE_CHAT_TOOLS = os.getenv("SMOL_USE_CHAT_TOOLS", "false").lower() in ("1", "true", "yes")
HTTP_REFERER = os.getenv("SMOL_HTTP_REFERER", "https://github.com/smol-cli/smol")
APP_TITLE = os.getenv("SMOL_APP_TITLE", "Smol CLI")

# Sandbox / backups. State dir defaults to <cwd>/.smol
STATE_DIR = os.getenv("SMOL_STATE_DIR", "").strip() or None
STATE_PATH = os.getenv("SMOL_STATE_PATH", "~/.smol_state.json")
DISABLE_HISTORY = os.getenv("SMOL_DISABLE_HISTORY", "false").lower() in ("1", "true", "yes")

# Context budgets (bytes, cut on UTF-8 boundaries)
MAX_CONTEXT_BYTES_PER_FILE = int(os.getenv("SMOL_CTX_BYTES", "8000"))
README_MAX_BYTES = int(os.getenv("SMOL_README_BYTES", "10000"))
COMMON_FILE_MAX_BYTES = int(os.getenv("SMOL_COMMON_FILE_BYTES", "3000"))
SOURCE_FILE_MAX_BYTES = int(os.getenv("SMOL_SOURCE_FILE_BYTES", "2000"))
SUMMARY_RESPONSE_MAX_BYTES = int(os.getenv("SMOL_SUMMARY_BYTES", "1000"))
# Turn summaries kept as conversation memory
MAX_MEMORY_ENTRIES = int(os.getenv("SMOL_MAX_MEMORY", "6"))
MAX_PROMPT_HISTORY = int(os.getenv("SMOL_MAX_PROMPT_HISTORY", "50"))

# Files pulled into the base context when present at the repo root
COMMON_CONTEXT_FILES = (
    "Cargo.toml",
    "package.json",
    "pyproject.toml",
    "requirements.txt",
    "Makefile",
    "Dockerfile",
    "docker-compose.yml",
    ".gitignore",
    "main.rs",
    "lib.rs",
    "__init__.py",
    "index.js",
    "app.js",
    "server.js",
    "main.py",
    "app.py",
)
SOURCE_CONTEXT_DIRS = ("src", "lib", "app", "core")
SOURCE_CONTEXT_EXTS = {"rs", "py", "js", "ts"}

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "x-ai/grok-4-fast:free"
DEFAULT_TEMPERATURE = 0.2

# (label, model id) pairs offered by `/model` with no argument
PRESET_MODELS = (
    ("Grok-4 Fast Free", "x-ai/grok-4-fast:free"),
    ("GPT-4o mini", "openai/gpt-4o-mini"),
    ("GPT-4o", "openai/gpt-4o"),
    ("Claude 3.5 Sonnet", "anthropic/claude-3.5-sonnet"),
    ("Llama 3.1 70B", "meta-llama/llama-3.1-70b-instruct"),
)


@dataclass
class AppConfig:
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    api_key: str = ""
    temperature: float = DEFAULT_TEMPERATURE

    def to_dict(self) -> dict:
        return asdict(self)


def load_app_config() -> AppConfig:
    """Defaults, then persisted state, then environment overrides."""
    from . import state

    cfg = AppConfig()
    saved = state.get_saved_config()
    if saved.get("base_url"):
        cfg.base_url = str(saved["base_url"])
    if saved.get("model"):
        cfg.model = str(saved["model"])
    if saved.get("api_key"):
        cfg.api_key = str(saved["api_key"])
    if saved.get("temperature") is not None:
        try:
            cfg.temperature = float(saved["temperature"])
        except (TypeError, ValueError):
            pass

    key = os.getenv("OPENROUTER_API_KEY") or os.getenv("SMOL_API_KEY")
    if key:
        cfg.api_key = key
    if os.getenv("SMOL_MODEL"):
        cfg.model = os.environ["SMOL_MODEL"]
    if os.getenv("SMOL_BASE_URL"):
        cfg.base_url = os.environ["SMOL_BASE_URL"]
    if os.getenv("SMOL_TEMP"):
        cfg.temperature = float(os.environ["SMOL_TEMP"])
    return cfg


def save_app_config(cfg: AppConfig) -> None:
    from . import state

    state.set_saved_config(cfg.to_dict())
