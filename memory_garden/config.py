import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

# Load .env once when module is imported. `override=True` ensures that local
# development values defined in .env always take precedence over environment
# variables populated by the host system.
load_dotenv(override=True)


def get_env_value(name: str, default: Optional[str] = None) -> Optional[str]:
    """Fetch an environment value, returning ``default`` when unset."""

    value = os.environ.get(name)
    if value is None:
        return default
    return value


def _get_bool_env(name: str, default: str = "false") -> bool:
    value = get_env_value(name)
    if value is None:
        value = default
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: str) -> int:
    value = get_env_value(name)
    try:
        return int(value if value is not None else default)
    except (TypeError, ValueError):
        return int(default)


def _get_float_env(name: str, default: str) -> float:
    value = get_env_value(name)
    try:
        return float(value if value is not None else default)
    except (TypeError, ValueError):
        return float(default)


# =============================
# Storage
# =============================


@lru_cache(maxsize=1)
def get_data_dir() -> str:
    return get_env_value("MEMORY_DATA_DIR", "data") or "data"


@lru_cache(maxsize=1)
def get_uploads_dir() -> str:
    return get_env_value("MEMORY_UPLOADS_DIR", "uploads") or "uploads"


@lru_cache(maxsize=1)
def get_redis_url() -> Optional[str]:
    return get_env_value("REDIS_URL")


@lru_cache(maxsize=1)
def get_analysis_cache_ttl_seconds() -> int:
    # One week by default
    return _get_int_env("ANALYSIS_CACHE_TTL_SECONDS", str(7 * 24 * 3600))


@lru_cache(maxsize=1)
def get_refresh_days() -> int:
    return _get_int_env("NEMOTRON_REFRESH_DAYS", "7")


# =============================
# Classifier (OpenAI-compatible endpoint)
# =============================


@lru_cache(maxsize=1)
def get_nemotron_api_key() -> Optional[str]:
    return get_env_value("NEMOTRON_API_KEY")


@lru_cache(maxsize=1)
def get_nemotron_api_url() -> str:
    # NVIDIA NIM by default; any OpenAI-compatible gateway works
    return get_env_value("NEMOTRON_API_URL", "https://integrate.api.nvidia.com/v1") or "https://integrate.api.nvidia.com/v1"


@lru_cache(maxsize=1)
def get_nemotron_model() -> str:
    return get_env_value("NEMOTRON_MODEL", "meta/llama-3.1-70b-instruct") or "meta/llama-3.1-70b-instruct"


@lru_cache(maxsize=1)
def is_classifier_enabled() -> bool:
    return _get_bool_env("USE_NEMOTRON", "true")


@lru_cache(maxsize=1)
def is_classifier_configured() -> bool:
    key = get_nemotron_api_key() or ""
    return is_classifier_enabled() and key.strip() != ""


@lru_cache(maxsize=1)
def get_classifier_temperature() -> float:
    return _get_float_env("CLASSIFIER_TEMPERATURE", "0.0")


@lru_cache(maxsize=1)
def get_classifier_max_tokens() -> int:
    return _get_int_env("CLASSIFIER_MAX_TOKENS", "500")


@lru_cache(maxsize=1)
def get_classifier_timeout_ms() -> int:
    return _get_int_env("CLASSIFIER_TIMEOUT_MS", "30000")


@lru_cache(maxsize=1)
def get_classifier_batch_size() -> int:
    return _get_int_env("CLASSIFIER_BATCH_SIZE", "5")


@lru_cache(maxsize=1)
def get_classifier_batch_delay_ms() -> int:
    return _get_int_env("CLASSIFIER_BATCH_DELAY_MS", "1000")


@lru_cache(maxsize=1)
def get_classifier_preview_chars() -> int:
    return _get_int_env("CLASSIFIER_PREVIEW_CHARS", "1000")


# Langfuse Configuration
def get_langfuse_public_key() -> str:
    """Get Langfuse public key from environment."""
    return get_env_value("LANGFUSE_PUBLIC_KEY", "") or ""


def get_langfuse_secret_key() -> str:
    """Get Langfuse secret key from environment."""
    return get_env_value("LANGFUSE_SECRET_KEY", "") or ""


def get_langfuse_host() -> str:
    """Get Langfuse host URL from environment."""
    return get_env_value("LANGFUSE_HOST", "https://us.cloud.langfuse.com") or "https://us.cloud.langfuse.com"


def is_langfuse_enabled() -> bool:
    """Check if Langfuse tracing is enabled."""
    return bool(get_langfuse_public_key() and get_langfuse_secret_key())


def clear_settings_cache() -> None:
    """Drop memoized settings so the next lookup re-reads the environment."""

    for getter in (
        get_data_dir,
        get_uploads_dir,
        get_redis_url,
        get_analysis_cache_ttl_seconds,
        get_refresh_days,
        get_nemotron_api_key,
        get_nemotron_api_url,
        get_nemotron_model,
        is_classifier_enabled,
        is_classifier_configured,
        get_classifier_temperature,
        get_classifier_max_tokens,
        get_classifier_timeout_ms,
        get_classifier_batch_size,
        get_classifier_batch_delay_ms,
        get_classifier_preview_chars,
    ):
        getter.cache_clear()
