"""
Layered configuration for the repository security triage pipeline.

Every layer produces a flat ``{key: value}`` dict; later layers win:

    defaults < profile YAML (``_extends`` aware) < .triage.yml < env vars < CLI args

Usage:
    from config_loader import build_unified_config, validate_config
    config = build_unified_config(cli_args=args)
    problems = validate_config(config)
"""

import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml

from security_file_classifier import ANALYSIS_POLICIES

logger = logging.getLogger(__name__)

# scripts/config_loader.py -> repository root holding profiles/
PROJECT_ROOT = Path(__file__).resolve().parents[1]

PROFILE_ENV_VAR = "TRIAGE_PROFILE"
PROJECT_FILE = ".triage.yml"


def get_default_config() -> Dict[str, Any]:
    """Return every configuration key with its default value.

    Downstream code indexes the merged config directly, so a key that is
    missing here is a bug.
    """
    return {
        # reasoning engine
        "ai_provider": "auto",
        "model": "auto",
        "anthropic_api_key": "",
        "openai_api_key": "",
        "google_api_key": "",
        "ollama_endpoint": "",
        "enable_reasoning": False,
        "reasoning_timeout": 120.0,
        "reasoning_max_tokens": 2000,
        "reasoning_temperature": 0.1,
        "retry_max_attempts": 3,
        "enable_smart_retry": True,
        # file listing
        "github_token": "",
        "github_api_url": "https://api.github.com",
        "github_timeout": 30.0,
        "search_per_page": 10,
        # selection
        "analysis_intent": "default",
        "max_files": None,  # None defers to the intent's limit
        # chunk cost heuristic
        "chunk_base_cost_per_file": 100,
        "chunk_cost_cap": 4000,
        "chunk_cost_multipliers": {"secret": 2.0, "dependency": 1.5, "config": 1.2},
        # output
        "output_dir": ".triage/reports",
        "report_format": "all",  # json | markdown | all
    }


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

def _profile_dirs() -> List[Path]:
    """Directories searched for ``<name>.yml``, in lookup order."""
    return [
        PROJECT_ROOT / "profiles",
        Path.home() / ".triage" / "profiles",
        Path(".triage") / "profiles",
    ]


def _read_yaml(path: Path) -> dict:
    with path.open(encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    return data if isinstance(data, dict) else {}


def _merge_sections(parent: dict, child: dict) -> dict:
    """Overlay *child* on *parent*, descending into nested sections."""
    result = dict(parent)
    for key, value in child.items():
        inherited = result.get(key)
        if isinstance(inherited, dict) and isinstance(value, dict):
            result[key] = _merge_sections(inherited, value)
        else:
            result[key] = value
    return result


def _resolve_profile(name: str, seen: Tuple[str, ...] = ()) -> dict:
    """Return the nested profile *name* with its ``_extends`` chain applied.

    Raises FileNotFoundError when no search directory holds the profile and
    ValueError when the chain loops back on itself.
    """
    if name in seen:
        chain = " -> ".join(seen + (name,))
        raise ValueError(f"Circular profile inheritance detected: {chain}")

    candidates = [directory / f"{name}.yml" for directory in _profile_dirs()]
    path = next((c for c in candidates if c.is_file()), None)
    if path is None:
        searched = ", ".join(str(c) for c in candidates)
        raise FileNotFoundError(f"Profile '{name}' not found (searched {searched})")

    logger.info("Loading profile '%s' from %s", name, path)
    profile = _read_yaml(path)
    parent = profile.pop("_extends", None)
    if not parent:
        return profile
    return _merge_sections(_resolve_profile(parent, seen + (name,)), profile)


# (section, key) pairs whose flat name breaks the section-prefix rule
_RENAMED = {
    ("ai", "provider"): "ai_provider",
    ("ai", "model"): "model",
    ("reasoning", "enabled"): "enable_reasoning",
    ("github", "per_page"): "search_per_page",
    ("analysis", "intent"): "analysis_intent",
    ("retry", "smart"): "enable_smart_retry",
}

_PREFIXES = {
    "ai": "ai_",
    "reasoning": "reasoning_",
    "github": "github_",
    "chunking": "chunk_",
    "retry": "retry_",
    "analysis": "",
    "output": "",
}


def flatten_profile(nested: dict) -> Dict[str, Any]:
    """Flatten a sectioned profile into config keys.

    ``reasoning.timeout`` becomes ``reasoning_timeout``, ``chunking.cost_cap``
    becomes ``chunk_cost_cap``; keys of ``analysis`` and ``output`` are used
    as-is. A handful of keys are renamed outright (``reasoning.enabled`` ->
    ``enable_reasoning``, ``github.per_page`` -> ``search_per_page`` and so
    on). Null values are dropped, and top-level ``name``/``description`` are
    kept.
    """
    flat: Dict[str, Any] = {
        key: nested[key] for key in ("name", "description") if nested.get(key) is not None
    }
    for section, prefix in _PREFIXES.items():
        values = nested.get(section)
        if not isinstance(values, dict):
            continue
        for key, value in values.items():
            if value is not None:
                flat[_RENAMED.get((section, key), prefix + key)] = value
    return flat


def load_profile(profile_name: str) -> Dict[str, Any]:
    """Load profile *profile_name* (built-in, then ``~/.triage``, then
    ``./.triage``) and return it flattened."""
    return flatten_profile(_resolve_profile(profile_name))


def list_available_profiles() -> List[str]:
    found = {
        path.stem
        for directory in _profile_dirs()
        if directory.is_dir()
        for path in directory.glob("*.yml")
    }
    return sorted(found)


# ---------------------------------------------------------------------------
# Environment and CLI layers
# ---------------------------------------------------------------------------

def _as_bool(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


# config key -> (environment names, first present wins; converter)
_ENV_VARS: Dict[str, Tuple[Tuple[str, ...], Callable[[str], Any]]] = {
    "ai_provider": (("AI_PROVIDER", "INPUT_AI_PROVIDER"), str),
    "model": (("MODEL", "INPUT_MODEL"), str),
    "anthropic_api_key": (("ANTHROPIC_API_KEY",), str),
    "openai_api_key": (("OPENAI_API_KEY",), str),
    "google_api_key": (("GOOGLE_API_KEY", "GEMINI_API_KEY"), str),
    "ollama_endpoint": (("OLLAMA_ENDPOINT",), str),
    "enable_reasoning": (("ENABLE_REASONING",), _as_bool),
    "reasoning_timeout": (("REASONING_TIMEOUT",), float),
    "reasoning_max_tokens": (("REASONING_MAX_TOKENS",), int),
    "retry_max_attempts": (("RETRY_MAX_ATTEMPTS",), int),
    "github_token": (("GITHUB_TOKEN", "GH_TOKEN"), str),
    "github_api_url": (("GITHUB_API_URL", "GITHUB_API_BASE"), str),
    "analysis_intent": (("ANALYSIS_INTENT", "INPUT_ANALYSIS_INTENT"), str),
    "max_files": (("MAX_FILES", "INPUT_MAX_FILES"), int),
    "output_dir": (("TRIAGE_OUTPUT_DIR",), str),
    "report_format": (("REPORT_FORMAT",), str),
}


def load_env_overrides() -> Dict[str, Any]:
    """Collect config values from environment variables that are set.

    Unset variables contribute nothing, so lower layers keep their values.
    A value that fails conversion is logged and skipped.
    """
    overrides: Dict[str, Any] = {}
    for key, (names, convert) in _ENV_VARS.items():
        name = next((n for n in names if n in os.environ), None)
        if name is None:
            continue
        raw = os.environ[name]
        try:
            overrides[key] = convert(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring %s=%r: expected %s", name, raw, convert.__name__)
    return overrides


# argparse destination -> config key
_CLI_OPTIONS = {
    "provider": "ai_provider",
    "model": "model",
    "intent": "analysis_intent",
    "max_files": "max_files",
    "output_dir": "output_dir",
    "format": "report_format",
}


def extract_cli_overrides(args: Any) -> Dict[str, Any]:
    """Map the CLI options the user actually passed onto config keys."""
    if args is None:
        return {}
    overrides = {
        key: getattr(args, option)
        for option, key in _CLI_OPTIONS.items()
        if getattr(args, option, None) is not None
    }
    # store_true flag: absence must not switch reasoning off
    if getattr(args, "enable_reasoning", False) is True:
        overrides["enable_reasoning"] = True
    return overrides


def deep_merge(base: dict, override: dict) -> dict:
    """Return *base* updated with the non-None values of *override*."""
    merged = dict(base)
    merged.update({key: value for key, value in override.items() if value is not None})
    return merged


def _load_project_file(repo_path: str) -> Dict[str, Any]:
    path = Path(repo_path) / PROJECT_FILE
    if not path.is_file():
        return {}
    logger.info("Loading project overrides from %s", path)
    return flatten_profile(_read_yaml(path))


def _profile_layer(profile_name: Optional[str]) -> Dict[str, Any]:
    if not profile_name:
        return {}
    try:
        return load_profile(profile_name)
    except FileNotFoundError as exc:
        logger.warning("%s; continuing without it", exc)
        return {}


def build_unified_config(
    profile: Optional[str] = None,
    cli_args: Any = None,
    repo_path: str = ".",
) -> Dict[str, Any]:
    """Merge all configuration layers into one flat dict.

    Args:
        profile: Profile name. Falls back to ``cli_args.profile`` and then
            the ``TRIAGE_PROFILE`` environment variable.
        cli_args: Parsed ``argparse.Namespace`` or None.
        repo_path: Directory searched for ``.triage.yml``.
    """
    if profile is None:
        profile = getattr(cli_args, "profile", None) or os.environ.get(PROFILE_ENV_VAR)

    layers = [
        (f"profile {profile}", _profile_layer(profile)),
        (PROJECT_FILE, _load_project_file(repo_path)),
        ("environment", load_env_overrides()),
        ("command line", extract_cli_overrides(cli_args)),
    ]

    config = get_default_config()
    for label, values in layers:
        if values:
            config = deep_merge(config, values)
            logger.debug("Applied %d keys from %s", len(values), label)
    return config


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

_PROVIDERS = ("auto", "anthropic", "openai", "gemini", "ollama")
_REPORT_FORMATS = ("json", "markdown", "all")

# provider -> (config key, environment variable users set it through)
_PROVIDER_CREDENTIALS = {
    "anthropic": ("anthropic_api_key", "ANTHROPIC_API_KEY"),
    "openai": ("openai_api_key", "OPENAI_API_KEY"),
    "gemini": ("google_api_key", "GOOGLE_API_KEY"),
}


def _reasoning_issues(config: Dict[str, Any], provider: str) -> List[str]:
    if provider in _PROVIDER_CREDENTIALS:
        key, env_name = _PROVIDER_CREDENTIALS[provider]
        if not config.get(key):
            return [f"ERROR: ai_provider is '{provider}' but {env_name} is not set."]
    elif provider == "ollama" and not config.get("ollama_endpoint"):
        return [
            "WARNING: ai_provider is 'ollama' but OLLAMA_ENDPOINT is not set; "
            "http://localhost:11434 will be used."
        ]
    elif provider == "auto":
        sources = ("anthropic_api_key", "openai_api_key", "google_api_key", "ollama_endpoint")
        if not any(config.get(key) for key in sources):
            return ["ERROR: enable_reasoning is true but no API keys or endpoints are configured."]
    return []


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_config(config: Dict[str, Any]) -> List[str]:
    """Check a merged config.

    Returns human-readable messages prefixed ``ERROR:`` (the run cannot
    proceed) or ``WARNING:`` (it can, with degraded results). An empty list
    means the config is fine.
    """
    issues: List[str] = []

    provider = config.get("ai_provider", "auto")
    if provider not in _PROVIDERS:
        issues.append(f"ERROR: Invalid ai_provider '{provider}' (expected one of {', '.join(_PROVIDERS)})")
    elif config.get("enable_reasoning"):
        issues.extend(_reasoning_issues(config, provider))

    intent = config.get("analysis_intent", "default")
    if intent not in ANALYSIS_POLICIES:
        issues.append(
            f"WARNING: Unknown analysis_intent '{intent}'; falling back to the default policy "
            f"(known: {', '.join(sorted(ANALYSIS_POLICIES))})"
        )

    fmt = config.get("report_format", "all")
    if fmt not in _REPORT_FORMATS:
        issues.append(f"ERROR: Invalid report_format '{fmt}' (expected one of {', '.join(_REPORT_FORMATS)})")

    max_files = config.get("max_files")
    if max_files is not None and not (isinstance(max_files, int) and not isinstance(max_files, bool)):
        issues.append(f"ERROR: max_files must be an integer, got {max_files!r}.")
    elif max_files is not None and max_files < 0:
        issues.append("ERROR: max_files must be >= 0.")

    for key in ("reasoning_timeout", "github_timeout"):
        value = config.get(key)
        if value is not None and not _is_number(value):
            issues.append(f"ERROR: {key} must be a number, got {value!r}.")
        elif _is_number(value) and value <= 0:
            issues.append(f"ERROR: {key} must be > 0.")

    if _is_number(config.get("chunk_cost_cap")) and config["chunk_cost_cap"] < 0:
        issues.append("ERROR: chunk_cost_cap must be >= 0.")

    multipliers = config.get("chunk_cost_multipliers")
    if multipliers is not None and not isinstance(multipliers, dict):
        issues.append("ERROR: chunk_cost_multipliers must map category names to numbers.")

    if not config.get("github_token"):
        issues.append(
            "WARNING: GITHUB_TOKEN is not set. Code search needs authentication and "
            "unauthenticated tree listing is limited to 60 requests per hour."
        )

    return issues
