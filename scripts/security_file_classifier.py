#!/usr/bin/env python3
"""
Security File Classifier

Decides from a path alone whether a repository file is worth a security
look, and if so which category and priority it belongs to.  No file content
is read.

Classification is an ordered rule table of ``(category, predicate)`` pairs
evaluated in precedence order secret > dependency > security > deployment >
config.  The first predicate that matches wins, so a path never belongs to
two categories.

Usage:
    from security_file_classifier import classify, select_files, resolve_policy

    classified = classify("config/.env.production")
    files = select_files(paths, resolve_policy("secrets"))
"""

import logging
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Tuple

from models import Category, ClassifiedFile, Priority, SelectionPolicy

__all__ = [
    "classify",
    "select_files",
    "resolve_policy",
    "group_by_category",
    "ANALYSIS_POLICIES",
    "CLASSIFICATION_RULES",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Pattern registries
# ---------------------------------------------------------------------------

SECRET_FILE_NAMES: Tuple[str, ...] = (
    ".env",
    ".env.local",
    ".env.production",
    ".env.staging",
    "secrets.json",
    "credentials.json",
    "keys.json",
)

SECRET_KEYWORDS: Tuple[str, ...] = (
    "secret",
    "key",
    "token",
    "credential",
    "password",
    "auth",
)

DEPENDENCY_FILE_NAMES: Tuple[str, ...] = (
    "package.json",
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "requirements.txt",
    "pipfile",
    "poetry.lock",
    "pom.xml",
    "build.gradle",
    "gemfile",
    "gemfile.lock",
    "composer.json",
    "composer.lock",
    "cargo.toml",
    "cargo.lock",
    "go.mod",
    "go.sum",
)

SECURITY_PATTERNS: Tuple[str, ...] = (
    "security",
    "auth",
    "authentication",
    "authorization",
    "permission",
    "firewall",
    "cors",
    "csp",
    "security.json",
    "auth.json",
)

DEPLOYMENT_PATTERNS: Tuple[str, ...] = (
    "dockerfile",
    "docker-compose",
    "kubernetes",
    "k8s",
    "helm",
    "terraform",
    "ansible",
    "deployment",
    "infrastructure",
    ".dockerignore",
    "docker-compose.yml",
    "docker-compose.yaml",
)

CONFIG_PATTERNS: Tuple[str, ...] = (
    "config",
    "settings",
    "properties",
    "ini",
    "yaml",
    "yml",
    "xml",
    "conf",
    "cfg",
)

CONFIG_EXTENSIONS: Tuple[str, ...] = ("yaml", "yml", "xml", "ini", "conf")

VENDORED_DIRS: Tuple[str, ...] = ("node_modules",)
GENERATED_DIRS: Tuple[str, ...] = ("node_modules", "dist", "build")

ENV_FILE_MARKER = ".env"

# ---------------------------------------------------------------------------
# Path parsing
# ---------------------------------------------------------------------------


class _PathParts(NamedTuple):
    normalized: str
    file_name: str
    extension: str
    directories: Tuple[str, ...]


def _split_path(path: str) -> _PathParts:
    normalized = path.replace("\\", "/").lower()
    segments = normalized.split("/")
    file_name = segments[-1]
    extension = file_name.rsplit(".", 1)[-1] if "." in file_name else ""
    return _PathParts(normalized, file_name, extension, tuple(segments[:-1]))


def _under(parts: _PathParts, dirs: Tuple[str, ...]) -> bool:
    return any(segment in dirs for segment in parts.directories)


def _keyword_match(parts: _PathParts, patterns: Iterable[str], excluded: Tuple[str, ...]) -> Optional[str]:
    """Exact file-name match, else substring match outside *excluded* dirs."""
    for pattern in patterns:
        if parts.file_name == pattern:
            return f"exact file name '{pattern}'"
    if _under(parts, excluded):
        return None
    for pattern in patterns:
        if pattern in parts.normalized:
            return f"path contains '{pattern}'"
    return None

# ---------------------------------------------------------------------------
# Category predicates
# ---------------------------------------------------------------------------


def _match_secret(parts: _PathParts) -> Optional[str]:
    for name in SECRET_FILE_NAMES:
        if parts.file_name == name:
            return f"exact file name '{name}'"
    for name in SECRET_FILE_NAMES:
        if name.startswith(".") and parts.file_name.startswith(name):
            return f"file name starts with '{name}'"
    if _under(parts, VENDORED_DIRS):
        return None
    for pattern in SECRET_FILE_NAMES + SECRET_KEYWORDS:
        if pattern in parts.normalized:
            return f"path contains '{pattern}'"
    return None


def _match_dependency(parts: _PathParts) -> Optional[str]:
    # Exact names only: "package" alone anywhere in a path means nothing.
    if parts.file_name in DEPENDENCY_FILE_NAMES:
        return f"dependency manifest '{parts.file_name}'"
    return None


def _match_security(parts: _PathParts) -> Optional[str]:
    return _keyword_match(parts, SECURITY_PATTERNS, GENERATED_DIRS)


def _match_deployment(parts: _PathParts) -> Optional[str]:
    return _keyword_match(parts, DEPLOYMENT_PATTERNS, GENERATED_DIRS)


def _match_config(parts: _PathParts) -> Optional[str]:
    reason = _keyword_match(parts, CONFIG_PATTERNS, GENERATED_DIRS)
    if reason:
        return reason
    if parts.extension in CONFIG_EXTENSIONS:
        # Build-tool manifests sharing a config extension are dependencies.
        if parts.file_name in DEPENDENCY_FILE_NAMES:
            return None
        return f"config extension '.{parts.extension}'"
    return None


CLASSIFICATION_RULES: List[Tuple[Category, Callable[[_PathParts], Optional[str]]]] = [
    (Category.SECRET, _match_secret),
    (Category.DEPENDENCY, _match_dependency),
    (Category.SECURITY, _match_security),
    (Category.DEPLOYMENT, _match_deployment),
    (Category.CONFIG, _match_config),
]


def _priority_for(category: Category, parts: _PathParts) -> Priority:
    if category is Category.SECRET:
        return Priority.HIGH
    if category is Category.DEPENDENCY and "/" not in parts.normalized:
        return Priority.HIGH
    if category is Category.CONFIG and ENV_FILE_MARKER in parts.normalized:
        return Priority.HIGH
    if category in (Category.SECURITY, Category.DEPLOYMENT):
        return Priority.MEDIUM
    return Priority.LOW

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def classify(path: str) -> Optional[ClassifiedFile]:
    """Classify a single repository path.

    Parameters
    ----------
    path:
        Repository-relative file path.  Comparison is case-insensitive; the
        original spelling is kept on the result.

    Returns
    -------
    ClassifiedFile | None
        ``None`` when no category matches or the input is not a usable path.
    """
    if not isinstance(path, str) or not path.strip():
        return None

    parts = _split_path(path)
    for category, predicate in CLASSIFICATION_RULES:
        reason = predicate(parts)
        if reason:
            return ClassifiedFile(
                path=path,
                category=category,
                priority=_priority_for(category, parts),
                reason=f"Matched {category.value} pattern: {reason}",
            )
    return None


def select_files(paths: Iterable[str], policy: SelectionPolicy) -> List[ClassifiedFile]:
    """Classify, filter, order and truncate a path list.

    Ordering is priority descending, then category rank descending; ties keep
    their input order.
    """
    selected = []
    for path in paths:
        classified = classify(path)
        if classified is None or not policy.allows(classified.category):
            continue
        selected.append(classified)

    selected.sort(key=lambda f: (-f.priority.get_score(), -f.category.get_rank()))

    if policy.max_files is not None and len(selected) > policy.max_files:
        logger.debug(
            "Truncating %d selected files to max_files=%d", len(selected), policy.max_files
        )
        selected = selected[: policy.max_files]

    return selected


def group_by_category(files: Iterable[ClassifiedFile]) -> Dict[Category, List[ClassifiedFile]]:
    """Group classified files by category, preserving order within groups."""
    groups: Dict[Category, List[ClassifiedFile]] = {}
    for classified in files:
        groups.setdefault(classified.category, []).append(classified)
    return groups

# ---------------------------------------------------------------------------
# Analysis intents
# ---------------------------------------------------------------------------

DEFAULT_INTENT = "default"

ANALYSIS_POLICIES: Dict[str, SelectionPolicy] = {
    "secrets": SelectionPolicy(
        enabled_categories=frozenset({Category.SECRET, Category.CONFIG}),
        max_files=20,
    ),
    "vulnerabilities": SelectionPolicy(
        enabled_categories=frozenset({Category.SECURITY, Category.DEPENDENCY}),
        max_files=15,
    ),
    "dependencies": SelectionPolicy(
        enabled_categories=frozenset({Category.DEPENDENCY}),
        max_files=10,
    ),
    "code-patterns": SelectionPolicy(
        enabled_categories=frozenset({Category.SECURITY, Category.CONFIG}),
        max_files=25,
    ),
    DEFAULT_INTENT: SelectionPolicy(
        enabled_categories=frozenset(Category),
        max_files=30,
    ),
}


def resolve_policy(intent: Optional[str]) -> SelectionPolicy:
    """Map an analysis intent label to its static selection policy.

    Unknown labels resolve to the ``default`` policy.
    """
    policy = ANALYSIS_POLICIES.get(intent or DEFAULT_INTENT)
    if policy is None:
        logger.debug("Unknown analysis intent %r, using default policy", intent)
        policy = ANALYSIS_POLICIES[DEFAULT_INTENT]
    return policy
