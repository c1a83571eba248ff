"""
Configuration - environment variables resolved when a store is built.

Backend and vector engine are chosen once, explicitly; an unknown choice is
a ConfigurationError rather than a silent fallback.
"""

import os
from pathlib import Path
from typing import List, Optional, Union

from .errors import ConfigurationError

# Storage
BACKEND_KINDS = ("kv", "file")
DEFAULT_BACKEND = "kv"
DEFAULT_DB_PATH = "./data/docvec.db"
DEFAULT_DATA_DIR = "./data/docvec"

# Vector engine
VECTOR_ENGINES = ("simple", "tree", "faiss")
DEFAULT_VECTOR_ENGINE = "simple"
DEFAULT_TREE_LEAF_SIZE = 16
DEFAULT_TREE_EPS = 0.0

# Query planner
DEFAULT_HYBRID_OVERFETCH = 10
DEFAULT_SIMILARITY_LIMIT = 50
DEFAULT_VECTOR_FIELD = "embedding"

VERSION = "0.1.0"


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


def debug_enabled() -> bool:
    """Check if debug mode is enabled."""
    return _env_flag("DEBUG", "false")


def get_backend_kind() -> str:
    return os.getenv("DOCVEC_BACKEND", DEFAULT_BACKEND).lower()


def get_db_path() -> str:
    return os.getenv("DOCVEC_DB_PATH", DEFAULT_DB_PATH)


def get_data_dir() -> str:
    return os.getenv("DOCVEC_DATA_DIR", DEFAULT_DATA_DIR)


def get_vector_engine_name() -> str:
    return os.getenv("DOCVEC_VECTOR_ENGINE", DEFAULT_VECTOR_ENGINE).lower()


def get_tree_leaf_size() -> int:
    return _env_int("DOCVEC_TREE_LEAF_SIZE", DEFAULT_TREE_LEAF_SIZE)


def get_tree_eps() -> float:
    return _env_float("DOCVEC_TREE_EPS", DEFAULT_TREE_EPS)


def tree_auto_build_enabled() -> bool:
    return _env_flag("DOCVEC_TREE_AUTO_BUILD", "true")


def get_hybrid_overfetch() -> int:
    return _env_int("DOCVEC_HYBRID_OVERFETCH", DEFAULT_HYBRID_OVERFETCH)


def get_similarity_limit() -> int:
    return _env_int("DOCVEC_SIMILARITY_LIMIT", DEFAULT_SIMILARITY_LIMIT)


def ensure_data_directory(path: Union[str, Path]) -> None:
    """Ensure a data directory exists."""
    Path(path).mkdir(parents=True, exist_ok=True)


def ensure_db_directory(db_path: Union[str, Path]) -> None:
    """Ensure the database file's directory exists."""
    if str(db_path) == ":memory:":
        return
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)


def get_document_backend(kind: Optional[str] = None, path: Optional[Union[str, Path]] = None):
    """Build the configured document backend."""
    kind = (kind or get_backend_kind()).lower()

    if kind == "kv":
        from .kv_backend import KVBackend
        return KVBackend(path if path is not None else get_db_path())
    elif kind == "file":
        from .file_backend import FileBackend
        return FileBackend(path if path is not None else get_data_dir())
    else:
        raise ConfigurationError(f"Unsupported document backend: {kind!r} (expected one of {BACKEND_KINDS})")


def get_vector_engine(strategy: Optional[str] = None):
    """Build the configured vector engine."""
    from ..vector.engine import VectorEngine
    return VectorEngine(
        strategy or get_vector_engine_name(),
        tree_leaf_size=get_tree_leaf_size(),
        tree_eps=get_tree_eps(),
        tree_auto_build=tree_auto_build_enabled(),
    )


def validate_config() -> List[str]:
    """Validate configuration and return any issues."""
    issues = []

    if get_backend_kind() not in BACKEND_KINDS:
        issues.append(f"Invalid DOCVEC_BACKEND: {get_backend_kind()}")

    if get_vector_engine_name() not in VECTOR_ENGINES:
        issues.append(f"Invalid DOCVEC_VECTOR_ENGINE: {get_vector_engine_name()}")

    for name, getter, minimum in (
        ("DOCVEC_TREE_LEAF_SIZE", get_tree_leaf_size, 1),
        ("DOCVEC_HYBRID_OVERFETCH", get_hybrid_overfetch, 1),
        ("DOCVEC_SIMILARITY_LIMIT", get_similarity_limit, 1),
    ):
        try:
            if getter() < minimum:
                issues.append(f"{name} must be >= {minimum}")
        except ConfigurationError as e:
            issues.append(str(e))

    try:
        if get_tree_eps() < 0:
            issues.append("DOCVEC_TREE_EPS must be >= 0")
    except ConfigurationError as e:
        issues.append(str(e))

    return issues
