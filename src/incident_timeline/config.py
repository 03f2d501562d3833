import hashlib
from dataclasses import dataclass
from os import environ
from pathlib import PurePosixPath, PureWindowsPath
from typing import Mapping, MutableMapping


ENV_PREFIX = "INCIDENT_TIMELINE_"

SORT_MODES = ("lexical", "parsed")

WEAK_DIGESTS = frozenset({"md4", "md5", "md5-sha1", "mdc2", "ripemd160", "sha1"})


@dataclass(frozen=True)
class TimelineConfig:
    version: str = "0.1.0"
    log_schema_version: str = "1"
    home: str = ".incident_timeline"
    log_enabled: bool = True
    log_path: str = "logs/operations.jsonl"
    store_dir: str = ".incident_timeline/store"
    store_filename: str = "timeline.jsonl"
    sort_mode: str = "lexical"
    digest_algorithm: str = "sha256"

    def __post_init__(self) -> None:
        object.__setattr__(self, "store_filename", (self.store_filename or "").strip())
        object.__setattr__(self, "sort_mode", (self.sort_mode or "").strip().lower())
        object.__setattr__(self, "digest_algorithm", (self.digest_algorithm or "").strip().lower())

    def validate(self) -> None:
        if self.sort_mode not in SORT_MODES:
            raise ValueError(f"sort_mode must be one of {', '.join(SORT_MODES)}")
        if self.digest_algorithm not in hashlib.algorithms_available:
            raise ValueError(f"Unsupported digest_algorithm: {self.digest_algorithm}")
        if self.digest_algorithm.startswith("shake_"):
            # variable-length digests have no fixed output size
            raise ValueError("digest_algorithm must produce a fixed-length digest")
        if self.digest_algorithm in WEAK_DIGESTS:
            raise ValueError(f"digest_algorithm {self.digest_algorithm} is not collision resistant")
        if not (self.store_dir or "").strip():
            raise ValueError("store_dir must be set")
        if not self.store_filename:
            raise ValueError("store_filename must be set")
        _ensure_relative(self.store_filename, "store_filename")
        if self.log_enabled:
            if not (self.home or "").strip():
                raise ValueError("home must be set when operation logging is enabled")
            if not (self.log_path or "").strip():
                raise ValueError("log_path must be set when operation logging is enabled")
            _ensure_relative(self.log_path.strip(), "log_path")
            if not (self.log_schema_version or "").strip():
                raise ValueError("log_schema_version must be set when operation logging is enabled")


def _ensure_relative(raw: str, field: str) -> None:
    posix = PurePosixPath(raw)
    windows = PureWindowsPath(raw)

    if posix.is_absolute() or windows.is_absolute() or windows.drive:
        raise ValueError(f"{field} must be a relative path")
    if raw.startswith("~"):
        raise ValueError(f"{field} must not start with ~")
    if ".." in posix.parts or ".." in windows.parts:
        raise ValueError(f"{field} must not contain parent directory traversal")


def _coerce_bool(value: str) -> bool:
    truthy = {"1", "true", "yes", "on"}
    falsy = {"0", "false", "no", "off"}
    lowered = value.strip().lower()
    if lowered in truthy:
        return True
    if lowered in falsy:
        return False
    raise ValueError(f"Invalid boolean value: {value}")


def _get_env(env: Mapping[str, str], key: str) -> str | None:
    return env.get(f"{ENV_PREFIX}{key}")


def load_config(env: Mapping[str, str] | None = None) -> TimelineConfig:
    source: Mapping[str, str] | MutableMapping[str, str] = env if env is not None else environ

    log_enabled_raw = _get_env(source, "LOG_ENABLED")
    log_enabled = (
        _coerce_bool(log_enabled_raw) if log_enabled_raw is not None else TimelineConfig.log_enabled
    )

    cfg = TimelineConfig(
        version=_get_env(source, "VERSION") or TimelineConfig.version,
        log_schema_version=_get_env(source, "LOG_SCHEMA_VERSION") or TimelineConfig.log_schema_version,
        home=_get_env(source, "HOME") or TimelineConfig.home,
        log_enabled=log_enabled,
        log_path=_get_env(source, "LOG_PATH") or TimelineConfig.log_path,
        store_dir=_get_env(source, "STORE_DIR") or TimelineConfig.store_dir,
        store_filename=_get_env(source, "STORE_FILENAME") or TimelineConfig.store_filename,
        sort_mode=_get_env(source, "SORT_MODE") or TimelineConfig.sort_mode,
        digest_algorithm=_get_env(source, "DIGEST_ALGORITHM") or TimelineConfig.digest_algorithm,
    )
    cfg.validate()
    return cfg


__all__ = ["SORT_MODES", "TimelineConfig", "load_config"]
