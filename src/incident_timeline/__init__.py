"""
Immutable, hash-chained incident timelines.
"""

from .config import TimelineConfig, load_config

_LAZY_EXPORTS = {
    "ChainedLog",
    "TimelineEntry",
    "VerificationResult",
    "verify",
}


def __getattr__(name):  # pragma: no cover - thin lazy import shim
    if name in _LAZY_EXPORTS:
        import importlib

        if name == "TimelineEntry":
            module = importlib.import_module(".timeline.entry", __name__)
        else:
            module = importlib.import_module(".provenance", __name__)
        return getattr(module, name)
    raise AttributeError(name)


__all__ = ["TimelineConfig", "load_config", *_LAZY_EXPORTS]
