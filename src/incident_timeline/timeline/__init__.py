from .entry import ActionType, MediaAttachment, MediaKind, TimelineEntry

__all__ = ["ActionType", "MediaAttachment", "MediaKind", "TimelineEntry"]
