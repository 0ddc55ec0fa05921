"""
Event Type Constants.

Notification names pushed to UI clients when the tag graph or its dependent
records change. Use these constants with EventBus for type-safe handling.

Usage:
    from mediatags.core.events import Events, EventBus

    event_bus.subscribe(Events.TAG_MERGED, on_tag_merged)
    event_bus.emit(Events.TAG_MERGED, {"old_tag_id": old_id, "new_tag_id": new_id})
"""


class Events:
    """
    Standard event type constants for EventBus.

    Payloads use plain dicts of str/ObjectId values so any transport can
    serialize them.
    """

    # Tag events - hierarchy and attribute changes
    TAG_CREATED = "tag.created"
    TAG_DELETED = "tag.deleted"
    TAG_MERGED = "tag.merged"
    TAGS_UPDATED = "tags.updated"

    # File events - direct tag assignment
    FILE_TAGS_UPDATED = "files.tags_updated"

    # Broad reload signals - clients drop cached state and refetch
    FILES_RELOAD = "files.reload"
    COLLECTIONS_RELOAD = "collections.reload"
    IMPORT_BATCHES_RELOAD = "import_batches.reload"
    TAGS_RELOAD = "tags.reload"

    RELOAD_ALL = (FILES_RELOAD, COLLECTIONS_RELOAD, IMPORT_BATCHES_RELOAD, TAGS_RELOAD)
