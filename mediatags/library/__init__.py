"""
MediaTags Library - Tagged media records and the tag hierarchy engine.
"""
