"""Feed core: derivation, caching, bookmarks and the feed controller."""
