"""
Storage backends.

- github_store: Remote file store (GitHub contents API)
- local_cache: SQLite key/value cache for locally persisted state
"""
