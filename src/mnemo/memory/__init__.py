"""
Memory module - persistent knowledge with hybrid recall.

Layers:
- privacy: PII redaction before anything is stored
- store: Memories, preferences, patterns, task knowledge, reflections
- vectors: Embedding index for semantic recall
- consolidation: Cluster summaries and deduplication
- extraction: Rule-based learning from raw interactions

Storage: SQLite snapshots (one row per collection)
"""
