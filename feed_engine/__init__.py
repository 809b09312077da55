"""Feed engine package.

The package is structured around one ingestion run:
- `sources/` streams raw records out of the partner XML feed.
- `normalize.py` holds relevance filtering and tag heuristics.
- `extract.py` turns free-text postings into structured facts.
- `enrich.py` rewrites descriptions (AI first, deterministic template otherwise).
- `store.py` owns the SQLite store: dedup, batched writes, retention, queries.
- `pipeline.py` wires everything together behind a single-flight guard.
"""
