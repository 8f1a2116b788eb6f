"""Node priority model lifecycle and scoring.

Primary components:
- ``encoding``: validation and the fixed-order feature encoding.
- ``predictor``: the torch feed-forward ``NodePriorityPredictor``.
- ``artifact_store``: per-model artifact directories on the filesystem.
- ``lifecycle``: ``ModelLifecycleManager`` (create, train, delete, fetch).
- ``ranking``: ``RankingEngine`` (batch inference and top-K selection).
- ``errors``: the error taxonomy surfaced to callers.
"""
