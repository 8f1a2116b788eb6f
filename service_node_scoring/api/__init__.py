"""API subpackage for the node scoring service.

Routes cover model creation, listing, incremental training, ranking, artifact
download and deletion. Designed to be thin layers over
``ModelLifecycleManager`` and ``RankingEngine`` to keep business logic out of
transport code.
"""
