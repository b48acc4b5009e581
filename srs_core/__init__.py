"""
srs-core: spaced-repetition scheduling core.

Subpackages:
    srs_core.fsrs     scheduling algorithm and SQL persistence
    srs_core.session  study session queues

Modules:
    srs_core.review_log    ReviewService (commit, preview, undo)
    srs_core.ports         storage contracts and clocks
    srs_core.memory_store  in-process stores
    srs_core.config        environment configuration
    srs_core.errors        exception hierarchy
"""

__version__ = "0.1.0"
