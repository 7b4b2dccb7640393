"""
Bulk row generation: deterministic synthesis, parallel batched writes, and
the best-effort passes that follow a load.
"""

from rowstream.bulk.background import BackgroundPasses
from rowstream.bulk.batches import Batch, partition_batches
from rowstream.bulk.generator import BatchReport, BulkRowGenerator
from rowstream.bulk.indexes import IndexDefinition, IndexManager, should_drop_indexes
from rowstream.bulk.synth import (
    build_search_text,
    synthesize_row,
    synthesize_value,
    table_seed,
    value_rule,
)

__all__ = [
    "BackgroundPasses",
    "Batch",
    "BatchReport",
    "BulkRowGenerator",
    "IndexDefinition",
    "IndexManager",
    "build_search_text",
    "partition_batches",
    "should_drop_indexes",
    "synthesize_row",
    "synthesize_value",
    "table_seed",
    "value_rule",
]
