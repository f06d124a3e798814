"""Fixture loading.

Bulk-inserts declared batches of records into a persistent store with forced
identifiers, reconciliation against already-persisted rows, references
between records and batched flushes. Loading is strictly sequential: records
and fixtures are processed one at a time, in order.
"""
