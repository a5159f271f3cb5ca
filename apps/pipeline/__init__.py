"""Pipeline execution helpers."""

from apps.pipeline.batch_executor import BatchResult, execute_cached_batch

__all__ = ["BatchResult", "execute_cached_batch"]
