"""Bucket domain: hierarchical chunk containers."""

from stratamem.buckets.bucket import Bucket
from stratamem.buckets.bucket import BucketConfig

__all__ = ["Bucket", "BucketConfig"]
