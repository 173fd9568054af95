"""Record mapping helpers: caches, table ordering and per-type transforms.

Modules here are pure with respect to I/O: they never touch S3 or Segment.
State that must outlive a single record (identity and session caches) is held
by `BatchContext` and passed in explicitly.
"""
