"""Package initialization for heap-segment-shipper.

Having this file allows relative imports (e.g. `from .models import ...`) to
resolve under tooling (mypy/ruff) and matches the CLI usage pattern
`python -m heap_segment_shipper sync`.
"""

__all__ = []
