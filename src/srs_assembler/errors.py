"""Hard failures that abort a run before generation starts."""

from __future__ import annotations


class ExtractionFailure(RuntimeError):
    """Template or unit source could not be read or yielded no content."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"Cannot extract {source}: {reason}")
        self.source = source
        self.reason = reason
