"""Exceptions raised at adapter boundaries."""


class AdapterUnavailable(Exception):
    """A source adapter timed out, errored, or is not configured.

    Never surfaced to callers of ``diagnose``; the fan-out treats it as
    empty evidence and records the source as unavailable.
    """

    def __init__(self, source_id: str, reason: str = ""):
        self.source_id = source_id
        self.reason = reason
        super().__init__(f"{source_id} unavailable: {reason}" if reason else f"{source_id} unavailable")
