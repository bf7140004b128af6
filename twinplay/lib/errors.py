"""
TwinPlay error taxonomy.

NotFound / PrepareFailed / CollaboratorUnavailable reach the caller;
MalformedRecord never leaves the converter (the record is dropped instead).
"""


class TwinPlayError(Exception):
    """Base class for every error raised by the engine."""

    code = "error"


class NotFound(TwinPlayError):
    code = "not_found"

    def __init__(self, kind, ref_id: str):
        self.kind = getattr(kind, "value", kind)
        self.ref_id = ref_id
        super().__init__(f"No {self.kind} with id {ref_id!r}")


class PrepareFailed(TwinPlayError):
    code = "prepare_failed"

    def __init__(self, backend, reason: str = ""):
        self.backend = getattr(backend, "value", backend)
        self.reason = reason
        super().__init__(f"{self.backend} backend refused to prepare playback: {reason or 'unknown reason'}")


class CollaboratorUnavailable(TwinPlayError):
    code = "unavailable"

    def __init__(self, backend, reason: str = ""):
        self.backend = getattr(backend, "value", backend)
        self.reason = reason
        super().__init__(f"{self.backend} backend unavailable: {reason or 'unreachable'}")


class MalformedRecord(TwinPlayError):
    code = "malformed_record"
