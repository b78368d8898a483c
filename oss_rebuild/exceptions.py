class RebuildError(Exception):
    """Base error for the rebuild orchestration core."""
    pass

class TransientError(RebuildError):
    """Raised for network failures, timeouts and retryable server errors."""
    pass

class NotFoundError(RebuildError):
    """Raised when a package, version, file or asset does not exist."""
    pass

class MalformedError(RebuildError):
    """Raised when a payload cannot be decoded."""
    pass

class InvalidSemver(MalformedError):
    """Raised when a version string is not valid SemVer."""
    pass

class UnsupportedError(RebuildError):
    """Raised when an ecosystem or feature is not implemented."""
    pass

class InferenceError(RebuildError):
    """Raised when a build strategy cannot be inferred."""
    pass

class NoValidRefError(InferenceError):
    """Raised when no commit passes manifest validation."""
    pass

class VersionMismatchError(InferenceError):
    """Raised when a manifest names the package but declares a different version."""
    pass

class BuildFailure(RebuildError):
    """Raised when a build script exits non-zero."""

    def __init__(self, message: str, phase: str = "", logs: str = ""):
        super().__init__(message)
        self.phase = phase
        self.logs = logs

class CompareMismatch(RebuildError):
    """Raised when the rebuild differs from upstream after stabilization."""

    def __init__(self, verdict: str):
        super().__init__(verdict)
        self.verdict = verdict

class AssetIOError(RebuildError):
    """Wrapped technical error from an asset store."""
    pass

class InternalError(RebuildError):
    """Raised on programming errors or unmet invariants. Never becomes a verdict."""
    pass
