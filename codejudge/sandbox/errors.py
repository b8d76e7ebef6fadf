"""Exception hierarchy for the execution sandbox."""


class SandboxError(Exception):
    """Base class for all sandbox errors."""


class ValidationError(SandboxError):
    """A job request was rejected before any sandbox was provisioned."""


class UnsupportedLanguageError(ValidationError):
    """The requested language has no profile in the registry."""

    def __init__(self, language: str) -> None:
        super().__init__(f"Unsupported programming language: {language!r}")
        self.language = language


class ResourceError(SandboxError):
    """The isolation layer failed to provision or manage a sandbox.

    Always reported as ``system_error``; never attributed to user code.
    """
