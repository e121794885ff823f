"""Exception types raised by the pipeline stages.

Every error carries the id of the stage that raised it so the CLI can tell
the user where the build stopped.
"""

from typing import Optional


class CustomizerError(Exception):
    """Base class for all pipeline failures."""

    stage = "unknown"

    def __init__(self, message: str, *, stage: Optional[str] = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class PreflightError(CustomizerError):
    stage = "preflight"


class AcquisitionError(CustomizerError):
    stage = "acquire"


class StructuralError(CustomizerError):
    """The reference image does not have the layout we expect."""

    stage = "extract"


class PatchError(CustomizerError):
    stage = "patch-boot"


class PayloadError(CustomizerError):
    stage = "inject-payload"


class IsolatedExecutionError(CustomizerError):
    stage = "customize"


class RepackError(CustomizerError):
    stage = "repack"


class AssemblyError(CustomizerError):
    stage = "assemble"


class ResetError(CustomizerError):
    """A bind point from an earlier run could not be released."""

    stage = "reset"
