"""Fatal bootstrap errors.

Every failure while bootstrapping a cross test is unrecoverable: the owning
test process is expected to abort its startup path.
"""


class BootstrapError(RuntimeError):
    """Base class for fatal bootstrap failures."""


class AllocationError(BootstrapError):
    """The throwaway probe listener could not be bound."""


class HandshakeError(BootstrapError):
    """The port file or the stamp file could not be written."""


class BindError(BootstrapError):
    """The real listener could not be bound to the allocated port."""

    def __init__(self, port: int, message: str):
        super().__init__(message)
        self.port = port


class SpawnError(BootstrapError):
    """The dedicated worker thread could not be started."""
