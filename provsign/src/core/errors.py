from typing import List, Optional


class SigningError(Exception):
    """Base class for every failure that aborts a signing attempt"""

    def __init__(self, message: str, output: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.output = list(output or [])


class NoIdentityError(SigningError):
    pass


class NoMatchingProfileError(SigningError):
    pass


class ProfileDecodeError(SigningError):
    """A single provisioning profile file could not be decoded"""


class ToolInvocationError(SigningError):
    pass


class VerificationMismatchError(SigningError):
    pass


class BundleError(SigningError):
    pass
