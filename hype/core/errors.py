"""
Exceptions raised by the Hype codec, curve engine and encoders
"""


class HypeError(Exception):
    """Base class for all Hype client errors"""


class DecodeError(HypeError, ValueError):
    """Buffer too short, tag mismatch or offset out of range"""


class DomainError(HypeError, ValueError):
    """Value outside the protocol's domain (curve at max supply, unknown network)"""


class MalformedEvent(DecodeError):
    """Log line matched a known prefix but its fields could not be decoded"""

    def __init__(self, message: str, line: str = ""):
        super().__init__(message)
        self.line = line
