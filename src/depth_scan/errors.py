"""
Exception types raised by the depth scan pipeline.

Only InvalidGeometryError and ConfigError indicate a setup problem. The
other errors are raised per accumulation window and are recovered from by
the state machine.
"""


class DepthScanError(Exception):
    """Base class for all depth scan errors"""


class InvalidGeometryError(DepthScanError, ValueError):
    """ROI bounds or depth grid dimensions do not describe a valid region"""


class LengthMismatchError(DepthScanError, ValueError):
    """Sample arrays combined in one cycle have different lengths"""


class ObjectNotDetectedError(DepthScanError):
    """No object rose above the surface, or too few pixels did"""


class ConfigError(DepthScanError, ValueError):
    """Configuration values are missing, malformed or out of range"""
