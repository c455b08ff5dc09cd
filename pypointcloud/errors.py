"""
Exception types raised by pypointcloud.

File access problems are not wrapped: ``open()`` failures reach the caller
as the built-in ``OSError`` subclasses.
"""


class PointCloudError(Exception):
    """Base class for all pypointcloud errors."""


class PcdFormatError(PointCloudError, ValueError):
    """A PCD file has a malformed header, a truncated body or a bad payload."""


class InvalidInputError(PointCloudError, ValueError):
    """An algorithm was called with arguments it cannot work with."""
