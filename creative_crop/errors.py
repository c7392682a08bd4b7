"""
Exceptions raised by the crop subsystem.

Every error is scoped to a single entity's edit session: raising one never
touches the edit history or any other entity's state.
"""


class CropError(Exception):
    """Base class for all crop-subsystem errors."""


class ContainerNotReadyError(CropError):
    """The container or the image has a zero dimension; retry once laid out."""


class InvalidCropError(CropError):
    """The computed source rectangle has a non-positive width or height."""


class ImageDecodeError(CropError):
    """The source image could not be loaded; the session cannot start."""


class EncodeError(CropError):
    """Re-encoding the cropped raster failed; the pre-crop image stays current."""


class CropInProgressError(CropError):
    """A commit for this entity is still running."""


class NotFoundError(CropError, KeyError):
    """No undo baseline is recorded for the entity."""

    def __str__(self):
        # KeyError quotes its message; keep it readable
        return Exception.__str__(self)
