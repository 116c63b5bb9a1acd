class RotationServiceError(Exception):
    """Base class for failures of the rotation service's collaborators."""


class DataLoaderError(RotationServiceError):
    """The family backend could not be reached or returned an unusable payload."""
