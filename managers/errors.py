"""Error taxonomy for responsive image processing"""


class ResponsiveImageError(ValueError):
    """Base error carrying a machine-readable error code."""

    error_code = "RESPONSIVE_IMAGE_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidReference(ResponsiveImageError):
    error_code = "INVALID_REFERENCE"


class PathEscape(ResponsiveImageError):
    """Traversal, external URL, or path outside the permitted roots."""
    error_code = "PATH_ESCAPE"


class NotFound(ResponsiveImageError):
    error_code = "NOT_FOUND"


class UnsupportedType(ResponsiveImageError):
    error_code = "UNSUPPORTED_TYPE"


class DimensionReadFailure(ResponsiveImageError):
    error_code = "DIMENSION_READ_FAILURE"


class NoValidSizes(ResponsiveImageError):
    error_code = "NO_VALID_SIZES"


class DirectoryCreateFailure(ResponsiveImageError):
    error_code = "DIRECTORY_CREATE_FAILURE"


class BackendUnavailable(ResponsiveImageError):
    """Image codec missing or target format not supported."""
    error_code = "BACKEND_UNAVAILABLE"


class WriteFailure(ResponsiveImageError):
    error_code = "WRITE_FAILURE"


class ManifestCorrupt(ResponsiveImageError):
    error_code = "MANIFEST_CORRUPT"
