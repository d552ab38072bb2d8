"""
Exception hierarchy for the coordinate transform engine.

Resolution and transform failures are raised to the caller. Persistence read
problems are reported through a boolean instead (see ``StateReadError``).
"""


class CoordinateTransformError(Exception):
    """Base exception for all coordinate transform errors"""

    def __init__(self, message: str, source_crs: str = None, dest_crs: str = None):
        super().__init__(message)
        self.message = message
        self.source_crs = source_crs
        self.dest_crs = dest_crs


class CRSResolutionError(CoordinateTransformError):
    """Raised when a CRS identifier or definition cannot be turned into a usable CRS"""

    def __init__(self, identifier, reason: str, source_crs: str = None, dest_crs: str = None):
        message = f"Could not resolve CRS {identifier!r}: {reason}"
        super().__init__(message, source_crs=source_crs, dest_crs=dest_crs)
        self.identifier = identifier
        self.reason = reason


class TransformFailure(CoordinateTransformError):
    """Raised when a coordinate, batch or bounding box cannot be transformed"""

    def __init__(self, reason: str, direction=None, coordinates=None,
                 source_crs: str = None, dest_crs: str = None):
        message = f"Transform failed: {reason}"
        if coordinates is not None:
            message += f" (input {coordinates})"
        super().__init__(message, source_crs=source_crs, dest_crs=dest_crs)
        self.reason = reason
        self.direction = direction
        self.coordinates = coordinates


class StateReadError(CoordinateTransformError):
    """Malformed or missing CRS state in a persisted document node.

    Never escapes ``CoordinateTransform.read_xml``, which reports it as ``False``.
    """

    def __init__(self, element: str, reason: str):
        super().__init__(f"Invalid transform state in <{element}>: {reason}")
        self.element = element
        self.reason = reason


class ConfigurationError(CoordinateTransformError):
    """Raised when engine configuration is invalid"""

    def __init__(self, config_field: str, reason: str):
        super().__init__(f"Configuration error in {config_field}: {reason}")
        self.config_field = config_field
        self.reason = reason
