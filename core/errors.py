"""
Comparison Errors Module
Failure taxonomy shared by the comparison pipeline and its collaborators.
"""


class ComparisonError(Exception):
    """Base class for every failure surfaced by the comparison pipeline."""
    user_correctable = False

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        payload = {'error': type(self).__name__, 'message': self.message}
        if self.details:
            payload['details'] = self.details
        return payload


class AcquisitionError(ComparisonError):
    """An upstream image could not be fetched."""
    user_correctable = True


class RenderError(AcquisitionError):
    """The candidate page could not be rendered into a screenshot."""


class DecodeError(ComparisonError):
    """Input bytes are not a decodable raster image."""
    user_correctable = True


class DimensionMismatch(ComparisonError):
    """The policy forbids comparing images of unequal dimensions."""
    user_correctable = True


class PolicyError(ComparisonError, ValueError):
    """A comparison option is out of range or unknown."""
    user_correctable = True


class ComparisonCancelled(ComparisonError):
    """The comparison was cancelled before it completed."""


class InternalError(ComparisonError):
    """Unexpected comparator failure."""
