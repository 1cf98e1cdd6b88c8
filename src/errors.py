"""
Exception types raised by the premium analysis pipeline.

Every stage fails fast with one of these; callers can catch
PremiumAnalysisError to handle any pipeline failure.
"""


class PremiumAnalysisError(Exception):
    pass


class SourceUnavailable(PremiumAnalysisError):
    """The remote archive or local file could not be fetched."""


class ParseError(PremiumAnalysisError):
    """The fetched bytes are not a comma-delimited CSV with the expected columns."""


class MalformedDate(PremiumAnalysisError):
    """A birthdate does not match MM/DD/YYYY or lies after the processing date."""


class RankDeficient(PremiumAnalysisError):
    """The design matrix is not of full column rank."""


class InvalidTransform(PremiumAnalysisError):
    """A transform was asked to act on values outside its domain."""


class ConfigError(PremiumAnalysisError):
    """Invalid caller-supplied configuration (counts, formulas, column names)."""
