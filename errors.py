"""
Error types raised by the audio terrain pipeline
"""


class TerrainError(Exception):
    """Base class for pipeline errors"""


class DecodeError(TerrainError):
    """Input bytes could not be decoded as audio"""


class ContractViolation(TerrainError, ValueError):
    """Magnitude sequence does not match the surface it is applied to"""


class ExportUnavailable(TerrainError):
    """Export requested before any terrain has been generated"""
