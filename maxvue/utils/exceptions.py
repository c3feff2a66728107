"""Custom exceptions for MaxVue. Every error kind is recovered inside the pipeline; these never reach the external caller of the coordinator."""


class MaxVueError(Exception):
    """Base exception for MaxVue pipeline."""
    pass


class AnalysisTimeoutError(MaxVueError):
    """Content analysis exceeded its wall-clock budget."""
    pass


class GPUInitError(MaxVueError):
    """GPU context could not be established."""
    pass


class ShaderCompileError(GPUInitError):
    """Shader program failed to build or validate on the device."""
    pass


class GPURenderError(MaxVueError):
    """Shader pass failed for a single frame."""
    pass


class SourceUnreadableError(MaxVueError):
    """Pixels of a tainted (cross-origin, non-CORS) source cannot be read back."""
    pass


class InvalidSourceError(MaxVueError):
    """Source has zero dimensions or corrupt pixel data."""
    pass


class InvalidSettingsError(MaxVueError):
    """Correction settings are malformed (NaN or out of range)."""
    pass
