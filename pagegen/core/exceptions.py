"""Custom exception hierarchy."""

class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an external API call fails."""
    pass


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class PipelineError(AppError):
    """Base exception for page generation pipeline errors."""
    pass


class ContextRetrievalError(PipelineError):
    """Gathering: embedding or vector search failed."""
    pass


class OutlineGenerationError(PipelineError):
    """Outlining: the outline call failed or returned an invalid outline."""
    pass


class SectionExpansionError(PipelineError):
    """Expanding: one section's streaming call failed."""
    pass


class FactRetrievalError(PipelineError):
    """Gathering: the fact store lookup failed."""
    pass
