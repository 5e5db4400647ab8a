"""
Error taxonomy for the word supply engine.

Only ConfigurationError (and its subclasses) is allowed to escape
WordService.get_words; everything else is caught at component
boundaries, logged, and turned into degraded behavior.
"""


class WordSupplyError(Exception):
    """Base class for word supply errors."""
    pass


class ConfigurationError(WordSupplyError):
    """No usable word source is configured."""

    def __init__(self, message: str = "No word source is configured or available. "
                                      "Configure a word table or a generator API key."):
        super().__init__(message)
        self.user_message = message


class NoSourceAvailableError(ConfigurationError):
    """Cache empty and every remote path failed or is unconfigured."""
    pass


class GeneratorAuthError(ConfigurationError):
    """The word generator rejected our credentials."""

    def __init__(self, message: str = "The word generator API key is invalid. Check the configuration."):
        super().__init__(message)


class TransientFetchError(WordSupplyError):
    """A single remote call failed; treated as zero results from that source."""
    pass


class PersistenceError(WordSupplyError):
    """Durable local storage could not be read or written."""
    pass
