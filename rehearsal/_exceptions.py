class RehearsalError(Exception):
    """Base class for every error raised by rehearsal."""
    pass


class ConfigurationError(RehearsalError, ValueError):
    """
    Raised when a configuration value is malformed or inconsistent.

    Always raised before any random draw is made, and the message names the
    offending parameter (e.g. ``population.race.weights``).
    """
    pass


class BlockTooSmallError(RehearsalError):
    """
    Raised when a randomisation block holds fewer than three subjects and the
    small-block policy is ``"raise"``.

    Switch ``small_block_policy`` to ``"pool"`` to merge such blocks into one
    residual block instead.
    """
    pass


class InvalidInputError(RehearsalError, ValueError):
    """
    Raised when a component is called outside its domain, e.g. the outcome
    model receiving an unknown arm or a score off the survey scale. This
    indicates a programming defect rather than bad configuration.
    """
    pass
