"""Exception hierarchy for Gmail Auto Reply."""


class AutoReplyError(Exception):
    """Base class for all auto-reply errors."""


class TransientExternalError(AutoReplyError):
    """An external collaborator failed; the message is skipped, never retried."""


class ClassifierUnavailable(TransientExternalError):
    """The classification service could not produce a result."""


class GenerationFailed(TransientExternalError):
    """The reply generation service could not produce a reply."""


class SendFailed(TransientExternalError):
    """Gmail rejected or failed to deliver the composed reply."""


class CallTimeout(TransientExternalError):
    """An external call did not finish within its deadline."""


class CursorInvalidated(AutoReplyError):
    """The history cursor is too old or unknown to the mailbox."""


class ConfigurationError(AutoReplyError):
    """Missing or invalid configuration. Callers treat it as disabled."""


class InvariantViolation(AutoReplyError):
    """Internal bookkeeping was asked to do something it must not do.

    Only ever logged; never propagated out of the component that detects it.
    """
