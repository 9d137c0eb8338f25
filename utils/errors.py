class NotifierError(Exception):
    """Base class for every error raised by the notifier"""


class NotConfigured(NotifierError):
    """Account has no phone number and no active delegate to send to"""


class ConfigurationError(NotifierError):
    """Account delivery preferences are unusable (bad timezone or send time)"""


class ReauthRequired(NotifierError):
    """Provider credential can no longer be refreshed, the user has to log in again"""


class TransientError(NotifierError):
    """Network or provider hiccup, worth retrying on a later cycle"""


class ComposerError(NotifierError):
    """AI paraphrasing failed; never escapes the message composer"""


class TransportError(NotifierError):
    """SMS provider rejected or failed to deliver a message"""

    def __init__(self, phone: str, message: str):
        super().__init__(f"Failed to send SMS to {phone}: {message}")
        self.phone = phone


class AccountNotFound(NotifierError):
    pass


class InvalidJoinCode(NotifierError):
    pass
