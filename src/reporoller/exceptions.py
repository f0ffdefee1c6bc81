"""Custom exceptions for RepoRoller."""


class RepoRollerError(Exception):
    """Base exception for all RepoRoller errors."""


class ConfigurationError(RepoRollerError):
    """Configuration-related errors.

    Raised when a budget cannot be normalized (a currency budget whose
    provider is missing from the registry) or a config file is malformed.
    """


class ScanError(RepoRollerError):
    """Repository scanning errors."""


class UnknownProviderWarning(UserWarning):
    """A cost lookup named a provider that is not in the registry.

    Non-fatal: the lookup yields no estimate and comparative reports
    drop that provider's row.
    """

    def __init__(self, provider_id: str):
        super().__init__(f"Unknown provider '{provider_id}': no cost estimate available")
        self.provider_id = provider_id
