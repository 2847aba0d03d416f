"""
Error taxonomy for s3backup.

- ConfigurationError / TransportSetupError: fatal, raised before any group runs
- GroupError: scoped to a single group, recorded and the run continues
- RunSummaryError: raised after the loop when at least one group failed
"""


class BackupToolError(Exception):
    """Base class for all s3backup errors."""
    pass


class ConfigurationError(BackupToolError):
    """Raised when required configuration is missing or invalid."""
    pass


class GroupCardinalityMismatch(ConfigurationError):
    """Raised when DATABASES and DIRECTORIES_TO_BACKUP define different group counts."""

    def __init__(self, database_groups: int, directory_groups: int):
        self.database_groups = database_groups
        self.directory_groups = directory_groups
        super().__init__(
            f"The number of groups in DATABASES ({database_groups}) does not match "
            f"the number of groups in DIRECTORIES_TO_BACKUP ({directory_groups})"
        )


class EmptyGroupError(ConfigurationError):
    """Raised when a group has NONE for both databases and directories."""

    def __init__(self, index: int):
        self.index = index
        super().__init__(
            f"Group #{index} is empty. Both DATABASES and DIRECTORIES_TO_BACKUP are 'NONE'"
        )


class MalformedConnectionString(ConfigurationError):
    """Raised when a database connection string does not have exactly five fields."""

    EXPECTED_FORMAT = 'DB_NAME:DB_HOST:DB_PORT:DB_USER:DB_PASSWORD'

    def __init__(self, token: str, index: int):
        self.token = token
        self.index = index
        super().__init__(
            f"Invalid database connection string format in group #{index}: "
            f"'{token}'. Expected format: '{self.EXPECTED_FORMAT}'"
        )


class MalformedDirectoryList(ConfigurationError):
    """Raised when a directory list contains an empty path component."""

    def __init__(self, token: str, index: int):
        self.token = token
        self.index = index
        super().__init__(
            f"Invalid directory format in group #{index}: '{token}'. "
            f"Found empty path component (e.g. '/path/one::/path/two' or leading/trailing colons)"
        )


class TransportSetupError(BackupToolError):
    """Raised when the transport configuration cannot be rendered."""
    pass


class GroupError(BackupToolError):
    """Raised when processing of a single group fails."""
    pass


class RunSummaryError(BackupToolError):
    """Raised after all groups were attempted and one or more of them failed."""

    def __init__(self, job: str, total: int, failed: int):
        self.job = job
        self.total = total
        self.failed = failed
        super().__init__(f"{failed} of {total} {job} group(s) failed")
