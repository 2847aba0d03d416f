from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class DatabaseSpec:
    """Connection parameters for one database in a group"""
    name: str
    host: str
    port: str
    user: str
    password: str = field(repr=False)

    @classmethod
    def parse(cls, connection_string: str) -> 'DatabaseSpec':
        """Build from a 'name:host:port:user:password' string (already validated)."""
        name, host, port, user, password = connection_string.split(':', 4)
        return cls(name=name, host=host, port=port, user=user, password=password)


@dataclass(frozen=True)
class BackupGroup:
    """One backup unit: databases and directories archived together"""
    index: int  # 1-based position in the configuration
    identifier: str
    databases: Tuple[DatabaseSpec, ...] = ()
    directories: Tuple[str, ...] = ()

    def __repr__(self):
        return (
            f'<BackupGroup #{self.index} {self.identifier} '
            f'databases={len(self.databases)} directories={len(self.directories)}>'
        )


class GroupState(Enum):
    """Per-group processing state"""
    PENDING = 'pending'
    STAGING = 'staging'
    DUMPING = 'dumping'
    ARCHIVING = 'archiving'
    UPLOADING = 'uploading'
    DELETING = 'deleting'
    DONE = 'done'
    FAILED = 'failed'


@dataclass
class GroupResult:
    """Outcome of processing a single group"""
    group: BackupGroup
    state: GroupState = GroupState.PENDING
    error: Optional[str] = None
    remote_path: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.state is GroupState.FAILED

    def __repr__(self):
        return f'<GroupResult {self.group.identifier} state={self.state.value}>'


@dataclass
class RunSummary:
    """Aggregated results of one backup or cleanup run"""
    job: str  # 'backup' or 'cleanup'
    results: List[GroupResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return sum(1 for result in self.results if result.failed)

    @property
    def succeeded(self) -> int:
        return self.total - self.failed
