"""
Backup group parsing and identifier resolution.

DATABASES and DIRECTORIES_TO_BACKUP are parallel, whitespace-separated lists
of group tokens. A token may be quoted to include spaces:

    DATABASES="'db1:h:5432:u:p db2:h:5432:u:p' NONE"
    DIRECTORIES_TO_BACKUP="/var/www/app1:/etc/app1 /var/log/app2"

The identifier derived here names both the remote folder and the local
working folder, so backup and cleanup must both go through parse_groups().
"""

import posixpath
import re
from typing import List, Optional, Sequence, Tuple

from s3backup.exceptions import (
    ConfigurationError,
    EmptyGroupError,
    GroupCardinalityMismatch,
    MalformedConnectionString,
    MalformedDirectoryList,
)
from s3backup.models import BackupGroup, DatabaseSpec


NONE_MARKER = 'NONE'
CONNECTION_DELIMITER = ':'
CONNECTION_FIELDS = 5
DIRECTORY_DELIMITER = ':'

_UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9_.-]')

# A token starting with a quote runs to the matching quote; anything else is a
# run of non-whitespace taken verbatim.
_GROUP_TOKEN = re.compile(r"""(?P<quote>["'])(?P<quoted>.*?)(?P=quote)(?=\s|$)|(?P<bare>\S+)""", re.DOTALL)
_QUOTE_CHARS = "\"'"
_RESERVED_IDENTIFIERS = ('.', '..')


def split_group_tokens(value: str, setting: str) -> List[str]:
    """
    Split a group list on top-level whitespace.

    A quote only groups when it starts a token: 'a b' or "a b" is one token,
    and the closing quote must be followed by whitespace or the end of the
    value. Quotes inside a token and backslashes are kept verbatim, so
    passwords such as it's or p\\ss survive.

    Args:
        value: Raw setting value
        setting: Setting name, used in error messages

    Returns:
        List of group tokens

    Raises:
        ConfigurationError: If a token opens a quote that is never closed
    """
    tokens = []
    for match in _GROUP_TOKEN.finditer(value):
        bare = match.group('bare')
        if bare is None:
            tokens.append(match.group('quoted'))
        elif bare[0] in _QUOTE_CHARS:
            raise ConfigurationError(
                f"Cannot parse {setting}: token #{len(tokens) + 1} opens a quote that is never closed"
            )
        else:
            tokens.append(bare)
    return tokens


def parse_connection_strings(token: str, index: int) -> Tuple[DatabaseSpec, ...]:
    """
    Parse a database group token into connection specs.

    Raises:
        MalformedConnectionString: If a connection string does not have exactly 4 delimiters
    """
    if token == NONE_MARKER:
        return ()

    specs = []
    for connection_string in token.split():
        if connection_string.count(CONNECTION_DELIMITER) != CONNECTION_FIELDS - 1:
            raise MalformedConnectionString(connection_string, index)
        specs.append(DatabaseSpec.parse(connection_string))

    if not specs:
        raise MalformedConnectionString(token, index)

    return tuple(specs)


def parse_directory_list(token: str, index: int) -> Tuple[str, ...]:
    """
    Parse a directory group token into individual paths.

    Raises:
        MalformedDirectoryList: If the list has an empty path component
    """
    if token == NONE_MARKER:
        return ()

    paths = token.split(DIRECTORY_DELIMITER)
    if any(path == '' for path in paths):
        raise MalformedDirectoryList(token, index)

    return tuple(paths)


def sanitize_identifier(value: str) -> str:
    """Replace every character outside [A-Za-z0-9_.-] with an underscore."""
    return _UNSAFE_CHARS.sub('_', value)


def resolve_identifier(databases: Sequence[DatabaseSpec], directories: Sequence[str]) -> str:
    """
    Derive the path-safe identifier of a group.

    Uses the first database name, or the base name of the first directory
    when the group has no databases.

    Args:
        databases: Database specs of the group
        directories: Directory paths of the group

    Returns:
        Sanitized identifier

    Raises:
        ConfigurationError: If the group has neither databases nor directories
    """
    if databases:
        raw = databases[0].name
    elif directories:
        stripped = directories[0].rstrip('/')
        raw = posixpath.basename(stripped) if stripped else '/'
    else:
        raise ConfigurationError("Cannot derive an identifier for an empty group")

    return sanitize_identifier(raw)


def parse_groups(databases: str, directories: str) -> List[BackupGroup]:
    """
    Parse the two parallel group settings into backup groups.

    Args:
        databases: DATABASES setting
        directories: DIRECTORIES_TO_BACKUP setting

    Returns:
        Groups in configuration order

    Raises:
        GroupCardinalityMismatch: If the two settings define different group counts
        EmptyGroupError: If a group is NONE/NONE
        MalformedConnectionString: If a connection string is malformed
        MalformedDirectoryList: If a directory list has an empty component
        ConfigurationError: If an identifier resolves to '', '.' or '..'
    """
    db_tokens = split_group_tokens(databases, 'DATABASES')
    dir_tokens = split_group_tokens(directories, 'DIRECTORIES_TO_BACKUP')

    if len(db_tokens) != len(dir_tokens):
        raise GroupCardinalityMismatch(len(db_tokens), len(dir_tokens))

    groups = []
    for position, (db_token, dir_token) in enumerate(zip(db_tokens, dir_tokens), start=1):
        if db_token == NONE_MARKER and dir_token == NONE_MARKER:
            raise EmptyGroupError(position)

        specs = parse_connection_strings(db_token, position)
        paths = parse_directory_list(dir_token, position)

        identifier = resolve_identifier(specs, paths)
        if not identifier:
            raise ConfigurationError(f"Group #{position} resolves to an empty identifier")
        if identifier in _RESERVED_IDENTIFIERS:
            raise ConfigurationError(f"Group #{position} resolves to the reserved identifier '{identifier}'")

        groups.append(BackupGroup(
            index=position,
            identifier=identifier,
            databases=specs,
            directories=paths
        ))

    return groups


def remote_folder(prefix: Optional[str], identifier: str) -> str:
    """
    Build the remote folder of a group, relative to the bucket root.

    Format: {prefix}/{identifier}, or just {identifier} without a prefix.
    """
    components = []
    if prefix:
        stripped = prefix.strip('/')
        if stripped:
            components.append(stripped)
    components.append(identifier)
    return '/'.join(components)
