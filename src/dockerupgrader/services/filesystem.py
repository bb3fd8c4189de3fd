"""Filesystem compatibility checks for the containerd data root."""

import os
import re
from typing import Optional

import tomli

from dockerupgrader.constants import DEFAULT_DATA_ROOT, SENSITIVE_FILESYSTEM
from dockerupgrader.models import FilesystemCheck, FsStatus

_FTYPE_RE = re.compile(r"ftype=(\d)")
_ROOT_LINE_RE = re.compile(r"""^(\s*)root\s*=\s*(?:"((?:[^"\\]|\\.)*)"|'([^']*)')\s*(#.*)?$""")
_TABLE_RE = re.compile(r"^\s*\[")
_TOML_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\b": "\\b",
    "\t": "\\t",
    "\n": "\\n",
    "\f": "\\f",
    "\r": "\\r",
}


def toml_string(value: str) -> str:
    """Quote ``value`` as a TOML basic string."""
    escaped = []
    for char in value:
        if char in _TOML_ESCAPES:
            escaped.append(_TOML_ESCAPES[char])
        elif ord(char) < 0x20 or ord(char) == 0x7F:
            escaped.append(f"\\u{ord(char):04x}")
        else:
            escaped.append(char)
    return '"' + "".join(escaped) + '"'


def resolve_data_root(config_text: str) -> str:
    """Return the top-level ``root`` of a containerd config, or the built-in default."""
    for line in config_text.splitlines():
        if _TABLE_RE.match(line):
            break
        match = _ROOT_LINE_RE.match(line)
        if match:
            if match.group(3) is not None:
                return match.group(3)
            try:
                return tomli.loads(f'root = "{match.group(2)}"')["root"]
            except tomli.TOMLDecodeError:
                # invalid escapes; the raw text is the best description of the path
                return match.group(2)
    return DEFAULT_DATA_ROOT


def parsed_data_root(config_text: str) -> str:
    """Parse ``config_text`` as TOML and return its top-level ``root``.

    Raises ``tomli.TOMLDecodeError`` when the text is not valid TOML.
    """
    return tomli.loads(config_text).get("root", DEFAULT_DATA_ROOT)


def rewrite_data_root(config_text: str, new_root: str) -> str:
    """Return ``config_text`` with the top-level ``root`` set to ``new_root``.

    An existing top-level key is replaced in place; otherwise the key is inserted
    before the first table so it stays at the top level. The value is written as
    an escaped TOML string.
    """
    lines = config_text.splitlines()
    new_line = f"root = {toml_string(new_root)}"

    for index, line in enumerate(lines):
        if _TABLE_RE.match(line):
            lines.insert(index, new_line)
            break
        match = _ROOT_LINE_RE.match(line)
        if match:
            comment = f" {match.group(4)}" if match.group(4) else ""
            lines[index] = f"{match.group(1)}{new_line}{comment}"
            break
    else:
        lines.append(new_line)

    return "\n".join(lines) + "\n"


def nearest_existing_path(path: str) -> str:
    current = os.path.abspath(path)
    while not os.path.exists(current):
        parent = os.path.dirname(current)
        if parent == current:
            break
        current = parent
    return current


class FilesystemService:
    """Determines whether a data root sits on a filesystem containerd can use.

    xfs only supports overlay snapshots when formatted with ``ftype=1``; every
    other filesystem type is accepted as-is.
    """

    def __init__(self, runner, logger):
        self.runner = runner
        self.logger = logger

    def mount_info(self, path: str):
        result = self.runner.run(
            ["findmnt", "-n", "-o", "TARGET,FSTYPE", "--target", nearest_existing_path(path)],
            check=False,
        )
        if result.returncode != 0:
            return None, None
        fields = (result.stdout or "").split()
        if len(fields) < 2:
            return None, None
        return fields[0], fields[1]

    def xfs_ftype(self, mount_point: str) -> Optional[int]:
        result = self.runner.run(["xfs_info", mount_point], check=False)
        if result.returncode != 0:
            return None
        match = _FTYPE_RE.search(result.stdout or "")
        return int(match.group(1)) if match else None

    def check(self, path: str) -> FilesystemCheck:
        mount_point, fs_type = self.mount_info(path)
        if fs_type is None:
            return FilesystemCheck(path, mount_point, None, None, FsStatus.UNKNOWN)

        if fs_type != SENSITIVE_FILESYSTEM:
            return FilesystemCheck(path, mount_point, fs_type, None, FsStatus.OK)

        ftype = self.xfs_ftype(mount_point)
        if ftype is None:
            status = FsStatus.UNKNOWN
        elif ftype == 1:
            status = FsStatus.OK
        else:
            status = FsStatus.BAD
        return FilesystemCheck(path, mount_point, fs_type, ftype, status)
