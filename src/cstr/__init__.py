"""cstr: lazy spreadsheet-style constraint variables for Python."""

from importlib.metadata import version as _version

__version__ = _version("cstr")

from cstr._system import (
    ConstraintSystem,
    add_daemon,
    get_pending_daemon_count,
    get_system,
    set_system,
)
from cstr.dependency import Dependency
from cstr.variable import Variable, variable

__all__ = [
    "Variable",
    "variable",
    "Dependency",
    "ConstraintSystem",
    "add_daemon",
    "get_system",
    "set_system",
    "get_pending_daemon_count",
]
