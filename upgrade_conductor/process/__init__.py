"""External process execution.

Commands either run to completion with captured output, or run in a terminal
the user watches, with completion signalled through marker files.
"""

from upgrade_conductor.process.markers import MarkerPair
from upgrade_conductor.process.runner import ProcessOutcome, ProcessRunner
from upgrade_conductor.process.terminal import (
    InheritedTerminal,
    TerminalLauncher,
    TmuxTerminal,
    create_terminal_launcher,
)

__all__ = [
    "MarkerPair",
    "ProcessOutcome",
    "ProcessRunner",
    "TerminalLauncher",
    "InheritedTerminal",
    "TmuxTerminal",
    "create_terminal_launcher",
]
