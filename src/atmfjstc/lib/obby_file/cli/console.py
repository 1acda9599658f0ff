"""
Terminal output for the `obby-file` tool.

Messages meant for the human user go through the `console` singleton::

    from atmfjstc.lib.obby_file.cli.console import console

    console.print_progress("Extracting main.js...").print_success("Done")

Progress and success messages go to stdout and can be silenced for ``-q``. Warnings and errors always go to stderr, in
color where the terminal supports it. The tool's proper output (entry names, extracted data, the plugin manifest) does
not go through here but is written with plain `print()` or to ``sys.stdout.buffer``, so that it can be piped.
"""

import sys

from typing import Optional
from termcolor import cprint


class Console:
    _stdout_enabled: bool

    def __init__(self):
        self._stdout_enabled = True

    def print_progress(self, message: str) -> 'Console':
        return self._emit(message)

    def print_success(self, message: str) -> 'Console':
        return self._emit(message, color='green')

    def print_warning(self, message: str) -> 'Console':
        return self._emit(message, color='yellow', to_stderr=True)

    def print_error(self, message: str) -> 'Console':
        return self._emit(message, color='red', to_stderr=True)

    def set_stdout_enabled(self, enabled: bool) -> 'Console':
        """
        Turns progress and success messages on or off. Warnings and errors are not affected.
        """
        self._stdout_enabled = enabled
        return self

    def _emit(self, message: str, color: Optional[str] = None, to_stderr: bool = False) -> 'Console':
        if not (to_stderr or self._stdout_enabled):
            return self

        # Looked up on every call, so that redirected streams are honored
        channel = sys.stderr if to_stderr else sys.stdout

        if color is None:
            print(message, file=channel)
        else:
            cprint(message, color, attrs=['bold'], file=channel)

        return self


console = Console()
