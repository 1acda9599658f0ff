"""
Error reporting for the `obby-file` tool.

Failures the user can act upon (a missing file, a damaged archive, an unsafe entry name) are shown as their message,
followed by the messages of their causes. Anything else is a bug in the tool and is shown with its full traceback.
"""

import sys
import traceback

from contextlib import contextmanager
from functools import wraps
from textwrap import indent
from typing import NoReturn, Iterator, Callable

from atmfjstc.lib.obby_file.cli.console import console


class DescriptiveError(RuntimeError):
    """
    An error whose message says all the user needs to know about what happened. It is reported without a traceback.
    """


def fail(message: str) -> NoReturn:
    raise DescriptiveError(message)


@contextmanager
def descriptive_errors(*classes: type) -> Iterator[None]:
    """
    Turns exceptions of the given classes raised inside the ``with`` block into `DescriptiveError` with the same message
    and cause.
    """
    try:
        yield
    except classes as e:
        raise DescriptiveError(str(e) or e.__class__.__name__) from e.__cause__


def describe_error(error: BaseException) -> str:
    """
    Formats the message of an error, followed by the messages of its causes, each indented one level further.
    """

    lines = []
    depth = 0

    while error is not None:
        lines.append(indent(str(error) or error.__class__.__name__, '  ' * depth))
        error = error.__cause__
        depth += 1

    return '\n'.join(lines)


def pretty_unhandled(main_method: Callable) -> Callable:
    """
    Decorator for the main function of the tool. Exceptions escaping it are printed on the console and the program
    exits with status -1. An interrupt from the user exits with status 0.
    """

    @wraps(main_method)
    def wrapper(*args, **kwargs):
        try:
            return main_method(*args, **kwargs)
        except KeyboardInterrupt:
            console.print_warning("Stopped by user")
            sys.exit(0)
        except DescriptiveError as e:
            console.print_error(describe_error(e))
        except Exception:
            console.print_error(traceback.format_exc().rstrip())

        sys.exit(-1)

    return wrapper
