import logging


def init_console_friendly_logging(level: int = logging.WARNING):
    """
    Initializes logging for the command-line tool. Specifically:

    - Messages go to stderr, so they never mix with extracted data written to stdout
    - A timestamp is attached to each message
    - The level is attached to each message as a string (INFO, DEBUG etc)
    """
    logging.basicConfig(
        level=level,
        style='{',
        format='[{asctime}] {levelname}: {message}',
        datefmt='%Y-%m-%d %H:%M:%S'  # We omit the milliseconds by default
    )
