import inspect
import time
from datetime import datetime, timezone
import os

import psutil
from rich.console import Console
from rich.markup import escape

# Console.file resolves sys.stdout / sys.stderr at print time
_stdout_console = Console()
_stderr_console = Console(stderr=True)

# Log types that belong on standard error
STDERR_LOG_TYPES = {'FAILURE', 'CRITICAL', 'EXCEPTION'}

# Log types hidden unless verbose output is requested
VERBOSE_LOG_TYPES = {'DEBUG'}

_verbose = True


def set_verbose(enabled: bool) -> None:
    """Show or hide DEBUG messages for the rest of the process."""
    global _verbose
    _verbose = enabled


def Print(logType: str, message: str) -> None:
    """
    Prints a log message with timestamp, function name, symbols wrapping the logType, and the message.

    FAILURE, CRITICAL and EXCEPTION messages go to standard error, everything else to standard output.
    """
    try:
        logTypeUpper = logType.upper()
        if not _verbose and logTypeUpper in VERBOSE_LOG_TYPES:
            return

        # Mapping of logType to symbols
        logTypeSymbols = {
            'SUCCESS': ('^^^', '^^^'),
            'FAILURE': ('###', '###'),
            'STATE': ('~~~', '~~~'),
            'INFO': ('---', '---'),
            'IMPORTANT': ('===', '==='),
            'CRITICAL': ('***', '***'),
            'EXCEPTION': ('!!!', '!!!'),
            'WARNING': ('(((', ')))'),
            'DEBUG': ('[[[', ']]]'),
            'ATTEMPT': ('???', '???'),
            'STARTING': ('>>>', '>>>'),
            'PROGRESS': ('vvv', 'vvv'),
            'COMPLETED': ('<<<', '<<<'),
            'HEADER': ('===', '==='),
        }

        # Mapping of logType to styles
        logTypeStyles = {
            'SUCCESS': 'green',
            'FAILURE': 'red bold',
            'STATE': 'cyan',
            'INFO': 'blue',
            'IMPORTANT': 'magenta',
            'CRITICAL': 'red bold',
            'EXCEPTION': 'red bold',
            'WARNING': 'yellow',
            'DEBUG': 'white',
            'ATTEMPT': 'cyan',
            'STARTING': 'green',
            'PROGRESS': 'blue',
            'COMPLETED': 'green',
            'HEADER': 'magenta bold',
        }

        # Get current timestamp with microseconds
        current_time = time.time()
        timestamp = datetime.fromtimestamp(current_time, tz=timezone.utc).isoformat(timespec='microseconds') + 'Z'

        before_symbol, after_symbol = logTypeSymbols.get(logTypeUpper, ('', ''))
        formattedLogType = f"{before_symbol} {logTypeUpper} {after_symbol}"

        style = logTypeStyles.get(logTypeUpper, '')
        if style:
            formattedLogType = f"[{style}]{formattedLogType}[/{style}]"

        # Get the caller function name
        caller_frame = inspect.stack()[1]
        function_name = caller_frame.function

        # If the caller is Print, get the next frame
        if function_name == 'Print':
            caller_frame = inspect.stack()[2]
            function_name = caller_frame.function

        functionNamePadding = 40
        paddedFunctionName = function_name.ljust(functionNamePadding)

        output_line = f"{timestamp} {formattedLogType} {paddedFunctionName} {escape(message)}"

        console = _stderr_console if logTypeUpper in STDERR_LOG_TYPES else _stdout_console
        console.print(output_line, soft_wrap=True, highlight=False)

    except Exception as e:
        error_message = f"Something went wrong when attempting to print.\nError: {e}"
        print(error_message)


def CPU_and_Mem_usage() -> str:
    """
    Returns a string with the CPU usage and memory usage of the current process.
    """
    current_process = psutil.Process(os.getpid())
    cpu_usage = psutil.cpu_percent(interval=None)
    memory_info = current_process.memory_info()
    memory_usage_mb = memory_info.rss / (1024 ** 2)
    return f"CPU Usage: {cpu_usage}%, Process Memory Usage: {memory_usage_mb:.2f} MB"
