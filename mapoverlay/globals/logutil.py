"""
mapoverlay/globals/logutil.py

Console + file logging for georeferencing runs.

Level helpers (``info``, ``warn``, ``error``, ``success``, ``process_step``,
``setting_config``) print a colored ``[LEVEL]`` prefix. While a :class:`Logger`
is active, everything written to stdout/stderr is mirrored into a timestamped
log file with the ANSI codes stripped.
"""
import re
import sys
import os
from pathlib import Path
from datetime import datetime

from mapoverlay.globals import directories

################################################################################################
ANSI_ESCAPE = re.compile(r'\x1B[@-_][0-?]*[ -/]*[@-~]')
TIMESTAMP_PREFIX = re.compile(r"^\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\]")
RESET = '\x1b[0m'
BOLD = "\033[1m"

LEVEL_COLORS = {
    "PROCESS": (171, 52, 235),
    "INFO": (0, 255, 255),
    "WARNING": (255, 255, 0),
    "ERROR": (255, 0, 0),
    "SUCCESS": (0, 255, 0),
    "SETTING": (250, 197, 97),
}

def _enable_windows_ansi():
    if os.name != "nt":
        return
    try:
        import ctypes
        kernel32 = ctypes.windll.kernel32
        h = kernel32.GetStdHandle(-11)  # STD_OUTPUT_HANDLE
        mode = ctypes.c_uint32()
        if kernel32.GetConsoleMode(h, ctypes.byref(mode)):
            kernel32.SetConsoleMode(h, mode.value | 0x0004)  # ENABLE_VIRTUAL_TERMINAL_PROCESSING
    except (AttributeError, OSError):
        # plain text output still works
        pass

_enable_windows_ansi()


class Logger:
    """Tee stdout/stderr into a log file for the lifetime of a run."""
    def __init__(self, logfile_path: Path | str | None = None):
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.logfile_path = Path(logfile_path or directories.LOGS_DIR / f"georef_{timestamp}.log")
        self.logfile_path.parent.mkdir(parents=True, exist_ok=True)

        self._prev_stdout = sys.stdout
        self._prev_stderr = sys.stderr

        self.logfile = open(self.logfile_path, "a", encoding="utf-8", buffering=1)  # line-buffered
        sys.stdout = self
        sys.stderr = self

    def __enter__(self): return self
    def __exit__(self, exc_type, exc, tb): self.close()

    def write(self, message):
        if message is None:
            return
        if isinstance(message, (bytes, bytearray)):
            message = message.decode("utf-8", errors="replace")
        elif not isinstance(message, str):
            message = str(message)

        for part in message.splitlines(keepends=True):
            if part.strip() and not TIMESTAMP_PREFIX.match(part):
                part = f"[{datetime.now():%Y-%m-%d %H:%M:%S}] {part}"

            self._prev_stdout.write(part)
            if not self.logfile.closed:
                self.logfile.write(ANSI_ESCAPE.sub("", part))

    def flush(self):
        self._prev_stdout.flush()
        if not self.logfile.closed:
            self.logfile.flush()

    def close(self):
        if sys.stdout is self:
            sys.stdout = self._prev_stdout
        if sys.stderr is self:
            sys.stderr = self._prev_stderr
        self.logfile.close()

def rgb_prefix(r: int, g: int, b: int) -> str:
    """Start an RGB color (leave it open)."""
    return f"\033[38;2;{r};{g};{b}m"

def _log(level: str, msg: str):
    start = rgb_prefix(*LEVEL_COLORS[level])
    print(f"{start}{BOLD}[{level}]{RESET} {msg}")

def process_step(msg):  _log("PROCESS", msg)
def info(msg): _log("INFO", msg)
def warn(msg): _log("WARNING", msg)
def error(msg): _log("ERROR", msg)
def success(msg): _log("SUCCESS", msg)
def setting_config(msg): _log("SETTING", msg)
