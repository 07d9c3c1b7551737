"""
2FA CLI - live watch mode
Redraws every account's code once per second and copies a code to the
clipboard when its number key is pressed.
"""

import os
import select
import string
import sys
import time

from colorama import Cursor, Fore, Style, just_fix_windows_console
from colorama.ansi import clear_line, clear_screen

from twofa import (
    NO_ACCOUNTS_MESSAGE, PERIOD, ClipboardError, TerminalError,
    copy_to_clipboard, debug_log, decode_secret, generate_totp
)

if os.name == "nt":
    import msvcrt
else:
    import termios

POLL_TIMEOUT = 0.1
TICK_SLEEP = 0.9
MESSAGE_DELAY = 1.0
BAR_WIDTH = 30

CTRL_C = "\x03"
ESCAPE = "\x1b"
READ_CHUNK = 32
MAX_DIGIT_KEY = 9

HEADER_ROW = 0
HINT_ROW = 1
FIRST_ACCOUNT_ROW = 3


# ==================== Terminal ====================

class RawTerminal:
    """Puts the terminal in raw input mode for the duration of a with block"""

    def __init__(self, stream=None):
        self.stream = stream or sys.stdin
        self._saved = None
        self._pending = ""

    def __enter__(self):
        if not self.stream.isatty():
            raise TerminalError("Watch mode needs an interactive terminal")
        if os.name == "nt":
            return self

        fd = self.stream.fileno()
        try:
            saved = termios.tcgetattr(fd)
            mode = termios.tcgetattr(fd)
            # No echo, no line buffering, Ctrl+C is delivered as a key
            mode[3] &= ~(termios.ECHO | termios.ICANON | termios.ISIG)
            mode[6][termios.VMIN] = 1
            mode[6][termios.VTIME] = 0
            termios.tcsetattr(fd, termios.TCSAFLUSH, mode)
        except termios.error as e:
            raise TerminalError(f"Failed to enable raw mode: {e}") from e
        self._saved = saved
        debug_log("Raw mode enabled")
        return self

    def __exit__(self, exc_type, exc, tb):
        if self._saved is not None:
            termios.tcsetattr(self.stream.fileno(), termios.TCSAFLUSH, self._saved)
            self._saved = None
            debug_log("Terminal mode restored")
        return False

    def read_key(self, timeout: float):
        """Return one pressed key, or None if nothing arrives within timeout"""
        if self._pending:
            key, self._pending = self._pending[0], self._pending[1:]
            return key

        if os.name == "nt":
            deadline = time.monotonic() + timeout
            while not msvcrt.kbhit():
                if time.monotonic() >= deadline:
                    return None
                time.sleep(0.01)
            return msvcrt.getwch()

        ready, _, _ = select.select([self.stream], [], [], timeout)
        if not ready:
            return None
        data = os.read(self.stream.fileno(), READ_CHUNK).decode("ascii", errors="replace")
        if not data:
            return None
        if data.startswith(ESCAPE):
            # Arrow and function keys arrive as one sequence, drop all of it
            return ESCAPE
        self._pending = data[1:]
        return data[0]


# ==================== Rendering ====================

def countdown_color(remaining: int) -> str:
    if remaining <= 5:
        return Fore.RED
    if remaining <= 10:
        return Fore.YELLOW
    return Fore.GREEN


def progress_filled(remaining: int, width: int = BAR_WIDTH) -> int:
    return (PERIOD - remaining) * width // PERIOD


def move_to(row: int) -> str:
    # colorama positions are 1-based
    return Cursor.POS(1, row + 1)


class WatchRenderer:
    """Interactive countdown display for a fixed, ordered set of accounts"""

    def __init__(self, store, out=None, terminal=None,
                 clock=time.time, sleep=time.sleep, clipboard=copy_to_clipboard):
        # Rows and number keys are bound to this order for the whole session
        self.accounts = [
            (name, decode_secret(store.get(name).secret, name))
            for name in store.list()
        ]
        self.out = out or sys.stdout
        self.terminal = terminal or RawTerminal()
        self.clock = clock
        self.sleep = sleep
        self.clipboard = clipboard
        self.terminating = False

    @property
    def bar_row(self) -> int:
        return FIRST_ACCOUNT_ROW + len(self.accounts) + 1

    @property
    def message_row(self) -> int:
        return FIRST_ACCOUNT_ROW + len(self.accounts) + 2

    def write(self, *parts):
        self.out.write("".join(parts))

    def flush(self):
        self.out.flush()

    def draw_header(self):
        self.write(
            clear_screen(), move_to(HEADER_ROW),
            "🔑 2FA Codes (Press Ctrl+C to exit)", clear_line(0),
            move_to(HINT_ROW),
            f"💡 Press 1-{min(MAX_DIGIT_KEY, len(self.accounts))} to copy the matching account's code",
            clear_line(0),
        )

    def draw_tick(self, now):
        """Overwrite every account row and the progress bar row in place"""
        remaining = None
        for index, (name, key) in enumerate(self.accounts):
            code, remaining = generate_totp(key, now)
            self.write(
                move_to(FIRST_ACCOUNT_ROW + index),
                Fore.LIGHTBLACK_EX, f"{index + 1}. ",
                Fore.WHITE, f"{name:<18} ",
                Fore.CYAN, f"{code:<10} ",
                countdown_color(remaining), f"⏱️  {remaining:02d}s",
                Style.RESET_ALL, clear_line(0),
            )

        self.write(move_to(self.bar_row))
        if len(self.accounts) == 1:
            filled = progress_filled(remaining)
            self.write(
                Fore.LIGHTBLACK_EX, "[",
                Fore.GREEN, "█" * filled,
                Fore.LIGHTBLACK_EX, "·" * (BAR_WIDTH - filled), "] ",
                Fore.WHITE, f"{remaining:02d}s remaining",
                Style.RESET_ALL,
            )
        self.write(clear_line(0))
        self.flush()

    def show_message(self, message: str):
        self.write(move_to(self.message_row), message, Style.RESET_ALL, clear_line(0))
        self.flush()
        self.sleep(MESSAGE_DELAY)
        self.write(move_to(self.message_row), clear_line(0))
        self.flush()

    def copy_account(self, index: int):
        name, key = self.accounts[index]
        code, _ = generate_totp(key, self.clock())
        try:
            self.clipboard(code)
        except ClipboardError as e:
            debug_log(f"Copy failed for {name}: {e}")
            self.show_message(f"{Fore.RED}❌ {e}")
            return
        debug_log(f"Copied code for {name}")
        self.show_message(f"{Fore.GREEN}✅ Copied code for {name}: {code}")

    def handle_key(self, key: str):
        if key == CTRL_C:
            self.terminating = True
        elif len(key) == 1 and key in string.digits:
            number = int(key)
            if 1 <= number <= len(self.accounts):
                self.copy_account(number - 1)

    def run(self):
        debug_log(f"Entering watch mode with {len(self.accounts)} accounts")
        with self.terminal:
            try:
                self.draw_header()
                while not self.terminating:
                    self.draw_tick(self.clock())
                    key = self.terminal.read_key(POLL_TIMEOUT)
                    if key is not None:
                        self.handle_key(key)
                    if not self.terminating:
                        self.sleep(TICK_SLEEP)
            except KeyboardInterrupt:
                self.terminating = True
            finally:
                self.write(move_to(self.message_row + 1))
                self.flush()

        self.write("\n👋 Goodbye!\n")
        self.flush()


def display_codes_watch(store):
    """Run the live view until Ctrl+C"""
    if len(store) == 0:
        print(NO_ACCOUNTS_MESSAGE)
        return

    just_fix_windows_console()
    WatchRenderer(store).run()
