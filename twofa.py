#!/usr/bin/env python3
"""
2FA CLI - generate TOTP codes for locally stored accounts
Usage:
    2fa                        show current codes
    2fa --watch                live view, press 1-9 to copy a code
    2fa --copy <name>          copy one code to the clipboard
    2fa add <name> <secret>
    2fa list
    2fa remove <name>
"""

import argparse
import base64
import hashlib
import hmac
import json
import logging
import os
import re
import struct
import sys
import time
from dataclasses import dataclass
from pathlib import Path

__version__ = "0.1.0"

# Optional: for clipboard support
try:
    import pyperclip
    CLIPBOARD_AVAILABLE = True
except ImportError:
    CLIPBOARD_AVAILABLE = False


# ==================== Debug Logging ====================

logger = logging.getLogger("twofa")
logger.addHandler(logging.NullHandler())

_START_TIME = time.perf_counter()


def enable_debug():
    """Send debug messages to stderr"""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("[debug] %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)


def debug_log(msg: str):
    """Log a debug message with the time elapsed since startup"""
    elapsed = (time.perf_counter() - _START_TIME) * 1000
    logger.debug("%7.1fms %s", elapsed, msg)


# ==================== Errors ====================

class TwoFAError(Exception):
    """Base class for errors reported to the user"""


class ConfigAccessError(TwoFAError):
    pass


class PersistenceError(TwoFAError):
    pass


class InvalidEncodingError(TwoFAError):
    """A stored secret is not valid unpadded Base32"""

    def __init__(self, account, reason):
        self.account = account
        self.reason = reason
        if account is None:
            super().__init__(f"Invalid secret: {reason}")
        else:
            super().__init__(f"Invalid secret for account '{account}': {reason}")


class ClipboardError(TwoFAError):
    pass


class TerminalError(TwoFAError):
    """Watch mode cannot take over the terminal"""


class NotFoundError(TwoFAError):
    def __init__(self, name, known=()):
        self.name = name
        self.known = list(known)
        super().__init__(f"Account '{name}' not found")


# ==================== TOTP Implementation ====================

DIGITS = 6
PERIOD = 30
T0 = 0

_BASE32_RE = re.compile(r"[A-Z2-7]*")
# Unpadded Base32 lengths (mod 8) that end on a whole byte
_VALID_TAIL_LENGTHS = {0, 2, 4, 5, 7}


def decode_secret(secret: str, account: str = None) -> bytes:
    """Decode an unpadded upper-case Base32 secret (RFC 4648)"""
    if not secret:
        raise InvalidEncodingError(account, "secret is empty")
    if not _BASE32_RE.fullmatch(secret):
        bad = next(c for c in secret if not ("A" <= c <= "Z" or "2" <= c <= "7"))
        raise InvalidEncodingError(account, f"character {bad!r} is not in the Base32 alphabet")
    if len(secret) % 8 not in _VALID_TAIL_LENGTHS:
        raise InvalidEncodingError(account, f"length {len(secret)} does not form whole bytes")

    padding = "=" * (-len(secret) % 8)
    return base64.b32decode(secret + padding)


def hotp(key: bytes, counter: int, digits: int = DIGITS) -> str:
    """Generate HOTP code (RFC 4226)"""
    # Counter as 8-byte big-endian
    counter_bytes = struct.pack(">Q", counter)

    hmac_hash = hmac.new(key, counter_bytes, hashlib.sha1).digest()

    # Dynamic truncation
    offset = hmac_hash[-1] & 0x0F
    truncated = struct.unpack(">I", hmac_hash[offset:offset + 4])[0] & 0x7FFFFFFF

    return str(truncated % (10 ** digits)).zfill(digits)


def get_time_remaining(now, period: int = PERIOD) -> int:
    """Seconds left in the current time step, 1..period"""
    return period - (int(now) % period)


def generate_totp(key: bytes, now) -> tuple:
    """Generate TOTP code (RFC 6238) and the seconds it stays valid"""
    now = int(now)
    counter = (now - T0) // PERIOD
    return hotp(key, counter), get_time_remaining(now)


def get_account_code(account, now=None) -> tuple:
    """Decode an account's secret and generate its current code"""
    if now is None:
        now = time.time()
    key = decode_secret(account.secret, account.name)
    return generate_totp(key, now)


def normalize_secret(secret: str) -> str:
    """Canonical form for user input: no spaces, no padding, upper case"""
    return secret.replace(" ", "").replace("=", "").upper()


# ==================== Accounts ====================

@dataclass(frozen=True)
class Account:
    name: str
    secret: str


class AccountStore:
    """In-memory mapping of account name to Account"""

    def __init__(self, accounts=None):
        self._accounts = {}
        for account in accounts or ():
            self._accounts[account.name] = account

    def add(self, name: str, secret: str):
        self._accounts[name] = Account(name, secret)

    def remove(self, name: str) -> bool:
        return self._accounts.pop(name, None) is not None

    def list(self) -> list:
        return sorted(self._accounts)

    def get(self, name: str):
        return self._accounts.get(name)

    def __len__(self):
        return len(self._accounts)

    def __contains__(self, name):
        return name in self._accounts

    def to_dict(self) -> dict:
        return {
            "accounts": {
                name: {"secret": self._accounts[name].secret}
                for name in self.list()
            }
        }

    @classmethod
    def from_dict(cls, data) -> "AccountStore":
        if not isinstance(data, dict) or not isinstance(data.get("accounts", {}), dict):
            raise PersistenceError("expected an object with an 'accounts' mapping")

        store = cls()
        for name, entry in data.get("accounts", {}).items():
            if not isinstance(entry, dict) or not isinstance(entry.get("secret"), str):
                raise PersistenceError(f"account '{name}' has no secret")
            store.add(name, entry["secret"])
        return store


# ==================== Storage ====================

APP_DIR_NAME = "2fa-cli"
SECRETS_FILE = "secrets.json"


def get_config_dir() -> Path:
    """Get the per-user config directory for the current platform"""
    override = os.environ.get("TWOFA_CONFIG_DIR")
    if override:
        return Path(override)

    if sys.platform == "win32":
        base = os.environ.get("APPDATA")
        if not base:
            raise ConfigAccessError("Failed to find config directory: APPDATA is not set")
        base = Path(base)
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config")))
    return base / APP_DIR_NAME


def get_storage_path() -> Path:
    """Get the path to the secrets file, creating its directory if needed"""
    config_dir = get_config_dir()
    try:
        config_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigAccessError(f"Failed to create config directory {config_dir}: {e}") from e
    return config_dir / SECRETS_FILE


def load_store(path: Path) -> AccountStore:
    """Load accounts from storage, an absent file means no accounts"""
    if not path.exists():
        debug_log(f"No secrets file at {path}")
        return AccountStore()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise PersistenceError(f"Failed to parse {path}: {e}") from e
    except OSError as e:
        raise PersistenceError(f"Failed to read {path}: {e}") from e

    try:
        store = AccountStore.from_dict(data)
    except PersistenceError as e:
        raise PersistenceError(f"Invalid data in {path}: {e}") from e

    debug_log(f"Loaded {len(store)} accounts from {path}")
    return store


def save_store(path: Path, store: AccountStore):
    """Save accounts to storage"""
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(store.to_dict(), f, indent=2)
        # Set restrictive permissions
        os.chmod(path, 0o600)
    except OSError as e:
        raise PersistenceError(f"Failed to write {path}: {e}") from e
    debug_log(f"Saved {len(store)} accounts to {path}")


# ==================== Clipboard ====================

def copy_to_clipboard(text: str):
    """Write text to the system clipboard"""
    if not CLIPBOARD_AVAILABLE:
        raise ClipboardError("Clipboard support requires pyperclip (pip install pyperclip)")
    try:
        pyperclip.copy(text)
    except pyperclip.PyperclipException as e:
        raise ClipboardError(f"Failed to copy to clipboard: {e}") from e


# ==================== Display ====================

NO_ACCOUNTS_MESSAGE = "No accounts found. Use '2fa add <name> <secret>' to add one."


def format_row(index: int, name: str, code: str, remaining: int) -> str:
    return f"{index}. {name:<18} {code:<10} ⏱️  {remaining:02d}s"


def display_codes_once(store: AccountStore, now=None):
    """Print the current code of every account"""
    if len(store) == 0:
        print(NO_ACCOUNTS_MESSAGE)
        return

    if now is None:
        now = time.time()

    print("\n🔑 2FA Codes:")
    print("-" * 70 + "\n")

    for index, name in enumerate(store.list(), 1):
        code, remaining = get_account_code(store.get(name), now)
        print(format_row(index, name, code, remaining))

    print("\n💡 Tip: use '2fa --copy <name>' to copy an account's code to the clipboard")
    print("💡 Tip: use '2fa --watch' for live codes with keyboard shortcuts")


# ==================== Commands ====================

def cmd_add(args, store, path):
    """Add or replace an account"""
    secret = normalize_secret(args.secret)
    decode_secret(secret, args.name)

    store.add(args.name, secret)
    save_store(path, store)
    print(f"Account '{args.name}' added.")


def cmd_list(args, store, path):
    """List account names"""
    if len(store) == 0:
        print("No accounts found.")
        return

    print("Available accounts:")
    for name in store.list():
        print(f"- {name}")


def find_account(store: AccountStore, name: str) -> Account:
    account = store.get(name)
    if account is None:
        raise NotFoundError(name, store.list())
    return account


def cmd_remove(args, store, path):
    """Remove an account"""
    if not store.remove(args.name):
        print(f"Account '{args.name}' not found.")
        return

    save_store(path, store)
    print(f"Account '{args.name}' removed.")


def cmd_copy(args, store, path):
    """Copy one account's current code to the clipboard"""
    try:
        account = find_account(store, args.copy)
    except NotFoundError as e:
        print(f"❌ Account not found: {e.name}")
        print("\nAvailable accounts:")
        for name in e.known:
            print(f"- {name}")
        return

    code, _ = get_account_code(account)
    try:
        copy_to_clipboard(code)
    except ClipboardError as e:
        print(f"Error: {e}", file=sys.stderr)
        return
    print(f"✅ Copied code for {account.name}: {code}")


def cmd_show(args, store, path):
    """Show codes once, or live with --watch"""
    if args.watch:
        # Imported lazily so plain listings never touch terminal modes
        from twofa_watch import display_codes_watch
        display_codes_watch(store)
    else:
        display_codes_once(store)


# ==================== Main ====================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="2fa",
        description="A simple command-line tool for generating TOTP codes",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument("--watch", "-w", action="store_true",
                        help="Continuously update codes with a live countdown")
    parser.add_argument("--copy", "-c", metavar="NAME",
                        help="Copy the code of an account to the clipboard")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging with timing")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    add_parser = subparsers.add_parser("add", help="Add a new 2FA account")
    add_parser.add_argument("name", help="The name of the account")
    add_parser.add_argument("secret", help="Base32 encoded secret key")

    subparsers.add_parser("list", help="List all 2FA accounts")

    remove_parser = subparsers.add_parser("remove", help="Remove an existing 2FA account")
    remove_parser.add_argument("name", help="The name of the account to remove")

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.debug or os.environ.get("TWOFA_DEBUG") == "1":
        enable_debug()
    debug_log("Entering main()")

    commands = {
        "add": cmd_add,
        "list": cmd_list,
        "remove": cmd_remove,
    }

    try:
        path = get_storage_path()
        store = load_store(path)

        if args.command is not None:
            handler = commands[args.command]
        elif args.copy is not None:
            handler = cmd_copy
        else:
            handler = cmd_show
        handler(args, store, path)
    except TwoFAError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
