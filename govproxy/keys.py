"""
Proxy mnemonic acquisition.

The mnemonic comes either from the first line of a keyfile or from an
interactive prompt that does not echo input. It is never logged.
"""

import getpass
from pathlib import Path
from typing import Callable, Optional, Union

from .exceptions import KeyfileError
from .logger import get_logger

logger = get_logger(__name__)


def read_keyfile(keyfile: Union[str, Path]) -> str:
    """First line of *keyfile*, stripped."""
    path = Path(keyfile)
    if not path.exists():
        raise KeyfileError(f"Keyfile not found: {keyfile}")
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise KeyfileError(f"Cannot read keyfile {keyfile}: {e}") from e

    mnemonic = content.split("\n")[0].strip()
    if not mnemonic:
        raise KeyfileError(f"Keyfile is empty: {keyfile}")
    logger.debug(f"Loaded proxy mnemonic from {path}")
    return mnemonic


def prompt_mnemonic(prompt: str = "Enter proxy mnemonic: ",
                    reader: Callable[[str], str] = getpass.getpass) -> str:
    try:
        mnemonic = reader(prompt).strip()
    except (EOFError, KeyboardInterrupt) as e:
        raise KeyfileError("No mnemonic entered") from e
    if not mnemonic:
        raise KeyfileError("No mnemonic entered")
    return mnemonic


def read_mnemonic(keyfile: Optional[Union[str, Path]] = None, prompt: bool = False,
                  reader: Callable[[str], str] = getpass.getpass) -> str:
    """
    Obtain the proxy mnemonic.

    Args:
        keyfile: Path of a file whose first line is the mnemonic
        prompt:  Ask interactively when no keyfile is given
        reader:  Prompt function, replaceable in tests

    Raises:
        KeyfileError: neither source given, or the source is missing, unreadable or empty
    """
    if keyfile:
        return read_keyfile(keyfile)
    if prompt:
        return prompt_mnemonic(reader=reader)
    raise KeyfileError("Must specify --keyfile or --mnemonic for proxy signing")
