"""
Proxy mnemonic acquisition.
"""

from unittest.mock import MagicMock

import pytest

from govproxy.exceptions import KeyfileError
from govproxy.keys import read_mnemonic

MNEMONIC = "bottom drive obey lake curtain smoke basket hold race lonely fit walk"


class TestKeyfile:

    def test_first_line_only(self, tmp_path):
        keyfile = tmp_path / "proxy.txt"
        keyfile.write_text(f"  {MNEMONIC}  \nsecond line is ignored\n")
        assert read_mnemonic(keyfile) == MNEMONIC

    def test_missing(self, tmp_path):
        with pytest.raises(KeyfileError, match="not found"):
            read_mnemonic(tmp_path / "nope.txt")

    def test_empty(self, tmp_path):
        keyfile = tmp_path / "empty.txt"
        keyfile.write_text("\n")
        with pytest.raises(KeyfileError, match="empty"):
            read_mnemonic(str(keyfile))

    def test_keyfile_wins_over_prompt(self, tmp_path):
        keyfile = tmp_path / "proxy.txt"
        keyfile.write_text(MNEMONIC)
        reader = MagicMock()
        assert read_mnemonic(keyfile, prompt=True, reader=reader) == MNEMONIC
        reader.assert_not_called()


class TestPrompt:

    def test_prompt(self):
        reader = MagicMock(return_value=f"{MNEMONIC}\n")
        assert read_mnemonic(prompt=True, reader=reader) == MNEMONIC
        reader.assert_called_once_with("Enter proxy mnemonic: ")

    def test_blank_answer(self):
        with pytest.raises(KeyfileError):
            read_mnemonic(prompt=True, reader=MagicMock(return_value="   "))

    def test_interrupted(self):
        with pytest.raises(KeyfileError):
            read_mnemonic(prompt=True, reader=MagicMock(side_effect=EOFError))


def test_no_source():
    with pytest.raises(KeyfileError, match="--keyfile or --mnemonic"):
        read_mnemonic()
