#     The Certora Prover
#     Copyright (C) 2025  Certora Ltd.
#
#     This program is free software: you can redistribute it and/or modify
#     it under the terms of the GNU General Public License as published by
#     the Free Software Foundation, version 3 of the License.
#
#     This program is distributed in the hope that it will be useful,
#     but WITHOUT ANY WARRANTY; without even the implied warranty of
#     MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
#     GNU General Public License for more details.
#
#     You should have received a copy of the GNU General Public License
#     along with this program.  If not, see <https://www.gnu.org/licenses/>.

import json
import logging
import re
import sys
from pathlib import Path
from typing import Any, Optional, Union

scripts_dir_path = Path(__file__).parent.parent.resolve()  # containing directory
sys.path.insert(0, str(scripts_dir_path))
from Crypto.Hash import keccak

# decode aborts and the trace of the recursive descent
decoder_logger = logging.getLogger("storage_decoder")
# failures to turn AST type names into declared types
type_resolution_logger = logging.getLogger("type_resolution")

# bash colors
BASH_ORANGE_COLOR = "\033[33m"
BASH_END_COLOR = "\033[0m"
BASH_RED_COLOR = "\033[31m"

WORD_SIZE = 32
ADDRESS_SIZE = 20
MAX_UINT256 = (1 << 256) - 1

# The most elements (or bytes) a dynamic container may declare before we refuse to decode it
DEFAULT_MAX_DECODE_LENGTH = 10000
DEFAULT_MAX_NESTING_DEPTH = 64

NOT_DECODABLE = "<not decodable>"


class DecoderUserInputError(Exception):
    def __init__(self, message: str, orig: Optional[Exception] = None, more_info: str = '') -> None:
        super().__init__(message)
        self.orig = orig
        self.more_info = more_info


# Internal exceptions that are due to bugs in our implementation, or a broken contract between the type system
# and the decoder
class ImplementationError(Exception):
    pass


# A declared type reached the decoder that it has no way of decoding (e.g. a bare mapping)
class UnsupportedTypeError(ImplementationError):
    pass


# The type system could not give us a concrete declared type. This aborts a single decode, never the session
class TypeResolutionError(Exception):
    pass


def __colored_text(txt: str, color: str) -> str:
    return color + txt + BASH_END_COLOR


def orange_text(txt: str) -> str:
    return __colored_text(txt, BASH_ORANGE_COLOR)


def red_text(txt: str) -> str:
    return __colored_text(txt, BASH_RED_COLOR)


HEX_NUMBER = re.compile(r'^0[xX][0-9a-fA-F]+$')


def is_hex(number: str) -> bool:
    """
    @return: True if number is 0x-prefixed and has at least one hex digit after the prefix
    """
    return HEX_NUMBER.match(number) is not None


def parse_int_str(s: Union[str, int]) -> int:
    """
    @param s: a decimal string, a 0x-prefixed hexadecimal string, or an int
    @return: the number it represents
    @raise ValueError if s is neither
    @raise TypeError if s is neither a string nor an int (bools and floats included)
    """
    if isinstance(s, bool) or not isinstance(s, (str, int)):
        raise TypeError(f"{s!r} is not an integer")
    if isinstance(s, int):
        return s
    s = s.strip()
    if is_hex(s):
        return int(s, 16)
    if s.isdecimal():
        return int(s, 10)
    raise ValueError(f"{s} is neither a decimal nor a hexadecimal number")


def hex_to_bytes(s: str) -> bytes:
    """
    @param s: a hex string, with or without the 0x prefix. An odd number of digits is left-padded with a zero
    """
    digits = re.sub(r'^0[xX]', '', s.strip())
    if len(digits) % 2 == 1:
        digits = '0' + digits
    return bytes.fromhex(digits)


def big_endian_to_int(buf: bytes) -> int:
    return int.from_bytes(buf, "big")


def int_to_big_endian(value: int, size: int = WORD_SIZE) -> bytes:
    return value.to_bytes(size, "big")


def keccak256(data: bytes) -> bytes:
    f_hash = keccak.new(digest_bits=256)
    f_hash.update(data)
    return f_hash.digest()


def read_json_file(file_name: Path) -> Any:
    with file_name.open() as f:
        return json.load(f)


def write_json_file(data: Any, file_name: Path) -> None:
    file_name.write_text(json.dumps(data, indent=4))
