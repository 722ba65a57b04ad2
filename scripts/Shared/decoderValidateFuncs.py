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

import os
import sys
import logging
import json5
from pathlib import Path
from typing import Any, List, Union

scripts_dir_path = Path(__file__).parent.parent.resolve()  # containing directory
sys.path.insert(0, str(scripts_dir_path))

from Shared import decoderUtils as Util


validation_logger = logging.getLogger("validation")


def validate_non_negative_integer(string: Union[str, int]) -> int:
    """
    @param string: a decimal or hexadecimal number (or an int read from a conf file)
    @return: the number, if it is a non-negative integer
    """
    try:
        value = Util.parse_int_str(string)
    except (ValueError, TypeError):
        raise Util.DecoderUserInputError(f"expected a non-negative integer, instead given {string}") from None
    if value < 0:
        raise Util.DecoderUserInputError(f"expected a non-negative integer, instead given {string}")
    return value


def validate_positive_integer(input_value: Union[str, int]) -> int:
    value = validate_non_negative_integer(input_value)
    if value == 0:
        raise Util.DecoderUserInputError(f"expected a positive integer, instead given {input_value}")
    return value


def validate_slot(input_value: Union[str, int]) -> int:
    """
    A storage slot is a 256-bit unsigned integer
    """
    value = validate_non_negative_integer(input_value)
    if value > Util.MAX_UINT256:
        raise Util.DecoderUserInputError(f"slot {input_value} does not fit in 256 bits")
    return value


def validate_storage_word(input_value: Any) -> bytes:
    """
    @param input_value: a hex string (with or without 0x) of at most 32 bytes
    @return: the bytes of the word, not padded
    """
    if not isinstance(input_value, str):
        raise Util.DecoderUserInputError(f"storage words must be hex strings, instead given {input_value}")
    try:
        word = Util.hex_to_bytes(input_value)
    except ValueError:
        raise Util.DecoderUserInputError(f"{input_value} is not a hex string") from None
    if len(word) > Util.WORD_SIZE:
        raise Util.DecoderUserInputError(f"storage word {input_value} is longer than {Util.WORD_SIZE} bytes")
    return word


def file_exists_and_readable(file: str) -> str:
    p = Path(file)
    if not p.exists():
        raise Util.DecoderUserInputError(f"{p} does not exists")
    if not p.is_file():
        raise Util.DecoderUserInputError(f"{p} exists but is not a file")
    if not os.access(p, os.R_OK):
        raise Util.DecoderUserInputError(f"no read permissions for {p}")
    return file


def validate_json5_file(file: str) -> str:
    file_exists_and_readable(file)

    with open(file, 'r') as f:
        try:
            json5.load(f)
        except Exception as e:
            raise Util.DecoderUserInputError(f"Parsing error in JSON file {file}: {e}")
    validation_logger.debug(f"{file} is a valid JSON5 file")
    return file


def validate_bool(input_value: Any) -> bool:
    """
    @param input_value: a JSON bool, or one of the strings "true" and "false" (in any case)
    """
    if isinstance(input_value, bool):
        return input_value
    if isinstance(input_value, str) and input_value.lower() in ("true", "false"):
        return input_value.lower() == "true"
    raise Util.DecoderUserInputError(f"expected true or false, instead given {input_value!r}")


def validate_string_list(input_value: Any) -> List[str]:
    """
    @param input_value: a list of strings. A single string stands for a list of one.
    """
    if isinstance(input_value, str):
        return [input_value]
    if not isinstance(input_value, list) or not all(isinstance(v, str) for v in input_value):
        raise Util.DecoderUserInputError(f"expected a list of strings, instead given {input_value!r}")
    return input_value
