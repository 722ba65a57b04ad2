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

"""
Read access to a snapshot of contract storage.

The decoder only ever needs `get(slot) -> Optional[bytes]`. Slots that were never written are absent and read as
the all-zero word.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

from Shared import decoderUtils as Util
from Shared import decoderValidateFuncs as Vf


class WordStore(ABC):
    @abstractmethod
    def get(self, slot: int) -> Optional[bytes]:
        ...


class DictWordStore(WordStore):
    """
    A store whose keys are the slots themselves
    """

    def __init__(self, words: Optional[Mapping[int, bytes]] = None) -> None:
        self.words: Dict[int, bytes] = dict(words) if words is not None else {}

    def get(self, slot: int) -> Optional[bytes]:
        return self.words.get(slot)

    def __len__(self) -> int:
        return len(self.words)


class HashedKeyWordStore(WordStore):
    """
    A store keyed by keccak256 of the 32-byte big endian slot, the way secure state tries key contract storage
    """

    def __init__(self, words: Optional[Mapping[int, bytes]] = None) -> None:
        self.words: Dict[int, bytes] = dict(words) if words is not None else {}

    @staticmethod
    def hash_slot(slot: int) -> int:
        return Util.big_endian_to_int(Util.keccak256(Util.int_to_big_endian(slot)))

    def get(self, slot: int) -> Optional[bytes]:
        return self.words.get(self.hash_slot(slot))

    def __len__(self) -> int:
        return len(self.words)


def word_store_from_dump(dump: Mapping[str, Any], hashed_keys: bool = False) -> WordStore:
    """
    @param dump: maps slots (decimal or 0x-hex strings) to words (hex strings of at most 32 bytes)
    @param hashed_keys: if True, the keys of the dump are already keccak256 of the slots
    """
    words = {Vf.validate_slot(k): Vf.validate_storage_word(v) for k, v in dump.items()}
    return HashedKeyWordStore(words) if hashed_keys else DictWordStore(words)


def fetch_word(address: int, storage: WordStore) -> bytes:
    """
    Fetches the word residing at slot `address` of `storage`. This always succeeds, as all uninitialized values in
    storage are defined to contain 0. Stores may strip leading zero bytes, those are put back.
    """
    res = storage.get(address)

    if res is None:
        return bytes(Util.WORD_SIZE)

    if len(res) > Util.WORD_SIZE:
        raise Util.ImplementationError(f"Word at slot {hex(address)} is {len(res)} bytes long")

    return bytes(res).rjust(Util.WORD_SIZE, b'\x00')


def fetch_bytes(word_off: int, off_in_word: int, num_bytes: int, storage: WordStore) -> bytes:
    """
    Fetches `num_bytes` bytes from `storage`, starting at byte `off_in_word` of the word at slot `word_off` and
    continuing into the following slots. This always succeeds, uninitialized storage reads as 0.
    """
    assert 0 <= off_in_word < Util.WORD_SIZE, f"offset {off_in_word} is outside of a word"

    res = bytearray()

    while len(res) < num_bytes:
        cur_buf = fetch_word(word_off, storage)
        chunk = cur_buf[off_in_word:off_in_word + num_bytes - len(res)]
        res.extend(chunk)
        off_in_word = 0
        word_off = (word_off + 1) & Util.MAX_UINT256  # slots wrap around the 256-bit address space

    return bytes(res)
