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

import sys
import unittest
from pathlib import Path

scripts_dir_path = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(scripts_dir_path))
from Shared import decoderUtils as Util
from StorageDecoder.storageWords import DictWordStore, HashedKeyWordStore, word_store_from_dump, fetch_word, \
    fetch_bytes

KECCAK_OF_ZERO_SLOT = 0x290decd9548b62a8d60345a988386fc84ba6bc95484008f6362f93160ef3e563


class TestFetchWord(unittest.TestCase):
    def test_missing_slot_is_zero(self) -> None:
        self.assertEqual(fetch_word(12, DictWordStore()), bytes(32))

    def test_short_word_is_left_padded(self) -> None:
        storage = DictWordStore({0: b'\x01\x02'})
        self.assertEqual(fetch_word(0, storage), bytes(30) + b'\x01\x02')

    def test_over_long_word(self) -> None:
        storage = DictWordStore({0: bytes(33)})
        with self.assertRaises(Util.ImplementationError):
            fetch_word(0, storage)


class TestFetchBytes(unittest.TestCase):
    def test_within_a_word(self) -> None:
        storage = DictWordStore({1: bytes(range(32))})
        self.assertEqual(fetch_bytes(1, 4, 3, storage), bytes([4, 5, 6]))

    def test_spanning_words(self) -> None:
        storage = DictWordStore({1: bytes(range(32)), 2: bytes(range(100, 132))})
        self.assertEqual(fetch_bytes(1, 30, 4, storage), bytes([30, 31, 100, 101]))

    def test_uninitialized_tail(self) -> None:
        storage = DictWordStore({1: b'\xff' * 32})
        self.assertEqual(fetch_bytes(1, 0, 40, storage), b'\xff' * 32 + bytes(8))

    def test_wraps_around_the_last_slot(self) -> None:
        storage = DictWordStore({Util.MAX_UINT256: b'\xaa' * 32, 0: b'\xbb' * 32})
        self.assertEqual(fetch_bytes(Util.MAX_UINT256, 31, 2, storage), b'\xaa\xbb')

    def test_zero_bytes(self) -> None:
        self.assertEqual(fetch_bytes(0, 0, 0, DictWordStore()), b'')


class TestWordStores(unittest.TestCase):
    def test_hashed_keys(self) -> None:
        self.assertEqual(HashedKeyWordStore.hash_slot(0), KECCAK_OF_ZERO_SLOT)
        storage = HashedKeyWordStore({KECCAK_OF_ZERO_SLOT: b'\x05'})
        self.assertEqual(fetch_word(0, storage), bytes(31) + b'\x05')
        self.assertEqual(fetch_word(KECCAK_OF_ZERO_SLOT, storage), bytes(32))

    def test_from_dump(self) -> None:
        storage = word_store_from_dump({"0x0": "0x2a", "1": "ff" * 32})
        self.assertIsInstance(storage, DictWordStore)
        self.assertEqual(fetch_word(0, storage), bytes(31) + b'\x2a')
        self.assertEqual(fetch_word(1, storage), b'\xff' * 32)

    def test_from_hashed_dump(self) -> None:
        storage = word_store_from_dump({hex(KECCAK_OF_ZERO_SLOT): "0x01"}, hashed_keys=True)
        self.assertIsInstance(storage, HashedKeyWordStore)
        self.assertEqual(fetch_word(0, storage), bytes(31) + b'\x01')

    def test_bad_dumps(self) -> None:
        for dump in [{"0x0": "0x" + "00" * 33},
                     {"0x0": 5},
                     {"0x0": "0xzz"},
                     {"-1": "0x00"},
                     {hex(Util.MAX_UINT256 + 1): "0x00"},
                     {"slot": "0x00"}]:
            with self.subTest(dump=dump):
                with self.assertRaises(Util.DecoderUserInputError):
                    word_store_from_dump(dump)


if __name__ == '__main__':
    unittest.main()
