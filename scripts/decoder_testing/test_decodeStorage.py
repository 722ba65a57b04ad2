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

import io
import json
import logging
import sys
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from typing import Any, Dict, List, Tuple
from unittest import mock

scripts_dir_path = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(scripts_dir_path))
from Shared import decoderUtils as Util
from Shared.decoderLogging import DecodeAbortHandler
from StorageDecoder import storageValues as SV
import decodeStorage

from storageTestUtils import SAMPLE_ACCOUNT, SAMPLE_BALANCE, AstBuilder, hex_word, layout_entry, pack_word, \
    sample_compilation, sample_storage


class TestDecodeStorage(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp_dir = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp_dir.name)
        sources, layout = sample_compilation()
        self.conf: Dict[str, Any] = {"storage": sample_storage(), "sources": sources, "storageLayout": layout}

    def tearDown(self) -> None:
        self.tmp_dir.cleanup()

    def dump_file(self) -> str:
        path = self.dir / "dump.conf"
        with path.open("w") as f:
            json.dump(self.conf, f)
        return str(path)

    def run_main(self, *args: str) -> Tuple[List[decodeStorage.DecodedVariable], str]:
        out = io.StringIO()
        with redirect_stdout(out):
            results = decodeStorage.main([self.dump_file()] + list(args))
        return results, out.getvalue()

    def test_table(self) -> None:
        results, out = self.run_main()
        self.assertEqual([(r.label, r.value_str()) for r in results], [
            ("small", "7"),
            ("flag", "true"),
            ("e", "Z (2)"),
            ("s", "{a: 1, b: 2, c: 3}"),
            ("arr", "[10, 20]"),
            ("name", "'hi'"),
            ("balances", decodeStorage.MAPPING_PLACEHOLDER),
        ])
        self.assertIn("Variable", out)
        self.assertIn("| e ", out)
        self.assertIn("C.E", out)
        self.assertIn("mapping(address => uint256)", out)

    def test_json(self) -> None:
        _, out = self.run_main("--json")
        decoded = {entry["variable"]: entry for entry in json.loads(out)}
        self.assertEqual({name: entry["value"] for name, entry in decoded.items()}, {
            "small": 7,
            "flag": True,
            "e": "Z",
            "s": {"a": 1, "b": 2, "c": 3},
            "arr": [10, 20],
            "name": "hi",
            "balances": None,
        })
        self.assertEqual(decoded["e"]["slot"], "0x0")
        self.assertEqual(decoded["e"]["offset"], 2)
        self.assertEqual(decoded["s"]["typeInfo"]["type"], "UserDefinedStruct")

    def test_variable_filter_and_mapping_keys(self) -> None:
        results, _ = self.run_main("--variable", "flag", "balances", "--mapping_key", f"balances:{SAMPLE_ACCOUNT}",
                                   "balances:0x" + "22" * 20)
        self.assertEqual([r.label for r in results],
                         ["flag", f"balances[{SAMPLE_ACCOUNT}]", f"balances[0x{'22' * 20}]"])
        self.assertEqual(results[1].value, SV.IntValue(SAMPLE_BALANCE))
        self.assertEqual(results[2].value, SV.IntValue(0))
        self.assertEqual(results[1].type_str(), "uint256")

    def add_allowances(self) -> None:
        """
        Adds `mapping(address => mapping(address => uint256)) allowances;` at slot 6
        """
        b = AstBuilder()
        b.next_id = 1000
        address = b.elementary("address")
        allowances = b.variable("allowances", b.mapping(address, b.mapping(b.elementary("address"),
                                                                           b.elementary("uint256"))))
        self.conf["sources"]["A.sol"]["ast"]["nodes"][0]["nodes"].append(allowances)
        self.conf["storageLayout"]["storage"].append(
            layout_entry(allowances, 6, 0, "t_mapping(t_address,t_mapping(t_address,t_uint256))"))

    def test_nested_mapping_keys(self) -> None:
        self.add_allowances()
        owner, spender = "0x" + "aa" * 20, "0x" + "bb" * 20
        owner_slot = Util.keccak256(bytes(12) + Util.hex_to_bytes(owner) + Util.int_to_big_endian(6))
        entry_slot = Util.big_endian_to_int(Util.keccak256(bytes(12) + Util.hex_to_bytes(spender) + owner_slot))
        self.conf["storage"][hex(entry_slot)] = hex_word(pack_word((500, 32)))

        results, out = self.run_main("--variable", "allowances", "--mapping_key", f"allowances:{owner}:{spender}",
                                     f"allowances:{spender}:{owner}")
        self.assertEqual([r.label for r in results],
                         [f"allowances[{owner}][{spender}]", f"allowances[{spender}][{owner}]"])
        self.assertEqual(results[0].value, SV.IntValue(500))
        self.assertEqual(results[1].value, SV.IntValue(0))
        self.assertEqual(results[0].type_str(), "uint256")
        self.assertIn("500", out)

        for key in [f"allowances:{owner}", f"allowances:{owner}:{spender}:{owner}"]:
            with self.subTest(key=key):
                with self.assertRaises(Util.DecoderUserInputError):
                    self.run_main("--variable", "allowances", "--mapping_key", key)

    def test_bad_variable_requests(self) -> None:
        for args in [["--variable", "nope"],
                     ["--mapping_key", "small:1"],
                     ["--mapping_key", "balances"],
                     ["--mapping_key", "balances:0x11"]]:
            with self.subTest(args=args):
                with self.assertRaises(Util.DecoderUserInputError):
                    self.run_main(*args)

    def test_aborts_are_reported(self) -> None:
        report = self.dir / "aborts.json"
        results, out = self.run_main("--max_decode_length", "1", "--abort_report", str(report))
        arr = next(r for r in results if r.label == "arr")
        self.assertIsNone(arr.value)
        self.assertEqual(arr.value_str(), Util.NOT_DECODABLE)
        self.assertIn(Util.NOT_DECODABLE, out)
        aborts = Util.read_json_file(report)["aborts"]
        self.assertEqual(len(aborts), 1)
        self.assertEqual(aborts[0]["topic"], "storage_decoder")

    def test_abort_report_of_empty_message(self) -> None:
        report = self.dir / "empty.json"
        handler = DecodeAbortHandler(report)
        handler.handle(logging.makeLogRecord({"name": "storage_decoder", "levelno": logging.WARNING, "msg": ""}))
        handler.handle(logging.makeLogRecord({"name": "storage_decoder", "levelno": logging.WARNING,
                                              "msg": "first line\nsecond line"}))
        handler.close()
        self.assertEqual(Util.read_json_file(report)["aborts"], [
            {"topic": "storage_decoder", "message": ""},
            {"topic": "storage_decoder", "message": "first line"},
        ])

    def test_unresolvable_variable(self) -> None:
        self.conf["storageLayout"]["storage"].append(
            {"astId": 9999, "contract": "A.sol:C", "label": "ghost", "offset": 0, "slot": "6", "type": "t_uint256"})
        results, _ = self.run_main("--variable", "ghost")
        self.assertEqual(len(results), 1)
        self.assertIsNone(results[0].typ)
        self.assertEqual(results[0].type_str(), "t_uint256")
        self.assertEqual(results[0].value_str(), Util.NOT_DECODABLE)

    def test_debug_log_file(self) -> None:
        log_file = self.dir / "debug.log"
        self.run_main("--variable", "small", "--debug_log_file", str(log_file))
        self.assertIn("decoding small", log_file.read_text())

    def test_entry_point(self) -> None:
        self.conf["colour"] = "red"
        with mock.patch.object(sys, "argv", ["decodeStorage", self.dump_file()]):
            with redirect_stdout(io.StringIO()):
                with self.assertRaises(SystemExit) as e:
                    decodeStorage.entry_point()
        self.assertEqual(e.exception.code, 1)

        del self.conf["colour"]
        with mock.patch.object(sys, "argv", ["decodeStorage", self.dump_file()]):
            with redirect_stdout(io.StringIO()):
                with self.assertRaises(SystemExit) as e:
                    decodeStorage.entry_point()
        self.assertEqual(e.exception.code, 0)


if __name__ == '__main__':
    unittest.main()
