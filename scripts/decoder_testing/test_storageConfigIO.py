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

import argparse
import json
import sys
import tempfile
import unittest
from pathlib import Path
from typing import Any, Dict, List, Optional

scripts_dir_path = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(scripts_dir_path))
from Shared import decoderUtils as Util
from Shared import decoderValidateFuncs as Vf
from StorageDecoder.storageConfig import DecoderConfig
from StorageDecoder.storageConfigIO import check_conf_content, config_from_context, read_dump, \
    read_from_conf_file
from StorageDecoder.storageWords import HashedKeyWordStore, fetch_word
from decodeStorage import get_args

from storageTestUtils import sample_compilation, sample_storage


class TestConfigIO(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp_dir = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp_dir.name)
        self.sources, self.layout = sample_compilation()

    def tearDown(self) -> None:
        self.tmp_dir.cleanup()

    def write_conf(self, conf: Dict[str, Any], name: str = "dump.conf") -> Path:
        path = self.dir / name
        with path.open("w") as f:
            json.dump(conf, f)
        return path

    def inline_conf(self, **extra: Any) -> Dict[str, Any]:
        conf = {"storage": sample_storage(), "sources": self.sources, "storageLayout": self.layout}
        conf.update(extra)
        return conf

    def context_for(self, conf: Dict[str, Any], cli: Optional[List[str]] = None) -> argparse.Namespace:
        return get_args([str(self.write_conf(conf))] + (cli or []))

    def test_inline_dump(self) -> None:
        dump = read_dump(self.context_for(self.inline_conf()))
        self.assertEqual(len(dump.variables), 7)
        self.assertEqual(dump.config, DecoderConfig())
        self.assertEqual(fetch_word(0, dump.storage)[-3:], bytes([2, 1, 7]))

    def test_options_from_conf(self) -> None:
        conf = self.inline_conf(max_decode_length="0x10", max_nesting_depth=3, variable=["small"])
        context = self.context_for(conf)
        dump = read_dump(context)
        self.assertEqual(dump.config, DecoderConfig(16, 3))
        self.assertEqual(context.variable, ["small"])

    def test_cli_shadows_conf(self) -> None:
        context = self.context_for(self.inline_conf(max_decode_length=5), ["--max_decode_length", "7"])
        with self.assertLogs("conf", level="WARNING") as logs:
            dump = read_dump(context)
        self.assertIn("overrides value stored in conf file", logs.output[0])
        self.assertEqual(dump.config.max_decode_length, 7)

    def test_hashed_keys(self) -> None:
        storage = {hex(HashedKeyWordStore.hash_slot(0)): "0x07"}
        dump = read_dump(self.context_for(self.inline_conf(storage=storage, hashed_keys=True)))
        self.assertIsInstance(dump.storage, HashedKeyWordStore)
        self.assertEqual(fetch_word(0, dump.storage)[-1], 7)

    def test_solc_output_file(self) -> None:
        solc_output = {
            "contracts": {"A.sol": {"C": {"storageLayout": self.layout}}},
            "sources": self.sources,
        }
        self.write_conf(solc_output, "out.json")
        conf = {"storage": sample_storage(), "solc_output": "out.json", "contract": "A.sol:C"}
        dump = read_dump(self.context_for(conf))
        self.assertEqual([v.label for v in dump.variables][:2], ["small", "flag"])

    def test_solc_output_without_layout(self) -> None:
        self.write_conf({"contracts": {"A.sol": {"C": {}}}, "sources": self.sources}, "out.json")
        conf = {"storage": {}, "solc_output": "out.json", "contract": "A.sol:C"}
        with self.assertRaises(Util.DecoderUserInputError):
            read_dump(self.context_for(conf))

    def test_json5_conf(self) -> None:
        path = self.dir / "dump.conf"
        path.write_text("""
        {
            // comments and trailing commas are fine
            storage: { "0x0": "0x01", },
            sources: {},
            storageLayout: { storage: [], },
        }
        """)
        dump = read_dump(get_args([str(path)]))
        self.assertEqual(dump.variables, [])

    def test_duplicate_keys(self) -> None:
        path = self.dir / "dump.conf"
        path.write_text('{"storage": {}, "storage": {}, "sources": {}, "storageLayout": {"storage": []}}')
        with self.assertRaises(Util.DecoderUserInputError):
            read_from_conf_file(get_args([str(path)]))

    def test_bad_conf_content(self) -> None:
        context = self.context_for(self.inline_conf())
        cases = [
            self.inline_conf(colour="red"),
            {"sources": self.sources, "storageLayout": self.layout},
            {"storage": [], "sources": self.sources, "storageLayout": self.layout},
            {"storage": {}, "sources": self.sources},
            self.inline_conf(solc_output="out.json", contract="A.sol:C"),
        ]
        for conf in cases:
            with self.subTest(conf=list(conf)):
                with self.assertRaises(Util.DecoderUserInputError):
                    check_conf_content(conf, context)

    def test_bad_options(self) -> None:
        cases = [
            self.inline_conf(max_nesting_depth=0),
            self.inline_conf(max_decode_length="many"),
            self.inline_conf(max_decode_length=1.5),
            self.inline_conf(max_decode_length=True),
            self.inline_conf(hashed_keys="maybe"),
            self.inline_conf(variable=["small", 3]),
            self.inline_conf(mapping_key={"balances": "0x11"}),
        ]
        for conf in cases:
            with self.subTest(conf={k: conf[k] for k in conf if k not in ("storage", "sources", "storageLayout")}):
                with self.assertRaises(Util.DecoderUserInputError):
                    read_dump(self.context_for(conf))

    def test_non_integer_numbers(self) -> None:
        for value in [1.5, True, None, [1]]:
            with self.subTest(value=value):
                with self.assertRaises(Util.DecoderUserInputError):
                    Vf.validate_non_negative_integer(value)
        self.assertEqual(Vf.validate_non_negative_integer(" 0x1f "), 31)

    def test_conf_flags_and_lists(self) -> None:
        context = self.context_for(self.inline_conf(hashed_keys="false", variable="small"))
        dump = read_dump(context)
        self.assertIsNot(type(dump.storage), HashedKeyWordStore)
        self.assertIs(context.hashed_keys, False)
        self.assertEqual(context.variable, ["small"])

        storage = {hex(HashedKeyWordStore.hash_slot(0)): "0x07"}
        context = self.context_for(self.inline_conf(storage=storage, hashed_keys="TRUE"))
        self.assertIsInstance(read_dump(context).storage, HashedKeyWordStore)


if __name__ == '__main__':
    unittest.main()
