#!/usr/bin/env python3
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
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import tabulate
from rich.console import Console

scripts_dir_path = Path(__file__).parent.resolve()  # containing directory
sys.path.insert(0, str(scripts_dir_path))
from Shared import decoderUtils as Util
from Shared import decoderValidateFuncs as Vf
from Shared.decoderLogging import LoggingManager

from StorageDecoder import storageType as ST
from StorageDecoder import storageValues as SV
from StorageDecoder.storageAstIndex import StorageVariable
from StorageDecoder.storageConfigIO import StorageDump, read_dump
from StorageDecoder.storageDecoder import DecodeContext, decode_value, decode_mapping_path

MAPPING_PLACEHOLDER = "<mapping>"

# logger for issues regarding the general run flow.
# Also serves as the default logger for errors originating from unexpected places.
run_logger = logging.getLogger("run")


@dataclass
class DecodedVariable:
    """
    One row of the output. `typ` is None if the declared type could not be resolved, `value` is None if the
    decode aborted (or the variable is a mapping whose entries were not asked for).
    """
    label: str
    var: StorageVariable
    typ: Optional[ST.Type]
    value: Optional[SV.DecodedValue]

    def type_str(self) -> str:
        return self.typ.get_source_str() if self.typ is not None else self.var.type_key

    def value_str(self) -> str:
        if self.value is not None:
            return self.value.pp()
        if isinstance(self.typ, ST.MappingType):
            return MAPPING_PLACEHOLDER
        return Util.NOT_DECODABLE

    def as_dict(self) -> Dict[str, Any]:
        return {
            "variable": self.label,
            "contract": self.var.contract,
            "type": self.type_str(),
            "typeInfo": self.typ.as_dict() if self.typ is not None else None,
            "slot": hex(self.var.slot),
            "offset": self.var.offset,
            "value": self.value.to_json() if self.value is not None else None,
        }


def get_args(args: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="decodeStorage",
                                     description="Decodes the state variables of a contract out of a storage dump")
    parser.add_argument("dump_file", type=Vf.validate_json5_file,
                        help="A JSON5 file with the storage words and the solc output of the contract")
    parser.add_argument("--max_decode_length", type=Vf.validate_non_negative_integer,
                        help=f"Abort decoding containers longer than this (default "
                             f"{Util.DEFAULT_MAX_DECODE_LENGTH})")
    parser.add_argument("--max_nesting_depth", type=Vf.validate_positive_integer,
                        help=f"Abort decoding values nested deeper than this (default "
                             f"{Util.DEFAULT_MAX_NESTING_DEPTH})")
    parser.add_argument("--hashed_keys", action="store_true",
                        help="The storage dump is keyed by keccak256 of the slots")
    parser.add_argument("--variable", nargs="+", help="Only decode the state variables with these names")
    parser.add_argument("--mapping_key", nargs="+",
                        help="Decode the entry of a mapping state variable, given as <name>:<key>. Nested mappings "
                             "take one key per level, as <name>:<key1>:<key2>")
    parser.add_argument("--json", action="store_true", help="Print the decoded variables as JSON")
    parser.add_argument("--quiet", action="store_true", help="Only show warnings and errors")
    parser.add_argument("--debug", action="store_true", help="Show debug messages")
    parser.add_argument("--debug_topics", nargs="+", help="Only show debug messages of these topics")
    parser.add_argument("--show_debug_topics", action="store_true", help="Show the topic of each debug message")
    parser.add_argument("--debug_log_file", type=Path, help="Write all the messages of the decoder to this file")
    parser.add_argument("--abort_report", type=Path, help="Gather all the decode aborts into this JSON file")
    return parser.parse_args(args)


def __mapping_keys(context: argparse.Namespace) -> Dict[str, List[str]]:
    keys: Dict[str, List[str]] = {}
    for entry in context.mapping_key or []:
        name, sep, key = str(entry).partition(":")
        if not sep or not name or not key:
            raise Util.DecoderUserInputError(f"mapping keys must be given as <name>:<key>, got {entry}")
        keys.setdefault(name, []).append(key)
    return keys


def decode_variable(var: StorageVariable, dump: StorageDump, keys: List[str]) -> List[DecodedVariable]:
    """
    Decodes a single state variable. A mapping is shown once per key in `keys`, or once (undecoded) if no keys
    were given.
    """
    try:
        typ = dump.ast_index.variable_type(var)
    except Util.TypeResolutionError as e:
        Util.type_resolution_logger.warning(f"Could not resolve the type of {var.label}: {e}")
        return [DecodedVariable(var.label, var, None, None)]

    ctx = DecodeContext(dump.storage, dump.ast_index.resolver(), dump.config)

    if isinstance(typ, ST.MappingType):
        rows = []
        levels = len(typ.key_types())
        for key in keys:
            # a nested mapping takes one key per level, separated by ':'
            path = key.split(":", levels - 1)
            res = decode_mapping_path(typ, var.location(), path, ctx)
            label = var.label + "".join(f"[{k}]" for k in path)
            rows.append(DecodedVariable(label, var, typ.value_type(), res[0] if res else None))
        return rows or [DecodedVariable(var.label, var, typ, None)]

    if keys:
        raise Util.DecoderUserInputError(f"mapping keys were given for {var.label}, which is not a mapping")

    res = decode_value(typ, var.location(), ctx)
    return [DecodedVariable(var.label, var, typ, res[0] if res is not None else None)]


def decode_dump(dump: StorageDump, names: Optional[List[str]] = None,
                mapping_keys: Optional[Dict[str, List[str]]] = None) -> List[DecodedVariable]:
    mapping_keys = mapping_keys or {}
    known = {var.label for var in dump.variables}
    unknown = [name for name in (names or []) + list(mapping_keys) if name not in known]
    if unknown:
        raise Util.DecoderUserInputError(f"no state variables named {', '.join(unknown)}")
    variables = [var for var in dump.variables if not names or var.label in names]

    results = []
    for var in variables:
        run_logger.debug(f"decoding {var.label} at {var.location()}")
        results.extend(decode_variable(var, dump, mapping_keys.get(var.label, [])))
    return results


def format_results(results: List[DecodedVariable], as_json: bool = False) -> str:
    if as_json:
        return json.dumps([r.as_dict() for r in results], indent=4)
    rows: List[Tuple[str, str, str, int, str]] = [
        (r.label, r.type_str(), hex(r.var.slot), r.var.offset, r.value_str()) for r in results
    ]
    return tabulate.tabulate(rows, headers=["Variable", "Type", "Slot", "Offset", "Value"], tablefmt="psql")


def main(args: List[str]) -> List[DecodedVariable]:
    """
    Decodes the dump file given in `args` and prints the result.
    @return: the decoded variables
    """
    context = get_args(args)
    with LoggingManager(context.quiet, context.debug, context.debug_topics, context.show_debug_topics,
                        context.debug_log_file, context.abort_report):
        dump = read_dump(context)
        run_logger.debug(f"read {len(dump.variables)} state variables from {context.dump_file}")
        results = decode_dump(dump, context.variable, __mapping_keys(context))
        print(format_results(results, context.json))
        return results


def entry_point() -> None:
    """
    The entry point of the decodeStorage console script. It is important this function gets no arguments!
    """
    try:
        main(sys.argv[1:])
        sys.exit(0)
    except KeyboardInterrupt:
        Console().print("[bold red]\nInterrupted by user")
        sys.exit(1)
    except Util.DecoderUserInputError as e:
        if e.orig:
            print(f"\n{str(e.orig).strip()}")
        if e.more_info:
            print(f"\n{e.more_info.strip()}")
        Console().print(f"[bold red]\n{e}\n")
        sys.exit(1)
    except Util.ImplementationError as e:
        Console().print(f"[bold red]Internal error: {e}")
        sys.exit(2)


if __name__ == '__main__':
    entry_point()
