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
import json5
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, List

from StorageDecoder.storageAstIndex import AstIndex, StorageVariable, storage_variables
from StorageDecoder.storageConfig import DecoderConfig
from StorageDecoder.storageWords import WordStore, word_store_from_dump
from Shared import decoderUtils as Util
from Shared import decoderValidateFuncs as Vf

"""
This file is responsible for reading storage dump files.
A dump file is a JSON5 object holding the storage words and the compiler output needed to give them meaning:
{
    storage: { "0x0": "0x...", ... },
    // either the solc output inline
    sources: { "A.sol": { "ast": {...} } },
    storageLayout: { "storage": [...], "types": {...} },
    // or a path to a solc standard json output, and the contract to take the layout of
    solc_output: "out.json",
    contract: "A.sol:A",
    // optional, may also be given in the command line
    hashed_keys: false,
    max_decode_length: 10000,
    max_nesting_depth: 64,
    variable: ["x"],
    mapping_key: ["balances:0x...", "allowances:0x...:0x..."],
}
"""

conf_logger = logging.getLogger("conf")

# keys that can only come from the dump file
DATA_KEYS = ["storage", "sources", "storageLayout", "solc_output", "contract"]

# the conf values of these options are checked before they are put in the context, as the command line parser
# checks theirs
CONF_OPTION_VALIDATORS = {
    "hashed_keys": Vf.validate_bool,
    "json": Vf.validate_bool,
    "quiet": Vf.validate_bool,
    "debug": Vf.validate_bool,
    "show_debug_topics": Vf.validate_bool,
    "variable": Vf.validate_string_list,
    "mapping_key": Vf.validate_string_list,
    "debug_topics": Vf.validate_string_list,
    "max_decode_length": Vf.validate_non_negative_integer,
    "max_nesting_depth": Vf.validate_positive_integer,
}


@dataclass
class StorageDump:
    storage: WordStore
    ast_index: AstIndex
    variables: List[StorageVariable]
    config: DecoderConfig


def read_from_conf_file(context: argparse.Namespace) -> Dict[str, Any]:
    """
    Reads the dump file `context.dump_file`. Every option that was not set in the command line is taken from the
    file (command line shadows conf data).
    @return: the data-only entries of the file
    """
    conf_file_path = Path(context.dump_file)

    with conf_file_path.open() as conf_file:
        try:
            configuration = json5.load(conf_file, allow_duplicate_keys=False)
        except ValueError as e:
            raise Util.DecoderUserInputError(f"Parsing error in {conf_file_path}: {e}", e) from None
    if not isinstance(configuration, dict):
        raise Util.DecoderUserInputError(f"{conf_file_path} must hold a JSON object")
    try:
        data = check_conf_content(configuration, context)
    except Util.DecoderUserInputError as e:
        raise Util.DecoderUserInputError(f"Error when reading {conf_file_path}: {str(e)}", e) from None
    context.conf_dir = conf_file_path.parent
    return data


def check_conf_content(conf: Dict[str, Any], context: argparse.Namespace) -> Dict[str, Any]:
    """
    validating content read from the dump file
    Note: a command line definition trumps the definition in the file.
    @param conf: A json object in the dump file format
    @param context: A namespace containing options from the command line
    @return: the data-only entries of `conf`
    """
    data = {}
    for option in conf:
        if option in DATA_KEYS:
            data[option] = conf[option]
        elif option != "dump_file" and hasattr(context, option):
            val = getattr(context, option)
            validator = CONF_OPTION_VALIDATORS.get(option)
            try:
                conf_option = validator(conf[option]) if validator is not None else conf[option]
            except Util.DecoderUserInputError as e:
                raise Util.DecoderUserInputError(f"bad value of {option}: {e}") from None
            if val is None or val is False:
                setattr(context, option, conf_option)
            elif val != conf_option:
                cli_val = ' '.join(val) if isinstance(val, list) else str(val)
                conf_val = ' '.join(conf_option) if isinstance(conf_option, list) else str(conf_option)
                conf_logger.warning(f"Note: attribute {option} value in CLI ({cli_val}) overrides value stored in "
                                    f"conf file ({conf_val})")
        else:
            raise Util.DecoderUserInputError(f"{option} appears in the conf file but is not a known attribute. ")

    if 'storage' not in data:
        raise Util.DecoderUserInputError("Mandatory 'storage' attribute is missing from the configuration")
    if not isinstance(data['storage'], dict):
        raise Util.DecoderUserInputError("'storage' must map slots to words")

    has_inline_output = 'sources' in data and 'storageLayout' in data
    has_solc_output = 'solc_output' in data and 'contract' in data
    if has_inline_output == has_solc_output:
        raise Util.DecoderUserInputError("Exactly one of 'sources' and 'storageLayout', or 'solc_output' and "
                                         "'contract', must be given")
    return data


def config_from_context(context: argparse.Namespace) -> DecoderConfig:
    config = DecoderConfig()
    overrides = {}
    if context.max_decode_length is not None:
        overrides["max_decode_length"] = Vf.validate_non_negative_integer(context.max_decode_length)
    if context.max_nesting_depth is not None:
        overrides["max_nesting_depth"] = Vf.validate_positive_integer(context.max_nesting_depth)
    if overrides:
        config = config.with_overrides(**overrides)
    conf_logger.debug(f"decoder configuration: {config}")
    return config


def __solc_output_layout(data: Dict[str, Any], conf_dir: Path) -> Dict[str, Any]:
    """
    Takes the sources and the storage layout of `data["contract"]` out of a solc standard json output file
    """
    solc_output_path = conf_dir / data["solc_output"]
    Vf.file_exists_and_readable(str(solc_output_path))
    try:
        solc_output = Util.read_json_file(solc_output_path)
    except ValueError as e:
        raise Util.DecoderUserInputError(f"{solc_output_path} is not a JSON file", e) from None

    source_file, sep, contract_name = str(data["contract"]).rpartition(":")
    if not sep:
        raise Util.DecoderUserInputError(f"contract must be given as <file>:<name>, got {data['contract']}")
    try:
        layout = solc_output["contracts"][source_file][contract_name]["storageLayout"]
        sources = solc_output["sources"]
    except KeyError as e:
        raise Util.DecoderUserInputError(f"{solc_output_path} has no {e} entry for {data['contract']}. Was it "
                                         f"compiled with the storageLayout output selected?") from None
    return {"sources": sources, "storageLayout": layout}


def read_dump(context: argparse.Namespace) -> StorageDump:
    data = read_from_conf_file(context)
    if 'solc_output' in data:
        data.update(__solc_output_layout(data, context.conf_dir))

    storage = word_store_from_dump(data["storage"], context.hashed_keys)
    conf_logger.debug(f"read {len(data['storage'])} storage words")
    ast_index = AstIndex.from_solc_sources(data["sources"])
    variables = storage_variables(data["storageLayout"])

    return StorageDump(storage, ast_index, variables, config_from_context(context))
