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

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from StorageDecoder import storageType as ST
from StorageDecoder.storageLocation import StorageLocation, type_static_storage_size
from StorageDecoder.storageNodeFilters import NodeFilters
from Shared import decoderUtils as Util
from Shared import decoderValidateFuncs as Vf

ast_logger = logging.getLogger("ast")


@dataclass
class StorageVariable:
    """
    A state variable, as listed in solc's `storageLayout` output
    """
    label: str
    ast_id: Optional[int]
    contract: str
    slot: int
    offset: int
    type_key: str
    number_of_bytes: Optional[int] = None

    def location(self) -> StorageLocation:
        return StorageLocation.from_solc_offset(self.slot, self.offset)


def storage_variables(storage_layout: Dict[str, Any]) -> List[StorageVariable]:
    """
    @param storage_layout: solc's storageLayout object of a single contract: {"storage": [...], "types": {...}}
    """
    if "storage" not in storage_layout:
        raise Util.DecoderUserInputError("storage layout has no 'storage' entry")
    types = storage_layout.get("types") or {}
    out = []
    for entry in storage_layout["storage"]:
        try:
            type_key = entry["type"]
            type_desc = types.get(type_key, {})
            number_of_bytes = Vf.validate_non_negative_integer(type_desc["numberOfBytes"]) \
                if "numberOfBytes" in type_desc else None
            offset = Vf.validate_non_negative_integer(entry["offset"])
            if offset >= Util.WORD_SIZE:
                raise Util.DecoderUserInputError(f"offset {offset} of {entry['label']} is outside of a word")
            out.append(StorageVariable(
                label=entry["label"],
                ast_id=entry.get("astId"),
                contract=entry.get("contract", ""),
                slot=Vf.validate_slot(entry["slot"]),
                offset=offset,
                type_key=type_key,
                number_of_bytes=number_of_bytes,
            ))
        except KeyError as e:
            raise Util.DecoderUserInputError(f"storage layout entry {entry} is missing {e}") from None
    return out


class AstIndex:
    """
    All AST nodes of a compilation, by id. Every node is stamped with the name of the contract it is declared in
    (see NodeFilters.CONTRACT_NAME()).
    """

    def __init__(self) -> None:
        self.nodes: Dict[int, Dict[str, Any]] = {}

    @staticmethod
    def from_solc_sources(sources: Dict[str, Any]) -> 'AstIndex':
        """
        @param sources: the "sources" entry of solc's standard json output: every source file is mapped to an
                        object holding its "ast". Every sub-object with an "id" key is an AST node.
        """
        index = AstIndex()
        for source_file, source in sources.items():
            if not isinstance(source, dict) or "ast" not in source:
                raise Util.DecoderUserInputError(
                    f"Invalid AST format for {source_file} - got object that does not contain an \"ast\"")
            ast_logger.debug(f"Adding ast of {source_file}")
            index.add_ast(source["ast"])
        return index

    def add_ast(self, ast: Dict[str, Any]) -> None:
        def stamp_value_with_contract_name(popped_dict: Dict[str, Any], curr_value: Any) -> None:
            if isinstance(curr_value, dict):
                if NodeFilters.is_contract_definition(popped_dict):
                    assert "name" in popped_dict
                    curr_value[NodeFilters.CONTRACT_NAME()] = popped_dict["name"]
                elif NodeFilters.CONTRACT_NAME() in popped_dict:
                    curr_value[NodeFilters.CONTRACT_NAME()] = popped_dict[NodeFilters.CONTRACT_NAME()]
            elif isinstance(curr_value, list):
                for node in curr_value:
                    stamp_value_with_contract_name(popped_dict, node)

        queue = [ast]
        while queue:
            pop = queue.pop(0)
            if isinstance(pop, dict) and "id" in pop:
                id_attr = pop["id"]
                if isinstance(id_attr, int):
                    self.nodes[id_attr] = pop
                elif isinstance(id_attr, list) and len(id_attr) == 1 and isinstance(id_attr[0], int):
                    # some solc versions emit the id as a singleton list
                    self.nodes[id_attr[0]] = pop
                else:
                    raise Util.DecoderUserInputError(f"Unexpected type of attribute `id`, was {id_attr}, expected "
                                                     f"an integer or an int-typed list of length 1")

                for key, value in pop.items():
                    if pop.get("nodeType") == "InlineAssembly" and key == "externalReferences":
                        continue
                    stamp_value_with_contract_name(pop, value)
                    if isinstance(value, dict):
                        queue.append(value)
                    if isinstance(value, list):
                        queue.extend(value)

    def lookup_reference(self, reference: int) -> Dict[str, Any]:
        if reference not in self.nodes:
            raise Util.TypeResolutionError(f"Could not find reference AST node {reference}")
        return self.nodes[reference]

    def resolver(self) -> ST.TypeResolver:
        return ST.TypeResolver(self.lookup_reference)

    def variable_type(self, var: StorageVariable) -> ST.Type:
        """
        The declared type of a state variable, annotated with where solc put it
        @raise TypeResolutionError if the variable's declaration, or any type it refers to, can't be resolved
        """
        if var.ast_id is None:
            raise Util.TypeResolutionError(f"storage layout entry of {var.label} has no astId")
        node = self.lookup_reference(var.ast_id)
        if not NodeFilters.is_variable_declaration(node) or "typeName" not in node:
            raise Util.TypeResolutionError(f"AST node {var.ast_id} of {var.label} is not a typed variable "
                                           f"declaration")
        resolver = self.resolver()
        typ = resolver.type_of_type_name(node["typeName"])

        if var.number_of_bytes is not None:
            typ.annotate([ST.StorageAnnotation(var.number_of_bytes, var.slot, var.offset)])
            if not typ.is_pointer_type():
                size = type_static_storage_size(typ, resolver)
                if size != var.number_of_bytes:
                    ast_logger.warning(f"{var.label}: solc reports {var.number_of_bytes} bytes for "
                                       f"{typ.get_source_str()}, expected {size}")
        return typ
