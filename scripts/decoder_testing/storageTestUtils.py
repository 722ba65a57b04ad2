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
from pathlib import Path
from typing import Any, Dict, List, Tuple

scripts_dir_path = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(scripts_dir_path))
from Shared import decoderUtils as Util

SAMPLE_ACCOUNT = "0x" + "11" * 20
SAMPLE_BALANCE = 1000


def pack_word(*fields: Tuple[int, int]) -> bytes:
    """
    Builds a storage word out of (value, size in bytes) pairs, laid out from the low-order end of the word like
    the compiler packs consecutive variables
    """
    res = 0
    shift = 0
    for value, size in fields:
        res |= (value & ((1 << (8 * size)) - 1)) << (8 * shift)
        shift += size
    assert shift <= Util.WORD_SIZE
    return Util.int_to_big_endian(res)


def short_bytes_word(data: bytes) -> bytes:
    assert len(data) < Util.WORD_SIZE
    return data.ljust(Util.WORD_SIZE - 1, b'\x00') + bytes([len(data) * 2])


def slot_hash(slot: int) -> int:
    return Util.big_endian_to_int(Util.keccak256(Util.int_to_big_endian(slot)))


def hex_word(word: bytes) -> str:
    return "0x" + word.hex()


class AstBuilder:
    """
    Builds solc-like AST nodes. Every node gets a fresh id.
    """

    def __init__(self) -> None:
        self.next_id = 1

    def node(self, node_type: str, **attrs: Any) -> Dict[str, Any]:
        node = {"id": self.next_id, "nodeType": node_type}
        self.next_id += 1
        node.update(attrs)
        return node

    def elementary(self, name: str) -> Dict[str, Any]:
        return self.node("ElementaryTypeName", name=name, typeDescriptions={"typeString": name})

    def user_defined(self, definition: Dict[str, Any]) -> Dict[str, Any]:
        return self.node("UserDefinedTypeName", referencedDeclaration=definition["id"],
                         typeDescriptions={"typeString": definition.get("canonicalName", definition["name"])})

    def array(self, base: Dict[str, Any], length: Any = None) -> Dict[str, Any]:
        length_node = self.node("Literal", value=str(length)) if length is not None else None
        return self.node("ArrayTypeName", baseType=base, length=length_node)

    def mapping(self, key: Dict[str, Any], value: Dict[str, Any]) -> Dict[str, Any]:
        return self.node("Mapping", keyType=key, valueType=value)

    def struct(self, name: str, members: List[Tuple[str, Dict[str, Any]]], contract: str = "C") -> Dict[str, Any]:
        return self.node("StructDefinition", name=name, canonicalName=f"{contract}.{name}",
                         members=[self.node("VariableDeclaration", name=m_name, typeName=m_type)
                                  for m_name, m_type in members])

    def enum(self, name: str, members: List[str], contract: str = "C") -> Dict[str, Any]:
        return self.node("EnumDefinition", name=name, canonicalName=f"{contract}.{name}",
                         members=[self.node("EnumValue", name=m) for m in members])

    def value_type(self, name: str, underlying: Dict[str, Any], contract: str = "C") -> Dict[str, Any]:
        return self.node("UserDefinedValueTypeDefinition", name=name, canonicalName=f"{contract}.{name}",
                         underlyingType=underlying)

    def variable(self, name: str, type_name: Dict[str, Any]) -> Dict[str, Any]:
        return self.node("VariableDeclaration", name=name, stateVariable=True, typeName=type_name)

    def contract(self, name: str, nodes: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self.node("ContractDefinition", name=name, contractKind="contract", nodes=nodes)

    def source_unit(self, nodes: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self.node("SourceUnit", absolutePath="A.sol", nodes=nodes)


def layout_entry(var_node: Dict[str, Any], slot: int, offset: int, type_key: str) -> Dict[str, Any]:
    return {
        "astId": var_node["id"],
        "contract": "A.sol:C",
        "label": var_node["name"],
        "offset": offset,
        "slot": str(slot),
        "type": type_key,
    }


def sample_compilation() -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    The solc output of

    contract C {
        struct S { uint8 a; uint8 b; uint256 c; }
        enum E { X, Y, Z }
        uint8 small; bool flag; E e;        // slot 0
        S s;                                // slots 1-2
        uint256[] arr;                      // slot 3
        string name;                        // slot 4
        mapping(address => uint256) balances;  // slot 5
    }
    @return: the "sources" output and the storage layout of C
    """
    b = AstBuilder()
    s = b.struct("S", [("a", b.elementary("uint8")), ("b", b.elementary("uint8")), ("c", b.elementary("uint256"))])
    e = b.enum("E", ["X", "Y", "Z"])
    small = b.variable("small", b.elementary("uint8"))
    flag = b.variable("flag", b.elementary("bool"))
    e_var = b.variable("e", b.user_defined(e))
    s_var = b.variable("s", b.user_defined(s))
    arr = b.array(b.elementary("uint256"))
    arr_var = b.variable("arr", arr)
    name = b.variable("name", b.elementary("string"))
    balances = b.variable("balances", b.mapping(b.elementary("address"), b.elementary("uint256")))
    contract = b.contract("C", [s, e, small, flag, e_var, s_var, arr_var, name, balances])

    sources = {"A.sol": {"id": 0, "ast": b.source_unit([contract])}}
    layout = {
        "storage": [
            layout_entry(small, 0, 0, "t_uint8"),
            layout_entry(flag, 0, 1, "t_bool"),
            layout_entry(e_var, 0, 2, "t_enum(E)2"),
            layout_entry(s_var, 1, 0, "t_struct(S)1_storage"),
            layout_entry(arr_var, 3, 0, "t_array(t_uint256)dyn_storage"),
            layout_entry(name, 4, 0, "t_string_storage"),
            layout_entry(balances, 5, 0, "t_mapping(t_address,t_uint256)"),
        ],
        "types": {
            "t_uint8": {"encoding": "inplace", "label": "uint8", "numberOfBytes": "1"},
            "t_bool": {"encoding": "inplace", "label": "bool", "numberOfBytes": "1"},
            "t_enum(E)2": {"encoding": "inplace", "label": "enum C.E", "numberOfBytes": "1"},
            "t_struct(S)1_storage": {"encoding": "inplace", "label": "struct C.S", "numberOfBytes": "64"},
            "t_array(t_uint256)dyn_storage": {"encoding": "dynamic_array", "label": "uint256[]",
                                              "numberOfBytes": "32"},
            "t_string_storage": {"encoding": "bytes", "label": "string", "numberOfBytes": "32"},
            "t_mapping(t_address,t_uint256)": {"encoding": "mapping", "label": "mapping(address => uint256)",
                                               "numberOfBytes": "32"},
        },
    }
    return sources, layout


def sample_storage() -> Dict[str, str]:
    """
    small = 7, flag = true, e = Z, s = {a: 1, b: 2, c: 3}, arr = [10, 20], name = "hi",
    balances[SAMPLE_ACCOUNT] = SAMPLE_BALANCE
    """
    account_key = bytes(12) + Util.hex_to_bytes(SAMPLE_ACCOUNT)
    balance_slot = Util.big_endian_to_int(Util.keccak256(account_key + Util.int_to_big_endian(5)))
    words = {
        0: pack_word((7, 1), (1, 1), (2, 1)),
        1: pack_word((1, 1), (2, 1)),
        2: pack_word((3, 32)),
        3: pack_word((2, 32)),
        slot_hash(3): pack_word((10, 32)),
        slot_hash(3) + 1: pack_word((20, 32)),
        4: short_bytes_word(b"hi"),
        balance_slot: pack_word((SAMPLE_BALANCE, 32)),
    }
    return {hex(slot): hex_word(word) for slot, word in words.items()}
