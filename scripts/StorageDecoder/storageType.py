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

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Callable, Sequence
from abc import ABC, abstractmethod
import logging
import re

from StorageDecoder.storageNodeFilters import NodeFilters
from Shared.decoderUtils import TypeResolutionError, parse_int_str, ADDRESS_SIZE, type_resolution_logger

ast_logger = logging.getLogger("ast")

LookupReference = Callable[[int], Dict[str, Any]]


class Annotation(ABC):
    @abstractmethod
    def as_dict(self) -> Dict[str, Any]:
        ...


@dataclass
class StorageAnnotation(Annotation):
    number_of_bytes: int
    slot: Optional[int] = None
    offset: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        optional = {"slot": self.slot, "offset": self.offset}
        return {"type": "StorageAnnotation", "numberOfBytes": self.number_of_bytes,
                **{k: v for k, v in optional.items() if v is not None}}


class Type(ABC):
    def __init__(self, name: str, type_string: str, annotations: Optional[Sequence[Annotation]] = None):
        """
        @param type_string: solidity associates a type_string with every type
        """
        self.name = name
        self.type_string = type_string
        self.annotations = annotations

    def annotate(self, annotations: Sequence[Annotation]) -> None:
        assert self.annotations is None
        self.annotations = annotations

    @abstractmethod
    def as_dict(self) -> Dict[str, Any]:
        return {"annotations": [annotation.as_dict() for annotation in self.annotations]} if \
            self.annotations is not None else {}

    @abstractmethod
    def get_source_str(self) -> str:
        ...

    def is_pointer_type(self) -> bool:
        """
        In storage, reference types are never stored as an address. Their declared slot holds a header (or the
        data itself) and they always start at a fresh word
        """
        return False

    def __repr__(self) -> str:
        return self.get_source_str()

    @staticmethod
    def from_primitive_name(name: str, type_string: Optional[str] = None) -> 'PrimitiveType':
        canonical_name = PrimitiveType.canonical_primitive_name(name)
        type_string = type_string or name
        if canonical_name in ("bool", "address"):
            return BoolType(type_string) if canonical_name == "bool" else AddressType(type_string)
        if canonical_name.startswith("bytes"):
            return FixedBytesType(name, type_string)
        return IntType(name, type_string)

    @staticmethod
    def from_def_node(lookup_reference: LookupReference, def_node: Dict[str, Any]) -> 'Type':
        if NodeFilters.is_enum_definition(def_node):
            ret = EnumType.from_def_node(def_node)  # type: Type
        elif NodeFilters.is_struct_definition(def_node):
            ret = StructType.from_def_node(def_node)
        elif NodeFilters.is_user_defined_value_type_definition(def_node):
            ret = UserDefinedValueType.from_def_node(def_node)
        elif NodeFilters.is_contract_definition(def_node):
            ret = ContractType.from_def_node(def_node)
        else:
            ast_logger.debug(f"unexpected AST Type Definition Node {def_node}")
            raise TypeResolutionError(f"unexpected AST type definition node {def_node.get('nodeType')}")
        return ret

    @staticmethod
    def from_type_name_node(lookup_reference: LookupReference, type_name: Dict[str, Any]) -> 'Type':
        try:
            node_type = type_name["nodeType"]
            if node_type == "ElementaryTypeName":
                if type_name["name"] in PrimitiveType.allowed_primitive_type_names:
                    ret = Type.from_primitive_name(type_name["name"], get_type_string(type_name))  # type: Type
                else:
                    ret = Type.get_non_primitive_elementary_type(type_name)
            elif node_type == "UserDefinedTypeName":
                ret = Type.from_def_node(lookup_reference, lookup_reference(type_name["referencedDeclaration"]))
            elif node_type == "Mapping":
                ret = MappingType.from_def_node(lookup_reference, type_name)
            elif node_type == "ArrayTypeName":
                ret = ArrayType.from_def_node(lookup_reference, type_name)
            else:
                # function types included, nothing in storage decodes to them
                raise TypeResolutionError(f"unexpected AST type name node {node_type}")
        except KeyError as e:
            raise TypeResolutionError(f"malformed AST type name node, missing {e}") from None
        return ret

    @staticmethod
    def get_non_primitive_elementary_type(type_name: Dict[str, Any]) -> 'Type':
        name = type_name["name"]
        if name == "bytes":
            return PackedBytes()
        elif name == "string":
            return StringType()
        else:
            raise TypeResolutionError(f"unexpected elementary type name {name}")


def get_type_string(node: Dict[str, Any]) -> Optional[str]:
    return node.get("typeDescriptions", {}).get("typeString")


class PrimitiveType(Type):
    allowed_primitive_type_names = (
        {f"uint{bits}" for bits in range(8, 257, 8)} | {f"int{bits}" for bits in range(8, 257, 8)} |
        {f"bytes{size}" for size in range(1, 33)} | {"uint", "int", "byte", "bool", "address"}
    )

    aliases = {"uint": "uint256", "int": "int256", "byte": "bytes1"}

    @staticmethod
    def canonical_primitive_name(name: str) -> str:
        return PrimitiveType.aliases.get(name, name)

    def __init__(self, name: str, type_string: str):
        if name not in self.allowed_primitive_type_names:
            raise TypeResolutionError(f'bad primitive name {name}')
        canonical_name = PrimitiveType.canonical_primitive_name(name)
        Type.__init__(self, canonical_name, type_string)

    def as_dict(self) -> Dict[str, Any]:
        as_dict = Type.as_dict(self)
        as_dict.update({"primitiveName": self.name, "type": "Primitive"})
        return as_dict

    def get_source_str(self) -> str:
        return self.name


class IntType(PrimitiveType):
    def __init__(self, name: str, type_string: Optional[str] = None):
        PrimitiveType.__init__(self, name, type_string if type_string is not None else name)
        match = re.match(r'^(u?)int(\d+)$', self.name)
        assert match is not None, f"{self.name} is not an integer type"
        self.signed = match.group(1) == ""
        self.n_bits = int(match.group(2))

    @staticmethod
    def of(n_bits: int, signed: bool) -> 'IntType':
        return IntType(f"{'' if signed else 'u'}int{n_bits}")

    @property
    def min_value(self) -> int:
        return -(1 << (self.n_bits - 1)) if self.signed else 0

    @property
    def max_value(self) -> int:
        return (1 << (self.n_bits - 1)) - 1 if self.signed else (1 << self.n_bits) - 1

    def fits(self, value: int) -> bool:
        return self.min_value <= value <= self.max_value


class BoolType(PrimitiveType):
    def __init__(self, type_string: str = "bool"):
        PrimitiveType.__init__(self, "bool", type_string)


class FixedBytesType(PrimitiveType):
    def __init__(self, name: str, type_string: Optional[str] = None):
        PrimitiveType.__init__(self, name, type_string if type_string is not None else name)
        self.size = int(self.name[len("bytes"):])


class AddressType(PrimitiveType):
    def __init__(self, type_string: str = "address"):
        PrimitiveType.__init__(self, "address", type_string)
        self.size = ADDRESS_SIZE


class StringType(Type):
    def __init__(self) -> None:
        Type.__init__(self, "string", "string")

    def as_dict(self) -> Dict[str, Any]:
        as_dict = Type.as_dict(self)
        as_dict.update({
            "type": "StringType",
        })
        return as_dict

    def is_pointer_type(self) -> bool:
        return True

    def get_source_str(self) -> str:
        return "string"


class PackedBytes(Type):
    def __init__(self) -> None:
        Type.__init__(self, "bytes", "bytes")

    def as_dict(self) -> Dict[str, Any]:
        as_dict = Type.as_dict(self)
        as_dict.update({
            "type": "PackedBytes",
        })
        return as_dict

    def is_pointer_type(self) -> bool:
        return True

    def get_source_str(self) -> str:
        return "bytes"


class MappingType(Type):
    def __init__(self, type_string: str, domain: Type, codomain: Type, contract_name: Optional[str],
                 reference: int):
        Type.__init__(self, f"mapping({domain.name} => {codomain.name})", type_string)
        self.domain = domain
        self.codomain = codomain
        self.contract_name = contract_name
        self.reference = reference

    @staticmethod
    def from_def_node(lookup_reference: LookupReference, def_node: Dict[str, Any]) -> 'MappingType':
        domain = Type.from_type_name_node(lookup_reference, def_node["keyType"])
        codomain = Type.from_type_name_node(lookup_reference, def_node["valueType"])
        type_string = get_type_string(def_node) or \
            f"mapping({domain.get_source_str()} => {codomain.get_source_str()})"
        return MappingType(
            type_string=type_string,
            domain=domain,
            codomain=codomain,
            contract_name=def_node.get(NodeFilters.CONTRACT_NAME(), None),
            reference=def_node.get("id", 0),
        )

    def key_types(self) -> List[Type]:
        """
        The key types of this mapping and of the mappings nested in its values, outermost first
        """
        return [self.domain] + (self.codomain.key_types() if isinstance(self.codomain, MappingType) else [])

    def value_type(self) -> Type:
        """
        The type of the values at the innermost level of nesting
        """
        return self.codomain.value_type() if isinstance(self.codomain, MappingType) else self.codomain

    def is_pointer_type(self) -> bool:
        return True

    def get_source_str(self) -> str:
        return f"mapping({self.domain.get_source_str()} => {self.codomain.get_source_str()})"

    def as_dict(self) -> Dict[str, Any]:
        as_dict = Type.as_dict(self)
        as_dict.update({
            "type": "Mapping",
            "mappingKeyType": self.domain.as_dict(),
            "mappingValueType": self.codomain.as_dict(),
        })
        return as_dict


class ArrayType(Type):
    def __init__(self, type_string: str, elementType: Type, length: Optional[int], contract_name: Optional[str],
                 reference: int):
        Type.__init__(self, type_string, type_string)
        self.elementType = elementType
        self.length = length  # a length of None indicates a dynamic array
        self.contract_name = contract_name
        self.reference = reference

    @staticmethod
    def from_def_node(lookup_reference: LookupReference, def_node: Dict[str, Any]) -> 'ArrayType':
        element_type = Type.from_type_name_node(lookup_reference, def_node["baseType"])
        length = ArrayType.static_length(lookup_reference, def_node)
        type_string = get_type_string(def_node) or \
            element_type.get_source_str() + f"[{length if length is not None else ''}]"
        return ArrayType(
            type_string=type_string,
            elementType=element_type,
            length=length,
            contract_name=def_node.get(NodeFilters.CONTRACT_NAME(), None),
            reference=def_node.get("id", 0),
        )

    @staticmethod
    def static_length(lookup_reference: LookupReference, def_node: Dict[str, Any]) -> Optional[int]:
        """
        @return: the length of a static array type name, or None for a dynamic one. The length is either a literal
            or an identifier naming a constant initialized with a literal
        """
        length_node = def_node.get("length")
        if length_node is None:
            return None
        literal = length_node
        if length_node.get("nodeType") == "Identifier" and "referencedDeclaration" in length_node:
            declaration = lookup_reference(length_node["referencedDeclaration"])
            literal = declaration.get("value") if declaration.get("constant") else None
        if not isinstance(literal, dict) or "value" not in literal:
            # e.g. `bytes32[TREE_DEPTH * 2]`, which would need constant folding
            raise TypeResolutionError(f"cannot resolve the length of array {get_type_string(def_node)}")
        try:
            return parse_int_str(literal["value"])
        except (ValueError, TypeError) as e:
            raise TypeResolutionError(f"bad length of array {get_type_string(def_node)}: {e}") from None

    def as_dict(self) -> Dict[str, Any]:
        as_dict = Type.as_dict(self)
        if self.is_static_array():
            as_dict.update({
                "type": "StaticArray",
                "staticArrayBaseType": self.elementType.as_dict(),
                "staticArraySize": f"{self.length}",
            })
        else:
            as_dict.update({
                "type": "Array",
                "dynamicArrayBaseType": self.elementType.as_dict(),
            })
        return as_dict

    def is_static_array(self) -> bool:
        return self.length is not None

    def is_pointer_type(self) -> bool:
        return True

    def get_source_str(self) -> str:
        return self.elementType.get_source_str() + \
            f"[{self.length if self.is_static_array() else ''}]"


class UserDefinedType(Type):
    def __init__(self, name: str, type_string: str, canonical_name: str, contract_name: Optional[str],
                 reference: int):
        Type.__init__(self, name, type_string)
        self.canonical_name = canonical_name
        self.contract_name = contract_name
        self.reference = reference

    @abstractmethod
    def as_dict(self) -> Dict[str, Any]:
        ...

    def get_source_str(self) -> str:
        if self.contract_name is None:
            return self.name
        return f"{self.contract_name}.{self.name}"


class EnumType(UserDefinedType):
    def __init__(self, name: str, type_string: str, canonical_name: str, members: List[str],
                 contract_name: Optional[str], reference: int):
        UserDefinedType.__init__(self, name, type_string, canonical_name, contract_name, reference)
        self.members = tuple(members)

    @staticmethod
    def from_def_node(def_node: Dict[str, Any]) -> 'EnumType':
        canonical_name = def_node["canonicalName"]
        return EnumType(
            name=def_node["name"],
            # old compilers leave out typeDescriptions on definitions
            type_string=get_type_string(def_node) or f"enum {canonical_name}",
            canonical_name=canonical_name,
            members=[member["name"] for member in def_node["members"]],
            contract_name=def_node.get(NodeFilters.CONTRACT_NAME(), None),
            reference=def_node["id"],
        )

    def underlying_int_type(self) -> IntType:
        """
        An enum is stored as the smallest unsigned integer that holds its largest ordinal
        """
        max_ordinal = max(len(self.members) - 1, 0)
        n_bytes = max((max_ordinal.bit_length() + 7) // 8, 1)
        return IntType.of(n_bytes * 8, False)

    def as_dict(self) -> Dict[str, Any]:
        as_dict = Type.as_dict(self)
        as_dict.update({
            "type": "UserDefinedEnum",
            "enumName": self.name,
            "enumMembers": [{"name": x} for x in self.members],
            "containingContract": self.contract_name,  # null means it wasn't declared in a contract but at file-level
            "astId": self.reference,
        })
        return as_dict


class StructType(UserDefinedType):
    def __init__(self, name: str, type_string: str, canonical_name: str, members: List['StructType.StructMember'],
                 contract_name: Optional[str], reference: int):
        UserDefinedType.__init__(self, name, type_string, canonical_name, contract_name, reference)
        self.members = members

    class StructMember:
        """
        The member's type is resolved lazily, at decode time: eager resolution would never terminate on
        self-referencing structs (`struct Node { Node[] children; }`)
        """
        def __init__(self, name: str, type: Optional[Type] = None, type_name: Optional[Dict[str, Any]] = None):
            assert type is not None or type_name is not None, f"struct member {name} has neither a type nor a node"
            self.name = name
            self.type = type
            self.type_name = type_name

        @staticmethod
        def from_member_node(member_node: Dict[str, Any]) -> 'StructType.StructMember':
            return StructType.StructMember(member_node["name"], type_name=member_node["typeName"])

        def as_dict(self) -> Dict[str, Any]:
            return {
                "name": self.name,
                "type": self.type.as_dict() if self.type is not None else get_type_string(self.type_name or {})
            }

    @staticmethod
    def from_def_node(def_node: Dict[str, Any]) -> 'StructType':
        canonical_name = def_node["canonicalName"]
        return StructType(
            name=def_node["name"],
            type_string=f"struct {canonical_name}",
            canonical_name=canonical_name,
            members=[StructType.StructMember.from_member_node(member_node) for member_node in def_node["members"]],
            contract_name=def_node.get(NodeFilters.CONTRACT_NAME(), None),
            reference=def_node["id"],
        )

    def as_dict(self) -> Dict[str, Any]:
        as_dict = Type.as_dict(self)
        as_dict.update({
            "type": "UserDefinedStruct",
            "structName": self.name,
            "structMembers": [x.as_dict() for x in self.members],
            "containingContract": self.contract_name,
            "astId": self.reference,
        })
        return as_dict

    def is_pointer_type(self) -> bool:
        return True

    def get_source_str(self) -> str:
        return f"{self.canonical_name}"


# Solidity Name for a Type Alias
class UserDefinedValueType(UserDefinedType):
    def __init__(self, name: str, canonical_name: str, contract_name: Optional[str], reference: int,
                 underlying: Optional[Type] = None, underlying_node: Optional[Dict[str, Any]] = None):
        UserDefinedType.__init__(self, name, canonical_name, canonical_name, contract_name, reference)
        assert underlying is not None or underlying_node is not None, \
            f"value type {canonical_name} has neither an underlying type nor a node"
        self.underlying = underlying
        self.underlying_node = underlying_node

    @staticmethod
    def from_def_node(def_node: Dict[str, Any]) -> 'UserDefinedValueType':
        return UserDefinedValueType(
            name=def_node["name"],
            canonical_name=def_node["canonicalName"],
            contract_name=def_node.get(NodeFilters.CONTRACT_NAME(), None),
            reference=def_node["id"],
            underlying_node=def_node["underlyingType"],
        )

    def as_dict(self) -> Dict[str, Any]:
        as_dict = Type.as_dict(self)
        as_dict.update({
            "type": "UserDefinedValueType",
            "valueTypeName": self.name,
            "containingContract": self.contract_name,
            "valueTypeAliasedName": self.underlying.as_dict() if self.underlying is not None
            else get_type_string(self.underlying_node or {}),
            "astId": self.reference,
        })
        return as_dict


class ContractType(UserDefinedType):
    def __init__(self, name: str, reference: int):
        UserDefinedType.__init__(self, name, f"contract {name}", name, None, reference)

    @staticmethod
    def from_def_node(def_node: Dict[str, Any]) -> 'ContractType':
        return ContractType(def_node["name"], def_node["id"])

    def as_dict(self) -> Dict[str, Any]:
        as_dict = Type.as_dict(self)
        as_dict.update({
            "type": "Contract",
            "contractName": self.name,
        })
        return as_dict


class TypeResolver:
    """
    Turns the parts of a declared type that are only known as AST nodes (struct members, the underlying type of a
    user defined value type) into concrete types. Every failure is reported as a TypeResolutionError.
    @param lookup_reference: maps an AST node id to the node. May raise KeyError/TypeResolutionError on unknown ids.
        If None, only elementary types (and types attached directly to the members) can be resolved.
    """

    def __init__(self, lookup_reference: Optional[LookupReference] = None) -> None:
        self.lookup_reference = lookup_reference

    def __lookup(self, reference: int) -> Dict[str, Any]:
        if self.lookup_reference is None:
            raise TypeResolutionError(f"no AST to look up node {reference} in")
        try:
            return self.lookup_reference(reference)
        except KeyError:
            raise TypeResolutionError(f"could not find AST node {reference}") from None

    def type_of_type_name(self, type_name: Dict[str, Any]) -> Type:
        try:
            return Type.from_type_name_node(self.__lookup, type_name)
        except TypeResolutionError as e:
            type_resolution_logger.debug(f"failed to resolve {get_type_string(type_name)}: {e}")
            raise

    def member_type(self, member: StructType.StructMember) -> Type:
        if member.type is not None:
            return member.type
        assert member.type_name is not None
        return self.type_of_type_name(member.type_name)

    def underlying_type(self, typ: UserDefinedValueType) -> Type:
        if typ.underlying is not None:
            return typ.underlying
        assert typ.underlying_node is not None
        underlying = self.type_of_type_name(typ.underlying_node)
        if not isinstance(underlying, PrimitiveType):
            raise TypeResolutionError(f"unexpected underlying type {underlying} of {typ.get_source_str()}")
        return underlying
