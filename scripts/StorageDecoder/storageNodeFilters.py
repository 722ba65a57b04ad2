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

from enum import Enum
from typing import Any, Dict


class DeclarationKind(Enum):
    """
    The solc AST node types of the declarations a storage type name may refer to
    """
    ENUM = "EnumDefinition"
    STRUCT = "StructDefinition"
    VALUE_TYPE = "UserDefinedValueTypeDefinition"
    CONTRACT = "ContractDefinition"
    VARIABLE = "VariableDeclaration"

    def matches(self, node: Dict[str, Any]) -> bool:
        return node.get("nodeType") == self.value


class NodeFilters:

    @staticmethod
    def CONTRACT_NAME() -> str:
        # key stamped on every node declared inside a contract, holding the contract's name
        return "storage_decoder_contract_name"

    @staticmethod
    def is_enum_definition(node: Dict[str, Any]) -> bool:
        return DeclarationKind.ENUM.matches(node)

    @staticmethod
    def is_struct_definition(node: Dict[str, Any]) -> bool:
        return DeclarationKind.STRUCT.matches(node)

    @staticmethod
    def is_user_defined_value_type_definition(node: Dict[str, Any]) -> bool:
        return DeclarationKind.VALUE_TYPE.matches(node)

    @staticmethod
    def is_contract_definition(node: Dict[str, Any]) -> bool:
        return DeclarationKind.CONTRACT.matches(node)

    @staticmethod
    def is_variable_declaration(node: Dict[str, Any]) -> bool:
        return DeclarationKind.VARIABLE.matches(node)
