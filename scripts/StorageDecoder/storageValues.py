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

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Tuple

from Shared import decoderUtils as Util


class DecodedValue(ABC):
    """
    A value read out of storage. Values are immutable, composites are built once all of their parts are decoded.
    """

    @abstractmethod
    def to_python(self) -> Any:
        """
        The value as plain python objects (ints, bools, bytes, strs, lists and dicts)
        """
        ...

    @abstractmethod
    def to_json(self) -> Any:
        ...

    @abstractmethod
    def pp(self) -> str:
        ...

    def __str__(self) -> str:
        return self.pp()


@dataclass(frozen=True)
class IntValue(DecodedValue):
    value: int

    def to_python(self) -> int:
        return self.value

    def to_json(self) -> int:
        return self.value

    def pp(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class BoolValue(DecodedValue):
    value: bool

    def to_python(self) -> bool:
        return self.value

    def to_json(self) -> bool:
        return self.value

    def pp(self) -> str:
        return "true" if self.value else "false"


@dataclass(frozen=True)
class FixedBytesValue(DecodedValue):
    value: bytes

    def to_python(self) -> bytes:
        return self.value

    def to_json(self) -> str:
        return self.pp()

    def pp(self) -> str:
        return "0x" + self.value.hex()


@dataclass(frozen=True)
class AddressValue(DecodedValue):
    value: bytes

    def __post_init__(self) -> None:
        assert len(self.value) == Util.ADDRESS_SIZE, f"an address is {Util.ADDRESS_SIZE} bytes, got {self.value!r}"

    @property
    def checksum_address(self) -> str:
        """
        EIP-55 mixed-case checksum encoding
        """
        lower = self.value.hex()
        digest = Util.keccak256(lower.encode("ascii")).hex()
        return "0x" + "".join(c.upper() if int(d, 16) >= 8 else c for c, d in zip(lower, digest))

    def to_python(self) -> str:
        return self.checksum_address

    def to_json(self) -> str:
        return self.checksum_address

    def pp(self) -> str:
        return self.checksum_address


@dataclass(frozen=True)
class EnumValue(DecodedValue):
    value: int
    member: Optional[str] = None  # None when the ordinal is out of the enum's range

    def to_python(self) -> int:
        return self.value

    def to_json(self) -> Any:
        return self.member if self.member is not None else self.value

    def pp(self) -> str:
        if self.member is None:
            return f"{self.value} (out of range)"
        return f"{self.member} ({self.value})"


@dataclass(frozen=True)
class BytesValue(DecodedValue):
    value: bytes

    def to_python(self) -> bytes:
        return self.value

    def to_json(self) -> str:
        return self.pp()

    def pp(self) -> str:
        return "0x" + self.value.hex()


@dataclass(frozen=True)
class StringValue(DecodedValue):
    value: str

    def to_python(self) -> str:
        return self.value

    def to_json(self) -> str:
        return self.value

    def pp(self) -> str:
        return repr(self.value)


@dataclass(frozen=True)
class ArrayValue(DecodedValue):
    elements: Tuple[DecodedValue, ...]

    def __len__(self) -> int:
        return len(self.elements)

    def __getitem__(self, index: int) -> DecodedValue:
        return self.elements[index]

    def __iter__(self) -> Iterator[DecodedValue]:
        return iter(self.elements)

    def to_python(self) -> Any:
        return [e.to_python() for e in self.elements]

    def to_json(self) -> Any:
        return [e.to_json() for e in self.elements]

    def pp(self) -> str:
        return "[" + ", ".join(e.pp() for e in self.elements) + "]"


@dataclass(frozen=True)
class StructValue(DecodedValue):
    fields: Tuple[Tuple[str, DecodedValue], ...]

    def with_field(self, name: str, value: DecodedValue) -> 'StructValue':
        return StructValue(self.fields + ((name, value),))

    def names(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.fields)

    def __getitem__(self, name: str) -> DecodedValue:
        for field_name, value in self.fields:
            if field_name == name:
                return value
        raise KeyError(name)

    def to_python(self) -> Dict[str, Any]:
        return {name: value.to_python() for name, value in self.fields}

    def to_json(self) -> Dict[str, Any]:
        return {name: value.to_json() for name, value in self.fields}

    def pp(self) -> str:
        return "{" + ", ".join(f"{name}: {value.pp()}" for name, value in self.fields) + "}"
