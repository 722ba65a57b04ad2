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
from typing import Any, Union

from StorageDecoder import storageType as ST
from Shared import decoderUtils as Util


@dataclass(frozen=True)
class StorageLocation:
    """
    A position in storage: the slot `address`, and `end_offset_in_word`, the exclusive upper (big endian) byte
    boundary of what is still free in that word. Values are packed right-to-left, so the next value ends at
    `end_offset_in_word`. 32 means we are at the start of a fresh word.
    """
    address: int
    end_offset_in_word: int = Util.WORD_SIZE

    def __post_init__(self) -> None:
        assert 0 <= self.address <= Util.MAX_UINT256, f"slot {self.address} is outside of storage"
        assert 0 < self.end_offset_in_word <= Util.WORD_SIZE, \
            f"offset {self.end_offset_in_word} is outside of a word"

    @staticmethod
    def from_solc_offset(slot: int, offset: int) -> 'StorageLocation':
        """
        solc's storage layout counts `offset` in bytes from the low-order end of the slot
        """
        return StorageLocation(slot, Util.WORD_SIZE - offset)

    def is_fresh_word(self) -> bool:
        return self.end_offset_in_word == Util.WORD_SIZE

    def advance(self, size: int) -> 'StorageLocation':
        """
        Consumes `size` bytes of the current word. Once it is exhausted we move to the start of the next one
        """
        assert size <= self.end_offset_in_word, f"can't consume {size} bytes out of {self.end_offset_in_word}"
        next_end_off = self.end_offset_in_word - size
        if next_end_off == 0:
            return next_word(self)
        return StorageLocation(self.address, next_end_off)

    def __str__(self) -> str:
        return f"{hex(self.address)}:{self.end_offset_in_word}"


def next_word(loc: StorageLocation) -> StorageLocation:
    return StorageLocation((loc.address + 1) & Util.MAX_UINT256, Util.WORD_SIZE)


def keccak_of_slot(addr: int) -> int:
    """
    The slot where the payload of a dynamic array or a long bytes/string whose header is at `addr` starts
    """
    return Util.big_endian_to_int(Util.keccak256(Util.int_to_big_endian(addr)))


def type_static_storage_size(typ: ST.Type, resolver: ST.TypeResolver) -> int:
    """
    Compute the 'static' size that a variable of type `typ` would take up in storage
    """
    if isinstance(typ, ST.IntType):
        return typ.n_bits // 8

    if isinstance(typ, ST.FixedBytesType):
        return typ.size

    if isinstance(typ, ST.BoolType):
        return 1

    if isinstance(typ, ST.AddressType):
        return typ.size

    if isinstance(typ, ST.ContractType):
        return Util.ADDRESS_SIZE

    if isinstance(typ, ST.EnumType):
        return typ.underlying_int_type().n_bits // 8

    if isinstance(typ, ST.UserDefinedValueType):
        return type_static_storage_size(resolver.underlying_type(typ), resolver)

    raise Util.ImplementationError(f"No static storage size for {typ.get_source_str()}")


def type_fits_in_loc(typ: ST.Type, loc: StorageLocation, resolver: ST.TypeResolver) -> bool:
    if typ.is_pointer_type():
        return loc.is_fresh_word()

    size = type_static_storage_size(typ, resolver)

    if size > Util.WORD_SIZE:
        raise Util.ImplementationError(f"Unexpected type {typ.get_source_str()} spanning more than a single word")

    return size <= loc.end_offset_in_word


def round_loc_to_type(loc: StorageLocation, typ: ST.Type, resolver: ST.TypeResolver) -> StorageLocation:
    """
    The location where a value of type `typ` that comes right after `loc` starts. It shares the current word only
    if it fits in what is left of it.
    """
    if type_fits_in_loc(typ, loc, resolver):
        return loc

    return next_word(loc)


def encode_mapping_key(key_type: ST.Type, key: Any, resolver: ST.TypeResolver) -> bytes:
    """
    Encodes `key` the way solidity does before hashing it with the mapping's slot:
    value types are padded to a word, bytes and strings are taken as they are.
    @raise DecoderUserInputError if `key` is not a value of `key_type`
    """
    try:
        return __encode_key(key_type, key, resolver)
    except (ValueError, TypeError) as e:
        raise Util.DecoderUserInputError(f"key {key!r} is not a {key_type.get_source_str()}: {e}") from None


def __encode_key(key_type: ST.Type, key: Any, resolver: ST.TypeResolver) -> bytes:
    if isinstance(key_type, ST.UserDefinedValueType):
        return __encode_key(resolver.underlying_type(key_type), key, resolver)

    if isinstance(key_type, (ST.PackedBytes, ST.StringType)):
        return key.encode("utf-8") if isinstance(key, str) else bytes(key)

    if isinstance(key_type, ST.FixedBytesType):
        raw = Util.hex_to_bytes(key) if isinstance(key, str) else bytes(key)
        if len(raw) != key_type.size:
            raise Util.DecoderUserInputError(f"key {key!r} is not a {key_type.get_source_str()}")
        return raw.ljust(Util.WORD_SIZE, b'\x00')

    if isinstance(key_type, ST.BoolType):
        if isinstance(key, str):
            if key.lower() not in ("true", "false"):
                raise Util.DecoderUserInputError(f"key {key!r} is not a bool")
            key = key.lower() == "true"
        return Util.int_to_big_endian(1 if key else 0)

    if isinstance(key_type, (ST.AddressType, ST.ContractType)):
        raw = Util.hex_to_bytes(key) if isinstance(key, str) else bytes(key)
        if len(raw) != Util.ADDRESS_SIZE:
            raise Util.DecoderUserInputError(f"key {key!r} is not an address")
        return raw.rjust(Util.WORD_SIZE, b'\x00')

    if isinstance(key_type, (ST.IntType, ST.EnumType)):
        int_type = key_type if isinstance(key_type, ST.IntType) else key_type.underlying_int_type()
        value = Util.parse_int_str(key) if isinstance(key, str) else int(key)
        if not int_type.fits(value) or (isinstance(key_type, ST.EnumType) and value >= len(key_type.members)):
            raise Util.DecoderUserInputError(f"key {key} does not fit in {key_type.get_source_str()}")
        return Util.int_to_big_endian(value & Util.MAX_UINT256)  # negative keys are sign extended to a word

    raise Util.UnsupportedTypeError(f"{key_type.get_source_str()} can't be a mapping key")


def mapping_entry_slot(mapping_slot: int, key_word: Union[bytes, bytearray]) -> int:
    """
    The slot of the value that the mapping declared at `mapping_slot` holds for the (encoded) key `key_word`
    """
    return Util.big_endian_to_int(Util.keccak256(bytes(key_word) + Util.int_to_big_endian(mapping_slot)))
