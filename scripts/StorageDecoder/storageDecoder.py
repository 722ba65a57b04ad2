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

"""
Decodes the value of a declared solidity type out of a snapshot of contract storage.

Every decode function takes the location at which the value starts and returns the decoded value together with
the location right after it, so that the caller can carry on with the next field/element/variable.
There are two ways for a decode to fail:
 * A decode abort - `None` is returned. The storage contents (e.g. a huge length field) or missing type
   information make the value not displayable. Only that value is lost.
 * An ImplementationError is raised. The type system and the decoder disagree about the layout (e.g. a value
   that does not fit in the word it supposedly starts in). These are bugs, never recovered from.
"""

from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple

from StorageDecoder import storageType as ST
from StorageDecoder import storageValues as SV
from StorageDecoder.storageConfig import DecoderConfig, get_default_config
from StorageDecoder.storageLocation import StorageLocation, next_word, keccak_of_slot, round_loc_to_type, \
    encode_mapping_key, mapping_entry_slot
from StorageDecoder.storageWords import WordStore, fetch_word, fetch_bytes
from Shared import decoderUtils as Util
from Shared.decoderUtils import decoder_logger

DecodeResult = Optional[Tuple[SV.DecodedValue, StorageLocation]]


@dataclass(frozen=True)
class DecodeContext:
    """
    Everything a decode reads besides the type and the location. Nothing in it is ever written.
    """
    storage: WordStore
    resolver: ST.TypeResolver
    config: DecoderConfig


byte1 = ST.IntType.of(8, False)
uint256 = ST.IntType.of(256, False)


def __check_fits_in_word(typ: ST.Type, size: int, loc: StorageLocation) -> None:
    if loc.end_offset_in_word < size:
        raise Util.ImplementationError(f"Can't decode {typ.get_source_str()} ({size} bytes) starting at offset "
                                       f"{loc.end_offset_in_word} in word {hex(loc.address)}")


def __check_fresh_word(typ: ST.Type, loc: StorageLocation) -> None:
    if not loc.is_fresh_word():
        raise Util.ImplementationError(f"Location of {typ.get_source_str()} doesn't start at the end of word "
                                       f"{hex(loc.address)} - instead at off {loc.end_offset_in_word}")


def __abort(reason: str) -> None:
    decoder_logger.warning(reason)
    return None


def decode_int(typ: ST.IntType, loc: StorageLocation, storage: WordStore) -> Tuple[SV.IntValue, StorageLocation]:
    """
    Decode a single integer of type `typ` from location `loc` in `storage`.
    Always succeeds, any bytes make a valid integer.
    """
    size = typ.n_bits // 8

    __check_fits_in_word(typ, size, loc)

    raw_bytes = fetch_bytes(loc.address, loc.end_offset_in_word - size, size, storage)

    res = Util.big_endian_to_int(raw_bytes)

    # Convert signed negative 2's complement values
    if typ.signed and (res & (1 << (typ.n_bits - 1))) != 0:
        # Mask out any 1's above the number's size
        res = res & ((1 << typ.n_bits) - 1)
        res = -((1 << typ.n_bits) - res)

    if not typ.fits(res):
        raise Util.ImplementationError(f"Decoded value {res} from {loc} doesn't fit in expected type "
                                       f"{typ.get_source_str()}")

    return SV.IntValue(res), loc.advance(size)


def decode_bool(loc: StorageLocation, storage: WordStore) -> Tuple[SV.BoolValue, StorageLocation]:
    val, next_loc = decode_int(byte1, loc, storage)

    return SV.BoolValue(val.value != 0), next_loc


def decode_enum(typ: ST.EnumType, loc: StorageLocation, storage: WordStore) -> Tuple[SV.EnumValue, StorageLocation]:
    val, next_loc = decode_int(typ.underlying_int_type(), loc, storage)
    member = typ.members[val.value] if val.value < len(typ.members) else None

    return SV.EnumValue(val.value, member), next_loc


def decode_fixed_bytes(typ: ST.FixedBytesType, loc: StorageLocation,
                       storage: WordStore) -> Tuple[SV.FixedBytesValue, StorageLocation]:
    __check_fits_in_word(typ, typ.size, loc)

    raw_bytes = fetch_bytes(loc.address, loc.end_offset_in_word - typ.size, typ.size, storage)

    return SV.FixedBytesValue(raw_bytes), loc.advance(typ.size)


def decode_address(typ: ST.Type, loc: StorageLocation, storage: WordStore) -> Tuple[SV.AddressValue, StorageLocation]:
    __check_fits_in_word(typ, Util.ADDRESS_SIZE, loc)

    raw_bytes = fetch_bytes(loc.address, loc.end_offset_in_word - Util.ADDRESS_SIZE, Util.ADDRESS_SIZE, storage)

    return SV.AddressValue(raw_bytes), loc.advance(Util.ADDRESS_SIZE)


def decode_struct(typ: ST.StructType, loc: StorageLocation, ctx: DecodeContext, depth: int) -> DecodeResult:
    """
    The members of a struct are laid out directly from the struct's slot, packed like consecutive variables.
    The returned cursor is rounded up to a fresh word after the last member, since the compiler always starts
    whatever follows a struct at a fresh word. A cursor left mid-word by the last member is never returned.
    """
    __check_fresh_word(typ, loc)

    res = SV.StructValue(())

    for member in typ.members:
        member_t = ctx.resolver.member_type(member)

        loc = round_loc_to_type(loc, member_t, ctx.resolver)

        member_val = decode_value(member_t, loc, ctx, depth + 1)

        if member_val is None:
            return None

        val, loc = member_val
        res = res.with_field(member.name, val)

    if not loc.is_fresh_word():
        loc = next_word(loc)

    return res, loc


def decode_bytes(typ: ST.Type, loc: StorageLocation, ctx: DecodeContext) -> Optional[Tuple[bytes, StorageLocation]]:
    """
    Up to 31 bytes are stored in the slot itself, with length * 2 in the lowest byte.
    Longer contents live from keccak256(slot) on, and the slot holds length * 2 + 1.
    """
    __check_fresh_word(typ, loc)

    word = fetch_word(loc.address, ctx.storage)
    l_byte = word[Util.WORD_SIZE - 1]

    if l_byte % 2 == 0:
        length = l_byte // 2

        if length > Util.WORD_SIZE - 1:
            return __abort(f"{typ.get_source_str()} at {hex(loc.address)} has short length {length}, more than the "
                           f"limit of {Util.WORD_SIZE - 1}")

        return word[:length], next_word(loc)

    raw_len = Util.big_endian_to_int(word)
    length = (raw_len - 1) // 2

    if length > ctx.config.max_decode_length:
        return __abort(f"{typ.get_source_str()} at {hex(loc.address)} has length {length}, more than the limit of "
                       f"{ctx.config.max_decode_length}")

    res = fetch_bytes(keccak_of_slot(loc.address), 0, length, ctx.storage)

    return res, next_word(loc)


def decode_string(typ: ST.Type, loc: StorageLocation, ctx: DecodeContext) -> DecodeResult:
    res = decode_bytes(typ, loc, ctx)

    if res is None:
        return None

    raw_bytes, next_loc = res
    # bytes are not validated, anything that isn't utf-8 is shown with replacement characters
    return SV.StringValue(raw_bytes.decode("utf-8", errors="replace")), next_loc


def decode_array(typ: ST.ArrayType, loc: StorageLocation, ctx: DecodeContext, depth: int) -> DecodeResult:
    """
    A dynamic array keeps its length in its slot and its elements from keccak256(slot) on.
    A static array keeps its elements from its slot on.
    Either way, the next variable starts at the word after the array's slot.
    """
    if typ.length is None:
        len_val, _ = decode_int(uint256, loc, ctx.storage)
        num_len = len_val.value

        if num_len > ctx.config.max_decode_length:
            return __abort(f"{typ.get_source_str()} at {hex(loc.address)} has length {num_len}, more than the "
                           f"limit of {ctx.config.max_decode_length}")

        contents_loc = StorageLocation(keccak_of_slot(loc.address))
    else:
        if typ.length > ctx.config.max_decode_length:
            return __abort(f"{typ.get_source_str()} has length {typ.length}, more than the limit of "
                           f"{ctx.config.max_decode_length}")

        num_len = typ.length
        contents_loc = loc

    elements = []

    for _ in range(num_len):
        el_res = decode_value(typ.elementType, contents_loc, ctx, depth + 1)

        if el_res is None:
            return None

        el_val, el_loc = el_res
        elements.append(el_val)

        contents_loc = round_loc_to_type(el_loc, typ.elementType, ctx.resolver)

    return SV.ArrayValue(tuple(elements)), next_word(loc)


def decode_value(typ: ST.Type, loc: StorageLocation, ctx: DecodeContext, depth: int = 0) -> DecodeResult:
    """
    Decode a value of type `typ` starting at `loc`.
    Reference types (arrays, bytes, strings, structs) are decoded as storage pointers: `loc` is their slot.
    @return: None when the decode aborts, otherwise the value and the location right after it
    """
    if depth > ctx.config.max_nesting_depth:
        return __abort(f"Nesting of {typ.get_source_str()} at {loc} is deeper than the limit of "
                       f"{ctx.config.max_nesting_depth}")

    decoder_logger.debug(f"decoding {typ.get_source_str()} at {loc}")

    try:
        if isinstance(typ, ST.IntType):
            return decode_int(typ, loc, ctx.storage)

        if isinstance(typ, ST.BoolType):
            return decode_bool(loc, ctx.storage)

        if isinstance(typ, ST.FixedBytesType):
            return decode_fixed_bytes(typ, loc, ctx.storage)

        if isinstance(typ, (ST.AddressType, ST.ContractType)):
            return decode_address(typ, loc, ctx.storage)

        if isinstance(typ, ST.EnumType):
            return decode_enum(typ, loc, ctx.storage)

        if isinstance(typ, ST.UserDefinedValueType):
            return decode_value(ctx.resolver.underlying_type(typ), loc, ctx, depth)

        if isinstance(typ, ST.PackedBytes):
            res = decode_bytes(typ, loc, ctx)
            return (SV.BytesValue(res[0]), res[1]) if res is not None else None

        if isinstance(typ, ST.StringType):
            return decode_string(typ, loc, ctx)

        if isinstance(typ, ST.ArrayType):
            return decode_array(typ, loc, ctx, depth)

        if isinstance(typ, ST.StructType):
            return decode_struct(typ, loc, ctx, depth)

        if isinstance(typ, ST.MappingType):
            # Mapping keys can't be enumerated from storage, only entries of known keys can be decoded
            raise Util.UnsupportedTypeError(f"Can't decode the contents of {typ.get_source_str()} at {loc}, "
                                            f"decode its entries by key instead")
    except Util.TypeResolutionError as e:
        return __abort(f"Could not resolve the type of a part of {typ.get_source_str()} at {loc}: {e}")

    raise Util.UnsupportedTypeError(f"No storage decoding for type {typ.get_source_str()}")


def __entry_loc(typ: ST.MappingType, loc: StorageLocation, key: Any, ctx: DecodeContext) -> Optional[StorageLocation]:
    try:
        key_word = encode_mapping_key(typ.domain, key, ctx.resolver)
    except Util.TypeResolutionError as e:
        return __abort(f"Could not resolve the key type of {typ.get_source_str()} at {loc}: {e}")

    entry_loc = StorageLocation(mapping_entry_slot(loc.address, key_word))
    decoder_logger.debug(f"entry {key!r} of {typ.get_source_str()} at {loc} lives at {entry_loc}")
    return entry_loc


def decode_mapping_path(typ: ST.MappingType, loc: StorageLocation, keys: Sequence[Any],
                        ctx: DecodeContext) -> DecodeResult:
    """
    Decode the value that the (possibly nested) mapping whose slot is at `loc` holds for the key path `keys`:
    one key per level of nesting, outermost first.
    The returned location is the one after the mapping's own slot.
    @raise DecoderUserInputError if the number of keys does not match the nesting of the mapping
    """
    __check_fresh_word(typ, loc)

    key_types = typ.key_types()
    if len(keys) != len(key_types):
        raise Util.DecoderUserInputError(f"{typ.get_source_str()} takes {len(key_types)} key(s), got {len(keys)}: "
                                         f"{', '.join(repr(k) for k in keys)}")

    entry_loc = loc
    level: ST.Type = typ
    for key in keys:
        assert isinstance(level, ST.MappingType)
        next_entry = __entry_loc(level, entry_loc, key, ctx)
        if next_entry is None:
            return None
        entry_loc, level = next_entry, level.codomain

    res = decode_value(level, entry_loc, ctx, len(keys))

    if res is None:
        return None

    return res[0], next_word(loc)


def decode_mapping_entry(typ: ST.MappingType, loc: StorageLocation, key: Any, ctx: DecodeContext) -> DecodeResult:
    """
    Decode the value that the mapping whose slot is at `loc` holds for the given `key`.
    A nested mapping needs one key per level, see decode_mapping_path.
    """
    return decode_mapping_path(typ, loc, [key], ctx)


def decode_storage_value(typ: ST.Type, loc: StorageLocation, storage: WordStore,
                         resolver: Optional[ST.TypeResolver] = None,
                         config: Optional[DecoderConfig] = None) -> DecodeResult:
    """
    The entry point for decoding a single variable.
    @param resolver: resolves struct members and value types. If None, only types built without an AST decode.
    @param config: if None, the process-wide default configuration is used
    """
    ctx = DecodeContext(storage,
                        resolver if resolver is not None else ST.TypeResolver(),
                        config if config is not None else get_default_config())
    return decode_value(typ, loc, ctx)
