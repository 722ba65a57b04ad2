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
from dataclasses import dataclass, replace

from Shared import decoderUtils as Util

conf_logger = logging.getLogger("conf")


@dataclass(frozen=True)
class DecoderConfig:
    """
    @param max_decode_length: the most elements (or bytes) a dynamic container, or a fixed size array, may have for
        us to decode it. Anything longer aborts the decode, it is most likely a corrupted length field.
    @param max_nesting_depth: the deepest nesting of composite values (structs in arrays in structs...) we follow
        before aborting
    """
    max_decode_length: int = Util.DEFAULT_MAX_DECODE_LENGTH
    max_nesting_depth: int = Util.DEFAULT_MAX_NESTING_DEPTH

    def __post_init__(self) -> None:
        if self.max_decode_length < 0:
            raise Util.DecoderUserInputError(f"max_decode_length must be non-negative, got {self.max_decode_length}")
        if self.max_nesting_depth <= 0:
            raise Util.DecoderUserInputError(f"max_nesting_depth must be positive, got {self.max_nesting_depth}")

    def with_overrides(self, **kwargs: int) -> 'DecoderConfig':
        return replace(self, **kwargs)


_default_config = DecoderConfig()


def get_default_config() -> DecoderConfig:
    return _default_config


def set_default_config(config: DecoderConfig) -> None:
    """
    Sets the process-wide configuration used by decodes that are not given one explicitly
    """
    global _default_config
    conf_logger.debug(f"setting the default decoder configuration to {config}")
    _default_config = config
