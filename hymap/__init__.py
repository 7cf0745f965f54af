from .block import Block, BlockType
from .chunk import BlockSection, DecodedChunk, SectionCandidate, find_block_sections, parse_section, select_section
from .config import load_config, setup_logging
from .coords import world_to_block_local, world_to_chunk_local, world_to_region
from .errors import (
    AmbiguousSectionWarning,
    DecompressionError,
    FormatError,
    HymapError,
    NotFoundError,
    OutOfRangeError,
    TruncatedDataError,
)
from .prefab import PaletteEntry, Prefab, find_prefabs
from .region import RegionFile, RegionHeader
from .world import WorldMap

__version__ = "0.1.0"
