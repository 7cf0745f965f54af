"""Block data inside a decompressed chunk.

A chunk is a tagged binary document. Terrain lives in one or more
``Block`` sub-documents, each holding a ``Data`` binary field laid out as::

    header (9 bytes)  00 00 00 0a 01 00 [palette_count] 00 00
    palette entries   [name length 1B] [name] [meta 4B, palette index at byte 2]
    block data        packed palette indices, one 16x16 layer after another

Palettes of up to 16 entries pack two blocks per byte (low nibble first),
larger palettes use one byte per block.
"""
import re
import logging
import warnings
from dataclasses import dataclass
from functools import cached_property

from .block import Block, BlockType, is_empty_id
from .config import resolve_config
from .coords import CHUNK_SIZE, REGION_SIZE, chunk_local_from_index
from .errors import AmbiguousSectionWarning, TruncatedDataError
from .reader import ByteReader

logger = logging.getLogger("hymap.chunk")

BLOCK_TAG = b'\x03Block\x00'
DATA_TAG = b'\x05Data\x00'
DATA_SIZE_OFFSET = 6
DATA_PAYLOAD_OFFSET = 11

PALETTE_COUNT_OFFSET = 6
PALETTE_ENTRIES_OFFSET = 9
PALETTE_META_SIZE = 4
PALETTE_INDEX_BYTE = 2
MIN_SECTION_SIZE = 21

LAYER_AREA = CHUNK_SIZE * CHUNK_SIZE
NIBBLE_PALETTE_LIMIT = 16

SURFACE_NAMES = re.compile(rb'Soil_Grass|Soil_Dirt(?!_)|Soil_Pathway')
BLOCK_NAMES = re.compile(
    rb'(?:Rock|Soil|Water|Plant|Wood|Ore|Sand|Stone|Env|Air|Grass|Snow|Ice|Lava|Clay|Metal|Crystal|Fungi)_[A-Za-z_0-9]+')

ASCII_LEGEND = (
    ("Grass", "G"),
    ("Dirt", "D"),
    ("Stone", "S"),
    ("Rock", "R"),
    ("Water", "~"),
    ("Sand", "."),
    ("Wood", "W"),
    ("Plant", "P"),
)


@dataclass(frozen=True)
class SectionCandidate:
    block_offset: int
    data_offset: int
    size: int
    has_surface_blocks: bool = False

    @property
    def payload_offset(self):
        return self.data_offset + DATA_PAYLOAD_OFFSET


def find_block_sections(data, window=100, probe_bytes=500):
    """All Block/Data pairs in scan order. Zero-sized ones are dropped."""
    reader = ByteReader(data)
    candidates = []
    pos = 0
    while True:
        block_offset = reader.find(BLOCK_TAG, pos)
        if block_offset == -1:
            break
        pos = block_offset + 1

        # Data tag must start within the first `window` bytes after the Block tag
        data_offset = reader.find(DATA_TAG, block_offset, block_offset + window - 1 + len(DATA_TAG))
        if data_offset == -1:
            continue

        reader.seek(data_offset + DATA_SIZE_OFFSET)
        try:
            size = reader.read_u32_le()
        except TruncatedDataError:
            logger.debug(f"Data tag at {data_offset} has no size field")
            break
        if size == 0:
            continue

        start = data_offset + DATA_PAYLOAD_OFFSET
        probe = data[start:start + min(size, probe_bytes)]
        candidates.append(SectionCandidate(
            block_offset=block_offset,
            data_offset=data_offset,
            size=size,
            has_surface_blocks=SURFACE_NAMES.search(probe) is not None,
        ))
    return candidates


def select_section(candidates):
    """Pick the section block queries are answered from.

    Sections appear bottom to top, so the last one holding grass, dirt or
    pathway blocks is the terrain surface. Without any, the largest section
    wins (earliest on a tie). This is inferred from observed saves rather than
    any documented layout.
    """
    if not candidates:
        return None
    surface = [c for c in candidates if c.has_surface_blocks]
    if surface:
        return surface[-1]
    return max(candidates, key=lambda c: c.size)


class BlockSection:
    def __init__(self, palette, block_data):
        self.palette = palette
        self.block_data = block_data

    @property
    def bits_per_block(self):
        return 4 if len(self.palette) <= NIBBLE_PALETTE_LIMIT else 8

    @property
    def bytes_per_layer(self):
        return LAYER_AREA * self.bits_per_block // 8

    @property
    def height(self):
        return len(self.block_data) // self.bytes_per_layer

    def raw_index_at(self, x, y, z):
        if not (0 <= x < CHUNK_SIZE and 0 <= z < CHUNK_SIZE and 0 <= y < self.height):
            return None
        block_index = z * CHUNK_SIZE + x
        if self.bits_per_block == 4:
            byte = self.block_data[y * self.bytes_per_layer + block_index // 2]
            return byte & 0x0F if block_index % 2 == 0 else byte >> 4
        return self.block_data[y * self.bytes_per_layer + block_index]

    def type_at(self, x, y, z):
        index = self.raw_index_at(x, y, z)
        if not index:
            return None
        return self.palette.get(index)

    def __repr__(self):
        return f"<BlockSection palette={len(self.palette)} bits={self.bits_per_block} height={self.height}>"


def parse_section(data, candidate, max_palette_entries=64):
    payload = data[candidate.payload_offset:candidate.payload_offset + candidate.size]
    if len(payload) < candidate.size:
        logger.debug(f"Section at {candidate.data_offset} truncated: {len(payload)} of {candidate.size} bytes")
    if len(payload) < MIN_SECTION_SIZE:
        return None

    reader = ByteReader(payload, PALETTE_COUNT_OFFSET)
    count = reader.read_u8()
    if count == 0 or count > max_palette_entries:
        logger.debug(f"Section at {candidate.data_offset}: implausible palette count {count}")
        return None

    reader.seek(PALETTE_ENTRIES_OFFSET)
    palette = {}
    for _ in range(count):
        entry_start = reader.pos
        try:
            length = reader.read_u8()
            if length == 0:
                reader.seek(entry_start)
                break
            name = reader.read_bytes(length)
            meta = reader.read_bytes(PALETTE_META_SIZE)
        except TruncatedDataError as e:
            logger.debug(f"Palette cut short after {len(palette)} entries: {e}")
            reader.seek(entry_start)
            break
        index = meta[PALETTE_INDEX_BYTE]
        # 0 is always air and never stored
        if index:
            palette[index] = name.decode('utf-8', 'replace')

    block_data = payload[reader.pos:]
    if not block_data:
        return None
    return BlockSection(palette, block_data)


class DecodedChunk:
    """Decompressed bytes of one chunk plus lazily decoded block data."""

    def __init__(self, data, index=None, region=None, config=None):
        self.data = data
        self.index = index
        self.region = region
        self.config = resolve_config(config)
        self._block_types = {}

    @property
    def size(self):
        return len(self.data)

    @property
    def local_x(self):
        return None if self.index is None else chunk_local_from_index(self.index)[0]

    @property
    def local_z(self):
        return None if self.index is None else chunk_local_from_index(self.index)[1]

    @property
    def world_x(self):
        if self.region is None or self.local_x is None:
            return None
        return self.region.x * REGION_SIZE + self.local_x * CHUNK_SIZE

    @property
    def world_z(self):
        if self.region is None or self.local_z is None:
            return None
        return self.region.z * REGION_SIZE + self.local_z * CHUNK_SIZE

    @cached_property
    def section_candidates(self):
        return tuple(find_block_sections(
            self.data,
            window=self.config["section_window"],
            probe_bytes=self.config["surface_probe_bytes"],
        ))

    @cached_property
    def block_section(self):
        candidates = self.section_candidates
        chosen = select_section(candidates)
        if chosen is None:
            return None
        if len(candidates) > 1:
            message = (f"Chunk {self.index}: {len(candidates)} block sections, "
                       f"using the one at offset {chosen.data_offset}")
            logger.debug(message)
            warnings.warn(message, AmbiguousSectionWarning, stacklevel=2)
        section = parse_section(self.data, chosen, self.config["max_palette_entries"])
        if section is None:
            logger.debug(f"Chunk {self.index}: selected section has no usable block data")
        return section

    @property
    def palette(self):
        section = self.block_section
        return dict(section.palette) if section else {}

    @property
    def height(self):
        section = self.block_section
        return section.height if section else 0

    def raw_index_at(self, x, y, z):
        section = self.block_section
        return section.raw_index_at(x, y, z) if section else None

    def block_type_at(self, x, y, z):
        """Block-type id at chunk-local coordinates, or None for air and misses."""
        section = self.block_section
        return section.type_at(x, y, z) if section else None

    def _block_type(self, type_id):
        block_type = self._block_types.get(type_id)
        if block_type is None:
            block_type = self._block_types.setdefault(type_id, BlockType(type_id))
        return block_type

    def block_at(self, x, y, z):
        type_id = self.block_type_at(x, y, z)
        if type_id is None:
            return None
        return Block(self._block_type(type_id), x, y, z, chunk=self)

    def surface_at(self, x, z):
        """Highest non-empty block in the column, or None."""
        section = self.block_section
        if section is None:
            return None
        for y in range(section.height - 1, -1, -1):
            type_id = section.type_at(x, y, z)
            if type_id is None or is_empty_id(type_id):
                continue
            return Block(self._block_type(type_id), x, y, z, chunk=self)
        return None

    def surface_blocks(self):
        return [[self.surface_at(x, z) for x in range(CHUNK_SIZE)] for z in range(CHUNK_SIZE)]

    def top_down_view(self):
        return [[block.id if block else None for block in row] for row in self.surface_blocks()]

    def to_ascii_map(self):
        if self.block_section is None:
            return "No block data"
        lines = []
        for row in self.top_down_view():
            lines.append("".join(_ascii_cell(type_id) for type_id in row))
        return "\n".join(lines)

    @cached_property
    def _block_names(self):
        return tuple(sorted({m.decode('ascii') for m in BLOCK_NAMES.findall(self.data)}))

    def block_types(self):
        return list(self._block_names)

    def has_block(self, type_id):
        return type_id in self._block_names

    def has_water(self):
        return any("Water" in t for t in self._block_names)

    def has_vegetation(self):
        return any("Plant" in t or "Grass" in t or "Tree" in t for t in self._block_names)

    def terrain_type(self):
        names = self._block_names
        if self.has_water():
            return "water"
        if any("Sand" in t for t in names):
            return "desert"
        if any("Snow" in t or "Ice" in t for t in names):
            return "snow"
        if self.has_vegetation():
            return "grassland"
        return "rocky"

    def __str__(self):
        position = f"({self.local_x}, {self.local_z})" if self.index is not None else "#?"
        return f"Chunk {position} - {self.size} bytes, {len(self._block_names)} block types"

    def __repr__(self):
        return f"<DecodedChunk index={self.index} size={self.size}>"


def _ascii_cell(type_id):
    if type_id is None or type_id == "Empty":
        return " "
    for marker, char in ASCII_LEGEND:
        if marker in type_id:
            return char
    return "?"
