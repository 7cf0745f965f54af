"""Reader for ``X.Z.region.bin`` files.

Layout::

    header (32 bytes)
        "HytaleIndexedStorage"      20 bytes magic
        version                     4 bytes BE
        chunk count                 4 bytes BE (1024, 32x32 chunks)
        index table size            4 bytes BE (4096)
    index table
        one BE uint32 per chunk, the 1-based sector holding it or 0
    data
        4096-byte sectors, each [decompressed size 4B BE][compressed size 4B BE][zstd frame]
"""
import os
import re
import logging
import struct
from dataclasses import dataclass
from datetime import datetime
from functools import cached_property

from .chunk import DecodedChunk
from .config import resolve_config
from .coords import CHUNKS_PER_REGION, chunk_index
from .decompress import has_frame_magic, sector_decompress
from .errors import DecompressionError, FormatError, TruncatedDataError

logger = logging.getLogger("hymap.region")

MAGIC = b'HytaleIndexedStorage'
HEADER_SIZE = 32
SECTOR_SIZE = 4096
SECTOR_HEADER_SIZE = 8

FILENAME_PATTERN = re.compile(r'^(-?\d+)\.(-?\d+)\.region\.bin$')


@dataclass(frozen=True)
class RegionHeader:
    version: int
    chunk_count: int
    index_table_size: int

    @property
    def data_start(self):
        return HEADER_SIZE + self.index_table_size


def parse_region_coords(filename):
    match = FILENAME_PATTERN.match(os.path.basename(filename))
    if not match:
        return 0, 0
    return int(match.group(1)), int(match.group(2))


def parse_header(data):
    if data[:len(MAGIC)] != MAGIC:
        raise FormatError("Invalid region file magic")
    if len(data) < HEADER_SIZE:
        raise FormatError(f"Region header truncated: {len(data)} of {HEADER_SIZE} bytes")
    version, chunk_count, index_table_size = struct.unpack_from('>III', data, len(MAGIC))
    return RegionHeader(version, chunk_count, index_table_size)


def parse_index_table(data, header):
    entries = header.index_table_size // 4
    available = max(0, (len(data) - HEADER_SIZE) // 4)
    if available < entries:
        logger.warning(f"Index table truncated: {available} of {entries} entries present")
        entries = available
    return struct.unpack_from(f'>{entries}I', data, HEADER_SIZE)


class RegionFile:
    def __init__(self, path, config=None):
        self.path = path
        self.config = resolve_config(config)
        self.x, self.z = parse_region_coords(path)
        self._chunks = {}
        self._failures = {}

    @classmethod
    def open(cls, path, config=None):
        """Read the file and validate its header right away."""
        region = cls(path, config)
        region.header
        return region

    @property
    def filename(self):
        return os.path.basename(self.path)

    @property
    def size(self):
        return os.path.getsize(self.path)

    @property
    def size_mb(self):
        return round(self.size / 1024 / 1024, 2)

    @property
    def modified_at(self):
        return datetime.fromtimestamp(os.path.getmtime(self.path))

    @cached_property
    def data(self):
        with open(self.path, 'rb') as f:
            return f.read()

    @cached_property
    def header(self):
        return parse_header(self.data)

    @property
    def data_start(self):
        return self.header.data_start

    @cached_property
    def index_table(self):
        return parse_index_table(self.data, self.header)

    @property
    def chunk_count(self):
        return sum(1 for sector in self.index_table if sector > 0)

    def sector_for(self, index):
        if index is None or not 0 <= index < min(CHUNKS_PER_REGION, len(self.index_table)):
            return 0
        return self.index_table[index]

    def chunk_exists(self, local_x, local_z):
        return self.sector_for(chunk_index(local_x, local_z)) > 0

    def chunk_at(self, local_x, local_z):
        """Decoded chunk at region-local chunk coordinates.

        Returns None when nothing is stored there and raises
        DecompressionError when the sector is corrupt.
        """
        return self.chunk_at_index(chunk_index(local_x, local_z))

    def chunk_at_index(self, index):
        if self.sector_for(index) == 0:
            return None
        chunk = self._chunks.get(index)
        if chunk is not None:
            return chunk
        failure = self._failures.get(index)
        if failure is not None:
            raise failure
        try:
            chunk = DecodedChunk(self._read_sector(index), index=index, region=self, config=self.config)
        except (DecompressionError, TruncatedDataError) as e:
            self._failures.setdefault(index, e)
            raise
        return self._chunks.setdefault(index, chunk)

    def _read_sector(self, index):
        sector = self.index_table[index]
        data = self.data
        zstd_pos = self.data_start + SECTOR_HEADER_SIZE + (sector - 1) * SECTOR_SIZE

        if zstd_pos + 4 > len(data) or not has_frame_magic(data, zstd_pos):
            raise DecompressionError(f"Chunk {index}: no zstd frame at offset {zstd_pos}", index=index)

        decompressed_size, compressed_size = struct.unpack_from('>II', data, zstd_pos - SECTOR_HEADER_SIZE)
        if compressed_size == 0:
            raise DecompressionError(f"Chunk {index}: empty sector", index=index)
        if zstd_pos + compressed_size > len(data):
            raise DecompressionError(
                f"Chunk {index}: {compressed_size} compressed bytes at {zstd_pos} run past end of file", index=index)

        return sector_decompress(
            data[zstd_pos:zstd_pos + compressed_size],
            decompressed_size,
            max_output_size=self.config["max_decompressed_size"],
            index=index,
        )

    def each_chunk(self, on_error=None):
        """Yield every decodable chunk in index order.

        A corrupt chunk is handed to on_error(index, error) when given,
        otherwise logged, and iteration carries on.
        """
        for index, sector in enumerate(self.index_table[:CHUNKS_PER_REGION]):
            if sector == 0:
                continue
            try:
                chunk = self.chunk_at_index(index)
            except (DecompressionError, TruncatedDataError) as e:
                if on_error is not None:
                    on_error(index, e)
                else:
                    logger.warning(f"Skipping chunk {index} in {self.filename}: {e}")
                continue
            if chunk is not None:
                yield chunk

    def chunks(self):
        return {chunk.index: chunk for chunk in self.each_chunk()}

    def block_types(self):
        types = set()
        for chunk in self.each_chunk():
            types.update(chunk.block_types())
        return sorted(types)

    def __str__(self):
        return f"Region ({self.x}, {self.z}) - {self.size_mb} MB, {self.chunk_count} chunks"

    def __repr__(self):
        return f"<RegionFile x={self.x} z={self.z} path={self.path!r}>"
