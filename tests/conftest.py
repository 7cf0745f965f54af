import struct

import pytest
import zstandard as zstd

from hymap.chunk import BLOCK_TAG, DATA_TAG
from hymap.region import MAGIC, SECTOR_SIZE

SECTION_HEADER = b'\x00\x00\x00\x0a\x01\x00'


def section_payload(entries, block_data, count=None):
    """Data field contents: 9-byte header, palette entries, packed indices."""
    count = len(entries) if count is None else count
    out = bytearray(SECTION_HEADER + bytes([count]) + b'\x00\x00')
    for name, index in entries:
        raw = name.encode()
        out += bytes([len(raw)]) + raw + bytes([0, 0, index, 0])
    out += bytes(block_data)
    return bytes(out)


def block_document(payload, declared_size=None, filler=b'\x10Version\x00\x01\x00\x00\x00'):
    size = len(payload) if declared_size is None else declared_size
    data_field = DATA_TAG + struct.pack('<I', size) + b'\x00' + payload
    return BLOCK_TAG + struct.pack('<I', len(filler) + len(data_field) + 5) + filler + data_field + b'\x00'


def chunk_bytes(*documents):
    body = b''.join(documents)
    return struct.pack('<I', len(body) + 14) + b'\x04Sections\x00' + body + b'\x00'


def nibble_layers(height, cells=None):
    """4-bit block data; cells maps (x, y, z) to a raw palette index."""
    data = bytearray(128 * height)
    for (x, y, z), value in (cells or {}).items():
        block_index = z * 16 + x
        pos = y * 128 + block_index // 2
        if block_index % 2 == 0:
            data[pos] = (data[pos] & 0xF0) | value
        else:
            data[pos] = (data[pos] & 0x0F) | (value << 4)
    return bytes(data)


def simple_chunk(entries=(("Rock_Stone", 1), ("Soil_Dirt", 2), ("Soil_Grass", 3)), height=2, cells=None):
    return chunk_bytes(block_document(section_payload(list(entries), nibble_layers(height, cells))))


def region_bytes(chunks=None, raw_sectors=None, index_table_size=4096, magic=MAGIC):
    """Region file image.

    chunks maps a chunk index to decompressed chunk bytes; raw_sectors maps
    an index to (decompressed_size, payload) written without compression.
    """
    sectors = {}
    compressor = zstd.ZstdCompressor()
    for index, data in (chunks or {}).items():
        sectors[index] = (len(data), compressor.compress(data))
    sectors.update(raw_sectors or {})

    table = [0] * (index_table_size // 4)
    body = bytearray()
    next_sector = 1
    for index in sorted(sectors):
        decompressed_size, payload = sectors[index]
        table[index] = next_sector
        blob = struct.pack('>II', decompressed_size, len(payload)) + payload
        slots = -(-len(blob) // SECTOR_SIZE)
        body += blob.ljust(slots * SECTOR_SIZE, b'\x00')
        next_sector += slots

    header = magic + struct.pack('>III', 1, len(table), index_table_size)
    return header + struct.pack(f'>{len(table)}I', *table) + bytes(body)


def prefab_bytes(entries, palette_offset=21, count=None):
    count = len(entries) if count is None else count
    header = struct.pack('>HH', palette_offset, 10) + b'\x00' * 10 + struct.pack('>H', count)
    header = header.ljust(palette_offset, b'\x00')
    body = bytearray()
    for name, flags, block_id, extra in entries:
        raw = name.encode()
        body += bytes([len(raw)]) + raw + struct.pack('>HHB', flags, block_id, extra)
    return header + bytes(body)


@pytest.fixture
def write_region(tmp_path):
    def write(name="0.0.region.bin", directory=None, **kwargs):
        target = (directory or tmp_path) / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(region_bytes(**kwargs))
        return str(target)
    return write
