import random

import pytest

import hymap.region
from conftest import block_document, chunk_bytes, region_bytes, section_payload, simple_chunk
from hymap.chunk import DecodedChunk
from hymap.errors import DecompressionError, FormatError
from hymap.region import RegionFile, parse_region_coords


def test_region_constants():
    assert hymap.region.MAGIC == b'HytaleIndexedStorage'
    assert hymap.region.HEADER_SIZE == 32
    assert hymap.region.SECTOR_SIZE == 4096


def test_bad_magic_raises_format_error(tmp_path):
    path = tmp_path / "0.0.region.bin"
    path.write_bytes(region_bytes(chunks={0: simple_chunk()}, magic=b'NotHytaleStorage!!!!'))

    with pytest.raises(FormatError):
        RegionFile.open(str(path))

    region = RegionFile(str(path))
    with pytest.raises(FormatError):
        region.chunk_at(0, 0)


def test_short_file_raises_format_error(tmp_path):
    path = tmp_path / "0.0.region.bin"
    path.write_bytes(b'HytaleIndexedStorage\x00\x00')

    with pytest.raises(FormatError):
        RegionFile.open(str(path))


def test_header_fields(write_region):
    region = RegionFile.open(write_region(chunks={0: simple_chunk()}))
    header = region.header

    assert header.version == 1
    assert header.chunk_count == 1024
    assert header.index_table_size == 4096
    assert region.data_start == 4128
    assert len(region.index_table) == 1024


def test_single_chunk_decodes(write_region):
    region = RegionFile.open(write_region(chunks={0: simple_chunk(cells={(0, 0, 0): 2})}))
    chunk = region.chunk_at(0, 0)

    assert isinstance(chunk, DecodedChunk)
    assert chunk.height == 2
    assert chunk.block_type_at(0, 0, 0) == "Soil_Dirt"
    assert region.chunk_count == 1
    assert region.chunk_exists(0, 0)
    assert not region.chunk_exists(1, 0)


def test_absent_and_out_of_range_chunks_are_none(write_region):
    region = RegionFile(write_region(chunks={0: simple_chunk()}))

    assert region.chunk_at(3, 3) is None
    assert region.chunk_at(-1, 0) is None
    assert region.chunk_at(0, 32) is None
    assert region.chunk_at_index(1024) is None
    assert not region.chunk_exists(32, 0)


def test_multi_sector_chunk_and_later_positions(write_region):
    rng = random.Random(1)
    noise = bytes(rng.getrandbits(8) for _ in range(128 * 80))
    big = chunk_bytes(block_document(section_payload([("Rock_Stone", 1), ("Soil_Grass", 2)], noise)))
    path = write_region(chunks={0: big, 1023: simple_chunk(cells={(15, 0, 15): 1})})
    region = RegionFile(path)

    assert region.index_table[1023] > 2
    assert region.chunk_at(0, 0).height == 80
    last = region.chunk_at(31, 31)
    assert last.block_type_at(15, 0, 15) == "Rock_Stone"
    assert (last.local_x, last.local_z) == (31, 31)


def test_wrong_frame_magic_is_chunk_error(write_region):
    region = RegionFile.open(write_region(
        chunks={0: simple_chunk()},
        raw_sectors={5: (100, b'\x00\x00\x00\x00not zstd at all')},
    ))

    with pytest.raises(DecompressionError) as info:
        region.chunk_at(5, 0)
    assert info.value.index == 5
    assert region.chunk_at(0, 0) is not None


def test_corrupt_frame_body_is_chunk_error(write_region):
    region = RegionFile(write_region(raw_sectors={2: (100, b'\x28\xb5\x2f\xfd' + b'\xff' * 40)}))

    with pytest.raises(DecompressionError):
        region.chunk_at(2, 0)


def test_zero_compressed_size_is_chunk_error(tmp_path):
    data = bytearray(region_bytes(chunks={0: simple_chunk()}))
    # compressed size field of the first sector
    data[4128 + 4:4128 + 8] = b'\x00\x00\x00\x00'
    path = tmp_path / "0.0.region.bin"
    path.write_bytes(bytes(data))

    with pytest.raises(DecompressionError):
        RegionFile(str(path)).chunk_at(0, 0)


def test_compressed_size_past_end_of_file(tmp_path):
    data = bytearray(region_bytes(chunks={0: simple_chunk()}))
    data[4128 + 4:4128 + 8] = (10 ** 6).to_bytes(4, 'big')
    path = tmp_path / "0.0.region.bin"
    path.write_bytes(bytes(data))

    with pytest.raises(DecompressionError):
        RegionFile(str(path)).chunk_at(0, 0)


def test_each_chunk_skips_corrupt_sector(write_region):
    good = {i: simple_chunk(cells={(0, 0, 0): 1}) for i in (0, 1, 40, 1000)}
    region = RegionFile(write_region(chunks=good, raw_sectors={7: (64, b'JUNKJUNKJUNK')}))
    errors = []

    chunks = list(region.each_chunk(on_error=lambda index, error: errors.append((index, error))))

    assert [c.index for c in chunks] == [0, 1, 40, 1000]
    assert len(errors) == 1
    assert errors[0][0] == 7
    assert isinstance(errors[0][1], DecompressionError)


def test_each_chunk_logs_when_no_handler(write_region, caplog):
    region = RegionFile(write_region(chunks={0: simple_chunk()}, raw_sectors={3: (64, b'JUNK')}))

    with caplog.at_level("WARNING", logger="hymap.region"):
        indexes = [c.index for c in region.each_chunk()]

    assert indexes == [0]
    assert "Skipping chunk 3" in caplog.text
    assert sorted(region.chunks()) == [0]


def test_chunks_are_memoized(write_region, monkeypatch):
    region = RegionFile(write_region(chunks={0: simple_chunk()}, raw_sectors={1: (64, b'JUNK')}))
    calls = []
    original = hymap.region.sector_decompress

    def counting(*args, **kwargs):
        calls.append(args)
        return original(*args, **kwargs)

    monkeypatch.setattr(hymap.region, "sector_decompress", counting)

    first = region.chunk_at(0, 0)
    assert region.chunk_at(0, 0) is first
    assert len(calls) == 1

    for _ in range(2):
        with pytest.raises(DecompressionError):
            region.chunk_at(1, 0)


def test_truncated_index_table(tmp_path):
    data = region_bytes()[:32 + 40]
    path = tmp_path / "0.0.region.bin"
    path.write_bytes(data)
    region = RegionFile.open(str(path))

    assert len(region.index_table) == 10
    assert region.chunk_at(20, 0) is None
    assert list(region.each_chunk()) == []


@pytest.mark.parametrize("name,expected", [
    ("0.0.region.bin", (0, 0)),
    ("-3.7.region.bin", (-3, 7)),
    ("/saves/w/chunks/12.-40.region.bin", (12, -40)),
    ("junk.bin", (0, 0)),
])
def test_coordinates_from_filename(name, expected):
    assert parse_region_coords(name) == expected


def test_chunk_world_position(write_region):
    path = write_region(name="-1.2.region.bin", chunks={33: simple_chunk(cells={(2, 0, 3): 1})})
    region = RegionFile(path)
    chunk = region.chunk_at(1, 1)

    assert (region.x, region.z) == (-1, 2)
    assert (chunk.world_x, chunk.world_z) == (-512 + 16, 1024 + 16)
    assert chunk.block_at(2, 0, 3).world_position == (-512 + 18, 0, 1024 + 19)


def test_region_block_types_and_file_facts(write_region):
    region = RegionFile(write_region(chunks={
        0: simple_chunk(entries=[("Rock_Stone", 1)]),
        5: simple_chunk(entries=[("Soil_Grass", 1), ("Water_Source", 2)]),
    }))

    assert region.block_types() == ["Rock_Stone", "Soil_Grass", "Water_Source"]
    assert region.size > 4128
    assert region.filename == "0.0.region.bin"
    assert "Region (0, 0)" in str(region)


def frame_declaring(content_size):
    # single-segment frame header with an 8-byte content size, then an empty raw last block
    return b'\x28\xb5\x2f\xfd' + b'\xe0' + content_size.to_bytes(8, 'little') + b'\x01\x00\x00'


def test_frame_declaring_huge_size_is_skipped(write_region):
    region = RegionFile(write_region(
        chunks={0: simple_chunk(), 9: simple_chunk()},
        raw_sectors={3: (64, frame_declaring(2 ** 46))},
    ))
    errors = []

    chunks = list(region.each_chunk(on_error=lambda index, error: errors.append((index, error))))

    assert [c.index for c in chunks] == [0, 9]
    assert [index for index, _ in errors] == [3]
    assert isinstance(errors[0][1], DecompressionError)


def test_frame_size_must_match_sector_header(write_region):
    region = RegionFile(write_region(raw_sectors={1: (16, frame_declaring(200 * 1024 * 1024))}))

    with pytest.raises(DecompressionError, match="sector header 16"):
        region.chunk_at(1, 0)


def test_frame_size_over_configured_limit(write_region):
    size = 200 * 1024 * 1024
    region = RegionFile(write_region(raw_sectors={1: (size, frame_declaring(size))}))

    with pytest.raises(DecompressionError, match="limit is"):
        region.chunk_at(1, 0)
