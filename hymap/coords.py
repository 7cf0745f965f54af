"""Conversions between world, region, chunk-local and block-local coordinates.

Python's ``//`` and ``%`` floor toward negative infinity, so region -1 covers
world -512..-1 without any special casing.
"""
from .errors import OutOfRangeError

CHUNK_SIZE = 16          # blocks per chunk edge
REGION_CHUNKS = 32       # chunks per region edge
REGION_SIZE = CHUNK_SIZE * REGION_CHUNKS
CHUNKS_PER_REGION = REGION_CHUNKS * REGION_CHUNKS


def world_to_region(x, z):
    return x // REGION_SIZE, z // REGION_SIZE


def world_to_chunk_local(x, z):
    return (x % REGION_SIZE) // CHUNK_SIZE, (z % REGION_SIZE) // CHUNK_SIZE


def world_to_block_local(x, z):
    return x % CHUNK_SIZE, z % CHUNK_SIZE


def region_origin(region_x, region_z):
    """World coordinates of the north-west block of a region."""
    return region_x * REGION_SIZE, region_z * REGION_SIZE


def in_chunk_range(local_x, local_z):
    return 0 <= local_x < REGION_CHUNKS and 0 <= local_z < REGION_CHUNKS


def check_chunk_local(local_x, local_z):
    if not in_chunk_range(local_x, local_z):
        raise OutOfRangeError(f"Chunk-local coordinates ({local_x}, {local_z}) outside 0..{REGION_CHUNKS - 1}")
    return local_x, local_z


def chunk_index(local_x, local_z):
    """Flat index into the region sector table, or None when out of range."""
    if not in_chunk_range(local_x, local_z):
        return None
    return local_z * REGION_CHUNKS + local_x


def chunk_local_from_index(index):
    return index % REGION_CHUNKS, index // REGION_CHUNKS
