import zstandard as zstd

from .errors import DecompressionError

ZSTD_MAGIC = b'\x28\xb5\x2f\xfd'
UNKNOWN_CONTENT_SIZE = -1


def has_frame_magic(data, pos=0):
    return data[pos:pos + 4] == ZSTD_MAGIC


def check_content_size(compressed, decompressed_size, max_output_size=None, index=None):
    """Reject frames whose declared content size disagrees with the sector.

    zstd allocates the frame's declared content size up front and ignores
    max_output_size, so a corrupt header has to be caught here.
    """
    try:
        content_size = zstd.frame_content_size(compressed)
    except zstd.ZstdError as e:
        raise DecompressionError(f"Chunk {index}: bad frame header: {e}", index=index) from e
    if content_size == UNKNOWN_CONTENT_SIZE:
        return None
    if decompressed_size and content_size != decompressed_size:
        raise DecompressionError(
            f"Chunk {index}: frame declares {content_size} bytes, sector header {decompressed_size}", index=index)
    if max_output_size is not None and content_size > max_output_size:
        raise DecompressionError(
            f"Chunk {index}: frame declares {content_size} bytes, limit is {max_output_size}", index=index)
    return content_size


def sector_decompress(compressed, decompressed_size, max_output_size=None, index=None):
    """Decode one zstd frame from a region sector.

    decompressed_size comes from the sector header; it bounds the output when
    the frame itself does not carry a content size.
    """
    if not has_frame_magic(compressed):
        raise DecompressionError(f"Chunk {index}: missing zstd frame magic", index=index)
    check_content_size(compressed, decompressed_size, max_output_size, index)
    limit = decompressed_size
    if max_output_size is not None and (not limit or limit > max_output_size):
        limit = max_output_size
    # ZstdDecompressor is not thread-safe, so each call gets its own
    dctx = zstd.ZstdDecompressor()
    try:
        return dctx.decompress(compressed, max_output_size=limit or 0)
    except zstd.ZstdError as e:
        raise DecompressionError(f"Chunk {index}: {e}", index=index) from e
