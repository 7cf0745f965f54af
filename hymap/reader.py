import struct

from .errors import TruncatedDataError

_U16_BE = struct.Struct('>H')
_U32_BE = struct.Struct('>I')
_U32_LE = struct.Struct('<I')


class ByteReader:
    """Cursor over an immutable byte buffer.

    Every read either returns the full amount asked for or raises
    TruncatedDataError and leaves the cursor where it was.
    """

    def __init__(self, data, pos=0, end=None):
        self.data = data
        self.pos = pos
        self.end = len(data) if end is None else min(end, len(data))

    def remaining(self):
        return max(0, self.end - self.pos)

    def seek(self, pos):
        self.pos = pos

    def skip(self, n):
        self._require(n)
        self.pos += n

    def _require(self, n):
        if n < 0 or self.pos + n > self.end:
            raise TruncatedDataError(
                f"Need {n} bytes at offset {self.pos}, have {self.remaining()}",
                offset=self.pos, needed=n, available=self.remaining())

    def read_bytes(self, n):
        self._require(n)
        value = bytes(self.data[self.pos:self.pos + n])
        self.pos += n
        return value

    def read_u8(self):
        self._require(1)
        value = self.data[self.pos]
        self.pos += 1
        return value

    def _unpack(self, fmt):
        self._require(fmt.size)
        value = fmt.unpack_from(self.data, self.pos)[0]
        self.pos += fmt.size
        return value

    def read_u16_be(self):
        return self._unpack(_U16_BE)

    def read_u32_be(self):
        return self._unpack(_U32_BE)

    def read_u32_le(self):
        return self._unpack(_U32_LE)

    def peek(self, n):
        self._require(n)
        return bytes(self.data[self.pos:self.pos + n])

    def find(self, needle, start=None, stop=None):
        """Offset of needle between start and stop (absolute), or -1."""
        start = self.pos if start is None else start
        stop = self.end if stop is None else min(stop, self.end)
        return self.data.find(needle, start, stop)
