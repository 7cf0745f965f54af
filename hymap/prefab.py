"""Reader for ``*.prefab.json.lpf`` prefab files.

Only the header and block palette are decoded::

    palette offset     2 bytes BE at 0 (typically 21)
    reserved           12 bytes
    palette count      2 bytes BE at 14
    palette entries    [name length 1B] [name] [flags 2B BE] [block id 2B BE] [extra 1B]

Placement data after the palette is left alone.
"""
import os
import glob
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from functools import cached_property

from .errors import NotFoundError, TruncatedDataError
from .reader import ByteReader

logger = logging.getLogger("hymap.prefab")

PALETTE_OFFSET_POS = 0
PALETTE_COUNT_POS = 14
HEADER_SIZE = 16
PREFAB_SUFFIX = ".prefab.json.lpf"


@dataclass(frozen=True)
class PaletteEntry:
    index: int
    name: str
    flags: int
    block_id: int
    extra: int

    @property
    def state_definition(self):
        return self.name.startswith("*")

    @property
    def base_name(self):
        return self.name[1:] if self.state_definition else self.name

    @property
    def block_category(self):
        return self.base_name.split("_")[0] or None

    def to_dict(self):
        return asdict(self)

    def __str__(self):
        return f"{self.name} (ID: 0x{self.block_id:04X})"


def parse_palette(data):
    """Return (palette_offset, palette_count, entries) for a prefab buffer."""
    if len(data) < HEADER_SIZE:
        logger.warning(f"Prefab header truncated: {len(data)} of {HEADER_SIZE} bytes")
        return 0, 0, []

    reader = ByteReader(data, PALETTE_OFFSET_POS)
    palette_offset = reader.read_u16_be()
    reader.seek(PALETTE_COUNT_POS)
    palette_count = reader.read_u16_be()

    entries = []
    reader.seek(palette_offset)
    for index in range(palette_count):
        try:
            length = reader.read_u8()
            name = reader.read_bytes(length).decode('utf-8', 'replace')
            flags = reader.read_u16_be()
            block_id = reader.read_u16_be()
            extra = reader.read_u8()
        except TruncatedDataError as e:
            logger.warning(f"Prefab palette truncated after {len(entries)} of {palette_count} entries: {e}")
            break
        entries.append(PaletteEntry(index, name, flags, block_id, extra))
    return palette_offset, palette_count, entries


class Prefab:
    def __init__(self, path=None, data=None):
        self.path = path
        if data is not None:
            # shadows the cached_property, nothing to read from disk
            self.data = data

    @classmethod
    def load(cls, path):
        if not os.path.exists(path):
            raise NotFoundError(f"Prefab not found: {path}")
        return cls(path)

    @classmethod
    def from_bytes(cls, data):
        return cls(data=data)

    @cached_property
    def data(self):
        with open(self.path, 'rb') as f:
            return f.read()

    @cached_property
    def _parsed(self):
        return parse_palette(self.data)

    @property
    def palette_offset(self):
        return self._parsed[0]

    @property
    def palette_count(self):
        return self._parsed[1]

    @property
    def palette(self):
        return list(self._parsed[2])

    @property
    def filename(self):
        return os.path.basename(self.path) if self.path else None

    @property
    def name(self):
        filename = self.filename
        if filename and filename.endswith(PREFAB_SUFFIX):
            return filename[:-len(PREFAB_SUFFIX)]
        return filename

    @property
    def size(self):
        return len(self.data) if self.path is None else os.path.getsize(self.path)

    @property
    def size_kb(self):
        return round(self.size / 1024, 2)

    @property
    def modified_at(self):
        return datetime.fromtimestamp(os.path.getmtime(self.path)) if self.path else None

    def _path_part(self, offset):
        if not self.path:
            return None
        parts = os.path.normpath(self.path).split(os.sep)
        if "Prefabs" not in parts:
            return None
        pos = parts.index("Prefabs") + offset
        # last part is the file itself
        return parts[pos] if pos < len(parts) - 1 else None

    @property
    def category(self):
        return self._path_part(1)

    @property
    def subcategory(self):
        return self._path_part(2)

    def block_names(self):
        return [entry.name for entry in self._parsed[2]]

    def block_ids(self):
        return [entry.block_id for entry in self._parsed[2]]

    def block_by_id(self, block_id):
        return next((e for e in self._parsed[2] if e.block_id == block_id), None)

    def block_by_name(self, name):
        return next((e for e in self._parsed[2] if e.name == name), None)

    def variants(self):
        """Entries grouped by base name, so "*Soil_Grass" sits with "Soil_Grass"."""
        groups = {}
        for entry in self._parsed[2]:
            groups.setdefault(entry.base_name, []).append(entry)
        return groups

    def to_dict(self):
        return {
            "name": self.name,
            "path": self.path,
            "size": self.size,
            "category": self.category,
            "palette": [entry.to_dict() for entry in self._parsed[2]],
        }

    def __str__(self):
        return f"Prefab: {self.name} ({len(self._parsed[2])} block types, {self.size_kb} KB)"


def find_prefabs(directory):
    if not directory or not os.path.isdir(directory):
        return []
    paths = glob.glob(os.path.join(directory, "**", "*" + PREFAB_SUFFIX), recursive=True)
    return [Prefab(p) for p in sorted(paths)]
