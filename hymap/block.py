EMPTY_ID = "Empty"
AIR_PREFIX = "Air"
LIQUID_CATEGORIES = ("Water", "Lava")


def is_empty_id(type_id):
    return type_id == EMPTY_ID or type_id.startswith(AIR_PREFIX)


class BlockType:
    """A block-type id such as "Rock_Stone" or "*Soil_Grass"."""

    def __init__(self, type_id):
        self.id = type_id

    @property
    def category(self):
        parts = self.base_id.split("_")
        return parts[0] if parts[0] else None

    @property
    def subcategory(self):
        parts = self.base_id.split("_")
        return parts[1] if len(parts) > 2 else None

    @property
    def name(self):
        return self.id.replace("_", " ")

    @property
    def state_definition(self):
        return self.id.startswith("*")

    @property
    def base_id(self):
        return self.id[1:] if self.state_definition else self.id

    @property
    def empty(self):
        return is_empty_id(self.id)

    def __eq__(self, other):
        if isinstance(other, BlockType):
            return other.id == self.id
        return NotImplemented

    def __hash__(self):
        return hash(self.id)

    def __repr__(self):
        return f"BlockType({self.id!r})"


class Block:
    """A BlockType at chunk-local (x, y, z)."""

    def __init__(self, block_type, x, y, z, chunk=None):
        self.block_type = block_type
        self.x = x
        self.y = y
        self.z = z
        self.chunk = chunk

    @property
    def id(self):
        return self.block_type.id

    @property
    def name(self):
        return self.block_type.name

    @property
    def category(self):
        return self.block_type.category

    @property
    def world_x(self):
        if self.chunk is None or self.chunk.world_x is None:
            return None
        return self.chunk.world_x + self.x

    @property
    def world_z(self):
        if self.chunk is None or self.chunk.world_z is None:
            return None
        return self.chunk.world_z + self.z

    @property
    def world_y(self):
        return self.y

    @property
    def world_position(self):
        if self.world_x is None or self.world_z is None:
            return None
        return self.world_x, self.world_y, self.world_z

    @property
    def local_position(self):
        return self.x, self.y, self.z

    @property
    def empty(self):
        return self.block_type.empty

    @property
    def liquid(self):
        return self.category in LIQUID_CATEGORIES

    @property
    def solid(self):
        return not self.empty and not self.liquid

    @property
    def vegetation(self):
        return self.category == "Plant" or "Grass" in self.id

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "x": self.x,
            "y": self.y,
            "z": self.z,
            "world_x": self.world_x,
            "world_y": self.world_y,
            "world_z": self.world_z,
        }

    def __eq__(self, other):
        if not isinstance(other, Block):
            return NotImplemented
        return (other.id, other.x, other.y, other.z) == (self.id, self.x, self.y, self.z) \
            and other.chunk is self.chunk

    def __hash__(self):
        return hash((self.id, self.x, self.y, self.z, id(self.chunk)))

    def __repr__(self):
        return f"<Block id={self.id!r} x={self.x} y={self.y} z={self.z}>"
