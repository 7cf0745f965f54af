import os
import glob
import logging
from concurrent.futures import ThreadPoolExecutor

from .config import load_config, resolve_config
from .coords import world_to_block_local, world_to_chunk_local, world_to_region
from .errors import DecompressionError, FormatError, TruncatedDataError
from .region import RegionFile

logger = logging.getLogger("hymap.world")


class WorldMap:
    """Region files of one world inside a save directory."""

    def __init__(self, save_path, world_name="default", config=None, config_file=None):
        self.save_path = save_path
        self.world_name = world_name
        self.config = resolve_config(config) if config is not None else load_config(config_file)
        self._regions = None

    @property
    def world_path(self):
        return os.path.join(self.save_path, "universe", "worlds", self.world_name)

    @property
    def chunks_path(self):
        return os.path.join(self.world_path, "chunks")

    def regions(self):
        if self._regions is None:
            if not os.path.isdir(self.chunks_path):
                return []
            paths = sorted(glob.glob(os.path.join(self.chunks_path, "*.region.bin")))
            regions = {}
            for path in paths:
                region = RegionFile(path, self.config)
                regions[(region.x, region.z)] = region
            self._regions = regions
        return list(self._regions.values())

    def region_at(self, region_x, region_z):
        self.regions()
        return (self._regions or {}).get((region_x, region_z))

    def region_at_world(self, x, z):
        return self.region_at(*world_to_region(x, z))

    def chunk_at(self, x, z):
        region = self.region_at_world(x, z)
        if region is None:
            return None
        local_x, local_z = world_to_chunk_local(x, z)
        try:
            return region.chunk_at(local_x, local_z)
        except (DecompressionError, TruncatedDataError) as e:
            logger.warning(f"Chunk at world ({x}, {z}) unreadable: {e}")
            return None

    def block_at(self, x, y, z):
        chunk = self.chunk_at(x, z)
        if chunk is None:
            return None
        block_x, block_z = world_to_block_local(x, z)
        return chunk.block_at(block_x, y, block_z)

    def surface_at(self, x, z):
        chunk = self.chunk_at(x, z)
        if chunk is None:
            return None
        block_x, block_z = world_to_block_local(x, z)
        return chunk.surface_at(block_x, block_z)

    def bounds(self):
        regions = self.regions()
        if not regions:
            return None
        xs = [r.x for r in regions]
        zs = [r.z for r in regions]
        return {
            "min_x": min(xs), "max_x": max(xs),
            "min_z": min(zs), "max_z": max(zs),
            "width": max(xs) - min(xs) + 1,
            "height": max(zs) - min(zs) + 1,
        }

    @property
    def total_size(self):
        return sum(r.size for r in self.regions())

    def block_types(self):
        types = set()
        for region in self.regions():
            try:
                types.update(region.block_types())
            except FormatError as e:
                logger.error(f"Region {region.filename}: {e}")
        return sorted(types)

    def scan(self, workers=4):
        """Decode every region on a thread pool and summarise each one."""
        regions = self.regions()
        logger.info(f"Scanning {len(regions)} regions in {self.world_name}")
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(_scan_region, [r.path for r in regions], [self.config] * len(regions)))
        failed = sum(1 for r in results if r["error"])
        logger.info(f"Scan finished. Regions: {len(results)}, unreadable: {failed}")
        return results


def _scan_region(path, config):
    # Fresh instance per task so workers share nothing
    region = RegionFile(path, config)
    summary = {"x": region.x, "z": region.z, "chunks": 0, "failed": [], "error": None}

    def record(index, error):
        summary["failed"].append(index)
        logger.warning(f"Region {region.x}.{region.z} chunk {index}: {error}")

    try:
        for chunk in region.each_chunk(on_error=record):
            chunk.block_section
            summary["chunks"] += 1
    except (FormatError, OSError) as e:
        logger.error(f"Region {region.filename}: {e}")
        summary["error"] = str(e)
    return summary
