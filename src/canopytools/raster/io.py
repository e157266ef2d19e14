# src/canopytools/raster/io.py

"""
This module handles all disk-based operations for raster data.

Canopy height models enter the pipeline through `load` and leave it through
`save`; every algorithmic stage works on in-memory Raster objects.
"""

import logging
from dataclasses import dataclass
from functools import wraps
from pathlib import Path
from typing import Union, Optional, List, Dict, Any, Callable

import numpy as np
import psutil
import rasterio
from rasterio.windows import Window

from canopytools.exceptions import RasterIOError
from .layer import Raster

log = logging.getLogger(__name__)

__all__ = [
    "MemoryEstimate",
    "estimate_memory",
    "load",
    "save",
    "read_info",
    "resolve_raster"
]

DEFAULT_SAFETY_FACTOR = 3.0
MIN_FREE_GB = 0.5

@dataclass(frozen=True)
class MemoryEstimate:
    """
    Estimation of memory requirements and safety for loading a raster.

    Args:
        total_required_bytes: Total bytes required to load the raster (with overhead).
        available_system_bytes: Currently available system memory in bytes.
        is_safe: Boolean indicating if loading is considered safe.
        reason: Human readable summary of the estimate.
    """
    total_required_bytes: int
    available_system_bytes: int
    is_safe: bool
    reason: str

def estimate_memory(
    path: Union[str, Path],
    safety_factor: float = DEFAULT_SAFETY_FACTOR,
    min_free_gb: float = MIN_FREE_GB
) -> MemoryEstimate:
    """
    Checks whether a raster fits in RAM, accounting for the float64 working
    copies made by detection and delineation.

    Args:
        path: Raster file to inspect (only metadata is read).
        safety_factor: Multiplier applied to the raw size to account for overhead.
        min_free_gb: Minimum free memory to leave available after loading.

    Returns:
        MemoryEstimate: Required bytes, available bytes, safety flag and reason.
    """
    with rasterio.open(path) as src:
        bytes_per_pixel = sum(np.dtype(dtype).itemsize for dtype in src.dtypes)
        raw_bytes = src.width * src.height * bytes_per_pixel

    total_required = int(raw_bytes * safety_factor)
    available = psutil.virtual_memory().available
    is_safe = (total_required + int(min_free_gb * (1024**3))) <= available
    reason = f"Req: {total_required/1e9:.2f}GB, Avail: {available/1e9:.2f}GB"

    return MemoryEstimate(total_required, available, is_safe, reason)

def load(
    path: Union[str, Path],
    bands: Optional[Union[int, List[int]]] = None,
    window: Optional[Window] = None,
    check_memory: bool = True
) -> Raster:
    """
    Load a raster from disk into memory.

    Args:
        path: Path to raster file. All supported GDAL formats are accepted.
        bands: Specific band(s) to load (None=all, int=single, list=subset).
        window: Optional rasterio Window object to load only a spatial subset.
        check_memory: If True, refuses to load a full file that would not fit in RAM.
                      Ignored when a window is provided.

    Returns:
        Raster: In-memory Raster object.

    Raises:
        FileNotFoundError: If the file does not exist.
        MemoryError: If check_memory is True and the file is too large.
        RasterIOError: If the file cannot be read.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Raster file not found: {path}")

    if check_memory and window is None:
        estimate = estimate_memory(path)
        if not estimate.is_safe:
            log.error(f"Refusing to load {path.name}: {estimate.reason}")
            raise MemoryError(f"Raster {path} does not fit in memory ({estimate.reason})")
        log.debug(f"Memory check passed for {path.name}: {estimate.reason}")

    log.debug(f"Loading raster: {path.name}")

    try:
        with rasterio.open(path) as src:
            if bands is None:
                indices = list(src.indexes)
            elif isinstance(bands, int):
                indices = [bands]
            else:
                indices = list(bands)

            data = src.read(indices, window=window)

            band_names = {}
            for i, idx in enumerate(indices):
                desc = src.descriptions[idx - 1]
                if desc:
                    band_names[desc] = i + 1

            transform = src.window_transform(window) if window is not None else src.transform

            return Raster(
                data=data,
                transform=transform,
                crs=src.crs,
                nodata=src.nodata,
                band_names=band_names
            )

    except rasterio.RasterioIOError as e:
        raise RasterIOError(f"Failed to read raster from {path}: {e}") from e

def save(
    raster: Raster,
    path: Union[str, Path],
    **profile_kwargs
) -> Path:
    """
    Write a Raster object to disk.

    Args:
        raster: Raster object to save.
        path: Output file path. All supported GDAL formats are accepted.
        **profile_kwargs: Override default rasterio profile settings.

    Returns:
        Path: The written file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    profile = raster.profile.copy()
    profile.update(profile_kwargs)

    log.info(f"Saving raster {raster.shape} → {path}")

    try:
        with rasterio.open(path, 'w', **profile) as dst:
            dst.write(raster.data)

            for name, idx in raster.band_names.items():
                if 1 <= idx <= raster.count:
                    dst.set_band_description(idx, name)

    except rasterio.RasterioIOError as e:
        raise RasterIOError(f"Failed to save raster to {path}: {e}") from e

    return path

def read_info(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Inspects a raster file and returns its spatial metadata without reading pixels.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    try:
        with rasterio.open(path) as src:
            band_names = {
                (src.descriptions[i - 1] or f"Band_{i}"): i for i in src.indexes
            }
            return {
                'crs': src.crs,
                'transform': src.transform,
                'bounds': src.bounds,
                'res': src.res,
                'width': src.width,
                'height': src.height,
                'count': src.count,
                'nodata': src.nodata,
                'band_names': band_names
            }
    except rasterio.RasterioIOError as e:
        raise RasterIOError(f"Failed to read metadata from {path}: {e}") from e

def resolve_raster(func: Callable):
    """
    Decorator: ensures the first argument of the decorated function is a Raster,
    whether the caller passed a file path or an existing Raster object.

    Behavior:
    1. Input is path (str/Path) -> load() from disk.
    2. Input is Raster object -> passed through untouched.
    3. Anything else -> TypeError.
    """
    @wraps(func)
    def wrapper(input_obj: Union[str, Path, Raster], *args, **kwargs):
        if isinstance(input_obj, (str, Path)):
            raster = load(input_obj)
        elif isinstance(input_obj, Raster):
            raster = input_obj
        else:
            raise TypeError(
                f"Function {func.__name__} expects a file path or Raster object, "
                f"got {type(input_obj).__name__}"
            )
        return func(raster, *args, **kwargs)
    return wrapper
