# src/canopytools/raster/layer.py

"""
This module defines the core in-memory raster container used by every canopytools stage.
"""

import copy
import logging
from typing import Union, Optional, Dict, Any, Tuple

import numpy as np
import rasterio
from rasterio.transform import Affine
from rasterio.crs import CRS

from canopytools.exceptions import RasterValidationError

log = logging.getLogger(__name__)

__all__ = [
    "Raster"
]

class Raster:
    """
    In-memory raster: a pixel array bound to its georeferencing.

    A Raster synchronizes:
    1. The pixel data: a NumPy array in (Bands, Height, Width) order.
    2. The spatial context: affine transform, CRS and no-data sentinel.

    Canopy height models are single band rasters, but the container keeps the
    3D layout so that multi-band inputs (e.g. several height products stacked
    together) can be summarized band by band.

    Attributes:
        data (np.ndarray): The pixel array in (Bands, Height, Width) format.
        transform (Affine): The affine transform matrix.
        crs (CRS): The Coordinate Reference System (may be None for synthetic grids).
        nodata (float | int | None): The value representing missing data.
        band_names (Dict[str, int]): Mapping of semantic names to 1-based band indices.
    """

    def __init__(
        self,
        data: np.ndarray,
        transform: Affine,
        crs: Optional[Union[CRS, str]] = None,
        nodata: Optional[Union[float, int]] = None,
        band_names: Optional[Dict[str, int]] = None
    ):
        """
        Initialize a Raster object.

        Args:
            data: Input array. Must be 2D (Height, Width) or 3D (Bands, Height, Width).
                  2D arrays are automatically promoted to 3D (1, Height, Width).
            transform: Geospatial transform (maps pixels to coordinates).
            crs: Coordinate Reference System.
            nodata: Value indicating no data.
            band_names: Optional mapping of names to band indices ('height': 1).

        Raises:
            TypeError: If data or transform have the wrong type.
            RasterValidationError: If dimensions are incorrect.
        """
        self.validate_inputs(data, transform)

        if data.ndim == 2:
            data = data[np.newaxis, :, :]

        self._data = data
        self.transform = transform
        self.crs = CRS.from_user_input(crs) if crs is not None else None
        self.nodata = nodata
        self.band_names = band_names or {}

    @staticmethod
    def validate_inputs(data: np.ndarray, transform: Affine):
        """Internal validation logic."""
        if not isinstance(data, np.ndarray):
            raise TypeError(f"Data must be numpy.ndarray, got {type(data)}")

        if data.ndim not in (2, 3):
            raise RasterValidationError(f"Data must be 2D or 3D, got shape {data.shape}")

        if not isinstance(transform, Affine):
            raise TypeError(f"Transform must be rasterio.Affine, got {type(transform)}")

    @property
    def data(self) -> np.ndarray:
        """Access the raw pixel data."""
        return self._data

    @property
    def width(self) -> int:
        return self._data.shape[2]

    @property
    def height(self) -> int:
        return self._data.shape[1]

    @property
    def count(self) -> int:
        return self._data.shape[0]

    @property
    def shape(self) -> Tuple[int, int, int]:
        """Returns (Bands, Height, Width)."""
        return self._data.shape

    @property
    def res(self) -> Tuple[float, float]:
        """Returns the (cell width, cell height) in CRS units."""
        return abs(self.transform.a), abs(self.transform.e)

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """Returns (left, bottom, right, top) in CRS units."""
        # array_bounds returns (west, south, east, north)
        return rasterio.transform.array_bounds(self.height, self.width, self.transform)

    @property
    def profile(self) -> Dict[str, Any]:
        """
        Generates a Rasterio-compliant profile based on current state.
        Properties like compression can be overridden when saving.
        """
        return {
            'driver': 'GTiff',
            'dtype': self._data.dtype,
            'nodata': self.nodata,
            'width': self.width,
            'height': self.height,
            'count': self.count,
            'crs': self.crs,
            'transform': self.transform,
            'compress': 'lzw'
        }

    def band_index(self, identifier: Union[int, str]) -> int:
        """Resolve a 1-based band index from an index or a semantic band name."""
        if isinstance(identifier, str):
            if identifier not in self.band_names:
                raise KeyError(f"Band name '{identifier}' not found in {list(self.band_names.keys())}")
            idx = self.band_names[identifier]
        else:
            idx = int(identifier)

        if not (1 <= idx <= self.count):
            raise IndexError(f"Band index {idx} out of range (1-{self.count})")
        return idx

    def get_band(self, identifier: Union[int, str]) -> np.ndarray:
        """
        Retrieve a specific band by 1-based index or semantic name.

        Returns:
            np.ndarray: 2D array of the band.
        """
        return self._data[self.band_index(identifier) - 1]

    def read_masked(self, identifier: Union[int, str] = 1) -> np.ndarray:
        """
        Return a band as a float64 array with no-data cells replaced by NaN.

        The returned array is always a fresh copy, so callers may modify it freely
        without touching the raster they were given.

        Args:
            identifier: 1-based band index or band name.

        Returns:
            np.ndarray: 2D float64 array.
        """
        band = self.get_band(identifier)
        values = band.astype(np.float64, copy=True)
        if self.nodata is not None and not np.isnan(self.nodata):
            values[band == self.nodata] = np.nan
        return values

    def save(self, path, **kwargs):
        """Write the Raster to disk. See canopytools.raster.io.save."""
        from .io import save
        return save(self, path, **kwargs)

    def copy(self) -> 'Raster':
        """Returns a deep copy of the Raster."""
        return Raster(
            data=self._data.copy(),
            transform=copy.deepcopy(self.transform),
            crs=copy.deepcopy(self.crs),
            nodata=self.nodata,
            band_names=self.band_names.copy()
        )

    def __repr__(self) -> str:
        return (f"<Raster shape={self.shape} dtype={self._data.dtype} "
                f"crs={self.crs} bounds={self.bounds}>")

    def __eq__(self, other: object) -> bool:
        """Checks equality based on metadata and pixel data (NaN cells compare equal)."""
        if not isinstance(other, Raster):
            return NotImplemented

        meta_eq = (
            self.transform == other.transform and
            self.crs == other.crs and
            self.shape == other.shape and
            (self.nodata == other.nodata or (
                self.nodata is not None and other.nodata is not None and
                np.isnan(self.nodata) and np.isnan(other.nodata)
            ))
        )
        if not meta_eq:
            return False

        return np.array_equal(self._data, other.data, equal_nan=np.issubdtype(self._data.dtype, np.floating))

    def __array__(self, dtype=None, copy=None) -> np.ndarray:
        """Allows np.array(raster_obj) to work directly."""
        return self._data if dtype is None else self._data.astype(dtype)
