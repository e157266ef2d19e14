# src/canopytools/vector/io.py

"""
This module provides functions for reading and writing vector data using GeoPandas.
"""

from pathlib import Path
from typing import Union, Callable
from functools import wraps
import logging

import geopandas as gpd

from canopytools.vector.layer import Vector

log = logging.getLogger(__name__)

__all__ = [
    "load_vector",
    "save_vector",
    "as_vector",
    "resolve_vector"
]

def load_vector(path: Union[str, Path], engine: str = "pyogrio", **kwargs) -> Vector:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Vector file not found: {path}")

    gdf = gpd.read_file(path, engine=engine, **kwargs)
    log.debug(f"Loaded {len(gdf)} features from {path.name}")
    return Vector(gdf)

def save_vector(vector: Vector, path: Union[str, Path], driver: str = None, engine: str = "pyogrio", **kwargs) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    vector.data.to_file(path, driver=driver, engine=engine, **kwargs)
    log.info(f"Saved {len(vector)} features → {path}")
    return path

def as_vector(input_obj: Union[str, Path, Vector, gpd.GeoDataFrame]) -> Vector:
    """Coerce a path, GeoDataFrame or Vector into a Vector."""
    if isinstance(input_obj, Vector):
        return input_obj
    if isinstance(input_obj, gpd.GeoDataFrame):
        return Vector(input_obj)
    if isinstance(input_obj, (str, Path)):
        return load_vector(input_obj)
    raise TypeError(f"Expected file path, GeoDataFrame or Vector object, got {type(input_obj)}")

def resolve_vector(func: Callable):
    """
    Decorator: ensures the first argument of the decorated function is a Vector.
    """
    @wraps(func)
    def wrapper(input_obj: Union[str, Path, Vector, gpd.GeoDataFrame], *args, **kwargs):
        return func(as_vector(input_obj), *args, **kwargs)
    return wrapper
