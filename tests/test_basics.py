# tests/test_basics.py

import canopytools
from canopytools import chm, raster, vector, zonal, exceptions

def test_imports():
    """Simple smoke test to ensure modules import correctly."""
    assert chm is not None
    assert raster is not None
    assert vector is not None
    assert zonal is not None
    assert canopytools.__version__

def test_exception_hierarchy():
    assert issubclass(exceptions.InvalidConfigError, exceptions.CanopyToolsError)
    assert issubclass(exceptions.InvalidConfigError, ValueError)
    assert issubclass(exceptions.RasterIOError, exceptions.RasterError)

    err = exceptions.OutOfExtentError(1.0, 2.0)
    assert (err.x, err.y) == (1.0, 2.0)
    assert "outside" in str(err)
