"""
Geometry utilities for feature processing

Geometry is held in projected (lon, latp) degrees; measurements are
geodesic on WGS84 after unprojecting latp back to latitude.
"""

import numpy as np
import shapely
from loguru import logger
from pyproj import Geod
from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.geometry.polygon import orient
from shapely.validation import explain_validity

from ..store.assembly import RING_ORIENTATION

_GEOD = Geod(ellps="WGS84")

# GEOS reason for rings that collapse below a valid vertex count
TOO_FEW_POINTS = "Too few points"


class GeometryUtils:
    """Utility functions for geometric operations"""

    @staticmethod
    def unproject(geom: BaseGeometry) -> BaseGeometry:
        """Convert (lon, latp) coordinates to (lon, lat)"""
        def _to_lat(coords: np.ndarray) -> np.ndarray:
            out = coords.copy()
            out[:, 1] = np.degrees(2 * np.arctan(np.exp(np.radians(coords[:, 1]))) - np.pi / 2)
            return out
        return shapely.transform(geom, _to_lat)

    @staticmethod
    def area_m2(geom: BaseGeometry) -> float:
        """Geodesic area in square metres; 0 for anything not polygonal"""
        if geom.is_empty or not isinstance(geom, (Polygon, MultiPolygon)):
            return 0.0
        area, _ = _GEOD.geometry_area_perimeter(GeometryUtils.unproject(geom))
        return abs(area)

    @staticmethod
    def length_m(geom: BaseGeometry) -> float:
        """Geodesic length in metres (perimeter for polygons)"""
        if geom.is_empty:
            return 0.0
        return _GEOD.geometry_length(GeometryUtils.unproject(geom))

    @staticmethod
    def orient_rings(geom: BaseGeometry) -> BaseGeometry:
        """Exterior rings clockwise, holes counter-clockwise"""
        if geom.is_empty:
            return geom
        if isinstance(geom, Polygon):
            return orient(geom, sign=RING_ORIENTATION)
        if isinstance(geom, MultiPolygon):
            return MultiPolygon([orient(p, sign=RING_ORIENTATION) for p in geom.geoms])
        return geom


def correct_geometry(geom: BaseGeometry, description: str, verbose: bool = False) -> BaseGeometry:
    """
    Fix ring orientation and check validity.

    A geometry that is invalid only because it has too few points comes back
    empty. Any other invalidity is reported (when verbose) and the geometry
    is returned as it is.
    """
    geom = GeometryUtils.orient_rings(geom)
    if geom.is_empty or geom.is_valid:
        return geom

    reason = explain_validity(geom)
    if verbose:
        logger.info(f"{description} has {reason}")
    if reason.startswith(TOO_FEW_POINTS):
        return type(geom)()
    return geom
