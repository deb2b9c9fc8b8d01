"""
Ring assembly for relation multipolygons

Relation member ways come in no particular order or direction, so their
point sequences are chained end to end until they close, then inner rings
are matched to the outer ring that holds them.
"""

from typing import List, Sequence, Tuple

import shapely
from loguru import logger
from shapely.geometry import LineString, MultiPolygon, Polygon
from shapely.geometry.polygon import orient

Coord = Tuple[float, float]

# A closed ring needs three distinct points plus the closing repeat
MIN_RING_COORDS = 4

# Exterior rings clockwise, holes counter-clockwise
RING_ORIENTATION = -1.0


def merge_rings(sequences: Sequence[Sequence[Coord]]) -> List[List[Coord]]:
    """
    Chain point sequences whose endpoints coincide into closed rings.

    Greedy: each chain is grown from the first pending sequence, taking the
    first pending candidate that shares an endpoint (reversed if needed),
    until it closes or nothing more fits. Chains that never close or have
    too few points are dropped.
    """
    pending = [list(seq) for seq in sequences if len(seq) >= 2]
    rings = []

    while pending:
        current = pending.pop(0)
        while current[0] != current[-1]:
            for idx, candidate in enumerate(pending):
                if candidate[0] == current[-1]:
                    current.extend(candidate[1:])
                elif candidate[-1] == current[-1]:
                    current.extend(reversed(candidate[:-1]))
                elif candidate[-1] == current[0]:
                    current[:0] = candidate[:-1]
                elif candidate[0] == current[0]:
                    current[:0] = candidate[:0:-1]
                else:
                    continue
                del pending[idx]
                break
            else:
                break

        if current[0] != current[-1]:
            logger.debug(f"Dropping unclosed ring with {len(current)} points")
        elif len(current) < MIN_RING_COORDS:
            logger.debug(f"Dropping degenerate ring with {len(current)} points")
        else:
            rings.append(current)

    return rings


def ring_inside(shell: Polygon, ring: Sequence[Coord]) -> bool:
    """Point-in-polygon test of an inner ring against an outer ring"""
    xs = [xy[0] for xy in ring[:-1]]
    ys = [xy[1] for xy in ring[:-1]]
    if shapely.contains_xy(shell, xs, ys).any():
        return True
    # every vertex sits on the shell boundary
    return shell.covers(LineString(ring))


def assemble_multipolygon(outer_rings: Sequence[Sequence[Coord]],
                          inner_rings: Sequence[Sequence[Coord]]) -> MultiPolygon:
    """Build an oriented multipolygon from closed outer and inner rings"""
    shells = [Polygon(ring) for ring in outer_rings]
    holes: List[List[Sequence[Coord]]] = [[] for _ in shells]

    for ring in inner_rings:
        for idx, shell in enumerate(shells):
            if ring_inside(shell, ring):
                holes[idx].append(ring)
                break
        else:
            logger.debug(f"Dropping inner ring with {len(ring)} points outside every outer ring")

    polygons = [
        orient(Polygon(shell.exterior.coords, hole_rings), sign=RING_ORIENTATION)
        for shell, hole_rings in zip(shells, holes)
    ]
    return MultiPolygon(polygons)
