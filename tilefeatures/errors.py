"""
Error types raised by the object store and feature pipeline
"""


class TileFeaturesError(Exception):
    """Base class for errors raised by tilefeatures"""


class MissingReferenceError(TileFeaturesError, KeyError):
    """A node or way referenced by topology is absent from its store"""

    def __init__(self, kind: str, ref_id: int):
        self.kind = kind
        self.ref_id = ref_id
        super().__init__(f"{kind} {ref_id} not found in store")

    def __str__(self) -> str:
        return self.args[0]
