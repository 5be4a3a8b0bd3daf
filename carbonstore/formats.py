"""Response formats understood by the carbon server endpoints."""

from __future__ import annotations

import enum

__all__ = ["ResponseFormat", "parse_format"]


class ResponseFormat(enum.IntEnum):
    """Encoding used for a server response."""

    JSON = 0
    PICKLE = 1
    PROTO_V2 = 2
    PROTO_V3 = 3

    def __str__(self) -> str:
        return _LABELS[self]


_LABELS = {
    ResponseFormat.JSON: "json",
    ResponseFormat.PICKLE: "pickle",
    ResponseFormat.PROTO_V2: "carbonapi_v2_pb",
    ResponseFormat.PROTO_V3: "carbonapi_v3_pb",
}

_KNOWN_FORMATS = {
    "json": ResponseFormat.JSON,
    "pickle": ResponseFormat.PICKLE,
    "protobuf": ResponseFormat.PROTO_V2,
    "protobuf3": ResponseFormat.PROTO_V2,
    "carbonapi_v2_pb": ResponseFormat.PROTO_V2,
    "carbonapi_v3_pb": ResponseFormat.PROTO_V3,
}


def parse_format(name: str) -> ResponseFormat:
    """Return the format registered under ``name``; raise ValueError if unknown."""
    try:
        return _KNOWN_FORMATS[name]
    except KeyError:
        raise ValueError(f"Unknown format: {name!r}") from None