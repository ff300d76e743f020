"""Binary encoding of server computed track metadata.

Layout (little endian)::

    batch    = magic "SM" | version u8 | group count u16 | group*
    group    = group id q | flags u8 | [ground] | [airspaces]
    ground   = track count u16 | (sample count u32 | i32 * count)*
    airspace = track count u16 | (crossing count u16 | crossing*)*
    crossing = top i32 | bottom i32 | start u32 | end u32 | name str | category str
    str      = length u8 | utf-8 bytes

``flags`` bit 0 marks the ground altitude section, bit 1 the airspaces.
"""

from __future__ import annotations

import struct
from typing import Final, Sequence

from skysync.models.metadata import MetaTrackGroup
from skysync.models.track import AirspaceCrossing

METADATA_MAGIC: Final[bytes] = b"SM"
METADATA_VERSION: Final[int] = 1

FLAG_GROUND_ALTITUDE: Final[int] = 0x01
FLAG_AIRSPACES: Final[int] = 0x02

_HEADER = struct.Struct("<2sBH")
_GROUP = struct.Struct("<qB")
_COUNT16 = struct.Struct("<H")
_COUNT32 = struct.Struct("<I")
_CROSSING = struct.Struct("<iiII")


class MetadataDecodeError(ValueError):
    """Raised when a metadata body is not a valid batch."""


# ---------------------------------------- #


def _encode_str(value: str) -> bytes:
    raw = value.encode("utf-8")
    if len(raw) > 255:
        raise ValueError("string too long")
    return bytes([len(raw)]) + raw


def encode_metadata(groups: Sequence[MetaTrackGroup]) -> bytes:
    out = bytearray(_HEADER.pack(METADATA_MAGIC, METADATA_VERSION, len(groups)))
    for group in groups:
        flags = 0
        if group.ground_altitudes is not None:
            flags |= FLAG_GROUND_ALTITUDE
        if group.airspaces is not None:
            flags |= FLAG_AIRSPACES
        out += _GROUP.pack(group.id, flags)

        if group.ground_altitudes is not None:
            out += _COUNT16.pack(len(group.ground_altitudes))
            for series in group.ground_altitudes:
                out += _COUNT32.pack(len(series))
                out += struct.pack(f"<{len(series)}i", *series)

        if group.airspaces is not None:
            out += _COUNT16.pack(len(group.airspaces))
            for crossings in group.airspaces:
                out += _COUNT16.pack(len(crossings))
                for crossing in crossings:
                    out += _CROSSING.pack(
                        crossing.top, crossing.bottom, crossing.start, crossing.end
                    )
                    out += _encode_str(crossing.name)
                    out += _encode_str(crossing.category)
    return bytes(out)


# ---------------------------------------- #


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._offset = 0

    def unpack(self, fmt: struct.Struct) -> tuple:
        try:
            values = fmt.unpack_from(self._data, self._offset)
        except struct.error as exc:
            raise MetadataDecodeError(f"truncated metadata at byte {self._offset}") from exc
        self._offset += fmt.size
        return values

    def ints(self, count: int) -> list[int]:
        return list(self.unpack(struct.Struct(f"<{count}i")))

    def string(self) -> str:
        if self._offset >= len(self._data):
            raise MetadataDecodeError("truncated string")
        size = self._data[self._offset]
        start = self._offset + 1
        end = start + size
        if end > len(self._data):
            raise MetadataDecodeError("truncated string")
        self._offset = end
        return self._data[start:end].decode("utf-8", errors="replace")

    @property
    def exhausted(self) -> bool:
        return self._offset == len(self._data)


def decode_metadata(data: bytes) -> list[MetaTrackGroup]:
    reader = _Reader(data)
    magic, version, group_count = reader.unpack(_HEADER)
    if magic != METADATA_MAGIC:
        raise MetadataDecodeError("bad magic")
    if version != METADATA_VERSION:
        raise MetadataDecodeError(f"unsupported version {version}")

    groups: list[MetaTrackGroup] = []
    for _ in range(group_count):
        group_id, flags = reader.unpack(_GROUP)
        ground_altitudes = None
        airspaces = None

        if flags & FLAG_GROUND_ALTITUDE:
            (track_count,) = reader.unpack(_COUNT16)
            ground_altitudes = []
            for _ in range(track_count):
                (size,) = reader.unpack(_COUNT32)
                ground_altitudes.append(reader.ints(size))

        if flags & FLAG_AIRSPACES:
            (track_count,) = reader.unpack(_COUNT16)
            airspaces = []
            for _ in range(track_count):
                (crossing_count,) = reader.unpack(_COUNT16)
                crossings = []
                for _ in range(crossing_count):
                    top, bottom, start, end = reader.unpack(_CROSSING)
                    crossings.append(
                        AirspaceCrossing(
                            top=top,
                            bottom=bottom,
                            start=start,
                            end=end,
                            name=reader.string(),
                            category=reader.string(),
                        )
                    )
                airspaces.append(crossings)

        groups.append(
            MetaTrackGroup(
                id=group_id, ground_altitudes=ground_altitudes, airspaces=airspaces
            )
        )

    if not reader.exhausted:
        raise MetadataDecodeError("trailing bytes after metadata")
    return groups


__all__ = [
    "FLAG_AIRSPACES",
    "FLAG_GROUND_ALTITUDE",
    "MetadataDecodeError",
    "decode_metadata",
    "encode_metadata",
]
