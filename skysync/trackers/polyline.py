"""Delta-encoded polyline series as used by the SkyLines live API.

Each value is a signed integer stored in 5-bit chunks offset by 63 and
holds the difference from the previous value of the same stride lane.
"""

from __future__ import annotations

from typing import Sequence, Union

EncodedSeries = Union[str, Sequence[int]]


def decode_unsigned_integers(encoded: str) -> list[int]:
    numbers: list[int] = []
    current = 0
    shift = 0
    for char in encoded:
        chunk = ord(char) - 63
        if chunk < 0:
            raise ValueError(f"invalid polyline character {char!r}")
        current |= (chunk & 0x1F) << shift
        if chunk < 0x20:
            numbers.append(current)
            current = 0
            shift = 0
        else:
            shift += 5
    if shift:
        raise ValueError("truncated polyline value")
    return numbers


def decode_signed_integers(encoded: str) -> list[int]:
    return [
        ~(value >> 1) if value & 1 else value >> 1
        for value in decode_unsigned_integers(encoded)
    ]


def decode_deltas(encoded: EncodedSeries, stride: int, factor: float = 1e5) -> list[float]:
    """Rebuild absolute values from a delta-encoded series.

    ``encoded`` is either the polyline string or the already parsed integer
    deltas. Values are summed per lane (``i % stride``) then divided by
    ``factor``.
    """

    if isinstance(encoded, str):
        deltas = decode_signed_integers(encoded)
    else:
        deltas = [int(value) for value in encoded]

    last = [0] * stride
    values: list[float] = []
    for index, delta in enumerate(deltas):
        lane = index % stride
        last[lane] += delta
        values.append(last[lane] / factor)
    return values


def _encode_unsigned_integer(value: int) -> str:
    out = []
    while value >= 0x20:
        out.append(chr((0x20 | (value & 0x1F)) + 63))
        value >>= 5
    out.append(chr(value + 63))
    return "".join(out)


def encode_deltas(values: Sequence[float], stride: int, factor: float = 1e5) -> str:
    """Encode absolute values, the inverse of :func:`decode_deltas`."""

    last = [0] * stride
    out = []
    for index, value in enumerate(values):
        lane = index % stride
        scaled = round(value * factor)
        delta = scaled - last[lane]
        last[lane] = scaled
        signed = ~(delta << 1) if delta < 0 else delta << 1
        out.append(_encode_unsigned_integer(signed))
    return "".join(out)


__all__ = [
    "EncodedSeries",
    "decode_deltas",
    "decode_signed_integers",
    "decode_unsigned_integers",
    "encode_deltas",
]
