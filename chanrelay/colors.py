"""Display name to color tag assignment."""

from __future__ import annotations

import hashlib

PALETTE: tuple[str, ...] = (
    "#e6194b",
    "#3cb44b",
    "#ffe119",
    "#4363d8",
    "#f58231",
    "#911eb4",
    "#46f0f0",
    "#f032e6",
    "#bcf60c",
    "#008080",
    "#9a6324",
    "#800000",
)


def color_for(display_name: str) -> str:
    # sha256 rather than hash(): tags must survive a restart.
    digest = hashlib.sha256(display_name.encode("utf-8")).digest()
    return PALETTE[int.from_bytes(digest[:4], "big") % len(PALETTE)]
