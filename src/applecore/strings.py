"""String helpers used to derive JSON keys from attribute names."""

from __future__ import annotations


def underscore(value: str) -> str:
    """Convert ``camelCase`` to ``snake_case``.

    Only ASCII uppercase letters are rewritten; every other character is kept
    as-is, so ``"URL"`` becomes ``"_u_r_l"``.
    """
    result = []
    for char in value:
        if "A" <= char <= "Z":
            result.append("_")
            result.append(char.lower())
        else:
            result.append(char)
    return "".join(result)
