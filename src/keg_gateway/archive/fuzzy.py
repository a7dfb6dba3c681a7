"""
keg_gateway.archive.fuzzy

Accent- and punctuation-tolerant regular expressions for score searches.

`fuzzy_regex("Radetzky")` matches "Radetzky", "RADETZKY" or "Ra-detzky"; each
letter becomes a class of its accented and case variants followed by optional
punctuation, digits are kept, everything else in the term is dropped.
"""

from __future__ import annotations

ALPHABET_CLASSES: tuple[str, ...] = (
    "aàáâãäåæAÀÁÂÃÄÅÆ",
    "bB",
    "cçćĉčCÇĆĈČ",
    "dďDÐĎ",
    "eèéêëēěEÈÉÊËĒĚ",
    "fF",
    "gĝGĜ",
    "hĥHĤ",
    "iìíîïIÌÍÎÏ",
    "jJ",
    "kK",
    "lL",
    "mM",
    "nñńňNÑŃŇ",
    "oòóôõöøOÒÓÔÕÖØ",
    "pP",
    "qQ",
    "rŕřRŔŘ",
    "sśŝşšSŚŜŞŠß",
    "tťTŤ",
    "uùúûüUÙÚÛÜ",
    "vV",
    "wŵWŴ",
    "xX",
    "yýŷYÝŶ",
    "zžZŹ",
)

NUMBERS = "0123456789"
SPECIALS = r"""[`°\+"'\^\*\#%&\$\|§=\?€<>,\.\-;:_\(\)!~\[\]\{\}/\\ ]*"""


def fuzzy_regex(term: str) -> str:
    parts: list[str] = []
    for char in term:
        alphabet_class = next((cls for cls in ALPHABET_CLASSES if char in cls), None)
        if alphabet_class is not None:
            parts.append(f"[{alphabet_class}]{SPECIALS}")
        elif char in NUMBERS:
            parts.append(f"{char}{SPECIALS}")
    return "".join(parts)
