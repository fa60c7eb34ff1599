"""License normalization onto canonical SPDX identifiers.

Registries publish license information as free text. This module maps that
text onto the SPDX identifier table shipped with the ``license-expression``
library, plus a small set of common aliases and long-form names.

The splitting heuristic flattens boolean expressions: ``"MIT OR Apache-2.0"``
and ``"MIT AND Apache-2.0"`` both normalize to ``["MIT", "Apache-2.0"]``.
Downstream consumers rely on that flat shape.
"""

import logging
import re
from functools import lru_cache
from typing import Optional

from license_expression import get_spdx_licensing

logger = logging.getLogger(__name__)

OTHER = "Other"

# Declarations longer than this are prose, not identifiers
MAX_LICENSE_LENGTH = 150

# Common license aliases and long-form names, keyed lower-case as they
# appear after splitting and paren stripping
LICENSE_ALIASES = {
    "apache 2": "Apache-2.0",
    "apache 2.0": "Apache-2.0",
    "apache license 2.0": "Apache-2.0",
    "apache software license": "Apache-2.0",
    "apache license": "Apache-2.0",
    "apache license version 2.0": "Apache-2.0",
    "mit license": "MIT",
    "the mit license": "MIT",
    "bsd": "BSD-3-Clause",
    "bsd license": "BSD-3-Clause",
    "new bsd license": "BSD-3-Clause",
    "bsd 3-clause license": "BSD-3-Clause",
    "bsd 2-clause license": "BSD-2-Clause",
    "simplified bsd license": "BSD-2-Clause",
    "gplv3": "GPL-3.0-only",
    "gplv2": "GPL-2.0-only",
    "gnu general public license v3": "GPL-3.0-only",
    "gnu general public license v3 (gplv3": "GPL-3.0-only",
    "gnu general public license v2": "GPL-2.0-only",
    "lgplv3": "LGPL-3.0-only",
    "gnu lesser general public license v3": "LGPL-3.0-only",
    "mozilla public license 2.0": "MPL-2.0",
    "isc license": "ISC",
    "python software foundation license": "PSF-2.0",
    "public domain": "Unlicense",
}

_OR_TOKEN = re.compile(r"\s+or\s+")
_AND_TOKEN = re.compile(r"\s+and\s+")
_SEPARATORS = re.compile(r"[,/]")


@lru_cache(maxsize=1)
def identifier_table() -> dict[str, str]:
    """Build the lower-case lookup table of canonical identifiers.

    Canonical keys are inserted first so an alias can never shadow an
    identifier; every canonical identifier therefore maps to itself. The
    curated aliases come next and take precedence over the library's own.

    Returns:
        Mapping of lower-cased identifier, alias or name to the canonical
        SPDX identifier.
    """
    licensing = get_spdx_licensing()
    symbols = list(licensing.known_symbols.values())

    table: dict[str, str] = {}
    for symbol in symbols:
        table[symbol.key.lower()] = symbol.key
    for alias, target in LICENSE_ALIASES.items():
        table.setdefault(alias, table.get(target.lower(), target))
    for symbol in symbols:
        for alias in symbol.aliases:
            table.setdefault(alias.lower(), symbol.key)

    logger.debug("Loaded %d license identifiers and aliases", len(table))
    return table


@lru_cache(maxsize=4096)
def lookup(fragment: str) -> Optional[str]:
    """Look up a single license fragment, case-insensitively.

    Args:
        fragment: Candidate identifier, name or alias.

    Returns:
        The canonical identifier, or None if the fragment is unknown.
    """
    key = fragment.strip().lower()
    if not key:
        return None
    return identifier_table().get(key)


def _split(declaration: str) -> list[str]:
    if _OR_TOKEN.search(declaration):
        return _OR_TOKEN.split(declaration)
    if _AND_TOKEN.search(declaration):
        return _AND_TOKEN.split(declaration)
    return _SEPARATORS.split(declaration)


def normalize_licenses(raw_license: Optional[str]) -> list[str]:
    """Normalize a free-text license declaration.

    Never raises. Blank input yields an empty list, input that is present
    but unrecognizable yields ``["Other"]``.

    Args:
        raw_license: License text as published by the registry.

    Returns:
        Canonical identifiers in first-seen order, without duplicates.
    """
    if not raw_license or not raw_license.strip():
        return []
    if len(raw_license) > MAX_LICENSE_LENGTH:
        return [OTHER]

    declaration = raw_license.lower()
    if declaration.startswith("("):
        declaration = declaration[1:]
    if declaration.endswith(")"):
        declaration = declaration[:-1]

    normalized: list[str] = []
    for fragment in _split(declaration):
        identifier = lookup(fragment)
        if identifier and identifier not in normalized:
            normalized.append(identifier)

    if not normalized:
        logger.debug("Could not normalize license: %s", raw_license)
        return [OTHER]
    return normalized


def format_license(license_id: Optional[str]) -> Optional[str]:
    """Normalize a single identifier such as a repository's detected license.

    Args:
        license_id: License identifier reported by a repository host.

    Returns:
        The canonical identifier, the input unchanged if it is unknown, or
        None for blank input.
    """
    if not license_id or not license_id.strip():
        return None
    if license_id.strip().lower() == OTHER.lower():
        return OTHER
    return lookup(license_id) or license_id.strip()


class LicenseNormalizer:
    """Callable wrapper around :func:`normalize_licenses`.

    Lets collaborators receive the normalizer as a dependency and swap it in
    tests.
    """

    def __call__(self, raw_license: Optional[str]) -> list[str]:
        return normalize_licenses(raw_license)

    def normalize(self, raw_license: Optional[str]) -> list[str]:
        return normalize_licenses(raw_license)

    def format(self, license_id: Optional[str]) -> Optional[str]:
        return format_license(license_id)
