"""
Coin Radar - Grade Label Vocabulary

Sheldon-scale grade labels as they appear in pricing table headers
("MS60", "VF20", "PF65", "MS65+", "PR67DCAM"). A table whose header row
contains none of these is not a pricing grid.
"""

from __future__ import annotations

import re

GRADE_PREFIXES = ("P", "FR", "AG", "G", "VG", "F", "VF", "XF", "EF", "AU", "MS", "SP", "PR", "PF")

# Designations printed after the number: color (RD/RB/BN), strike (FB, FS, FH, FBL, DMPL, PL),
# proof contrast (CAM, DCAM, UCAM), and star/plus markers.
_GRADE_LABEL = re.compile(
    r"^(?:" + "|".join(sorted(GRADE_PREFIXES, key=len, reverse=True)) + r")"
    r"\d{1,2}\+?"
    r"(?:RD|RB|BN|FBL|FB|FS|FH|DMPL|PL|DCAM|UCAM|CAM|\+)*$"
)

# Table-wide, non-grade columns that are still price columns
SPECIAL_LABELS = frozenset({"OGP"})


def normalize_grade(label: str) -> str:
    """
    Canonical header form: uppercase, no markers, no inner spaces or hyphens.

        " ms 60* " -> "MS60"
        "MS-65+"   -> "MS65+"
    """
    text = label.strip().upper().replace("*", "")
    return re.sub(r"[\s\-]+", "", text)


def is_grade_label(label: str) -> bool:
    normalized = normalize_grade(label)
    return bool(_GRADE_LABEL.match(normalized)) or normalized in SPECIAL_LABELS

