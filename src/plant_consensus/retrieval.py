"""SQLite lookup of host plant EPPO codes by species name."""

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .config import Config
from .normalization import name_key, tokenize

logger = logging.getLogger(__name__)


@dataclass
class HostCode:
    """Candidate EPPO code for a host plant with matching score."""

    eppocode: str
    dtcode: str
    fullname: str
    score: float
    token_overlap: int


def _score_host(dtcode: str, fullname: str, species: str) -> Tuple[float, int]:
    """Score a database name against a species name.

    Returns:
        Tuple of (score, token_overlap)
    """
    name_tokens = set(tokenize(fullname))
    query_tokens = set(tokenize(species))
    overlap = len(query_tokens & name_tokens)

    overlap_ratio = overlap / max(len(query_tokens), 1)
    exact_bonus = Config.EXACT_NAME_BONUS if name_key(fullname) == name_key(species) else 0.0
    dtcode_bonus = Config.DTCODE_BONUS if dtcode == Config.PLANT_DTCODE else 0.0

    score = overlap_ratio + exact_bonus + dtcode_bonus
    return (min(score, Config.MAX_SCORE_CAP), overlap)


def query_host_codes(
    sqlite_path: Path, species: str, max_candidates: int = None
) -> List[HostCode]:
    """Query the EPPO SQLite dump for codes whose names match a species.

    Args:
        sqlite_path: Path to SQLite database
        species: Common or scientific species name
        max_candidates: Maximum number of candidates to return

    Returns:
        List of HostCode sorted by score, best first
    """
    if max_candidates is None:
        max_candidates = Config.MAX_CANDIDATES

    tokens = tokenize(species)
    if not tokens or not sqlite_path.exists():
        return []

    conn = sqlite3.connect(str(sqlite_path))
    conn.row_factory = sqlite3.Row
    try:
        placeholders = " OR ".join(["n.fullname LIKE ?" for _ in tokens])
        params = [f"%{t}%" for t in tokens]

        sql = f"""
            SELECT DISTINCT c.eppocode, c.dtcode, n.fullname
            FROM t_codes c
            JOIN t_names n ON c.codeid = n.codeid
            WHERE c.status = 'A' AND n.status = 'A'
              AND ({placeholders})
        """
        rows = list(conn.execute(sql, params).fetchall())
    finally:
        conn.close()

    # Keep the best-scoring name per code
    best: Dict[Tuple[str, str], HostCode] = {}
    for row in rows:
        key = (row["eppocode"], row["dtcode"])
        fullname = row["fullname"] or ""
        score, overlap = _score_host(row["dtcode"], fullname, species)
        current = best.get(key)
        if current is None or score > current.score:
            best[key] = HostCode(
                eppocode=row["eppocode"],
                dtcode=row["dtcode"],
                fullname=fullname,
                score=score,
                token_overlap=overlap,
            )

    candidates = sorted(best.values(), key=lambda c: (-c.score, c.eppocode))
    return candidates[:max_candidates]


def select_host(candidates: List[HostCode], threshold: float = None) -> Optional[HostCode]:
    """Select the best host code above threshold.

    Args:
        candidates: Candidates sorted best first
        threshold: Minimum score threshold

    Returns:
        Best candidate or None if no candidate meets threshold
    """
    if threshold is None:
        threshold = Config.HOST_CONFIDENCE_THRESHOLD

    if not candidates:
        return None
    best = candidates[0]
    if best.score < threshold:
        logger.debug("Best host code %s scored %.2f, below %.2f", best.eppocode, best.score, threshold)
        return None
    return best
