"""
Candidate ranking engine.

Scores candidate profiles against a requesting profile by combining skill
overlap (cosine similarity of binary skill vectors) with age proximity, then
ranks them by descending score. Nothing here touches the database, and
malformed skills or ages degrade to a zero score instead of raising.
"""
import logging
import numbers
from collections.abc import Mapping
from decimal import Decimal, ROUND_HALF_UP
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from devcircle.models.models import MatchBreakdown, MatchResult
from devcircle.utils.utils import same_id

SKILLS_WEIGHT = 0.8
AGE_WEIGHT = 0.2
MAX_AGE_GAP = 20

# Order defines the vector dimension of each skill
CANONICAL_SKILLS = (
    "javascript", "python", "java", "react", "node.js", "angular", "vue",
    "typescript", "php", "c++", "c#", "ruby", "go", "rust", "swift", "kotlin",
    "flutter", "react native", "mongodb", "mysql", "postgresql", "redis",
    "docker", "kubernetes", "aws", "azure", "gcp", "machine learning", "ai",
    "data science", "blockchain", "cybersecurity", "devops", "frontend",
    "backend", "fullstack", "mobile development", "web development",
    "game development", "ui/ux", "design", "testing", "automation",
)

SKILL_SYNONYMS = {
    "js": "javascript",
    "ts": "typescript",
    "reactjs": "react",
    "react.js": "react",
    "nodejs": "node.js",
    "node": "node.js",
    "angularjs": "angular",
    "vuejs": "vue",
    "vue.js": "vue",
    "cpp": "c++",
    "csharp": "c#",
    "golang": "go",
    "react-native": "react native",
    "postgres": "postgresql",
    "k8s": "kubernetes",
    "ml": "machine learning",
    "full stack": "fullstack",
    "full-stack": "fullstack",
    "ux/ui": "ui/ux",
}

_SEQUENCE_TYPES = (list, tuple)


def build_skill_catalog(canonical: Iterable[str], synonyms: Mapping) -> Mapping:
    """Map every canonical skill and alias to its vector index (read-only)."""
    index = {name: position for position, name in enumerate(canonical)}
    for alias, target in synonyms.items():
        index[alias] = index[target]
    return MappingProxyType(index)


SKILL_CATALOG = build_skill_catalog(CANONICAL_SKILLS, SKILL_SYNONYMS)


def catalog_dimension(catalog: Mapping = SKILL_CATALOG) -> int:
    return max(catalog.values()) + 1 if catalog else 0


def normalize_skill(skill: Any) -> Optional[str]:
    if not isinstance(skill, str):
        return None
    return skill.strip().lower()


def vectorize(skills: Any, catalog: Mapping = SKILL_CATALOG) -> np.ndarray:
    """
    Binary presence vector for a skill list.

    Unknown names and non-string entries are ignored; anything that is not a
    list or tuple yields the all-zero vector.
    """
    vector = np.zeros(catalog_dimension(catalog), dtype=np.float64)
    if not isinstance(skills, _SEQUENCE_TYPES):
        return vector
    for skill in skills:
        position = catalog.get(normalize_skill(skill))
        if position is not None:
            vector[position] = 1.0
    return vector


def cosine_similarity(vector_a, vector_b) -> float:
    a = np.asarray(vector_a, dtype=np.float64)
    b = np.asarray(vector_b, dtype=np.float64)
    if a.shape != b.shape:
        return 0.0
    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return max(0.0, min(1.0, float(np.dot(a, b)) / (norm_a * norm_b)))


def _valid_age(age: Any) -> bool:
    return isinstance(age, numbers.Real) and not isinstance(age, (bool, np.bool_)) and age > 0


def age_similarity(age1: Any, age2: Any) -> float:
    """Linear decay to zero at a 20 year gap; a missing age scores 0."""
    if not _valid_age(age1) or not _valid_age(age2):
        return 0.0
    return max(0.0, 1 - abs(age1 - age2) / MAX_AGE_GAP)


def to_percentage(value: float) -> int:
    """Scale a [0, 1] similarity to an integer percentage, ties away from zero."""
    scaled = Decimal(repr(float(value))) * 100
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def common_skills(skills_a: Any, skills_b: Any) -> List[str]:
    """Skills of A also present in B, in A's order, duplicates kept."""
    if not isinstance(skills_a, _SEQUENCE_TYPES) or not isinstance(skills_b, _SEQUENCE_TYPES):
        return []
    normalized_b = {normalize_skill(s) for s in skills_b if isinstance(s, str)}
    normalized_a = [normalize_skill(s) for s in skills_a if isinstance(s, str)]
    return [skill for skill in normalized_a if skill in normalized_b]


def _as_dict(profile: Any) -> Dict[str, Any]:
    if isinstance(profile, Mapping):
        return dict(profile)
    if hasattr(profile, "dict"):
        return profile.dict()
    return dict(vars(profile))


def _profile_id(profile: Mapping) -> Any:
    return profile.get("_id", profile.get("id"))


def calculate_match_percentage(profile_a: Any, profile_b: Any, catalog: Mapping = SKILL_CATALOG) -> MatchResult:
    a = _as_dict(profile_a)
    b = _as_dict(profile_b)

    skills_score = cosine_similarity(vectorize(a.get("skills"), catalog), vectorize(b.get("skills"), catalog))
    age_score = age_similarity(a.get("age"), b.get("age"))
    overall = skills_score * SKILLS_WEIGHT + age_score * AGE_WEIGHT

    return MatchResult(
        overall=to_percentage(overall),
        skills=to_percentage(skills_score),
        age=to_percentage(age_score),
        breakdown=MatchBreakdown(
            skills_weight=to_percentage(SKILLS_WEIGHT),
            age_weight=to_percentage(AGE_WEIGHT),
            common_skills=common_skills(a.get("skills"), b.get("skills")),
        ),
    )


def rank_users_by_match(
    requester: Any,
    candidates: Iterable[Any],
    min_threshold: int = 0,
    logger: Optional[logging.Logger] = None,
    catalog: Mapping = SKILL_CATALOG,
) -> List[Dict[str, Any]]:
    """
    Rank candidates against the requester.

    The requester is never scored against itself. Each surviving candidate is
    a copy of its attributes plus ``matchPercentage`` and ``matchBreakdown``.
    Candidates below ``min_threshold`` are dropped. Equal scores keep their
    input order.
    """
    requester_data = _as_dict(requester)
    requester_id = _profile_id(requester_data)

    ranked = []
    for candidate in candidates or []:
        data = _as_dict(candidate)
        candidate_id = _profile_id(data)
        if same_id(candidate_id, requester_id):
            continue

        match = calculate_match_percentage(requester_data, data, catalog)
        if logger:
            logger.debug(
                f"Scored candidate {candidate_id}: overall={match.overall} "
                f"skills={match.skills} age={match.age}"
            )
        if match.overall < min_threshold:
            continue

        data["matchPercentage"] = match.overall
        data["matchBreakdown"] = match.to_breakdown()
        ranked.append(data)

    # list.sort is stable, reverse=True included
    ranked.sort(key=lambda c: c["matchPercentage"], reverse=True)

    if logger:
        logger.info(f"Ranked {len(ranked)} candidates for {requester_id} (min_threshold={min_threshold})")
    return ranked
