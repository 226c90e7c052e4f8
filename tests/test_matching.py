import logging
import math
from types import MappingProxyType

import numpy as np
import pytest
from bson import ObjectId

from devcircle.models.models import MatchProfile
from devcircle.services.matching import (
    CANONICAL_SKILLS,
    SKILL_CATALOG,
    SKILL_SYNONYMS,
    age_similarity,
    calculate_match_percentage,
    catalog_dimension,
    common_skills,
    cosine_similarity,
    rank_users_by_match,
    to_percentage,
    vectorize,
)


@pytest.fixture
def requester():
    return {"_id": "requester", "skills": ["JavaScript", "React"], "age": 25}


@pytest.fixture
def candidate_a():
    return {"_id": "a", "firstName": "Annie", "skills": ["javascript", "react", "node.js"], "age": 27}


@pytest.fixture
def candidate_b():
    return {"_id": "b", "firstName": "Bruno", "skills": ["python"], "age": 25}


class TestSkillCatalog:

    def test_catalog_is_read_only(self):
        assert isinstance(SKILL_CATALOG, MappingProxyType)
        with pytest.raises(TypeError):
            SKILL_CATALOG["cobol"] = 99

    def test_dimension_matches_canonical_skills(self):
        assert catalog_dimension() == len(CANONICAL_SKILLS)
        assert SKILL_CATALOG["javascript"] == 0
        assert SKILL_CATALOG["node.js"] == 4
        assert SKILL_CATALOG["automation"] == len(CANONICAL_SKILLS) - 1

    def test_canonical_indices_are_unique(self):
        indices = [SKILL_CATALOG[name] for name in CANONICAL_SKILLS]
        assert len(set(indices)) == len(indices)

    @pytest.mark.parametrize("alias,canonical", sorted(SKILL_SYNONYMS.items()))
    def test_synonyms_share_the_canonical_dimension(self, alias, canonical):
        assert np.array_equal(vectorize([alias]), vectorize([canonical]))
        assert vectorize([alias]).sum() == 1


class TestVectorize:

    def test_binary_presence(self):
        vector = vectorize(["JavaScript", "  react ", "javascript"])
        assert vector.shape == (len(CANONICAL_SKILLS),)
        assert vector[SKILL_CATALOG["javascript"]] == 1
        assert vector[SKILL_CATALOG["react"]] == 1
        assert vector.sum() == 2

    def test_unknown_skills_are_ignored(self):
        assert vectorize(["cobol", "fortran"]).sum() == 0
        assert vectorize(["cobol", "python"]).sum() == 1

    @pytest.mark.parametrize("skills", [None, "python", 42, {"skills": "python"}])
    def test_non_sequence_yields_zero_vector(self, skills):
        vector = vectorize(skills)
        assert vector.shape == (len(CANONICAL_SKILLS),)
        assert not vector.any()

    def test_non_string_entries_are_skipped(self):
        assert vectorize([None, 3, "python"]).sum() == 1

    def test_custom_catalog(self):
        catalog = MappingProxyType({"a": 0, "b": 1, "bee": 1})
        assert list(vectorize(["bee"], catalog)) == [0, 1]


class TestCosineSimilarity:

    def test_identical_vectors(self):
        v = vectorize(["python", "docker"])
        assert cosine_similarity(v, v) == pytest.approx(1.0)

    def test_disjoint_vectors(self):
        assert cosine_similarity(vectorize(["python"]), vectorize(["java"])) == 0

    def test_zero_vector(self):
        zero = vectorize([])
        assert cosine_similarity(zero, vectorize(["python"])) == 0
        assert cosine_similarity(zero, zero) == 0

    def test_length_mismatch_returns_zero(self):
        assert cosine_similarity([1, 1], [1, 1, 1]) == 0

    def test_partial_overlap(self):
        score = cosine_similarity([1, 1, 0], [1, 1, 1])
        assert score == pytest.approx(2 / (math.sqrt(2) * math.sqrt(3)))


class TestAgeSimilarity:

    def test_same_age(self):
        assert age_similarity(30, 30) == 1

    def test_twenty_year_gap(self):
        assert age_similarity(20, 40) == 0

    def test_gap_is_clamped(self):
        assert age_similarity(20, 50) == 0

    def test_linear_decay(self):
        assert age_similarity(25, 27) == pytest.approx(0.9)

    def test_numpy_ages(self):
        assert age_similarity(np.int64(30), np.int64(30)) == 1
        assert age_similarity(np.int64(25), 27.0) == pytest.approx(0.9)

    @pytest.mark.parametrize("missing", [None, 0, "", "thirty", True])
    def test_missing_age(self, missing):
        assert age_similarity(30, missing) == 0
        assert age_similarity(missing, 30) == 0


class TestToPercentage:

    @pytest.mark.parametrize("value,expected", [
        (0, 0), (1, 100), (0.8332, 83), (0.8165, 82), (0.125, 13), (0.005, 1), (0.2, 20),
    ])
    def test_rounds_half_away_from_zero(self, value, expected):
        assert to_percentage(value) == expected


class TestCommonSkills:

    def test_keeps_first_profile_order(self):
        assert common_skills(["React", "JavaScript", "go"], ["javascript", "react"]) == ["react", "javascript"]

    def test_duplicates_are_kept(self):
        assert common_skills(["python", "Python"], ["python"]) == ["python", "python"]

    def test_missing_side(self):
        assert common_skills(None, ["python"]) == []
        assert common_skills(["python"], None) == []

    def test_unrecognized_skills_still_count(self):
        assert common_skills(["cobol"], [" COBOL "]) == ["cobol"]


class TestCalculateMatchPercentage:

    def test_identical_profiles(self):
        profile = {"skills": ["javascript", "react"], "age": 30}
        result = calculate_match_percentage(profile, dict(profile))
        assert result.overall == 100
        assert result.skills == 100
        assert result.age == 100

    def test_disjoint_skills_and_large_age_gap(self):
        result = calculate_match_percentage(
            {"skills": ["python"], "age": 20}, {"skills": ["java"], "age": 45}
        )
        assert result.overall == 0

    def test_end_to_end_scenario(self, requester, candidate_a, candidate_b):
        a = calculate_match_percentage(requester, candidate_a)
        assert (a.skills, a.age, a.overall) == (82, 90, 83)
        assert a.breakdown.common_skills == ["javascript", "react"]

        b = calculate_match_percentage(requester, candidate_b)
        assert (b.skills, b.age, b.overall) == (0, 100, 20)
        assert b.breakdown.common_skills == []

    def test_missing_skills_degrade_gracefully(self):
        result = calculate_match_percentage({"age": 30}, {"skills": None, "age": 30})
        assert result.skills == 0
        assert result.overall == 20
        assert result.breakdown.common_skills == []

    def test_accepts_models(self):
        result = calculate_match_percentage(
            MatchProfile(id="1", skills=["go"], age=40), MatchProfile(id="2", skills=["golang"], age=40)
        )
        assert result.overall == 100

    def test_profile_from_user_document(self, candidate_a):
        user_id = ObjectId()
        profile = MatchProfile.from_user({"_id": user_id, "skills": ["react", None, 3], "age": "27"})
        assert profile.id == str(user_id)
        assert profile.skills == ["react"]
        assert profile.age is None

        ranked = rank_users_by_match(profile, [{"_id": user_id, "skills": ["react"]}, candidate_a])
        assert [c["_id"] for c in ranked] == ["a"]

    def test_breakdown_shape(self, requester, candidate_a):
        breakdown = calculate_match_percentage(requester, candidate_a).to_breakdown()
        assert breakdown == {
            "overall": 83,
            "skills": 82,
            "age": 90,
            "breakdown": {"skillsWeight": 80, "ageWeight": 20, "commonSkills": ["javascript", "react"]},
        }


class TestRankUsersByMatch:

    def test_orders_by_score(self, requester, candidate_a, candidate_b):
        ranked = rank_users_by_match(requester, [candidate_b, candidate_a])
        assert [c["_id"] for c in ranked] == ["a", "b"]
        assert ranked[0]["matchPercentage"] == 83
        assert ranked[1]["matchPercentage"] == 20
        assert ranked[0]["firstName"] == "Annie"
        assert ranked[0]["matchBreakdown"]["breakdown"]["commonSkills"] == ["javascript", "react"]

    def test_excludes_requester(self, requester, candidate_a):
        ranked = rank_users_by_match(requester, [dict(requester), candidate_a])
        assert all(c["_id"] != requester["_id"] for c in ranked)
        assert len(ranked) == 1

    def test_excludes_requester_across_id_types(self):
        user_id = ObjectId()
        requester = {"_id": user_id, "skills": ["python"], "age": 30}
        ranked = rank_users_by_match(requester, [{"_id": str(user_id), "skills": ["python"], "age": 30}])
        assert ranked == []

    def test_threshold_filters_and_sorts(self, requester, candidate_a, candidate_b):
        extra = {"_id": "c", "skills": ["react"], "age": 40}
        ranked = rank_users_by_match(requester, [candidate_b, extra, candidate_a], min_threshold=50)
        scores = [c["matchPercentage"] for c in ranked]
        assert all(score >= 50 for score in scores)
        assert scores == sorted(scores, reverse=True)
        assert "b" not in [c["_id"] for c in ranked]

    def test_threshold_is_inclusive(self, requester, candidate_b):
        assert len(rank_users_by_match(requester, [candidate_b], min_threshold=20)) == 1
        assert rank_users_by_match(requester, [candidate_b], min_threshold=21) == []

    def test_ties_keep_input_order(self, requester):
        twins = [{"_id": str(i), "skills": ["javascript", "react"], "age": 25} for i in range(5)]
        ranked = rank_users_by_match(requester, twins)
        assert [c["_id"] for c in ranked] == ["0", "1", "2", "3", "4"]

    def test_candidates_are_not_mutated(self, requester, candidate_a):
        rank_users_by_match(requester, [candidate_a])
        assert "matchPercentage" not in candidate_a

    def test_empty_candidates(self, requester):
        assert rank_users_by_match(requester, []) == []
        assert rank_users_by_match(requester, None) == []

    def test_deterministic(self, requester, candidate_a, candidate_b):
        first = rank_users_by_match(requester, [candidate_a, candidate_b])
        second = rank_users_by_match(requester, [candidate_a, candidate_b])
        assert first == second

    def test_injected_logger(self, requester, candidate_a, caplog):
        logger = logging.getLogger("devcircle.tests.ranking")
        with caplog.at_level(logging.DEBUG, logger="devcircle.tests.ranking"):
            rank_users_by_match(requester, [candidate_a], logger=logger)
        assert any("Ranked 1 candidates" in r.getMessage() for r in caplog.records)

    def test_silent_without_logger(self, requester, candidate_a, caplog):
        with caplog.at_level(logging.DEBUG):
            rank_users_by_match(requester, [candidate_a])
        assert not any("candidate" in r.getMessage().lower() for r in caplog.records)
