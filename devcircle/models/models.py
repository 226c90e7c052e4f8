from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class MatchProfile(BaseModel):
    """The slice of a user the ranking engine reads."""
    id: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    age: Optional[int] = None

    @classmethod
    def from_user(cls, user: Dict[str, Any]) -> "MatchProfile":
        skills = user.get("skills")
        age = user.get("age")
        return cls(
            id=str(user["_id"]) if user.get("_id") is not None else None,
            skills=[s for s in skills if isinstance(s, str)] if isinstance(skills, (list, tuple)) else [],
            age=age if isinstance(age, int) and not isinstance(age, bool) else None,
        )


class MatchBreakdown(BaseModel):
    skills_weight: int = 80
    age_weight: int = 20
    common_skills: List[str] = Field(default_factory=list)


class MatchResult(BaseModel):
    overall: int
    skills: int
    age: int
    breakdown: MatchBreakdown = Field(default_factory=MatchBreakdown)

    def to_breakdown(self) -> Dict[str, Any]:
        """Shape attached to ranked candidates as ``matchBreakdown``."""
        return {
            "overall": self.overall,
            "skills": self.skills,
            "age": self.age,
            "breakdown": {
                "skillsWeight": self.breakdown.skills_weight,
                "ageWeight": self.breakdown.age_weight,
                "commonSkills": list(self.breakdown.common_skills),
            },
        }
