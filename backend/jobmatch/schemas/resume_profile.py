from typing import Any

from pydantic import BaseModel, Field


class ParsedResumeProfile(BaseModel):
    skills: set[str] = Field(default_factory=set)
    email: str | None = None
    phone: str | None = None
    location: str | None = None
    name: str | None = None
    batch: str | None = None
    summary: str | None = None
    experience: str | None = None
    education: str | None = None

    def to_profile_mapping(self) -> dict[str, Any]:
        """Shape stored alongside a resume so parsed fields can be removed with it."""
        return {
            "parsed_skills": sorted(self.skills),
            "parsed_profile": {
                "email": self.email,
                "phone": self.phone,
                "location": self.location,
                "name": self.name,
                "batch": self.batch,
            },
        }
