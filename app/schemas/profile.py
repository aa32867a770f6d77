from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _as_text_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple, set)):
        return []
    return [str(item).strip() for item in value if item is not None and str(item).strip()]


class ExperienceEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = ""
    company: str = ""
    description: str = ""
    location: str = ""


class EducationEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    school: str = ""
    degree: str = ""
    field: str = ""


class Profile(BaseModel):
    """One alumni profile document as read from the profile store."""

    model_config = ConfigDict(extra="ignore")

    email: str
    linked_emails: list[str] = Field(default_factory=list)
    name: str = ""
    headline: str = ""
    about: str = ""
    current_role: str = ""
    current_company: str = ""
    skills: list[str] = Field(default_factory=list)
    experience: list[ExperienceEntry] = Field(default_factory=list)
    education: list[EducationEntry] = Field(default_factory=list)
    location: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    linkedin: str = ""
    offers: list[str] = Field(default_factory=list)
    seeking: list[str] = Field(default_factory=list)
    impact_tags: list[str] = Field(default_factory=list)
    completed: bool = False

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        normalized = (value or "").strip().lower()
        if "@" not in normalized:
            raise ValueError("profile email must contain '@'")
        return normalized

    @field_validator("linked_emails", mode="before")
    @classmethod
    def _normalize_linked_emails(cls, value: Any) -> list[str]:
        return [item.lower() for item in _as_text_list(value)]

    @field_validator("skills", "offers", "seeking", "impact_tags", mode="before")
    @classmethod
    def _coerce_text_list(cls, value: Any) -> list[str]:
        return _as_text_list(value)

    @field_validator(
        "name",
        "headline",
        "about",
        "current_role",
        "current_company",
        "location",
        "city",
        "state",
        "country",
        "linkedin",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @property
    def display_name(self) -> str:
        return self.name or "Alumni Member"

    @property
    def display_location(self) -> str:
        if self.location:
            return self.location
        parts = [part for part in (self.city, self.state, self.country) if part]
        return ", ".join(parts)

    @property
    def all_emails(self) -> list[str]:
        emails = [self.email]
        emails.extend(email for email in self.linked_emails if email not in emails)
        return emails
