from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from app.ai.types import AIClient, ChatMessage
from app.core.budget import TurnBudget
from app.core.config.scoring import get_scoring_value
from app.core.errors import FormatterOverflow
from app.schemas import Intent, Profile, ScoredCandidate
from app.search.categories import compile_term, variants_for

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "…(message truncated)"
_BLOCK_SEPARATOR = "\n\n"
_CATEGORY_LABELS = {
    "name": "name",
    "skills": "skills",
    "roles": "role",
    "locations": "location",
    "education": "education",
    "companies": "company",
    "keywords": "keywords",
}
_EXAMPLE_SEARCHES = (
    "Web developers in Pune",
    "Lawyers in Delhi",
    "Entrepreneurs in Bangalore",
    "Who is Asha Verma",
)
_SUMMARY_PROMPT = (
    "Write a 2-3 line summary of this alumni profile for a chat message. "
    "Mention what they do and why they match the search. Plain text, no emojis, no markdown."
)


def trim_text(text: str, limit: int) -> str:
    collapsed = " ".join((text or "").split())
    if len(collapsed) <= limit:
        return collapsed
    cut = collapsed[: max(0, limit - 1)]
    if " " in cut:
        cut = cut.rsplit(" ", 1)[0]
    return cut.rstrip(" ,.;:") + "…"


def _join_terms(terms: Sequence[str]) -> str:
    return ", ".join(terms)


@dataclass
class RenderedPage:
    text: str
    rendered: list[ScoredCandidate] = field(default_factory=list)
    truncated: bool = False

    @property
    def emails(self) -> list[str]:
        return [candidate.email for candidate in self.rendered]


class ReplyFormatter:
    """Renders chat replies under the channel's message-size ceiling."""

    def __init__(
        self,
        *,
        max_message_chars: int = 1600,
        config: dict[str, Any] | None = None,
        ai_client: AIClient | None = None,
        enrich_summaries: bool = False,
        enrich_concurrency: int = 3,
        enrich_timeout_s: float = 6.0,
    ) -> None:
        self.max_message_chars = max_message_chars
        self._config = config
        self._ai_client = ai_client
        self._enrich = enrich_summaries and ai_client is not None
        self._enrich_concurrency = max(1, enrich_concurrency)
        self._enrich_timeout_s = enrich_timeout_s
        self.about_max_chars = int(get_scoring_value("formatting.about_max_chars", 220, config))
        self.headline_max_chars = int(get_scoring_value("formatting.headline_max_chars", 120, config))
        self.more_command = str(get_scoring_value("formatting.more_command", "more", config))

    # Fixed replies

    def empty_query(self) -> str:
        examples = "\n".join(f"• _{example}_" for example in _EXAMPLE_SEARCHES)
        return f"Tell me who you are looking for, for example:\n{examples}"

    def no_previous(self) -> str:
        return "No previous search found. Please make a new search first.\n\nExample: *Find web developers in Pune*"

    def exhausted(self, query: str | None = None) -> str:
        head = f"No more results for: *{trim_text(query, 120)}*" if query else "No more results for your previous search."
        return f"{head}\n\nTry a different search or modify your criteria."

    def unavailable(self) -> str:
        return "Sorry, the alumni directory is unavailable right now. Please try again in a few minutes."

    def error(self) -> str:
        return "Sorry, something went wrong while searching. Please try again."

    # Blocks

    def header_for(self, intent: Intent, total: int) -> str:
        if intent.has_name and intent.person_name:
            return f'Profiles for "{intent.person_name.title()}"'
        subject = _join_terms(intent.skills + intent.roles) or _join_terms(intent.keywords) or "your search"
        parts = [subject]
        if intent.locations:
            parts.append(f"in {_join_terms(intent.locations)}")
        if intent.education:
            parts.append(f"from {_join_terms(intent.education)}")
        if intent.companies:
            parts.append(f"at {_join_terms(intent.companies)}")
        noun = "match" if total == 1 else "matches"
        return f"Found {total} {noun} for *{' '.join(parts)}*"

    def footer_for(self, remaining: int) -> str:
        if remaining <= 0:
            return ""
        return f"Type *{self.more_command}* to see {remaining} more"

    def _relevant_experience(self, candidate: ScoredCandidate) -> str:
        experience = candidate.profile.experience
        if not experience:
            return ""
        variants: list[str] = []
        for category in ("roles", "skills", "companies"):
            for term in candidate.matched.get(category, []):
                variants.extend(variants_for(category, term))
        chosen = experience[0]
        for entry in experience:
            haystack = " ".join((entry.title, entry.company, entry.description))
            if any(compile_term(variant).search(haystack) for variant in variants):
                chosen = entry
                break
        if chosen.title and chosen.company:
            return f"{chosen.title} at {chosen.company}"
        return chosen.title or chosen.company

    def _badges(self, candidate: ScoredCandidate) -> str:
        parts = []
        for category, terms in candidate.matched.items():
            if not terms or category == "name":
                continue
            label = _CATEGORY_LABELS.get(category, category)
            parts.append(f"{label} ({_join_terms(terms)})")
        return ", ".join(parts)

    def render_block(self, candidate: ScoredCandidate, number: int, *, summary: str | None = None) -> str:
        profile = candidate.profile
        lines = [f"{number}. *{profile.display_name}*"]
        headline = profile.headline or profile.current_role
        if headline:
            lines.append(f"   {trim_text(headline, self.headline_max_chars)}")
        if profile.current_company:
            lines.append(f"   Company: {profile.current_company}")
        if profile.display_location:
            lines.append(f"   Location: {profile.display_location}")
        badges = self._badges(candidate)
        if badges:
            lines.append(f"   Matches: {badges}")
        about = summary or profile.about
        if about:
            lines.append(f"   _{trim_text(about, self.about_max_chars)}_")
        experience = self._relevant_experience(candidate)
        if experience:
            lines.append(f"   Experience: {experience}")
        if profile.linkedin:
            lines.append(f"   LinkedIn: {profile.linkedin}")
        lines.append(f"   Email: {profile.email}")
        return "\n".join(lines)

    def minimal_block(self, profile: Profile, number: int) -> str:
        line = f"{number}. *{profile.display_name}*"
        headline = profile.headline or profile.current_role
        if headline:
            line += f" - {trim_text(headline, 60)}"
        return line

    def _compose(self, header: str, blocks: Sequence[str], footer: str) -> str:
        sections = [header, *blocks]
        if footer:
            sections.append(footer)
        return _BLOCK_SEPARATOR.join(section for section in sections if section)

    def ensure_fits(self, text: str) -> None:
        if len(text) > self.max_message_chars:
            raise FormatterOverflow(f"Reply needs {len(text)} chars, ceiling is {self.max_message_chars}.")

    def truncate(self, text: str) -> str:
        if len(text) <= self.max_message_chars:
            return text
        keep = max(0, self.max_message_chars - len(TRUNCATION_MARKER))
        return text[:keep].rstrip() + TRUNCATION_MARKER

    def fit_blocks(
        self,
        header: str,
        candidates: Sequence[ScoredCandidate],
        *,
        start_number: int,
        remaining: int,
        summaries: dict[str, str] | None = None,
        footer_for: Callable[[int], str] | None = None,
    ) -> RenderedPage:
        """Add blocks in order while the whole message stays under the ceiling.

        `remaining` counts candidates beyond `candidates`; anything not rendered
        here is added to it in the footer.
        """
        footer_for = footer_for or self.footer_for
        summaries = summaries or {}
        blocks: list[str] = []
        rendered: list[ScoredCandidate] = []
        for index, candidate in enumerate(candidates):
            block = self.render_block(candidate, start_number + index, summary=summaries.get(candidate.email))
            left_over = remaining + len(candidates) - (index + 1)
            text = self._compose(header, blocks + [block], footer_for(left_over))
            if len(text) > self.max_message_chars:
                break
            blocks.append(block)
            rendered.append(candidate)

        if rendered:
            left_over = remaining + len(candidates) - len(rendered)
            return RenderedPage(text=self._compose(header, blocks, footer_for(left_over)), rendered=rendered)

        if not candidates:
            return RenderedPage(text=self._compose(header, [], footer_for(remaining)))

        first = candidates[0]
        text = self._compose(
            header,
            [self.minimal_block(first.profile, start_number)],
            footer_for(remaining + len(candidates) - 1),
        )
        try:
            self.ensure_fits(text)
        except FormatterOverflow as exc:
            logger.warning("formatter_overflow code=%s chars=%s", exc.code, len(text))
            return RenderedPage(text=self.truncate(text), rendered=[first], truncated=True)
        return RenderedPage(text=text, rendered=[first])

    # Enrichment

    async def _summarize(
        self,
        candidate: ScoredCandidate,
        intent: Intent | None,
        semaphore: asyncio.Semaphore,
        budget: TurnBudget,
    ) -> tuple[str, str | None]:
        if self._ai_client is None:
            return candidate.email, None
        profile = candidate.profile
        facts = [
            f"Name: {profile.display_name}",
            f"Headline: {profile.headline}",
            f"Role: {profile.current_role} at {profile.current_company}",
            f"Location: {profile.display_location}",
            f"Skills: {', '.join(profile.skills[:10])}",
            f"About: {trim_text(profile.about, 600)}",
        ]
        if intent is not None:
            facts.append(f"Search: {', '.join(intent.skills + intent.roles + intent.locations + intent.keywords)}")
        messages = [
            ChatMessage(role="system", content=_SUMMARY_PROMPT),
            ChatMessage(role="user", content="\n".join(facts)),
        ]
        async with semaphore:
            timeout = budget.cap(self._enrich_timeout_s)
            if timeout <= 0:
                return candidate.email, None
            try:
                summary = await asyncio.wait_for(self._ai_client.complete_text(messages), timeout=timeout)
            except Exception as exc:  # noqa: BLE001 - trimmed biography is the fallback
                logger.warning("summary_enrichment_failed error=%s", type(exc).__name__)
                return candidate.email, None
        summary = (summary or "").strip()
        return candidate.email, (summary or None)

    async def enrich(
        self,
        candidates: Sequence[ScoredCandidate],
        intent: Intent | None,
        budget: TurnBudget | None,
    ) -> dict[str, str]:
        if not self._enrich or not candidates or budget is None or budget.expired:
            return {}
        semaphore = asyncio.Semaphore(self._enrich_concurrency)
        results = await asyncio.gather(
            *(self._summarize(candidate, intent, semaphore, budget) for candidate in candidates)
        )
        return {email: summary for email, summary in results if summary}

    # Replies

    async def render_results(
        self,
        intent: Intent,
        candidates: Sequence[ScoredCandidate],
        *,
        total: int,
        remaining: int,
        budget: TurnBudget | None = None,
    ) -> RenderedPage:
        summaries = await self.enrich(candidates, intent, budget)
        return self.fit_blocks(
            self.header_for(intent, total),
            candidates,
            start_number=1,
            remaining=remaining,
            summaries=summaries,
        )

    async def render_more(
        self,
        candidates: Sequence[ScoredCandidate],
        *,
        start_number: int,
        total: int,
        remaining: int,
        intent: Intent | None = None,
        budget: TurnBudget | None = None,
    ) -> RenderedPage:
        summaries = await self.enrich(candidates, intent, budget)
        header = f"*More matches* ({total} total)"

        def footer_for(left_over: int) -> str:
            return self.footer_for(left_over) or "That's all the results. Try a new search!"

        return self.fit_blocks(
            header,
            candidates,
            start_number=start_number,
            remaining=remaining,
            summaries=summaries,
            footer_for=footer_for,
        )

    def render_no_results(self, intent: Intent, query: str, samples: Sequence[Profile] = ()) -> RenderedPage:
        lines = [f'*No profiles found for:* "{trim_text(query, 120)}"']
        if intent.has_name and intent.person_name:
            lines.append(f"Person named *{intent.person_name.title()}* not found. Check the spelling or try part of the name.")
        elif intent.locations and (intent.skills or intent.roles):
            searched = _join_terms((intent.skills + intent.roles)[:3])
            lines.append(f"Searched: _{searched} in {_join_terms(intent.locations)}_")
            lines.append("*Try:*\n• Remove the location\n• Use broader terms\n• Check spelling")
        elif intent.locations:
            lines.append(f"No alumni found in *{_join_terms(intent.locations)}*. Try a nearby city or drop the location.")
        elif intent.skills or intent.roles:
            lines.append(f"No profiles with *{_join_terms((intent.skills + intent.roles)[:3])}*. Try related or broader terms.")
        else:
            lines.append("Try different keywords or check the spelling.")

        sections = ["\n".join(lines)]
        rendered: list[Profile] = []
        if samples:
            sample_lines = ["Meanwhile, here are alumni you could connect with:"]
            for number, profile in enumerate(samples, start=1):
                sample_lines.append(self.minimal_block(profile, number))
                rendered.append(profile)
            sections.append("\n".join(sample_lines))
        sections.append("*Example searches:*\n" + "\n".join(f"• _{example}_" for example in _EXAMPLE_SEARCHES))

        text = _BLOCK_SEPARATOR.join(sections)
        truncated = len(text) > self.max_message_chars
        return RenderedPage(
            text=self.truncate(text),
            rendered=[ScoredCandidate(profile=profile) for profile in rendered],
            truncated=truncated,
        )
