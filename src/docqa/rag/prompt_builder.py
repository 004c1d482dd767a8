"""Prompt construction for the RAG pipeline.

The system prompt pins an exact answer schema (Summary, Overview, Steps or
Detailed Information, References) because chat surfaces split answers on
those headings. Product and vendor wording come from config; the schema
itself is fixed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from docqa.models import Citation, SearchResult


@dataclass
class PromptOptions:
    prefer_steps: bool = False
    max_tokens: int = 1500
    include_references: bool = True


@dataclass
class PromptResult:
    system_prompt: str
    user_prompt: str
    citations: list[Citation] = field(default_factory=list)


@dataclass
class ValidationResult:
    valid: bool
    issues: list[str] = field(default_factory=list)


_HEADING_RE = re.compile(r"^ {0,3}#{1,6}\s+\S", re.MULTILINE)
_NUMBERED_RE = re.compile(r"\d+\.")


def extract_citations(results: list[SearchResult]) -> list[Citation]:
    """One citation per unique URL, first occurrence wins, encounter order kept."""
    seen: dict[str, Citation] = {}
    for result in results:
        url, title = result.metadata.url, result.metadata.title
        if url and title and url not in seen:
            seen[url] = Citation(title=title, url=url)
    return list(seen.values())


class PromptBuilder:
    """Build system/user prompts and the fixed no-data answer.

    Args:
        product_name: Product the assistant is an expert in.
        docs_name: Short name of the documentation set.
        vendor: Vendor whose support the fallback answer points to.
        support_url: Support link for the no-data answer.
        community_url: Community link for the no-data answer.
    """

    def __init__(
        self,
        product_name: str = "PowerSchool PSSIS-Admin",
        docs_name: str = "PSSIS-Admin",
        vendor: str = "PowerSchool",
        support_url: str = "https://support.powerschool.com/",
        community_url: str = "https://community.powerschool.com/",
    ) -> None:
        self.product_name = product_name
        self.docs_name = docs_name
        self.vendor = vendor
        self.support_url = support_url
        self.community_url = community_url

    @property
    def fallback_sentence(self) -> str:
        """Exact sentence the model must use when context is insufficient."""
        return (
            f"I couldn't find a documented answer in the {self.docs_name} docs. "
            f"Please consult {self.vendor} support or check related documentation."
        )

    # ------------------------------------------------------------------
    # Prompts
    # ------------------------------------------------------------------

    def build_prompt(
        self,
        query: str,
        context: str,
        retrieved_docs: list[SearchResult],
        options: PromptOptions | None = None,
    ) -> PromptResult:
        opts = options or PromptOptions()
        return PromptResult(
            system_prompt=self.build_system_prompt(opts.prefer_steps, opts.include_references),
            user_prompt=self.build_user_prompt(query, context, retrieved_docs),
            citations=extract_citations(retrieved_docs),
        )

    def build_system_prompt(self, prefer_steps: bool, include_references: bool) -> str:
        if prefer_steps:
            body_title = "Step-by-Step Instructions"
            body_rules = (
                "- Provide clear, numbered step-by-step instructions\n"
                "- Each step should be actionable and specific\n"
                '- Include navigation paths (e.g., "Navigate to Setup > District > General")\n'
                "- Mention any prerequisites or permissions needed"
            )
        else:
            body_title = "Detailed Information"
            body_rules = (
                "- Provide detailed information about the topic\n"
                "- Include key concepts and best practices\n"
                "- Explain any configuration options or settings"
            )

        references = ""
        if include_references:
            references = (
                "### 4. References (Required)\n"
                '- Always include a "References" section at the end\n'
                f"- List the specific {self.vendor} documentation pages used\n"
                '- Format as: "- [Page Title](URL)"\n'
                "- Only include URLs from the provided context\n"
            )

        return f"""You are a {self.product_name} expert assistant. Your role is to provide accurate, helpful information about {self.product_name} based on the provided documentation context.

## Response Structure Requirements

You MUST follow this exact structure for every response:

### 1. Summary (Required)
- Start with exactly one sentence that summarizes the answer
- Keep it concise and directly address the user's question

### 2. Overview (Required)
- Provide 2-4 sentences explaining the feature or concept
- Give context about when and why it's used
- Explain its importance in {self.product_name}

### 3. {body_title} (Required)
{body_rules}

{references}
## Response Guidelines

- **Use Markdown formatting** with proper headings (##, ###), lists, and code blocks
- **Be specific and actionable** - avoid vague statements
- **Stay within the {self.vendor} context** - don't provide generic advice
- **If configuration steps are requested**, always provide numbered lists
- **Use proper {self.vendor} terminology** from the documentation
- **Include relevant warnings or prerequisites** when applicable

## Important Rules

1. **Only use information from the provided context** - do not add information from your general knowledge
2. **If the context doesn't contain sufficient information**, state: "{self.fallback_sentence}"
3. **Always cite sources** using the exact URLs provided in the context
4. **Keep responses professional and technical** but accessible
5. **Focus on practical, actionable guidance** for administrators

## Context Usage

- The context below contains relevant excerpts from {self.product_name} documentation
- Each excerpt includes the source URL
- Use this information to provide accurate, up-to-date guidance
- Reference specific sections when helpful (e.g., "As noted in the User Management guide...")"""

    def build_user_prompt(
        self, query: str, context: str, retrieved_docs: list[SearchResult]
    ) -> str:
        if context.strip():
            context_section = (
                f"## Context from {self.product_name} Documentation\n\n{context}\n\n---"
            )
        else:
            context_section = "## No relevant documentation found in the knowledge base."

        metadata_section = ""
        if retrieved_docs:
            lines = ["## Retrieved Documents Metadata"]
            for i, doc in enumerate(retrieved_docs, start=1):
                meta = doc.metadata
                lines.append(
                    f"{i}. **{meta.title}** (Score: {doc.score:.3f})\n"
                    f"   - URL: {meta.url}\n"
                    f"   - Section: {meta.section or 'N/A'}\n"
                    f"   - Content Type: {meta.content_type}"
                )
            metadata_section = "\n".join(lines) + "\n\n---"

        return (
            f"{context_section}\n\n"
            f"{metadata_section}\n\n"
            f"## User Question\n{query}\n\n"
            "Please provide a comprehensive answer following the required structure above. "
            "Use only the information from the provided context."
        )

    def build_step_extraction_prompt(self, response: str) -> str:
        """Prompt asking a model to pull numbered steps out of *response* as JSON."""
        return (
            f"Extract the numbered steps from this {self.product_name} response. "
            "Return only the step text without numbers, one step per line.\n\n"
            f"Response:\n{response}\n\n"
            "Extract only the numbered steps (1., 2., 3., etc.) and return them as a JSON "
            "array of strings. If no numbered steps are found, return an empty array.\n\n"
            'Example format: ["Step one text", "Step two text", "Step three text"]'
        )

    # ------------------------------------------------------------------
    # Fallback + validation
    # ------------------------------------------------------------------

    def build_no_data_response(self, query: str) -> str:
        """Full schema-valid answer for when retrieval found nothing."""
        return f"""## Summary
I couldn't find a documented answer for "{query}" in the {self.docs_name} documentation.

## Overview
The query you've submitted doesn't match any content in the currently indexed {self.product_name} documentation. This could be because:

- The topic isn't covered in the available documentation
- The question uses different terminology than the documentation
- The specific feature or process may be documented elsewhere

## Recommendations
1. **Contact {self.vendor} Support** - They can provide authoritative guidance for your specific question
2. **Check the complete {self.vendor} documentation** - Some topics may be in different sections not yet indexed
3. **Rephrase your question** - Try using different keywords or asking about related features
4. **Consult your {self.vendor} administrator** - They may have access to additional resources or documentation

## References
- [{self.vendor} Support]({self.support_url})
- [{self.vendor} Community]({self.community_url})

*{self.fallback_sentence}*"""

    def validate_response(
        self, response: str, options: PromptOptions | None = None
    ) -> ValidationResult:
        """Report structural schema issues. Never raises, never edits *response*."""
        opts = options or PromptOptions()
        lowered = response.lower()
        issues: list[str] = []

        if "## Summary" not in response and "summary" not in lowered:
            issues.append("Missing Summary section")
        if "## Overview" not in response and "overview" not in lowered:
            issues.append("Missing Overview section")
        if opts.prefer_steps and not (_NUMBERED_RE.search(response) or "step" in lowered):
            issues.append("Missing numbered steps when step-by-step format was requested")
        if opts.include_references:
            has_links = "[" in response and "](" in response
            if "## References" not in response and "references" not in lowered and not has_links:
                issues.append("Missing References section")
        if not _HEADING_RE.search(response):
            issues.append("Missing markdown headings")

        return ValidationResult(valid=not issues, issues=issues)
