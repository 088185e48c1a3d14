"""Prompt builders for chapter, card, and cover generation."""

from quillstream.schemas.context import ContextBundle, MatchedEntity
from quillstream.schemas.generation import ChapterCharacter, ChapterTerm


def build_chapter_system_prompt(word_count: int, writing_style: str | None = None) -> str:
    prompt = (
        "You are an accomplished novelist continuing a serialized novel.\n"
        f"Write the requested chapter in roughly {word_count} words.\n"
        "Stay consistent with established characters, settings, and prior events. "
        "Write narrative prose only: no headings, notes, or commentary."
    )
    if writing_style:
        prompt += f"\nWriting style: {writing_style}"
    return prompt


def _entity_lines(entity: MatchedEntity) -> list[str]:
    header = f"- {entity.name}"
    details = [entity.attributes.get(key) for key in ("gender", "age")]
    details = [str(value) for value in details if value]
    if details:
        header += f" ({', '.join(details)})"
    if entity.description:
        header += f": {entity.description}"
    lines = [header]
    for key in ("personality", "background", "abilities"):
        value = entity.attributes.get(key)
        if value:
            lines.append(f"  {key.capitalize()}: {value}")
    return lines


def _character_lines(character: ChapterCharacter) -> list[str]:
    header = f"- {character.name}"
    details = [value for value in (character.gender, character.age) if value]
    if details:
        header += f" ({', '.join(details)})"
    lines = [header]
    for key in ("personality", "background", "abilities"):
        value = getattr(character, key)
        if value:
            lines.append(f"  {key.capitalize()}: {value}")
    return lines


def build_chapter_user_prompt(
    *,
    chapter_plot: str,
    context: ContextBundle,
    story_background: str | None = None,
    characters: list[ChapterCharacter] | None = None,
    terms: list[ChapterTerm] | None = None,
    character_relations: str | None = None,
    previous_content: str | None = None,
) -> str:
    """Assemble the user prompt; empty sections are left out."""
    sections: list[str] = []

    if context.novel_summary:
        sections.append(f"[Novel synopsis]\n{context.novel_summary}")

    if story_background:
        sections.append(f"[Story background]\n{story_background}")

    if context.summaries:
        lines = [f"- {s.chapter_title}: {s.summary}" for s in context.summaries]
        sections.append("[Previously]\n" + "\n".join(lines))

    if context.characters:
        lines: list[str] = []
        for entity in context.characters:
            lines.extend(_entity_lines(entity))
        sections.append("[Relevant characters]\n" + "\n".join(lines))

    if context.terms:
        lines = []
        for entity in context.terms:
            lines.extend(_entity_lines(entity))
        sections.append("[Relevant setting]\n" + "\n".join(lines))

    if characters:
        lines = []
        for character in characters:
            lines.extend(_character_lines(character))
        sections.append("[Characters in this chapter]\n" + "\n".join(lines))

    if character_relations:
        sections.append(f"[Character relationships]\n{character_relations}")

    if terms:
        lines = [
            f"- {term.name}: {term.description}" if term.description else f"- {term.name}"
            for term in terms
        ]
        sections.append("[Setting notes]\n" + "\n".join(lines))

    if context.linked_chapters:
        parts = [
            "[Reference chapters]\nKeep continuity with these chapters:"
        ]
        for chapter in context.linked_chapters:
            parts.append(f"--- {chapter.title} ---\n{chapter.content}")
        sections.append("\n\n".join(parts))

    sections.append(f"[This chapter's plot]\n{chapter_plot}")

    if previous_content:
        sections.append(f"[Previous content]\n{previous_content}")

    sections.append("Write this chapter now, using the information above.")
    return "\n\n".join(sections)


def build_card_system_prompt(
    category: str,
    *,
    style: str | None = None,
    novel_title: str | None = None,
    existing_names: list[str] | None = None,
) -> str:
    hints = []
    if style:
        hints.append(f"Style: {style}.")
    if novel_title:
        hints.append(f"This belongs to the novel \"{novel_title}\".")
    if existing_names:
        hints.append(f"Existing names (avoid duplicates): {', '.join(existing_names)}.")
    hint_text = " ".join(hints)

    if category == "character":
        fields = (
            "- names: 3-5 candidate names, each {\"name\", \"meaning\"}\n"
            "- gender\n"
            "- age\n"
            "- personality (100-200 words)\n"
            "- background (200-400 words)\n"
            "- abilities (100-200 words)\n"
            "- suggestedTags: 3-5 tags"
        )
        role = "You are a novel world-building assistant who designs vivid characters."
    else:
        fields = (
            "- names: 3-5 candidate names, each {\"name\", \"meaning\"}\n"
            "- description (300-500 words: definition, origin, role in the story)\n"
            "- suggestedTags: 3-5 tags"
        )
        role = "You are a novel world-building assistant who designs rich setting terms."

    return (
        f"{role}\n{hint_text}\n\n"
        "From the user's keywords, produce a complete entry as a single JSON "
        "object (no markdown fences) with these fields:\n"
        f"{fields}\n\n"
        "Names should fit the style and avoid existing names. Output JSON only."
    ).replace("\n\n\n", "\n\n")


def build_card_user_prompt(category: str, keywords: str) -> str:
    kind = "character" if category == "character" else "setting term"
    return f"Create a {kind} entry from these keywords:\n\n{keywords}"


def build_cover_prompt(prompt: str, style: str | None = None, title: str | None = None) -> str:
    parts = [f"Book cover illustration: {prompt}"]
    if style:
        parts.append(f"Art style: {style}")
    if title:
        parts.append(f"Leave clear space for the title \"{title}\"")
    parts.append("No text, no watermark, high detail")
    return ". ".join(parts)


OUTLINE_NODE_LABELS = {
    "volume": "volume outline",
    "chapter_outline": "chapter outline",
    "plot_point": "plot point",
}

_OUTLINE_BRIEFS = {
    "volume": (
        "You are a novel outline planner who builds large-scale story arcs.",
        "an overview of the volume (200-400 words) covering its core theme, main "
        "conflict, key characters and where the story goes",
        "- childSuggestions: 3-5 chapter titles for this volume",
    ),
    "chapter_outline": (
        "You are a novel chapter planner who designs gripping chapter structure.",
        "a chapter overview (150-300 words) covering the main events, who appears, "
        "the setting, and how it connects to what comes before and after",
        "- childSuggestions: 3-5 short plot point descriptions",
    ),
    "plot_point": (
        "You are a novel plot designer who fleshes out individual beats.",
        "the beat in detail (100-200 words): scene notes, key dialogue or action, "
        "emotional shift, and any foreshadowing",
        "",
    ),
}


def build_outline_system_prompt(
    node_type: str,
    *,
    style: str | None = None,
    novel_title: str | None = None,
    novel_summary: str | None = None,
    parent_type: str | None = None,
    parent_title: str | None = None,
    parent_content: str | None = None,
) -> str:
    role, content_brief, children = _OUTLINE_BRIEFS[node_type]
    hints = []
    if style:
        hints.append(f"Style: {style}.")
    # Plot points only need their parent chapter for context
    if novel_title and node_type != "plot_point":
        hints.append(f"This belongs to the novel \"{novel_title}\".")
    if novel_summary and node_type == "volume":
        hints.append(f"Synopsis: {novel_summary}")

    sections = [role, " ".join(hints)]
    if parent_title:
        label = OUTLINE_NODE_LABELS.get(parent_type or "", "node")
        parent = f"[Parent {label}]\nTitle: {parent_title}"
        if parent_content:
            parent += f"\nContent: {parent_content}"
        sections.append(parent)

    fields = (
        "- titles: 3 candidate titles, each {\"name\", \"meaning\"}\n"
        f"- content: {content_brief}"
    )
    if children:
        fields += f"\n{children}"
    sections.append(
        f"From the user's keywords, produce a {OUTLINE_NODE_LABELS[node_type]} as a "
        f"single JSON object (no markdown fences) with these fields:\n{fields}\n\n"
        "Output JSON only."
    )
    return "\n\n".join(section for section in sections if section)


def build_outline_user_prompt(node_type: str, keywords: str) -> str:
    return f"Create a {OUTLINE_NODE_LABELS[node_type]} from these keywords:\n\n{keywords}"


REWRITE_SYSTEM_PROMPT = "You are a web novel author."


def build_rewrite_prompt(block: str) -> str:
    return (
        "Rewrite the following passage in the voice of a web novel author.\n\n"
        "Requirements:\n"
        "1. Alternate long and short sentences and quicken the rhythm\n"
        "2. Use conversational phrasing where it fits\n"
        "3. Vary sentence structure\n"
        "4. Avoid starting consecutive sentences the same way\n"
        "5. Keep the meaning and every personal and place name\n\n"
        f"{block}"
    )
