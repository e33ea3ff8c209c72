"""Prompt templates for note analysis and image checks."""

from app.database.models import NoteModel
from app.llm.parser import SENTINEL

NO_TITLE = "(no title)"
NO_BODY = "(no body text)"


def build_note_analysis_prompt(note: NoteModel) -> str:
    """Build the marketing analysis prompt for one note.

    Images and video are attached separately as message parts; the prompt
    only refers to them.
    """
    title = note.title if note.title and note.title.strip() else NO_TITLE
    body = note.content if note.content else NO_BODY

    return "\n".join(
        [
            "# Role",
            "You are a senior content-marketing analyst for Xiaohongshu (RED). "
            "You understand selling points, buying motives, the platform's "
            "recommendation mechanics and what makes notes perform. You analyze "
            "titles, body text, images and videos together.",
            "",
            "# Task",
            "Analyze the note below and summarize its core marketing strategy.",
            "",
            "# Input",
            f"1. Title: {title}",
            f"2. Body text: {body}",
            "3. Visuals: attached images and video, if any",
            "",
            "# Dimensions",
            "1. Pain points: which worries or frustrations does the note target?",
            "2. Selling points: which product features or values are stressed?",
            "3. Benefits: what outcome or experience is promised to the reader?",
            "4. Content type: the overall genre, style or format of the note.",
            "",
            "# Output",
            "- summary: one sentence following the pattern \"[who] uses [content "
            "type] to show [target audience] [the product's core value], aiming to "
            "[emotion or action to trigger]\".",
            "- contentType: the single best-fitting category, e.g. tutorial, "
            "product roundup, immersive vlog, skit, daily life record.",
            "- relatedProducts: every product mentioned or shown, joined with "
            "ASCII commas into one string.",
            "",
            "Answer in the language of the note. Output exactly these three "
            "fields and nothing else, as one valid JSON object wrapped in "
            f"{SENTINEL} markers:",
            SENTINEL,
            "{",
            '  "summary": "...",',
            '  "contentType": "...",',
            '  "relatedProducts": "Brand A vitamin C serum,Brand B retinol cream"',
            "}",
            SENTINEL,
        ]
    )


def build_image_check_prompt() -> str:
    """Build the prompt used to describe (and thereby screen) one image."""
    return "\n".join(
        [
            "# Task",
            "Describe the main content of the image in one sentence.",
            "",
            "Output only a valid JSON object with a single summary field, "
            f"wrapped in {SENTINEL} markers:",
            SENTINEL,
            "{",
            '  "summary": "one-sentence description"',
            "}",
            SENTINEL,
        ]
    )
