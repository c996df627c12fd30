"""
Line classifier for plain-text MUD output.

Each server line is classified on its own, with no memory of earlier lines:

    The Dragon's Breath Tavern          -> room_title
    You are in the corner of the common room.   -> system_message
    Exits: north, east                  -> exit_list
    A wooden bench sits against the wall.       -> item_mention
    A goblin lurks in the shadows.      -> mob_mention
    [HP: 20/20]                         -> prompt

Terminal control sequences are stripped before any check runs. The checks are
applied in a fixed order and the first match wins; the order is part of the
contract because several patterns overlap (a short unpunctuated system line
reads as a title, for instance).
"""

import re
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


LineKindType = Literal[
    "room_title",
    "room_description",
    "exit_list",
    "item_mention",
    "mob_mention",
    "prompt",
    "system_message",
    "unclassified",
]


class LineKind:
    """Line kind constants."""

    ROOM_TITLE: LineKindType = "room_title"
    ROOM_DESCRIPTION: LineKindType = "room_description"
    EXIT_LIST: LineKindType = "exit_list"
    ITEM_MENTION: LineKindType = "item_mention"
    MOB_MENTION: LineKindType = "mob_mention"
    PROMPT: LineKindType = "prompt"
    SYSTEM_MESSAGE: LineKindType = "system_message"
    UNCLASSIFIED: LineKindType = "unclassified"


class ClassifiedLine(BaseModel):
    """One classified server line."""

    model_config = ConfigDict(frozen=True)

    kind: LineKindType = LineKind.UNCLASSIFIED
    raw_text: str = ""
    clean_text: str = ""
    exits: List[str] = Field(default_factory=list)
    entity_name: Optional[str] = None
    room_name: Optional[str] = None

    @property
    def is_blank(self) -> bool:
        return not self.clean_text


SYSTEM_PREFIXES = (
    "You can't",
    "You don't",
    "You aren't",
    "You are",
    "You have",
    "You see",
    "There is",
    "There are",
    "It is",
    "You feel",
    "You hear",
    "You smell",
)

ARTICLES = {"a", "an", "the"}

ITEM_VERBS = {"is", "are", "sit", "sits", "lie", "lies", "stand", "stands", "rest", "rests"}

MOB_VERBS = {
    "waits",
    "wanders",
    "lurks",
    "prowls",
    "watches",
    "sleeps",
    "growls",
    "paces",
    "roams",
    "hovers",
    "guards",
}

MOB_PARTICIPLES = {
    "standing",
    "sitting",
    "waiting",
    "sleeping",
    "wandering",
    "lurking",
    "watching",
    "resting",
}


class LineClassifier:
    """
    Stateless classifier for single MUD output lines.

    Safe to share between threads: all state is compiled patterns.
    """

    def __init__(self, title_max_length: int = 50):
        self.title_max_length = title_max_length

        # SGR colour codes and every other CSI sequence (cursor moves, ESC[2J, ...)
        self.csi_pattern = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")
        # Save/restore cursor (ESC 7 / ESC 8)
        self.esc_pattern = re.compile(r"\x1b[78]")

        self.prompt_pattern = re.compile(r"^[\[<].*[\]>]$")
        self.exit_pattern = re.compile(r"^Exits?:\s*(.+)$")
        self.mob_pattern = re.compile(
            r"^(A|An|The)\s+.*\s+("
            + "|".join(sorted(MOB_VERBS))
            + r"|(is|are)\s+("
            + "|".join(sorted(MOB_PARTICIPLES))
            + r"))\b.*\.$"
        )
        self.item_pattern = re.compile(
            r"^(A|An|The)\s+.*\s+(is|are|sits?|lies?|stands?|rests?)\s+.*\.$"
        )

    def strip_control_sequences(self, text: str) -> str:
        """Remove terminal escape sequences and line terminators."""
        cleaned = self.csi_pattern.sub("", text)
        cleaned = self.esc_pattern.sub("", cleaned)
        return cleaned.replace("\x1b", "").strip("\r\n")

    def classify(self, line: str) -> ClassifiedLine:
        """
        Classify a single line of server output.

        Args:
            line: Raw line as received, possibly carrying escape sequences

        Returns:
            ClassifiedLine; whitespace-only input yields an unclassified line
        """
        raw_text = line if line is not None else ""
        clean_text = self.strip_control_sequences(raw_text).strip()

        if not clean_text:
            return ClassifiedLine(raw_text=raw_text, clean_text="")

        if self.prompt_pattern.match(clean_text):
            return ClassifiedLine(
                kind=LineKind.PROMPT, raw_text=raw_text, clean_text=clean_text
            )

        exit_match = self.exit_pattern.match(clean_text)
        if exit_match:
            return ClassifiedLine(
                kind=LineKind.EXIT_LIST,
                raw_text=raw_text,
                clean_text=clean_text,
                exits=self.parse_exits(exit_match.group(1)),
            )

        if self.mob_pattern.match(clean_text):
            return ClassifiedLine(
                kind=LineKind.MOB_MENTION,
                raw_text=raw_text,
                clean_text=clean_text,
                entity_name=self.extract_entity_name(clean_text),
            )

        if self.item_pattern.match(clean_text):
            return ClassifiedLine(
                kind=LineKind.ITEM_MENTION,
                raw_text=raw_text,
                clean_text=clean_text,
                entity_name=self.extract_entity_name(clean_text),
            )

        if self.is_room_title(clean_text):
            return ClassifiedLine(
                kind=LineKind.ROOM_TITLE,
                raw_text=raw_text,
                clean_text=clean_text,
                room_name=clean_text,
            )

        if clean_text.startswith(SYSTEM_PREFIXES):
            return ClassifiedLine(
                kind=LineKind.SYSTEM_MESSAGE, raw_text=raw_text, clean_text=clean_text
            )

        return ClassifiedLine(
            kind=LineKind.ROOM_DESCRIPTION, raw_text=raw_text, clean_text=clean_text
        )

    def parse_exits(self, exit_str: str) -> List[str]:
        """Split "north, south, east" into ordered, trimmed tokens."""
        return [token.strip() for token in exit_str.split(",") if token.strip()]

    def extract_entity_name(self, line: str) -> str:
        """
        Pull the noun phrase out of "A rusty sword lies here." style sentences.

        The name is everything between the leading article and the first verb;
        without a verb the first three words after the article are used.
        """
        words = line.split()
        if len(words) < 2:
            return line

        start = 0
        for i, word in enumerate(words):
            lower = word.lower()
            if lower in ARTICLES and i == start:
                start = i + 1
                continue
            if lower in ITEM_VERBS or lower in MOB_VERBS:
                if i > start:
                    return " ".join(words[start:i])
                break

        if start < len(words):
            return " ".join(words[start:start + 3])

        return line

    def is_room_title(self, line: str) -> bool:
        """Short, unpunctuated, single-sentence lines read as room titles."""
        if len(line) > self.title_max_length:
            return False
        if line[-1] in ".!?":
            return False
        if ". " in line:
            return False
        return True


_default_classifier = LineClassifier()


def classify_line(line: str) -> ClassifiedLine:
    """Classify a line with the shared default classifier."""
    return _default_classifier.classify(line)
