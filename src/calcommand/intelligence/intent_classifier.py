"""Intent Classifier for Calendar Commands

Decides whether an utterance asks for an event, a reminder or a note, and
pulls out the deterministic details that sit next to the intent: the title,
the target calendar / list / folder, a video-call flag, a location and a
description.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..core.logging_manager import LoggingManager
from ..scheduling.models import CommandKind


@dataclass(frozen=True)
class IntentMatch:
    """Classified intent with the phrase that decided it."""
    kind: CommandKind
    confidence: float
    matched_text: Optional[str] = None


@dataclass(frozen=True)
class UtteranceDetails:
    """Deterministic details found next to the intent."""
    intent: IntentMatch
    title: Optional[str] = None
    title_explicit: bool = False
    container: Optional[str] = None
    zoom: bool = False
    location: Optional[str] = None
    description: Optional[str] = None


class IntentClassifier:
    """Pattern-based classifier for calendar, reminder and note commands."""

    def __init__(self):
        """Initialize classification patterns."""
        self.logger = LoggingManager.get_logger(__name__)

        self.intent_patterns = self._build_intent_patterns()
        self.title_patterns = self._build_title_patterns()
        self.container_patterns = self._build_container_patterns()
        self.zoom_keywords = (
            "zoom", "video call", "video meeting", "virtual meeting", "online meeting",
            "video conference", "videoconference", "video chat",
        )
        self.title_end = re.compile(
            r"\s(?:at|on|for|with|and|tomorrow|today|tonight|from|every|next|this|until|daily|weekly|"
            r"monthly|yearly|starting|between|in\s+(?:my|the)|to\s+my|by)(?=\s|$)|\s--|[,;!?]|\.(?:\s|$)",
            re.IGNORECASE,
        )
        self.generic_titles = {"event", "an event", "meeting", "a meeting", "calendar event", "appointment",
                               "an appointment", "call", "a call", "reminder", "a reminder", "todo", "task",
                               "note", "a note"}

    def _build_intent_patterns(self) -> List[Dict[str, Any]]:
        """Build intent patterns in priority order.

        Returns:
            List of intent pattern configurations
        """
        return [
            {"pattern": r"^\s*calendar\s+(?:create|add)\b", "kind": CommandKind.CREATE_EVENT, "confidence": 1.0},
            {"pattern": r"^\s*(?:todo|reminders?)\b", "kind": CommandKind.CREATE_REMINDER, "confidence": 1.0},
            {"pattern": r"^\s*notes?\s+(?:create|add|\")", "kind": CommandKind.CREATE_NOTE, "confidence": 1.0},
            {"pattern": r"\b(?:create|add|make|take|write|start|new)\s+(?:a\s+|an\s+|the\s+)?(?:new\s+)?note\b",
             "kind": CommandKind.CREATE_NOTE, "confidence": 0.95},
            {"pattern": r"\bnote\s+(?:called|titled|named)\b", "kind": CommandKind.CREATE_NOTE, "confidence": 0.95},
            {"pattern": r"\b(?:jot\s+down|take\s+note\s+of|write\s+down)\b",
             "kind": CommandKind.CREATE_NOTE, "confidence": 0.85},
            {"pattern": r"\bremind\s+me\b", "kind": CommandKind.CREATE_REMINDER, "confidence": 0.95},
            {"pattern": r"\b(?:create|add|set|make|new)\s+(?:a\s+|an\s+)?(?:new\s+)?(?:reminder|todo|to-do|task)\b",
             "kind": CommandKind.CREATE_REMINDER, "confidence": 0.95},
            {"pattern": r"\b(?:reminder|todo|to-do)\b", "kind": CommandKind.CREATE_REMINDER, "confidence": 0.7},
            {"pattern": r"\b(?:schedule|book|set\s*up|organi[sz]e|arrange|plan)\b",
             "kind": CommandKind.CREATE_EVENT, "confidence": 0.9},
            {"pattern": r"\b(?:create|add|new|make|put)\s+(?:an?\s+|the\s+)?(?:new\s+)?"
                        r"(?:event|meeting|appointment|call|calendar\s+(?:event|entry))\b",
             "kind": CommandKind.CREATE_EVENT, "confidence": 0.9},
            {"pattern": r"\b(?:meeting|appointment|event|call|lunch|dinner|breakfast|sync|standup|"
                        r"stand-up|interview|party|session|class)\b",
             "kind": CommandKind.CREATE_EVENT, "confidence": 0.6},
            {"pattern": r"\b(?:at\s+\d|\d(?::\d\d)?\s*[ap]\.?m\b|tomorrow|tonight|every\s+\w+|next\s+\w+day)",
             "kind": CommandKind.CREATE_EVENT, "confidence": 0.5},
        ]

    def _build_title_patterns(self) -> List[Dict[str, Any]]:
        """Build title patterns in priority order.

        Returns:
            List of title pattern configurations
        """
        return [
            {"pattern": r"[\"“]([^\"”]+)[\"”]", "type": "quoted", "cut": False},
            {"pattern": r"\b(?:called|titled|named|entitled)\s+(.+)", "type": "called", "cut": True},
            {"pattern": r"\bremind\s+me\s+(?:to|about)\s+(.+)", "type": "remind_me", "cut": True},
            {"pattern": r"\b(?:reminder|todo|to-do|task)\s+(?:to|for)\s+(.+)", "type": "reminder_to", "cut": True},
            {"pattern": r"\b(?:schedule|book|set\s*up|organi[sz]e|arrange|plan|create|add|put)\s+"
                        r"(?:an?\s+|my\s+|the\s+|our\s+)?(.+)", "type": "verb_object", "cut": True},
        ]

    def _build_container_patterns(self) -> List[Dict[str, Any]]:
        """Build patterns naming the target calendar, list or folder.

        Returns:
            List of container pattern configurations
        """
        return [
            {"pattern": r"--(?:calendar|lists?|folder)\s+(\"[^\"]+\"|'[^']+'|\S+)", "type": "flag"},
            {"pattern": r"(?<![\w&])#([A-Za-z][\w-]*)", "type": "hashtag"},
            {"pattern": r"\b(?:in|on|to|into)\s+(?:my|the|our)\s+([A-Za-z][\w'-]*(?:\s+[A-Za-z][\w'-]*){0,2})\s+"
                        r"(calendar|list|folder)\b", "type": "named"},
        ]

    def classify(self, text: str) -> IntentMatch:
        """Classify the intent of an utterance.

        Args:
            text: Raw utterance

        Returns:
            The first matching intent, or OTHER when nothing matches
        """
        for pattern_config in self.intent_patterns:
            match = re.search(pattern_config["pattern"], text, re.IGNORECASE)
            if match:
                return IntentMatch(pattern_config["kind"], pattern_config["confidence"], match.group(0).strip())

        return IntentMatch(CommandKind.OTHER, 0.0)

    def analyze(self, text: str) -> UtteranceDetails:
        """Classify an utterance and extract its non-temporal details."""
        intent = self.classify(text)
        title, title_explicit = self._find_title(text)
        details = UtteranceDetails(
            intent=intent,
            title=title,
            title_explicit=title_explicit,
            container=self.extract_container(text, intent.kind),
            zoom=self.detect_zoom(text),
            location=self.extract_location(text),
            description=self.extract_description(text),
        )
        self.logger.debug(
            f"Classified as {intent.kind.value} (confidence={intent.confidence:.2f}), title={details.title!r}"
        )
        return details

    def extract_title(self, text: str) -> Optional[str]:
        """Extract the title of the command, or None when the text gives none."""
        return self._find_title(text)[0]

    def _find_title(self, text: str) -> Tuple[Optional[str], bool]:
        """Title plus whether an explicit marker (quotes, 'called') introduced it."""
        for pattern_config in self.title_patterns:
            match = re.search(pattern_config["pattern"], text, re.IGNORECASE)
            if not match:
                continue

            title = match.group(1)
            if pattern_config["cut"]:
                end = self.title_end.search(title)
                if end is not None:
                    title = title[:end.start()]
            title = title.strip(" \t'\"")

            if not title or title.lower() in self.generic_titles:
                continue
            if pattern_config["type"] == "verb_object":
                title = title[0].upper() + title[1:]
            return title, pattern_config["type"] in ("quoted", "called")

        return None, False

    def extract_container(self, text: str, kind: CommandKind) -> Optional[str]:
        """Extract the calendar, reminder list or notes folder named in the text."""
        wanted = {
            CommandKind.CREATE_EVENT: "calendar",
            CommandKind.CREATE_REMINDER: "list",
            CommandKind.CREATE_NOTE: "folder",
        }.get(kind)

        for pattern_config in self.container_patterns:
            for match in re.finditer(pattern_config["pattern"], text, re.IGNORECASE):
                if pattern_config["type"] == "named" and match.group(2).lower() != wanted:
                    continue
                return match.group(1).strip("\"'")

        return None

    def detect_zoom(self, text: str) -> bool:
        """True when the text asks for a video meeting."""
        lowered = text.lower()
        if re.search(r"--zoom\b", lowered):
            return True
        return any(re.search(rf"\b{re.escape(keyword)}\b", lowered) for keyword in self.zoom_keywords)

    def extract_location(self, text: str) -> Optional[str]:
        patterns = (
            r"--location\s+(\"[^\"]+\"|'[^']+'|\S+)",
            r"\blocation\s*[:=]\s*([^,;\n]+)",
            r"\b(?:in|at)\s+((?:conference\s+|meeting\s+)?room\s+[\w-]+)",
        )
        for pattern in patterns:
            match = re.search(pattern, text, re.IGNORECASE)
            if match:
                return match.group(1).strip(" \"'")
        return None

    def extract_description(self, text: str) -> Optional[str]:
        patterns = (
            r"--(?:notes|description|content)\s+(\"[^\"]+\"|'[^']+'|\S+)",
            r"\b(?:notes?|description|details|agenda|content)\s*[:=]\s*(.+)$",
            r"\b(?:saying|that\s+says|with\s+content)\s+(.+)$",
        )
        for pattern in patterns:
            match = re.search(pattern, text, re.IGNORECASE)
            if match:
                return match.group(1).strip(" \"'")
        return None
