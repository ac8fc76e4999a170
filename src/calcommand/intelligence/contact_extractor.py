"""Contact & Email Extractor

Pulls attendee names ("with Alice and Bob", "invite Joe Buck") and email
addresses out of free text. Addresses are validated, repaired when the domain
was duplicated by an upstream parser (john@example.comexample.com), and
de-duplicated case-insensitively.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

from ..core.error_handler import ResolutionIssue
from ..core.logging_manager import LoggingManager
from ..scheduling.models import ContactRef, Diagnostic


EMAIL_PATTERN = re.compile(r"[A-Za-z0-9_.+%-]+@[A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)+")
VALID_EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]{1,64}@(?:[A-Za-z0-9-]{1,63}\.){1,125}[A-Za-z]{2,63}$")
DANGEROUS_EMAIL_CHARS = frozenset(";&|<>$`")


class ContactDirectory(Protocol):
    """Looks up addresses for a display name (e.g. the system address book)."""

    def lookup(self, display_name: str) -> Sequence[str]:
        ...


def repair_domain(domain: str) -> str:
    """Undo a domain written twice: 'example.comexample.com' or 'example.com.example.com'."""
    domain = domain.lower()
    while True:
        length = len(domain)
        half = length // 2
        if length % 2 == 0 and "." in domain[:half] and domain[:half] == domain[half:]:
            domain = domain[:half]
        elif length % 2 == 1 and domain[half] == "." and "." in domain[:half] and domain[:half] == domain[half + 1:]:
            domain = domain[:half]
        else:
            return domain


def normalize_email(address: str) -> Optional[str]:
    """Clean, repair and validate one address.

    Returns:
        The address with its domain lower-cased, or None when it is not a
        usable address. The local part keeps its case, dots and plus tags.
    """
    candidate = address.strip().strip("<>()[]\"'")
    if candidate.lower().startswith("mailto:"):
        candidate = candidate[len("mailto:"):]
    candidate = candidate.rstrip(".,;:!?")

    if any(char in DANGEROUS_EMAIL_CHARS for char in candidate) or candidate.count("@") != 1:
        return None

    local, domain = candidate.split("@")
    normalized = f"{local}@{repair_domain(domain)}"
    if not VALID_EMAIL_PATTERN.match(normalized):
        return None
    return normalized


def normalize_emails(addresses: Iterable[str]) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
    """Normalize and de-duplicate addresses, keeping first-seen order.

    Args:
        addresses: Raw addresses from text, a draft or a directory

    Returns:
        Tuple of (accepted addresses, rejected raw values)
    """
    accepted: List[str] = []
    rejected: List[str] = []
    seen = set()

    for address in addresses:
        normalized = normalize_email(address)
        if normalized is None:
            rejected.append(address)
            continue
        key = normalized.lower()
        if key not in seen:
            seen.add(key)
            accepted.append(normalized)

    return tuple(accepted), tuple(rejected)


@dataclass(frozen=True)
class ContactExtraction:
    """Names and addresses found in one text."""
    contacts: Tuple[ContactRef, ...] = ()
    emails: Tuple[str, ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()


class ContactExtractor:
    """Extractor for attendee names and email addresses."""

    def __init__(self):
        """Initialize extractor patterns."""
        self.logger = LoggingManager.get_logger(__name__)

        self.contact_patterns = self._build_contact_patterns()
        self.end_markers = self._build_end_markers()
        self.stop_words = {"at", "on", "tomorrow", "today", "tonight", "for", "about", "regarding", "and", "to"}
        self.generic_names = {
            "me", "us", "you", "them", "him", "her", "everyone", "everybody", "all", "team", "the team",
            "zoom", "video", "video call", "teams", "google meet", "someone", "somebody", "others",
        }
        self.determiners = {"a", "an", "the", "my", "our", "your", "his", "her", "their", "some", "this", "that"}

    def _build_contact_patterns(self) -> List[dict]:
        """Build patterns that introduce a list of names.

        Returns:
            List of contact pattern configurations
        """
        return [
            {"pattern": r"--contacts?\s+(\"[^\"]*\"|'[^']*'|\S+)", "type": "flag"},
            {"pattern": r"\b(?:and\s+)?invit(?:e|ing)\s+(.+)", "type": "invite"},
            {"pattern": r"\bwith\s+(.+)", "type": "with"},
        ]

    def _build_end_markers(self) -> re.Pattern:
        words = ("about", "at", "on", "from", "for", "in", "to", "regarding", "re:", "tomorrow", "today",
                 "tonight", "next", "this", "every", "called", "titled", "named", "until", "via", "using",
                 "by", "starting", "between", "around", "before", "after", "each", "daily", "weekly",
                 "monthly", "yearly", "over", "during", "invite", "inviting")
        alternatives = "|".join(re.escape(word) for word in words)
        return re.compile(rf"\s(?:{alternatives})(?=\s|$)|--|[.;!?()\[\]\"]|\d", re.IGNORECASE)

    def extract(self, text: str) -> ContactExtraction:
        """Extract contact names and email addresses.

        Args:
            text: Raw utterance

        Returns:
            Contacts in order of appearance, de-duplicated by name, and the
            normalized addresses found in the text
        """
        raw_emails = EMAIL_PATTERN.findall(text)
        emails, rejected = normalize_emails(raw_emails)
        diagnostics = [
            Diagnostic(ResolutionIssue.INVALID_EMAIL, f"Ignoring invalid email address '{address}'", "emails")
            for address in rejected
        ]

        names: List[str] = []
        seen = set()
        for name in self._extract_names(text):
            if name.lower() not in seen:
                seen.add(name.lower())
                names.append(name)

        self.logger.debug(f"Extracted {len(names)} contacts and {len(emails)} email addresses")
        return ContactExtraction(
            contacts=tuple(ContactRef(name) for name in names),
            emails=emails,
            diagnostics=tuple(diagnostics),
        )

    def extract_names(self, value: str) -> List[str]:
        """Split an explicit list such as 'Alice, Bob and Carol' into names."""
        return [name for name in (self._refine_name(part) for part in self._split_names(value)) if name]

    def resolve(self, contacts: Iterable[ContactRef],
                directory: Optional[ContactDirectory]) -> Tuple[Tuple[ContactRef, ...], Tuple[Diagnostic, ...]]:
        """Attach directory addresses to contacts.

        Args:
            contacts: Contacts without addresses
            directory: Address book to consult, or None to skip lookup

        Returns:
            Tuple of (contacts with resolved addresses, diagnostics)
        """
        contacts = tuple(contacts)
        if directory is None:
            return contacts, ()

        resolved: List[ContactRef] = []
        diagnostics: List[Diagnostic] = []
        for contact in contacts:
            try:
                found = directory.lookup(contact.display_name)
            except Exception as e:
                self.logger.warning(f"Contact lookup failed for '{contact.display_name}': {e}")
                resolved.append(contact)
                continue

            emails, rejected = normalize_emails(found or ())
            for address in rejected:
                diagnostics.append(Diagnostic(ResolutionIssue.INVALID_EMAIL,
                                              f"Directory returned invalid address '{address}' "
                                              f"for {contact.display_name}", "contacts"))
            resolved.append(contact.with_emails(emails))

        return tuple(resolved), tuple(diagnostics)

    def _extract_names(self, text: str) -> List[str]:
        # Addresses are blanked so their dots and local parts never reach the name rules
        text = EMAIL_PATTERN.sub(lambda m: " " * len(m.group(0)), text)
        names: List[str] = []
        for pattern_config in self.contact_patterns:
            for match in re.finditer(pattern_config["pattern"], text, re.IGNORECASE):
                segment = match.group(1)
                if pattern_config["type"] == "flag":
                    names.extend(self.extract_names(segment.strip("\"'")))
                    continue

                end = self.end_markers.search(segment)
                if end is not None:
                    segment = segment[:end.start()]
                names.extend(self.extract_names(segment))
        return names

    def _split_names(self, value: str) -> List[str]:
        return [part for part in re.split(r",|\s+and\s+|\s*&\s*", value, flags=re.IGNORECASE) if part.strip()]

    def _refine_name(self, part: str) -> Optional[str]:
        """Trim stop words and reject parts that are not person names."""
        if "@" in part:
            return None

        words = part.strip(" \t,:'\"").split()
        while words and words[0].lower() in self.stop_words:
            words.pop(0)
        while words and words[-1].lower() in self.stop_words:
            words.pop()
        if not words or len(words) > 4:
            return None

        name = " ".join(words)
        if name.lower() in self.generic_names or words[0].lower() in self.determiners:
            return None
        if not all(re.match(r"^[A-Za-z][A-Za-z.'-]*$", word) for word in words):
            return None
        return name
