"""Utterance Intelligence

Rule-based extraction of intent, titles, containers and contacts from free
text.
"""

from .contact_extractor import (
    ContactDirectory,
    ContactExtraction,
    ContactExtractor,
    normalize_email,
    normalize_emails,
    repair_domain,
)
from .intent_classifier import IntentClassifier, IntentMatch, UtteranceDetails

__all__ = [
    "ContactDirectory",
    "ContactExtraction",
    "ContactExtractor",
    "normalize_email",
    "normalize_emails",
    "repair_domain",
    "IntentClassifier",
    "IntentMatch",
    "UtteranceDetails",
]
