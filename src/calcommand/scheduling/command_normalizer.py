"""Command Normalizer

State machine that turns a raw utterance, optionally accompanied by a draft
from an upstream parser, into a finalized structured command or a typed
rejection:

    Received -> TimeResolved -> DateResolved -> RecurrenceResolved
             -> ContactsResolved -> Validated -> Finalized | Rejected

Deterministic resolvers always win over the draft for temporal fields. The
draft contributes intent, title and container; its dates and times are only
parsed when there is no raw text, i.e. when a finalized command is
re-processed or a command line was built from explicit flags.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from ..core.config_manager import EngineConfig
from ..core.error_handler import (
    AmbiguousTimeError,
    EndBeforeStartError,
    ErrorHandler,
    InvalidTimeError,
    ResolutionError,
    ResolutionIssue,
)
from ..core.logging_manager import LoggingManager
from ..intelligence.contact_extractor import ContactDirectory, ContactExtractor, normalize_emails
from ..intelligence.intent_classifier import IntentClassifier
from ..processors.core.date_resolver import RelativeDateResolver
from ..processors.core.recurrence_parser import RecurrenceParse, RecurrenceParser
from ..processors.core.time_scanner import TimeScanner
from ..processors.core.timezone_resolver import TimezoneResolver
from .models import (
    CommandKind,
    ContactRef,
    DateSpec,
    Diagnostic,
    DraftCommand,
    NormalizationResult,
    NormalizationState,
    RawUtterance,
    RecurrenceRule,
    Rejection,
    StructuredCommand,
    TimeOfDay,
)
from .validators import CommandValidator


DraftInput = Union[DraftCommand, Mapping[str, Any], str, None]

_OVERNIGHT = re.compile(r"\b(?:overnight|over\s+night|through\s+the\s+night)\b", re.IGNORECASE)
_MINUTES_PER_DAY = 24 * 60


@dataclass
class _Resolution:
    """Command under construction during one normalization."""
    utterance: RawUtterance
    draft: DraftCommand
    text: str
    kind: CommandKind = CommandKind.OTHER
    title: Optional[str] = None
    container: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    zoom: bool = False
    start_time: Optional[TimeOfDay] = None
    end_time: Optional[TimeOfDay] = None
    end_day_offset: int = 0
    duration_minutes: Optional[int] = None
    timezone_abbreviation: Optional[str] = None
    date: Optional[DateSpec] = None
    start_date: Optional[DateSpec] = None
    end_date: Optional[DateSpec] = None
    recurrence: Optional[RecurrenceRule] = None
    contacts: Tuple[ContactRef, ...] = ()
    emails: Tuple[str, ...] = ()
    diagnostics: List[Diagnostic] = field(default_factory=list)
    trace: List[NormalizationState] = field(default_factory=list)
    low_confidence: bool = False

    @property
    def carries_time(self) -> bool:
        return self.kind in (CommandKind.CREATE_EVENT, CommandKind.CREATE_REMINDER)

    @property
    def local_now(self) -> datetime:
        return self.utterance.local_now()

    def note(self, issue: ResolutionIssue, message: str, field_name: Optional[str] = None):
        self.diagnostics.append(Diagnostic(issue, message, field_name))

    def advance(self, state: NormalizationState):
        self.trace.append(state)


class CommandNormalizer:
    """Resolves utterances and drafts into structured commands.

    A normalizer holds only read-only configuration and compiled patterns, so
    one instance can serve any number of concurrent callers.
    """

    def __init__(self, config: Optional[EngineConfig] = None,
                 directory: Optional[ContactDirectory] = None):
        """Initialize the normalizer and its resolvers.

        Args:
            config: Engine configuration, defaults when omitted
            directory: Optional address book used to attach emails to contacts
        """
        self.config = config or EngineConfig()
        self.directory = directory
        self.logger = LoggingManager.get_logger(__name__)
        self.error_handler = ErrorHandler(self.logger)

        time_parsing = self.config.time_parsing
        recurrence = self.config.recurrence
        self.time_scanner = TimeScanner(ambiguous_hour_max=time_parsing.ambiguous_hour_max)
        self.timezone_resolver = TimezoneResolver(self.config.timezones.precedence)
        self.date_resolver = RelativeDateResolver(time_parsing.daypart_bias)
        self.recurrence_parser = RecurrenceParser(
            max_interval=recurrence.max_interval,
            max_count=recurrence.max_count,
            reject_on_conflict=recurrence.reject_on_conflict,
            date_resolver=self.date_resolver,
        )
        self.contact_extractor = ContactExtractor()
        self.intent_classifier = IntentClassifier()
        self.validator = CommandValidator(self.config.defaults)

    def normalize(self, utterance: RawUtterance, draft: DraftInput = None) -> NormalizationResult:
        """Normalize one utterance.

        Args:
            utterance: Raw text with its reference instant and local zone
            draft: Optional draft from an upstream parser, as a DraftCommand,
                a mapping or JSON text

        Returns:
            Finalized result carrying the command, or a rejected result
            carrying the reason. Never raises for malformed input.
        """
        if not isinstance(draft, DraftCommand):
            draft = DraftCommand.from_payload(draft)

        work = self._receive(utterance, draft)
        stages = (
            (NormalizationState.TIME_RESOLVED, self._resolve_time),
            (NormalizationState.DATE_RESOLVED, self._resolve_date),
            (NormalizationState.RECURRENCE_RESOLVED, self._resolve_recurrence),
            (NormalizationState.CONTACTS_RESOLVED, self._resolve_contacts),
        )

        try:
            for state, stage in stages:
                stage(work)
                work.advance(state)

            outcome = self.validator.validate(self._assemble(work))
            work.diagnostics.extend(outcome.diagnostics)
            work.advance(NormalizationState.VALIDATED)

        except ResolutionError as e:
            work.advance(NormalizationState.REJECTED)
            self.error_handler.handle_error(e, context="Rejected command")
            return NormalizationResult(
                state=NormalizationState.REJECTED,
                rejection=Rejection(e.issue, e.message, e.field),
                diagnostics=tuple(work.diagnostics),
                trace=tuple(work.trace),
                low_confidence=work.low_confidence,
            )

        work.advance(NormalizationState.FINALIZED)
        command = outcome.command
        self.logger.info(
            f"Finalized {command.kind.value} '{command.title}' "
            f"start={command.start_date} {command.start_time} ({len(work.diagnostics)} diagnostics)"
        )
        return NormalizationResult(
            state=NormalizationState.FINALIZED,
            command=command,
            diagnostics=tuple(work.diagnostics),
            trace=tuple(work.trace),
            low_confidence=work.low_confidence,
        )

    def _receive(self, utterance: RawUtterance, draft: DraftCommand) -> _Resolution:
        """Pick the kind, title, container and free-text details."""
        work = _Resolution(utterance=utterance, draft=draft, text=utterance.text.strip())
        work.advance(NormalizationState.RECEIVED)
        draft_kind = CommandKind.from_label(draft.intent)

        if not work.text:
            work.kind = draft_kind or CommandKind.OTHER
            work.title = draft.title
            work.container = draft.calendar
            work.location = draft.location
            work.description = draft.description
            work.zoom = draft.zoom
            return work

        details = self.intent_classifier.analyze(work.text)
        intent = details.intent
        if draft_kind is None:
            work.kind = intent.kind
        elif intent.confidence >= 0.9 and intent.kind is not draft_kind:
            work.kind = intent.kind
            work.note(ResolutionIssue.DRAFT_OVERRIDDEN,
                      f"Draft intent '{draft.intent}' replaced by {intent.kind.value}", "intent")
        else:
            work.kind = draft_kind

        if draft.title and not (details.title_explicit and details.title != draft.title):
            work.title = draft.title
        else:
            work.title = details.title
            if draft.title:
                work.note(ResolutionIssue.DRAFT_OVERRIDDEN,
                          f"Draft title '{draft.title}' replaced by '{details.title}'", "title")

        container = details.container
        if work.kind is not intent.kind:
            container = self.intent_classifier.extract_container(work.text, work.kind)
        work.container = container or draft.calendar
        if container and draft.calendar and container.lower() != draft.calendar.lower():
            work.note(ResolutionIssue.DRAFT_OVERRIDDEN,
                      f"Draft calendar '{draft.calendar}' replaced by '{container}'", "calendar")

        work.location = details.location or draft.location
        work.description = details.description or draft.description
        work.zoom = details.zoom or draft.zoom
        return work

    def _resolve_time(self, work: _Resolution):
        if not work.carries_time:
            return
        if work.text:
            self._scan_time(work)
        else:
            self._draft_time(work)

    def _scan_time(self, work: _Resolution):
        """Take the time from the primary candidate in the raw text."""
        candidate = self.time_scanner.scan(work.text).primary()
        if candidate is None:
            self._default_time(work)
            return

        fallback = self.date_resolver.daypart_bias_for(work.text)
        if candidate.low_confidence and fallback is None:
            policy = self.config.time_parsing.ambiguous_hour_default
            if policy == "reject":
                raise AmbiguousTimeError(f"Cannot tell whether '{candidate.text}' is am or pm",
                                         field="start_time")
            fallback = policy
            work.low_confidence = True
            work.note(ResolutionIssue.AMBIGUOUS_TIME,
                      f"'{candidate.text}' has no am/pm; read as {policy}", "start_time")

        start, end = candidate.resolve(fallback)
        work.start_time = start
        if end is not None:
            work.end_time = end
            if end <= start:
                if not (candidate.crosses_midnight(fallback) or _OVERNIGHT.search(work.text)):
                    raise EndBeforeStartError(f"'{candidate.text}' ends at {end}, not after {start}",
                                              field="end_time")
                work.end_day_offset = 1
        elif work.kind is CommandKind.CREATE_EVENT:
            minutes = self.time_scanner.scan_duration(work.text) or self._default_duration(work)
            self._apply_duration(work, minutes)

        if candidate.timezone:
            if self.timezone_resolver.is_known(candidate.timezone):
                work.timezone_abbreviation = candidate.timezone.upper()
            else:
                work.note(ResolutionIssue.UNKNOWN_TIMEZONE_ABBREVIATION,
                          f"Unknown timezone '{candidate.timezone}'; keeping the time as local", "timezone")

        self.logger.debug(f"Time '{candidate.text}' -> {work.start_time}-{work.end_time} "
                          f"(+{work.end_day_offset}d, tz={work.timezone_abbreviation})")

    def _draft_time(self, work: _Resolution):
        """Parse the draft's times; used only when there is no raw text."""
        draft = work.draft
        if draft.start_time is None:
            self._default_time(work)
            return

        work.start_time = TimeOfDay.parse(draft.start_time)
        if draft.end_time is not None:
            work.end_time = TimeOfDay.parse(draft.end_time)
            if work.end_time <= work.start_time and work.start_time.hour >= 12 and work.end_time.hour < 12:
                work.end_day_offset = 1
        elif work.kind is CommandKind.CREATE_EVENT:
            self._apply_duration(work, self._default_duration(work))

    def _default_time(self, work: _Resolution):
        """Fall back to the default start time; reminders may stay untimed."""
        if work.kind is not CommandKind.CREATE_EVENT:
            return

        default = work.utterance.default_time or TimeOfDay.parse(self.config.defaults.start_time)
        work.note(ResolutionIssue.NO_TIME_FOUND, f"No time found; starting at {default}", "start_time")
        work.start_time = default
        minutes = self.time_scanner.scan_duration(work.text) if work.text else None
        self._apply_duration(work, minutes or self._default_duration(work))

    def _default_duration(self, work: _Resolution) -> int:
        return work.utterance.default_duration_minutes or self.config.defaults.duration_minutes

    def _apply_duration(self, work: _Resolution, minutes: int):
        total = work.start_time.minutes + minutes
        if total >= 2 * _MINUTES_PER_DAY:
            raise InvalidTimeError(f"A {minutes} minute event starting at {work.start_time} "
                                   f"crosses more than one midnight", field="end_time")
        work.end_time = TimeOfDay(total // 60 % 24, total % 60)
        work.end_day_offset = total // _MINUTES_PER_DAY
        work.duration_minutes = minutes

    def _resolve_date(self, work: _Resolution):
        if not work.carries_time:
            return

        if work.text:
            masked = self._mask(work.text, self.recurrence_parser.end_spans(work.text))
            resolution = self.date_resolver.analyze(masked, work.local_now)
            work.date = resolution.date
            start_date = resolution.date
        else:
            draft = work.draft
            if draft.date:
                work.date = DateSpec.parse(draft.date)
            elif draft.start_date:
                work.date = DateSpec.parse(draft.start_date)
            else:
                work.date = DateSpec.from_date(work.local_now.date())
            start_date = DateSpec.parse(draft.start_date) if draft.start_date else work.date

        if work.start_time is None:
            work.start_date = start_date
            return

        end_date = start_date.add_days(work.end_day_offset) if work.end_time is not None else None
        if work.timezone_abbreviation:
            start_date, end_date = self._convert_to_local(work, start_date, end_date)
        if not work.text and work.draft.end_date and work.end_time is not None:
            end_date = DateSpec.parse(work.draft.end_date)

        work.start_date, work.end_date = start_date, end_date
        if work.text:
            self._note_draft_overrides(work)

    def _convert_to_local(self, work: _Resolution, start_date: DateSpec,
                          end_date: Optional[DateSpec]) -> Tuple[DateSpec, Optional[DateSpec]]:
        """Re-express the start and end written in another zone in the local zone."""
        abbreviation = work.timezone_abbreviation
        local_zone = work.utterance.local_timezone

        source = self.timezone_resolver.resolve_on(abbreviation, start_date, work.start_time)
        written = work.start_time
        work.start_time, local_start_date = self.timezone_resolver.convert(
            work.start_time, start_date, source, local_zone)

        local_end_date = None
        if work.duration_minutes is not None:
            work.end_time, local_end_date = self.timezone_resolver.convert_after(
                written, start_date, source, local_zone, work.duration_minutes)
        elif work.end_time is not None:
            end_source = self.timezone_resolver.resolve_on(abbreviation, end_date, work.end_time)
            work.end_time, local_end_date = self.timezone_resolver.convert(
                work.end_time, end_date, end_source, local_zone)

        self.logger.debug(f"{start_date} {written} {abbreviation} is {local_start_date} "
                          f"{work.start_time} in {local_zone}")
        return local_start_date, local_end_date

    def _note_draft_overrides(self, work: _Resolution):
        """Report draft dates and times that the resolvers replaced."""
        resolved = (("date", work.date, DateSpec), ("start_time", work.start_time, TimeOfDay),
                    ("end_time", work.end_time, TimeOfDay))
        for name, value, value_type in resolved:
            proposed = getattr(work.draft, name)
            if proposed is None:
                continue
            try:
                canonical = str(value_type.parse(proposed))
            except ResolutionError:
                canonical = proposed
            if value is None:
                work.note(ResolutionIssue.DRAFT_OVERRIDDEN, f"Draft {name} '{proposed}' ignored", name)
            elif canonical != str(value):
                work.note(ResolutionIssue.DRAFT_OVERRIDDEN,
                          f"Draft {name} '{proposed}' replaced by '{value}'", name)

    def _resolve_recurrence(self, work: _Resolution):
        if work.kind is not CommandKind.CREATE_EVENT:
            return

        flags = self._draft_recurrence_flags(work.draft)
        parse = RecurrenceParse()
        if work.text:
            parse = self.recurrence_parser.parse(work.text, start_date=work.start_date, now=work.local_now)
        if not parse.is_recurring and flags:
            parse = self.recurrence_parser.parse("", flags=flags, start_date=work.start_date,
                                                 now=work.local_now)

        work.diagnostics.extend(parse.diagnostics)
        work.recurrence = parse.rule

    def _draft_recurrence_flags(self, draft: DraftCommand) -> Dict[str, Any]:
        flags = {
            "repeat": draft.repeat,
            "interval": draft.interval,
            "until": draft.until,
            "count": draft.count,
            "days": draft.days or None,
        }
        return {name: value for name, value in flags.items() if value is not None}

    def _resolve_contacts(self, work: _Resolution):
        if work.kind is not CommandKind.CREATE_EVENT:
            return

        contacts: List[ContactRef] = []
        found_emails: Tuple[str, ...] = ()
        if work.text:
            extraction = self.contact_extractor.extract(work.text)
            contacts.extend(extraction.contacts)
            found_emails = extraction.emails
            work.diagnostics.extend(extraction.diagnostics)

        seen = {contact.display_name.lower() for contact in contacts}
        for name in work.draft.contacts:
            name = name.strip()
            if name and name.lower() not in seen:
                seen.add(name.lower())
                contacts.append(ContactRef(name))

        emails, rejected = normalize_emails(found_emails + tuple(work.draft.emails))
        for address in rejected:
            work.note(ResolutionIssue.INVALID_EMAIL, f"Ignoring invalid draft email '{address}'", "emails")

        work.contacts, lookup_diagnostics = self.contact_extractor.resolve(contacts, self.directory)
        work.diagnostics.extend(lookup_diagnostics)
        work.emails = emails

    def _assemble(self, work: _Resolution) -> StructuredCommand:
        return StructuredCommand(
            kind=work.kind,
            title=work.title or "",
            timezone=work.utterance.local_timezone,
            date=work.date,
            start_date=work.start_date,
            start_time=work.start_time,
            end_date=work.end_date,
            end_time=work.end_time,
            container=work.container,
            recurrence=work.recurrence,
            contacts=work.contacts,
            emails=work.emails,
            location=work.location,
            description=work.description,
            zoom=work.zoom,
        )

    def _mask(self, text: str, spans: Tuple[Tuple[int, int], ...]) -> str:
        """Blank out spans without changing offsets."""
        for start, end in spans:
            text = text[:start] + " " * (end - start) + text[end:]
        return text


def normalize(text: str, now: datetime, local_timezone: str, draft: DraftInput = None,
              config: Optional[EngineConfig] = None) -> NormalizationResult:
    """Normalize one utterance with a throwaway normalizer.

    Args:
        text: Raw utterance
        now: Timezone-aware reference instant
        local_timezone: IANA id of the caller's zone
        draft: Optional upstream draft
        config: Optional engine configuration

    Returns:
        Normalization result
    """
    return CommandNormalizer(config).normalize(RawUtterance(text, now, local_timezone), draft)
