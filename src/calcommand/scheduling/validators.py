"""Command Validators

Rules a structured command must satisfy before it is finalized. Rules that
can repair a command (missing title, missing container, fields a command kind
does not carry) do so and report a diagnostic; rules that find a
contradiction raise a ResolutionError.
"""

from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple

from ..core.config_manager import DefaultsConfig
from ..core.error_handler import (
    EndBeforeStartError,
    InvalidDateError,
    InvalidRecurrenceError,
    ResolutionIssue,
)
from ..core.logging_manager import LoggingManager
from .models import CommandKind, Diagnostic, StructuredCommand


@dataclass
class ValidationOutcome:
    """Result of validating one command."""
    command: StructuredCommand
    diagnostics: List[Diagnostic] = field(default_factory=list)
    rules_applied: List[str] = field(default_factory=list)


class CommandRule:
    """Base class for command validation rules."""

    def __init__(self, name: str, description: str):
        self.name = name
        self.description = description

    def apply(self, command: StructuredCommand,
              defaults: DefaultsConfig) -> Tuple[StructuredCommand, List[Diagnostic]]:
        """Check a command and return it, repaired where the rule allows.

        Args:
            command: Command to check
            defaults: Configured fallback values

        Returns:
            Tuple of (possibly repaired command, diagnostics)

        Raises:
            ResolutionError: If the command contradicts itself
        """
        raise NotImplementedError("Subclasses must implement apply method")


class KindShapeRule(CommandRule):
    """Drop the fields a command kind does not carry."""

    def __init__(self):
        super().__init__("kind_shape", "Reminders have no end, notes have no time, other has only a title")

    def apply(self, command, defaults):
        if command.kind is CommandKind.CREATE_EVENT:
            return command, []

        if command.kind is CommandKind.CREATE_REMINDER:
            return replace(command, end_date=None, end_time=None, recurrence=None,
                           contacts=(), emails=(), location=None, zoom=False), []

        cleared = replace(command, date=None, start_date=None, start_time=None, end_date=None,
                          end_time=None, recurrence=None, contacts=(), emails=(), location=None,
                          zoom=False)
        if command.kind is CommandKind.OTHER:
            cleared = replace(cleared, container=None, description=None)
        return cleared, []


class TitleRule(CommandRule):
    """Every command needs a non-empty title."""

    def __init__(self):
        super().__init__("title", "Fill a placeholder title when none was given")

    def apply(self, command, defaults):
        title = (command.title or "").strip()
        if title:
            return (replace(command, title=title) if title != command.title else command), []

        placeholder = {
            CommandKind.CREATE_REMINDER: defaults.reminder_title,
            CommandKind.CREATE_NOTE: defaults.note_title,
        }.get(command.kind, defaults.event_title)
        diagnostic = Diagnostic(ResolutionIssue.MISSING_TITLE,
                                f"No title given; using '{placeholder}'", "title")
        return replace(command, title=placeholder), [diagnostic]


class ContainerRule(CommandRule):
    """Default the calendar, reminder list or notes folder."""

    def __init__(self):
        super().__init__("container", "Use the configured calendar, list or folder when none was named")

    def apply(self, command, defaults):
        if command.container:
            return command, []

        container = {
            CommandKind.CREATE_EVENT: defaults.calendar,
            CommandKind.CREATE_REMINDER: defaults.reminder_list,
            CommandKind.CREATE_NOTE: defaults.notes_folder,
        }.get(command.kind)
        if container is None:
            return command, []
        return replace(command, container=container), []


class TimeOrderRule(CommandRule):
    """An event ends strictly after it starts, at most one midnight later."""

    def __init__(self):
        super().__init__("time_order", "End after start; end date equal to or one day after the start date")

    def apply(self, command, defaults):
        if command.kind is not CommandKind.CREATE_EVENT:
            return command, []

        start, end = command.start, command.end
        if start is None or end is None:
            return command, []

        if end <= start:
            raise EndBeforeStartError(
                f"Event ends at {command.end_date} {command.end_time}, "
                f"not after its start at {command.start_date} {command.start_time}",
                field="end_time",
            )

        days = (command.end_date.to_date() - command.start_date.to_date()).days
        if days > 1:
            raise InvalidDateError(
                f"Event ends {days} days after it starts; only one midnight may be crossed",
                field="end_date",
            )
        return command, []


class RecurrenceWindowRule(CommandRule):
    """A series cannot end before its first occurrence."""

    def __init__(self):
        super().__init__("recurrence_window", "Recurrence end date on or after the start date")

    def apply(self, command, defaults):
        rule = command.recurrence
        if rule is None or rule.until is None or command.start_date is None:
            return command, []

        if rule.until < command.start_date:
            raise InvalidRecurrenceError(
                f"Recurrence ends on {rule.until}, before the first occurrence on {command.start_date}",
                field="until",
            )
        return command, []


class CommandValidator:
    """Runs the validation rules over a structured command."""

    def __init__(self, defaults: Optional[DefaultsConfig] = None):
        """Initialize command validator.

        Args:
            defaults: Fallback values for titles and containers
        """
        self.defaults = defaults or DefaultsConfig()
        self.logger = LoggingManager.get_logger(__name__)

        self.rules = self._initialize_rules()

    def _initialize_rules(self) -> List[CommandRule]:
        """Initialize validation rules in the order they run.

        Returns:
            List of command rules
        """
        return [
            KindShapeRule(),
            TitleRule(),
            ContainerRule(),
            TimeOrderRule(),
            RecurrenceWindowRule(),
        ]

    def validate(self, command: StructuredCommand) -> ValidationOutcome:
        """Validate a command, repairing what the rules allow.

        Args:
            command: Command assembled by the normalizer

        Returns:
            Validation outcome with the final command and diagnostics

        Raises:
            ResolutionError: If a rule finds a contradiction
        """
        outcome = ValidationOutcome(command=command)

        for rule in self.rules:
            outcome.command, diagnostics = rule.apply(outcome.command, self.defaults)
            outcome.diagnostics.extend(diagnostics)
            outcome.rules_applied.append(rule.name)

        self.logger.debug(f"Applied rules {outcome.rules_applied} with {len(outcome.diagnostics)} diagnostics")
        return outcome
