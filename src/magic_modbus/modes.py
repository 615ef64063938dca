"""UI mode state machine: one tagged Mode value and an explicit transition table."""

import logging
from dataclasses import dataclass
from enum import Enum

from .errors import InvalidTransition

logger = logging.getLogger(__name__)


class ModeKind(str, Enum):
    MAIN = "main"
    HELP = "help"
    CONNECTION = "connection"
    EDIT = "edit"
    GOTO = "goto"
    SAVE_MACRO = "save_macro"
    ERROR = "error"


class SaveStage(str, Enum):
    MAIN = "main"
    OVERWRITE_WARNING = "overwrite_warning"
    FILE_SAVED = "file_saved"


class Trigger(str, Enum):
    TOGGLE_HELP = "toggle_help"
    OPEN_CONNECTION = "open_connection"
    OPEN_EDIT = "open_edit"
    OPEN_GOTO = "open_goto"
    OPEN_SAVE = "open_save"
    SUBMIT = "submit"
    CANCEL = "cancel"
    SAVE_CONFLICT = "save_conflict"
    SAVED = "saved"
    DISMISS = "dismiss"


@dataclass(frozen=True)
class Mode:
    """Current mode; stage is set only for SAVE_MACRO, message only for ERROR."""

    kind: ModeKind
    stage: SaveStage | None = None
    message: str | None = None

    @property
    def is_popup(self) -> bool:
        return self.kind not in (ModeKind.MAIN, ModeKind.HELP)

    def __str__(self) -> str:
        if self.stage is not None:
            return f"{self.kind.value}:{self.stage.value}"
        return self.kind.value


MAIN = Mode(ModeKind.MAIN)
HELP = Mode(ModeKind.HELP)
CONNECTION = Mode(ModeKind.CONNECTION)
EDIT = Mode(ModeKind.EDIT)
GOTO = Mode(ModeKind.GOTO)
SAVE_MAIN = Mode(ModeKind.SAVE_MACRO, SaveStage.MAIN)
SAVE_OVERWRITE = Mode(ModeKind.SAVE_MACRO, SaveStage.OVERWRITE_WARNING)
SAVE_DONE = Mode(ModeKind.SAVE_MACRO, SaveStage.FILE_SAVED)

# Error popups carry a message, so they are keyed by kind alone.
_ERROR_KEY = Mode(ModeKind.ERROR)

TRANSITIONS: dict[tuple[Mode, Trigger], Mode] = {
    (MAIN, Trigger.TOGGLE_HELP): HELP,
    (MAIN, Trigger.OPEN_CONNECTION): CONNECTION,
    (MAIN, Trigger.OPEN_EDIT): EDIT,
    (MAIN, Trigger.OPEN_GOTO): GOTO,
    (MAIN, Trigger.OPEN_SAVE): SAVE_MAIN,
    (HELP, Trigger.TOGGLE_HELP): MAIN,
    (HELP, Trigger.CANCEL): MAIN,
    (CONNECTION, Trigger.SUBMIT): MAIN,
    (CONNECTION, Trigger.CANCEL): MAIN,
    (EDIT, Trigger.SUBMIT): MAIN,
    (EDIT, Trigger.CANCEL): MAIN,
    (GOTO, Trigger.SUBMIT): MAIN,
    (GOTO, Trigger.CANCEL): MAIN,
    (SAVE_MAIN, Trigger.SAVE_CONFLICT): SAVE_OVERWRITE,
    (SAVE_MAIN, Trigger.SAVED): SAVE_DONE,
    (SAVE_MAIN, Trigger.CANCEL): MAIN,
    (SAVE_OVERWRITE, Trigger.SAVE_CONFLICT): SAVE_OVERWRITE,
    (SAVE_OVERWRITE, Trigger.SAVED): SAVE_DONE,
    (SAVE_OVERWRITE, Trigger.CANCEL): SAVE_MAIN,
    (SAVE_DONE, Trigger.SAVE_CONFLICT): SAVE_OVERWRITE,
    (SAVE_DONE, Trigger.SAVED): SAVE_DONE,
    (SAVE_DONE, Trigger.DISMISS): MAIN,
    (SAVE_DONE, Trigger.CANCEL): MAIN,
    (_ERROR_KEY, Trigger.DISMISS): MAIN,
}


class ModeMachine:
    """Holds the current Mode; every change goes through TRANSITIONS or fail()."""

    def __init__(self) -> None:
        self._mode = MAIN

    @property
    def mode(self) -> Mode:
        return self._mode

    def can_fire(self, trigger: Trigger) -> bool:
        return (self._key(), trigger) in TRANSITIONS

    def fire(self, trigger: Trigger) -> Mode:
        target = TRANSITIONS.get((self._key(), trigger))
        if target is None:
            raise InvalidTransition(self._mode, trigger.value)
        logger.debug("Mode %s --%s--> %s", self._mode, trigger.value, target)
        self._mode = target
        return target

    def fail(self, message: str) -> Mode:
        """Show an error popup; allowed from every mode, replaces any open popup."""
        self._mode = Mode(ModeKind.ERROR, message=message)
        return self._mode

    def _key(self) -> Mode:
        if self._mode.kind is ModeKind.ERROR:
            return _ERROR_KEY
        return self._mode
