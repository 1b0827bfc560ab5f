"""
Controller error codes reported by the TE (tell last error) command.

The controller latches one error character per command; TE returns it and
clears it. '@' means no error.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(Enum):
    """Grouping of controller error codes."""
    NONE = "none"
    ADDRESSING = "addressing"
    PARAMETER = "parameter"
    STATE = "state"
    HARDWARE = "hardware"
    COMMUNICATION = "communication"
    VERSION = "version"


class DeviceErrorCode(Enum):
    """Status characters returned at offset 3 of a TE reply."""
    NO_ERROR = "@"
    UNKNOWN_MESSAGE_CODE = "A"
    WRONG_ADDRESS = "B"
    PARAMETER_OUT_OF_RANGE = "C"
    COMMAND_NOT_ALLOWED = "D"
    HOME_ALREADY_STARTED = "E"
    ESP_STAGE_UNKNOWN = "F"
    DISPLACEMENT_OUT_OF_LIMITS = "G"
    NOT_ALLOWED_NOT_REFERENCED = "H"
    NOT_ALLOWED_CONFIGURATION = "I"
    NOT_ALLOWED_DISABLE = "J"
    NOT_ALLOWED_READY = "K"
    NOT_ALLOWED_HOMING = "L"
    NOT_ALLOWED_MOVING = "M"
    OUT_OF_SOFTWARE_LIMIT = "N"
    COMMUNICATION_TIMEOUT = "S"
    EEPROM_ACCESS = "U"
    EXECUTION_ERROR = "V"
    NOT_ALLOWED_PP_VERSION = "W"
    NOT_ALLOWED_CC_VERSION = "X"

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORIES.get(self, ErrorCategory.STATE)

    @property
    def persistent(self) -> bool:
        """True if reconnecting cannot clear the condition (misconfiguration)."""
        return self in PERSISTENT_CODES

    @classmethod
    def from_char(cls, char: str) -> "DeviceErrorCode":
        """
        Look up a status character.

        Raises:
            ValueError: If the character is not a known code.
        """
        return cls(char)


_DESCRIPTIONS = {
    DeviceErrorCode.NO_ERROR: "No error.",
    DeviceErrorCode.UNKNOWN_MESSAGE_CODE: "Unknown message code or floating point controller address.",
    DeviceErrorCode.WRONG_ADDRESS: "Controller address not correct.",
    DeviceErrorCode.PARAMETER_OUT_OF_RANGE: "Parameter missing or out of range.",
    DeviceErrorCode.COMMAND_NOT_ALLOWED: "Command not allowed.",
    DeviceErrorCode.HOME_ALREADY_STARTED: "Home sequence already started.",
    DeviceErrorCode.ESP_STAGE_UNKNOWN: "ESP stage name unknown.",
    DeviceErrorCode.DISPLACEMENT_OUT_OF_LIMITS: "Displacement out of limits.",
    DeviceErrorCode.NOT_ALLOWED_NOT_REFERENCED: "Command not allowed in NOT REFERENCED state.",
    DeviceErrorCode.NOT_ALLOWED_CONFIGURATION: "Command not allowed in CONFIGURATION state.",
    DeviceErrorCode.NOT_ALLOWED_DISABLE: "Command not allowed in DISABLE state.",
    DeviceErrorCode.NOT_ALLOWED_READY: "Command not allowed in READY state.",
    DeviceErrorCode.NOT_ALLOWED_HOMING: "Command not allowed in HOMING state.",
    DeviceErrorCode.NOT_ALLOWED_MOVING: "Command not allowed in MOVING state.",
    DeviceErrorCode.OUT_OF_SOFTWARE_LIMIT: "Current position out of software limit.",
    DeviceErrorCode.COMMUNICATION_TIMEOUT: "Communication Time Out.",
    DeviceErrorCode.EEPROM_ACCESS: "Error during EEPROM access.",
    DeviceErrorCode.EXECUTION_ERROR: "Error during command execution.",
    DeviceErrorCode.NOT_ALLOWED_PP_VERSION: "Command not allowed for PP version.",
    DeviceErrorCode.NOT_ALLOWED_CC_VERSION: "Command not allowed for CC version.",
}

_CATEGORIES = {
    DeviceErrorCode.NO_ERROR: ErrorCategory.NONE,
    DeviceErrorCode.UNKNOWN_MESSAGE_CODE: ErrorCategory.ADDRESSING,
    DeviceErrorCode.WRONG_ADDRESS: ErrorCategory.ADDRESSING,
    DeviceErrorCode.PARAMETER_OUT_OF_RANGE: ErrorCategory.PARAMETER,
    DeviceErrorCode.DISPLACEMENT_OUT_OF_LIMITS: ErrorCategory.PARAMETER,
    DeviceErrorCode.OUT_OF_SOFTWARE_LIMIT: ErrorCategory.PARAMETER,
    DeviceErrorCode.ESP_STAGE_UNKNOWN: ErrorCategory.HARDWARE,
    DeviceErrorCode.EEPROM_ACCESS: ErrorCategory.HARDWARE,
    DeviceErrorCode.EXECUTION_ERROR: ErrorCategory.HARDWARE,
    DeviceErrorCode.COMMUNICATION_TIMEOUT: ErrorCategory.COMMUNICATION,
    DeviceErrorCode.NOT_ALLOWED_PP_VERSION: ErrorCategory.VERSION,
    DeviceErrorCode.NOT_ALLOWED_CC_VERSION: ErrorCategory.VERSION,
}

PERSISTENT_CODES = frozenset({
    DeviceErrorCode.WRONG_ADDRESS,
    DeviceErrorCode.ESP_STAGE_UNKNOWN,
    DeviceErrorCode.NOT_ALLOWED_PP_VERSION,
    DeviceErrorCode.NOT_ALLOWED_CC_VERSION,
})


@dataclass(frozen=True)
class DeviceError:
    """One error reported by the controller."""

    code: DeviceErrorCode

    @property
    def status_char(self) -> str:
        return self.code.value

    @property
    def description(self) -> str:
        return self.code.description

    @property
    def category(self) -> ErrorCategory:
        return self.code.category

    @property
    def persistent(self) -> bool:
        return self.code.persistent

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code.name,
            "status_char": self.status_char,
            "description": self.description,
            "category": self.category.value,
            "persistent": self.persistent,
        }
