"""
Configuration models using Pydantic for validation.

All configuration is loaded from config.json and validated at startup.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ServerConfig(BaseModel):
    """HTTP property bridge configuration."""

    ip: str = Field(default="0.0.0.0", description="IP address to bind to")
    port: int = Field(default=5000, ge=1, le=65535, description="HTTP port")


class SerialConfig(BaseModel):
    """Serial link and device identity configuration."""

    port: str = Field(
        default="",
        description="Explicit device path (e.g. /dev/ttyUSB0). Empty to match by USB identity."
    )
    vendor_id: str = Field(default="0403", description="USB vendor ID (hex)")
    product_id: str = Field(default="6001", description="USB product ID (hex)")
    serial_number: str = Field(default="", description="USB serial number. Empty matches any.")
    baud: int = Field(default=57600, description="Baud rate")
    write_timeout_ms: int = Field(
        default=2000, ge=10, le=30000, description="Write timeout in milliseconds"
    )
    read_timeout_ms: int = Field(
        default=2000, ge=10, le=30000, description="Read timeout in milliseconds"
    )

    @field_validator("vendor_id", "product_id")
    @classmethod
    def validate_usb_id(cls, v):
        """Ensure USB IDs are 4 hex digits."""
        try:
            value = int(v, 16)
        except ValueError:
            raise ValueError(f"USB ID must be hexadecimal, got '{v}'")
        if len(v) != 4 or value < 0:
            raise ValueError(f"USB ID must be 4 hex digits, got '{v}'")
        return v.lower()


class StageConfig(BaseModel):
    """Stage controller behavior."""

    controller_address: int = Field(
        default=1, ge=1, le=9, description="Controller index (single digit keeps reply offsets fixed)"
    )
    position_tolerance: float = Field(
        default=0.05, gt=0, description="Absolute tolerance for a completed move (device units)"
    )
    poll_interval_ms: int = Field(
        default=1000, ge=50, le=60000, description="State machine tick interval (ms)"
    )
    home_on_connect: bool = Field(
        default=True, description="Issue the home command when the controller is not referenced"
    )
    expected_stage_id: Optional[str] = Field(
        default=None, description="Stage identifier expected from the ID? query. None skips the check."
    )
    position_decimals: int = Field(
        default=6, ge=0, le=9, description="Decimal places used when encoding move targets"
    )
    property_name: str = Field(default="position", description="Published property name")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL"
    )
    file: Optional[str] = Field(
        default="smc100cc_ctrl.log",
        description="Log file path (None for console only)"
    )
    max_file_mb: int = Field(default=10, ge=1, le=1024, description="Rotate the log file at this size")
    backup_count: int = Field(default=5, ge=0, le=100, description="Rotated log files kept")
    protocol_level: str = Field(
        default="INFO",
        description="Level for per-frame TX/RX lines (DEBUG shows every frame)"
    )

    @field_validator("level", "protocol_level")
    @classmethod
    def validate_level(cls, v):
        """Validate logging level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class SimulatorConfig(BaseModel):
    """Simulated SMC100CC controller configuration."""

    enabled: bool = Field(default=False, description="Use simulator instead of real hardware")
    device_name: str = Field(default="/dev/ttySIM0", description="Device name reported by discovery")
    initial_position: float = Field(default=0.0, description="Starting position")
    speed_units_per_sec: float = Field(
        default=5.0, gt=0, description="Simulated motion speed"
    )
    homing_time_sec: float = Field(
        default=1.0, ge=0, description="Simulated homing duration"
    )
    stage_id: str = Field(default="CC_SIM", description="Identifier returned by ID?")
    response_latency_ms: int = Field(
        default=0, ge=0, le=5000, description="Artificial response delay (ms)"
    )


class AppConfig(BaseModel):
    """Root configuration model."""

    model_config = ConfigDict(extra="forbid")

    server: ServerConfig = Field(default_factory=ServerConfig)
    serial: SerialConfig = Field(default_factory=SerialConfig)
    stage: StageConfig = Field(default_factory=StageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    simulator: SimulatorConfig = Field(default_factory=SimulatorConfig)
