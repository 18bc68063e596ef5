from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from pathlib import Path
from typing import Any, Dict, Final, Mapping, Optional, Union

import serial  # type: ignore

from .codec import EncodingMode
from .errors import InvalidConfig
from .history import DEFAULT_CAPACITY
from .session_log import DEFAULT_LOG_DIR

try:  # Python 3.11+
    import tomllib as _toml
except ModuleNotFoundError:  # pragma: no cover
    import tomli as _toml  # type: ignore

_logger = logging.getLogger(__name__)

MIN_BAUD_RATE: Final[int] = 4800
MAX_BAUD_RATE: Final[int] = 2_000_000


class DataBits(IntEnum):
    FIVE = 5
    SIX = 6
    SEVEN = 7
    EIGHT = 8


class StopBits(IntEnum):
    ONE = 1
    TWO = 2


class Parity(Enum):
    NONE = "none"
    ODD = "odd"
    EVEN = "even"


class FlowControl(Enum):
    NONE = "none"
    SOFTWARE = "software"
    HARDWARE = "hardware"


_BYTESIZE = {
    DataBits.FIVE: serial.FIVEBITS,
    DataBits.SIX: serial.SIXBITS,
    DataBits.SEVEN: serial.SEVENBITS,
    DataBits.EIGHT: serial.EIGHTBITS,
}
_STOPBITS = {StopBits.ONE: serial.STOPBITS_ONE, StopBits.TWO: serial.STOPBITS_TWO}
_PARITY = {Parity.NONE: serial.PARITY_NONE, Parity.ODD: serial.PARITY_ODD, Parity.EVEN: serial.PARITY_EVEN}


@dataclass(frozen=True)
class PortConfig:
    """
    Serial line settings. Copied into a Connection when it opens; changing
    them afterwards requires closing and reopening the port.
    Fields:
        baud_rate: 4800..2000000
        data_bits: 5, 6, 7 or 8
        stop_bits: 1 or 2
        parity: none, odd or even
        flow_control: none, software (XON/XOFF) or hardware (RTS/CTS)
        read_timeout: seconds a single read blocks, > 0
    """
    baud_rate: int = 115200
    data_bits: DataBits = DataBits.EIGHT
    stop_bits: StopBits = StopBits.ONE
    parity: Parity = Parity.NONE
    flow_control: FlowControl = FlowControl.NONE
    read_timeout: float = 0.1

    def validate(self) -> "PortConfig":
        """
        Check every field against the recognized values.
        Returns:
            PortConfig: self, for chaining
        Raises:
            InvalidConfig: On the first field out of range
        """
        if isinstance(self.baud_rate, bool) or not isinstance(self.baud_rate, int):
            raise InvalidConfig(f"baud_rate must be an integer, got {self.baud_rate!r}")
        if not (MIN_BAUD_RATE <= self.baud_rate <= MAX_BAUD_RATE):
            raise InvalidConfig(f"baud_rate {self.baud_rate} outside {MIN_BAUD_RATE}..{MAX_BAUD_RATE}")
        if not isinstance(self.data_bits, DataBits):
            raise InvalidConfig(f"data_bits must be one of 5, 6, 7, 8, got {self.data_bits!r}")
        if not isinstance(self.stop_bits, StopBits):
            raise InvalidConfig(f"stop_bits must be 1 or 2, got {self.stop_bits!r}")
        if not isinstance(self.parity, Parity):
            raise InvalidConfig(f"parity must be none, odd or even, got {self.parity!r}")
        if not isinstance(self.flow_control, FlowControl):
            raise InvalidConfig(f"flow_control must be none, software or hardware, got {self.flow_control!r}")
        if isinstance(self.read_timeout, bool) or not isinstance(self.read_timeout, (int, float)):
            raise InvalidConfig(f"read_timeout must be a number of seconds, got {self.read_timeout!r}")
        if not self.read_timeout > 0:
            raise InvalidConfig(f"read_timeout must be positive, got {self.read_timeout!r}")
        return self

    def to_serial_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for serial.Serial()."""
        return {
            "baudrate": self.baud_rate,
            "bytesize": _BYTESIZE[self.data_bits],
            "stopbits": _STOPBITS[self.stop_bits],
            "parity": _PARITY[self.parity],
            "xonxoff": self.flow_control is FlowControl.SOFTWARE,
            "rtscts": self.flow_control is FlowControl.HARDWARE,
            "timeout": float(self.read_timeout),
        }

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "PortConfig":
        """
        Build a validated config from plain values, e.g. a TOML [serial] table.
        Unknown keys are rejected.
        """
        known = {"baud_rate", "data_bits", "stop_bits", "parity", "flow_control", "read_timeout"}
        unknown = set(values) - known
        if unknown:
            raise InvalidConfig(f"unknown serial settings: {', '.join(sorted(unknown))}")
        cfg = cls()
        updates: Dict[str, Any] = {}
        if "baud_rate" in values:
            updates["baud_rate"] = values["baud_rate"]
        if "data_bits" in values:
            updates["data_bits"] = _lookup(DataBits, values["data_bits"], "data_bits")
        if "stop_bits" in values:
            updates["stop_bits"] = _lookup(StopBits, values["stop_bits"], "stop_bits")
        if "parity" in values:
            updates["parity"] = _lookup(Parity, values["parity"], "parity")
        if "flow_control" in values:
            updates["flow_control"] = _lookup(FlowControl, values["flow_control"], "flow_control")
        if "read_timeout" in values:
            updates["read_timeout"] = values["read_timeout"]
        return replace(cfg, **updates).validate()


def _lookup(enum_cls, value: Any, key: str):
    # Accept the enum itself, its value (8, "odd") or its name ("EIGHT", "ODD")
    if isinstance(value, enum_cls):
        return value
    try:
        if isinstance(value, str) and not value.strip().isdigit():
            text = value.strip()
            for member in enum_cls:
                if text.lower() in (str(member.value).lower(), member.name.lower()):
                    return member
            raise ValueError(value)
        if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
            raise ValueError(value)
        return enum_cls(int(value))
    except (ValueError, TypeError):
        raise InvalidConfig(f"invalid {key}: {value!r}") from None


@dataclass(frozen=True)
class Settings:
    """Everything loaded from a serial-console TOML file."""
    port: PortConfig = field(default_factory=PortConfig)
    history_capacity: int = DEFAULT_CAPACITY
    history_dedupe: bool = False
    log_dir: str = DEFAULT_LOG_DIR
    log_enabled: bool = True
    mode: EncodingMode = EncodingMode.UTF8
    line_feed: bool = False

    @classmethod
    def from_dict(cls, config: Mapping[str, Any]) -> "Settings":
        serial_cfg = config.get("serial", {})
        history_cfg = config.get("history", {})
        log_cfg = config.get("log", {})
        console_cfg = config.get("console", {})

        port = PortConfig.from_mapping(serial_cfg)

        capacity = history_cfg.get("capacity", DEFAULT_CAPACITY)
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            raise InvalidConfig(f"history.capacity must be a positive integer, got {capacity!r}")

        try:
            mode = EncodingMode.parse(console_cfg.get("mode", EncodingMode.UTF8))
        except ValueError as exc:
            raise InvalidConfig(str(exc)) from None

        return cls(
            port=port,
            history_capacity=capacity,
            history_dedupe=bool(history_cfg.get("dedupe", False)),
            log_dir=str(log_cfg.get("dir", DEFAULT_LOG_DIR)),
            log_enabled=bool(log_cfg.get("enabled", True)),
            mode=mode,
            line_feed=bool(console_cfg.get("line_feed", False)),
        )


def _load_config(config_path: Union[str, Path]) -> dict:
    """Load configuration from TOML file."""
    try:
        with open(config_path, "rb") as f:
            return _toml.load(f)
    except FileNotFoundError:
        _logger.warning("config file %s not found, using default values", config_path)
        return {}
    except _toml.TOMLDecodeError as exc:
        raise InvalidConfig(f"cannot parse {config_path}: {exc}") from exc


def load_settings(config_path: Optional[Union[str, Path]] = None) -> Settings:
    """
    Read settings from a TOML file.
    Args:
        config_path (str | Path, optional): File to read; None gives the defaults
    Returns:
        Settings: Validated settings
    Raises:
        InvalidConfig: If the file cannot be parsed or a value is out of range
    """
    if config_path is None:
        return Settings()
    return Settings.from_dict(_load_config(config_path))
