"""
MMDVMHost INI File Access
Reads and writes the host's MMDVM configuration for the settings page
"""
import configparser
from pathlib import Path
from typing import Any, Dict, Union
import logging

logger = logging.getLogger(__name__)

IniValue = Union[str, int, float, bool]
IniSections = Dict[str, Dict[str, IniValue]]


class MMDVMConfigError(Exception):
    """The MMDVM INI file could not be read or written"""


def _new_parser() -> configparser.ConfigParser:
    # MMDVM.ini has duplicate keys in some builds and uses mixed-case keys
    parser = configparser.ConfigParser(strict=False, interpolation=None,
                                       comment_prefixes=('#', ';'))
    parser.optionxform = str
    return parser


def coerce_value(value: str) -> IniValue:
    """Turn INI text into bool/int/float when the text is exactly that value"""
    lower = value.lower()
    if lower == 'true':
        return True
    if lower == 'false':
        return False
    try:
        number = int(value)
        if str(number) == value:
            return number
    except ValueError:
        pass
    try:
        number = float(value)
        if str(number) == value:
            return number
    except ValueError:
        pass
    return value


def format_value(value: IniValue) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def read_mmdvm_config(path: Path) -> IniSections:
    """Read the INI file into {section: {key: value}} with coerced values"""
    path = Path(path)
    parser = _new_parser()
    try:
        with open(path, 'r', encoding='utf-8') as f:
            parser.read_file(f)
    except (OSError, configparser.Error) as e:
        raise MMDVMConfigError(f"Cannot read {path}: {e}") from e

    return {
        section: {key: coerce_value(value.strip()) for key, value in parser.items(section)}
        for section in parser.sections()
    }


def write_mmdvm_config(path: Path, sections: Dict[str, Any]):
    """Write {section: {key: value}} back as key=value lines"""
    path = Path(path)
    parser = _new_parser()
    for section, entries in sections.items():
        if not isinstance(entries, dict):
            continue
        parser.add_section(section)
        for key, value in entries.items():
            if value is not None:
                parser.set(section, key, format_value(value))

    try:
        with open(path, 'w', encoding='utf-8') as f:
            parser.write(f, space_around_delimiters=False)
    except OSError as e:
        raise MMDVMConfigError(f"Cannot write {path}: {e}") from e
    logger.info(f"Wrote {len(parser.sections())} sections to {path}")


def merge_mmdvm_config(existing: IniSections, update: Dict[str, Any]) -> IniSections:
    """Overlay the sections/keys in update onto existing; other keys are kept"""
    merged = {section: dict(entries) for section, entries in existing.items()}
    for section, entries in update.items():
        if not isinstance(entries, dict):
            continue
        target = merged.setdefault(section, {})
        for key, value in entries.items():
            if value is not None:
                target[key] = value
    return merged
