"""
Log Pattern Definitions for WPSD Dashboard

This module centralizes the MMDVMHost log patterns used to build live traffic
records. Each digital voice mode defines its own ordered set of sub-patterns
(voice header, end of transmission, network relayed variants). Order matters:
the parsers try them top to bottom and the first match wins, because several
patterns can match the same ambiguous line.

Patterns are pre-compiled at module load time and matched case-insensitively.

Adding a new mode:
1. Add a new dictionary with the mode's sub-patterns, in priority order
2. Register it in _COMPILED_PATTERNS
3. Write a matcher in parsers.py and add it to LineDecoder.MATCHERS
"""
import re

# =============================================================================
# LOG LINE ENVELOPE
# =============================================================================
# Matches: "M: 2024-01-01 12:00:00.000 DMR Slot 2, received RF voice header ..."
# Groups: (1) timestamp, (2) message
# Only "M:" (message level) lines carry voice traffic; everything else is skipped
ENVELOPE_PATTERN = r'^M:\s+(\d{4}-\d{2}-\d{2}\s+\d{2}:\d{2}:\d{2}\.\d{3})\s+(.+)$'

# =============================================================================
# DMR PATTERNS
# =============================================================================
DMR_PATTERNS = {
    # Matches: "DMR Slot 2, received network voice header from 2501001 to TG 2501"
    # Groups: (1) slot, (2) RF|network, (3) DMR ID or callsign, (4) talkgroup
    'voice_header': r'DMR Slot (\d), received (RF|network) voice header from (\d+|[A-Z0-9/]+) to (?:TG )?(\d+)',

    # Matches: "DMR Slot 2, received network end of voice transmission, 6.2 seconds, 5% packet loss, BER: 0.0%"
    # Groups: (1) slot, (2) duration, (3) packet loss, (4) BER
    'network_end': r'DMR Slot (\d), received network end of voice transmission, ([\d.]+) seconds, (\d+)% packet loss, BER: ([\d.]+)%',

    # Matches: "DMR Slot 2, received RF end of voice transmission from K6JM to 9990, 7.6 seconds, BER: 0.0%, RSSI: -43/-43/-43 dBm"
    # Groups: (1) slot, (2) callsign, (3) target, (4) duration, (5) BER, (6-8) RSSI samples (7 and 8 optional)
    'rf_end': r'DMR Slot (\d), received RF end of voice transmission from ([A-Z0-9/]+) to (?:TG )?(\d+), ([\d.]+) seconds, BER: ([\d.]+)%, RSSI: (-?\d+)(?:/(-?\d+))?(?:/(-?\d+))? dBm',

    # Matches: "DMR Slot 1, received network end of voice transmission from 3106849 to TG 91, 4.1 seconds"
    # Groups: (1) slot, (2) DMR ID, (3) talkgroup, (4) duration
    'network_end_source': r'DMR Slot (\d), received network end of voice transmission from (\d+|[A-Z0-9/]+) to (?:TG )?(\d+), ([\d.]+) seconds',
}

# =============================================================================
# D-STAR PATTERNS
# =============================================================================
DSTAR_PATTERNS = {
    # Matches: "D-Star, received RF end of voice transmission from K6JM/AB1CD"
    # Groups: (1) RF|network, (2) callsign (may carry a /suffix)
    'transmission': r'D-Star, received (RF|network) (?:end of )?voice transmission(?: header)? from ([A-Z0-9/]+)',

    # Matches: "D-Star, received network header from M1ABC /ABCD to CQCQCQ"
    #          "D-Star, network link to reflector REF001"
    # Groups: (1) target word
    # Loose fallback: origin is always reported as Network
    'reflector': r'D-Star, (?:received )?(?:RF|network) .* (?:to|reflector) (\w+)',
}

# =============================================================================
# YSF (SYSTEM FUSION) PATTERNS
# =============================================================================
# Pre-filter: the literal tag must appear in the message before any pattern runs
YSF_TAG = 'YSF'

YSF_PATTERNS = {
    # Matches: "YSF, received RF header from N0CALL to ALL"
    #          "YSF, received RF header from N0CALL       to DG-ID 0"
    # Groups: (1) RF|network, (2) source (optional), (3) target (optional)
    'header': r'YSF, received (RF|network)\s+(?:voice\s+)?(?:header|transmission)(?:\s+from\s+([A-Z0-9/-]+))?(?:\s+to\s+(DG-ID\s+\d+|\w+))?',

    # Matches: "YSF, received RF end of transmission from N0CALL       to DG-ID 0, 2.1 seconds"
    #          "YSF, received network end of voice transmission from G4KLX, 3.4 seconds"
    # Groups: (1) RF|network, (2) source (optional), (3) target (optional), (4) duration
    'end': r'YSF, received (RF|network)\s+end of (?:voice\s+)?transmission(?:\s+from\s+([A-Z0-9/-]+))?(?:\s+to\s+([^,]+?))?,?\s+([\d.]+) seconds',
}

# =============================================================================
# P25 PATTERNS
# =============================================================================
P25_TAG = 'P25'

P25_PATTERNS = {
    # Matches: "P25, received RF voice transmission from N0CALL to TG 31328"
    #          "P25, received RF voice transmission from 3106849 to 10200"
    # Groups: (1) RF|network, (2) source ID or callsign (optional), (3) talkgroup (optional)
    'header': r'P25, received (RF|network)\s+(?:voice\s+)?(?:header|transmission)(?:\s+from\s+([A-Z0-9/]+))?(?:\s+to\s+(?:TG\s*)?(\w+))?',

    # Matches: "P25, received RF end of voice transmission from N0CALL to TG 31328, 4.2 seconds"
    #          "P25, received network end of voice transmission from 3106849, 2.5 seconds"
    # Groups: (1) RF|network, (2) source (optional), (3) talkgroup (optional), (4) duration
    'end': r'P25, received (RF|network)\s+end of (?:voice\s+)?transmission(?:\s+from\s+([A-Z0-9/]+))?(?:\s+to\s+(?:TG\s*)?([^,]+?))?,?\s+([\d.]+) seconds',
}

# NXDN has no log matcher - NXDN records only arrive from the hotspot's own
# last-heard feed

# =============================================================================
# PATTERN COMPILATION - Pre-compile all patterns for performance
# =============================================================================
def _compile_patterns(pattern_dict):
    """
    Pre-compile all regex patterns in a dictionary.

    Dictionaries keep insertion order, so the compiled dict preserves the
    priority order the parsers rely on.

    Args:
        pattern_dict: Dictionary of pattern_name -> regex_string

    Returns:
        Dictionary of pattern_name -> compiled regex object
    """
    return {key: re.compile(pattern, re.IGNORECASE) for key, pattern in pattern_dict.items()}


ENVELOPE = re.compile(ENVELOPE_PATTERN)

_COMPILED_PATTERNS = {
    'dmr': _compile_patterns(DMR_PATTERNS),
    'dstar': _compile_patterns(DSTAR_PATTERNS),
    'ysf': _compile_patterns(YSF_PATTERNS),
    'p25': _compile_patterns(P25_PATTERNS),
}

# =============================================================================
# PATTERN LOOKUP
# =============================================================================
def get_patterns(mode: str) -> dict:
    """
    Get pre-compiled regex patterns for a digital voice mode.

    Args:
        mode: Mode key (dmr, dstar, ysf, p25)

    Returns:
        Dictionary of pattern_name -> compiled regex, in priority order
    """
    return _COMPILED_PATTERNS.get(mode.lower(), {})
