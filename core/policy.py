"""
Comparison Policy Module
Immutable configuration for a single image comparison.
"""

import math
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, Mapping, Tuple

from core.errors import PolicyError


class DiffMode(str, Enum):
    OVERLAY = 'overlay'
    MOVEMENT = 'movement'
    FLAT = 'flat'


# Per-channel tolerance, the resemble.js default.
DEFAULT_TOLERANCE = 16
DEFAULT_HIGHLIGHT_COLOR = (255, 0, 255)
# The movement search tries (2r + 1)**2 - 1 offsets, so the radius stays small.
MAX_SEARCH_RADIUS = 32

# camelCase aliases accepted from request payloads.
_OPTION_ALIASES = {
    'ignoreAntialiasing': 'ignore_antialiasing',
    'ignoreColors': 'ignore_colors',
    'scaleToSameSize': 'scale_to_same_size',
    'errorHighlightColor': 'error_highlight_color',
    'errorColor': 'error_highlight_color',
    'errorHighlightTransparency': 'error_highlight_transparency',
    'transparency': 'error_highlight_transparency',
    'diffMode': 'diff_mode',
    'errorType': 'diff_mode',
    'padOnMismatch': 'pad_on_mismatch',
    'movementSearchRadius': 'movement_search_radius',
}


@dataclass(frozen=True)
class ComparisonPolicy:
    ignore_antialiasing: bool = False
    ignore_colors: bool = False
    scale_to_same_size: bool = True
    error_highlight_color: Tuple[int, int, int] = DEFAULT_HIGHLIGHT_COLOR
    error_highlight_transparency: float = 0.3
    diff_mode: DiffMode = DiffMode.MOVEMENT
    tolerance: int = DEFAULT_TOLERANCE
    pad_on_mismatch: bool = False
    movement_search_radius: int = 3

    def __post_init__(self):
        object.__setattr__(self, 'error_highlight_color', _parse_color(self.error_highlight_color))
        try:
            mode = DiffMode(self.diff_mode)
        except ValueError as e:
            valid = ', '.join(m.value for m in DiffMode)
            raise PolicyError(f"Unknown diff mode {self.diff_mode!r}; expected one of: {valid}") from e
        object.__setattr__(self, 'diff_mode', mode)

        transparency = _coerce(self.error_highlight_transparency, float, 'error_highlight_transparency')
        if not 0.0 <= transparency <= 1.0:
            raise PolicyError(f"error_highlight_transparency must be within [0, 1], got {transparency}")
        object.__setattr__(self, 'error_highlight_transparency', transparency)

        tolerance = _coerce(self.tolerance, int, 'tolerance')
        if not 0 <= tolerance <= 255:
            raise PolicyError(f"tolerance must be within [0, 255], got {tolerance}")
        object.__setattr__(self, 'tolerance', tolerance)

        radius = _coerce(self.movement_search_radius, int, 'movement_search_radius')
        if not 1 <= radius <= MAX_SEARCH_RADIUS:
            raise PolicyError(f"movement_search_radius must be within [1, {MAX_SEARCH_RADIUS}], got {radius}")
        object.__setattr__(self, 'movement_search_radius', radius)

    def with_options(self, **changes) -> 'ComparisonPolicy':
        return replace(self, **changes)

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any], base: 'ComparisonPolicy' = None) -> 'ComparisonPolicy':
        """
        Build a policy from request options.

        Accepts snake_case field names, the camelCase names used by the web
        client, the resemble-style `output` block (errorColor, errorType,
        transparency) and an `ignore` list such as ['antialiasing', 'colors'].
        """
        base = base or cls()
        known = {f.name for f in fields(cls)}
        changes: Dict[str, Any] = {}

        flat = dict(options or {})
        output = flat.pop('output', None)
        if isinstance(output, Mapping):
            flat = {**output, **flat}

        ignore = flat.pop('ignore', None)
        if ignore is not None:
            if isinstance(ignore, str):
                ignore = [ignore]
            ignore = {str(item).lower() for item in ignore}
            changes['ignore_antialiasing'] = 'antialiasing' in ignore
            changes['ignore_colors'] = 'colors' in ignore

        for key, value in flat.items():
            name = _OPTION_ALIASES.get(key, key)
            if name not in known:
                continue
            if name in ('ignore_antialiasing', 'ignore_colors', 'scale_to_same_size', 'pad_on_mismatch'):
                value = _parse_bool(value)
            changes[name] = value
        return replace(base, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ignoreAntialiasing': self.ignore_antialiasing,
            'ignoreColors': self.ignore_colors,
            'scaleToSameSize': self.scale_to_same_size,
            'errorHighlightColor': list(self.error_highlight_color),
            'errorHighlightTransparency': self.error_highlight_transparency,
            'diffMode': self.diff_mode.value,
            'tolerance': self.tolerance,
            'padOnMismatch': self.pad_on_mismatch,
            'movementSearchRadius': self.movement_search_radius,
        }


def _coerce(value, kind, name):
    try:
        number = kind(value)
        finite = math.isfinite(number)
    except (TypeError, ValueError, OverflowError) as e:
        raise PolicyError(f"{name} must be a number, got {value!r}") from e
    if not finite:
        raise PolicyError(f"{name} must be finite, got {value!r}")
    return number


def _parse_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


def _parse_color(value) -> Tuple[int, int, int]:
    if isinstance(value, Mapping):
        value = (value.get('red', 0), value.get('green', 0), value.get('blue', 0))
    elif isinstance(value, str):
        hex_value = value.lstrip('#')
        if len(hex_value) != 6:
            raise PolicyError(f"Invalid highlight color {value!r}")
        try:
            value = tuple(int(hex_value[i:i + 2], 16) for i in (0, 2, 4))
        except ValueError as e:
            raise PolicyError(f"Invalid highlight color {value!r}") from e
    try:
        color = tuple(int(c) for c in value)
    except (TypeError, ValueError, OverflowError) as e:
        raise PolicyError(f"Invalid highlight color {value!r}") from e
    if len(color) != 3 or any(not 0 <= c <= 255 for c in color):
        raise PolicyError(f"Highlight color must be three channels in [0, 255], got {value!r}")
    return color
