import sys
import os
import pytest
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from core.errors import PolicyError
from core.policy import MAX_SEARCH_RADIUS, ComparisonPolicy, DiffMode


def test_defaults():
    policy = ComparisonPolicy()
    assert policy.scale_to_same_size
    assert not policy.ignore_antialiasing
    assert not policy.ignore_colors
    assert policy.diff_mode is DiffMode.MOVEMENT
    assert policy.error_highlight_color == (255, 0, 255)
    assert policy.tolerance == 16


def test_policy_is_immutable():
    policy = ComparisonPolicy()
    with pytest.raises(AttributeError):
        policy.ignore_colors = True
    assert policy.with_options(ignore_colors=True).ignore_colors
    assert not policy.ignore_colors


def test_string_diff_mode_is_coerced():
    assert ComparisonPolicy(diff_mode='flat').diff_mode is DiffMode.FLAT


@pytest.mark.parametrize('kwargs', [
    {'error_highlight_transparency': 1.5},
    {'error_highlight_transparency': -0.1},
    {'error_highlight_color': (256, 0, 0)},
    {'error_highlight_color': (1, 2)},
    {'diff_mode': 'sparkle'},
    {'tolerance': 300},
    {'tolerance': 'lots'},
    {'movement_search_radius': 0},
    {'movement_search_radius': 100000},
    {'tolerance': float('inf')},
    {'tolerance': float('nan')},
    {'error_highlight_transparency': float('nan')},
    {'error_highlight_color': (float('inf'), 0, 0)},
])
def test_invalid_values_rejected(kwargs):
    with pytest.raises(PolicyError):
        ComparisonPolicy(**kwargs)


def test_policy_error_is_value_error():
    with pytest.raises(ValueError):
        ComparisonPolicy(error_highlight_transparency=2)


def test_from_mapping_camel_case_and_output_block():
    policy = ComparisonPolicy.from_mapping({
        'ignoreColors': 'true',
        'scaleToSameSize': False,
        'output': {
            'errorColor': {'red': 255, 'green': 0, 'blue': 0},
            'errorType': 'flat',
            'transparency': 0.8,
        },
    })
    assert policy.ignore_colors
    assert not policy.scale_to_same_size
    assert policy.error_highlight_color == (255, 0, 0)
    assert policy.diff_mode is DiffMode.FLAT
    assert policy.error_highlight_transparency == 0.8


def test_from_mapping_ignore_list():
    policy = ComparisonPolicy.from_mapping({'ignore': ['antialiasing', 'colors', 'less', 'nothing']})
    assert policy.ignore_antialiasing and policy.ignore_colors
    policy = ComparisonPolicy.from_mapping({'ignore': 'nothing'})
    assert not policy.ignore_antialiasing and not policy.ignore_colors


def test_from_mapping_keeps_base_values():
    base = ComparisonPolicy(ignore_antialiasing=True, tolerance=4)
    policy = ComparisonPolicy.from_mapping({'diffMode': 'overlay', 'unknownOption': 1}, base=base)
    assert policy.ignore_antialiasing
    assert policy.tolerance == 4
    assert policy.diff_mode is DiffMode.OVERLAY


def test_hex_highlight_color():
    assert ComparisonPolicy(error_highlight_color='#00ff80').error_highlight_color == (0, 255, 128)


def test_to_dict_round_trips_through_from_mapping():
    policy = ComparisonPolicy(ignore_colors=True, diff_mode=DiffMode.FLAT, pad_on_mismatch=True)
    assert ComparisonPolicy.from_mapping(policy.to_dict()) == policy


def test_search_radius_upper_bound():
    assert ComparisonPolicy(movement_search_radius=MAX_SEARCH_RADIUS).movement_search_radius == MAX_SEARCH_RADIUS
    with pytest.raises(PolicyError):
        ComparisonPolicy.from_mapping({'movementSearchRadius': MAX_SEARCH_RADIUS + 1})


def test_non_finite_request_values_are_policy_errors():
    for options in ({'tolerance': float('inf')}, {'transparency': float('-inf')}, {'movementSearchRadius': 1e999}):
        with pytest.raises(PolicyError):
            ComparisonPolicy.from_mapping(options)
