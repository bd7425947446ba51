# Events package
from .law_indicators import (
    INDICATOR_STYLES, remap_start_year, law_indicator,
    build_law_panel, build_panels
)
from .event_windows import (
    DEFAULT_WINDOWS, first_active_year, cap_distance, add_windows
)

__all__ = [
    # Law indicators
    'INDICATOR_STYLES', 'remap_start_year', 'law_indicator',
    'build_law_panel', 'build_panels',
    # Event windows
    'DEFAULT_WINDOWS', 'first_active_year', 'cap_distance', 'add_windows'
]
