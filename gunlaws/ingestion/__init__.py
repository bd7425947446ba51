# Ingestion package
from .load_panels import (
    load_panel, validate_panel, load_panels, adoption_years_from_panel
)

__all__ = [
    'load_panel', 'validate_panel', 'load_panels', 'adoption_years_from_panel'
]
