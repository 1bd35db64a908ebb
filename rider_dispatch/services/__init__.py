"""Domain services: order lifecycle, dispatch, locations, tracking and realtime."""
