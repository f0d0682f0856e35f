"""Chronicle: a searchable local archive of Discord conversations."""
