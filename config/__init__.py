"""Configuration helpers for the RCIS rework dashboard."""

# This package collects runtime configuration assets that can be customised
# without touching the application logic.  Individual modules provide
# structured accessors for specific domains (Supabase naming, catalogs of
# stations, defects and shifts).
