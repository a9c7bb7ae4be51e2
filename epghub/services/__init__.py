"""
Services package for EPG Service

This package contains all business logic and service layer components.
Modules are imported directly (e.g. ``epghub.services.epg_merge_service``).
"""
