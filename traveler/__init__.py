"""
Traveler: access control and progress engine for forms, travelers and binders.

Forms are reusable HTML field templates, travelers are per-task work records
instantiated from them, and binders are work packages rolling up the
progress of travelers and nested binders. Documents are shared with users
and directory groups; logins go through CAS and the directory.

Entry point for applications: ``traveler.runtime.TravelerRuntime``.
"""

__version__ = "1.0.0"
__all__ = ["db", "directory", "documents", "engine", "security", "workflow", "runtime"]
