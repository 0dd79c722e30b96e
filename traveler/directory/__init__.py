"""Traveler Directory: LDAP lookups and CAS ticket validation."""

from traveler.directory.client import Directory, DirectoryClient, LdapDirectoryClient
from traveler.directory.sso import CasClient, CasValidation

__all__ = [
    "CasClient",
    "CasValidation",
    "Directory",
    "DirectoryClient",
    "LdapDirectoryClient",
]
