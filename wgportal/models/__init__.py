"""Database models."""
from wgportal.models.user import User, RoleDefinition, UserStatus, user_roles
from wgportal.models.peer import Peer, PeerStatus
from wgportal.models.import_batch import ImportBatch
from wgportal.models.audit_event import AuditEvent, AuditEventType
from wgportal.models.user_limit_history import UserLimitHistory
from wgportal.models.config_entry import ConfigEntry
from wgportal.models.accepted_domain import AcceptedDomain
from wgportal.models.api_key import APIKey

__all__ = [
    "User",
    "RoleDefinition",
    "UserStatus",
    "user_roles",
    "Peer",
    "PeerStatus",
    "ImportBatch",
    "AuditEvent",
    "AuditEventType",
    "UserLimitHistory",
    "ConfigEntry",
    "AcceptedDomain",
    "APIKey",
]
